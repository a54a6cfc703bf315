"""Domain records shared by the generation pipeline and its collaborators."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ModelType(str, Enum):
    """Shape of the provider call a model expects."""

    CHAT = "chat"
    COMPLETION = "completion"
    EMBEDDING = "embedding"


class LifecycleState(str, Enum):
    """Lifecycle of a stored entity. Entities are never hard-deleted."""

    ACTIVE = "active"
    DELETED = "deleted"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ApiCall:
    """Where and how to reach a provider. URL and headers are templates."""

    url: str
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ModelConfig:
    """A stored provider model definition, read as a snapshot per attempt."""

    id: str
    name: str
    type: ModelType
    api_call: ApiCall
    organization_id: str
    response_mapping: Dict[str, Any]
    request_mapping: Optional[Any] = None
    model_parameters: Dict[str, Any] = field(default_factory=dict)
    state: LifecycleState = LifecycleState.ACTIVE


@dataclass(frozen=True)
class PromptConfig:
    """A stored prompt template bound (weakly) to a model."""

    id: str
    name: str
    model_id: str
    prompt_data: Any
    organization_id: str
    description: str = ""
    prompt_variables: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    public: bool = False
    state: LifecycleState = LifecycleState.ACTIVE


@dataclass(frozen=True)
class GenerationRequest:
    """Input to one generation attempt. Built per call, then discarded."""

    prompt: PromptConfig
    model: ModelConfig
    variables: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None


@dataclass
class GenerationResult:
    """Outcome of one attempt, mirroring what the log entry records."""

    output: Any
    status: int
    error: Optional[str] = None
    duration_ms: int = 0
    log_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_response(self) -> Dict[str, Any]:
        """Return the public ``{status, message, error}`` shape."""
        return {
            "status": self.status,
            "message": self.output if self.ok else self.error,
            "error": self.error,
        }


@dataclass(frozen=True)
class LogEntry:
    """Immutable audit record of one generation attempt.

    The only permitted change after creation is the lifecycle transition
    to DELETED, which produces a new record via ``with_state``.
    """

    id: str
    organization_id: str
    model_id: Optional[str]
    prompt_id: Optional[str]
    status: int
    error: bool
    message: Any
    hash: str
    duration_ms: int = 0
    raw: Any = None
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now)
    state: LifecycleState = LifecycleState.ACTIVE

    def with_state(self, state: LifecycleState) -> "LogEntry":
        values = asdict(self)
        values["state"] = state
        return LogEntry(**values)

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        values["state"] = self.state.value
        return values

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        values = dict(data)
        values["state"] = LifecycleState(values.get("state", "active"))
        return cls(**values)


@dataclass
class OrganizationKey:
    """An organization API key. Only the SHA-256 hash is kept."""

    description: str
    key_hash: str
    created_at: str = field(default_factory=utc_now)


@dataclass
class Organization:
    """A tenant. ``api_key_env`` names the env var holding the provider secret."""

    id: str
    name: str
    api_key_env: Optional[str] = None
    keys: List[OrganizationKey] = field(default_factory=list)
    state: LifecycleState = LifecycleState.ACTIVE
