"""Request and response models for the PromptDesk HTTP API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    """Body of an authenticated generation call."""

    prompt_id: str = Field(..., min_length=1, description="Prompt to generate from")
    model_id: Optional[str] = Field(
        default=None, description="Overrides the prompt's configured model"
    )
    variables: Dict[str, Any] = Field(
        default_factory=dict, description="Runtime template variables"
    )
    timeout: Optional[float] = Field(
        default=None, gt=0, description="Caller deadline in seconds"
    )


class AppGenerateRequest(BaseModel):
    """Body of a public app generation call. Only variables are accepted."""

    variables: Dict[str, Any] = Field(default_factory=dict)


class GenerateResponse(BaseModel):
    """Outcome of a generation attempt, relayed verbatim to callers."""

    status: int
    message: Any = None
    error: Optional[str] = None


class AppInfo(BaseModel):
    """What the public app surface reveals about a prompt."""

    id: str
    name: str
    description: str = ""
    variables: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


class LogEntryView(BaseModel):
    """A generation log entry as returned by the logs API."""

    id: str
    organization_id: str
    model_id: Optional[str] = None
    prompt_id: Optional[str] = None
    status: int
    error: bool
    message: Any = None
    raw: Any = None
    data: Dict[str, Any] = Field(default_factory=dict)
    duration_ms: int = 0
    hash: str
    created_at: str
    state: str


class LogListResponse(BaseModel):
    logs: List[LogEntryView]


class VariablesBody(BaseModel):
    """Tenant-wide variable document."""

    variables: Dict[str, Any] = Field(default_factory=dict)


class KeyRotationRequest(BaseModel):
    """Selects the key to replace by index or description; appends otherwise."""

    description: Optional[str] = None
    index: Optional[int] = Field(default=None, ge=0)


class KeyRotationResponse(BaseModel):
    key: str
    description: str


class ErrorResponse(BaseModel):
    """Error response envelope."""

    error: bool = True
    message: str
