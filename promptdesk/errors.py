"""Error taxonomy for the PromptDesk generation pipeline.

Every failure inside a generation attempt is one of these types. The
orchestrator catches all of them at its boundary and converts them into a
GenerationResult with an HTTP-style status, so none of them escapes to the
request layer.
"""

from enum import Enum
from typing import Optional


class PromptDeskError(Exception):
    """Base class for all pipeline errors."""

    status: int = 500

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ConfigurationError(PromptDeskError):
    """Stored configuration cannot produce a valid provider call.

    Covers unresolved variables, malformed mapping rules and dangling
    model references. Never retried.
    """

    status = 400


class NotFoundError(ConfigurationError):
    """A prompt or model referenced by the caller does not exist."""

    status = 404

    def __init__(self, kind: str, identifier: Optional[str]) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__("{} '{}' not found.".format(kind.capitalize(), identifier))


class SubstitutionError(ConfigurationError):
    """A template placeholder is malformed or has no matching variable."""

    def __init__(self, name: str, detail: Optional[str] = None) -> None:
        self.name = name
        super().__init__(detail or "Missing variable '{}'.".format(name))


class MappingError(ConfigurationError):
    """A mapping rule is malformed or references an absent field."""


class ProviderErrorKind(str, Enum):
    """Failure class reported by the provider client or response mapper."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    PROVIDER = "provider"


class ProviderError(PromptDeskError):
    """The provider could not be reached or reported a failure."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        detail: str,
        status: Optional[int] = None,
    ) -> None:
        self.kind = kind
        if status is not None:
            self.status = status
        elif kind == ProviderErrorKind.TIMEOUT:
            self.status = 504
        else:
            self.status = 502
        super().__init__(detail)
