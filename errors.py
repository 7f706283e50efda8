"""
Error types raised at the orchestrator's boundaries.

NoDataError, NoProviderError, ProviderCallError and PlanParseError reach the
HTTP layer. CacheWriteError and ToolDataStoreError are caught and logged by
the orchestrator so a generated plan is still returned.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class OrchestratorError(Exception):
    """Base class for plan generation failures."""


class NoDataError(OrchestratorError):
    """No planning tool has data for the user."""

    def __init__(self, message: str, suggestions: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.suggestions = list(suggestions or [])


class NoProviderError(OrchestratorError):
    """Neither LLM provider has a credential configured."""


class ProviderErrorKind(Enum):
    AUTH = "auth"
    MODEL_UNAVAILABLE = "model_unavailable"
    JSON_MODE_UNSUPPORTED = "json_mode_unsupported"
    RATE_LIMITED = "rate_limited"
    EMPTY_RESPONSE = "empty_response"
    UNKNOWN = "unknown"


class ProviderCallError(OrchestratorError):
    """A provider call failed. Adapters classify the failure into a kind."""

    def __init__(self, message: str, kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN,
                 provider: str = "", model: str = ""):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.provider = provider
        self.model = model

    def __str__(self) -> str:
        where = "/".join(p for p in (self.provider, self.model) if p)
        return f"{where}: {self.message}" if where else self.message


class PlanParseError(OrchestratorError):
    """The model's response was not a usable plan document."""

    def __init__(self, message: str, raw_prefix: str = ""):
        super().__init__(message)
        self.message = message
        self.raw_prefix = raw_prefix


class CacheWriteError(OrchestratorError):
    """One or both cache tiers rejected the write."""

    def __init__(self, message: str, tiers: Sequence[str] = ()):
        super().__init__(message)
        self.tiers = tuple(tiers)


class ToolDataStoreError(Exception):
    """The durable tool-data store could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
