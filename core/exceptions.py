"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Error taxonomy of the venue state adapter.

Who sees what:
- ConfigurationError   raised at construction, fatal
- PayloadError         raised by the normalizer, the event is dropped
- NotFoundError        raised to the caller of a query
- TransportError       raised to the caller of a command, or logged
                       when it arrives through the error event
- TerminationError     logged by terminate(), never raised

============================================================
HIERARCHY
============================================================
VenueStateException
├── ConfigurationError
├── PayloadError
├── NotFoundError
└── TransportError
    └── TerminationError

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY
# ============================================================

class Severity(Enum):
    """Maps onto the log level an error is reported at."""

    LOW = "low"
    """Expected in normal operation."""

    MEDIUM = "medium"
    """Degraded, the adapter keeps going."""

    HIGH = "high"
    """The calling operation cannot continue."""


# ============================================================
# BASE
# ============================================================

class VenueStateException(Exception):
    """
    Base of every adapter error.

    Keyword fields given by subclasses land in ``context``;
    fields that are None are left out.
    """

    default_severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        *,
        severity: Optional[Severity] = None,
        cause: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ):
        super().__init__(message)
        self.message = message
        self.severity = severity or self.default_severity
        self.cause = cause
        self.raised_at = datetime.now(timezone.utc)

        self.context: Dict[str, Any] = dict(context or {})
        self.context.update({key: value for key, value in fields.items() if value is not None})
        if cause is not None:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "context": dict(self.context),
            "cause": str(self.cause) if self.cause is not None else None,
            "raised_at": self.raised_at.isoformat(),
        }

    def to_log_format(self) -> str:
        """One-line form: [SEVERITY] Type: message | key=value, ..."""
        line = f"[{self.severity.name}] {type(self).__name__}: {self.message}"
        if self.context:
            line += " | " + ", ".join(f"{key}={value}" for key, value in self.context.items())
        return line


def _clip(value: Any, limit: int) -> Optional[str]:
    return None if value is None else str(value)[:limit]


# ============================================================
# TAXONOMY
# ============================================================

class ConfigurationError(VenueStateException):
    """Invalid configuration value."""

    default_severity = Severity.HIGH

    def __init__(self, message: str, config_key: Optional[str] = None, actual_value: Any = None, **kwargs):
        super().__init__(message, config_key=config_key, actual_value=_clip(actual_value, 100), **kwargs)


class PayloadError(VenueStateException):
    """A venue payload does not match the input schema of its event kind."""

    def __init__(self, message: str, event_kind: Optional[str] = None, payload: Any = None, **kwargs):
        super().__init__(message, event_kind=event_kind, payload=_clip(payload, 200), **kwargs)


class NotFoundError(VenueStateException):
    """Requested entity is not in the local cache."""

    default_severity = Severity.LOW

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        super().__init__(message, key=key, **kwargs)


class TransportError(VenueStateException):
    """
    Failure reported by, or while talking to, the venue transport.

    Raised from commands (submit, cancel) to the caller. When surfaced
    through the error event it is logged and the cached state is kept.
    """

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, operation=operation, **kwargs)


class TerminationError(TransportError):
    """Failure while closing the transport. Logged, never propagated."""

    default_severity = Severity.LOW


__all__ = [
    "Severity",
    "VenueStateException",
    "ConfigurationError",
    "PayloadError",
    "NotFoundError",
    "TransportError",
    "TerminationError",
]
