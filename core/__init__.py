"""
Core Module Package.

This package contains the infrastructure components
that the venue state adapter depends on.

Components:
- clock: Clock and timer abstraction
- exceptions: Custom exception hierarchy
"""

from .clock import ClockProtocol, SystemClock, MockClock, TimerHandle
from .exceptions import (
    Severity,
    VenueStateException,
    ConfigurationError,
    PayloadError,
    NotFoundError,
    TransportError,
    TerminationError,
)
