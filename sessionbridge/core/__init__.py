"""Core building blocks: exceptions, clock/RNG, logging and configuration."""

from .clock import (
    Clock,
    FixedRandomSource,
    FrozenClock,
    RandomSource,
    SeededRandomSource,
    SystemClock,
    SystemRandomSource,
)
from .exceptions import (
    AuthenticationError,
    CodeExtractionError,
    ConfigurationError,
    DriverError,
    NotFoundError,
    SessionBridgeError,
    SessionNotFoundError,
    ValidationError,
)

__all__ = [
    "Clock",
    "RandomSource",
    "SystemClock",
    "FrozenClock",
    "SystemRandomSource",
    "SeededRandomSource",
    "FixedRandomSource",
    "SessionBridgeError",
    "ValidationError",
    "CodeExtractionError",
    "NotFoundError",
    "SessionNotFoundError",
    "AuthenticationError",
    "DriverError",
    "ConfigurationError",
]
