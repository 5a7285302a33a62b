"""Core module for exceptions, telemetry, and utilities."""

from wpp_console.core.exceptions import (
    ActionFailed,
    ActionValidationError,
    BackendAPIError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    TransportConnectionError,
)
from wpp_console.core.telemetry import get_tracer, setup_all_instrumentation, shutdown_telemetry

__all__ = [
    "ActionFailed",
    "ActionValidationError",
    "BackendAPIError",
    "BadRequestError",
    "ConflictError",
    "NotFoundError",
    "TransportConnectionError",
    "get_tracer",
    "setup_all_instrumentation",
    "shutdown_telemetry",
]
