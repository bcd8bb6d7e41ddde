"""Core utilities and shared components for canaryctl."""

# Note: Import context lazily to avoid circular imports
# Use: from canaryctl.core.context import CanaryCtlContext, pass_context
from canaryctl.core.exceptions import (
    CanaryCtlError,
    ConfigError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from canaryctl.core.output import OutputFormatter, console

__all__ = [
    "CanaryCtlError",
    "ConfigError",
    "NotFoundError",
    "StateConflictError",
    "ValidationError",
    "OutputFormatter",
    "console",
]
