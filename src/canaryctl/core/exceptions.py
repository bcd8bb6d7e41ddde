"""Custom exceptions for canaryctl."""

from typing import Any


class CanaryCtlError(Exception):
    """Base exception for all canaryctl errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigError(CanaryCtlError):
    """Configuration-related errors."""

    pass


class ValidationError(CanaryCtlError):
    """Input validation errors."""

    pass


class PlanningError(ValidationError):
    """Invalid step ladder parameters."""

    pass


class NotFoundError(CanaryCtlError):
    """Requested deployment, rollback or template does not exist."""

    def __init__(
        self,
        message: str,
        resource: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.resource = resource
        self.resource_id = resource_id


class StateConflictError(CanaryCtlError):
    """Operation not allowed in the deployment's current state.

    Callers should not retry blindly; the state has to change first.
    """

    def __init__(
        self,
        message: str,
        deployment_id: str | None = None,
        status: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.deployment_id = deployment_id
        self.status = status


class LockTimeoutError(CanaryCtlError):
    """Per-deployment lock could not be acquired in time."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.timeout_seconds = timeout_seconds


class StoreError(CanaryCtlError):
    """State store read/write failures."""

    def __init__(
        self,
        message: str,
        deployment_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.deployment_id = deployment_id


class TrafficError(CanaryCtlError):
    """Traffic controller failures."""

    def __init__(
        self,
        message: str,
        percent: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.percent = percent


class MetricsError(CanaryCtlError):
    """Metrics provider failures or invalid snapshots."""

    pass


class AdvisoryError(CanaryCtlError):
    """Advisory text generation failures."""

    pass


class K8sError(CanaryCtlError):
    """Kubernetes API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class AWSError(CanaryCtlError):
    """AWS API errors."""

    def __init__(
        self,
        message: str,
        service: str | None = None,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.service = service
        self.operation = operation


class AuthenticationError(CanaryCtlError):
    """Authentication/authorization errors."""

    pass
