"""Validation schemas for rollout requests and metrics snapshots."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

SplitType = Literal["percentage", "header", "cookie"]


class MetricsSnapshot(BaseModel):
    """Point-in-time health read for a canary and its stable baseline.

    Rates are percentages (0-100), latencies are milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    canary_requests: int = Field(default=0, ge=0)
    stable_requests: int = Field(default=0, ge=0)
    canary_errors: int = Field(default=0, ge=0)
    stable_errors: int = Field(default=0, ge=0)
    canary_error_rate: float = Field(default=0.0, ge=0, le=100)
    stable_error_rate: float = Field(default=0.0, ge=0, le=100)
    canary_avg_latency_ms: float = Field(default=0.0, ge=0)
    stable_avg_latency_ms: float = Field(default=0.0, ge=0)
    canary_healthy_pods: int = Field(default=0, ge=0)
    canary_total_pods: int = Field(default=0, ge=0)
    stable_healthy_pods: int = Field(default=0, ge=0)
    stable_total_pods: int = Field(default=0, ge=0)
    collected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def validate_consistency(self) -> "MetricsSnapshot":
        """Reject counts that cannot describe a real workload."""
        if self.canary_errors > self.canary_requests:
            raise ValueError("canary_errors cannot exceed canary_requests")
        if self.stable_errors > self.stable_requests:
            raise ValueError("stable_errors cannot exceed stable_requests")
        if self.canary_healthy_pods > self.canary_total_pods:
            raise ValueError("canary_healthy_pods cannot exceed canary_total_pods")
        if self.stable_healthy_pods > self.stable_total_pods:
            raise ValueError("stable_healthy_pods cannot exceed stable_total_pods")
        return self

    @property
    def canary_success_rate(self) -> float:
        return 100.0 - self.canary_error_rate

    @classmethod
    def from_counts(
        cls,
        *,
        canary_requests: int,
        canary_errors: int,
        stable_requests: int = 0,
        stable_errors: int = 0,
        **kwargs: Any,
    ) -> "MetricsSnapshot":
        """Build a snapshot, deriving error rates from request/error counts."""

        def rate(errors: int, requests: int) -> float:
            return (errors / requests) * 100 if requests else 0.0

        return cls(
            canary_requests=canary_requests,
            canary_errors=canary_errors,
            stable_requests=stable_requests,
            stable_errors=stable_errors,
            canary_error_rate=rate(canary_errors, canary_requests),
            stable_error_rate=rate(stable_errors, stable_requests),
            **kwargs,
        )


class DeploymentRequest(BaseModel):
    """Input for creating a canary deployment.

    Unset (None) fields fall back to the template, then to profile defaults.
    """

    name: str = Field(min_length=1)
    target_deployment: str = Field(min_length=1)
    canary_image: str = Field(min_length=1)
    namespace: str | None = None
    cluster: str | None = None
    canary_version: str | None = None
    stable_image: str | None = None
    stable_version: str | None = None
    template_id: str | None = None

    traffic_split_type: SplitType | None = None
    initial_percent: int | None = Field(default=None, ge=1, le=100)
    target_percent: int | None = Field(default=None, ge=1, le=100)
    increment_percent: int | None = Field(default=None, ge=1, le=100)
    increment_interval_minutes: int | None = Field(default=None, ge=1)

    error_rate_threshold: float | None = Field(default=None, ge=0, le=100)
    latency_threshold_ms: float | None = Field(default=None, ge=0)
    success_rate_threshold: float | None = Field(default=None, ge=0, le=100)
    min_healthy_pods: int | None = Field(default=None, ge=1)

    auto_rollback_enabled: bool | None = None
    rollback_on_error_rate: bool | None = None
    rollback_on_latency: bool | None = None
    rollback_on_pod_failure: bool | None = None
    require_manual_approval: bool | None = None

    created_by: str = "system"
    git_commit: str | None = None
    git_branch: str | None = None
    pull_request_url: str | None = None

    def explicit_fields(self) -> dict[str, Any]:
        """Fields the caller actually set, excluding the template reference."""
        return self.model_dump(exclude_none=True, exclude={"template_id"})


class TemplateRequest(BaseModel):
    """Input for creating a rollout template."""

    name: str = Field(min_length=1)
    description: str = ""
    traffic_split_type: SplitType = "percentage"
    initial_percent: int | None = Field(default=None, ge=1, le=100)
    increment_percent: int | None = Field(default=None, ge=1, le=100)
    increment_interval_minutes: int | None = Field(default=None, ge=1)
    error_rate_threshold: float | None = Field(default=None, ge=0, le=100)
    latency_threshold_ms: float | None = Field(default=None, ge=0)
    success_rate_threshold: float | None = Field(default=None, ge=0, le=100)
    auto_rollback_enabled: bool | None = None
    require_manual_approval: bool | None = None
    is_default: bool = False
