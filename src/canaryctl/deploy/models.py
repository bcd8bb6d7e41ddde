"""Canary rollout data models."""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid

from canaryctl.deploy.schema import MetricsSnapshot


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def short_id() -> str:
    return str(uuid.uuid4())[:8]


class DeploymentStatus(str, Enum):
    """Canary deployment lifecycle states."""

    PENDING = "pending"
    INITIALIZING = "initializing"
    PROGRESSING = "progressing"
    PAUSED = "paused"
    PROMOTING = "promoting"
    PROMOTED = "promoted"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {
        DeploymentStatus.PROMOTED,
        DeploymentStatus.ROLLED_BACK,
        DeploymentStatus.FAILED,
        DeploymentStatus.CANCELLED,
    }
)

# States in which exactly one step is running
RUNNING_STATUSES = frozenset({DeploymentStatus.INITIALIZING, DeploymentStatus.PROGRESSING})


class StepStatus(str, Enum):
    """Rollout step states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TrafficSplitType(str, Enum):
    """How traffic is routed to the canary."""

    PERCENTAGE = "percentage"
    HEADER = "header"
    COOKIE = "cookie"


class AnalysisResult(str, Enum):
    """Health classification of one analysis cycle."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    INCONCLUSIVE = "inconclusive"


class RollbackTrigger(str, Enum):
    """What caused a rollback."""

    AUTO_ERROR_RATE = "auto_error_rate"
    AUTO_LATENCY = "auto_latency"
    AUTO_POD_FAILURE = "auto_pod_failure"
    AUTO_HEALTH_CHECK = "auto_health_check"
    MANUAL = "manual"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class RollbackStatus(str, Enum):
    """Rollback record states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def _dump(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _dump_fields(obj: Any, skip: tuple[str, ...] = ()) -> dict[str, Any]:
    return {f.name: _dump(getattr(obj, f.name)) for f in fields(obj) if f.name not in skip}


@dataclass
class Deployment:
    """One canary rollout campaign."""

    # Identity
    id: str = field(default_factory=short_id)
    name: str = ""
    namespace: str = "default"
    target_deployment: str = ""
    cluster: str | None = None

    # Versions
    stable_version: str | None = None
    canary_version: str | None = None
    stable_image: str | None = None
    canary_image: str = ""

    # Traffic
    traffic_split_type: TrafficSplitType = TrafficSplitType.PERCENTAGE
    initial_percent: int = 10
    target_percent: int = 100
    increment_percent: int = 10
    increment_interval_minutes: int = 5

    # Health thresholds
    error_rate_threshold: float = 5.0  # percent
    latency_threshold_ms: float = 1000.0
    success_rate_threshold: float = 95.0  # percent
    min_healthy_pods: int = 1

    # Rollback policy
    auto_rollback_enabled: bool = True
    rollback_on_error_rate: bool = True
    rollback_on_latency: bool = True
    rollback_on_pod_failure: bool = True
    require_manual_approval: bool = False

    # Status
    status: DeploymentStatus = DeploymentStatus.PENDING
    status_message: str = ""
    error_message: str | None = None
    current_canary_percent: int = 0

    # Provenance
    created_by: str = "system"
    git_commit: str | None = None
    git_branch: str | None = None
    pull_request_url: str | None = None

    # Timing
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    last_progress_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        """Check if the rollout has finished one way or another."""
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        """Check if the rollout has started and not yet finished."""
        return self.status not in TERMINAL_STATUSES and self.status != DeploymentStatus.PENDING

    @property
    def duration_seconds(self) -> float | None:
        """Get rollout duration in seconds."""
        if self.started_at:
            end = self.completed_at or utcnow()
            return (end - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return _dump_fields(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Deployment":
        """Create from dictionary."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}

        values["traffic_split_type"] = TrafficSplitType(values.get("traffic_split_type", "percentage"))
        values["status"] = DeploymentStatus(values.get("status", "pending"))
        for key in ("created_at", "started_at", "last_progress_at", "completed_at"):
            if key in values:
                values[key] = _parse_dt(values[key])
        if values.get("created_at") is None:
            values.pop("created_at", None)

        return cls(**values)


@dataclass
class Step:
    """One rung of the rollout ladder."""

    deployment_id: str
    step_number: int
    target_percent: int
    id: str = field(default_factory=short_id)
    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _dump_fields(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Step":
        return cls(
            id=data["id"],
            deployment_id=data["deployment_id"],
            step_number=data["step_number"],
            target_percent=data["target_percent"],
            status=StepStatus(data.get("status", "pending")),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
        )


@dataclass
class MetricsRecord:
    """Persisted result of one analysis cycle."""

    deployment_id: str
    snapshot: MetricsSnapshot
    analysis_result: AnalysisResult
    canary_percent: int = 0
    step_id: str | None = None
    step_number: int | None = None
    analysis_notes: str = ""
    id: str = field(default_factory=short_id)
    recorded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        data = _dump_fields(self, skip=("snapshot",))
        data["snapshot"] = self.snapshot.model_dump(mode="json")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricsRecord":
        return cls(
            id=data["id"],
            deployment_id=data["deployment_id"],
            step_id=data.get("step_id"),
            step_number=data.get("step_number"),
            canary_percent=data.get("canary_percent", 0),
            snapshot=MetricsSnapshot.model_validate(data["snapshot"]),
            analysis_result=AnalysisResult(data["analysis_result"]),
            analysis_notes=data.get("analysis_notes", ""),
            recorded_at=_parse_dt(data.get("recorded_at")) or utcnow(),
        )


@dataclass
class RollbackRecord:
    """One compensating action for a deployment."""

    deployment_id: str
    trigger: RollbackTrigger
    reason: str = ""
    canary_percent_at_rollback: int = 0
    step_at_rollback: int | None = None
    rollback_to_version: str | None = None
    rollback_to_image: str | None = None
    status: RollbackStatus = RollbackStatus.IN_PROGRESS
    initiated_by: str = "system"
    error_message: str | None = None
    id: str = field(default_factory=short_id)
    created_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status in (RollbackStatus.PENDING, RollbackStatus.IN_PROGRESS)

    def to_dict(self) -> dict[str, Any]:
        return _dump_fields(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RollbackRecord":
        return cls(
            id=data["id"],
            deployment_id=data["deployment_id"],
            trigger=RollbackTrigger(data["trigger"]),
            reason=data.get("reason", ""),
            canary_percent_at_rollback=data.get("canary_percent_at_rollback", 0),
            step_at_rollback=data.get("step_at_rollback"),
            rollback_to_version=data.get("rollback_to_version"),
            rollback_to_image=data.get("rollback_to_image"),
            status=RollbackStatus(data.get("status", "in_progress")),
            initiated_by=data.get("initiated_by", "system"),
            error_message=data.get("error_message"),
            created_at=_parse_dt(data.get("created_at")) or utcnow(),
            completed_at=_parse_dt(data.get("completed_at")),
        )


@dataclass
class CanaryTemplate:
    """Reusable rollout defaults."""

    name: str
    description: str = ""
    traffic_split_type: TrafficSplitType = TrafficSplitType.PERCENTAGE
    initial_percent: int | None = None
    increment_percent: int | None = None
    increment_interval_minutes: int | None = None
    error_rate_threshold: float | None = None
    latency_threshold_ms: float | None = None
    success_rate_threshold: float | None = None
    auto_rollback_enabled: bool | None = None
    require_manual_approval: bool | None = None
    is_default: bool = False
    id: str = field(default_factory=short_id)
    created_at: datetime = field(default_factory=utcnow)

    def overrides(self) -> dict[str, Any]:
        """Rollout fields this template sets."""
        keys = (
            "initial_percent",
            "increment_percent",
            "increment_interval_minutes",
            "error_rate_threshold",
            "latency_threshold_ms",
            "success_rate_threshold",
            "auto_rollback_enabled",
            "require_manual_approval",
        )
        result: dict[str, Any] = {"traffic_split_type": self.traffic_split_type.value}
        for key in keys:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result

    def to_dict(self) -> dict[str, Any]:
        return _dump_fields(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CanaryTemplate":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["traffic_split_type"] = TrafficSplitType(values.get("traffic_split_type", "percentage"))
        created_at = _parse_dt(values.pop("created_at", None))
        if created_at:
            values["created_at"] = created_at
        return cls(**values)
