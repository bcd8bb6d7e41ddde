"""Canary rollout engine."""

from canaryctl.deploy.analysis import HealthAnalysis, analyze_health
from canaryctl.deploy.controller import ProgressionController, ProgressOutcome, ProgressResult
from canaryctl.deploy.engine import RolloutEngine
from canaryctl.deploy.locks import DeploymentLocks
from canaryctl.deploy.models import (
    AnalysisResult,
    CanaryTemplate,
    Deployment,
    DeploymentStatus,
    MetricsRecord,
    RollbackRecord,
    RollbackStatus,
    RollbackTrigger,
    Step,
    StepStatus,
)
from canaryctl.deploy.operator import RolloutOperator
from canaryctl.deploy.planner import plan_steps
from canaryctl.deploy.recorder import MetricsRecorder
from canaryctl.deploy.rollback import RollbackController
from canaryctl.deploy.schema import DeploymentRequest, MetricsSnapshot, TemplateRequest
from canaryctl.deploy.state import DeploymentState, MemoryDeploymentState, StateStore

__all__ = [
    "AnalysisResult",
    "CanaryTemplate",
    "Deployment",
    "DeploymentLocks",
    "DeploymentRequest",
    "DeploymentState",
    "DeploymentStatus",
    "HealthAnalysis",
    "MemoryDeploymentState",
    "MetricsRecord",
    "MetricsRecorder",
    "MetricsSnapshot",
    "ProgressOutcome",
    "ProgressResult",
    "ProgressionController",
    "RollbackController",
    "RollbackRecord",
    "RollbackStatus",
    "RollbackTrigger",
    "RolloutEngine",
    "RolloutOperator",
    "StateStore",
    "Step",
    "StepStatus",
    "TemplateRequest",
    "analyze_health",
    "plan_steps",
]
