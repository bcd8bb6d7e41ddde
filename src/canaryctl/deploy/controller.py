"""Canary rollout state machine."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from canaryctl.config import RolloutDefaults
from canaryctl.core.exceptions import MetricsError, StateConflictError, ValidationError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.analysis import HealthAnalysis, analyze_health
from canaryctl.deploy.locks import DeploymentLocks
from canaryctl.deploy.models import (
    RUNNING_STATUSES,
    Deployment,
    DeploymentStatus,
    MetricsRecord,
    RollbackRecord,
    RollbackTrigger,
    Step,
    StepStatus,
    TrafficSplitType,
    utcnow,
)
from canaryctl.deploy.planner import plan_steps
from canaryctl.deploy.providers.base import (
    AdvisoryTextGenerator,
    MetricsProvider,
    TrafficController,
)
from canaryctl.deploy.recorder import MetricsRecorder
from canaryctl.deploy.rollback import RollbackController
from canaryctl.deploy.schema import DeploymentRequest, MetricsSnapshot
from canaryctl.deploy.state import StateStore

logger = get_logger(__name__)

PROMOTABLE = frozenset(
    {
        DeploymentStatus.INITIALIZING,
        DeploymentStatus.PROGRESSING,
        DeploymentStatus.PAUSED,
        DeploymentStatus.PROMOTING,
    }
)


class ProgressOutcome(str, Enum):
    """What one ``progress`` call did."""

    ADVANCED = "advanced"
    PROMOTED = "promoted"
    AWAITING_APPROVAL = "awaiting_approval"
    ROLLBACK_INITIATED = "rollback_initiated"
    HOLD = "hold"
    SKIPPED = "skipped"
    NOOP = "noop"


@dataclass
class ProgressResult:
    """Result of one progress cycle."""

    outcome: ProgressOutcome
    deployment: Deployment
    message: str = ""
    analysis: HealthAnalysis | None = None
    metrics_record: MetricsRecord | None = None
    rollback: RollbackRecord | None = None
    advisory: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "deployment_id": self.deployment.id,
            "status": self.deployment.status.value,
            "current_canary_percent": self.deployment.current_canary_percent,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "rollback_id": self.rollback.id if self.rollback else None,
            "advisory": self.advisory,
        }


def _running_step(steps: list[Step]) -> Step | None:
    return next((s for s in steps if s.status == StepStatus.RUNNING), None)


def _first_pending(steps: list[Step]) -> Step | None:
    return next((s for s in steps if s.status == StepStatus.PENDING), None)


class ProgressionController:
    """Drives deployments through their lifecycle.

    Every state-changing operation runs under the deployment's lock and
    follows the same order: decide on loaded copies, enforce traffic,
    persist in one commit. A traffic failure therefore leaves stored state
    untouched.
    """

    def __init__(
        self,
        store: StateStore,
        locks: DeploymentLocks,
        metrics: MetricsProvider,
        traffic: TrafficController,
        advisor: AdvisoryTextGenerator,
        rollbacks: RollbackController,
        recorder: MetricsRecorder,
        defaults: RolloutDefaults | None = None,
        advisory_enabled: bool = True,
    ):
        self._store = store
        self._locks = locks
        self._metrics = metrics
        self._traffic = traffic
        self._advisor = advisor
        self._rollbacks = rollbacks
        self._recorder = recorder
        self._defaults = defaults or RolloutDefaults()
        self._advisory_enabled = advisory_enabled

    # Lifecycle

    def create(self, request: DeploymentRequest | dict[str, Any]) -> Deployment:
        """Create a pending deployment and its step ladder.

        Values resolve as profile defaults, then template, then the request.

        Raises:
            ValidationError: If the request is invalid
            PlanningError: If the ladder parameters are inconsistent
            NotFoundError: If the referenced template does not exist
        """
        if not isinstance(request, DeploymentRequest):
            try:
                request = DeploymentRequest.model_validate(request)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid deployment request: {e.error_count()} errors",
                    details={"errors": [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]},
                )

        values: dict[str, Any] = self._defaults.model_dump()
        if request.template_id:
            values.update(self._store.get_template(request.template_id).overrides())
        else:
            default_template = self._store.get_default_template()
            if default_template:
                values.update(default_template.overrides())
        values.update(request.explicit_fields())
        values["traffic_split_type"] = TrafficSplitType(values["traffic_split_type"])

        percents = plan_steps(
            values["initial_percent"],
            values["target_percent"],
            values["increment_percent"],
        )

        deployment = Deployment(**values)
        deployment.status_message = "Deployment created"
        steps = [
            Step(deployment_id=deployment.id, step_number=i, target_percent=pct)
            for i, pct in enumerate(percents, start=1)
        ]

        self._store.create(deployment, steps)
        logger.info(
            "Created canary deployment",
            deployment_id=deployment.id,
            name=deployment.name,
            steps=len(steps),
        )
        return deployment

    def start(self, deployment_id: str) -> Deployment:
        """Start (or restart) a rollout at its first pending step."""
        with self._locks.hold(deployment_id):
            deployment = self._store.get_deployment(deployment_id)
            if deployment.status not in (DeploymentStatus.PENDING, DeploymentStatus.PAUSED):
                raise self._conflict(deployment, "start")

            steps = self._store.get_steps(deployment_id)
            step = _first_pending(steps)
            if step is None:
                raise self._conflict(deployment, "start", "no pending step left")

            now = utcnow()
            step.status = StepStatus.RUNNING
            step.started_at = now

            deployment.status = DeploymentStatus.INITIALIZING
            deployment.current_canary_percent = step.target_percent
            deployment.status_message = f"Canary started at {step.target_percent}%"
            if deployment.started_at is None:
                deployment.started_at = now

            self._traffic.apply_canary_percent(deployment, step.target_percent)
            self._store.commit(deployment, steps=[step])

        logger.info(
            "Started canary deployment",
            deployment_id=deployment_id,
            canary_percent=deployment.current_canary_percent,
        )
        return deployment

    def progress(self, deployment_id: str) -> ProgressResult:
        """Run one analysis cycle and act on it.

        Raises:
            StateConflictError: If the deployment is not in a progressable state
        """
        with self._locks.hold(deployment_id):
            result = self._progress_locked(deployment_id)

        if result.analysis and result.analysis.needs_advisory:
            result.advisory = self._advise(result.deployment, result.analysis)

        return result

    def _progress_locked(self, deployment_id: str) -> ProgressResult:
        deployment = self._store.get_deployment(deployment_id)

        if deployment.status == DeploymentStatus.PAUSED:
            return ProgressResult(ProgressOutcome.NOOP, deployment, message="Deployment is paused")
        if deployment.status not in RUNNING_STATUSES:
            raise self._conflict(deployment, "progress")

        steps = self._store.get_steps(deployment_id)
        running = _running_step(steps)
        if running is None:
            raise self._conflict(deployment, "progress", "no running step")

        try:
            snapshot = self._metrics.fetch(deployment)
        except MetricsError as e:
            logger.warning("Metrics unavailable, skipping cycle", deployment_id=deployment_id, error=e.message)
            return ProgressResult(ProgressOutcome.SKIPPED, deployment, message=f"Metrics unavailable: {e.message}")

        analysis = analyze_health(deployment, snapshot)
        record = self._recorder.build(
            deployment, running, snapshot, analysis.analysis_result, analysis.reasons
        )

        if analysis.should_rollback:
            rollback, changed = self._rollbacks.prepare(
                deployment,
                steps,
                analysis.primary_reason,
                RollbackTrigger.AUTO_HEALTH_CHECK,
            )
            self._store.commit(deployment, steps=changed, metrics=[record], rollbacks=[rollback])
            logger.warning(
                "Automatic rollback initiated",
                deployment_id=deployment_id,
                rollback_id=rollback.id,
                reason=rollback.reason,
            )
            return ProgressResult(
                ProgressOutcome.ROLLBACK_INITIATED,
                deployment,
                message=deployment.status_message,
                analysis=analysis,
                metrics_record=record,
                rollback=rollback,
            )

        if not analysis.should_advance:
            self._store.commit(deployment, metrics=[record])
            return ProgressResult(
                ProgressOutcome.HOLD,
                deployment,
                message=f"Holding at {deployment.current_canary_percent}%",
                analysis=analysis,
                metrics_record=record,
            )

        now = utcnow()
        running.status = StepStatus.COMPLETED
        running.completed_at = now
        next_step = next(
            (s for s in steps if s.step_number == running.step_number + 1 and s.status == StepStatus.PENDING),
            None,
        )

        if next_step is not None:
            next_step.status = StepStatus.RUNNING
            next_step.started_at = now
            deployment.status = DeploymentStatus.PROGRESSING
            deployment.current_canary_percent = next_step.target_percent
            deployment.last_progress_at = now
            deployment.status_message = f"Advanced to step {next_step.step_number} ({next_step.target_percent}%)"

            self._traffic.apply_canary_percent(deployment, next_step.target_percent)
            self._store.commit(deployment, steps=[running, next_step], metrics=[record])
            logger.info(
                "Advanced canary",
                deployment_id=deployment_id,
                step=next_step.step_number,
                canary_percent=next_step.target_percent,
            )
            return ProgressResult(
                ProgressOutcome.ADVANCED,
                deployment,
                message=deployment.status_message,
                analysis=analysis,
                metrics_record=record,
            )

        if deployment.require_manual_approval:
            deployment.status = DeploymentStatus.PROMOTING
            deployment.last_progress_at = now
            deployment.status_message = "All steps completed, awaiting manual approval"
            self._store.commit(deployment, steps=[running], metrics=[record])
            logger.info("Canary awaiting approval", deployment_id=deployment_id)
            return ProgressResult(
                ProgressOutcome.AWAITING_APPROVAL,
                deployment,
                message=deployment.status_message,
                analysis=analysis,
                metrics_record=record,
            )

        changed = self._finish_promotion(deployment, steps)
        self._store.commit(deployment, steps=changed, metrics=[record])
        logger.info("Canary promoted", deployment_id=deployment_id)
        return ProgressResult(
            ProgressOutcome.PROMOTED,
            deployment,
            message=deployment.status_message,
            analysis=analysis,
            metrics_record=record,
        )

    def promote(self, deployment_id: str) -> Deployment:
        """Force promotion, skipping any remaining steps."""
        with self._locks.hold(deployment_id):
            deployment = self._store.get_deployment(deployment_id)
            if deployment.status not in PROMOTABLE:
                raise self._conflict(deployment, "promote")

            steps = self._store.get_steps(deployment_id)
            changed = self._finish_promotion(deployment, steps)
            self._store.commit(deployment, steps=changed)

        logger.info("Canary promoted", deployment_id=deployment_id)
        return deployment

    def _finish_promotion(self, deployment: Deployment, steps: list[Step]) -> list[Step]:
        now = utcnow()
        changed: list[Step] = []
        for step in steps:
            if step.status == StepStatus.RUNNING:
                step.status = StepStatus.COMPLETED
                step.completed_at = now
                changed.append(step)
            elif step.status == StepStatus.PENDING:
                step.status = StepStatus.SKIPPED
                changed.append(step)

        deployment.status = DeploymentStatus.PROMOTED
        deployment.current_canary_percent = deployment.target_percent
        deployment.completed_at = now
        deployment.last_progress_at = now
        deployment.status_message = "Canary successfully promoted to stable"

        self._traffic.promote(deployment)
        return changed

    def pause(self, deployment_id: str) -> Deployment:
        """Pause a running rollout, parking its running step."""
        with self._locks.hold(deployment_id):
            deployment = self._store.get_deployment(deployment_id)
            if deployment.status not in RUNNING_STATUSES:
                raise self._conflict(deployment, "pause")

            steps = self._store.get_steps(deployment_id)
            changed: list[Step] = []
            running = _running_step(steps)
            if running is not None:
                running.status = StepStatus.PENDING
                running.started_at = None
                changed.append(running)

            deployment.status = DeploymentStatus.PAUSED
            deployment.status_message = "Deployment paused by user"
            self._store.commit(deployment, steps=changed)

        logger.info("Paused canary deployment", deployment_id=deployment_id)
        return deployment

    def resume(self, deployment_id: str) -> Deployment:
        """Resume a paused rollout at its first pending step."""
        with self._locks.hold(deployment_id):
            deployment = self._store.get_deployment(deployment_id)
            if deployment.status != DeploymentStatus.PAUSED:
                raise self._conflict(deployment, "resume")

            steps = self._store.get_steps(deployment_id)
            step = _first_pending(steps)
            if step is None:
                raise self._conflict(deployment, "resume", "no pending step left")

            step.status = StepStatus.RUNNING
            step.started_at = utcnow()
            deployment.status = DeploymentStatus.PROGRESSING
            deployment.current_canary_percent = step.target_percent
            deployment.status_message = "Deployment resumed"

            self._traffic.apply_canary_percent(deployment, step.target_percent)
            self._store.commit(deployment, steps=[step])

        logger.info("Resumed canary deployment", deployment_id=deployment_id)
        return deployment

    def cancel(self, deployment_id: str) -> Deployment:
        """Cancel a rollout and send all traffic back to stable."""
        with self._locks.hold(deployment_id):
            deployment = self._store.get_deployment(deployment_id)
            if deployment.is_terminal or deployment.status == DeploymentStatus.ROLLING_BACK:
                raise self._conflict(deployment, "cancel")

            now = utcnow()
            steps = self._store.get_steps(deployment_id)
            changed: list[Step] = []
            for step in steps:
                if step.status == StepStatus.PENDING:
                    step.status = StepStatus.SKIPPED
                    changed.append(step)
                elif step.status == StepStatus.RUNNING:
                    step.status = StepStatus.FAILED
                    step.completed_at = now
                    changed.append(step)

            # A pending rollout never shifted any traffic
            if deployment.status != DeploymentStatus.PENDING:
                self._traffic.restore_stable(deployment)

            deployment.status = DeploymentStatus.CANCELLED
            deployment.current_canary_percent = 0
            deployment.completed_at = now
            deployment.status_message = "Deployment cancelled by user"
            self._store.commit(deployment, steps=changed)

        logger.info("Cancelled canary deployment", deployment_id=deployment_id)
        return deployment

    # Reads

    def get(self, deployment_id: str) -> Deployment:
        return self._store.get_deployment(deployment_id)

    def list_deployments(
        self,
        status: DeploymentStatus | None = None,
        namespace: str | None = None,
        limit: int = 50,
    ) -> list[Deployment]:
        return self._store.list_deployments(status=status, namespace=namespace, limit=limit)

    def steps(self, deployment_id: str) -> list[Step]:
        return self._store.get_steps(deployment_id)

    def analyze(self, deployment_id: str) -> HealthAnalysis:
        """Analyze current metrics without changing anything.

        Raises:
            MetricsError: If metrics cannot be collected
        """
        deployment = self._store.get_deployment(deployment_id)
        snapshot: MetricsSnapshot = self._metrics.fetch(deployment)
        return analyze_health(deployment, snapshot)

    def delete(self, deployment_id: str) -> None:
        """Delete a pending or finished deployment with its history."""
        with self._locks.hold(deployment_id):
            deployment = self._store.get_deployment(deployment_id)
            if not (deployment.is_terminal or deployment.status == DeploymentStatus.PENDING):
                raise self._conflict(deployment, "delete")
            self._store.delete(deployment_id)

        self._locks.forget(deployment_id)
        logger.info("Deleted canary deployment", deployment_id=deployment_id)

    # Helpers

    def advise(self, deployment: Deployment, analysis: HealthAnalysis) -> str | None:
        """Best-effort advisory text for an analysis; never raises."""
        return self._advise(deployment, analysis)

    def _advise(self, deployment: Deployment, analysis: HealthAnalysis) -> str | None:
        if not self._advisory_enabled:
            return None
        try:
            return self._advisor.explain(deployment, analysis.snapshot, analysis.reasons)
        except Exception as e:
            logger.warning("Advisory generation failed", deployment_id=deployment.id, error=str(e))
            return None

    def _conflict(self, deployment: Deployment, operation: str, detail: str | None = None) -> StateConflictError:
        message = f"Cannot {operation} deployment {deployment.id} in status {deployment.status.value}"
        if detail:
            message = f"{message}: {detail}"
        return StateConflictError(message, deployment_id=deployment.id, status=deployment.status.value)
