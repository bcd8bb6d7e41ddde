"""Rollback lifecycle tracking."""

from canaryctl.core.exceptions import StateConflictError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.locks import DeploymentLocks
from canaryctl.deploy.models import (
    Deployment,
    DeploymentStatus,
    RollbackRecord,
    RollbackStatus,
    RollbackTrigger,
    Step,
    StepStatus,
    utcnow,
)
from canaryctl.deploy.state import StateStore

logger = get_logger(__name__)

ROLLBACK_FROM = frozenset(
    {
        DeploymentStatus.INITIALIZING,
        DeploymentStatus.PROGRESSING,
        DeploymentStatus.PAUSED,
        DeploymentStatus.PROMOTING,
    }
)


class RollbackController:
    """Opens and closes rollback records and moves the deployment with them.

    Only state is tracked here. Restoring stable traffic happens between
    ``initiate`` and ``complete`` (see ``RolloutOperator``).
    """

    def __init__(self, store: StateStore, locks: DeploymentLocks):
        self._store = store
        self._locks = locks

    def prepare(
        self,
        deployment: Deployment,
        steps: list[Step],
        reason: str,
        trigger: RollbackTrigger,
        initiated_by: str | None = None,
    ) -> tuple[RollbackRecord, list[Step]]:
        """Apply a rollback to loaded objects without persisting.

        ``deployment`` and ``steps`` are updated in place. The caller must
        hold the deployment's lock and commit the returned record and steps.

        Returns:
            (rollback record, steps that changed)

        Raises:
            StateConflictError: If the deployment cannot be rolled back
        """
        if deployment.status == DeploymentStatus.ROLLING_BACK or any(
            r.is_open for r in self._store.get_rollbacks(deployment.id)
        ):
            raise StateConflictError(
                "A rollback is already in progress",
                deployment_id=deployment.id,
                status=deployment.status.value,
            )
        if deployment.status not in ROLLBACK_FROM:
            raise StateConflictError(
                f"Cannot roll back a deployment that is {deployment.status.value}",
                deployment_id=deployment.id,
                status=deployment.status.value,
            )

        running = next((s for s in steps if s.status == StepStatus.RUNNING), None)
        if running is None and deployment.status == DeploymentStatus.PAUSED:
            # Pause parks the in-flight step as the first pending one
            running = next((s for s in steps if s.status == StepStatus.PENDING), None)

        record = RollbackRecord(
            deployment_id=deployment.id,
            trigger=trigger,
            reason=reason,
            canary_percent_at_rollback=deployment.current_canary_percent,
            step_at_rollback=running.step_number if running else None,
            rollback_to_version=deployment.stable_version,
            rollback_to_image=deployment.stable_image,
            status=RollbackStatus.IN_PROGRESS,
            initiated_by=initiated_by or "system",
        )

        changed: list[Step] = []
        if running:
            running.status = StepStatus.FAILED
            running.completed_at = utcnow()
            changed.append(running)

        deployment.status = DeploymentStatus.ROLLING_BACK
        deployment.status_message = f"Rolling back: {reason}"

        return record, changed

    def initiate(
        self,
        deployment_id: str,
        reason: str,
        trigger: RollbackTrigger = RollbackTrigger.MANUAL,
        initiated_by: str | None = None,
    ) -> RollbackRecord:
        """Open a rollback for a deployment.

        Args:
            deployment_id: Deployment to roll back
            reason: Human-readable cause
            trigger: What caused the rollback
            initiated_by: Actor, defaults to "system"

        Returns:
            The in-progress rollback record
        """
        with self._locks.hold(deployment_id):
            deployment = self._store.get_deployment(deployment_id)
            steps = self._store.get_steps(deployment_id)

            record, changed = self.prepare(deployment, steps, reason, trigger, initiated_by)
            self._store.commit(deployment, steps=changed, rollbacks=[record])

        logger.warning(
            "Rollback initiated",
            deployment_id=deployment_id,
            rollback_id=record.id,
            trigger=trigger.value,
            reason=reason,
        )
        return record

    def complete(
        self,
        rollback_id: str,
        success: bool,
        error_message: str | None = None,
    ) -> RollbackRecord:
        """Close an in-progress rollback.

        Args:
            rollback_id: Rollback record id
            success: Whether stable traffic was restored
            error_message: Failure detail when ``success`` is False

        Returns:
            The closed rollback record
        """
        deployment_id = self._store.get_rollback(rollback_id).deployment_id

        with self._locks.hold(deployment_id):
            record = self._store.get_rollback(rollback_id)
            if record.status != RollbackStatus.IN_PROGRESS:
                raise StateConflictError(
                    f"Rollback {rollback_id} is {record.status.value}, not in_progress",
                    deployment_id=deployment_id,
                    details={"rollback_status": record.status.value},
                )

            deployment = self._store.get_deployment(deployment_id)
            now = utcnow()

            record.completed_at = now
            record.error_message = error_message
            deployment.current_canary_percent = 0
            deployment.completed_at = now

            if success:
                record.status = RollbackStatus.COMPLETED
                deployment.status = DeploymentStatus.ROLLED_BACK
                deployment.status_message = "Successfully rolled back to stable version"
            else:
                record.status = RollbackStatus.FAILED
                deployment.status = DeploymentStatus.FAILED
                deployment.error_message = error_message
                deployment.status_message = f"Rollback failed: {error_message}"

            self._store.commit(deployment, rollbacks=[record])

        logger.info(
            "Rollback completed",
            deployment_id=deployment_id,
            rollback_id=rollback_id,
            success=success,
        )
        return record

    def history(self, deployment_id: str) -> list[RollbackRecord]:
        """Rollback records of a deployment, newest first."""
        return self._store.get_rollbacks(deployment_id)

    def get(self, rollback_id: str) -> RollbackRecord:
        return self._store.get_rollback(rollback_id)
