"""Scheduler that drives a deployment to completion."""

import time
from typing import Callable

from canaryctl.core.exceptions import TrafficError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.controller import ProgressOutcome, ProgressResult
from canaryctl.deploy.engine import RolloutEngine
from canaryctl.deploy.models import (
    Deployment,
    DeploymentStatus,
    RollbackRecord,
    RollbackTrigger,
)

logger = get_logger(__name__)

# Outcomes after which another tick cannot change anything on its own
STOP_OUTCOMES = frozenset(
    {
        ProgressOutcome.PROMOTED,
        ProgressOutcome.AWAITING_APPROVAL,
        ProgressOutcome.ROLLBACK_INITIATED,
        ProgressOutcome.NOOP,
    }
)


class RolloutOperator:
    """Ticks the progression controller and carries rollbacks through.

    The controllers only track state. The operator restores stable traffic
    between opening and closing a rollback.
    """

    def __init__(
        self,
        engine: RolloutEngine,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._engine = engine
        self._sleep = sleep

    def tick(self, deployment_id: str) -> ProgressResult:
        """Run one progress cycle, finishing any rollback it opens."""
        deployment = self._engine.controller.get(deployment_id)

        # A rollback left open by an interrupted tick is finished first
        if deployment.status == DeploymentStatus.ROLLING_BACK:
            open_record = next(
                (r for r in self._engine.rollbacks.history(deployment_id) if r.is_open),
                None,
            )
            if open_record is not None:
                logger.warning("Finishing interrupted rollback", deployment_id=deployment_id)
                record = self._finish_rollback(deployment, open_record)
                return ProgressResult(
                    ProgressOutcome.ROLLBACK_INITIATED,
                    self._engine.controller.get(deployment_id),
                    message="Finished interrupted rollback",
                    rollback=record,
                )

        result = self._engine.controller.progress(deployment_id)

        if result.outcome == ProgressOutcome.ROLLBACK_INITIATED and result.rollback:
            result.rollback = self._finish_rollback(result.deployment, result.rollback)
            result.deployment = self._engine.controller.get(deployment_id)

        return result

    def rollback(
        self,
        deployment_id: str,
        reason: str,
        initiated_by: str | None = None,
    ) -> RollbackRecord:
        """Roll a deployment back by hand, end to end."""
        record = self._engine.rollbacks.initiate(
            deployment_id,
            reason,
            trigger=RollbackTrigger.MANUAL,
            initiated_by=initiated_by,
        )
        deployment = self._engine.controller.get(deployment_id)
        return self._finish_rollback(deployment, record)

    def run(
        self,
        deployment_id: str,
        interval: float | None = None,
        max_cycles: int | None = None,
        on_tick: Callable[[ProgressResult], None] | None = None,
    ) -> list[ProgressResult]:
        """Tick until the rollout finishes, waits for approval or pauses.

        Args:
            deployment_id: Deployment to drive
            interval: Seconds between ticks, defaults to the deployment's
                increment interval
            max_cycles: Stop after this many ticks
            on_tick: Called with each result

        Returns:
            Results of every tick
        """
        results: list[ProgressResult] = []

        while max_cycles is None or len(results) < max_cycles:
            result = self.tick(deployment_id)
            results.append(result)
            if on_tick:
                on_tick(result)

            if result.outcome in STOP_OUTCOMES or result.deployment.is_terminal:
                break
            if max_cycles is not None and len(results) >= max_cycles:
                break

            wait = interval if interval is not None else result.deployment.increment_interval_minutes * 60
            logger.debug("Waiting for next tick", deployment_id=deployment_id, seconds=wait)
            self._sleep(wait)

        return results

    def _finish_rollback(self, deployment: Deployment, record: RollbackRecord) -> RollbackRecord:
        try:
            self._engine.traffic.restore_stable(deployment)
        except TrafficError as e:
            logger.error(
                "Failed to restore stable traffic",
                deployment_id=deployment.id,
                rollback_id=record.id,
                error=e.message,
            )
            return self._engine.rollbacks.complete(record.id, success=False, error_message=e.message)

        return self._engine.rollbacks.complete(record.id, success=True)
