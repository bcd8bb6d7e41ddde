"""Append-only history of analysis cycles."""

from canaryctl.core.logging import get_logger
from canaryctl.deploy.locks import DeploymentLocks
from canaryctl.deploy.models import AnalysisResult, Deployment, MetricsRecord, Step
from canaryctl.deploy.schema import MetricsSnapshot
from canaryctl.deploy.state import StateStore

logger = get_logger(__name__)


class MetricsRecorder:
    """Builds and stores metrics records.

    Records are written for audit and display; rollout decisions never
    read them back.
    """

    def __init__(self, store: StateStore, locks: DeploymentLocks):
        self._store = store
        self._locks = locks

    def build(
        self,
        deployment: Deployment,
        step: Step | None,
        snapshot: MetricsSnapshot,
        analysis_result: AnalysisResult,
        reasons: list[str],
    ) -> MetricsRecord:
        """Create a record without persisting it."""
        return MetricsRecord(
            deployment_id=deployment.id,
            step_id=step.id if step else None,
            step_number=step.step_number if step else None,
            canary_percent=deployment.current_canary_percent,
            snapshot=snapshot,
            analysis_result=analysis_result,
            analysis_notes="; ".join(reasons),
        )

    def record(
        self,
        deployment: Deployment,
        step: Step | None,
        snapshot: MetricsSnapshot,
        analysis_result: AnalysisResult,
        reasons: list[str],
    ) -> MetricsRecord:
        """Create and append a record for a deployment."""
        record = self.build(deployment, step, snapshot, analysis_result, reasons)

        with self._locks.hold(deployment.id):
            current = self._store.get_deployment(deployment.id)
            self._store.commit(current, metrics=[record])

        logger.debug(
            "Recorded metrics",
            deployment_id=deployment.id,
            result=analysis_result.value,
        )
        return record

    def history(self, deployment_id: str, limit: int = 100) -> list[MetricsRecord]:
        """Latest records for a deployment, newest first."""
        return self._store.get_metrics(deployment_id, limit=limit)
