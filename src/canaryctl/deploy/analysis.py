"""Canary health analysis against deployment thresholds."""

from dataclasses import dataclass, field
from typing import Any

from canaryctl.deploy.models import AnalysisResult, Deployment
from canaryctl.deploy.schema import MetricsSnapshot


@dataclass(frozen=True)
class HealthAnalysis:
    """Verdict of one analysis cycle.

    ``should_advance`` means "move to the next step"; whether that step is
    the final promotion is decided by the progression controller.
    """

    is_healthy: bool
    should_rollback: bool
    should_advance: bool
    analysis_result: AnalysisResult
    snapshot: MetricsSnapshot
    reasons: list[str] = field(default_factory=list)
    failed_checks: list[str] = field(default_factory=list)

    @property
    def needs_advisory(self) -> bool:
        return self.analysis_result in (AnalysisResult.DEGRADED, AnalysisResult.UNHEALTHY)

    @property
    def primary_reason(self) -> str:
        return self.reasons[0] if self.reasons else "Health check failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_healthy": self.is_healthy,
            "should_rollback": self.should_rollback,
            "should_advance": self.should_advance,
            "analysis_result": self.analysis_result.value,
            "reasons": list(self.reasons),
            "failed_checks": list(self.failed_checks),
            "metrics": self.snapshot.model_dump(mode="json"),
        }


def analyze_health(deployment: Deployment, snapshot: MetricsSnapshot) -> HealthAnalysis:
    """Evaluate a metrics snapshot against the deployment's thresholds.

    Checks run independently and their reasons accumulate:

    1. canary error rate above ``error_rate_threshold``
    2. canary average latency above ``latency_threshold_ms``
    3. healthy canary pods below ``min_healthy_pods``

    A failed check requests rollback only when its rollback flag and
    ``auto_rollback_enabled`` are both set. With no failed check, the canary
    may advance once its success rate reaches ``success_rate_threshold``.

    Args:
        deployment: Deployment carrying thresholds and rollback policy
        snapshot: Fresh metrics for the canary

    Returns:
        HealthAnalysis verdict
    """
    reasons: list[str] = []
    failed_checks: list[str] = []
    is_healthy = True
    should_rollback = False
    should_advance = False
    auto = deployment.auto_rollback_enabled

    if snapshot.canary_error_rate > deployment.error_rate_threshold:
        is_healthy = False
        failed_checks.append("error_rate")
        reasons.append(
            f"Error rate {snapshot.canary_error_rate:.2f}% exceeds threshold "
            f"{deployment.error_rate_threshold:g}%"
        )
        if deployment.rollback_on_error_rate and auto:
            should_rollback = True

    if snapshot.canary_avg_latency_ms > deployment.latency_threshold_ms:
        is_healthy = False
        failed_checks.append("latency")
        reasons.append(
            f"Latency {snapshot.canary_avg_latency_ms:.0f}ms exceeds threshold "
            f"{deployment.latency_threshold_ms:g}ms"
        )
        if deployment.rollback_on_latency and auto:
            should_rollback = True

    if snapshot.canary_healthy_pods < deployment.min_healthy_pods:
        is_healthy = False
        failed_checks.append("pod_health")
        reasons.append(
            f"Healthy pods {snapshot.canary_healthy_pods} below minimum "
            f"{deployment.min_healthy_pods}"
        )
        if deployment.rollback_on_pod_failure and auto:
            should_rollback = True

    if is_healthy:
        success_rate = snapshot.canary_success_rate
        if success_rate >= deployment.success_rate_threshold:
            should_advance = True
            reasons.append(
                f"Success rate {success_rate:.2f}% meets threshold "
                f"{deployment.success_rate_threshold:g}%"
            )
        else:
            reasons.append(
                f"Success rate {success_rate:.2f}% below threshold "
                f"{deployment.success_rate_threshold:g}%"
            )

    if should_rollback:
        result = AnalysisResult.UNHEALTHY
    elif is_healthy and should_advance:
        result = AnalysisResult.HEALTHY
    elif not is_healthy:
        result = AnalysisResult.DEGRADED
    else:
        result = AnalysisResult.INCONCLUSIVE

    return HealthAnalysis(
        is_healthy=is_healthy,
        should_rollback=should_rollback,
        should_advance=should_advance,
        analysis_result=result,
        snapshot=snapshot,
        reasons=reasons,
        failed_checks=failed_checks,
    )
