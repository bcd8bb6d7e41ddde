"""Traffic controllers."""

from typing import Any

from canaryctl.clients.k8s import K8sClient
from canaryctl.config import TrafficConfig
from canaryctl.core.exceptions import K8sError, TrafficError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.models import Deployment
from canaryctl.deploy.providers.base import TrafficController

logger = get_logger(__name__)


class NoopTrafficController(TrafficController):
    """Records the requested split without touching any cluster."""

    def __init__(self) -> None:
        self.splits: dict[str, int] = {}

    @property
    def name(self) -> str:
        return "none"

    def apply_canary_percent(self, deployment: Deployment, percent: int) -> None:
        self.splits[deployment.id] = percent
        logger.info("Traffic split", deployment_id=deployment.id, canary_percent=percent)

    def promote(self, deployment: Deployment) -> None:
        self.splits[deployment.id] = 100
        logger.info("Traffic promoted to canary", deployment_id=deployment.id)

    def restore_stable(self, deployment: Deployment) -> None:
        self.splits[deployment.id] = 0
        logger.info("Traffic restored to stable", deployment_id=deployment.id)


def canary_name(deployment: Deployment) -> str:
    return f"{deployment.target_deployment}-canary"


def split_replicas(total: int, canary_percent: int) -> tuple[int, int]:
    """Approximate a traffic split with replica counts.

    Returns:
        (stable_replicas, canary_replicas)
    """
    if canary_percent <= 0:
        return total, 0
    if canary_percent >= 100:
        return 0, total

    canary = max(1, int(total * canary_percent / 100))
    stable = max(1, total - canary)
    return stable, canary


class ReplicaTrafficController(TrafficController):
    """Approximates a split by scaling the stable and ``-canary`` deployments."""

    def __init__(self, k8s: K8sClient, config: TrafficConfig):
        self._k8s = k8s
        self._config = config

    @property
    def name(self) -> str:
        return "replicas"

    def _scale(self, deployment: Deployment, percent: int) -> None:
        stable, canary = split_replicas(self._config.replicas, percent)
        try:
            self._k8s.scale_deployment(canary_name(deployment), canary, deployment.namespace)
            self._k8s.scale_deployment(deployment.target_deployment, stable, deployment.namespace)
        except K8sError as e:
            raise TrafficError(
                f"Failed to scale for {percent}% canary: {e.message}",
                percent=percent,
                details={"status_code": e.status_code},
            )

    def apply_canary_percent(self, deployment: Deployment, percent: int) -> None:
        self._scale(deployment, percent)
        logger.info("Scaled canary split", deployment_id=deployment.id, canary_percent=percent)

    def promote(self, deployment: Deployment) -> None:
        # Stable takes the canary image, then serves everything again
        try:
            self._k8s.update_deployment_image(
                deployment.target_deployment,
                deployment.canary_image,
                namespace=deployment.namespace,
            )
            self._k8s.scale_deployment(
                deployment.target_deployment, self._config.replicas, deployment.namespace
            )
            self._k8s.scale_deployment(canary_name(deployment), 0, deployment.namespace)
        except K8sError as e:
            raise TrafficError(f"Failed to promote canary: {e.message}", percent=100)
        logger.info("Promoted canary image to stable", deployment_id=deployment.id)

    def restore_stable(self, deployment: Deployment) -> None:
        self._scale(deployment, 0)
        logger.info("Restored stable replicas", deployment_id=deployment.id)


class IstioTrafficController(TrafficController):
    """Shifts weights between ``stable`` and ``canary`` subsets of a VirtualService."""

    def __init__(self, k8s: K8sClient, config: TrafficConfig):
        self._k8s = k8s
        self._config = config

    @property
    def name(self) -> str:
        return "istio"

    def _routes(self, deployment: Deployment, canary_weight: int) -> list[dict[str, Any]]:
        host = deployment.target_deployment
        return [
            {
                "route": [
                    {
                        "destination": {"host": host, "subset": self._config.stable_subset},
                        "weight": 100 - canary_weight,
                    },
                    {
                        "destination": {"host": host, "subset": self._config.canary_subset},
                        "weight": canary_weight,
                    },
                ]
            }
        ]

    def _set_weight(self, deployment: Deployment, canary_weight: int) -> None:
        name = self._config.virtual_service or deployment.target_deployment
        try:
            self._k8s.patch_virtual_service(
                name,
                self._routes(deployment, canary_weight),
                namespace=deployment.namespace,
            )
        except K8sError as e:
            raise TrafficError(
                f"Failed to set VirtualService {name} to {canary_weight}%: {e.message}",
                percent=canary_weight,
                details={"status_code": e.status_code},
            )
        logger.info(
            "Applied VirtualService weights",
            deployment_id=deployment.id,
            virtual_service=name,
            canary_percent=canary_weight,
        )

    def apply_canary_percent(self, deployment: Deployment, percent: int) -> None:
        self._set_weight(deployment, percent)

    def promote(self, deployment: Deployment) -> None:
        self._set_weight(deployment, 100)

    def restore_stable(self, deployment: Deployment) -> None:
        self._set_weight(deployment, 0)
