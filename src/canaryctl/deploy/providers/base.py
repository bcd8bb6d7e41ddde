"""Collaborator interfaces the rollout engine drives."""

from abc import ABC, abstractmethod

from canaryctl.deploy.models import Deployment
from canaryctl.deploy.schema import MetricsSnapshot


class MetricsProvider(ABC):
    """Source of canary/stable health metrics."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        pass

    @abstractmethod
    def fetch(self, deployment: Deployment) -> MetricsSnapshot:
        """Collect a fresh snapshot for a deployment.

        Raises:
            MetricsError: If metrics cannot be collected
        """
        pass


class TrafficController(ABC):
    """Shifts live traffic between the stable and canary versions.

    Each call is idempotent: applying the same percent twice leaves the
    cluster in the same state.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Controller name."""
        pass

    @abstractmethod
    def apply_canary_percent(self, deployment: Deployment, percent: int) -> None:
        """Route ``percent`` of traffic to the canary.

        Raises:
            TrafficError: If the split cannot be enforced
        """
        pass

    @abstractmethod
    def promote(self, deployment: Deployment) -> None:
        """Make the canary version the one serving all traffic."""
        pass

    @abstractmethod
    def restore_stable(self, deployment: Deployment) -> None:
        """Route all traffic back to the stable version."""
        pass


class AdvisoryTextGenerator(ABC):
    """Produces a short human-readable recommendation for an unhealthy canary.

    Output is informational only and never influences rollout decisions.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Generator name."""
        pass

    @abstractmethod
    def explain(
        self,
        deployment: Deployment,
        snapshot: MetricsSnapshot,
        reasons: list[str],
    ) -> str | None:
        """Return advisory text, or None when there is nothing to say.

        Raises:
            AdvisoryError: If the text cannot be generated
        """
        pass
