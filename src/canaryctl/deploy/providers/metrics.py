"""Metrics providers."""

import random
import threading
from typing import Iterable

from pydantic import ValidationError as PydanticValidationError

from canaryctl.clients.prometheus import PrometheusClient
from canaryctl.config import PrometheusConfig
from canaryctl.core.exceptions import MetricsError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.models import Deployment
from canaryctl.deploy.providers.base import MetricsProvider
from canaryctl.deploy.schema import MetricsSnapshot

logger = get_logger(__name__)


class SimulatedMetricsProvider(MetricsProvider):
    """Random but plausible metrics for demos and dry runs.

    Canary error rate falls in 0-3%, stable in 0-1%. Canary latency falls
    in 100-300ms, stable in 100-200ms. Between one and three of three canary
    pods are healthy.
    """

    def __init__(self, seed: int | None = None, total_pods: int = 3):
        self._random = random.Random(seed)
        self._total_pods = total_pods
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "simulated"

    def fetch(self, deployment: Deployment) -> MetricsSnapshot:
        with self._lock:
            rnd = self._random
            canary_requests = rnd.randint(100, 1000)
            stable_requests = rnd.randint(1000, 9000)
            canary_errors = int(canary_requests * rnd.uniform(0, 3) / 100)
            stable_errors = int(stable_requests * rnd.uniform(0, 1) / 100)
            canary_latency = 100 + rnd.random() * 200
            stable_latency = 100 + rnd.random() * 100
            canary_healthy = rnd.randint(1, self._total_pods)

        return MetricsSnapshot.from_counts(
            canary_requests=canary_requests,
            canary_errors=canary_errors,
            stable_requests=stable_requests,
            stable_errors=stable_errors,
            canary_avg_latency_ms=canary_latency,
            stable_avg_latency_ms=stable_latency,
            canary_healthy_pods=canary_healthy,
            canary_total_pods=self._total_pods,
            stable_healthy_pods=self._total_pods,
            stable_total_pods=self._total_pods,
        )


class StaticMetricsProvider(MetricsProvider):
    """Replays a fixed sequence of snapshots, repeating the last one."""

    def __init__(self, snapshots: Iterable[MetricsSnapshot]):
        self._snapshots = list(snapshots)
        if not self._snapshots:
            raise ValueError("StaticMetricsProvider needs at least one snapshot")
        self._index = 0
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "static"

    def fetch(self, deployment: Deployment) -> MetricsSnapshot:
        with self._lock:
            snapshot = self._snapshots[min(self._index, len(self._snapshots) - 1)]
            self._index += 1
        return snapshot


class PrometheusMetricsProvider(MetricsProvider):
    """Reads canary and stable metrics with PromQL instant queries.

    Query templates are formatted with ``namespace``, ``target``, ``name``,
    ``canary_version``, ``stable_version`` and ``window``.
    """

    REQUIRED_QUERIES = (
        "canary_requests",
        "canary_errors",
        "canary_avg_latency_ms",
        "canary_healthy_pods",
        "canary_total_pods",
    )

    def __init__(self, config: PrometheusConfig, client: PrometheusClient | None = None):
        missing = [q for q in self.REQUIRED_QUERIES if q not in config.queries]
        if missing:
            raise MetricsError(f"Missing Prometheus queries: {', '.join(missing)}")
        self._config = config
        self._client = client or PrometheusClient(config)

    @property
    def name(self) -> str:
        return "prometheus"

    def _query(self, key: str, deployment: Deployment) -> float:
        template = self._config.queries.get(key)
        if not template:
            return 0.0

        try:
            promql = template.format(
                namespace=deployment.namespace,
                target=deployment.target_deployment,
                name=deployment.name,
                canary_version=deployment.canary_version or "",
                stable_version=deployment.stable_version or "",
                window=self._config.window,
            )
        except (KeyError, IndexError) as e:
            raise MetricsError(f"Invalid query template '{key}': {e}")

        return self._client.query_scalar(promql)

    def fetch(self, deployment: Deployment) -> MetricsSnapshot:
        values = {key: self._query(key, deployment) for key in self._config.queries}
        logger.debug("Fetched Prometheus metrics", deployment_id=deployment.id, **values)

        try:
            return MetricsSnapshot.from_counts(
                canary_requests=int(values.get("canary_requests", 0)),
                canary_errors=int(values.get("canary_errors", 0)),
                stable_requests=int(values.get("stable_requests", 0)),
                stable_errors=int(values.get("stable_errors", 0)),
                canary_avg_latency_ms=values.get("canary_avg_latency_ms", 0.0),
                stable_avg_latency_ms=values.get("stable_avg_latency_ms", 0.0),
                canary_healthy_pods=int(values.get("canary_healthy_pods", 0)),
                canary_total_pods=int(values.get("canary_total_pods", 0)),
                stable_healthy_pods=int(values.get("stable_healthy_pods", 0)),
                stable_total_pods=int(values.get("stable_total_pods", 0)),
            )
        except PydanticValidationError as e:
            raise MetricsError(
                f"Prometheus returned an inconsistent snapshot: {e.error_count()} errors",
                details={"errors": [err["msg"] for err in e.errors()]},
            )
