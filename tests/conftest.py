"""Pytest fixtures for canaryctl tests."""

import os
from typing import Any, Callable, Generator

import pytest
from click.testing import CliRunner

from canaryctl.core.exceptions import MetricsError, StoreError, TrafficError
from canaryctl.deploy.engine import RolloutEngine
from canaryctl.deploy.models import Deployment
from canaryctl.deploy.providers.base import (
    AdvisoryTextGenerator,
    MetricsProvider,
    TrafficController,
)
from canaryctl.deploy.providers.metrics import StaticMetricsProvider
from canaryctl.deploy.schema import MetricsSnapshot
from canaryctl.deploy.state import MemoryDeploymentState


# 0.5% errors, 150ms, 3/3 pods
HEALTHY = MetricsSnapshot.from_counts(
    canary_requests=1000,
    canary_errors=5,
    stable_requests=9000,
    stable_errors=9,
    canary_avg_latency_ms=150.0,
    stable_avg_latency_ms=140.0,
    canary_healthy_pods=3,
    canary_total_pods=3,
    stable_healthy_pods=3,
    stable_total_pods=3,
)

# 10% errors, trips the default 5% threshold
UNHEALTHY = MetricsSnapshot.from_counts(
    canary_requests=1000,
    canary_errors=100,
    stable_requests=9000,
    stable_errors=9,
    canary_avg_latency_ms=180.0,
    stable_avg_latency_ms=140.0,
    canary_healthy_pods=3,
    canary_total_pods=3,
    stable_healthy_pods=3,
    stable_total_pods=3,
)

# 2% errors: within the error threshold but short of a 99% success rate
MARGINAL = MetricsSnapshot.from_counts(
    canary_requests=1000,
    canary_errors=20,
    canary_avg_latency_ms=200.0,
    canary_healthy_pods=3,
    canary_total_pods=3,
)


class RecordingTrafficController(TrafficController):
    """Traffic controller that records calls and can be told to fail."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int]] = []
        self.fail_apply = False
        self.fail_promote = False
        self.fail_restore = False

    @property
    def name(self) -> str:
        return "recording"

    def apply_canary_percent(self, deployment: Deployment, percent: int) -> None:
        if self.fail_apply:
            raise TrafficError("mesh unavailable", percent=percent)
        self.calls.append(("apply", deployment.id, percent))

    def promote(self, deployment: Deployment) -> None:
        if self.fail_promote:
            raise TrafficError("mesh unavailable", percent=100)
        self.calls.append(("promote", deployment.id, 100))

    def restore_stable(self, deployment: Deployment) -> None:
        if self.fail_restore:
            raise TrafficError("mesh unavailable", percent=0)
        self.calls.append(("restore", deployment.id, 0))

    def calls_for(self, deployment_id: str) -> list[tuple[str, int]]:
        return [(kind, pct) for kind, dep_id, pct in self.calls if dep_id == deployment_id]


class FailingMetricsProvider(MetricsProvider):
    """Metrics provider whose backend is down."""

    @property
    def name(self) -> str:
        return "failing"

    def fetch(self, deployment: Deployment) -> MetricsSnapshot:
        raise MetricsError("prometheus unreachable")


class FailingCommitStore(MemoryDeploymentState):
    """In-memory store whose commits fail once ``fail_commit`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_commit = False

    def commit(self, deployment, steps=(), metrics=(), rollbacks=()) -> None:
        if self.fail_commit:
            raise StoreError("disk full", deployment_id=deployment.id)
        super().commit(deployment, steps=steps, metrics=metrics, rollbacks=rollbacks)


class StubAdvisor(AdvisoryTextGenerator):
    """Advisor returning canned text, or raising when ``error`` is set."""

    def __init__(self, text: str = "Roll back now.", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls = 0

    @property
    def name(self) -> str:
        return "stub"

    def explain(
        self,
        deployment: Deployment,
        snapshot: MetricsSnapshot,
        reasons: list[str],
    ) -> str | None:
        self.calls += 1
        if self.error:
            raise self.error
        return self.text


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def store() -> MemoryDeploymentState:
    """In-memory state store."""
    return MemoryDeploymentState()


@pytest.fixture
def traffic() -> RecordingTrafficController:
    """Traffic controller recording every call."""
    return RecordingTrafficController()


@pytest.fixture
def make_engine(
    store: MemoryDeploymentState,
    traffic: RecordingTrafficController,
) -> Callable[..., RolloutEngine]:
    """Factory building engines over the shared store and traffic controller."""

    def _make(
        snapshots: list[MetricsSnapshot] | None = None,
        metrics: MetricsProvider | None = None,
        advisor: AdvisoryTextGenerator | None = None,
        lock_timeout: float = 5.0,
        **kwargs: Any,
    ) -> RolloutEngine:
        provider = metrics or StaticMetricsProvider(snapshots or [HEALTHY])
        return RolloutEngine(
            store=store,
            metrics=provider,
            traffic=traffic,
            advisor=advisor,
            lock_timeout=lock_timeout,
            **kwargs,
        )

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., RolloutEngine]) -> RolloutEngine:
    """Engine whose canary is always healthy."""
    return make_engine()


@pytest.fixture
def request_data() -> dict[str, Any]:
    """Minimal deployment request."""
    return {
        "name": "web-v2",
        "target_deployment": "web",
        "canary_image": "registry.example.com/web:2.0.0",
        "stable_image": "registry.example.com/web:1.9.3",
        "stable_version": "1.9.3",
        "canary_version": "2.0.0",
    }


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before each test."""
    env_vars = [
        "CANARYCTL_PROFILE",
        "CANARYCTL_CONFIG",
        "CANARYCTL_STATE_DIR",
        "CANARYCTL_PROMETHEUS_URL",
        "CANARYCTL_AWS_PROFILE",
        "CANARYCTL_AWS_REGION",
        "CANARYCTL_KUBECONFIG",
        "CANARYCTL_K8S_CONTEXT",
        "CANARYCTL_K8S_NAMESPACE",
        "PROMETHEUS_URL",
        "AWS_PROFILE",
        "AWS_REGION",
        "AWS_DEFAULT_REGION",
        "KUBECONFIG",
        "K8S_CONTEXT",
        "K8S_NAMESPACE",
    ]

    original = {k: os.environ.get(k) for k in env_vars}

    # Remove vars for clean test
    for k in env_vars:
        os.environ.pop(k, None)

    yield

    # Restore original values
    for k, v in original.items():
        if v is not None:
            os.environ[k] = v
        else:
            os.environ.pop(k, None)


@pytest.fixture
def temp_config_file(tmp_path):
    """Create a temporary config file with a file-backed store."""
    state_dir = tmp_path / "state"
    config_content = f"""
version: "1"
global:
  output_format: table
  confirm_destructive: false
profiles:
  default:
    state:
      backend: file
      state_dir: {state_dir}
    metrics:
      provider: simulated
      seed: 7
    traffic:
      controller: none
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(config_content)
    return str(config_file)
