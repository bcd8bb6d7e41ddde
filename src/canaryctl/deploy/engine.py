"""Wiring of stores, providers and controllers into one engine."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from canaryctl.config import ProfileConfig, RolloutDefaults, StateConfig
from canaryctl.core.exceptions import ConfigError, ValidationError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.controller import ProgressionController
from canaryctl.deploy.locks import DeploymentLocks
from canaryctl.deploy.models import CanaryTemplate, TrafficSplitType
from canaryctl.deploy.providers.advisory import BedrockAdvisor, NullAdvisor
from canaryctl.deploy.providers.base import (
    AdvisoryTextGenerator,
    MetricsProvider,
    TrafficController,
)
from canaryctl.deploy.providers.metrics import (
    PrometheusMetricsProvider,
    SimulatedMetricsProvider,
)
from canaryctl.deploy.providers.traffic import (
    IstioTrafficController,
    NoopTrafficController,
    ReplicaTrafficController,
)
from canaryctl.deploy.recorder import MetricsRecorder
from canaryctl.deploy.rollback import RollbackController
from canaryctl.deploy.schema import TemplateRequest
from canaryctl.deploy.state import DeploymentState, MemoryDeploymentState, StateStore

logger = get_logger(__name__)


class RolloutEngine:
    """One self-contained rollout engine.

    Stores, locks and providers belong to the engine instance; two engines
    share nothing unless they are handed the same store.
    """

    def __init__(
        self,
        store: StateStore,
        metrics: MetricsProvider,
        traffic: TrafficController,
        advisor: AdvisoryTextGenerator | None = None,
        defaults: RolloutDefaults | None = None,
        lock_timeout: float = 30.0,
        advisory_enabled: bool = True,
    ):
        self.store = store
        self.metrics = metrics
        self.traffic = traffic
        self.advisor = advisor or NullAdvisor()
        self.locks = DeploymentLocks(timeout=lock_timeout, lock_path=store.lock_path)
        self.recorder = MetricsRecorder(store, self.locks)
        self.rollbacks = RollbackController(store, self.locks)
        self.controller = ProgressionController(
            store=store,
            locks=self.locks,
            metrics=metrics,
            traffic=traffic,
            advisor=self.advisor,
            rollbacks=self.rollbacks,
            recorder=self.recorder,
            defaults=defaults,
            advisory_enabled=advisory_enabled,
        )

    @classmethod
    def from_profile(cls, profile: ProfileConfig) -> "RolloutEngine":
        """Build an engine from a configuration profile."""
        engine = cls(
            store=build_store(profile.state),
            metrics=build_metrics_provider(profile),
            traffic=build_traffic_controller(profile),
            advisor=build_advisor(profile),
            defaults=profile.defaults,
            lock_timeout=profile.state.lock_timeout,
            advisory_enabled=profile.advisory.enabled,
        )
        logger.debug(
            "Built rollout engine",
            store=profile.state.backend,
            metrics=engine.metrics.name,
            traffic=engine.traffic.name,
            advisor=engine.advisor.name,
        )
        return engine

    # Templates

    def create_template(self, request: TemplateRequest | dict[str, Any]) -> CanaryTemplate:
        """Store a reusable set of rollout defaults."""
        if not isinstance(request, TemplateRequest):
            try:
                request = TemplateRequest.model_validate(request)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid template: {e.error_count()} errors",
                    details={"errors": [err["msg"] for err in e.errors()]},
                )

        values = request.model_dump()
        values["traffic_split_type"] = TrafficSplitType(values["traffic_split_type"])
        template = CanaryTemplate(**values)
        self.store.save_template(template)
        logger.info("Created template", template_id=template.id, name=template.name)
        return template

    def list_templates(self) -> list[CanaryTemplate]:
        return self.store.list_templates()

    def get_template(self, template_id: str) -> CanaryTemplate:
        return self.store.get_template(template_id)

    def delete_template(self, template_id: str) -> None:
        self.store.delete_template(template_id)
        logger.info("Deleted template", template_id=template_id)


def build_store(config: StateConfig) -> StateStore:
    if config.backend == "memory":
        return MemoryDeploymentState()
    return DeploymentState(config.get_state_dir())


def build_metrics_provider(profile: ProfileConfig) -> MetricsProvider:
    metrics = profile.metrics
    if metrics.provider == "prometheus":
        if not metrics.prometheus.get_url():
            raise ConfigError("metrics.provider is 'prometheus' but no Prometheus URL is configured")
        return PrometheusMetricsProvider(metrics.prometheus)
    return SimulatedMetricsProvider(seed=metrics.seed)


def build_traffic_controller(profile: ProfileConfig) -> TrafficController:
    traffic = profile.traffic
    if traffic.controller == "none":
        return NoopTrafficController()

    from canaryctl.clients.k8s import K8sClient

    k8s = K8sClient(profile.k8s)
    if traffic.controller == "istio":
        return IstioTrafficController(k8s, traffic)
    return ReplicaTrafficController(k8s, traffic)


def build_advisor(profile: ProfileConfig) -> AdvisoryTextGenerator:
    advisory = profile.advisory
    if not advisory.enabled or advisory.provider == "none":
        return NullAdvisor()

    from canaryctl.clients.aws import AWSClientFactory

    return BedrockAdvisor(AWSClientFactory(profile.aws), advisory)
