"""Metrics, traffic and advisory collaborators."""

from canaryctl.deploy.providers.base import (
    AdvisoryTextGenerator,
    MetricsProvider,
    TrafficController,
)
from canaryctl.deploy.providers.metrics import (
    PrometheusMetricsProvider,
    SimulatedMetricsProvider,
    StaticMetricsProvider,
)
from canaryctl.deploy.providers.traffic import (
    IstioTrafficController,
    NoopTrafficController,
    ReplicaTrafficController,
)
from canaryctl.deploy.providers.advisory import BedrockAdvisor, NullAdvisor

__all__ = [
    "AdvisoryTextGenerator",
    "BedrockAdvisor",
    "IstioTrafficController",
    "MetricsProvider",
    "NoopTrafficController",
    "NullAdvisor",
    "PrometheusMetricsProvider",
    "ReplicaTrafficController",
    "SimulatedMetricsProvider",
    "StaticMetricsProvider",
    "TrafficController",
]
