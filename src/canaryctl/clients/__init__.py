"""API clients for external services."""

from canaryctl.clients.aws import AWSClientFactory
from canaryctl.clients.k8s import K8sClient
from canaryctl.clients.prometheus import PrometheusClient

__all__ = ["AWSClientFactory", "K8sClient", "PrometheusClient"]
