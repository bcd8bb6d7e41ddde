"""Configuration management for canaryctl using Pydantic."""

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

from canaryctl.core.exceptions import ConfigError
from canaryctl.core.output import OutputFormat
from canaryctl.core.logging import LogLevel


class StateConfig(BaseModel):
    """Rollout state store configuration."""

    backend: Literal["file", "memory"] = "file"
    state_dir: str | None = None
    lock_timeout: float = 30.0  # seconds

    def get_state_dir(self) -> Path:
        """Get state directory from config or environment."""
        state_dir = os.environ.get("CANARYCTL_STATE_DIR") or self.state_dir
        if state_dir:
            return Path(state_dir).expanduser()
        return Path.home() / ".canaryctl" / "deployments"


class RolloutDefaults(BaseModel):
    """Defaults applied to new canary deployments."""

    namespace: str = "default"
    traffic_split_type: Literal["percentage", "header", "cookie"] = "percentage"
    initial_percent: int = Field(default=10, ge=0, le=100)
    target_percent: int = Field(default=100, ge=1, le=100)
    increment_percent: int = Field(default=10, ge=1, le=100)
    increment_interval_minutes: int = Field(default=5, ge=1)
    error_rate_threshold: float = Field(default=5.0, ge=0, le=100)
    latency_threshold_ms: float = Field(default=1000.0, ge=0)
    success_rate_threshold: float = Field(default=95.0, ge=0, le=100)
    min_healthy_pods: int = Field(default=1, ge=1)
    auto_rollback_enabled: bool = True
    rollback_on_error_rate: bool = True
    rollback_on_latency: bool = True
    rollback_on_pod_failure: bool = True
    require_manual_approval: bool = False


DEFAULT_PROMETHEUS_QUERIES = {
    "canary_requests": 'sum(increase(http_requests_total{{namespace="{namespace}",app="{target}",track="canary"}}[{window}]))',
    "canary_errors": 'sum(increase(http_requests_total{{namespace="{namespace}",app="{target}",track="canary",status=~"5.."}}[{window}]))',
    "stable_requests": 'sum(increase(http_requests_total{{namespace="{namespace}",app="{target}",track="stable"}}[{window}]))',
    "stable_errors": 'sum(increase(http_requests_total{{namespace="{namespace}",app="{target}",track="stable",status=~"5.."}}[{window}]))',
    "canary_avg_latency_ms": 'sum(rate(http_request_duration_seconds_sum{{namespace="{namespace}",app="{target}",track="canary"}}[{window}])) / sum(rate(http_request_duration_seconds_count{{namespace="{namespace}",app="{target}",track="canary"}}[{window}])) * 1000',
    "stable_avg_latency_ms": 'sum(rate(http_request_duration_seconds_sum{{namespace="{namespace}",app="{target}",track="stable"}}[{window}])) / sum(rate(http_request_duration_seconds_count{{namespace="{namespace}",app="{target}",track="stable"}}[{window}])) * 1000',
    "canary_healthy_pods": 'sum(kube_deployment_status_replicas_available{{namespace="{namespace}",deployment="{target}-canary"}})',
    "canary_total_pods": 'sum(kube_deployment_spec_replicas{{namespace="{namespace}",deployment="{target}-canary"}})',
    "stable_healthy_pods": 'sum(kube_deployment_status_replicas_available{{namespace="{namespace}",deployment="{target}"}})',
    "stable_total_pods": 'sum(kube_deployment_spec_replicas{{namespace="{namespace}",deployment="{target}"}})',
}


class PrometheusConfig(BaseModel):
    """Prometheus configuration."""

    url: str | None = None
    timeout: int = 10
    window: str = "5m"
    queries: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PROMETHEUS_QUERIES))

    def get_url(self) -> str | None:
        """Get Prometheus URL from config or environment."""
        return (
            os.environ.get("CANARYCTL_PROMETHEUS_URL")
            or os.environ.get("PROMETHEUS_URL")
            or self.url
        )


class MetricsConfig(BaseModel):
    """Canary metrics source configuration."""

    provider: Literal["simulated", "prometheus"] = "simulated"
    seed: int | None = None
    prometheus: PrometheusConfig = Field(default_factory=PrometheusConfig)


class TrafficConfig(BaseModel):
    """Traffic shifting configuration."""

    controller: Literal["none", "replicas", "istio"] = "none"
    replicas: int = Field(default=10, ge=1)
    virtual_service: str | None = None  # defaults to the target deployment name
    stable_subset: str = "stable"
    canary_subset: str = "canary"


class K8sConfig(BaseModel):
    """Kubernetes configuration."""

    kubeconfig: str | None = None
    context: str | None = None
    namespace: str = "default"
    timeout: int = 30

    def get_kubeconfig(self) -> str | None:
        """Get kubeconfig path from config or environment."""
        return (
            os.environ.get("CANARYCTL_KUBECONFIG")
            or os.environ.get("KUBECONFIG")
            or self.kubeconfig
        )

    def get_context(self) -> str | None:
        """Get k8s context from config or environment."""
        return (
            os.environ.get("CANARYCTL_K8S_CONTEXT")
            or os.environ.get("K8S_CONTEXT")
            or self.context
        )

    def get_namespace(self) -> str:
        """Get default namespace from config or environment."""
        return (
            os.environ.get("CANARYCTL_K8S_NAMESPACE")
            or os.environ.get("K8S_NAMESPACE")
            or self.namespace
        )


class AWSConfig(BaseModel):
    """AWS configuration."""

    profile: str | None = None
    region: str | None = None
    endpoint_url: str | None = None

    def get_profile(self) -> str | None:
        """Get AWS profile from config or environment."""
        return (
            os.environ.get("CANARYCTL_AWS_PROFILE")
            or os.environ.get("AWS_PROFILE")
            or self.profile
        )

    def get_region(self) -> str | None:
        """Get AWS region from config or environment."""
        return (
            os.environ.get("CANARYCTL_AWS_REGION")
            or os.environ.get("AWS_REGION")
            or os.environ.get("AWS_DEFAULT_REGION")
            or self.region
        )


class AdvisoryConfig(BaseModel):
    """Advisory explanation configuration."""

    enabled: bool = True
    provider: Literal["none", "bedrock"] = "none"
    model_id: str = "anthropic.claude-3-haiku-20240307-v1:0"
    max_tokens: int = 300
    temperature: float = 0.3
    timeout: int = 10  # seconds


class ProfileConfig(BaseModel):
    """Profile configuration grouping all engine settings."""

    state: StateConfig = Field(default_factory=StateConfig)
    defaults: RolloutDefaults = Field(default_factory=RolloutDefaults)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    traffic: TrafficConfig = Field(default_factory=TrafficConfig)
    k8s: K8sConfig = Field(default_factory=K8sConfig)
    aws: AWSConfig = Field(default_factory=AWSConfig)
    advisory: AdvisoryConfig = Field(default_factory=AdvisoryConfig)


class GlobalConfig(BaseModel):
    """Global settings."""

    output_format: OutputFormat = OutputFormat.TABLE
    color: str = "auto"  # auto, always, never
    verbosity: LogLevel = LogLevel.WARNING
    confirm_destructive: bool = True

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if v not in ("auto", "always", "never"):
            raise ValueError("color must be 'auto', 'always', or 'never'")
        return v


class CanaryCtlConfig(BaseModel):
    """Main configuration model."""

    model_config = {"populate_by_name": True}

    version: str = "1"
    global_settings: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    profiles: dict[str, ProfileConfig] = Field(default_factory=lambda: {"default": ProfileConfig()})

    def get_profile(self, name: str | None = None) -> ProfileConfig:
        """Get a profile by name, defaulting to 'default'."""
        profile_name = name or "default"
        if profile_name not in self.profiles:
            raise ConfigError(f"Profile '{profile_name}' not found")
        return self.profiles[profile_name]


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    CONFIG_FILENAMES = ["canaryctl.yaml", "canaryctl.yml", ".canaryctl.yaml", ".canaryctl.yml"]

    def load(self, config_file: str | Path | None = None) -> CanaryCtlConfig:
        """Load configuration from files.

        Priority (highest to lowest):
        1. Explicitly specified config file
        2. Project config (./canaryctl.yaml)
        3. User config (~/.canaryctl/config.yaml)

        Args:
            config_file: Optional explicit config file path

        Returns:
            Merged configuration
        """
        configs: list[dict[str, Any]] = []

        user_config_path = Path.home() / ".canaryctl" / "config.yaml"
        if user_config_path.exists():
            configs.append(self._load_yaml_file(user_config_path))

        project_config = self._find_project_config()
        if project_config:
            configs.append(self._load_yaml_file(project_config))

        if config_file:
            config_path = Path(config_file)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_file}")
            configs.append(self._load_yaml_file(config_path))

        merged = self._merge_configs(configs)

        try:
            return CanaryCtlConfig(**merged)
        except ValueError as e:
            raise ConfigError(f"Invalid configuration: {e}")

    def _find_project_config(self) -> Path | None:
        """Find project config file in current or parent directories."""
        current = Path.cwd()

        while current != current.parent:
            for filename in self.CONFIG_FILENAMES:
                config_path = current / filename
                if config_path.exists():
                    return config_path
            current = current.parent

        return None

    def _load_yaml_file(self, path: Path) -> dict[str, Any]:
        """Load a YAML config file."""
        try:
            with open(path) as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}")

        if not isinstance(content, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return content

    def _merge_configs(self, configs: list[dict[str, Any]]) -> dict[str, Any]:
        """Deep merge multiple configuration dictionaries."""
        result: dict[str, Any] = {}
        for config in configs:
            result = self._deep_merge(result, config)
        return result

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


def load_config(config_file: str | Path | None = None) -> CanaryCtlConfig:
    """Load canaryctl configuration.

    Args:
        config_file: Optional explicit config file path

    Returns:
        Loaded configuration
    """
    return ConfigLoader().load(config_file)


def get_default_config() -> CanaryCtlConfig:
    """Get default configuration without loading from files."""
    return CanaryCtlConfig()
