"""Tests for configuration management."""

import os
from pathlib import Path

import pytest
import yaml

from canaryctl.config import (
    AWSConfig,
    CanaryCtlConfig,
    ConfigLoader,
    GlobalConfig,
    K8sConfig,
    MetricsConfig,
    ProfileConfig,
    PrometheusConfig,
    RolloutDefaults,
    StateConfig,
    get_default_config,
    load_config,
)
from canaryctl.core.exceptions import ConfigError
from canaryctl.core.output import OutputFormat
from canaryctl.deploy.engine import (
    RolloutEngine,
    build_metrics_provider,
    build_traffic_controller,
)
from canaryctl.deploy.providers.advisory import NullAdvisor
from canaryctl.deploy.providers.metrics import SimulatedMetricsProvider
from canaryctl.deploy.providers.traffic import NoopTrafficController
from canaryctl.deploy.state import DeploymentState, MemoryDeploymentState


class TestStateConfig:
    """Tests for StateConfig."""

    def test_default_state_dir(self):
        config = StateConfig()
        assert config.get_state_dir() == Path.home() / ".canaryctl" / "deployments"

    def test_state_dir_from_config(self, tmp_path):
        config = StateConfig(state_dir=str(tmp_path))
        assert config.get_state_dir() == tmp_path

    def test_state_dir_from_env(self, tmp_path):
        os.environ["CANARYCTL_STATE_DIR"] = str(tmp_path / "env")
        config = StateConfig(state_dir="/somewhere/else")
        assert config.get_state_dir() == tmp_path / "env"


class TestRolloutDefaults:
    """Tests for RolloutDefaults."""

    def test_default_values(self):
        defaults = RolloutDefaults()
        assert defaults.initial_percent == 10
        assert defaults.target_percent == 100
        assert defaults.increment_percent == 10
        assert defaults.error_rate_threshold == 5.0
        assert defaults.latency_threshold_ms == 1000.0
        assert defaults.success_rate_threshold == 95.0
        assert defaults.auto_rollback_enabled is True
        assert defaults.require_manual_approval is False

    def test_rejects_zero_increment(self):
        with pytest.raises(ValueError):
            RolloutDefaults(increment_percent=0)


class TestProviderConfigs:
    """Tests for provider configuration models."""

    def test_prometheus_url_from_env(self):
        os.environ["PROMETHEUS_URL"] = "http://generic:9090"
        assert PrometheusConfig(url="http://config:9090").get_url() == "http://generic:9090"

        os.environ["CANARYCTL_PROMETHEUS_URL"] = "http://specific:9090"
        assert PrometheusConfig(url="http://config:9090").get_url() == "http://specific:9090"

    def test_prometheus_default_queries(self):
        config = PrometheusConfig()
        assert "canary_requests" in config.queries
        assert "{namespace}" in config.queries["canary_errors"]

    def test_k8s_namespace(self):
        assert K8sConfig().get_namespace() == "default"
        os.environ["CANARYCTL_K8S_NAMESPACE"] = "shop"
        assert K8sConfig(namespace="other").get_namespace() == "shop"

    def test_aws_region(self):
        assert AWSConfig(region="us-west-2").get_region() == "us-west-2"
        os.environ["CANARYCTL_AWS_REGION"] = "eu-west-1"
        assert AWSConfig(region="us-west-2").get_region() == "eu-west-1"


class TestGlobalConfig:
    """Tests for GlobalConfig."""

    def test_default_values(self):
        config = GlobalConfig()
        assert config.output_format == OutputFormat.TABLE
        assert config.color == "auto"
        assert config.confirm_destructive is True

    def test_invalid_color(self):
        with pytest.raises(ValueError):
            GlobalConfig(color="invalid")


class TestCanaryCtlConfig:
    """Tests for CanaryCtlConfig."""

    def test_default_profile(self):
        config = CanaryCtlConfig()
        assert "default" in config.profiles
        profile = config.get_profile()
        assert isinstance(profile, ProfileConfig)
        assert profile.metrics.provider == "simulated"
        assert profile.traffic.controller == "none"
        assert profile.advisory.provider == "none"

    def test_get_profile_not_found(self):
        config = CanaryCtlConfig()
        with pytest.raises(ConfigError):
            config.get_profile("nonexistent")

    def test_multiple_profiles(self):
        config = CanaryCtlConfig(
            profiles={
                "default": ProfileConfig(),
                "production": ProfileConfig(
                    metrics=MetricsConfig(provider="prometheus"),
                    defaults=RolloutDefaults(increment_percent=5),
                ),
            }
        )
        prod = config.get_profile("production")
        assert prod.metrics.provider == "prometheus"
        assert prod.defaults.increment_percent == 5


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_load_from_file(self, tmp_path: Path):
        config_content = {
            "version": "1",
            "global": {"output_format": "json"},
            "profiles": {
                "default": {
                    "state": {"backend": "memory"},
                    "defaults": {"increment_percent": 25, "require_manual_approval": True},
                }
            },
        }

        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump(config_content))

        loader = ConfigLoader()
        config = loader.load(str(config_file))

        assert config.global_settings.output_format == OutputFormat.JSON
        profile = config.profiles["default"]
        assert profile.state.backend == "memory"
        assert profile.defaults.increment_percent == 25
        assert profile.defaults.require_manual_approval is True
        assert profile.defaults.initial_percent == 10

    def test_deep_merge(self):
        loader = ConfigLoader()
        merged = loader._merge_configs(
            [
                {"profiles": {"default": {"defaults": {"increment_percent": 20, "initial_percent": 5}}}},
                {"profiles": {"default": {"defaults": {"increment_percent": 50}}}},
            ]
        )
        assert merged["profiles"]["default"]["defaults"] == {"increment_percent": 50, "initial_percent": 5}

    def test_load_invalid_yaml(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("invalid: yaml: content:")

        loader = ConfigLoader()
        with pytest.raises(ConfigError):
            loader.load(str(config_file))

    def test_load_invalid_values(self, tmp_path: Path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({"profiles": {"default": {"metrics": {"provider": "datadog"}}}}))

        with pytest.raises(ConfigError, match="Invalid configuration"):
            ConfigLoader().load(str(config_file))

    def test_load_nonexistent_file(self):
        loader = ConfigLoader()
        with pytest.raises(ConfigError):
            loader.load("/nonexistent/config.yaml")


class TestConfigFunctions:
    """Tests for config module functions."""

    def test_get_default_config(self):
        config = get_default_config()
        assert isinstance(config, CanaryCtlConfig)
        assert "default" in config.profiles

    def test_load_config_with_file(self, tmp_path: Path):
        config_content = {"version": "1", "profiles": {"default": {}}}
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump(config_content))

        config = load_config(str(config_file))
        assert isinstance(config, CanaryCtlConfig)


class TestEngineFromProfile:
    """Tests for building an engine from configuration."""

    def test_memory_profile(self):
        profile = ProfileConfig(state=StateConfig(backend="memory"))
        engine = RolloutEngine.from_profile(profile)

        assert isinstance(engine.store, MemoryDeploymentState)
        assert isinstance(engine.metrics, SimulatedMetricsProvider)
        assert isinstance(engine.traffic, NoopTrafficController)
        assert isinstance(engine.advisor, NullAdvisor)
        assert engine.locks.timeout == 30.0

    def test_file_profile(self, tmp_path):
        profile = ProfileConfig(state=StateConfig(state_dir=str(tmp_path), lock_timeout=3))
        engine = RolloutEngine.from_profile(profile)

        assert isinstance(engine.store, DeploymentState)
        assert engine.store.state_dir == tmp_path
        assert engine.locks.timeout == 3

    def test_prometheus_requires_url(self):
        profile = ProfileConfig(metrics=MetricsConfig(provider="prometheus"))
        with pytest.raises(ConfigError, match="Prometheus URL"):
            build_metrics_provider(profile)

    def test_istio_controller(self):
        profile = ProfileConfig.model_validate({"traffic": {"controller": "istio"}})
        assert build_traffic_controller(profile).name == "istio"

    def test_profile_defaults_reach_new_deployments(self):
        profile = ProfileConfig(
            state=StateConfig(backend="memory"),
            defaults=RolloutDefaults(increment_percent=50),
        )
        engine = RolloutEngine.from_profile(profile)

        deployment = engine.controller.create(
            {"name": "web-v2", "target_deployment": "web", "canary_image": "web:2"}
        )
        assert [s.target_percent for s in engine.controller.steps(deployment.id)] == [10, 60, 100]
