"""Advisory text generators."""

import json
from typing import Any

from canaryctl.clients.aws import AWSClientFactory, handle_aws_error
from canaryctl.config import AdvisoryConfig
from canaryctl.core.exceptions import AdvisoryError, AWSError
from canaryctl.core.logging import get_logger
from canaryctl.deploy.models import Deployment
from canaryctl.deploy.providers.base import AdvisoryTextGenerator
from canaryctl.deploy.schema import MetricsSnapshot

logger = get_logger(__name__)


SYSTEM_PROMPT = "You are a DevOps expert analyzing canary deployments. Be concise and actionable."

RECOMMENDATION_PROMPT = """Analyze this canary deployment and provide a brief recommendation:

Deployment: {name}
Target: {target}
Current Traffic: {percent}%
Canary Image: {image}

Metrics:
- Canary Error Rate: {canary_error_rate:.2f}%
- Stable Error Rate: {stable_error_rate:.2f}%
- Canary Latency: {canary_latency:.0f}ms
- Stable Latency: {stable_latency:.0f}ms
- Healthy Pods: {healthy_pods}/{total_pods}

Issues: {issues}

Thresholds:
- Error Rate: {error_rate_threshold:g}%
- Latency: {latency_threshold:g}ms
- Min Healthy Pods: {min_healthy_pods}

Provide a brief (2-3 sentences) recommendation on whether to rollback, pause, or continue the deployment."""


def build_prompt(deployment: Deployment, snapshot: MetricsSnapshot, reasons: list[str]) -> str:
    return RECOMMENDATION_PROMPT.format(
        name=deployment.name,
        target=deployment.target_deployment,
        percent=deployment.current_canary_percent,
        image=deployment.canary_image,
        canary_error_rate=snapshot.canary_error_rate,
        stable_error_rate=snapshot.stable_error_rate,
        canary_latency=snapshot.canary_avg_latency_ms,
        stable_latency=snapshot.stable_avg_latency_ms,
        healthy_pods=snapshot.canary_healthy_pods,
        total_pods=snapshot.canary_total_pods,
        issues=", ".join(reasons),
        error_rate_threshold=deployment.error_rate_threshold,
        latency_threshold=deployment.latency_threshold_ms,
        min_healthy_pods=deployment.min_healthy_pods,
    )


class NullAdvisor(AdvisoryTextGenerator):
    """Advisor that never has anything to say."""

    @property
    def name(self) -> str:
        return "none"

    def explain(
        self,
        deployment: Deployment,
        snapshot: MetricsSnapshot,
        reasons: list[str],
    ) -> str | None:
        return None


class BedrockAdvisor(AdvisoryTextGenerator):
    """Asks an Anthropic model on Amazon Bedrock for a rollout recommendation."""

    def __init__(self, aws: AWSClientFactory, config: AdvisoryConfig):
        self._aws = aws
        self._config = config
        self._runtime: Any = None

    @property
    def name(self) -> str:
        return "bedrock"

    @property
    def runtime(self) -> Any:
        if self._runtime is None:
            self._runtime = self._aws.client(
                "bedrock-runtime",
                connect_timeout=self._config.timeout,
                read_timeout=self._config.timeout,
                max_attempts=1,
            )
        return self._runtime

    @handle_aws_error
    def _invoke(self, prompt: str) -> dict[str, Any]:
        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": prompt}],
        }

        response = self.runtime.invoke_model(
            modelId=self._config.model_id,
            body=json.dumps(body),
            contentType="application/json",
        )
        return json.loads(response["body"].read())

    def explain(
        self,
        deployment: Deployment,
        snapshot: MetricsSnapshot,
        reasons: list[str],
    ) -> str | None:
        prompt = build_prompt(deployment, snapshot, reasons)

        try:
            response_body = self._invoke(prompt)
        except AWSError as e:
            raise AdvisoryError(f"Bedrock invocation failed: {e.message}")
        except ValueError as e:
            raise AdvisoryError(f"Invalid Bedrock response: {e}")

        text = response_body.get("content", [{}])[0].get("text", "")
        logger.debug("Generated advisory", deployment_id=deployment.id, model=self._config.model_id)
        return text.strip() or None
