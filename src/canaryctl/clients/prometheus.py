"""Prometheus HTTP API client using httpx."""

from typing import Any

import httpx

from canaryctl.config import PrometheusConfig
from canaryctl.core.exceptions import MetricsError
from canaryctl.core.logging import get_logger

logger = get_logger(__name__)


class PrometheusClient:
    """Client for the Prometheus instant query API."""

    def __init__(self, config: PrometheusConfig):
        self._config = config
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            url = self._config.get_url()
            if not url:
                raise MetricsError("Prometheus URL not configured")

            self._client = httpx.Client(
                base_url=url.rstrip("/"),
                timeout=self._config.timeout,
            )

            logger.debug("Created Prometheus client", url=url)

        return self._client

    def query(self, promql: str) -> list[dict[str, Any]]:
        """Run an instant query.

        Args:
            promql: PromQL expression

        Returns:
            The ``data.result`` vector
        """
        try:
            response = self.client.get("/api/v1/query", params={"query": promql})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise MetricsError(
                f"Prometheus query failed with status {e.response.status_code}",
                details={"query": promql},
            )
        except httpx.RequestError as e:
            raise MetricsError(f"Request failed: {e}", details={"query": promql})
        except ValueError as e:
            raise MetricsError(f"Invalid Prometheus response: {e}", details={"query": promql})

        if data.get("status") != "success":
            raise MetricsError(
                f"Prometheus query failed: {data.get('error', 'unknown error')}",
                details={"query": promql},
            )

        return data.get("data", {}).get("result", [])

    def query_scalar(self, promql: str, default: float = 0.0) -> float:
        """Run an instant query and return the first sample's value.

        An empty result vector yields ``default``.
        """
        result = self.query(promql)
        if not result:
            return default

        try:
            return float(result[0]["value"][1])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise MetricsError(f"Unexpected sample format: {e}", details={"query": promql})

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "PrometheusClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
