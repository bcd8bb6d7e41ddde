"""AWS client factory using boto3."""

from functools import wraps
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from canaryctl.config import AWSConfig
from canaryctl.core.exceptions import AWSError, AuthenticationError
from canaryctl.core.logging import get_logger

logger = get_logger(__name__)


class AWSClientFactory:
    """Factory for creating boto3 clients with consistent configuration."""

    def __init__(self, config: AWSConfig):
        self._config = config
        self._session: boto3.Session | None = None

    @property
    def session(self) -> boto3.Session:
        """Get or create boto3 session."""
        if self._session is None:
            profile = self._config.get_profile()
            region = self._config.get_region()

            session_kwargs: dict[str, Any] = {}
            if profile:
                session_kwargs["profile_name"] = profile
            if region:
                session_kwargs["region_name"] = region

            try:
                self._session = boto3.Session(**session_kwargs)
                logger.debug(
                    "Created AWS session",
                    profile=profile,
                    region=region,
                )
            except BotoCoreError as e:
                raise AuthenticationError(f"Failed to create AWS session: {e}")

        return self._session

    @property
    def region(self) -> str:
        """Get the configured region."""
        return self.session.region_name or "us-east-1"

    def client(
        self,
        service_name: str,
        connect_timeout: int = 10,
        read_timeout: int = 30,
        max_attempts: int = 3,
        **kwargs: Any,
    ) -> Any:
        """Create a boto3 client for a service.

        Args:
            service_name: AWS service name (e.g., 'bedrock-runtime')
            connect_timeout: Seconds to wait for a connection
            read_timeout: Seconds to wait for a response
            max_attempts: Total attempts including retries
            **kwargs: Additional client configuration

        Returns:
            boto3 client instance
        """
        config = BotoConfig(
            retries={"max_attempts": max_attempts, "mode": "adaptive"},
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
        )

        client_kwargs: dict[str, Any] = {"config": config, **kwargs}

        if self._config.endpoint_url:
            client_kwargs["endpoint_url"] = self._config.endpoint_url

        try:
            return self.session.client(service_name, **client_kwargs)
        except BotoCoreError as e:
            raise AWSError(
                f"Failed to create {service_name} client: {e}",
                service=service_name,
            )

    @property
    def bedrock_runtime(self) -> Any:
        """Get Bedrock Runtime client."""
        return self.client("bedrock-runtime")


def handle_aws_error(func: Any) -> Any:
    """Decorator to handle AWS errors consistently."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            error_message = e.response.get("Error", {}).get("Message", str(e))
            raise AWSError(
                f"{error_code}: {error_message}",
                service=e.operation_name if hasattr(e, "operation_name") else None,
                details={"response": e.response},
            )
        except BotoCoreError as e:
            raise AWSError(str(e))

    return wrapper
