"""AWS Provider - connection configuration shared by every handler."""

from functools import cached_property
from typing import Any, Self

import boto3
from botocore.config import Config as BotoConfig
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from aws_provisioner.core.retry import RetryPolicy


class AWSProvider(BaseModel):
    """Connection configuration for an AWS account.

    The provider is an explicit object handed to every handler invocation
    (through ``EngineContext``); nothing reads process-wide AWS state
    besides boto3's own credential chain.

    Examples:
        # Default credential chain
        provider = AWSProvider(region="eu-west-1", default_tags={"Owner": "data"})

        # Injected session (tests, assumed roles)
        provider = AWSProvider.from_session(boto3.Session(profile_name="ops"), region="eu-west-1")
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    region: str = "us-east-1"
    profile: str | None = None
    endpoint_url: str | None = None
    default_tags: dict[str, str] = Field(default_factory=dict)
    max_attempts: int = Field(default=8, ge=1)
    sdk_max_attempts: int = Field(default=5, ge=1)

    # Injected session (for assumed roles / testing)
    _injected_session: Any = None
    _clients: dict[tuple[str, str], Any] = PrivateAttr(default_factory=dict)

    @classmethod
    def from_session(cls, session: Any, **kwargs: Any) -> Self:
        """Create a provider around an existing ``boto3.Session`` (or a mock)."""
        provider = cls(**kwargs)
        provider._injected_session = session
        return provider

    @cached_property
    def session(self) -> boto3.Session:
        if self._injected_session is not None:
            return self._injected_session
        return boto3.Session(profile_name=self.profile, region_name=self.region)

    @cached_property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts)

    def client(self, service: str, region: str | None = None) -> Any:
        """Return a cached boto3 client for *service* in *region*."""
        region = region or self.region
        key = (service, region)
        if key not in self._clients:
            self._clients[key] = self.session.client(
                service,
                region_name=region,
                endpoint_url=self.endpoint_url,
                config=BotoConfig(
                    retries={"max_attempts": self.sdk_max_attempts, "mode": "standard"},
                ),
            )
        return self._clients[key]
