"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from aws_provisioner.resources.base import Resource  # noqa: TC001 (Pydantic needs this at runtime)
from aws_provisioner.resources.kms import (
    KmsKeyResource,  # noqa: TC001 (Pydantic needs this at runtime)
    KmsReplicaKeyResource,  # noqa: TC001 (Pydantic needs this at runtime)
)
from aws_provisioner.resources.license_configuration import (
    LicenseConfigurationResource,  # noqa: TC001 (Pydantic needs this at runtime)
)
from aws_provisioner.resources.prometheus import (
    PrometheusWorkspaceResource,  # noqa: TC001 (Pydantic needs this at runtime)
)


class ProviderConfig(BaseSettings):
    """AWS provider settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``AWS_`` prefix (``AWS_REGION``, ``AWS_PROFILE``,
    ``AWS_ENDPOINT_URL``). Constructor kwargs take precedence.

    ``max_attempts`` is read from ``AWS_PROVISIONER_MAX_ATTEMPTS`` only;
    ``AWS_MAX_ATTEMPTS`` belongs to botocore's own retry layer.

    Credentials are never part of the config; boto3's credential chain
    resolves them from the profile, environment or instance metadata.
    """

    model_config = SettingsConfigDict(env_prefix="AWS_")

    region: str = "us-east-1"
    profile: str | None = None
    endpoint_url: str | None = None
    default_tags: dict[str, str] = Field(default_factory=dict)
    max_attempts: int = Field(
        default=8,
        ge=1,
        validation_alias=AliasChoices("max_attempts", "AWS_PROVISIONER_MAX_ATTEMPTS"),
    )


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class Config(BaseModel):
    """Provisioning configuration; validates YAML structure directly."""

    model_config = ConfigDict(extra="forbid")

    stack: str = Field(default="default", pattern=r"^[a-zA-Z0-9_.-]+$")
    provider: ProviderConfig
    state_path: Path = Path(".aws-state.json")
    kms_keys: Annotated[list[KmsKeyResource], BeforeValidator(_none_to_list)] = []
    kms_replica_keys: Annotated[list[KmsReplicaKeyResource], BeforeValidator(_none_to_list)] = []
    license_configurations: Annotated[
        list[LicenseConfigurationResource], BeforeValidator(_none_to_list)
    ] = []
    prometheus_workspaces: Annotated[
        list[PrometheusWorkspaceResource], BeforeValidator(_none_to_list)
    ] = []
    config_dir: Path = Path()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resources(self) -> list[Resource]:
        """All declared resources. Ordering is not significant."""
        return [
            *self.kms_keys,
            *self.kms_replica_keys,
            *self.license_configurations,
            *self.prometheus_workspaces,
        ]
