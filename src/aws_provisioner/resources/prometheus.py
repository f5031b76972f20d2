"""Amazon Managed Service for Prometheus resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from aws_provisioner.resources.base import Resource
from aws_provisioner.resources.markers import APIParam, ForceNew


class PrometheusWorkspaceResource(Resource):
    """An AMP workspace."""

    resource_type: ClassVar[str] = "aws_prometheus_workspace"
    plan_priority: ClassVar[int] = 30

    alias: Annotated[str | None, APIParam("alias")] = Field(
        default=None, min_length=1, max_length=100
    )
    kms_key_arn: Annotated[str | None, APIParam("kmsKeyArn"), ForceNew()] = None
