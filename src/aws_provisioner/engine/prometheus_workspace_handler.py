"""Amazon Managed Service for Prometheus workspace handler."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from aws_provisioner.core.errors import APIError, NotFoundError, PartialUpdateError
from aws_provisioner.engine.handlers import ResourceHandler
from aws_provisioner.engine.tagging import desired_tags_all, tag_attributes, update_tags
from aws_provisioner.resources.markers import build_api_params, extract_api_attrs
from aws_provisioner.resources.prometheus import PrometheusWorkspaceResource

if TYPE_CHECKING:
    from aws_provisioner.core.state import ResourceInstance
    from aws_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)

SERVICE = "amp"
CREATE_TIMEOUT = 300.0
UPDATE_TIMEOUT = 300.0
DELETE_TIMEOUT = 300.0


def find_workspace_by_id(ctx: EngineContext, workspace_id: str, region: str) -> dict[str, Any]:
    """``DescribeWorkspace`` payload; a workspace being deleted counts as gone."""
    amp = ctx.client(SERVICE, region)
    resp = ctx.call(
        amp.describe_workspace,
        description=f"DescribeWorkspace {workspace_id}",
        workspaceId=workspace_id,
    )
    workspace = resp["workspace"]
    if workspace.get("status", {}).get("statusCode") == "DELETING":
        raise NotFoundError(f"Workspace {workspace_id} is being deleted", code="DELETING")
    return workspace


def _workspace_status(
    ctx: EngineContext, workspace_id: str, region: str
) -> tuple[dict[str, Any] | None, str | None]:
    amp = ctx.client(SERVICE, region)
    try:
        resp = ctx.call(amp.describe_workspace, workspaceId=workspace_id)
    except NotFoundError:
        return None, None
    workspace = resp["workspace"]
    return workspace, workspace.get("status", {}).get("statusCode")


class PrometheusWorkspaceHandler(ResourceHandler[PrometheusWorkspaceResource]):
    """CRUD handler for AMP workspaces."""

    def _wait_active(
        self, ctx: EngineContext, workspace_id: str, region: str, timeout: float
    ) -> dict[str, Any]:
        workspace = ctx.wait_for(
            lambda: _workspace_status(ctx, workspace_id, region),
            target=["ACTIVE"],
            pending=["CREATING", "UPDATING"],
            timeout=timeout,
            description=f"workspace {workspace_id}",
        )
        assert workspace is not None
        return workspace

    def _read_attrs(
        self, ctx: EngineContext, workspace: dict[str, Any], local: dict[str, Any]
    ) -> dict[str, Any]:
        attrs: dict[str, Any] = {
            "id": workspace["workspaceId"],
            "arn": workspace["arn"],
            "name": local["name"],
            "region": local.get("region"),
            "prometheus_endpoint": workspace.get("prometheusEndpoint"),
        }
        attrs.update(extract_api_attrs(PrometheusWorkspaceResource, workspace))
        attrs.update(tag_attributes(ctx, workspace.get("tags") or {}))
        return attrs

    def create(self, ctx: EngineContext, desired: PrometheusWorkspaceResource) -> dict[str, Any]:
        region = ctx.region_for(desired)
        amp = ctx.client(SERVICE, region)
        params = build_api_params(desired)
        tags_all = desired_tags_all(ctx, desired.tags)
        if tags_all:
            params["tags"] = tags_all

        resp = ctx.call(
            amp.create_workspace,
            description=f"CreateWorkspace {desired.address}",
            clientToken=str(uuid.uuid4()),
            **params,
        )
        workspace_id = resp["workspaceId"]
        logger.info("Created workspace %s for %s", workspace_id, desired.address)

        workspace = self._wait_active(ctx, workspace_id, region, CREATE_TIMEOUT)
        return self._read_attrs(ctx, workspace, desired.model_dump())

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        try:
            workspace = find_workspace_by_id(ctx, prior.attributes["id"], ctx.region_for(prior))
        except NotFoundError:
            return None
        return self._read_attrs(ctx, workspace, prior.attributes)

    def update(
        self,
        ctx: EngineContext,
        desired: PrometheusWorkspaceResource,
        prior: ResourceInstance,
    ) -> dict[str, Any]:
        region = ctx.region_for(prior)
        workspace_id = prior.attributes["id"]
        arn = prior.attributes["arn"]
        amp = ctx.client(SERVICE, region)
        old = prior.attributes
        applied: dict[str, Any] = {}
        step = ""

        try:
            if desired.alias is not None and desired.alias != old.get("alias"):
                step = "alias"
                ctx.call(
                    amp.update_workspace_alias,
                    workspaceId=workspace_id,
                    alias=desired.alias,
                    clientToken=str(uuid.uuid4()),
                )
                self._wait_active(ctx, workspace_id, region, UPDATE_TIMEOUT)
                applied["alias"] = desired.alias

            tags_all = desired_tags_all(ctx, desired.tags)
            if tags_all != old.get("tags_all", {}):
                step = "tags"
                update_tags(
                    old.get("tags_all", {}),
                    tags_all,
                    tag=lambda upserts: ctx.call(amp.tag_resource, resourceArn=arn, tags=upserts),
                    untag=lambda keys: ctx.call(amp.untag_resource, resourceArn=arn, tagKeys=keys),
                )
                applied["tags"] = dict(desired.tags)
                applied["tags_all"] = tags_all
        except APIError as e:
            raise PartialUpdateError(applied=applied, failed=step, cause=e) from e

        if not applied:
            return dict(old)
        workspace = find_workspace_by_id(ctx, workspace_id, region)
        return self._read_attrs(ctx, workspace, desired.model_dump())

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        region = ctx.region_for(prior)
        workspace_id = prior.attributes["id"]
        amp = ctx.client(SERVICE, region)
        try:
            ctx.call(
                amp.delete_workspace,
                description=f"DeleteWorkspace {workspace_id}",
                workspaceId=workspace_id,
                clientToken=str(uuid.uuid4()),
            )
        except NotFoundError:
            logger.debug("Workspace %s already gone", workspace_id)
            return
        ctx.wait_for(
            lambda: _workspace_status(ctx, workspace_id, region),
            target=[None],
            pending=["DELETING", "ACTIVE", "UPDATING", "CREATING"],
            timeout=DELETE_TIMEOUT,
            description=f"workspace {workspace_id} deletion",
        )

    def import_state(
        self, ctx: EngineContext, resource_id: str, *, name: str, region: str | None
    ) -> dict[str, Any]:
        workspace = find_workspace_by_id(ctx, resource_id, region or ctx.provider.region)
        return self._read_attrs(ctx, workspace, {"name": name, "region": region})
