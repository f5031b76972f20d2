"""License Manager license configuration handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aws_provisioner.core.errors import APIError, FatalAPIError, NotFoundError, PartialUpdateError
from aws_provisioner.engine.handlers import ResourceHandler
from aws_provisioner.engine.tagging import (
    desired_tags_all,
    tag_attributes,
    tags_from_list,
    tags_to_list,
    update_tags,
)
from aws_provisioner.resources.license_configuration import LicenseConfigurationResource
from aws_provisioner.resources.markers import build_api_params, extract_api_attrs

if TYPE_CHECKING:
    from aws_provisioner.core.state import ResourceInstance
    from aws_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)

SERVICE = "license-manager"

# Fields sent together by UpdateLicenseConfiguration.
_UPDATABLE = {"license_name", "description", "license_count", "license_count_hard_limit"}
_INVALID_ARN = "Invalid license configuration ARN"


def find_license_configuration_by_arn(
    ctx: EngineContext, arn: str, region: str
) -> dict[str, Any]:
    """``GetLicenseConfiguration`` output for *arn*.

    License Manager reports unknown ARNs as ``InvalidParameterValueException``
    and keeps deleted configurations around with status ``DISABLED``; both
    mean the configuration is gone.
    """
    lm = ctx.client(SERVICE, region)
    try:
        out = ctx.call(
            lm.get_license_configuration,
            description=f"GetLicenseConfiguration {arn}",
            LicenseConfigurationArn=arn,
        )
    except FatalAPIError as e:
        if e.code == "InvalidParameterValueException" and _INVALID_ARN in str(e):
            raise NotFoundError(str(e), code=e.code, operation=e.operation) from e
        raise
    if out.get("Status") == "DISABLED":
        raise NotFoundError(f"License configuration {arn} is DISABLED", code="DISABLED")
    return out


class LicenseConfigurationHandler(ResourceHandler[LicenseConfigurationResource]):
    """CRUD handler for License Manager license configurations."""

    def _read_attrs(
        self, ctx: EngineContext, out: dict[str, Any], local: dict[str, Any]
    ) -> dict[str, Any]:
        arn = out["LicenseConfigurationArn"]
        attrs: dict[str, Any] = {
            "id": arn,
            "arn": arn,
            "name": local["name"],
            "region": local.get("region"),
            "owner_account_id": out.get("OwnerAccountId"),
        }
        attrs.update(extract_api_attrs(LicenseConfigurationResource, out))
        if attrs["license_count"] is None:
            attrs.pop("license_count")
        attrs.update(tag_attributes(ctx, tags_from_list(out.get("Tags"))))
        return attrs

    def create(self, ctx: EngineContext, desired: LicenseConfigurationResource) -> dict[str, Any]:
        region = ctx.region_for(desired)
        lm = ctx.client(SERVICE, region)
        params = build_api_params(desired)
        tags_all = desired_tags_all(ctx, desired.tags)
        if tags_all:
            params["Tags"] = tags_to_list(tags_all)

        resp = ctx.call(
            lm.create_license_configuration,
            description=f"CreateLicenseConfiguration {desired.address}",
            **params,
        )
        arn = resp["LicenseConfigurationArn"]
        logger.info("Created license configuration %s for %s", arn, desired.address)

        out = find_license_configuration_by_arn(ctx, arn, region)
        return self._read_attrs(ctx, out, desired.model_dump())

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        try:
            out = find_license_configuration_by_arn(
                ctx, prior.attributes["id"], ctx.region_for(prior)
            )
        except NotFoundError:
            return None
        return self._read_attrs(ctx, out, prior.attributes)

    def update(
        self,
        ctx: EngineContext,
        desired: LicenseConfigurationResource,
        prior: ResourceInstance,
    ) -> dict[str, Any]:
        region = ctx.region_for(prior)
        arn = prior.attributes["id"]
        lm = ctx.client(SERVICE, region)
        old = prior.attributes
        applied: dict[str, Any] = {}
        step = ""

        wanted = desired.model_dump(include=_UPDATABLE)
        changed = any(v != old.get(k) for k, v in wanted.items() if v is not None)
        try:
            if changed:
                step = "license_configuration"
                ctx.call(
                    lm.update_license_configuration,
                    LicenseConfigurationArn=arn,
                    **build_api_params(desired, only=_UPDATABLE),
                )
                applied.update({k: v for k, v in wanted.items() if v is not None})

            tags_all = desired_tags_all(ctx, desired.tags)
            if tags_all != old.get("tags_all", {}):
                step = "tags"
                update_tags(
                    old.get("tags_all", {}),
                    tags_all,
                    tag=lambda upserts: ctx.call(
                        lm.tag_resource, ResourceArn=arn, Tags=tags_to_list(upserts)
                    ),
                    untag=lambda keys: ctx.call(lm.untag_resource, ResourceArn=arn, TagKeys=keys),
                )
                applied["tags"] = dict(desired.tags)
                applied["tags_all"] = tags_all
        except APIError as e:
            raise PartialUpdateError(applied=applied, failed=step, cause=e) from e

        if not applied:
            return dict(old)
        out = find_license_configuration_by_arn(ctx, arn, region)
        return self._read_attrs(ctx, out, desired.model_dump())

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        region = ctx.region_for(prior)
        arn = prior.attributes["id"]
        try:
            find_license_configuration_by_arn(ctx, arn, region)
        except NotFoundError:
            logger.debug("License configuration %s already gone", arn)
            return
        lm = ctx.client(SERVICE, region)
        try:
            ctx.call(lm.delete_license_configuration, LicenseConfigurationArn=arn)
        except NotFoundError:
            return

    def import_state(
        self, ctx: EngineContext, resource_id: str, *, name: str, region: str | None
    ) -> dict[str, Any]:
        out = find_license_configuration_by_arn(ctx, resource_id, region or ctx.provider.region)
        return self._read_attrs(ctx, out, {"name": name, "region": region})
