"""KMS replica key handler.

A replica is created by calling ``ReplicateKey`` in the *primary's* region
with ``ReplicaRegion`` set to the replica's region; every later call goes
to the replica's own region.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from aws_provisioner.core.errors import APIError, NotFoundError, PartialUpdateError
from aws_provisioner.engine.handlers import PlanContext, ResourceHandler
from aws_provisioner.engine.kms_key_handler import (
    KEY_READY_TIMEOUT,
    KMS_TAG_FIELDS,
    find_key_by_id,
    key_state,
    list_key_tags,
    policies_equal,
    put_key_policy,
    read_key_policy,
    read_key_rotation,
    schedule_key_deletion,
    set_key_enabled,
    update_key_tags,
)
from aws_provisioner.engine.tagging import desired_tags_all, tag_attributes, tags_to_list
from aws_provisioner.resources.base import REFERENCE_PATTERN
from aws_provisioner.resources.kms import MULTI_REGION_KEY_ARN, KmsReplicaKeyResource

if TYPE_CHECKING:
    from aws_provisioner.core.state import ResourceInstance
    from aws_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)

# The primary may not be visible to ReplicateKey right after CreateKey.
PRIMARY_PROPAGATION_CODES = frozenset({"NotFoundException"})


def primary_region(primary_key_arn: str) -> str:
    match = MULTI_REGION_KEY_ARN.match(primary_key_arn)
    if match is None:
        raise ValueError(f"Not a multi-region KMS key ARN: {primary_key_arn}")
    return match.group("region")


class KmsReplicaKeyHandler(ResourceHandler[KmsReplicaKeyResource]):
    """CRUD handler for multi-region replica keys."""

    def validate(self, ctx: EngineContext, desired: KmsReplicaKeyResource) -> list[str]:
        if REFERENCE_PATTERN.fullmatch(desired.primary_key_arn):
            return []
        if primary_region(desired.primary_key_arn) == ctx.region_for(desired):
            return [
                f"{desired.address}: replica region must differ from the primary key's region "
                f"({ctx.region_for(desired)})"
            ]
        return []

    def validate_plan(
        self, ctx: EngineContext, desired: KmsReplicaKeyResource, plan_ctx: PlanContext
    ) -> list[str]:
        match = REFERENCE_PATTERN.fullmatch(desired.primary_key_arn)
        if match is None:
            return []
        primary_addr = match.group(1)
        if not primary_addr.startswith("aws_kms_key."):
            return [f"{desired.address}: primary_key_arn must reference an aws_kms_key"]
        if not plan_ctx.address_exists(primary_addr):
            # Reported by the engine as an unknown reference.
            return []

        errors: list[str] = []
        if not plan_ctx.get_attr(primary_addr, "multi_region"):
            errors.append(f"{desired.address}: primary key {primary_addr} is not multi_region")
        primary_region_ = plan_ctx.get_attr(primary_addr, "region") or ctx.provider.region
        if primary_region_ == ctx.region_for(desired):
            errors.append(
                f"{desired.address}: replica region must differ from the primary key's region "
                f"({primary_region_})"
            )
        return errors

    def _read_attrs(
        self, ctx: EngineContext, meta: dict[str, Any], region: str, local: dict[str, Any]
    ) -> dict[str, Any]:
        key_id = meta["KeyId"]
        mrc = meta.get("MultiRegionConfiguration") or {}
        attrs: dict[str, Any] = {
            "id": key_id,
            "arn": meta["Arn"],
            "key_id": key_id,
            "name": local["name"],
            "region": local.get("region"),
            "primary_key_arn": mrc.get("PrimaryKey", {}).get("Arn", local.get("primary_key_arn")),
            "description": meta.get("Description", ""),
            "enabled": meta.get("Enabled", False),
            "key_rotation_enabled": read_key_rotation(ctx, meta, region),
            "key_spec": meta.get("KeySpec", "SYMMETRIC_DEFAULT"),
            "key_usage": meta.get("KeyUsage", "ENCRYPT_DECRYPT"),
            "policy": read_key_policy(ctx, key_id, region),
            "bypass_policy_lockout_safety_check": local.get(
                "bypass_policy_lockout_safety_check", False
            ),
            "deletion_window_in_days": local.get("deletion_window_in_days", 30),
        }
        attrs.update(tag_attributes(ctx, list_key_tags(ctx, key_id, region)))
        return attrs

    def create(self, ctx: EngineContext, desired: KmsReplicaKeyResource) -> dict[str, Any]:
        replica_region = ctx.region_for(desired)
        kms = ctx.client("kms", primary_region(desired.primary_key_arn))

        params: dict[str, Any] = {
            "KeyId": desired.primary_key_arn,
            "ReplicaRegion": replica_region,
            "Description": desired.description,
            "BypassPolicyLockoutSafetyCheck": desired.bypass_policy_lockout_safety_check,
        }
        if desired.policy is not None:
            params["Policy"] = desired.policy
        tags_all = desired_tags_all(ctx, desired.tags)
        if tags_all:
            params["Tags"] = tags_to_list(tags_all, **KMS_TAG_FIELDS)

        resp = ctx.call(
            kms.replicate_key,
            description=f"ReplicateKey {desired.address}",
            conflict_codes=PRIMARY_PROPAGATION_CODES,
            **params,
        )
        key_id = resp["ReplicaKeyMetadata"]["KeyId"]
        logger.info("Replicated %s into %s as %s", desired.primary_key_arn, replica_region, key_id)

        ctx.wait_for(
            lambda: key_state(ctx, key_id, replica_region),
            target=["Enabled"],
            pending=["Creating", None],
            timeout=KEY_READY_TIMEOUT,
            description=f"replica key {key_id}",
        )
        if not desired.enabled:
            set_key_enabled(ctx, key_id, replica_region, False)

        meta = find_key_by_id(ctx, key_id, replica_region)
        return self._read_attrs(ctx, meta, replica_region, desired.model_dump())

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        region = ctx.region_for(prior)
        try:
            meta = find_key_by_id(ctx, prior.attributes["id"], region)
        except NotFoundError:
            return None
        return self._read_attrs(ctx, meta, region, prior.attributes)

    def update(
        self, ctx: EngineContext, desired: KmsReplicaKeyResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        region = ctx.region_for(prior)
        key_id = prior.attributes["id"]
        kms = ctx.client("kms", region)
        old = prior.attributes
        applied: dict[str, Any] = {}
        step = ""

        try:
            if desired.description != old.get("description"):
                step = "description"
                ctx.call(kms.update_key_description, KeyId=key_id, Description=desired.description)
                applied["description"] = desired.description

            if desired.policy is not None and not policies_equal(desired.policy, old.get("policy")):
                step = "policy"
                put_key_policy(
                    ctx,
                    key_id,
                    region,
                    desired.policy,
                    bypass=desired.bypass_policy_lockout_safety_check,
                )
                applied["policy"] = desired.policy

            if desired.enabled != old.get("enabled"):
                step = "enabled"
                set_key_enabled(ctx, key_id, region, desired.enabled)
                applied["enabled"] = desired.enabled

            tags_all = desired_tags_all(ctx, desired.tags)
            if tags_all != old.get("tags_all", {}):
                step = "tags"
                update_key_tags(ctx, key_id, region, old.get("tags_all", {}), tags_all)
                applied["tags"] = dict(desired.tags)
                applied["tags_all"] = tags_all
        except APIError as e:
            raise PartialUpdateError(applied=applied, failed=step, cause=e) from e

        state_only = {
            "bypass_policy_lockout_safety_check": desired.bypass_policy_lockout_safety_check,
            "deletion_window_in_days": desired.deletion_window_in_days,
        }
        if not applied:
            logger.debug("No remote changes for %s", desired.address)
            return {**old, **state_only}

        meta = find_key_by_id(ctx, key_id, region)
        return self._read_attrs(ctx, meta, region, {**desired.model_dump(), **state_only})

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        window = prior.attributes.get("deletion_window_in_days", 30)
        schedule_key_deletion(ctx, prior.attributes["id"], ctx.region_for(prior), window)

    def import_state(
        self, ctx: EngineContext, resource_id: str, *, name: str, region: str | None
    ) -> dict[str, Any]:
        effective_region = region or ctx.provider.region
        meta = find_key_by_id(ctx, resource_id, effective_region)
        if (meta.get("MultiRegionConfiguration") or {}).get("MultiRegionKeyType") != "REPLICA":
            raise NotFoundError(f"KMS key {resource_id} is not a multi-region replica")
        return self._read_attrs(ctx, meta, effective_region, {"name": name, "region": region})
