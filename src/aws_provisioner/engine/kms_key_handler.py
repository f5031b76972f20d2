"""KMS key handler implementing CRUD via the boto3 ``kms`` client.

The module-level helpers (finder, policy/rotation/tag readers) are shared
with the replica key handler.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from aws_provisioner.core.errors import APIError, NotFoundError, PartialUpdateError
from aws_provisioner.engine.handlers import ResourceHandler
from aws_provisioner.engine.tagging import (
    desired_tags_all,
    tag_attributes,
    tags_from_list,
    tags_to_list,
    update_tags,
)
from aws_provisioner.resources.kms import KmsKeyResource
from aws_provisioner.resources.markers import build_api_params

if TYPE_CHECKING:
    from aws_provisioner.core.state import ResourceInstance
    from aws_provisioner.engine.handlers import EngineContext

logger = logging.getLogger(__name__)

KMS_TAG_FIELDS = {"key_field": "TagKey", "value_field": "TagValue"}
PENDING_DELETION_STATES = frozenset({"PendingDeletion", "PendingReplicaDeletion"})
KEY_READY_TIMEOUT = 120.0
POLICY_PROPAGATION_CODES = frozenset({"MalformedPolicyDocumentException"})


# ── Shared finders ──────────────────────────────────────────────────


def describe_key(ctx: EngineContext, key_id: str, region: str) -> dict[str, Any]:
    """Raw ``KeyMetadata`` for *key_id*, whatever its key state."""
    kms = ctx.client("kms", region)
    resp = ctx.call(kms.describe_key, description=f"DescribeKey {key_id}", KeyId=key_id)
    return resp["KeyMetadata"]


def find_key_by_id(ctx: EngineContext, key_id: str, region: str) -> dict[str, Any]:
    """``KeyMetadata`` of a live key.

    Keys scheduled for deletion count as gone.
    """
    meta = describe_key(ctx, key_id, region)
    if meta.get("KeyState") in PENDING_DELETION_STATES:
        raise NotFoundError(f"KMS key {key_id} is {meta['KeyState']}", code=meta["KeyState"])
    return meta


def key_state(ctx: EngineContext, key_id: str, region: str) -> tuple[Any, str | None]:
    """Refresh function for ``wait_for``; a missing key reports state ``None``."""
    try:
        meta = describe_key(ctx, key_id, region)
    except NotFoundError:
        return None, None
    return meta, meta.get("KeyState")


def read_key_policy(ctx: EngineContext, key_id: str, region: str) -> str:
    kms = ctx.client("kms", region)
    resp = ctx.call(kms.get_key_policy, KeyId=key_id, PolicyName="default")
    return resp["Policy"]


def read_key_rotation(ctx: EngineContext, meta: dict[str, Any], region: str) -> bool:
    # Rotation only exists for symmetric encryption keys.
    if meta.get("KeySpec", "SYMMETRIC_DEFAULT") != "SYMMETRIC_DEFAULT":
        return False
    if meta.get("Origin", "AWS_KMS") != "AWS_KMS":
        return False
    kms = ctx.client("kms", region)
    resp = ctx.call(kms.get_key_rotation_status, KeyId=meta["KeyId"])
    return bool(resp.get("KeyRotationEnabled", False))


def list_key_tags(ctx: EngineContext, key_id: str, region: str) -> dict[str, str]:
    kms = ctx.client("kms", region)
    tags: dict[str, str] = {}
    params: dict[str, Any] = {"KeyId": key_id}
    while True:
        resp = ctx.call(kms.list_resource_tags, **params)
        tags.update(tags_from_list(resp.get("Tags"), **KMS_TAG_FIELDS))
        if not resp.get("Truncated"):
            return tags
        params["Marker"] = resp["NextMarker"]


def update_key_tags(
    ctx: EngineContext, key_id: str, region: str, old: dict[str, str], new: dict[str, str]
) -> None:
    kms = ctx.client("kms", region)
    update_tags(
        old,
        new,
        tag=lambda upserts: ctx.call(
            kms.tag_resource, KeyId=key_id, Tags=tags_to_list(upserts, **KMS_TAG_FIELDS)
        ),
        untag=lambda keys: ctx.call(kms.untag_resource, KeyId=key_id, TagKeys=keys),
    )


def set_key_enabled(ctx: EngineContext, key_id: str, region: str, enabled: bool) -> None:
    kms = ctx.client("kms", region)
    if enabled:
        ctx.call(kms.enable_key, KeyId=key_id)
    else:
        ctx.call(kms.disable_key, KeyId=key_id)
    target = "Enabled" if enabled else "Disabled"
    ctx.wait_for(
        lambda: key_state(ctx, key_id, region),
        target=[target],
        pending=["Enabled", "Disabled", "Creating", "Updating"],
        timeout=KEY_READY_TIMEOUT,
        description=f"KMS key {key_id} to become {target}",
    )


def put_key_policy(
    ctx: EngineContext, key_id: str, region: str, policy: str, *, bypass: bool
) -> None:
    kms = ctx.client("kms", region)
    ctx.call(
        kms.put_key_policy,
        conflict_codes=POLICY_PROPAGATION_CODES,
        KeyId=key_id,
        PolicyName="default",
        Policy=policy,
        BypassPolicyLockoutSafetyCheck=bypass,
    )


def policies_equal(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return left == right
    try:
        return json.loads(left) == json.loads(right)
    except json.JSONDecodeError:
        return left == right


def schedule_key_deletion(ctx: EngineContext, key_id: str, region: str, window: int) -> None:
    """Schedule deletion; an already-gone or already-scheduled key is fine."""
    try:
        find_key_by_id(ctx, key_id, region)
    except NotFoundError:
        logger.debug("KMS key %s already gone or pending deletion", key_id)
        return
    kms = ctx.client("kms", region)
    try:
        ctx.call(kms.schedule_key_deletion, KeyId=key_id, PendingWindowInDays=window)
    except NotFoundError:
        return
    ctx.wait_for(
        lambda: key_state(ctx, key_id, region),
        target=[None, *PENDING_DELETION_STATES],
        pending=["Enabled", "Disabled", "Creating", "Updating", "PendingImport", "Unavailable"],
        timeout=KEY_READY_TIMEOUT,
        description=f"KMS key {key_id} deletion",
    )


# ── Handler ─────────────────────────────────────────────────────────


class KmsKeyHandler(ResourceHandler[KmsKeyResource]):
    """CRUD handler for customer managed (optionally multi-region) KMS keys."""

    def _read_attrs(
        self, ctx: EngineContext, meta: dict[str, Any], region: str, local: dict[str, Any]
    ) -> dict[str, Any]:
        key_id = meta["KeyId"]
        attrs: dict[str, Any] = {
            "id": key_id,
            "arn": meta["Arn"],
            "name": local["name"],
            "region": local.get("region"),
            "description": meta.get("Description", ""),
            "key_usage": meta.get("KeyUsage", "ENCRYPT_DECRYPT"),
            "key_spec": meta.get("KeySpec", "SYMMETRIC_DEFAULT"),
            "multi_region": meta.get("MultiRegion", False),
            "policy": read_key_policy(ctx, key_id, region),
            "is_enabled": meta.get("Enabled", False),
            "enable_key_rotation": read_key_rotation(ctx, meta, region),
            # State-only: no API reports these back.
            "bypass_policy_lockout_safety_check": local.get(
                "bypass_policy_lockout_safety_check", False
            ),
            "deletion_window_in_days": local.get("deletion_window_in_days", 30),
        }
        attrs.update(tag_attributes(ctx, list_key_tags(ctx, key_id, region)))
        return attrs

    def create(self, ctx: EngineContext, desired: KmsKeyResource) -> dict[str, Any]:
        region = ctx.region_for(desired)
        kms = ctx.client("kms", region)
        params = build_api_params(desired)
        tags_all = desired_tags_all(ctx, desired.tags)
        if tags_all:
            params["Tags"] = tags_to_list(tags_all, **KMS_TAG_FIELDS)

        resp = ctx.call(
            kms.create_key,
            description=f"CreateKey {desired.address}",
            conflict_codes=POLICY_PROPAGATION_CODES,
            **params,
        )
        key_id = resp["KeyMetadata"]["KeyId"]
        logger.info("Created KMS key %s for %s", key_id, desired.address)

        ctx.wait_for(
            lambda: key_state(ctx, key_id, region),
            target=["Enabled"],
            pending=["Creating", None],
            timeout=KEY_READY_TIMEOUT,
            description=f"KMS key {key_id}",
        )
        if desired.enable_key_rotation:
            ctx.call(kms.enable_key_rotation, KeyId=key_id)
        if not desired.is_enabled:
            set_key_enabled(ctx, key_id, region, False)

        meta = find_key_by_id(ctx, key_id, region)
        return self._read_attrs(ctx, meta, region, desired.model_dump())

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        region = ctx.region_for(prior)
        try:
            meta = find_key_by_id(ctx, prior.attributes["id"], region)
        except NotFoundError:
            return None
        return self._read_attrs(ctx, meta, region, prior.attributes)

    def update(
        self, ctx: EngineContext, desired: KmsKeyResource, prior: ResourceInstance
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

            if desired.is_enabled and not old.get("is_enabled"):
                step = "is_enabled"
                set_key_enabled(ctx, key_id, region, True)
                applied["is_enabled"] = True

            if desired.enable_key_rotation != old.get("enable_key_rotation"):
                step = "enable_key_rotation"
                if desired.enable_key_rotation:
                    ctx.call(kms.enable_key_rotation, KeyId=key_id)
                else:
                    ctx.call(kms.disable_key_rotation, KeyId=key_id)
                applied["enable_key_rotation"] = desired.enable_key_rotation

            if not desired.is_enabled and old.get("is_enabled"):
                step = "is_enabled"
                set_key_enabled(ctx, key_id, region, False)
                applied["is_enabled"] = False

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
        return self._read_attrs(ctx, meta, effective_region, {"name": name, "region": region})
