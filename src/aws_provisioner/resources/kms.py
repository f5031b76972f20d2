"""KMS key resource models."""

from __future__ import annotations

import re
from typing import Annotated, ClassVar, Literal

from pydantic import Field, field_validator

from aws_provisioner.resources.base import REFERENCE_PATTERN, Resource
from aws_provisioner.resources.markers import APIParam, Compare, ForceNew

KeySpec = Literal[
    "SYMMETRIC_DEFAULT",
    "RSA_2048",
    "RSA_3072",
    "RSA_4096",
    "ECC_NIST_P256",
    "ECC_NIST_P384",
    "ECC_NIST_P521",
    "ECC_SECG_P256K1",
    "HMAC_224",
    "HMAC_256",
    "HMAC_384",
    "HMAC_512",
    "SM2",
]

KeyUsage = Literal["ENCRYPT_DECRYPT", "SIGN_VERIFY", "GENERATE_VERIFY_MAC", "KEY_AGREEMENT"]

# Multi-region key IDs carry the ``mrk-`` prefix.
MULTI_REGION_KEY_ARN = re.compile(
    r"^arn:aws[a-z-]*:kms:(?P<region>[a-z0-9-]+):\d{12}:key/mrk-[0-9a-f]{32}$"
)


class KmsKeyResource(Resource):
    """A customer managed KMS key.

    Set ``multi_region: true`` to make it usable as the primary of
    ``aws_kms_replica_key`` resources in other regions.
    """

    resource_type: ClassVar[str] = "aws_kms_key"
    plan_priority: ClassVar[int] = 10
    import_ignore: ClassVar[frozenset[str]] = frozenset(
        {"deletion_window_in_days", "bypass_policy_lockout_safety_check"}
    )

    description: Annotated[str, APIParam("Description")] = ""
    key_usage: Annotated[KeyUsage, APIParam("KeyUsage"), ForceNew()] = "ENCRYPT_DECRYPT"
    key_spec: Annotated[KeySpec, APIParam("KeySpec"), ForceNew()] = "SYMMETRIC_DEFAULT"
    multi_region: Annotated[bool, APIParam("MultiRegion"), ForceNew()] = False
    policy: Annotated[str | None, APIParam("Policy"), Compare("json")] = None
    bypass_policy_lockout_safety_check: Annotated[
        bool, APIParam("BypassPolicyLockoutSafetyCheck")
    ] = False
    deletion_window_in_days: int = Field(default=30, ge=7, le=30)
    is_enabled: bool = True
    enable_key_rotation: bool = False


class KmsReplicaKeyResource(Resource):
    """A replica of a multi-region primary key, created in this resource's region.

    ``primary_key_arn`` is either a literal multi-region key ARN or a
    reference such as ``${aws_kms_key.primary.arn}``.
    """

    resource_type: ClassVar[str] = "aws_kms_replica_key"
    plan_priority: ClassVar[int] = 20
    import_ignore: ClassVar[frozenset[str]] = frozenset(
        {"deletion_window_in_days", "bypass_policy_lockout_safety_check"}
    )

    primary_key_arn: Annotated[str, ForceNew()]
    description: Annotated[str, APIParam("Description")] = ""
    enabled: bool = True
    policy: Annotated[str | None, APIParam("Policy"), Compare("json")] = None
    bypass_policy_lockout_safety_check: Annotated[
        bool, APIParam("BypassPolicyLockoutSafetyCheck")
    ] = False
    deletion_window_in_days: int = Field(default=30, ge=7, le=30)

    @field_validator("primary_key_arn")
    @classmethod
    def _check_primary_key_arn(cls, v: str) -> str:
        if REFERENCE_PATTERN.fullmatch(v) or MULTI_REGION_KEY_ARN.match(v):
            return v
        raise ValueError(
            f"'{v}' is neither a multi-region KMS key ARN nor a ${{type.name.attr}} reference"
        )
