"""Plan and apply engine for AWS resources."""

from aws_provisioner.engine.engine import AWSEngine
from aws_provisioner.engine.errors import (
    AddressNotInStateError,
    ApplyCanceled,
    ApplyError,
    DependencyCycleError,
    DuplicateAddressError,
    EngineError,
    ResourceImportError,
    StalePlanError,
    StateLockError,
    StateStackMismatchError,
    UnknownResourceTypeError,
    UnresolvedReferenceError,
    ValidationError,
)
from aws_provisioner.engine.handlers import EngineContext, PlanContext, ResourceHandler
from aws_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from aws_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

__all__ = [
    "AWSEngine",
    "AddressNotInStateError",
    "Action",
    "ApplyCanceled",
    "ApplyError",
    "ApplyResult",
    "DependencyCycleError",
    "DuplicateAddressError",
    "EngineContext",
    "EngineError",
    "Plan",
    "PlanContext",
    "PlanMetadata",
    "ResourceChange",
    "ResourceHandler",
    "ResourceImportError",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "StalePlanError",
    "StateLockError",
    "StateStackMismatchError",
    "UnknownResourceTypeError",
    "UnresolvedReferenceError",
    "ValidationError",
]
