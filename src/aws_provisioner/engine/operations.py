"""Apply operations.

Terraform runs apply by executing a graph of operations (resource nodes + other
nodes). This module implements a minimal version of that idea: each operation
knows how to apply itself and lists dependencies on other operations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from aws_provisioner.core.errors import PartialUpdateError
from aws_provisioner.core.state import ResourceInstance, State, compute_attributes_hash
from aws_provisioner.engine.references import resolve_references

if TYPE_CHECKING:
    from aws_provisioner.engine.handlers import EngineContext
    from aws_provisioner.engine.registry import ResourceTypeRegistry
    from aws_provisioner.engine.types import ResourceChange

logger = logging.getLogger(__name__)


class Operation(Protocol):
    key: str
    deps: list[str]
    change: ResourceChange | None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        """Execute this operation.

        Returns:
            True if state should be persisted (serial bump + write).
        """


@dataclass
class BarrierOperation:
    """A no-op node used to enforce ordering between operation phases."""

    key: str
    deps: list[str] = field(default_factory=list)
    change: ResourceChange | None = None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        _ = ctx
        _ = state
        _ = registry
        return False


def _desired_object(change: ResourceChange, reg: Any, state: State, *, action: str) -> Any:
    if change.desired is None:
        raise ValueError(f"Missing desired config for {action}: {change.address}")

    # Upstream resources were applied earlier in this run; their attributes are now known.
    resolved = resolve_references(change.desired, state, strict=True, owner=change.address)
    desired_obj = reg.model.model_validate(resolved)
    if desired_obj.address != change.address:
        raise ValueError(
            f"Desired address mismatch for {action}: {change.address} != {desired_obj.address}"
        )
    return desired_obj


def _record_created(
    state: State, change: ResourceChange, desired_obj: Any, attrs: dict[str, Any]
) -> None:
    now = datetime.now(UTC)
    state.resources[change.address] = ResourceInstance(
        address=change.address,
        resource_type=change.resource_type,
        name=desired_obj.name,
        attributes=attrs,
        attributes_hash=compute_attributes_hash(attrs),
        dependencies=list(desired_obj.depends_on),
        created_at=now,
        updated_at=now,
    )


@dataclass
class CreateOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, state, action="create")

        attrs = reg.handler.create(ctx, desired_obj)
        _record_created(state, self.change, desired_obj, attrs)
        return True


@dataclass
class UpdateOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, state, action="update")

        prior_inst = state.resources[self.change.address]
        now = datetime.now(UTC)
        try:
            attrs = reg.handler.update(ctx, desired_obj, prior_inst)
        except PartialUpdateError as e:
            # Record what reached AWS before re-raising so state reflects reality.
            attrs = {**prior_inst.attributes, **e.applied}
            prior_inst.attributes = attrs
            prior_inst.attributes_hash = compute_attributes_hash(attrs)
            prior_inst.updated_at = now
            raise

        prior_inst.attributes = attrs
        prior_inst.attributes_hash = compute_attributes_hash(attrs)
        prior_inst.dependencies = list(desired_obj.depends_on)
        prior_inst.updated_at = now
        return True


@dataclass
class ReplaceOperation:
    """Destroy the existing object, then create its replacement."""

    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, state, action="replace")

        prior_inst = state.resources[self.change.address]
        logger.info(
            "Replacing %s (forced by %s)",
            self.change.address,
            ", ".join(self.change.replace_fields or []),
        )
        reg.handler.delete(ctx, prior_inst)
        del state.resources[self.change.address]

        attrs = reg.handler.create(ctx, desired_obj)
        _record_created(state, self.change, desired_obj, attrs)
        return True


@dataclass
class DeleteOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)
        handler = reg.handler

        prior_inst = state.resources[self.change.address]
        handler.delete(ctx, prior_inst)
        del state.resources[self.change.address]
        return True
