"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from aws_provisioner.config.loader import ConfigError, load_config
from aws_provisioner.config.registry import default_registry
from aws_provisioner.config.schema import Config, ProviderConfig
from aws_provisioner.core.provider import AWSProvider
from aws_provisioner.core.state import ResourceInstance, State
from aws_provisioner.engine.engine import AWSEngine, ProgressCallback
from aws_provisioner.engine.errors import AddressNotInStateError, StateStackMismatchError
from aws_provisioner.engine.lock import StateLock
from aws_provisioner.engine.types import Action, ResourceChange

if TYPE_CHECKING:
    from pathlib import Path

    from aws_provisioner.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "State",
    "apply",
    "drift",
    "import_resource",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
    "state_list",
    "state_rm",
    "state_show",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def _provider_from_config(config: Config) -> AWSProvider:
    p = config.provider
    return AWSProvider(
        region=p.region,
        profile=p.profile,
        endpoint_url=p.endpoint_url,
        default_tags=p.default_tags,
        max_attempts=p.max_attempts,
    )


def _engine_from_config(config: Config, provider: AWSProvider | None = None) -> AWSEngine:
    """Build an ``AWSEngine`` from a ``Config`` instance."""
    return AWSEngine(
        provider=provider or _provider_from_config(config),
        stack=config.stack,
        state_path=config.state_path,
        registry=default_registry(),
    )


def plan(
    config: Config,
    *,
    destroy: bool = False,
    refresh: bool = True,
    provider: AWSProvider | None = None,
) -> Plan:
    """Plan changes for the given configuration."""
    engine = _engine_from_config(config, provider)
    return engine.plan(config.resources, destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan,
    config: Config,
    *,
    progress: ProgressCallback | None = None,
    provider: AWSProvider | None = None,
) -> ApplyResult:
    """Apply a previously computed plan."""
    engine = _engine_from_config(config, provider)
    return engine.apply(plan_obj, progress=progress)


def plan_and_apply(
    config: Config,
    *,
    destroy: bool = False,
    refresh: bool = True,
    provider: AWSProvider | None = None,
) -> ApplyResult:
    """Plan and apply in one step."""
    plan_obj = plan(config, destroy=destroy, refresh=refresh, provider=provider)
    return apply(plan_obj, config, provider=provider)


def refresh(
    config: Config, *, provider: AWSProvider | None = None
) -> tuple[list[ResourceChange], State]:
    """Refresh state from AWS (not persisted).

    Returns the list of drift changes and the new state. Call
    :func:`save_state` to persist the returned state to disk.
    """
    engine = _engine_from_config(config, provider)
    old_state, new_state = engine.refresh()
    return _build_drift_changes(old_state, new_state), new_state


def save_state(config: Config, state: State) -> None:
    """Persist state to disk."""
    with StateLock(config.state_path):
        state.serial += 1
        state.save(config.state_path)


def drift(config: Config, *, provider: AWSProvider | None = None) -> list[ResourceChange]:
    """Detect drift between state file and live AWS."""
    changes, _ = refresh(config, provider=provider)
    return changes


def import_resource(
    config: Config,
    address: str,
    resource_id: str,
    *,
    region: str | None = None,
    provider: AWSProvider | None = None,
) -> ResourceInstance:
    """Adopt an existing AWS object into state under *address*."""
    engine = _engine_from_config(config, provider)
    return engine.import_resource(address, resource_id, region=region)


def _load_state(config: Config) -> State:
    state = State.load_or_create(config.state_path, stack=config.stack)
    if state.stack != config.stack:
        raise StateStackMismatchError(expected=config.stack, got=state.stack)
    return state


def state_list(config: Config) -> list[ResourceInstance]:
    """Tracked instances, sorted by address."""
    state = _load_state(config)
    return [state.resources[a] for a in sorted(state.resources)]


def state_show(config: Config, address: str) -> ResourceInstance:
    """The tracked instance at *address*."""
    state = _load_state(config)
    if address not in state.resources:
        raise AddressNotInStateError(address)
    return state.resources[address]


def state_rm(config: Config, address: str) -> ResourceInstance:
    """Stop tracking *address* without touching the AWS object.

    The object keeps existing (and billing); it can be adopted again with
    :func:`import_resource`.
    """
    with StateLock(config.state_path):
        state = _load_state(config)
        inst = state.resources.pop(address, None)
        if inst is None:
            raise AddressNotInStateError(address)
        state.serial += 1
        state.save(config.state_path)
    return inst


def _build_drift_changes(old_state: State, new_state: State) -> list[ResourceChange]:
    """Compare old vs new state and return a list of drift changes."""
    changes: list[ResourceChange] = []
    for addr, inst in new_state.resources.items():
        old_inst = old_state.resources.get(addr)
        if old_inst is None:
            continue
        old = old_inst.attributes
        if old != inst.attributes:
            all_keys = sorted(set(old) | set(inst.attributes))
            diff = {
                k: {"from": old.get(k), "to": inst.attributes.get(k)}
                for k in all_keys
                if old.get(k) != inst.attributes.get(k)
            }
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=inst.resource_type,
                    action=Action.UPDATE,
                    prior=dict(old),
                    planned=dict(inst.attributes),
                    diff=diff,
                )
            )
    for addr in sorted(set(old_state.resources) - set(new_state.resources)):
        changes.append(
            ResourceChange(
                address=addr,
                resource_type=old_state.resources[addr].resource_type,
                action=Action.DELETE,
                prior=dict(old_state.resources[addr].attributes),
            )
        )
    return changes
