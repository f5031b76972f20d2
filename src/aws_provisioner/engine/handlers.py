"""Engine-facing handler interfaces."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from aws_provisioner.core.retry import call_with_retry, wait_for
from aws_provisioner.core.state import ResourceInstance
from aws_provisioner.resources.base import Resource

if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Mapping

    from aws_provisioner.core import AWSProvider
    from aws_provisioner.core.retry import RetryPolicy
    from aws_provisioner.core.state import State

R = TypeVar("R", bound=Resource)
T = TypeVar("T")


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers.

    ``cancel`` is a cooperative cancellation signal: every retry backoff and
    polling sleep issued through this context aborts once it is set.
    """

    provider: AWSProvider
    stack: str
    cancel: threading.Event = field(default_factory=threading.Event)

    def region_for(self, item: Resource | ResourceInstance) -> str:
        """Effective region of a desired resource or tracked instance."""
        return item.region or self.provider.region

    def client(self, service: str, region: str | None = None) -> Any:
        return self.provider.client(service, region)

    def call(
        self,
        fn: Callable[..., T],
        /,
        *,
        description: str | None = None,
        not_found_codes: frozenset[str] | None = None,
        conflict_codes: frozenset[str] | None = None,
        policy: RetryPolicy | None = None,
        **params: Any,
    ) -> T:
        """Call a boto3 client method with classification and retries."""
        classify_kwargs: dict[str, Any] = {}
        if not_found_codes is not None:
            classify_kwargs["not_found_codes"] = not_found_codes
        if conflict_codes is not None:
            classify_kwargs["conflict_codes"] = conflict_codes
        return call_with_retry(
            lambda: fn(**params),
            policy=policy or self.provider.retry_policy,
            cancel=self.cancel,
            description=description or getattr(fn, "__name__", "API call"),
            **classify_kwargs,
        )

    def wait_for(
        self,
        refresh: Callable[[], tuple[T | None, str | None]],
        *,
        target: Collection[str | None],
        pending: Collection[str | None],
        timeout: float,
        interval: float = 2.0,
        description: str = "resource",
    ) -> T | None:
        return wait_for(
            refresh,
            target=target,
            pending=pending,
            timeout=timeout,
            interval=interval,
            cancel=self.cancel,
            description=description,
        )


class PlanContext:
    """Merged view of desired and existing resources for plan-level validation.

    Lookups are by address, with desired resources taking precedence over
    what the state file holds.
    """

    def __init__(self, all_desired: Mapping[str, Resource], state: State) -> None:
        self._items: dict[str, Resource | ResourceInstance] = dict(state.resources)
        self._items.update(all_desired)

    def address_exists(self, address: str) -> bool:
        """Check if an address exists in desired or state."""
        return address in self._items

    def get_attr(self, address: str, attr: str) -> Any:
        """Look up an attribute of the resource at *address* (desired first)."""
        item = self._items.get(address)
        if item is None:
            return None
        if isinstance(item, ResourceInstance):
            return item.attributes.get(attr)
        return getattr(item, attr, None)


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    Handlers are responsible for translating resources into AWS API calls.
    Subclass and override the CRUD methods. Validation methods are optional.
    """

    def validate(self, ctx: EngineContext, desired: R) -> list[str]:
        """Single-resource validation. No cross-resource context needed.

        Return list of error messages (empty = valid).
        """
        _ = ctx, desired
        return []

    def validate_plan(
        self,
        ctx: EngineContext,
        desired: R,
        plan_ctx: PlanContext,
    ) -> list[str]:
        """Cross-resource validation with access to all resources.

        Return list of error messages (empty = valid).
        """
        _ = ctx, desired, plan_ctx
        return []

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Read the resource from AWS. Return None if it no longer exists."""
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        """Create the resource in AWS. Return stored attributes."""
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, prior: ResourceInstance) -> dict[str, Any]:
        """Update the resource in AWS. Return stored attributes."""
        raise NotImplementedError

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        """Delete the resource from AWS. Already-absent resources are not an error."""
        raise NotImplementedError

    def exists(self, ctx: EngineContext, prior: ResourceInstance) -> bool:
        return self.read(ctx, prior) is not None

    def import_state(
        self, ctx: EngineContext, resource_id: str, *, name: str, region: str | None
    ) -> dict[str, Any]:
        """Reconstruct stored attributes from a bare identifier.

        Raise ``NotFoundError`` if nothing exists under *resource_id*.
        """
        _ = ctx, resource_id, name, region
        raise NotImplementedError(f"{type(self).__name__} does not support import")
