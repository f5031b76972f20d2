"""Backoff, retry and polling helpers shared by all handlers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from aws_provisioner.core.errors import (
    ConflictError,
    FatalAPIError,
    OperationCanceled,
    TransientAPIError,
    WaitTimeoutError,
    classify_error,
)

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Collection

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff."""

    max_attempts: int = 8
    base_delay: float = 1.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Delay before retry number *attempt* (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


def sleep(seconds: float, cancel: threading.Event | None = None) -> None:
    """Sleep, waking early and raising if *cancel* gets set."""
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise OperationCanceled("Operation canceled")


def _check_canceled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCanceled("Operation canceled")


def call_with_retry(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    cancel: threading.Event | None = None,
    description: str = "API call",
    **classify_kwargs: Any,
) -> T:
    """Invoke *fn*, retrying transient and conflict failures.

    SDK exceptions are classified (see ``classify_error``) and re-raised as
    the matching ``APIError`` subtype once retries are exhausted or the
    error is not retryable.
    """
    attempt = 0
    while True:
        attempt += 1
        _check_canceled(cancel)
        try:
            return fn()
        except (ClientError, BotoCoreError) as exc:
            err = classify_error(exc, **classify_kwargs)
            if not isinstance(err, (TransientAPIError, ConflictError)):
                raise err from exc
            if attempt >= policy.max_attempts:
                logger.debug("%s failed after %d attempts: %s", description, attempt, err)
                raise err from exc
            delay = policy.delay(attempt)
            logger.debug(
                "%s: %s (attempt %d/%d), retrying in %.1fs",
                description,
                err,
                attempt,
                policy.max_attempts,
                delay,
            )
        sleep(delay, cancel)


def wait_for(
    refresh: Callable[[], tuple[T | None, str | None]],
    *,
    target: Collection[str | None],
    pending: Collection[str | None],
    timeout: float,
    interval: float = 2.0,
    cancel: threading.Event | None = None,
    description: str = "resource",
) -> T | None:
    """Poll *refresh* until it reports a state in *target*.

    *refresh* returns ``(object, state)``; ``state=None`` means the object
    is gone, so deletion waits pass ``target=[None]``. A state outside
    *target* and *pending* fails immediately.
    """
    deadline = time.monotonic() + timeout
    last_state: str | None = None
    while True:
        _check_canceled(cancel)
        obj, state = refresh()
        if state != last_state:
            logger.debug("%s state: %s", description, state)
        last_state = state
        if state in target:
            return obj
        if state not in pending:
            raise FatalAPIError(f"{description} entered unexpected state {state!r}")
        if time.monotonic() + interval > deadline:
            raise WaitTimeoutError(
                f"Timed out after {timeout:.0f}s waiting for {description} "
                f"(last state: {state!r})",
                last_state=state,
            )
        sleep(interval, cancel)
