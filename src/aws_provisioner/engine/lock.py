"""Local state locking.

A sibling ``<state>.lock`` file is held with ``fcntl.flock`` for the
duration of any state-writing command. The holder writes its pid and the
time it took the lock into the file, so a second process that times out
can say who is in the way.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from aws_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class StateLock:
    """Exclusive lock for a local state file.

    ``timeout=None`` blocks until the lock is free; otherwise acquisition
    is retried every ``poll_interval`` seconds and ``StateLockError`` is
    raised once *timeout* elapses.
    """

    def __init__(
        self,
        state_path: Path,
        *,
        timeout: float | None = 30.0,
        poll_interval: float = 0.2,
    ) -> None:
        self._lock_path = Path(f"{state_path}.lock")
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._file: IO[str] | None = None

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    def __enter__(self) -> StateLock:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = self._lock_path.open("a+", encoding="utf-8")
        try:
            self._acquire(handle)
        except BaseException:
            handle.close()
            raise
        self._file = handle
        self._write_holder(handle)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is None:
            return
        try:
            self._file.truncate(0)
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None

    def _acquire(self, handle: IO[str]) -> None:
        if self._timeout is None:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            return

        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise StateLockError(self._busy_message()) from None
                logger.debug("State lock %s is busy, waiting", self._lock_path)
                time.sleep(self._poll_interval)
            except OSError as e:
                raise StateLockError(f"Cannot lock {self._lock_path}: {e}") from e

    def _write_holder(self, handle: IO[str]) -> None:
        handle.seek(0)
        handle.truncate(0)
        json.dump({"pid": os.getpid(), "acquired_at": datetime.now(UTC).isoformat()}, handle)
        handle.flush()

    def holder(self) -> dict[str, Any] | None:
        """Info written by the current holder, if any."""
        try:
            text = self._lock_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return json.loads(text) if text.strip() else None
        except json.JSONDecodeError:
            return None

    def _busy_message(self) -> str:
        info = self.holder()
        msg = f"State is locked ({self._lock_path})"
        if info:
            msg += f" by pid {info.get('pid')} since {info.get('acquired_at')}"
        return msg
