"""Local JSON state: what this stack has provisioned, and where."""

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import uuid
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

STATE_VERSION = 1

# State holds key policies and account ARNs.
_STATE_FILE_MODE = 0o600


class StateFormatError(ValueError):
    """The state file was written by an incompatible version."""


def _digest(obj: Any) -> str:
    payload = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """SHA-256 over the canonical JSON encoding of *attrs*."""
    return _digest(dict(attrs))


class ResourceInstance(BaseModel):
    """One provisioned AWS object as last observed.

    ``attributes`` carries both the configured arguments and the computed
    values AWS returned (``id``, ``arn``, ``tags_all`` ...).  Arguments
    AWS never reports back, such as a KMS deletion window, are kept here
    from the last apply.
    """

    address: str
    resource_type: str
    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def resource_id(self) -> str | None:
        """Provider-assigned identifier (immutable once created)."""
        return self.attributes.get("id")

    @property
    def region(self) -> str | None:
        """Region the object lives in, as recorded at create or import."""
        return self.attributes.get("region")


class State(BaseModel):
    """State file for one stack.

    ``serial`` increases on every write and ``lineage`` identifies the
    file's history; together they let a saved plan detect that state moved
    underneath it.
    """

    version: int = STATE_VERSION
    stack: str
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resources: dict[str, ResourceInstance] = Field(default_factory=dict)

    def save(self, path: Path) -> None:
        """Atomically replace *path*, keeping the previous file as ``<path>.backup``."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with contextlib.suppress(FileNotFoundError):
            _write_private(Path(f"{path}.backup"), path.read_bytes())

        content = json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"
        _write_private(path, content.encode("utf-8"))
        logger.debug("State saved: stack=%s serial=%d path=%s", self.stack, self.serial, path)

    @classmethod
    def load(cls, path: Path) -> "State":
        raw = json.loads(path.read_text(encoding="utf-8"))
        version = raw.get("version", STATE_VERSION) if isinstance(raw, dict) else None
        if version != STATE_VERSION:
            raise StateFormatError(
                f"{path}: unsupported state version {version!r} (expected {STATE_VERSION})"
            )
        state = cls.model_validate(raw)
        logger.debug("State loaded from %s (%d resources)", path, len(state.resources))
        return state

    @classmethod
    def load_or_create(cls, path: Path, stack: str) -> "State":
        if path.exists():
            return cls.load(path)
        logger.debug("No state at %s; starting empty state for stack %s", path, stack)
        return cls(stack=stack)


def _write_private(path: Path, data: bytes) -> None:
    """Write *data* through a temp file in the same directory, then rename."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    tmp = Path(tmp_name)
    try:
        os.fchmod(fd, _STATE_FILE_MODE)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(path)
    finally:
        with contextlib.suppress(FileNotFoundError):
            tmp.unlink()


def compute_state_digest(state: State) -> str:
    """Digest of everything a plan depends on.

    Timestamps are left out so a refresh that changes nothing does not make
    saved plans stale.
    """
    return _digest(
        {
            "version": state.version,
            "stack": state.stack,
            "lineage": state.lineage,
            "serial": state.serial,
            "resources": [
                [address, inst.resource_type, inst.attributes_hash, sorted(inst.dependencies)]
                for address, inst in sorted(state.resources.items())
            ],
        }
    )
