"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from aws_provisioner.config import load
from aws_provisioner.core import AWSProvider
from aws_provisioner.core import retry as retry_module
from aws_provisioner.core.errors import OperationCanceled
from aws_provisioner.engine.handlers import EngineContext

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable
    from pathlib import Path

    from aws_provisioner.config.schema import Config

_AWS_ENV_VARS = (
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "AWS_PROFILE",
    "AWS_ENDPOINT_URL",
    "AWS_DEFAULT_TAGS",
    "AWS_MAX_ATTEMPTS",
    "AWS_PROVISIONER_LOG",
    "AWS_PROVISIONER_MAX_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def _clean_aws_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove AWS_* env vars so unit tests don't leak account config."""
    for var in _AWS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Replace backoff/poll sleeps with a recorder that still honours cancellation."""
    recorded: list[float] = []

    def _sleep(seconds: float, cancel: threading.Event | None = None) -> None:
        recorded.append(seconds)
        if cancel is not None and cancel.is_set():
            raise OperationCanceled("Operation canceled")

    monkeypatch.setattr(retry_module, "sleep", _sleep)
    return recorded


def client_error(
    code: str, message: str = "", *, operation: str = "Operation", status: int = 400
) -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


@pytest.fixture
def make_client_error() -> Callable[..., ClientError]:
    return client_error


@pytest.fixture
def session() -> MagicMock:
    """Fake ``boto3.Session`` handing out one MagicMock client per (service, region)."""
    clients: dict[tuple[str, str | None], MagicMock] = {}

    def _client(service: str, region_name: str | None = None, **_kwargs: Any) -> MagicMock:
        key = (service, region_name)
        if key not in clients:
            clients[key] = MagicMock(name=f"{service}@{region_name}")
        return clients[key]

    fake = MagicMock()
    fake.client.side_effect = _client
    fake.clients = clients
    return fake


@pytest.fixture
def provider(session: MagicMock) -> AWSProvider:
    return AWSProvider.from_session(session, region="us-east-1", max_attempts=3)


@pytest.fixture
def ctx(provider: AWSProvider) -> EngineContext:
    return EngineContext(provider=provider, stack="test")


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make
