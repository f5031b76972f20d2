"""Shared fixtures for acceptance tests against a live AWS account.

These tests create and destroy real (billable) resources, so they only run
with ``--e2e`` or ``AWS_PROVISIONER_E2E=1`` and working credentials.
"""

from __future__ import annotations

import contextlib
import logging
import os
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import boto3
import pytest
from botocore.exceptions import BotoCoreError, ClientError

from aws_provisioner.config import apply, plan
from aws_provisioner.config.schema import Config, ProviderConfig
from aws_provisioner.engine.errors import ApplyError

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path

    from aws_provisioner.engine.types import ApplyResult, Plan

logger = logging.getLogger(__name__)

_LICENSE_QUOTA_MESSAGE = "maximum allowed number of license configurations"

# ---------------------------------------------------------------------------
# pytest CLI options + hooks
# ---------------------------------------------------------------------------


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("e2e", "AWS acceptance test options")
    group.addoption(
        "--e2e",
        action="store_true",
        default=False,
        help="Run acceptance tests against live AWS (default: AWS_PROVISIONER_E2E env).",
    )
    group.addoption(
        "--e2e-region",
        default=None,
        help="Primary region (default: AWS_REGION env → us-east-1)",
    )
    group.addoption(
        "--e2e-alternate-region",
        default=None,
        help="Replica region (default: AWS_ALTERNATE_REGION env → us-west-2)",
    )
    group.addoption(
        "--e2e-third-region",
        default=None,
        help="Second replica region (default: AWS_THIRD_REGION env → eu-west-1)",
    )


def _e2e_enabled(config: pytest.Config) -> bool:
    return bool(config.getoption("--e2e")) or os.environ.get("AWS_PROVISIONER_E2E") == "1"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip acceptance tests unless explicitly enabled."""
    if _e2e_enabled(config):
        return
    skip = pytest.mark.skip(reason="acceptance tests need --e2e or AWS_PROVISIONER_E2E=1")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


# ---------------------------------------------------------------------------
# Session-scoped fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def aws_region(request: pytest.FixtureRequest) -> str:
    return request.config.getoption("--e2e-region") or os.environ.get("AWS_REGION", "us-east-1")


@pytest.fixture(scope="session")
def alternate_region(request: pytest.FixtureRequest) -> str:
    return request.config.getoption("--e2e-alternate-region") or os.environ.get(
        "AWS_ALTERNATE_REGION", "us-west-2"
    )


@pytest.fixture(scope="session")
def third_region(request: pytest.FixtureRequest) -> str:
    return request.config.getoption("--e2e-third-region") or os.environ.get(
        "AWS_THIRD_REGION", "eu-west-1"
    )


@pytest.fixture(scope="session")
def aws_session(aws_region: str) -> boto3.Session:
    """A boto3 session whose credentials have been checked against STS."""
    session = boto3.Session(region_name=aws_region)
    try:
        identity = session.client("sts").get_caller_identity()
    except (BotoCoreError, ClientError) as exc:
        pytest.skip(f"AWS credentials not usable: {exc}")
    logger.info("Running acceptance tests as %s", identity["Arn"])
    return session


# ---------------------------------------------------------------------------
# Config factory + cleanup
# ---------------------------------------------------------------------------


@pytest.fixture()
def suffix() -> str:
    return uuid4().hex[:8]


@pytest.fixture()
def make_config(
    aws_session: boto3.Session, aws_region: str, tmp_path: Path
) -> Generator[Callable[..., Config]]:
    """Build configs sharing one state file; destroy whatever is left afterwards."""
    _ = aws_session
    built: list[Config] = []

    def _make(
        *,
        kms_keys: list[Any] | None = None,
        kms_replica_keys: list[Any] | None = None,
        license_configurations: list[Any] | None = None,
        prometheus_workspaces: list[Any] | None = None,
        default_tags: dict[str, str] | None = None,
    ) -> Config:
        config = Config(
            stack="e2e",
            provider=ProviderConfig(region=aws_region, default_tags=default_tags or {}),
            state_path=tmp_path / ".aws-state.json",
            kms_keys=kms_keys or [],
            kms_replica_keys=kms_replica_keys or [],
            license_configurations=license_configurations or [],
            prometheus_workspaces=prometheus_workspaces or [],
        )
        built.append(config)
        return config

    yield _make

    if built:
        with contextlib.suppress(Exception):
            destroy_plan = plan(built[-1], destroy=True)
            apply(destroy_plan, built[-1])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def apply_or_skip_on_quota(plan_obj: Plan, config: Config) -> ApplyResult:
    """Apply, skipping the test when the account's license configuration quota is full."""
    try:
        return apply(plan_obj, config)
    except ApplyError as exc:
        if _LICENSE_QUOTA_MESSAGE in str(exc.__cause__ or exc):
            pytest.skip(f"license configuration quota reached: {exc}")
        raise


def assert_changes(plan_obj: Any, expected: dict[str, str]) -> None:
    """Assert that a plan contains exactly the expected actions, keyed by address."""
    from aws_provisioner.engine.types import Action

    actual = {c.address: c.action for c in plan_obj.changes}
    normalized = {
        address: (Action(action) if isinstance(action, str) else action)
        for address, action in expected.items()
    }
    assert actual == normalized, (
        f"Plan changes mismatch.\nExpected: {normalized}\nActual:   {actual}"
    )
