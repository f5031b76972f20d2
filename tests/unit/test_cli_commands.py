from __future__ import annotations

import logging
import re
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from aws_provisioner.cli import app
from aws_provisioner.config.loader import ConfigError
from aws_provisioner.core.errors import FatalAPIError, WaitTimeoutError
from aws_provisioner.core.state import ResourceInstance
from aws_provisioner.engine.errors import (
    AddressNotInStateError,
    ApplyError,
    ResourceImportError,
    ValidationError,
)
from aws_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

runner = CliRunner()

_META = PlanMetadata(
    stack="test",
    destroy=False,
    refresh=True,
    state_lineage="lineage-1",
    state_serial=0,
    state_digest="digest",
    config_digest="cdigest",
    engine_version="0.1.0",
)

_NOOP_PLAN = Plan(
    metadata=_META,
    changes=[
        ResourceChange(
            address="aws_prometheus_workspace.ok",
            resource_type="aws_prometheus_workspace",
            action=Action.NOOP,
        )
    ],
)

_CREATE_PLAN = Plan(
    metadata=_META,
    changes=[
        ResourceChange(
            address="aws_prometheus_workspace.main",
            resource_type="aws_prometheus_workspace",
            action=Action.CREATE,
            planned={"alias": "metrics", "region": "us-east-1"},
        )
    ],
)

_REPLACE_PLAN = Plan(
    metadata=_META,
    changes=[
        ResourceChange(
            address="aws_kms_replica_key.eu",
            resource_type="aws_kms_replica_key",
            action=Action.REPLACE,
            prior={"region": "eu-west-1"},
            planned={"region": "eu-central-1"},
            diff={"region": {"from": "eu-west-1", "to": "eu-central-1"}},
            replace_fields=["region"],
        )
    ],
)


def _strip_ansi(text: str) -> str:
    return re.sub(r"\x1b\[[0-9;]*m", "", text)


def _mock_config() -> MagicMock:
    cfg = MagicMock()
    cfg.stack = "test"
    cfg.state_path = Path(".aws-state.json")
    return cfg


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "aws-provisioner" in result.stdout

    def test_short_version_flag(self) -> None:
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert "aws-provisioner" in result.stdout


class TestPlanCommand:
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_no_changes_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["plan", "--no-color", "--config", "test.yaml"])
        assert result.exit_code == 0
        assert "No changes" in result.stdout
        mock_load.assert_called_once_with(Path("test.yaml"))

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_changes_exits_2(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 2
        assert "aws_prometheus_workspace.main" in result.stdout
        assert "Plan: 1 to add, 0 to change, 0 to destroy." in result.stdout

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_replace_is_shown(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _REPLACE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 2
        assert "must be replaced" in result.stdout
        assert "# forces replacement" in result.stdout
        assert "1 to add, 0 to change, 1 to destroy" in result.stdout

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_out_saves_plan(
        self, mock_load: MagicMock, mock_plan: MagicMock, tmp_path: Path
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        out_file = tmp_path / "plan.json"

        result = runner.invoke(app, ["plan", "--no-color", "--out", str(out_file)])
        assert result.exit_code == 2
        assert out_file.exists()
        assert "Plan saved" in result.stdout
        assert Plan.load(out_file).changes[0].address == "aws_prometheus_workspace.main"

    @patch("aws_provisioner.config.load")
    def test_config_error_exits_1(self, mock_load: MagicMock) -> None:
        mock_load.side_effect = ConfigError("bad config")

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_api_error_exits_1(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = FatalAPIError("AccessDeniedException: not authorized")

        result = runner.invoke(app, ["plan", "--no-color"])
        assert result.exit_code == 1
        assert "AWS error: AccessDeniedException" in result.output

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_no_refresh_flag(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        runner.invoke(app, ["plan", "--no-color", "--no-refresh"])
        mock_plan.assert_called_once()
        _, kwargs = mock_plan.call_args
        assert kwargs["refresh"] is False


class TestApplyCommand:
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_no_changes_message(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["apply", "--no-color"])
        assert result.exit_code == 0
        assert "No changes" in result.stdout

    @patch("aws_provisioner.config.apply")
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_auto_approve_skips_prompt(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.return_value = ApplyResult(applied=_CREATE_PLAN.changes)

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "Apply complete!" in result.stdout
        assert "1 added" in result.stdout

    @patch("aws_provisioner.config.apply")
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_saved_plan_file_is_applied(
        self,
        mock_load: MagicMock,
        mock_plan: MagicMock,
        mock_apply: MagicMock,
        tmp_path: Path,
    ) -> None:
        plan_file = tmp_path / "plan.json"
        _CREATE_PLAN.save(plan_file)
        mock_load.return_value = _mock_config()
        mock_apply.return_value = ApplyResult(applied=_CREATE_PLAN.changes)

        result = runner.invoke(app, ["apply", str(plan_file), "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        mock_plan.assert_not_called()
        applied_plan = mock_apply.call_args.args[0]
        assert applied_plan.changes[0].address == "aws_prometheus_workspace.main"

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_user_decline_aborts(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["apply", "--no-color"], input="n\n")
        assert result.exit_code == 1

    @patch("aws_provisioner.config.apply")
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_apply_error_shows_partial(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.side_effect = ApplyError(
            applied=[], address="aws_prometheus_workspace.main", message="API error"
        )

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "Apply failed" in result.output

    @patch("aws_provisioner.config.apply")
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_wait_timeout_is_reported(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN
        mock_apply.side_effect = WaitTimeoutError(
            "workspace did not become ACTIVE", last_state="CREATING"
        )

        result = runner.invoke(app, ["apply", "--no-color", "--auto-approve"])
        assert result.exit_code == 1
        assert "Timeout:" in result.output


class TestDestroyCommand:
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_no_resources_exits_0(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["destroy", "--no-color"])
        assert result.exit_code == 0
        assert "No resources to destroy" in result.stdout

    @patch("aws_provisioner.config.apply")
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_auto_approve_works(
        self, mock_load: MagicMock, mock_plan: MagicMock, mock_apply: MagicMock
    ) -> None:
        delete_plan = Plan(
            metadata=_META,
            changes=[
                ResourceChange(
                    address="aws_kms_key.old",
                    resource_type="aws_kms_key",
                    action=Action.DELETE,
                    prior={"description": "old key"},
                )
            ],
        )
        mock_load.return_value = _mock_config()
        mock_plan.return_value = delete_plan
        mock_apply.return_value = ApplyResult(applied=delete_plan.changes)

        result = runner.invoke(app, ["destroy", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "Apply complete!" in result.stdout
        assert mock_plan.call_args.kwargs["destroy"] is True


class TestRefreshCommand:
    _UPDATE_CHANGE = ResourceChange(
        address="aws_prometheus_workspace.main",
        resource_type="aws_prometheus_workspace",
        action=Action.UPDATE,
        prior={"alias": "old"},
        planned={"alias": "new"},
        diff={"alias": {"from": "old", "to": "new"}},
    )

    @staticmethod
    def _mock_state(n: int) -> MagicMock:
        state = MagicMock()
        state.resources = {f"aws_prometheus_workspace.w{i}": None for i in range(n)}
        return state

    @patch("aws_provisioner.config.save_state")
    @patch("aws_provisioner.config.refresh")
    @patch("aws_provisioner.config.load")
    def test_no_changes_exits_0(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([], self._mock_state(2))

        result = runner.invoke(app, ["refresh", "--no-color"])
        assert result.exit_code == 0
        assert "up-to-date" in result.stdout
        mock_save.assert_not_called()

    @patch("aws_provisioner.config.save_state")
    @patch("aws_provisioner.config.refresh")
    @patch("aws_provisioner.config.load")
    def test_auto_approve_skips_prompt(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([self._UPDATE_CHANGE], self._mock_state(1))

        result = runner.invoke(app, ["refresh", "--no-color", "--auto-approve"])
        assert result.exit_code == 0
        assert "State refreshed. 1 resource tracked." in result.stdout
        mock_save.assert_called_once()

    @patch("aws_provisioner.config.save_state")
    @patch("aws_provisioner.config.refresh")
    @patch("aws_provisioner.config.load")
    def test_user_decline_aborts(
        self, mock_load: MagicMock, mock_refresh: MagicMock, mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([self._UPDATE_CHANGE], self._mock_state(1))

        result = runner.invoke(app, ["refresh", "--no-color"], input="n\n")
        assert result.exit_code == 1
        mock_save.assert_not_called()

    @patch("aws_provisioner.config.save_state")
    @patch("aws_provisioner.config.refresh")
    @patch("aws_provisioner.config.load")
    def test_shows_drift_before_confirm(
        self, mock_load: MagicMock, mock_refresh: MagicMock, _mock_save: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_refresh.return_value = ([self._UPDATE_CHANGE], self._mock_state(1))

        result = runner.invoke(app, ["refresh", "--no-color", "--auto-approve"])
        assert "aws_prometheus_workspace.main" in result.stdout
        assert "Refresh: " in result.stdout
        assert "1 to change" in result.stdout


class TestDriftCommand:
    @patch("aws_provisioner.config.drift")
    @patch("aws_provisioner.config.load")
    def test_no_drift_exits_0(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = []

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 0
        assert "No drift detected" in result.stdout

    @patch("aws_provisioner.config.drift")
    @patch("aws_provisioner.config.load")
    def test_drift_shows_changes(self, mock_load: MagicMock, mock_drift: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_drift.return_value = [
            ResourceChange(
                address="aws_kms_key.primary",
                resource_type="aws_kms_key",
                action=Action.UPDATE,
                diff={"enable_key_rotation": {"from": True, "to": False}},
            )
        ]

        result = runner.invoke(app, ["drift", "--no-color"])
        assert result.exit_code == 0
        assert "Drift detected" in result.stdout
        assert "aws_kms_key.primary" in result.stdout
        assert "true -> false" in result.stdout


class TestImportCommand:
    @patch("aws_provisioner.config.import_resource")
    @patch("aws_provisioner.config.load")
    def test_import_prints_attributes(
        self, mock_load: MagicMock, mock_import: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_import.return_value = ResourceInstance(
            address="aws_prometheus_workspace.main",
            resource_type="aws_prometheus_workspace",
            name="main",
            attributes={"id": "ws-1234", "alias": "metrics"},
        )

        result = runner.invoke(
            app,
            ["import", "aws_prometheus_workspace.main", "ws-1234", "--no-color"],
        )
        assert result.exit_code == 0
        assert "Imported aws_prometheus_workspace.main from ws-1234." in result.stdout
        assert '"metrics"' in result.stdout
        assert mock_import.call_args.args[1:] == ("aws_prometheus_workspace.main", "ws-1234")
        assert mock_import.call_args.kwargs["region"] is None

    @patch("aws_provisioner.config.import_resource")
    @patch("aws_provisioner.config.load")
    def test_region_option_is_forwarded(
        self, mock_load: MagicMock, mock_import: MagicMock
    ) -> None:
        mock_load.return_value = _mock_config()
        mock_import.return_value = ResourceInstance(
            address="aws_kms_replica_key.eu",
            resource_type="aws_kms_replica_key",
            name="eu",
            attributes={"id": "mrk-1"},
        )

        result = runner.invoke(
            app,
            ["import", "aws_kms_replica_key.eu", "mrk-1", "--region", "eu-west-1", "--no-color"],
        )
        assert result.exit_code == 0
        assert mock_import.call_args.kwargs["region"] == "eu-west-1"

    @patch("aws_provisioner.config.import_resource")
    @patch("aws_provisioner.config.load")
    def test_import_error_exits_1(self, mock_load: MagicMock, mock_import: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_import.side_effect = ResourceImportError(
            "aws_kms_key.primary", "address is already managed in state"
        )

        result = runner.invoke(app, ["import", "aws_kms_key.primary", "1234", "--no-color"])
        assert result.exit_code == 1
        assert "Import of aws_kms_key.primary failed" in result.output


class TestStateCommands:
    _INST = ResourceInstance(
        address="aws_kms_key.primary",
        resource_type="aws_kms_key",
        name="primary",
        attributes={"id": "mrk-1234", "description": "primary"},
    )

    @patch("aws_provisioner.config.state_list")
    @patch("aws_provisioner.config.load")
    def test_list(self, mock_load: MagicMock, mock_list: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_list.return_value = [
            self._INST,
            ResourceInstance(
                address="aws_prometheus_workspace.main",
                resource_type="aws_prometheus_workspace",
                name="main",
                attributes={"id": "ws-1"},
            ),
        ]

        result = runner.invoke(app, ["state", "list", "--no-color"])
        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0].split() == ["aws_kms_key.primary", "mrk-1234"]
        assert lines[1].split() == ["aws_prometheus_workspace.main", "ws-1"]

    @patch("aws_provisioner.config.state_list")
    @patch("aws_provisioner.config.load")
    def test_list_empty(self, mock_load: MagicMock, mock_list: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_list.return_value = []

        result = runner.invoke(app, ["state", "list", "--no-color"])
        assert result.exit_code == 0
        assert "No resources tracked." in result.stdout

    @patch("aws_provisioner.config.state_show")
    @patch("aws_provisioner.config.load")
    def test_show(self, mock_load: MagicMock, mock_show: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_show.return_value = self._INST

        result = runner.invoke(app, ["state", "show", "aws_kms_key.primary", "--no-color"])
        assert result.exit_code == 0
        assert "aws_kms_key.primary:" in result.stdout
        assert '"mrk-1234"' in result.stdout

    @patch("aws_provisioner.config.state_show")
    @patch("aws_provisioner.config.load")
    def test_show_unknown_address(self, mock_load: MagicMock, mock_show: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_show.side_effect = AddressNotInStateError("aws_kms_key.nope")

        result = runner.invoke(app, ["state", "show", "aws_kms_key.nope", "--no-color"])
        assert result.exit_code == 1
        assert "No resource 'aws_kms_key.nope' in state" in result.output

    @patch("aws_provisioner.config.state_rm")
    @patch("aws_provisioner.config.load")
    def test_rm_auto_approve(self, mock_load: MagicMock, mock_rm: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_rm.return_value = self._INST

        result = runner.invoke(
            app, ["state", "rm", "aws_kms_key.primary", "--auto-approve", "--no-color"]
        )
        assert result.exit_code == 0
        assert "Removed aws_kms_key.primary (mrk-1234) from state." in result.stdout
        assert mock_rm.call_args.args[1] == "aws_kms_key.primary"

    @patch("aws_provisioner.config.state_rm")
    @patch("aws_provisioner.config.load")
    def test_rm_decline_keeps_state(self, mock_load: MagicMock, mock_rm: MagicMock) -> None:
        mock_load.return_value = _mock_config()

        result = runner.invoke(
            app, ["state", "rm", "aws_kms_key.primary", "--no-color"], input="n\n"
        )
        assert result.exit_code == 1
        mock_rm.assert_not_called()


class TestValidateCommand:
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_valid_config(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _NOOP_PLAN

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.stdout
        assert mock_plan.call_args.kwargs["refresh"] is False

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_validation_error(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.side_effect = ValidationError(
            ["Resource 'aws_kms_replica_key.eu' references unknown address 'aws_kms_key.x'"]
        )

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 1
        assert "Validation failed" in result.output
        assert "aws_kms_key.x" in result.output

    @patch("aws_provisioner.config.load")
    def test_config_error(self, mock_load: MagicMock) -> None:
        mock_load.side_effect = ConfigError("unknown field 'colour'")

        result = runner.invoke(app, ["validate", "--no-color"])
        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestNoColor:
    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_no_color_strips_ansi(self, mock_load: MagicMock, mock_plan: MagicMock) -> None:
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan", "--no-color"])
        assert "\x1b[" not in result.stdout

    @patch("aws_provisioner.config.plan")
    @patch("aws_provisioner.config.load")
    def test_no_color_env(
        self, mock_load: MagicMock, mock_plan: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("NO_COLOR", "1")
        mock_load.return_value = _mock_config()
        mock_plan.return_value = _CREATE_PLAN

        result = runner.invoke(app, ["plan"])
        assert "\x1b[" not in result.stdout
        assert "aws_prometheus_workspace.main" in _strip_ansi(result.stdout)


@pytest.fixture(autouse=False)
def _reset_pkg_logger():
    """Reset the package and SDK logger levels after each logging test."""
    yield
    logging.getLogger("aws_provisioner").setLevel(logging.NOTSET)
    logging.getLogger("botocore").setLevel(logging.NOTSET)


@pytest.mark.usefixtures("_reset_pkg_logger")
class TestConfigureLogging:
    """Unit-test ``_configure_logging`` by mocking ``logging.basicConfig``.

    Pytest's logging plugin installs a handler on the root logger, making
    ``basicConfig`` a no-op without ``force=True``, so the call args are
    asserted instead.  The root logger stays at WARNING and the desired
    level is scoped to the ``aws_provisioner`` logger.
    """

    @patch("logging.basicConfig")
    def test_verbose_flag_configures_info(self, mock_bc: MagicMock) -> None:
        from aws_provisioner.cli import _LOG_FORMAT, _configure_logging

        _configure_logging(1)
        mock_bc.assert_called_once_with(
            level=logging.WARNING,
            format=_LOG_FORMAT,
            stream=sys.stderr,
            force=True,
        )
        assert logging.getLogger("aws_provisioner").level == logging.INFO
        assert logging.getLogger("botocore").level == logging.WARNING

    @patch("logging.basicConfig")
    def test_double_verbose_configures_debug(self, mock_bc: MagicMock) -> None:
        from aws_provisioner.cli import _configure_logging

        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("aws_provisioner").level == logging.DEBUG
        assert logging.getLogger("botocore").level == logging.WARNING

    @patch("logging.basicConfig")
    def test_triple_verbose_enables_sdk_debug(self, mock_bc: MagicMock) -> None:
        from aws_provisioner.cli import _configure_logging

        _configure_logging(3)
        mock_bc.assert_called_once()
        assert logging.getLogger("botocore").level == logging.DEBUG

    @patch("logging.basicConfig")
    def test_no_verbose_stays_unconfigured(self, mock_bc: MagicMock) -> None:
        from aws_provisioner.cli import _configure_logging

        _configure_logging(0)
        mock_bc.assert_not_called()

    @patch("logging.basicConfig")
    def test_log_env_var(self, mock_bc: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        from aws_provisioner.cli import _configure_logging

        monkeypatch.setenv("AWS_PROVISIONER_LOG", "DEBUG")
        _configure_logging(0)
        mock_bc.assert_called_once()
        assert logging.getLogger("aws_provisioner").level == logging.DEBUG

    @patch("logging.basicConfig")
    def test_log_env_overrides_verbose(
        self, mock_bc: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from aws_provisioner.cli import _configure_logging

        monkeypatch.setenv("AWS_PROVISIONER_LOG", "WARNING")
        _configure_logging(2)
        mock_bc.assert_called_once()
        assert logging.getLogger("aws_provisioner").level == logging.WARNING

    @patch("logging.basicConfig")
    def test_invalid_log_env_warns_and_defaults_to_info(
        self,
        mock_bc: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        from aws_provisioner.cli import _configure_logging

        monkeypatch.setenv("AWS_PROVISIONER_LOG", "BOGUS")
        _configure_logging(0)
        mock_bc.assert_called_once()
        assert logging.getLogger("aws_provisioner").level == logging.INFO
        assert "invalid AWS_PROVISIONER_LOG level" in capsys.readouterr().err
