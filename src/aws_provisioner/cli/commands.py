"""CLI command implementations."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal, NoReturn

import typer

from aws_provisioner.cli import app
from aws_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from aws_provisioner.config.schema import Config
    from aws_provisioner.engine.types import ApplyResult, Plan

DEFAULT_CONFIG = Path("aws-provisioner.yaml")

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the configuration file."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]

NoRefresh = Annotated[
    bool,
    typer.Option("--no-refresh", help="Skip refreshing state from AWS."),
]

state_app = typer.Typer(help="Inspect or edit the state file.", no_args_is_help=True)
app.add_typer(state_app, name="state")


def _use_color(no_color: bool) -> bool:
    return not (no_color or os.environ.get("NO_COLOR"))


def _fail(exc: Exception, color: bool) -> NoReturn:
    raise typer.Exit(handle_error(exc, color=color)) from exc


def _confirm(question: str, canceled_msg: str) -> None:
    try:
        typer.confirm(question, abort=True)
    except typer.Abort as e:
        typer.echo(canceled_msg, err=True)
        raise typer.Exit(1) from e


def _elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs}s" if minutes else f"{secs}s"


def _apply_with_progress(plan_obj: Plan, cfg: Config, *, color: bool) -> ApplyResult:
    """Apply *plan_obj*, printing one status line per finished resource.

    KMS replication and AMP workspace creation can take minutes, so each
    line reports how long the resource took.
    """
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from aws_provisioner.cli.formatting import _ACTION_STYLES
    from aws_provisioner.config import apply
    from aws_provisioner.engine.types import Action, ResourceChange

    console = Console(no_color=not color)
    total = sum(1 for c in plan_obj.changes if c.action != Action.NOOP)
    started: dict[str, float] = {}

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Applying", total=total)

        def on_progress(change: ResourceChange, event: Literal["start", "done"]) -> None:
            style = _ACTION_STYLES[change.action.value]
            if event == "start":
                started[change.address] = time.monotonic()
                progress.update(task, description=f"{change.address}: {style.progress_verb}...")
                return
            took = time.monotonic() - started.pop(change.address, time.monotonic())
            progress.console.print(f"  {change.address}: {style.done_verb} after {_elapsed(took)}")
            progress.advance(task)

        return apply(plan_obj, cfg, progress=on_progress)


def _show_and_apply(
    plan_obj: Plan,
    cfg: Config,
    *,
    color: bool,
    auto_approve: bool,
    question: str,
    nothing_to_do: str,
) -> None:
    from aws_provisioner.cli.formatting import (
        format_apply_summary,
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )

    if not has_actionable_changes(plan_obj):
        typer.echo(nothing_to_do)
        raise typer.Exit(0)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))
    typer.echo()

    if not auto_approve:
        _confirm(question, "Apply canceled.")

    try:
        result = _apply_with_progress(plan_obj, cfg, color=color)
    except Exception as exc:
        _fail(exc, color)

    typer.echo()
    typer.echo(format_apply_summary(result.summary(), color=color))


@app.command()
def plan(
    config: ConfigPath = DEFAULT_CONFIG,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Save plan to file."),
    ] = None,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Show changes required by the current configuration.

    Exits with code 2 when the plan contains changes.
    """
    from aws_provisioner.cli.formatting import (
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )
    from aws_provisioner.config import load
    from aws_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        plan_obj = plan_fn(load(config), refresh=not no_refresh)
    except Exception as exc:
        _fail(exc, color)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))

    if out is not None:
        plan_obj.save(out)
        typer.echo(f"\nPlan saved to {out}")

    if has_actionable_changes(plan_obj):
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    plan_file: Annotated[
        Path | None,
        typer.Argument(help="Saved plan file to apply."),
    ] = None,
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Create, update or replace resources to match the configuration."""
    from aws_provisioner.config import load
    from aws_provisioner.config import plan as plan_fn
    from aws_provisioner.engine.types import Plan

    color = _use_color(no_color)
    try:
        cfg = load(config)
        if plan_file is None:
            plan_obj = plan_fn(cfg, refresh=not no_refresh)
        else:
            plan_obj = Plan.load(plan_file)
    except Exception as exc:
        _fail(exc, color)

    _show_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you want to apply these changes?",
        nothing_to_do="No changes. Resources are up-to-date.",
    )


@app.command()
def destroy(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Destroy all managed resources.

    KMS keys are scheduled for deletion after their deletion window rather
    than removed immediately.
    """
    from aws_provisioner.config import load
    from aws_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg, destroy=True)
    except Exception as exc:
        _fail(exc, color)

    _show_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you really want to destroy all resources?",
        nothing_to_do="No resources to destroy.",
    )


@app.command(name="refresh")
def refresh_cmd(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Update the state file from what AWS currently reports."""
    from aws_provisioner.cli.formatting import changes_summary, format_changes, format_plan_summary
    from aws_provisioner.config import load, save_state
    from aws_provisioner.config import refresh as refresh_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        changes, state = refresh_fn(cfg)
    except Exception as exc:
        _fail(exc, color)

    if not changes:
        typer.echo("No changes. State is up-to-date with AWS.")
        raise typer.Exit(0)

    typer.echo(format_changes(changes, color=color))
    typer.echo()
    typer.echo(format_plan_summary(changes_summary(changes), color=color, header="Refresh"))
    typer.echo()

    if not auto_approve:
        _confirm("Do you want to update the state file?", "Refresh canceled.")

    save_state(cfg, state)
    count = len(state.resources)
    typer.echo(f"State refreshed. {count} resource{'s' if count != 1 else ''} tracked.")


@app.command()
def drift(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Report differences between the state file and AWS without writing anything."""
    from aws_provisioner.cli.formatting import format_changes
    from aws_provisioner.config import drift as drift_fn
    from aws_provisioner.config import load

    color = _use_color(no_color)
    try:
        changes = drift_fn(load(config))
    except Exception as exc:
        _fail(exc, color)

    if not changes:
        typer.echo("No drift detected. State is up-to-date with AWS.")
        raise typer.Exit(0)

    typer.echo("Drift detected:\n")
    typer.echo(format_changes(changes, color=color))


@app.command(name="import")
def import_cmd(
    address: Annotated[
        str,
        typer.Argument(help="Resource address, e.g. aws_kms_replica_key.eu."),
    ],
    resource_id: Annotated[
        str,
        typer.Argument(metavar="ID", help="AWS identifier (key id, ARN or workspace id)."),
    ],
    config: ConfigPath = DEFAULT_CONFIG,
    region: Annotated[
        str | None,
        typer.Option("--region", help="Region holding the object (defaults to the provider's)."),
    ] = None,
    no_color: NoColor = False,
) -> None:
    """Bring an existing AWS object under management."""
    from aws_provisioner.cli.formatting import format_instance, styler
    from aws_provisioner.config import import_resource, load

    color = _use_color(no_color)
    try:
        inst = import_resource(load(config), address, resource_id, region=region)
    except Exception as exc:
        _fail(exc, color)

    typer.echo(styler(color)(f"Imported {address} from {resource_id}.", fg="green"))
    typer.echo(format_instance(inst))


@app.command()
def validate(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Check the configuration and references without calling AWS."""
    from aws_provisioner.cli.formatting import styler
    from aws_provisioner.config import load
    from aws_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        plan_fn(load(config), refresh=False)
    except Exception as exc:
        _fail(exc, color)

    typer.echo(styler(color)("Configuration is valid.", fg="green"))


@state_app.command(name="list")
def state_list_cmd(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """List tracked resource addresses with their AWS ids."""
    from aws_provisioner.config import load, state_list

    color = _use_color(no_color)
    try:
        instances = state_list(load(config))
    except Exception as exc:
        _fail(exc, color)

    if not instances:
        typer.echo("No resources tracked.")
        return
    width = max(len(inst.address) for inst in instances)
    for inst in instances:
        typer.echo(f"{inst.address.ljust(width)}  {inst.resource_id or '-'}")


@state_app.command(name="show")
def state_show_cmd(
    address: Annotated[str, typer.Argument(help="Resource address to show.")],
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Show the recorded attributes of one resource."""
    from aws_provisioner.cli.formatting import format_instance
    from aws_provisioner.config import load, state_show

    color = _use_color(no_color)
    try:
        inst = state_show(load(config), address)
    except Exception as exc:
        _fail(exc, color)

    typer.echo(format_instance(inst))


@state_app.command(name="rm")
def state_rm_cmd(
    address: Annotated[str, typer.Argument(help="Resource address to forget.")],
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Stop managing a resource. The AWS object itself is left in place."""
    from aws_provisioner.config import load, state_rm

    color = _use_color(no_color)
    try:
        cfg = load(config)
    except Exception as exc:
        _fail(exc, color)

    if not auto_approve:
        _confirm(f"Remove {address} from state? The AWS object is kept.", "State unchanged.")

    try:
        inst = state_rm(cfg, address)
    except Exception as exc:
        _fail(exc, color)

    typer.echo(f"Removed {address} ({inst.resource_id or 'no id'}) from state.")
