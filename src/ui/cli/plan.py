"""
CLI commands for plan execution.

Thin wrappers over ``src.core.use_cases.run_plan``.
"""

from __future__ import annotations

import json
import sys
import time

import click

_STATE_COLORS = {
    "COMPLETE": "green",
    "IN_PROGRESS": "cyan",
    "PENDING": "white",
    "NEVER_RUN": "white",
    "ERROR": "red",
    "FATAL_ERROR": "red",
    "SUSPEND": "yellow",
}

_STATE_ICONS = {
    "COMPLETE": "✓",
    "IN_PROGRESS": "…",
    "PENDING": "·",
    "NEVER_RUN": " ",
    "ERROR": "✗",
    "FATAL_ERROR": "✗",
    "SUSPEND": "⏸",
}


def _echo_state(indent: str, name: str, state: str, message: str = "") -> None:
    icon = _STATE_ICONS.get(state, "?")
    click.secho(f"{indent}{icon} {name} ", fg=_STATE_COLORS.get(state, "white"), nl=False)
    click.echo(f"[{state}]" + (f"  {message}" if message else ""))


@click.group("plan")
def plan() -> None:
    """Plans — start, run one pass, show status."""


@plan.command("start")
@click.argument("name")
@click.option("--force", is_flag=True, help="Supersede a plan that is still in flight.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def start(ctx: click.Context, name: str, force: bool, as_json: bool) -> None:
    """Make NAME the instance's active plan."""
    from src.core.use_cases.run_plan import start_plan

    result = start_plan(
        name,
        state_path=ctx.obj["state_path"],
        package_dir=ctx.obj.get("package_dir"),
        force=force,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if result.superseded:
        click.secho(f"⚠️  Superseded plan {result.superseded}", fg="yellow")
    click.secho(f"▶ Plan {name} started", fg="green", bold=True)
    click.echo(f"   Execution: {result.execution_id}")


@plan.command("run")
@click.option("--fake", is_flag=True, help="Use an in-memory cluster (no kubectl).")
@click.option("--context", "kube_context", default=None, help="kubectl context to use.")
@click.option("--passes", default=1, type=click.IntRange(min=1), help="Maximum passes to run.")
@click.option("--interval", default=2.0, type=float, help="Seconds between passes.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    fake: bool,
    kube_context: str | None,
    passes: int,
    interval: float,
    as_json: bool,
) -> None:
    """Run engine passes over the active plan and save its status.

    Stops early once a further pass would leave the status unchanged.
    """
    from src.adapters.kubectl import KubectlClient
    from src.adapters.mock import FakeCluster
    from src.core.use_cases.run_plan import run_pass

    client = FakeCluster() if fake else KubectlClient(context=kube_context)

    result = None
    for attempt in range(passes):
        if attempt:
            time.sleep(interval)
        result = run_pass(
            state_path=ctx.obj["state_path"],
            client=client,
            package_dir=ctx.obj.get("package_dir"),
        )
        if result.error or result.execution is None:
            break
        if result.execution.settled:
            break
    assert result is not None

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    execution = result.execution
    assert execution is not None
    mode_label = "[fake] " if fake else ""
    click.secho(f"\n⚡ {mode_label}plan {result.plan}", fg="cyan", bold=True)

    if ctx.obj.get("verbose"):
        for outcome in execution.outcomes:
            marker = "✓" if outcome.healthy else "…"
            click.echo(f"   {marker} {outcome.action:<8} {outcome.key}")
            if outcome.message:
                click.echo(f"     │ {outcome.message}")

    status = execution.status
    _echo_state("   ", status.name, str(status.state), status.message)
    if execution.error:
        click.echo()
        click.secho(f"   {execution.error}", fg="red")
        sys.exit(1)
    click.echo()


@plan.command("status")
@click.argument("name", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, name: str | None, as_json: bool) -> None:
    """Show the status tree of every plan, or of plan NAME."""
    from src.core.use_cases.run_plan import get_plan_status

    result = get_plan_status(ctx.obj["state_path"], plan_name=name)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    instance = result.instance
    assert instance is not None
    click.secho(f"\n📋 {instance.namespace}/{instance.name}", fg="cyan", bold=True)
    click.echo(f"   Operator: {instance.operator} {instance.operator_version}")
    click.echo(f"   Active plan: {instance.active_plan or '-'}")

    for plan_status in result.plans:
        click.echo()
        _echo_state("   ", f"{plan_status.name} ({plan_status.strategy})",
                    str(plan_status.state), plan_status.message)
        for phase in plan_status.phases.values():
            _echo_state("     ", f"{phase.name} ({phase.strategy})",
                        str(phase.state), phase.message)
            for step in phase.steps.values():
                _echo_state("       ", step.name, str(step.state), step.message)
    click.echo()
