"""
CLI commands for the managed instance record.

Thin wrappers over ``src.core.use_cases.init_instance``.
"""

from __future__ import annotations

import json
import sys

import click


def _parse_params(values: tuple[str, ...]) -> dict[str, str]:
    params: dict[str, str] = {}
    for value in values:
        key, sep, val = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{value}'", param_hint="--param")
        params[key] = val
    return params


@click.group("instance")
def instance() -> None:
    """Instance — create the managed instance record."""


@instance.command("init")
@click.argument("name")
@click.option("--namespace", "-n", default="default", help="Target namespace.")
@click.option("--param", "-p", "params", multiple=True, help="Parameter override KEY=VALUE.")
@click.option("--no-deploy", is_flag=True, help="Don't start the deploy plan.")
@click.option("--force", is_flag=True, help="Replace an existing instance record.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def init(
    ctx: click.Context,
    name: str,
    namespace: str,
    params: tuple[str, ...],
    no_deploy: bool,
    force: bool,
    as_json: bool,
) -> None:
    """Create the instance NAME of the operator package."""
    from src.core.use_cases.init_instance import init_instance
    from src.core.use_cases.run_plan import ledger_recorder

    state_path = ctx.obj["state_path"]
    result = init_instance(
        name,
        state_path=state_path,
        namespace=namespace,
        package_dir=ctx.obj.get("package_dir"),
        parameters=_parse_params(params),
        deploy=not no_deploy,
        force=force,
        recorder=ledger_recorder(state_path),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    inst = result.instance
    assert inst is not None
    click.secho(f"✅ Instance {inst.namespace}/{inst.name} created", fg="green", bold=True)
    click.echo(f"   Operator: {inst.operator} {inst.operator_version}")
    click.echo(f"   State: {state_path}")
    if result.active_plan:
        click.echo(f"   Active plan: {result.active_plan}")


@instance.command("events")
@click.option("--limit", "-n", default=20, type=int, help="Number of recent events.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def events(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent plan events recorded for the instance."""
    from src.core.use_cases.run_plan import ledger_recorder

    ledger = ledger_recorder(ctx.obj["state_path"]).ledger
    entries = ledger.read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No events recorded.")
        return

    for entry in entries:
        color = "yellow" if entry.type == "Warning" else "white"
        click.secho(f"{entry.timestamp}  {entry.type:<7} {entry.reason:<20} ", fg=color, nl=False)
        click.echo(entry.message)
