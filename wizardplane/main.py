"""
wizardplane — CLI entrypoint.

Usage:
    python -m wizardplane.main --help
    wizardplane status
    wizardplane config get network.proxy
    wizardplane env set ANTHROPIC_BASE_URL=https://api.example.com

Every command goes through the gateway with the ``app://cli`` origin,
exactly like a call from the UI process.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import click

from wizardplane import __version__
from wizardplane.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="wizardplane")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to wizard.yml (default: WIZ_CONFIG or auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """wizardplane — setup wizard control-plane."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("WIZ_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("WIZ_LOG_FILE"),
        log_file_level=os.environ.get("WIZ_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── Helpers ─────────────────────────────────────────────────────


def _control_plane(ctx: click.Context):  # type: ignore[no-untyped-def]
    """Build the session once per CLI invocation."""
    cp = ctx.obj.get("control_plane")
    if cp is not None:
        return cp

    from wizardplane.core.config.loader import load_settings
    from wizardplane.core.control_plane import ControlPlane
    from wizardplane.core.errors import ConfigError

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    cp = ctx.obj["control_plane"] = ControlPlane(settings)
    ctx.call_on_close(cp.close)
    return cp


def _invoke(ctx: click.Context, channel: str, payload: dict[str, Any] | None = None) -> Any:
    """Gateway call as the CLI origin; errors exit 1."""
    from wizardplane.core.errors import WizardError
    from wizardplane.core.gateway import CLI_ORIGIN

    try:
        return _control_plane(ctx).gateway.invoke(channel, CLI_ORIGIN, payload or {})
    except WizardError as e:
        click.secho(f"❌ {e.kind}: {e.message}", fg="red", err=True)
        sys.exit(1)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


# ── status ──────────────────────────────────────────────────────


_STATUS_MARK = {
    "pending": ("○", "white"),
    "running": ("◐", "cyan"),
    "succeeded": ("✓", "green"),
    "failed": ("✗", "red"),
    "skipped": ("↷", "yellow"),
}


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the wizard steps and navigation."""
    nav = _invoke(ctx, "navigation.state")
    steps = _invoke(ctx, "step.list")

    if as_json:
        _echo_json({"navigation": nav, "steps": steps})
        return

    if not ctx.obj.get("quiet"):
        click.secho(f"\n🧭 Wizard — {nav['progressPercentage']}% complete", fg="cyan", bold=True)
        click.echo(f"   Current step: {nav['currentStepId']}")
        click.echo()

    flow = None
    for step in steps:
        if step.get("flowId") != flow:
            flow = step.get("flowId")
            click.secho(f"   {flow}", fg="white", bold=True)
        mark, color = _STATUS_MARK.get(step["status"], ("?", "white"))
        optional = " (optional)" if step.get("isOptional") else ""
        click.secho(f"     {mark} ", fg=color, nl=False)
        click.echo(f"{step['id']}{optional}  — {step['title']}")

    click.echo()


# ── serve ───────────────────────────────────────────────────────


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", default=8765, type=int, help="Port number.")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Serve the gateway to the UI process over local HTTP."""
    from wizardplane.ui.web.server import create_app, run_server

    cp = _control_plane(ctx)
    app = create_app(cp)
    debug = ctx.obj.get("debug", False)

    click.echo()
    click.secho("⚡ wizardplane — control-plane", bold=True)
    click.echo(f"   Gateway:   http://{host}:{port}/api/invoke/<channel>")
    click.echo(f"   Events:    http://{host}:{port}/api/events")
    click.echo(f"   Home:      {cp.settings.home}")
    if cp.settings.mock_adapters:
        click.secho("   Mode: mock adapters (no real installs)", fg="yellow")
    click.echo()

    run_server(app, host=host, port=port, debug=debug)


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Shared configuration catalog."""


@config.command("get")
@click.argument("entry_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_get(ctx: click.Context, entry_id: str, as_json: bool) -> None:
    """Show one catalog entry."""
    entry = _invoke(ctx, "config.get", {"id": entry_id})

    if as_json:
        _echo_json(entry)
        return

    click.secho(f"{entry['id']}", fg="cyan", bold=True)
    click.echo(f"   {entry['description']}")
    click.echo(f"   owner: {entry['owner']} ({entry['sourceModule']})")
    click.echo(f"   value: {json.dumps(entry['value'])}")


@config.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_list(ctx: click.Context, as_json: bool) -> None:
    """List catalog entries."""
    entries = _invoke(ctx, "config.list")

    if as_json:
        _echo_json(entries)
        return

    for entry in entries:
        click.echo(f"{entry['id']:<40} {entry['description']}")


# ── workflow ────────────────────────────────────────────────────


@cli.group()
def workflow() -> None:
    """Workflow map and version sync."""


@workflow.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def workflow_list(ctx: click.Context, as_json: bool) -> None:
    """List flows and the workflow version."""
    data = _invoke(ctx, "workflow.list")

    if as_json:
        _echo_json(data)
        return

    click.secho(f"Workflow version {data['version']}", bold=True)
    for flow_id in data["flows"]:
        click.echo(f"   • {flow_id}")


@workflow.command("sync")
@click.argument("flow_id")
@click.option("--version", "client_version", default="", help="Version the client has cached.")
@click.pass_context
def workflow_sync(ctx: click.Context, flow_id: str, client_version: str) -> None:
    """Check a cached flow version against the server (JSON output)."""
    _echo_json(_invoke(ctx, "workflow.sync", {"flowId": flow_id, "version": client_version}))


# ── env ─────────────────────────────────────────────────────────


@cli.group()
def env() -> None:
    """Environment variables (process + shell startup files)."""


@env.command("get")
@click.argument("keys", nargs=-1, required=True)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def env_get(ctx: click.Context, keys: tuple[str, ...], as_json: bool) -> None:
    """Resolve variables from the process or shell files."""
    found = _invoke(ctx, "env.get", {"keys": list(keys)})

    if as_json:
        _echo_json(found)
        return

    for key, var in found.items():
        if var is None:
            click.secho(f"   ✗ {key}", fg="red", nl=False)
            click.echo("  (not set)")
        else:
            where = var.get("path") or var["source"]
            click.secho(f"   ✓ {key}", fg="green", nl=False)
            click.echo(f"={var['value']}  ← {where}")


@env.command("set")
@click.argument("assignments", nargs=-1, required=True)
@click.pass_context
def env_set(ctx: click.Context, assignments: tuple[str, ...]) -> None:
    """Persist KEY=VALUE pairs to the shell startup file."""
    variables: dict[str, str] = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="ASSIGNMENTS")
        variables[key] = value

    result = _invoke(ctx, "env.set", {"variables": variables})

    click.secho(f"✅ Saved to {result['target']}", fg="green")
    if result.get("updated"):
        click.echo(f"   updated:  {', '.join(result['updated'])}")
    if result.get("appended"):
        click.echo(f"   appended: {', '.join(result['appended'])}")
    warning = result.get("warning")
    if warning:
        click.secho(f"⚠️  {warning['message']}", fg="yellow")


@env.command("remove")
@click.argument("keys", nargs=-1, required=True)
@click.pass_context
def env_remove(ctx: click.Context, keys: tuple[str, ...]) -> None:
    """Remove variables from the process and every shell file."""
    result = _invoke(ctx, "env.remove", {"keys": list(keys)})

    if result.get("removedFrom"):
        for path in result["removedFrom"]:
            click.secho(f"   ✓ {path}", fg="green")
    else:
        click.echo("   Nothing to remove.")

    failures = result.get("failures") or []
    for failure in failures:
        click.secho(f"   ✗ {failure['message']}", fg="red")
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    cli()
