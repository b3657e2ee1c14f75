"""
CLI commands for installed systems.

Usage::

    quill installed list
    quill installed history nginx --json
"""

from __future__ import annotations

import json

import click

from quill.core.errors import ComposerError
from quill.ui.cli.common import fail, get_context, get_registry


def _store(ctx: click.Context):
    from quill.core.composer.cache import Cache
    from quill.core.composer.installed import InstallStore

    context = get_context(ctx)
    return InstallStore(context, Cache(context, get_registry(ctx)))


@click.group()
def installed() -> None:
    """Installed — systems in the active install directory."""


@installed.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def installed_list(ctx: click.Context, as_json: bool) -> None:
    """List installed systems."""
    try:
        records = _store(ctx).list()
    except ComposerError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps({
            name: {
                "version": r.version,
                "required": r.required,
                "path": r.path,
                "dangling": len(r.history.dangling()),
            }
            for name, r in records.items()
        }, indent=2))
        return

    current = {n: r for n, r in records.items() if r.installed}
    if not current:
        click.echo("No systems installed.")
        return

    click.secho(f"🧩 Installed systems: {len(current)}", fg="cyan", bold=True)
    for name, record in current.items():
        click.echo(f"   • {name}@{record.version}  ({record.required})")
        for entry in record.history.dangling():
            click.secho(
                f"     ⚠️  {entry.action.value} {entry.script or ''} never finished (seq {entry.seq})",
                fg="yellow",
            )


@installed.command("history")
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def installed_history(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show the history ledger of an installed system."""
    try:
        record = _store(ctx).read(name)
    except ComposerError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps(record.history.model_dump(mode="json", exclude_none=True), indent=2))
        return

    if not record.history.entries:
        click.echo(f"No history for {name}.")
        return

    for entry in record.history.entries:
        color = "white"
        if entry.phase.value == "end":
            color = "green" if entry.succeeded else "red"
        script = f" {entry.script}" if entry.script else ""
        click.secho(
            f"   {entry.seq:>4}  {entry.timestamp}  {entry.version}  "
            f"{entry.action.value}{script} {entry.phase.value}",
            fg=color,
        )
