"""
CLI commands for the local system cache.

Usage::

    quill cache list
    quill cache list --json
    quill cache clean nginx mysql@5.5.0
    quill cache clean
"""

from __future__ import annotations

import json

import click

from quill.ui.cli.common import get_context, get_registry


def _cache(ctx: click.Context):
    from quill.core.composer.cache import Cache

    return Cache(get_context(ctx), get_registry(ctx))


@click.group()
def cache() -> None:
    """Cache — downloaded system tarballs."""


@cache.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def cache_list(ctx: click.Context, as_json: bool) -> None:
    """List cached systems and versions."""
    inventory = _cache(ctx).list()

    if as_json:
        click.echo(json.dumps(inventory, indent=2))
        return

    if not inventory:
        click.echo("No systems in cache.")
        return

    click.secho(f"📦 Cached systems: {len(inventory)}", fg="cyan", bold=True)
    for name, versions in inventory.items():
        click.echo(f"   • {name}  {', '.join(versions)}")


@cache.command("clean")
@click.argument("systems", nargs=-1)
@click.pass_context
def cache_clean(ctx: click.Context, systems: tuple[str, ...]) -> None:
    """Remove cached systems (all of them if none are named)."""
    removed = _cache(ctx).clean(list(systems) or None)
    if not removed:
        click.echo("Nothing to clean.")
        return
    click.secho(f"🧹 Removed {len(removed)} cached system(s)", fg="green")
    for tag in removed:
        click.echo(f"   • {tag}")
