"""
CLI commands for system packages and the registry.

Usage::

    quill pack ./nginx
    quill publish ./nginx
    quill systems view nginx
    quill systems add-owner nginx alice
    quill configs set production nginx.port=8080
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from quill.core.errors import ComposerError
from quill.ui.cli.common import fail, get_registry


@click.command()
@click.argument("directory", default=".", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", type=click.Path(dir_okay=False), default=None, help="Tarball path.")
def pack(directory: str, output: str | None) -> None:
    """Pack a system directory into a tarball."""
    from quill.core.composer.package import package

    try:
        system, tarball = package(Path(directory), Path(output) if output else None)
    except ComposerError as e:
        fail(e)
    click.secho(f"📦 Packed {system.tag} → {tarball}", fg="green")


@click.command()
@click.argument("directory", default=".", type=click.Path(exists=True, file_okay=False))
@click.pass_context
def publish(ctx: click.Context, directory: str) -> None:
    """Pack a system directory and publish it to the registry."""
    import tempfile

    from quill.core.composer.package import publish as publish_system

    with tempfile.TemporaryDirectory(prefix="quill-publish-") as tmp:
        try:
            system = publish_system(
                Path(directory), get_registry(ctx), tarball=Path(tmp) / "system.tgz",
            )
        except ComposerError as e:
            fail(e)
    click.secho(f"🚀 Published {system.tag}", fg="green", bold=True)


# ── Registry systems ────────────────────────────────────────────


@click.group()
def systems() -> None:
    """Systems — records in the registry."""


@systems.command("view")
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def systems_view(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show a system's registry record."""
    from quill.core.composer.versions import sort_versions

    try:
        record = get_registry(ctx).get_system(name)
    except ComposerError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps(record.model_dump(mode="json", by_alias=True), indent=2))
        return

    click.secho(f"📋 {record.name}@{record.version}", fg="cyan", bold=True)
    if record.description:
        click.echo(f"   {record.description}")
    click.echo(f"   Versions: {', '.join(sort_versions(record.versions))}")
    latest = record.versions.get(record.version)
    if latest and latest.dependencies:
        click.echo("   Dependencies:")
        for dep, rng in latest.dependencies.items():
            click.echo(f"     • {dep}@{rng}")


@systems.command("add-owner")
@click.argument("name")
@click.argument("user")
@click.pass_context
def systems_add_owner(ctx: click.Context, name: str, user: str) -> None:
    """Grant a user ownership of a system."""
    try:
        get_registry(ctx).add_owner(name, user)
    except ComposerError as e:
        fail(e)
    click.secho(f"✅ {user} now owns {name}", fg="green")


@systems.command("remove-owner")
@click.argument("name")
@click.argument("user")
@click.pass_context
def systems_remove_owner(ctx: click.Context, name: str, user: str) -> None:
    """Revoke a user's ownership of a system."""
    try:
        get_registry(ctx).remove_owner(name, user)
    except ComposerError as e:
        fail(e)
    click.secho(f"✅ {user} no longer owns {name}", fg="green")


# ── Named config sets ───────────────────────────────────────────


@click.group()
def configs() -> None:
    """Configs — named config sets stored in the registry."""


@configs.command("list")
@click.pass_context
def configs_list(ctx: click.Context) -> None:
    """List config sets."""
    try:
        names = get_registry(ctx).list_configs()
    except ComposerError as e:
        fail(e)
    for name in names:
        click.echo(name)


@configs.command("get")
@click.argument("name")
@click.pass_context
def configs_get(ctx: click.Context, name: str) -> None:
    """Print a config set as JSON."""
    try:
        settings = get_registry(ctx).get_config(name)
    except ComposerError as e:
        fail(e)
    click.echo(json.dumps(settings, indent=2))


@configs.command("set")
@click.argument("name")
@click.argument("items", nargs=-1, required=True)
@click.pass_context
def configs_set(ctx: click.Context, name: str, items: tuple[str, ...]) -> None:
    """Merge key=value items into a config set (dotted keys nest)."""
    from quill.core.composer.config import deep_merge, parse_items
    from quill.core.errors import NotFound

    overrides, bare = parse_items(items)
    if bare:
        fail(f"Expected key=value, got: {', '.join(bare)}")

    registry = get_registry(ctx)
    try:
        try:
            current = registry.get_config(name)
        except NotFound:
            current = {}
        registry.set_config(name, deep_merge(current, overrides))
    except ComposerError as e:
        fail(e)
    click.secho(f"✅ Updated config set {name}", fg="green")


@configs.command("delete")
@click.argument("name")
@click.pass_context
def configs_delete(ctx: click.Context, name: str) -> None:
    """Delete a config set."""
    try:
        get_registry(ctx).delete_config(name)
    except ComposerError as e:
        fail(e)
    click.secho(f"🗑️  Deleted config set {name}", fg="green")
