"""
quill — CLI entrypoint.

Usage:
    quill install nginx
    quill configure nginx --config-set production -s nginx.port=8080
    quill start nginx --recursive
    quill uninstall nginx
    quill runlist nginx --os ubuntu
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import click

from quill import __version__
from quill.core.errors import ComposerError
from quill.core.models.action import LifecycleAction
from quill.core.observability.logging_config import setup_logging
from quill.ui.cli.common import fail, get_context, get_engine, get_registry


@click.group()
@click.version_option(version=__version__, prog_name="quill")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to .quillconf (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """quill — resolve, install and run provisioning systems."""
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
        level = os.environ.get("QUILL_LOG_LEVEL", "WARNING")

    setup_logging(level=level)


# ── Lifecycle actions ───────────────────────────────────────────

_PAST = {
    LifecycleAction.INSTALL: "Installed",
    LifecycleAction.CONFIGURE: "Configured",
    LifecycleAction.UPDATE: "Updated",
    LifecycleAction.START: "Started",
    LifecycleAction.UNINSTALL: "Uninstalled",
}


def _lifecycle_command(action: LifecycleAction) -> click.Command:
    @click.command(name=action.value, help=f"{action.value.capitalize()} systems and their runlist.")
    @click.argument("systems", nargs=-1, required=True)
    @click.option("--force", "-f", is_flag=True, help="Reinstall even if already installed.")
    @click.option("--recursive", "-r", is_flag=True, help="Apply non-recursive actions to dependencies too.")
    @click.option("--os", "os_name", default=None, help="Target OS (default: detected).")
    @click.option(
        "--config-set", "-s", "config_items", multiple=True,
        help="key=value override or a named registry config set (repeatable).",
    )
    @click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
    @click.pass_context
    def command(
        ctx: click.Context,
        systems: tuple[str, ...],
        force: bool,
        recursive: bool,
        os_name: str | None,
        config_items: tuple[str, ...],
        as_json: bool,
    ) -> None:
        ctx.obj["as_json"] = as_json
        engine = get_engine(ctx, os_name)
        try:
            members = engine.run(
                action,
                list(systems),
                force=force,
                recursive=recursive,
                config_items=config_items,
            )
        except ComposerError as e:
            fail(e)

        if as_json:
            click.echo(json.dumps([
                {"name": m.name, "version": m.version, "scripts": m.scripts}
                for m in members
            ], indent=2))
            return

        if not ctx.obj.get("quiet"):
            ran = [m for m in members if m.scripts]
            tags = ", ".join(m.tag for m in members) or "nothing"
            click.secho(f"✅ {_PAST[action]} {tags}", fg="green", bold=True)
            if not ran:
                click.echo("   No scripts needed to run.")

    return command


for _action in LifecycleAction:
    cli.add_command(_lifecycle_command(_action))


# ── Resolution ──────────────────────────────────────────────────


@cli.command()
@click.argument("systems", nargs=-1, required=True)
@click.option("--os", "os_name", default=None, help="Target OS (default: detected).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deps(ctx: click.Context, systems: tuple[str, ...], os_name: str | None, as_json: bool) -> None:
    """Show the dependency tree of systems."""
    from quill.core.composer.dependencies import DependencyGraphBuilder
    from quill.core.composer.format import hierarchy, render_tree

    context = get_context(ctx, os_name)
    builder = DependencyGraphBuilder(context, get_registry(ctx))
    try:
        tree = builder.dependencies(list(systems), context.os_name)
    except ComposerError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps({k: v.model_dump(mode="json") for k, v in tree.items()}, indent=2))
        return

    for node in tree.values():
        click.echo(render_tree(hierarchy(node.tag, node.dependencies)))
        if node.remote_dependencies:
            click.secho("   remote:", fg="cyan")
            for remote in node.remote_dependencies.values():
                click.echo(f"     • {remote.tag}")


@cli.command()
@click.argument("systems", nargs=-1, required=True)
@click.option("--os", "os_name", default=None, help="Target OS (default: detected).")
@click.option("--max-depth", type=int, default=None, help="Stop expanding below this depth.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def runlist(
    ctx: click.Context,
    systems: tuple[str, ...],
    os_name: str | None,
    max_depth: int | None,
    as_json: bool,
) -> None:
    """Show the install order for systems."""
    from quill.core.composer.dependencies import DependencyGraphBuilder
    from quill.core.composer.format import runlist_line

    context = get_context(ctx, os_name)
    builder = DependencyGraphBuilder(context, get_registry(ctx))
    try:
        members = builder.runlist(list(systems), context.os_name, max_depth)
    except ComposerError as e:
        fail(e)

    if as_json:
        click.echo(json.dumps([{"name": m.name, "version": m.version} for m in members], indent=2))
        return
    click.echo(runlist_line([m.tag for m in members]))


from quill.ui.cli.cache import cache
from quill.ui.cli.installed import installed
from quill.ui.cli.systems import configs, pack, publish, systems
from quill.ui.cli.watch import watch

cli.add_command(cache)
cli.add_command(installed)
cli.add_command(systems)
cli.add_command(configs)
cli.add_command(pack)
cli.add_command(publish)
cli.add_command(watch)


if __name__ == "__main__":
    cli()
