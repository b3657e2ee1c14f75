"""
CLI command for the convergence watcher.

Usage::

    quill watch                 # poll forever
    quill watch --once          # one pass, then exit
    quill watch --interval 60 --recursive
"""

from __future__ import annotations

import json

import click

from quill.core.errors import ComposerError
from quill.ui.cli.common import fail, get_engine


@click.command()
@click.option("--interval", type=float, default=None, help="Seconds between passes.")
@click.option("--once", is_flag=True, help="Run a single pass and exit.")
@click.option("--recursive", "-r", is_flag=True, help="Also converge non-root installs.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON (with --once).")
@click.pass_context
def watch(ctx: click.Context, interval: float | None, once: bool, recursive: bool, as_json: bool) -> None:
    """Keep installed systems on the newest version their range allows."""
    from quill.core.composer.watcher import ConvergenceWatcher

    ctx.obj["as_json"] = as_json
    engine = get_engine(ctx)
    watcher = ConvergenceWatcher(engine, interval=interval, recursive=recursive)

    if once:
        try:
            updated = watcher.ensure_latest()
        except ComposerError as e:
            fail(e)
        if as_json:
            click.echo(json.dumps({"updated": updated}, indent=2))
        elif updated:
            click.secho(f"🔄 Updated {', '.join(updated)}", fg="green")
        else:
            click.echo("Everything is up to date.")
        return

    engine.bus.subscribe(
        "watch:latest",
        lambda e: click.secho(f"🔄 {e['key']} {e['data']['from']} → {e['data']['to']}", fg="green"),
    )
    click.secho(f"👀 Watching installed systems every {watcher.interval:.0f}s (Ctrl+C to stop)", fg="cyan")
    try:
        watcher.run_forever()
    except KeyboardInterrupt:
        watcher.stop()
        click.echo("Stopped.")
