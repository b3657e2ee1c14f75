"""
Shared CLI plumbing — building the composer from click context.

Commands never construct registries or contexts themselves; they ask
for them here so tests can inject both through ``obj``::

    runner.invoke(cli, ["install", "a"], obj={"context": ctx, "registry": reg})
"""

from __future__ import annotations

import sys

import click

from quill.adapters.base import Registry
from quill.core.context import ComposerContext
from quill.core.errors import ComposerError


def _config(ctx: click.Context):
    from quill.core.config.loader import ConfigError, load_config

    if "config" not in ctx.obj:
        try:
            ctx.obj["config"] = load_config(ctx.obj.get("config_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)
    return ctx.obj["config"]


def get_context(ctx: click.Context, os_name: str | None = None) -> ComposerContext:
    """The ComposerContext for this invocation (``--os`` applied)."""
    if "context" not in ctx.obj:
        ctx.obj["context"] = ComposerContext.from_config(_config(ctx))
    context: ComposerContext = ctx.obj["context"]
    if os_name:
        context = context.with_os(os_name)
    return context


def get_registry(ctx: click.Context) -> Registry:
    if "registry" not in ctx.obj:
        from quill.adapters.registry_client import HttpRegistry

        ctx.obj["registry"] = HttpRegistry.from_config(_config(ctx))
    return ctx.obj["registry"]


def get_engine(ctx: click.Context, os_name: str | None = None):
    """A LifecycleEngine whose script output is echoed to the terminal."""
    from quill.core.composer.lifecycle import LifecycleEngine
    from quill.core.observability.logging_config import log_events

    engine = LifecycleEngine(get_context(ctx, os_name), get_registry(ctx))
    log_events(engine.bus)
    if not ctx.obj.get("as_json"):
        engine.bus.subscribe("run:stdout", lambda e: click.echo(e["data"]["line"]))
        engine.bus.subscribe("run:stderr", lambda e: click.echo(e["data"]["line"], err=True))
    return engine


def fail(error: ComposerError | str) -> None:
    """Print an error the way every command does and exit 1."""
    click.secho(f"❌ {error}", fg="red", err=True)
    sys.exit(1)
