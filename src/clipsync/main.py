"""CLI handling for clipsync.

This module provides the command-line interface for clipsync, handling
argument parsing via click, logging configuration, and dispatching to the
sync engine, the relay server or the relay diagnostics.

Usage:
    clipsync sync --connect HOST:PORT | --listen HOST:PORT | --relay URL
    clipsync relay [--host HOST] [--port PORT] [--max-history N]
    clipsync health URL
    clipsync history URL [--limit N] [--offset N] [--source ID] [--type TYPE]
    clipsync search URL QUERY [--limit N]
    clipsync clear URL [--yes]
    clipsync stats URL
    clipsync config [--show | --init [--force]]
"""

import asyncio
import sys
from pathlib import Path

import click

from clipsync.clipboard_backend import BackendKind
from clipsync.config import SyncConfig, load_config, render_config, write_default_config
from clipsync.errors import ConfigError, FatalError, ProtocolError, TransportError
from clipsync.main_logging import configure_logging
from clipsync.main_options import MutuallyExclusiveOption, require_one_of
from clipsync.models import ContentType

_MODES = ["connect", "listen", "relay"]


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def _load(config_path: str | None) -> SyncConfig:
    try:
        return load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        _fail(e)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--log-file", type=click.Path(dir_okay=False), help="Also log to this file")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="TOML config file (default: $XDG_CONFIG_HOME/clipsync/config.toml)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, log_file: str | None, config_path: str | None) -> None:
    """Keep clipboards in sync between machines."""
    configure_logging(verbose, log_file)
    ctx.obj = {"config_path": config_path}


@main.command()
@click.option(
    "--connect",
    metavar="HOST:PORT",
    cls=MutuallyExclusiveOption,
    exclusive_with=["listen", "relay"],
    help="Dial a peer over a duplex stream",
)
@click.option(
    "--listen",
    metavar="HOST:PORT",
    cls=MutuallyExclusiveOption,
    exclusive_with=["connect", "relay"],
    help="Accept one peer at a time over a duplex stream",
)
@click.option(
    "--relay",
    metavar="URL",
    cls=MutuallyExclusiveOption,
    exclusive_with=["connect", "listen"],
    help="Poll and submit to a relay server",
)
@click.option("--poll-interval", type=click.IntRange(min=1), help="Clipboard poll interval in ms")
@click.option("--heartbeat-interval", type=click.IntRange(min=1), help="Heartbeat interval in ms")
@click.option("--reconnect-delay", type=click.IntRange(min=0), help="Reconnect delay in ms")
@click.option("--max-content-size", type=click.IntRange(min=1), help="Largest payload in bytes")
@click.option("--source-id", help="Identifier stamped on outgoing updates (default: hostname)")
@click.option(
    "--backend",
    type=click.Choice([kind.value for kind in BackendKind]),
    help="Force a clipboard backend instead of probing",
)
@click.pass_context
def sync(
    ctx: click.Context,
    connect: str | None,
    listen: str | None,
    relay: str | None,
    poll_interval: int | None,
    heartbeat_interval: int | None,
    reconnect_delay: int | None,
    max_content_size: int | None,
    source_id: str | None,
    backend: str | None,
) -> None:
    """Synchronize the local clipboard with a peer or relay."""
    values = {"connect": connect, "listen": listen, "relay": relay}
    file_config = _load(ctx.obj["config_path"])
    # A [client] server address in the config file implies --connect.
    if all(v is None for v in values.values()) and file_config.peer_address != SyncConfig().peer_address:
        values["connect"] = file_config.peer_address
    mode = require_one_of(_MODES, values)

    try:
        config = file_config.with_overrides(
            mode=mode,
            peer_address=values[mode],
            poll_interval_ms=poll_interval,
            heartbeat_interval_ms=heartbeat_interval,
            reconnect_delay_ms=reconnect_delay,
            max_reconnect_delay_ms=(
                max(reconnect_delay, file_config.max_reconnect_delay_ms)
                if reconnect_delay is not None else None
            ),
            max_content_size_bytes=max_content_size,
            source_id=source_id,
            backend=backend,
        )
    except ConfigError as e:
        _fail(e)

    _run_sync(config)


def _run_sync(config: SyncConfig) -> None:
    """Run the sync service until interrupted.

    Args:
        config: Resolved configuration.
    """
    from clipsync.service import run_service

    try:
        asyncio.run(run_service(config))
    except (FatalError, ConfigError) as e:
        _fail(e)
    except KeyboardInterrupt:
        pass


@main.command()
@click.option("--host", default=None, help="Address to bind (default: 0.0.0.0)")
@click.option("--port", type=click.IntRange(1, 65535), default=None, help="Port to bind (default: 8080)")
@click.option("--max-history", type=click.IntRange(min=1), default=None, help="Items kept in history")
@click.pass_context
def relay(ctx: click.Context, host: str | None, port: int | None, max_history: int | None) -> None:
    """Serve a relay store for clients running in relay mode."""
    from clipsync import defaults
    from clipsync.relay_server import run_relay

    config = _load(ctx.obj["config_path"])
    run_relay(
        host=host or defaults.RELAY_HOST,
        port=port or defaults.RELAY_PORT,
        max_history=max_history or config.max_history_items,
        max_content_size=config.max_content_size_bytes,
    )


def _relay_client(url: str, config: SyncConfig):
    from clipsync.transport_relay import RelayTransport

    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return RelayTransport(
        url,
        source_id=config.source_id,
        max_content_size=config.max_content_size_bytes,
        heartbeat_interval=config.heartbeat_interval,
        heartbeat_max_failures=config.heartbeat_max_failures,
    )


async def _query(transport, call):
    try:
        return await call(transport)
    finally:
        await transport.shutdown()


@main.command()
@click.argument("url")
@click.pass_context
def health(ctx: click.Context, url: str) -> None:
    """Print the health of a relay server."""
    transport = _relay_client(url, _load(ctx.obj["config_path"]))
    try:
        result = asyncio.run(_query(transport, lambda t: t.health()))
    except TransportError as e:
        _fail(e)
    click.echo(f"status: {result.get('status')}")
    click.echo(f"items: {result.get('items_count')}")
    click.echo(f"uptime: {result.get('uptime_seconds')}s")


def _print_items(items, total: int) -> None:
    click.echo(f"{len(items)} of {total} items")
    for item in items:
        preview = ""
        if item.content_type is not ContentType.IMAGE:
            preview = item.payload[:40].decode("utf-8", "replace").replace("\n", " ")
        click.echo(
            f"{item.id:>6}  {item.fingerprint[:8]}  {item.content_type.value:<5}  "
            f"{len(item.payload):>8}  {item.source_id}  {preview}"
        )


@main.command()
@click.argument("url")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Maximum items to show")
@click.option("--offset", type=click.IntRange(min=0), default=0, help="Matching items to skip")
@click.option("--source", default=None, help="Only items from this source id")
@click.option(
    "--type",
    "content_type",
    type=click.Choice([kind.value for kind in ContentType]),
    default=None,
    help="Only items of this content type",
)
@click.pass_context
def history(
    ctx: click.Context,
    url: str,
    limit: int | None,
    offset: int,
    source: str | None,
    content_type: str | None,
) -> None:
    """Print the update history held by a relay server, oldest first."""
    kind = ContentType.parse(content_type) if content_type else None
    transport = _relay_client(url, _load(ctx.obj["config_path"]))
    try:
        items, total = asyncio.run(
            _query(
                transport,
                lambda t: t.history(limit=limit, offset=offset, source=source, content_type=kind),
            )
        )
    except (TransportError, ProtocolError) as e:
        _fail(e)
    _print_items(items, total)


@main.command()
@click.argument("url")
@click.argument("query")
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True,
              help="Maximum items to show")
@click.pass_context
def search(ctx: click.Context, url: str, query: str, limit: int) -> None:
    """Search text items in a relay's history, newest first."""
    transport = _relay_client(url, _load(ctx.obj["config_path"]))
    try:
        items, total = asyncio.run(
            _query(transport, lambda t: t.history(limit=limit, query=query, newest_first=True))
        )
    except (TransportError, ProtocolError) as e:
        _fail(e)
    _print_items(items, total)


@main.command()
@click.argument("url")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx: click.Context, url: str, yes: bool) -> None:
    """Delete all history held by a relay server."""
    if not yes and not click.confirm(f"This will clear all clipboard history on {url}. Continue?"):
        click.echo("Cancelled")
        return
    transport = _relay_client(url, _load(ctx.obj["config_path"]))
    try:
        cleared = asyncio.run(_query(transport, lambda t: t.clear()))
    except (TransportError, ProtocolError) as e:
        _fail(e)
    click.echo(f"Cleared {cleared} items")


@main.command()
@click.argument("url")
@click.pass_context
def stats(ctx: click.Context, url: str) -> None:
    """Print statistics about a relay server's history."""
    transport = _relay_client(url, _load(ctx.obj["config_path"]))
    try:
        result = asyncio.run(_query(transport, lambda t: t.stats()))
    except (TransportError, ProtocolError) as e:
        _fail(e)
    click.echo(f"items: {result.get('items_count')} of {result.get('max_items')}")
    click.echo(f"bytes: {result.get('total_bytes')}")
    click.echo(f"ids: {result.get('oldest_id')}..{result.get('newest_id')}")
    for kind, count in sorted((result.get("by_content_type") or {}).items()):
        click.echo(f"type {kind}: {count}")
    for source, count in sorted((result.get("by_source") or {}).items()):
        click.echo(f"source {source}: {count}")


@main.command("config")
@click.option(
    "--show",
    is_flag=True,
    cls=MutuallyExclusiveOption,
    exclusive_with=["init"],
    help="Print the effective configuration",
)
@click.option(
    "--init",
    is_flag=True,
    cls=MutuallyExclusiveOption,
    exclusive_with=["show"],
    help="Write the default configuration file",
)
@click.option("--force", is_flag=True, help="With --init, overwrite an existing file")
@click.pass_context
def config_command(ctx: click.Context, show: bool, init: bool, force: bool) -> None:
    """Show or create the configuration file."""
    config_path = ctx.obj["config_path"]
    if show:
        click.echo(render_config(_load(config_path)), nl=False)
    elif init:
        try:
            written = write_default_config(Path(config_path) if config_path else None, force=force)
        except ConfigError as e:
            _fail(e)
        click.echo(f"Configuration initialized at: {written}")
    else:
        click.echo("Use --show to display the current config or --init to create a default one")
