"""mongo-rate-store CLI — validate configs, inspect and reset counters."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import replace
from pathlib import Path
from typing import Any, TypeVar

import click
from click.core import ParameterSource

try:
    from rich.console import Console
    from rich.markup import escape

    _console = Console(highlight=False)
    _err_console = Console(stderr=True, highlight=False)
except ImportError:
    raise ImportError("The CLI requires click and rich. " "Install them with: pip install mongo-rate-store[cli]")

from pymongo.errors import PyMongoError

from mongo_rate_store import RateStoreConfigError, RateStoreConnectionError
from mongo_rate_store.config import load_config, options_from_config
from mongo_rate_store.store import ClientRateLimitInfo, MongoDBStore

DEFAULT_WINDOW_MS = 60_000

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build_store(
    config: str | None,
    uri: str | None,
    collection: str | None,
    prefix: str | None,
    window_ms: int | None,
) -> MongoDBStore:
    """Build a store from --config or --uri. Flags override the config file.

    Raises RateStoreConfigError on invalid input.
    """
    if config and uri:
        raise RateStoreConfigError("Use either --config or --uri, not both")

    if config:
        options = options_from_config(load_config(config))
        if collection:
            options = replace(options, source=replace(options.source, collection_name=collection))
        if prefix is not None:
            options = replace(options, prefix=prefix)
        store = MongoDBStore.from_options(options)
    elif uri:
        kwargs: dict[str, Any] = {"uri": uri, "collection_name": collection}
        if prefix is not None:
            kwargs["prefix"] = prefix
        store = MongoDBStore(**kwargs)
    else:
        raise RateStoreConfigError("A store needs --config or --uri (or MONGO_RATE_STORE_URI)")

    if window_ms is not None:
        store.init(window_ms)
    elif store.window_ms is None:
        store.init(DEFAULT_WINDOW_MS)
    return store


def _run(store: MongoDBStore, op: Callable[[MongoDBStore], Awaitable[T]]) -> T:
    """Run *op* against *store*, closing the store's client afterwards.

    Exits with status 1 on configuration, connection, or storage errors.
    """

    async def _main() -> T:
        try:
            return await op(store)
        finally:
            await store.shutdown()

    try:
        return asyncio.run(_main())
    except RateStoreConnectionError as e:
        _err_console.print(f"[red]Connection failed: {escape(str(e))}[/red]")
        sys.exit(1)
    except RateStoreConfigError as e:
        _err_console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    except PyMongoError as e:
        _err_console.print(f"[red]MongoDB error: {escape(str(e))}[/red]")
        sys.exit(1)


def _format_info(key: str, info: ClientRateLimitInfo) -> str:
    return f"[bold]{escape(key)}[/bold] — {info.total_hits} hit(s), resets at {info.reset_time.isoformat()}"


def store_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Shared options for commands that talk to a store."""
    decorators = [
        click.option("--config", "config", default=None, type=click.Path(exists=True), help="Store config YAML."),
        click.option("--uri", envvar="MONGO_RATE_STORE_URI", default=None, help="MongoDB connection URI."),
        click.option("--collection", default=None, help="Collection name."),
        click.option("--prefix", default=None, help="Record id prefix."),
        click.option("--window-ms", type=click.IntRange(min=1), default=None, help="Window length in ms."),
    ]
    for decorator in reversed(decorators):
        fn = decorator(fn)
    return fn


def _store_or_exit(**kwargs: Any) -> MongoDBStore:
    # An explicit --config outranks a URI picked up from MONGO_RATE_STORE_URI.
    ctx = click.get_current_context()
    if kwargs.get("config") and ctx.get_parameter_source("uri") is ParameterSource.ENVIRONMENT:
        kwargs["uri"] = None

    try:
        return _build_store(**kwargs)
    except RateStoreConfigError as e:
        _err_console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(2)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """mongo-rate-store — MongoDB storage for fixed-window rate limits."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def version() -> None:
    """Show the installed mongo-rate-store version."""
    from mongo_rate_store import __version__

    click.echo(f"mongo-rate-store {__version__}")


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path())
def validate(files: tuple[str, ...]) -> None:
    """Validate one or more store config files."""
    has_errors = False

    for file_path in files:
        path = Path(file_path)
        if not path.exists():
            _err_console.print(f"[red]  {escape(str(path))} — file not found[/red]")
            has_errors = True
            continue

        try:
            options = options_from_config(load_config(path))
        except RateStoreConfigError as e:
            _err_console.print(f"[red]  {escape(path.name)} — {escape(str(e))}[/red]")
            has_errors = True
            continue

        collection = options.source.collection_name
        window = options.window_ms
        window_text = f"{window} ms window" if window else "window set by middleware"
        _console.print(f"[green]  {escape(path.name)}[/green] — collection {escape(collection)}, {window_text}")

    sys.exit(1 if has_errors else 0)


# ---------------------------------------------------------------------------
# counters
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("key")
@store_options
def get(key: str, **kwargs: Any) -> None:
    """Show the counter for KEY."""
    store = _store_or_exit(**kwargs)
    info = _run(store, lambda s: s.get(key))
    if info is None:
        _console.print(f"[bold]{escape(key)}[/bold] — no record")
    else:
        _console.print(_format_info(key, info))


@cli.command()
@click.argument("key")
@store_options
def hit(key: str, **kwargs: Any) -> None:
    """Record one hit for KEY and show the new counter."""
    store = _store_or_exit(**kwargs)
    info = _run(store, lambda s: s.increment(key))
    _console.print(_format_info(key, info))


@cli.command()
@click.argument("key")
@store_options
def reset(key: str, **kwargs: Any) -> None:
    """Delete the counter for KEY."""
    store = _store_or_exit(**kwargs)
    _run(store, lambda s: s.reset_key(key))
    _console.print(f"[green]Reset[/green] {escape(key)}")


@cli.command("reset-all")
@click.confirmation_option(prompt="Delete every record in the collection (all prefixes)?")
@store_options
def reset_all(**kwargs: Any) -> None:
    """Delete every counter in the collection."""
    store = _store_or_exit(**kwargs)
    _run(store, lambda s: s.reset_all())
    _console.print("[green]All counters reset[/green]")
