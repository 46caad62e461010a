from __future__ import annotations

import json
import logging
import typing as t

import anyio
import click

from .cache.manager import CacheManager
from .errors import StorageError
from .factory import STORAGE_TYPES, create_cache_manager
from .utils.config import ConfigError, Settings

T = t.TypeVar("T")


def _parse_value(text: str) -> t.Any:
    try:
        return json.loads(text)
    except ValueError:
        return text


def _run(settings: Settings, op: t.Callable[[CacheManager], t.Awaitable[T]]) -> T:
    async def _main() -> T:
        try:
            manager = create_cache_manager(settings)
        except ValueError as exc:
            raise click.ClickException(f"invalid settings: {exc}") from exc
        async with manager:
            return await op(manager)

    try:
        return anyio.run(_main)
    except StorageError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="JSON settings file")
@click.option(
    "--storage",
    type=click.Choice(STORAGE_TYPES, case_sensitive=False),
    default=None,
    help="Storage backend (overrides the config file)",
)
@click.option("--path", default=None, help="Storage file for the json backend")
@click.option("--redis-url", default=None, help="Redis URL for the redis backend")
@click.option("--redis-prefix", default=None, help="Redis key prefix for the redis backend")
@click.option(
    "--log-level",
    default="WARNING",
    help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: t.Optional[str],
    storage: t.Optional[str],
    path: t.Optional[str],
    redis_url: t.Optional[str],
    redis_prefix: t.Optional[str],
    log_level: str,
) -> None:
    """Inspect and manage a kvcache store."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        settings = Settings.from_file(config_path) if config_path else Settings()
    except ConfigError as exc:
        raise click.BadParameter(str(exc), param_hint="--config") from exc
    if storage:
        settings.storage.type = storage.lower()
    if path:
        settings.storage.path = path
    if redis_url:
        settings.storage.url = redis_url
    if redis_prefix:
        settings.storage.prefix = redis_prefix
    ctx.obj = settings


@main.command("set")
@click.argument("key")
@click.argument("value")
@click.option("--ttl", type=int, default=None, help="Time to live in milliseconds (default: one hour)")
@click.pass_obj
def set_command(settings: Settings, key: str, value: str, ttl: t.Optional[int]) -> None:
    """Cache VALUE (JSON, or a plain string) under KEY."""
    if ttl is not None and ttl < 0:
        raise click.BadParameter("must not be negative", param_hint="--ttl")
    parsed = _parse_value(value)
    _run(settings, lambda m: m.set(key, parsed, ttl))
    click.echo(json.dumps(parsed, ensure_ascii=False))


@main.command("get")
@click.argument("key")
@click.option("--default", "default", default=None, help="Value printed when KEY is missing or expired")
@click.pass_obj
def get_command(settings: Settings, key: str, default: t.Optional[str]) -> None:
    """Print the live value of KEY as JSON."""
    fallback = _parse_value(default) if default is not None else None
    value = _run(settings, lambda m: m.get(key, fallback))
    click.echo(json.dumps(value, ensure_ascii=False))


@main.command("delete")
@click.argument("key")
@click.pass_obj
def delete_command(settings: Settings, key: str) -> None:
    """Remove KEY from the cache."""
    outcome = _run(settings, lambda m: m.delete(key))
    click.echo(f"deleted {key} ({outcome.rows_deleted}/2 rows)")


@main.command("has")
@click.argument("key")
@click.pass_context
def has_command(ctx: click.Context, key: str) -> None:
    """Exit with status 0 if KEY is live, 1 otherwise."""
    exists = _run(ctx.obj, lambda m: m.has(key))
    click.echo("true" if exists else "false")
    if not exists:
        ctx.exit(1)


@main.command("clear-expired")
@click.pass_obj
def clear_expired_command(settings: Settings) -> None:
    """Remove expired entries and print how many were removed."""
    removed = _run(settings, lambda m: m.clear_expired())
    click.echo(str(removed))


@main.command("clear-all")
@click.pass_obj
def clear_all_command(settings: Settings) -> None:
    """Remove every cache entry, expired or not."""
    _run(settings, lambda m: m.clear_all())
    click.echo("cleared")


if __name__ == "__main__":
    main()
