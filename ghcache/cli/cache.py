"""CLI commands for the repository cache"""

import sys
from pathlib import Path

import click

from ghcache.cli.utils.logging import logger
from ghcache.config import load_cache_config
from ghcache.exceptions import GhCacheError
from ghcache.git import RepoCache, resolve_reference
from ghcache.store import MetadataStore, StoreScope
from ghcache.utils import sizeof_fmt


def _get_cache(ctx) -> RepoCache:
    """Build the RepoCache for this invocation, or reuse one placed in ``ctx.obj``."""
    obj = ctx.find_root().obj
    if obj.get("CACHE") is not None:
        return obj["CACHE"]

    config_path = obj.get("CONFIG_PATH")
    try:
        config = load_cache_config(Path(config_path) if config_path else None)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    project = obj.get("PROJECT")
    if project:
        store = MetadataStore.for_project(Path(project))
        scope = StoreScope.PROJECT
    else:
        store = MetadataStore()
        scope = StoreScope.GLOBAL

    obj["CACHE"] = RepoCache(config, store, scope=scope)
    return obj["CACHE"]


def _format_time(value) -> str:
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


@click.command("get")
@click.argument("reference")
@click.pass_context
def get(ctx, reference: str):
    """Clone a repository into the cache, or reuse the cached clone.

    REFERENCE may be a GitHub URL, an SSH remote or owner/repo.

    Example:

      ghcache get facebook/react
    """
    cache = _get_cache(ctx)
    try:
        parsed = resolve_reference(reference)
        path = cache.acquire(reference)
    except GhCacheError as e:
        logger.error(str(e))
        sys.exit(1)

    click.echo(f"Repository: {parsed.key}")
    click.echo(f"URL: {parsed.url}")
    click.echo(f"Local path: {path}")


@click.command("list")
@click.pass_context
def list_repos(ctx):
    """List cached repositories, most recently used first."""
    cache = _get_cache(ctx)
    entries = sorted(cache.list_all(), key=lambda e: e.last_accessed_at, reverse=True)

    if not entries:
        click.echo("No repositories cached yet.")
        return

    click.echo(
        f"Cached repositories ({len(entries)}/{cache.config.max_cloned_repos}):"
    )
    for entry in entries:
        click.echo("")
        click.echo(f"- {entry.key}")
        click.echo(f"  Path: {entry.local_path}")
        click.echo(f"  Last accessed: {_format_time(entry.last_accessed_at)}")
        if entry.size_bytes is not None:
            click.echo(f"  Size: {sizeof_fmt(entry.size_bytes)}")


@click.command("remove")
@click.argument("reference")
@click.pass_context
def remove(ctx, reference: str):
    """Remove a repository from the cache."""
    cache = _get_cache(ctx)
    try:
        removed = cache.delete(reference)
    except GhCacheError as e:
        logger.error(str(e))
        sys.exit(1)

    if removed:
        click.echo(f"Removed {resolve_reference(reference).key}")
    else:
        click.echo(f"{reference} is not cached")


@click.command("prune")
@click.option(
    "--days",
    type=click.FloatRange(min=0),
    default=None,
    help="Remove repositories not accessed for this many days "
    "(defaults to auto_cleanup_days from the configuration).",
)
@click.pass_context
def prune(ctx, days):
    """Remove repositories that have not been used recently."""
    cache = _get_cache(ctx)
    if days is None:
        days = cache.config.auto_cleanup_days

    try:
        evicted = cache.evict_stale(days)
    except GhCacheError as e:
        logger.error(str(e))
        sys.exit(1)

    if not evicted:
        click.echo("Nothing to prune")
        return
    for key in evicted:
        click.echo(f"Removed {key}")


@click.command("evict")
@click.option(
    "--count",
    "-n",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Number of least recently used repositories to remove.",
)
@click.pass_context
def evict(ctx, count: int):
    """Remove the least recently used repositories."""
    cache = _get_cache(ctx)
    try:
        evicted = cache.evict_lru(count)
    except GhCacheError as e:
        logger.error(str(e))
        sys.exit(1)

    if not evicted:
        click.echo("Cache is empty")
        return
    for key in evicted:
        click.echo(f"Removed {key}")
