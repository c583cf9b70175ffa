"""Command line interface for the feed engine."""
import asyncio
import json
import random
from functools import wraps
from typing import Any, Dict, Optional

import click
import pybreaker
import structlog

from feed_engine.catalog import CatalogConfig, HttpCatalogSource, StaticCatalogSource, parse_catalog
from feed_engine.config import EngineConfig
from feed_engine.core.composer import SEARCH_LIMIT, FeedComposer, search_feed
from feed_engine.core.refresh import FeedRefresher
from feed_engine.log_config import configure_logging
from feed_engine.metrics import start_metrics_server
from feed_engine.models import ContentItem, identity_of
from feed_engine.ranking.adapter import RankingAdapter
from feed_engine.ranking.service import GeminiConfig, GeminiRankingService, UnconfiguredRankingService
from feed_engine.storage.exclusions import AdminExclusionList
from feed_engine.storage.interactions import InteractionStore
from feed_engine.storage.kv import SQLiteConfig, SQLiteKeyValueStore

logger = structlog.get_logger(__name__)


def async_command(f):
    """Decorator to run async Click commands."""

    @click.pass_context
    @wraps(f)
    def wrapper(ctx, *args, **kwargs):
        return asyncio.run(f(ctx, *args, **kwargs))

    return wrapper


def catalog_options(f):
    """Shared ``--catalog-url``/``--catalog-file`` options."""
    f = click.option(
        "--catalog-file", type=click.Path(exists=True), help="Read the catalog from a JSON file"
    )(f)
    f = click.option("--catalog-url", envvar="FEED_ENGINE_CATALOG_URL", help="Catalog JSON endpoint")(f)
    return f


def open_stores(config: EngineConfig):
    """Open the interaction store and exclusion list on the configured database."""
    backend = SQLiteKeyValueStore(SQLiteConfig(db_path=config.db_path))
    interactions = InteractionStore.open(backend, config.interactions_key)
    exclusions = AdminExclusionList.open(backend, config.exclusions_key)
    return interactions, exclusions


def build_catalog(config: EngineConfig, catalog_file: Optional[str]):
    if catalog_file:
        with open(catalog_file, encoding="utf-8") as f:
            return StaticCatalogSource(parse_catalog(json.load(f)))
    if not config.catalog_url:
        raise click.UsageError("Set --catalog-url (FEED_ENGINE_CATALOG_URL) or --catalog-file")
    return HttpCatalogSource(CatalogConfig(url=config.catalog_url, cache_ttl=config.catalog_cache_ttl))


def build_composer(config: EngineConfig, seed: Optional[int] = None) -> FeedComposer:
    if config.ranking_api_key:
        service = GeminiRankingService(
            GeminiConfig(api_key=config.ranking_api_key, model=config.ranking_model)
        )
    else:
        service = UnconfiguredRankingService()
    rng = random.Random(seed)
    adapter = RankingAdapter(
        service,
        timeout=config.ranking_timeout,
        breaker=pybreaker.CircuitBreaker(
            fail_max=config.ranking_fail_max, reset_timeout=config.ranking_reset_timeout
        ),
        rng=rng,
    )
    return FeedComposer(adapter, rng=rng)


async def _close(*resources):
    for resource in resources:
        close = getattr(resource, "close", None)
        if close is not None:
            await close()


async def compose_once(
    config: EngineConfig, catalog_file: Optional[str], seed: Optional[int] = None
) -> FeedRefresher:
    """Run one hard composition cycle and return the refresher holding the feed.

    Raises:
        click.ClickException: If the cycle could not publish a feed
    """
    interactions, exclusions = open_stores(config)
    catalog = build_catalog(config, catalog_file)
    composer = build_composer(config, seed)
    refresher = FeedRefresher(catalog, composer, exclusions, interactions)
    try:
        await refresher.refresh(hard=True)
    finally:
        await _close(catalog, composer.ranking.service)
    if refresher.published_cycle == 0:
        raise click.ClickException("Composition cycle aborted, see log for details")
    return refresher


def _item_summary(item: ContentItem) -> Dict[str, Any]:
    return {"id": identity_of(item), "title": item.title, "kind": item.kind.value}


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, ensure_ascii=False, indent=2))


@click.group()
@click.option(
    "--db-path",
    envvar="FEED_ENGINE_DB_PATH",
    default=None,
    help="Path to SQLite database",
    type=click.Path(),
)
@click.option("--log-json/--log-console", default=None, help="Log output format")
@click.pass_context
def cli(ctx, db_path: Optional[str], log_json: Optional[bool]):
    """Feed composition and playback continuation engine."""
    config = EngineConfig.from_env()
    if db_path:
        config.db_path = db_path
    if log_json is not None:
        config.log_json = log_json
    configure_logging(config.log_level, config.log_json)
    ctx.obj = config


@cli.command()
@catalog_options
@click.option("--seed", type=int, default=None, help="Seed for shuffles, for reproducible output")
@async_command
async def compose(ctx, catalog_url: Optional[str], catalog_file: Optional[str], seed: Optional[int]):
    """Run one composition cycle and print the feed as JSON."""
    config: EngineConfig = ctx.obj
    if catalog_url:
        config.catalog_url = catalog_url
    refresher = await compose_once(config, catalog_file, seed)
    _echo_json(refresher.feed.to_dict())


@cli.command()
@click.argument("query")
@catalog_options
@click.option("--limit", type=click.IntRange(min=1), default=SEARCH_LIMIT, show_default=True)
@click.option("--seed", type=int, default=None, help="Seed for shuffles, for reproducible output")
@async_command
async def search(
    ctx,
    query: str,
    catalog_url: Optional[str],
    catalog_file: Optional[str],
    limit: int,
    seed: Optional[int],
):
    """Search the feed by title."""
    config: EngineConfig = ctx.obj
    if catalog_url:
        config.catalog_url = catalog_url
    refresher = await compose_once(config, catalog_file, seed)
    _echo_json([_item_summary(item) for item in search_feed(refresher.feed.items, query, limit)])


@cli.command()
@click.argument("shelf", type=click.Choice(["liked", "saved", "hidden"]))
@catalog_options
@async_command
async def library(ctx, shelf: str, catalog_url: Optional[str], catalog_file: Optional[str]):
    """List liked, saved or hidden items that are still in the feed."""
    config: EngineConfig = ctx.obj
    if catalog_url:
        config.catalog_url = catalog_url
    refresher = await compose_once(config, catalog_file)
    state = refresher.interactions.state
    ids = {"liked": state.liked_ids, "saved": state.saved_ids, "hidden": state.disliked_ids}[shelf]
    _echo_json([_item_summary(item) for item in refresher.feed.resolve(ids)])


@cli.command()
@catalog_options
@click.option(
    "--interval",
    envvar="FEED_ENGINE_REFRESH_INTERVAL",
    default=None,
    type=float,
    help="Refresh interval in seconds",
)
@click.option("--metrics/--no-metrics", default=True, help="Serve Prometheus metrics")
@async_command
async def run(ctx, catalog_url: Optional[str], catalog_file: Optional[str], interval: Optional[float], metrics: bool):
    """Keep the feed fresh, recomposing it periodically."""
    config: EngineConfig = ctx.obj
    if catalog_url:
        config.catalog_url = catalog_url
    if interval is not None:
        config.refresh_interval = interval
    if metrics:
        start_metrics_server(config.metrics_port)
        logger.info("Metrics server started", port=config.metrics_port)

    interactions, exclusions = open_stores(config)
    catalog = build_catalog(config, catalog_file)
    composer = build_composer(config)
    refresher = FeedRefresher(
        catalog, composer, exclusions, interactions, interval=config.refresh_interval
    )
    try:
        await refresher.start()
    finally:
        await _close(catalog, composer.ranking.service)


def _print_state(interactions: InteractionStore) -> None:
    click.echo(interactions.state.model_dump_json(by_alias=True, indent=2))


@cli.command()
@click.argument("content_id")
@click.pass_obj
def like(config: EngineConfig, content_id: str):
    """Like an item (withdraws a dislike)."""
    interactions, _ = open_stores(config)
    interactions.like(content_id)
    _print_state(interactions)


@cli.command()
@click.argument("content_id")
@click.pass_obj
def dislike(config: EngineConfig, content_id: str):
    """Dislike and hide an item (withdraws a like)."""
    interactions, _ = open_stores(config)
    interactions.dislike(content_id)
    _print_state(interactions)


@cli.command()
@click.argument("content_id")
@click.pass_obj
def save(config: EngineConfig, content_id: str):
    """Save an item for later."""
    interactions, _ = open_stores(config)
    interactions.save(content_id)
    _print_state(interactions)


@cli.command()
@click.argument("content_id")
@click.pass_obj
def unsave(config: EngineConfig, content_id: str):
    """Remove an item from the saved list."""
    interactions, _ = open_stores(config)
    interactions.unsave(content_id)
    _print_state(interactions)


@cli.command()
@click.argument("content_id")
@click.pass_obj
def restore(config: EngineConfig, content_id: str):
    """Un-hide a disliked item."""
    interactions, _ = open_stores(config)
    if not interactions.is_disliked(content_id):
        click.echo(f"{content_id} is not hidden", err=True)
    interactions.restore(content_id)
    _print_state(interactions)


@cli.command()
@click.argument("content_id")
@click.argument("ratio", type=click.FloatRange(0.0, 1.0, clamp=True))
@click.pass_obj
def progress(config: EngineConfig, content_id: str, ratio: float):
    """Record watch progress (clamped to 0..1)."""
    interactions, _ = open_stores(config)
    interactions.record_progress(content_id, ratio)
    _print_state(interactions)


@cli.command()
@click.argument("identifier")
@click.option("--catalog-url", help="Also compose from this endpoint and print the remaining feed")
@click.option(
    "--catalog-file",
    type=click.Path(exists=True),
    help="Also compose from this file and print the remaining feed",
)
@async_command
async def exclude(ctx, identifier: str, catalog_url: Optional[str], catalog_file: Optional[str]):
    """Remove content by id, public id or url for everyone."""
    config: EngineConfig = ctx.obj
    if not (catalog_url or catalog_file):
        _, exclusions = open_stores(config)
        if exclusions.exclude(identifier):
            click.echo(f"Excluded {identifier}")
        else:
            click.echo(f"{identifier} was already excluded")
        return

    if catalog_url:
        config.catalog_url = catalog_url
    refresher = await compose_once(config, catalog_file)
    feed = refresher.exclude(identifier)
    _echo_json(feed.to_dict())


@cli.command()
@click.pass_obj
def state(config: EngineConfig):
    """Print the persisted interaction state."""
    interactions, _ = open_stores(config)
    _print_state(interactions)


if __name__ == "__main__":
    cli()
