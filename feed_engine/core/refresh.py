"""Composition cycle scheduling: periodic and user-triggered refreshes."""
import asyncio
from typing import Iterable, Optional, Set

import structlog

from feed_engine.catalog import CatalogSource
from feed_engine.core.composer import Feed, FeedComposer
from feed_engine.metrics import COMPOSITION_CYCLES, FEED_SIZE
from feed_engine.models import ContentItem, identifiers_of
from feed_engine.storage.exclusions import AdminExclusionList
from feed_engine.storage.interactions import InteractionStore

logger = structlog.get_logger(__name__)

DEFAULT_REFRESH_INTERVAL = 300.0


class FeedRefresher:
    """Runs composition cycles and owns the published feed.

    Cycles are numbered when they start. A cycle's feed is published only if
    no later-started cycle has published already, so a manual refresh
    supersedes a periodic one that is still in flight. A periodic tick never
    starts a second cycle while one is running.
    """

    def __init__(
        self,
        catalog: CatalogSource,
        composer: FeedComposer,
        exclusions: AdminExclusionList,
        interactions: InteractionStore,
        interval: float = DEFAULT_REFRESH_INTERVAL,
    ):
        """Initialize the refresher.

        Args:
            catalog: Catalog source
            composer: Feed composer
            exclusions: Operator exclusion list
            interactions: User interaction store
            interval: Seconds between periodic refreshes
        """
        self.catalog = catalog
        self.composer = composer
        self.exclusions = exclusions
        self.interactions = interactions
        self.interval = interval
        self.feed = Feed()
        self.running = False
        self._started_cycles = 0
        self._published_cycle = 0
        self._in_flight: Optional[asyncio.Task] = None
        self._removed: Set[str] = set()
        self._stop_event = asyncio.Event()

    @property
    def published_cycle(self) -> int:
        return self._published_cycle

    async def _cycle(self, number: int, hard: bool, trigger: str) -> Feed:
        log = logger.bind(cycle=number, trigger=trigger, hard=hard)
        if hard:
            self.catalog.clear_cache()

        # Inputs are frozen here; later mutations only affect the next cycle
        exclusions = self.exclusions.snapshot()
        interactions = self.interactions.state

        try:
            catalog = await self.catalog.fetch_catalog()
        except Exception as e:
            log.error("Catalog fetch failed, keeping previous feed", error=str(e))
            COMPOSITION_CYCLES.labels(outcome="catalog_error").inc()
            return self.feed

        feed = await self.composer.compose(catalog, exclusions, interactions)

        if number <= self._published_cycle:
            log.info("Discarding superseded feed", published_cycle=self._published_cycle)
            COMPOSITION_CYCLES.labels(outcome="superseded").inc()
            return self.feed

        if self._removed:
            feed = feed.without(self._removed)

        self._published_cycle = number
        self.feed = feed
        FEED_SIZE.set(len(feed))
        COMPOSITION_CYCLES.labels(outcome="published").inc()
        log.info("Feed published", feed_size=len(feed))
        return feed

    async def _start_cycle(self, hard: bool, trigger: str) -> Feed:
        self._started_cycles += 1
        task = asyncio.ensure_future(self._cycle(self._started_cycles, hard, trigger))
        self._in_flight = task
        await task
        return self.feed

    async def refresh(self, hard: bool = False) -> Feed:
        """User-triggered refresh; always starts a fresh cycle.

        Args:
            hard: Also purge the catalog transport cache first

        Returns:
            The feed published once this cycle completes
        """
        return await self._start_cycle(hard=hard, trigger="manual")

    async def periodic_refresh(self) -> Feed:
        """Timer-triggered refresh; waits for a running cycle instead of racing it."""
        if self._in_flight is not None and not self._in_flight.done():
            logger.debug("Refresh already in flight, awaiting it")
            await asyncio.shield(self._in_flight)
            return self.feed
        return await self._start_cycle(hard=False, trigger="periodic")

    def _drop_from_feed(self, identifiers: Iterable[str]) -> Feed:
        self._removed.update(identifiers)
        before = len(self.feed)
        self.feed = self.feed.without(identifiers)
        FEED_SIZE.set(len(self.feed))
        logger.info("Dropped excluded content from published feed", removed=before - len(self.feed))
        return self.feed

    def exclude(self, identifier: str) -> Feed:
        """Remove content for everyone, effective on the published feed at once.

        A cycle already in flight is filtered again when it publishes.
        """
        self.exclusions.exclude(identifier)
        return self._drop_from_feed((identifier,))

    def exclude_item(self, item: ContentItem) -> Feed:
        """Remove an item under all of its identifiers, effective at once."""
        self.exclusions.exclude_item(item)
        return self._drop_from_feed(identifiers_of(item))

    async def start(self):
        """Hard-refresh once, then refresh every ``interval`` seconds until stopped."""
        if self.running:
            logger.warning("Feed refresher already running")
            return

        self.running = True
        self._stop_event.clear()
        logger.info("Starting feed refresher", interval=self.interval)

        try:
            await self.refresh(hard=True)
            while self.running:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    await self.periodic_refresh()
        finally:
            self.running = False

    def stop(self):
        """Stop the periodic loop."""
        logger.info("Stopping feed refresher")
        self.running = False
        self._stop_event.set()
