"""Feed composition: catalog + exclusions + ranking order -> ordered feed."""
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import structlog

from feed_engine.metrics import COMPOSITION_DURATION
from feed_engine.models import ContentItem, ContentKind, InteractionState, identifiers_of, identity_of
from feed_engine.ranking.adapter import RankingAdapter

logger = structlog.get_logger(__name__)

# Continue-watching bounds: started, but neither abandoned at once nor finished
MIN_STARTED_PROGRESS = 0.05
MAX_UNFINISHED_PROGRESS = 0.95

SEARCH_LIMIT = 10


@dataclass
class Feed:
    """Ordered feed of one composition cycle plus its derived rails."""

    items: List[ContentItem] = field(default_factory=list)
    continue_watching: List[Tuple[ContentItem, float]] = field(default_factory=list)
    affinity: List[ContentItem] = field(default_factory=list)
    shorts: List[ContentItem] = field(default_factory=list)
    longs: List[ContentItem] = field(default_factory=list)
    ranking_fallback_used: bool = False
    composed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def ids(self) -> List[str]:
        return [identity_of(item) for item in self.items]

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ContentItem]:
        return iter(self.items)

    def resolve(self, ids: Iterable[str]) -> List[ContentItem]:
        """Feed items whose identity is in ``ids``, in feed order."""
        return resolve_ids(self.items, ids)

    def without(self, identifiers: Iterable[str]) -> "Feed":
        """Copy of the feed with every item matching ``identifiers`` dropped from all rails."""
        removed = frozenset(identifiers)

        def kept(item: ContentItem) -> bool:
            return not any(value in removed for value in identifiers_of(item))

        return replace(
            self,
            items=[item for item in self.items if kept(item)],
            continue_watching=[(item, p) for item, p in self.continue_watching if kept(item)],
            affinity=[item for item in self.affinity if kept(item)],
            shorts=[item for item in self.shorts if kept(item)],
            longs=[item for item in self.longs if kept(item)],
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view, used by the CLI."""
        return {
            "composed_at": self.composed_at.isoformat(),
            "ranking_fallback_used": self.ranking_fallback_used,
            "items": [identity_of(item) for item in self.items],
            "continue_watching": [
                {"id": identity_of(item), "progress": progress}
                for item, progress in self.continue_watching
            ],
            "affinity": [identity_of(item) for item in self.affinity],
            "shorts": [identity_of(item) for item in self.shorts],
            "longs": [identity_of(item) for item in self.longs],
        }


def filter_excluded(catalog: Iterable[ContentItem], exclusions: Iterable[str]) -> List[ContentItem]:
    """Drop items whose id, public id or url was removed by an operator."""
    excluded = frozenset(exclusions)
    return [
        item
        for item in catalog
        if not any(value in excluded for value in identifiers_of(item))
    ]


def merge_order(items: Sequence[ContentItem], order: Iterable[str]) -> List[ContentItem]:
    """Ranked items in ranking order, then the rest in catalog order.

    Unknown and repeated ids in ``order`` are ignored and repeated catalog
    identities keep their first occurrence, so the result holds every
    distinct identity of ``items`` exactly once.
    """
    by_identity: Dict[str, ContentItem] = {}
    for item in items:
        by_identity.setdefault(identity_of(item), item)

    placed = set()
    merged = []
    for content_id in order:
        item = by_identity.get(content_id)
        if item is not None and content_id not in placed:
            placed.add(content_id)
            merged.append(item)

    for content_id, item in by_identity.items():
        if content_id not in placed:
            placed.add(content_id)
            merged.append(item)
    return merged


def continue_watching_rail(
    items: Sequence[ContentItem], interactions: InteractionState
) -> List[Tuple[ContentItem, float]]:
    """Started-but-unfinished items, in watch-history order."""
    by_identity = {identity_of(item): item for item in reversed(items)}
    rail = []
    for content_id, progress in interactions.watch_history.items():
        if not MIN_STARTED_PROGRESS < progress < MAX_UNFINISHED_PROGRESS:
            continue
        item = by_identity.get(content_id)
        if item is not None:
            rail.append((item, progress))
    return rail


def affinity_rail(
    items: Sequence[ContentItem],
    interactions: InteractionState,
    rng: Optional[random.Random] = None,
) -> List[ContentItem]:
    """Unrated items sharing a category with something the user liked.

    The order is reshuffled on every call.
    """
    rng = rng or random.Random()
    liked = set(interactions.liked_ids)
    disliked = set(interactions.disliked_ids)
    liked_categories = {item.category for item in items if identity_of(item) in liked}

    rail = [
        item
        for item in items
        if item.category in liked_categories
        and identity_of(item) not in liked
        and identity_of(item) not in disliked
    ]
    rng.shuffle(rail)
    return rail


def display_partition(
    items: Sequence[ContentItem], interactions: InteractionState
) -> Tuple[List[ContentItem], List[ContentItem]]:
    """Split the feed into the short and long presentation tracks.

    Liked and disliked items are left out of both tracks. Long items with any
    watch progress move behind unseen ones; order is otherwise preserved.
    """
    rated = set(interactions.liked_ids) | set(interactions.disliked_ids)
    visible = [item for item in items if identity_of(item) not in rated]

    shorts = [item for item in visible if item.kind == ContentKind.SHORT]
    longs = sorted(
        (item for item in visible if item.kind == ContentKind.LONG),
        key=lambda item: identity_of(item) in interactions.watch_history,
    )
    return shorts, longs


def resolve_ids(items: Sequence[ContentItem], ids: Iterable[str]) -> List[ContentItem]:
    """Items whose identity is among ``ids``, in item order.

    Stored ids that no longer match an item are skipped.
    """
    wanted = frozenset(ids)
    return [item for item in items if identity_of(item) in wanted]


def search_feed(items: Sequence[ContentItem], query: str, limit: int = SEARCH_LIMIT) -> List[ContentItem]:
    """First ``limit`` items whose title contains ``query``, ignoring case."""
    needle = query.casefold()
    return [item for item in items if needle in item.title.casefold()][:limit]


class FeedComposer:
    """Builds a feed from its three inputs and a ranking adapter.

    Apart from the ranking call the composer is a pure function of its
    inputs; substitute a stub service to run it offline.
    """

    def __init__(self, ranking: RankingAdapter, rng: Optional[random.Random] = None):
        """Initialize the composer.

        Args:
            ranking: Adapter around the ranking service
            rng: Random source for the affinity rail
        """
        self.ranking = ranking
        self.rng = rng or random.Random()

    async def compose(
        self,
        catalog: Sequence[ContentItem],
        exclusions: Iterable[str],
        interactions: InteractionState,
    ) -> Feed:
        """Run one composition cycle.

        Args:
            catalog: Items fetched for this cycle
            exclusions: Identifiers removed by an operator
            interactions: The user's interaction state

        Returns:
            The composed feed with rails
        """
        interactions = interactions.snapshot()
        exclusions = frozenset(exclusions)

        with COMPOSITION_DURATION.time():
            filtered = filter_excluded(catalog, exclusions)
            result = await self.ranking.try_rank(filtered, interactions)
            order = self.ranking.order_from(result, filtered)
            items = merge_order(filtered, order)

        shorts, longs = display_partition(items, interactions)
        feed = Feed(
            items=items,
            continue_watching=continue_watching_rail(items, interactions),
            affinity=affinity_rail(items, interactions, self.rng),
            shorts=shorts,
            longs=longs,
            ranking_fallback_used=not result.ok,
        )
        logger.info(
            "Feed composed",
            catalog_size=len(catalog),
            excluded=len(catalog) - len(filtered),
            feed_size=len(items),
            ranked=len(result.order) if result.ok else 0,
            fallback=feed.ranking_fallback_used,
        )
        return feed
