"""Playback continuation policies for the short-form and long-form players."""
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, Union

import structlog

from feed_engine.models import ContentItem, identity_of

logger = structlog.get_logger(__name__)

# A liked item enters the candidate pool this many extra times
LIKED_EXTRA_WEIGHT = 3

LikedIds = Union[Iterable[str], Callable[[], Iterable[str]]]


class PlaybackState(str, Enum):
    """States of the short-form player."""

    PLAYING = "playing"
    ADVANCING = "advancing"
    REPEATING = "repeating"


class ContinuationAction(str, Enum):
    """What the player surface should do next."""

    ADVANCE = "advance"
    RESTART = "restart"
    SWITCH = "switch"


@dataclass(frozen=True)
class ContinuationDecision:
    """Instruction for the player: which item to play and from where."""

    action: ContinuationAction
    item: Optional[ContentItem]
    index: Optional[int] = None
    position: float = 0.0


class ShortFormContinuation:
    """Smart-next selection over a fixed list of short items.

    When an item finishes with auto-advance on, the next index is drawn from
    a pool holding every other index once and every liked index
    ``1 + LIKED_EXTRA_WEIGHT`` times. Manual navigation may move the current
    index at any time.
    """

    def __init__(
        self,
        items: Sequence[ContentItem],
        initial_item: Optional[ContentItem] = None,
        liked_ids: LikedIds = (),
        auto_advance: bool = True,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the policy.

        Args:
            items: Items of the swipe list
            initial_item: Item the user opened; index 0 if absent from the list
            liked_ids: Liked identities, or a callable returning the current ones
            auto_advance: Whether finishing an item moves to another one
            rng: Random source for the weighted draw
        """
        self._items: List[ContentItem] = list(items)
        self._liked_ids = liked_ids
        self.auto_advance = auto_advance
        self.rng = rng or random.Random()
        self.state = PlaybackState.PLAYING
        self.current_index = self._index_of(initial_item) if initial_item is not None else 0
        if self.current_index is None:
            self.current_index = 0

    @property
    def items(self) -> List[ContentItem]:
        return list(self._items)

    @property
    def current_item(self) -> Optional[ContentItem]:
        return self._items[self.current_index] if self._items else None

    def _index_of(self, item: ContentItem) -> Optional[int]:
        target = identity_of(item)
        for index, candidate in enumerate(self._items):
            if identity_of(candidate) == target:
                return index
        return None

    def _liked(self) -> set:
        source = self._liked_ids() if callable(self._liked_ids) else self._liked_ids
        return set(source)

    def _clamp_index(self) -> None:
        # The list can shrink between renders
        if not self._items:
            self.current_index = 0
        elif not 0 <= self.current_index < len(self._items):
            self.current_index = min(max(self.current_index, 0), len(self._items) - 1)

    def candidate_pool(self) -> List[int]:
        """Weighted pool of indexes eligible as the next item."""
        liked = self._liked()
        pool = []
        for index, item in enumerate(self._items):
            if index == self.current_index:
                continue
            pool.append(index)
            if identity_of(item) in liked:
                pool.extend([index] * LIKED_EXTRA_WEIGHT)
        return pool

    def _repeat(self) -> ContinuationDecision:
        self.state = PlaybackState.REPEATING
        return ContinuationDecision(
            action=ContinuationAction.RESTART,
            item=self.current_item,
            index=self.current_index if self._items else None,
        )

    def on_finished(self) -> ContinuationDecision:
        """Handle the end of the current item."""
        self._clamp_index()
        if not self.auto_advance:
            return self._repeat()

        pool = self.candidate_pool()
        if not pool:
            return self._repeat()

        self.state = PlaybackState.ADVANCING
        target = self.rng.choice(pool)
        logger.debug("Advancing short", from_index=self.current_index, to_index=target)
        self.current_index = target
        self.state = PlaybackState.PLAYING
        return ContinuationDecision(
            action=ContinuationAction.ADVANCE,
            item=self._items[target],
            index=target,
        )

    def on_started(self) -> None:
        """Playback (re)started on the current item."""
        self.state = PlaybackState.PLAYING

    def navigate_to(self, index: int) -> ContentItem:
        """Manual scroll/swipe to ``index``, overriding any selection.

        Raises:
            IndexError: If ``index`` is outside the current list
        """
        if not 0 <= index < len(self._items):
            raise IndexError(f"index {index} outside list of {len(self._items)} items")
        self.current_index = index
        self.state = PlaybackState.PLAYING
        return self._items[index]

    def replace_items(self, items: Sequence[ContentItem]) -> None:
        """Swap in a re-rendered list, following the current item if present."""
        self._clamp_index()
        current = self.current_item
        self._items = list(items)
        index = self._index_of(current) if current is not None else None
        if index is not None:
            self.current_index = index
        self._clamp_index()


class LongFormContinuation:
    """Deterministic autoplay chaining for the long-form player."""

    def __init__(
        self,
        current: ContentItem,
        candidates: Sequence[ContentItem],
        auto_advance: bool = True,
    ):
        """Initialize the policy.

        Args:
            current: Item being played
            candidates: List the suggestions are drawn from
            auto_advance: Whether finishing an item chains to the next one
        """
        self.current = current
        self._candidates: List[ContentItem] = list(candidates)
        self.auto_advance = auto_advance

    def suggestions(self) -> List[ContentItem]:
        """Candidates other than the item being played."""
        current_id = identity_of(self.current)
        return [item for item in self._candidates if identity_of(item) != current_id]

    def on_finished(self) -> ContinuationDecision:
        """Chain to the first suggestion, or restart the current item."""
        suggestions = self.suggestions() if self.auto_advance else []
        if not suggestions:
            return ContinuationDecision(action=ContinuationAction.RESTART, item=self.current)

        self.current = suggestions[0]
        logger.debug("Chaining long item", content_id=identity_of(self.current))
        return ContinuationDecision(action=ContinuationAction.ADVANCE, item=self.current)

    def select(self, item: ContentItem) -> ContinuationDecision:
        """Manual pick from the suggestions; always starts from the top."""
        self.current = item
        return ContinuationDecision(action=ContinuationAction.SWITCH, item=item)
