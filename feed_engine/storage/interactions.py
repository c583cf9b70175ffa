"""Write-through store for a user's interaction state."""
from typing import Optional

import structlog
from pydantic import ValidationError

from feed_engine.core.errors import InvariantViolation
from feed_engine.metrics import INTERACTION_MUTATIONS
from feed_engine.models import InteractionState
from feed_engine.storage.kv import KeyValueStore

logger = structlog.get_logger(__name__)

DEFAULT_INTERACTIONS_KEY = "feed-engine-interactions"


class InteractionStore:
    """Owns likes, dislikes, saves and watch progress for one user/device.

    Every mutator is idempotent or monotonic, so repeated or reordered calls
    from different UI call sites converge to the same state. Each effective
    mutation is written to the backend immediately.
    """

    def __init__(self, backend: KeyValueStore, key: str = DEFAULT_INTERACTIONS_KEY):
        """Initialize the store with an empty state.

        Args:
            backend: Key-value blob backend
            key: Key the state blob lives under
        """
        self._backend = backend
        self._key = key
        self._state = InteractionState()

    @classmethod
    def open(cls, backend: KeyValueStore, key: str = DEFAULT_INTERACTIONS_KEY) -> "InteractionStore":
        """Create a store and load its persisted state."""
        store = cls(backend, key)
        store.load()
        return store

    @property
    def state(self) -> InteractionState:
        """Independent copy of the current state."""
        return self._state.snapshot()

    def load(self) -> InteractionState:
        """Read the persisted state, degrading to the empty state.

        Absent, unreadable or malformed blobs never fail startup.
        """
        try:
            raw = self._backend.get(self._key)
        except Exception as e:
            logger.warning("Could not read interaction state", key=self._key, error=str(e))
            raw = None

        if raw is None:
            self._state = InteractionState()
            return self.state

        try:
            self._state = InteractionState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding malformed interaction state",
                key=self._key,
                errors=e.error_count(),
            )
            self._state = InteractionState()
        return self.state

    def _commit(self, action: str, content_id: str) -> InteractionState:
        self._backend.set(self._key, self._state.to_json())
        INTERACTION_MUTATIONS.labels(action=action).inc()
        logger.debug("Interaction recorded", action=action, content_id=content_id)
        return self.state

    def _assert_exclusive(self, content_id: str) -> None:
        if content_id in self._state.liked_ids and content_id in self._state.disliked_ids:
            raise InvariantViolation(
                "id is both liked and disliked", details={"content_id": content_id}
            )

    def like(self, content_id: str) -> InteractionState:
        """Like an item, withdrawing any dislike of it."""
        if content_id in self._state.liked_ids:
            return self.state
        if content_id in self._state.disliked_ids:
            self._state.disliked_ids.remove(content_id)
        self._state.liked_ids.append(content_id)
        self._assert_exclusive(content_id)
        return self._commit("like", content_id)

    def dislike(self, content_id: str) -> InteractionState:
        """Dislike (hide) an item, withdrawing any like of it."""
        if content_id in self._state.disliked_ids:
            return self.state
        if content_id in self._state.liked_ids:
            self._state.liked_ids.remove(content_id)
        self._state.disliked_ids.append(content_id)
        self._assert_exclusive(content_id)
        return self._commit("dislike", content_id)

    def save(self, content_id: str) -> InteractionState:
        if content_id in self._state.saved_ids:
            return self.state
        self._state.saved_ids.append(content_id)
        return self._commit("save", content_id)

    def unsave(self, content_id: str) -> InteractionState:
        if content_id not in self._state.saved_ids:
            return self.state
        self._state.saved_ids.remove(content_id)
        return self._commit("unsave", content_id)

    def restore(self, content_id: str) -> InteractionState:
        """Un-hide a disliked item. Does not like it."""
        if content_id not in self._state.disliked_ids:
            return self.state
        self._state.disliked_ids.remove(content_id)
        return self._commit("restore", content_id)

    def record_progress(self, content_id: str, ratio: float) -> InteractionState:
        """Record watch progress, keeping the furthest point reached.

        Args:
            content_id: Item identity
            ratio: Played fraction; callers clamp to [0, 1] beforehand

        Raises:
            ValueError: If ``ratio`` lies outside [0, 1]
        """
        if not 0.0 <= ratio <= 1.0:
            raise ValueError(f"progress ratio must be within [0, 1], got {ratio}")

        history = self._state.watch_history
        existing = history.get(content_id)
        if existing is not None and ratio <= existing:
            return self.state
        history[content_id] = ratio
        return self._commit("progress", content_id)

    def is_liked(self, content_id: str) -> bool:
        return content_id in self._state.liked_ids

    def is_disliked(self, content_id: str) -> bool:
        return content_id in self._state.disliked_ids

    def is_saved(self, content_id: str) -> bool:
        return content_id in self._state.saved_ids

    def progress_of(self, content_id: str) -> Optional[float]:
        return self._state.watch_history.get(content_id)

    def liked_ids(self) -> frozenset:
        """Current liked ids, for continuation policies."""
        return frozenset(self._state.liked_ids)
