"""Operator-maintained list of removed content."""
import json
from typing import FrozenSet, Iterator, List

import structlog

from feed_engine.models import ContentItem, identifiers_of
from feed_engine.storage.kv import KeyValueStore

logger = structlog.get_logger(__name__)

DEFAULT_EXCLUSIONS_KEY = "feed-engine-deleted-ids"


class AdminExclusionList:
    """Append-only set of ids, public ids and urls removed by an operator."""

    def __init__(self, backend: KeyValueStore, key: str = DEFAULT_EXCLUSIONS_KEY):
        self._backend = backend
        self._key = key
        self._ids: List[str] = []

    @classmethod
    def open(cls, backend: KeyValueStore, key: str = DEFAULT_EXCLUSIONS_KEY) -> "AdminExclusionList":
        """Create the list and load its persisted entries."""
        exclusions = cls(backend, key)
        exclusions.load()
        return exclusions

    def load(self) -> FrozenSet[str]:
        """Read persisted entries; anything unreadable yields an empty list."""
        try:
            raw = self._backend.get(self._key)
        except Exception as e:
            logger.warning("Could not read exclusion list", key=self._key, error=str(e))
            raw = None

        self._ids = []
        if raw is None:
            return self.snapshot()

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Discarding malformed exclusion list", key=self._key, error=str(e))
            return self.snapshot()

        if not isinstance(data, list):
            logger.warning("Discarding malformed exclusion list", key=self._key, error="not a list")
            return self.snapshot()

        for value in data:
            if isinstance(value, str) and value not in self._ids:
                self._ids.append(value)
        return self.snapshot()

    def exclude(self, identifier: str) -> bool:
        """Add one identifier and persist.

        Returns:
            True if the identifier was new
        """
        if identifier in self._ids:
            return False
        self._ids.append(identifier)
        self._backend.set(self._key, json.dumps(self._ids))
        logger.info("Content excluded", identifier=identifier)
        return True

    def exclude_item(self, item: ContentItem) -> bool:
        """Exclude an item under every identifier it carries."""
        added = [value for value in identifiers_of(item) if value not in self._ids]
        if not added:
            return False
        self._ids.extend(added)
        self._backend.set(self._key, json.dumps(self._ids))
        logger.info("Content excluded", identifiers=added)
        return True

    def is_excluded(self, item: ContentItem) -> bool:
        """True if any identifier of ``item`` was removed."""
        return any(value in self._ids for value in identifiers_of(item))

    def snapshot(self) -> FrozenSet[str]:
        """Frozen view of the entries for a composition cycle."""
        return frozenset(self._ids)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._ids))

    def __len__(self) -> int:
        return len(self._ids)
