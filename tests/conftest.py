import random
from unittest.mock import AsyncMock

import pybreaker
import pytest

from feed_engine.models import ContentItem, ContentKind
from feed_engine.ranking.adapter import RankingAdapter
from feed_engine.storage.exclusions import AdminExclusionList
from feed_engine.storage.interactions import InteractionStore
from feed_engine.storage.kv import MemoryKeyValueStore


def make_item(content_id, kind=ContentKind.SHORT, category="horror", **kwargs):
    """Build a catalog item with sensible defaults."""
    return ContentItem(
        id=content_id,
        kind=kind,
        title=kwargs.pop("title", f"Title {content_id}"),
        category=category,
        media_url=kwargs.pop("media_url", f"https://cdn.test/{content_id}.mp4"),
        **kwargs,
    )


@pytest.fixture
def item_factory():
    """Factory fixture for catalog items."""
    return make_item


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Keep the developer's environment out of the tests."""
    for name in ("FEED_ENGINE_CATALOG_URL", "FEED_ENGINE_RANKING_API_KEY", "FEED_ENGINE_DB_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_catalog():
    """A(short), B(long), C(short)."""
    return [
        make_item("A", ContentKind.SHORT),
        make_item("B", ContentKind.LONG),
        make_item("C", ContentKind.SHORT),
    ]


@pytest.fixture
def backend():
    return MemoryKeyValueStore()


@pytest.fixture
def interaction_store(backend):
    return InteractionStore.open(backend)


@pytest.fixture
def exclusions(backend):
    return AdminExclusionList.open(backend)


@pytest.fixture
def ranking_service():
    """Ranking service stub answering an empty order."""
    service = AsyncMock()
    service.rank = AsyncMock(return_value=[])
    return service


@pytest.fixture
def ranking_adapter(ranking_service):
    return RankingAdapter(
        ranking_service,
        timeout=1.0,
        breaker=pybreaker.CircuitBreaker(fail_max=100, reset_timeout=60),
        rng=random.Random(7),
    )
