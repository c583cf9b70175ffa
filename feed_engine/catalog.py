"""Content catalog sources."""
import asyncio
from typing import Any, List, Optional, Protocol

import aiohttp
import structlog
from cachetools import TTLCache
from pydantic import BaseModel, ValidationError

from feed_engine.core.errors import CatalogError
from feed_engine.models import ContentItem

logger = structlog.get_logger(__name__)


class CatalogSource(Protocol):
    """Provides the full list of playable items."""

    async def fetch_catalog(self) -> List[ContentItem]:
        ...

    def clear_cache(self) -> None:
        ...


class StaticCatalogSource:
    """Fixed in-memory catalog."""

    def __init__(self, items: List[ContentItem]):
        self.items = list(items)

    async def fetch_catalog(self) -> List[ContentItem]:
        return list(self.items)

    def clear_cache(self) -> None:
        pass


class CatalogConfig(BaseModel):
    """Configuration for the HTTP catalog source."""

    url: str
    cache_ttl: float = 300.0
    timeout: float = 30.0


def parse_catalog(data: Any) -> List[ContentItem]:
    """Validate raw catalog records, skipping the ones that do not fit.

    Accepts a bare list or an object with an ``items`` list.
    """
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise CatalogError("Catalog payload is not a list", details={"type": type(data).__name__})

    items = []
    for raw_item in data:
        try:
            items.append(ContentItem.model_validate(raw_item))
        except ValidationError as e:
            logger.error(
                "Error processing catalog item",
                error=str(e),
                item_id=raw_item.get("id", "unknown") if isinstance(raw_item, dict) else "unknown",
            )
    return items


class HttpCatalogSource:
    """Fetches the catalog as JSON over HTTP and caches the parsed result."""

    _CACHE_KEY = "catalog"

    def __init__(self, config: CatalogConfig, session: Optional[aiohttp.ClientSession] = None):
        """Initialize the catalog source.

        Args:
            config: Catalog configuration
            session: Optional shared aiohttp session
        """
        self.config = config
        self.session = session
        self._owns_session = session is None
        self._cache: TTLCache = TTLCache(maxsize=1, ttl=config.cache_ttl)

    async def _init_session(self):
        """Initialize aiohttp session with proper headers."""
        if self.session is None:
            headers = {"User-Agent": "FeedEngine/1.0", "Accept": "application/json"}
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self.session = aiohttp.ClientSession(headers=headers, timeout=timeout)

    async def fetch_catalog(self) -> List[ContentItem]:
        """Return the catalog, from cache while it is fresh.

        Raises:
            CatalogError: If the catalog endpoint fails
        """
        cached = self._cache.get(self._CACHE_KEY)
        if cached is not None:
            return list(cached)

        await self._init_session()
        try:
            async with self.session.get(self.config.url) as response:
                if response.status != 200:
                    body = await response.text()
                    logger.error("Error fetching catalog", status=response.status, body=body[:500])
                    raise CatalogError(
                        f"Catalog returned HTTP {response.status}",
                        details={"status": response.status},
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CatalogError(f"Catalog request failed: {e}") from e

        items = parse_catalog(data)
        self._cache[self._CACHE_KEY] = items
        logger.info("Catalog fetched", items=len(items))
        return list(items)

    def clear_cache(self) -> None:
        """Drop cached catalog data so the next fetch hits the network."""
        self._cache.clear()

    async def close(self):
        """Close the client session."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
