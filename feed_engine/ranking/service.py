"""External ranking services."""
import json
from typing import Any, Dict, List, Optional, Protocol, Sequence

import aiohttp
import structlog
from pydantic import BaseModel

from feed_engine.core.errors import RankingError

logger = structlog.get_logger(__name__)


class RankingService(Protocol):
    """Anything that can order catalog ids for one user."""

    async def rank(
        self,
        items: Sequence[Dict[str, str]],
        watched_titles: Sequence[str],
        liked_ids: Sequence[str],
    ) -> Any:
        """Return ranked ids; may be partial, empty or malformed."""
        ...


class UnconfiguredRankingService:
    """Stand-in when no ranking credentials are set; every call fails."""

    async def rank(self, items, watched_titles, liked_ids):
        raise RankingError("No ranking service configured")


class GeminiConfig(BaseModel):
    """Configuration for the Gemini ranking service."""

    api_key: str
    model: str = "gemini-3-flash-preview"
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"


RANKING_PROMPT = """You curate a short-video feed. Available videos: {items}.
The user has already watched: {watched}.
The user liked these ids: {liked}.

Order the video ids so the videos most relevant and most similar to the
user's interests come first. Avoid repeating what the user has watched a lot.
Return only a JSON array containing the ordered ids."""


def build_prompt(
    items: Sequence[Dict[str, str]],
    watched_titles: Sequence[str],
    liked_ids: Sequence[str],
) -> str:
    """Render the ranking prompt for one composition cycle."""
    return RANKING_PROMPT.format(
        items=json.dumps(list(items), ensure_ascii=False),
        watched=json.dumps(list(watched_titles), ensure_ascii=False),
        liked=json.dumps(list(liked_ids), ensure_ascii=False),
    )


class GeminiRankingService:
    """Ranks the catalog with a Gemini model over the REST API."""

    def __init__(self, config: GeminiConfig, session: Optional[aiohttp.ClientSession] = None):
        """Initialize the service.

        Args:
            config: Gemini configuration
            session: Optional shared aiohttp session
        """
        self.config = config
        self.session = session
        self._owns_session = session is None

    async def _init_session(self):
        """Initialize aiohttp session with proper headers."""
        if self.session is None:
            headers = {
                "x-goog-api-key": self.config.api_key,
                "Content-Type": "application/json",
                "User-Agent": "FeedEngine/1.0",
            }
            self.session = aiohttp.ClientSession(headers=headers)

    def _request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": {"type": "ARRAY", "items": {"type": "STRING"}},
            },
        }

    async def _generate(self, prompt: str) -> Dict[str, Any]:
        await self._init_session()
        endpoint = f"{self.config.base_url}/models/{self.config.model}:generateContent"
        async with self.session.post(endpoint, json=self._request_body(prompt)) as response:
            if response.status != 200:
                body = await response.text()
                logger.error("Ranking request failed", status=response.status, body=body[:500])
                raise RankingError(
                    f"Ranking service returned HTTP {response.status}",
                    details={"status": response.status},
                )
            return await response.json()

    @staticmethod
    def _extract_text(payload: Dict[str, Any]) -> str:
        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise RankingError("Ranking response has no candidates") from e
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    async def rank(
        self,
        items: Sequence[Dict[str, str]],
        watched_titles: Sequence[str],
        liked_ids: Sequence[str],
    ) -> List[Any]:
        """Ask the model for an ordering of ``items``.

        Returns:
            The decoded JSON array, unchecked

        Raises:
            RankingError: On HTTP errors or undecodable output
        """
        prompt = build_prompt(items, watched_titles, liked_ids)
        payload = await self._generate(prompt)
        text = self._extract_text(payload)
        try:
            return json.loads(text or "[]")
        except json.JSONDecodeError as e:
            raise RankingError("Ranking response is not JSON", details={"text": text[:200]}) from e

    async def close(self):
        """Close the client session."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
