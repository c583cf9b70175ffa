"""Ranking service clients and the adapter that makes them total."""
from feed_engine.ranking.adapter import RankingAdapter, RankingResult, fallback_order
from feed_engine.ranking.service import GeminiConfig, GeminiRankingService, RankingService

__all__ = [
    "RankingAdapter",
    "RankingResult",
    "fallback_order",
    "GeminiConfig",
    "GeminiRankingService",
    "RankingService",
]
