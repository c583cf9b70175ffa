"""Boundary between the composer and the fallible ranking service."""
import asyncio
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pybreaker
import structlog

from feed_engine.core.errors import MalformedRankingError, RankingError
from feed_engine.metrics import RANKING_FALLBACKS, RANKING_REQUESTS
from feed_engine.models import ContentItem, InteractionState, identity_of
from feed_engine.ranking.service import RankingService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RankingResult:
    """Outcome of one ranking call: an order or the reason there is none."""

    order: Optional[List[str]] = None
    error: Optional[RankingError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, order: List[str]) -> "RankingResult":
        return cls(order=order)

    @classmethod
    def failure(cls, error: RankingError) -> "RankingResult":
        return cls(error=error)


def fallback_order(
    catalog: Sequence[ContentItem], rng: Optional[random.Random] = None
) -> List[str]:
    """Every catalog identity exactly once, in shuffled order."""
    rng = rng or random.Random()
    ids = list(dict.fromkeys(identity_of(item) for item in catalog))
    rng.shuffle(ids)
    return ids


def catalog_projection(catalog: Sequence[ContentItem]) -> List[Dict[str, str]]:
    """The (id, title, category) view sent to the ranking service."""
    return [
        {"id": identity_of(item), "title": item.title, "category": item.category}
        for item in catalog
    ]


def watched_titles(catalog: Sequence[ContentItem], interactions: InteractionState) -> List[str]:
    """Titles of catalog items that appear in the watch history."""
    return [item.title for item in catalog if identity_of(item) in interactions.watch_history]


class RankingAdapter:
    """Turns a ranking service into a total function over the catalog.

    ``try_rank`` reports failures as a ``RankingResult``; ``rank`` builds the
    shuffled fallback from that result, so callers always get a usable order.
    """

    def __init__(
        self,
        service: RankingService,
        timeout: float = 20.0,
        breaker: Optional[pybreaker.CircuitBreaker] = None,
        rng: Optional[random.Random] = None,
    ):
        """Initialize the adapter.

        Args:
            service: Ranking service to call
            timeout: Seconds to wait for the service before giving up
            breaker: Circuit breaker guarding the service
            rng: Random source for the fallback shuffle
        """
        self.service = service
        self.timeout = timeout
        self.breaker = breaker or pybreaker.CircuitBreaker(fail_max=3, reset_timeout=120)
        self.rng = rng or random.Random()

    async def try_rank(
        self, catalog: Sequence[ContentItem], interactions: InteractionState
    ) -> RankingResult:
        """Call the service once and validate what comes back."""
        if not catalog:
            return RankingResult.success([])

        try:
            with self.breaker.calling():
                raw = await asyncio.wait_for(
                    self.service.rank(
                        catalog_projection(catalog),
                        watched_titles(catalog, interactions),
                        list(interactions.liked_ids),
                    ),
                    timeout=self.timeout,
                )
                # Garbage answers count as failures for the circuit
                if not isinstance(raw, list) or not all(isinstance(value, str) for value in raw):
                    raise MalformedRankingError(
                        "Ranking response is not a list of ids", details={"raw": repr(raw)[:200]}
                    )
        except pybreaker.CircuitBreakerError as e:
            RANKING_REQUESTS.labels(status="circuit_open").inc()
            return RankingResult.failure(RankingError(f"Ranking circuit open: {e}"))
        except asyncio.TimeoutError:
            RANKING_REQUESTS.labels(status="timeout").inc()
            return RankingResult.failure(
                RankingError("Ranking service timed out", details={"timeout": self.timeout})
            )
        except MalformedRankingError as e:
            RANKING_REQUESTS.labels(status="malformed").inc()
            return RankingResult.failure(e)
        except RankingError as e:
            RANKING_REQUESTS.labels(status="error").inc()
            return RankingResult.failure(e)
        except Exception as e:
            RANKING_REQUESTS.labels(status="error").inc()
            return RankingResult.failure(
                RankingError(f"Ranking service failed: {e}", details={"type": type(e).__name__})
            )

        RANKING_REQUESTS.labels(status="success").inc()
        return RankingResult.success(raw)

    def order_from(self, result: RankingResult, catalog: Sequence[ContentItem]) -> List[str]:
        """Resolve a result to an order, building the fallback on failure."""
        if result.ok:
            return result.order
        logger.warning(
            "Ranking failed, using shuffled order",
            error=result.error.message,
            details=result.error.details,
        )
        RANKING_FALLBACKS.inc()
        return fallback_order(catalog, self.rng)

    async def rank(
        self, catalog: Sequence[ContentItem], interactions: InteractionState
    ) -> List[str]:
        """Ranked ids, or the shuffled fallback when the service fails."""
        result = await self.try_rank(catalog, interactions)
        return self.order_from(result, catalog)
