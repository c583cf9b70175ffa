"""Feed composition and playback continuation engine."""

from .core.composer import Feed, FeedComposer
from .core.continuation import LongFormContinuation, ShortFormContinuation
from .core.refresh import FeedRefresher
from .models import ContentItem, ContentKind, InteractionState, identity_of
from .ranking.adapter import RankingAdapter, RankingResult
from .storage.exclusions import AdminExclusionList
from .storage.interactions import InteractionStore

__version__ = "1.0.0"

__all__ = [
    "ContentItem",
    "ContentKind",
    "InteractionState",
    "identity_of",
    "InteractionStore",
    "AdminExclusionList",
    "RankingAdapter",
    "RankingResult",
    "Feed",
    "FeedComposer",
    "FeedRefresher",
    "ShortFormContinuation",
    "LongFormContinuation",
]
