"""Data models for catalog content and per-user interaction state."""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ContentKind(str, Enum):
    """Presentation track a content item belongs to."""

    SHORT = "short"
    LONG = "long"


class ContentItem(BaseModel):
    """One playable asset as delivered by the catalog.

    Field aliases follow the catalog's wire format (``public_id``,
    ``video_url``, ``type``) so raw catalog records validate directly.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Optional[str] = None
    alternate_id: Optional[str] = Field(None, alias="public_id")
    media_url: str = Field("", alias="video_url")
    kind: ContentKind = Field(..., alias="type")
    title: str = ""
    category: str = ""
    poster_url: Optional[str] = None

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _require_identifier(self) -> "ContentItem":
        if not (self.id or self.alternate_id or self.media_url):
            raise ValueError("content item needs an id, a public_id or a video_url")
        return self

    def to_wire(self) -> Dict[str, Any]:
        """Convert the item to the catalog's wire format."""
        return self.model_dump(mode="json", by_alias=True)


def identity_of(item: ContentItem) -> str:
    """Resolve the identifier used for every membership check.

    Tries ``id``, then ``alternate_id``, then ``media_url``.
    """
    return item.id or item.alternate_id or item.media_url


def identifiers_of(item: ContentItem) -> Tuple[str, ...]:
    """Return every non-empty identifier carried by ``item``."""
    return tuple(value for value in (item.id, item.alternate_id, item.media_url) if value)


def _unique(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


class InteractionState(BaseModel):
    """Likes, dislikes, saves and watch progress of one user/device.

    The id collections are kept as ordered, duplicate-free lists so the
    persisted blob stays stable between writes. ``watch_history`` keeps
    insertion order, which the continue-watching rail relies on.
    """

    model_config = ConfigDict(populate_by_name=True)

    liked_ids: List[str] = Field(default_factory=list, alias="likedIds")
    disliked_ids: List[str] = Field(default_factory=list, alias="dislikedIds")
    saved_ids: List[str] = Field(default_factory=list, alias="savedIds")
    watch_history: Dict[str, float] = Field(default_factory=dict, alias="watchHistory")

    @field_validator("liked_ids", "disliked_ids", "saved_ids")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return _unique(value)

    @field_validator("watch_history", mode="before")
    @classmethod
    def _coerce_history(cls, value: Any) -> Any:
        # Older blobs store history as [{"id": ..., "progress": ...}, ...]
        if isinstance(value, list):
            history: Dict[str, float] = {}
            for entry in value:
                try:
                    key = str(entry["id"])
                    progress = float(entry["progress"])
                except (KeyError, TypeError, ValueError) as e:
                    raise ValueError(f"malformed history entry: {entry!r}") from e
                history[key] = max(history.get(key, progress), progress)
            return history
        return value

    @field_validator("watch_history")
    @classmethod
    def _check_progress_range(cls, value: Dict[str, float]) -> Dict[str, float]:
        for key, progress in value.items():
            if not 0.0 <= progress <= 1.0:
                raise ValueError(f"progress for {key!r} outside [0, 1]: {progress}")
        return value

    @model_validator(mode="after")
    def _check_exclusive(self) -> "InteractionState":
        overlap = set(self.liked_ids) & set(self.disliked_ids)
        if overlap:
            raise ValueError(f"ids both liked and disliked: {sorted(overlap)}")
        return self

    def snapshot(self) -> "InteractionState":
        """Return an independent copy for a composition cycle."""
        return self.model_copy(deep=True)

    def to_json(self) -> str:
        """Serialize to the persisted blob format."""
        return self.model_dump_json(by_alias=True)
