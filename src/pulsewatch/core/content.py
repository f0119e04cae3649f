"""
Readers for the loosely structured raw content attached to an item.
Review sites and social platforms name the same fields differently.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

RATING_PATHS = ("Metadata.Rating", "metadata.rating", "rating", "overallRating")

LIKE_KEYS = ("likes", "reactions")
COMMENT_KEYS = ("comments", "commentCount")
SHARE_KEYS = ("shares", "reposts", "retweets")


def read_path(data: Any, path: str) -> Any:
    """Follow a dotted path through nested mappings; None when any step is missing."""
    current = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def read_rating(raw: Mapping[str, Any]) -> Optional[float]:
    for path in RATING_PATHS:
        rating = _to_float(read_path(raw, path))
        if rating is not None:
            return rating
    return None


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_evidence(raw: Mapping[str, Any], gist_points: Sequence[str], gist: str) -> str:
    """
    Short supporting snippet for a review: the cons section, then the
    overall verdict, then flat review text, then the first gist point.
    """
    for path in ("Text.cons", "Text.overall"):
        found = _text(read_path(raw, path))
        if found:
            return found

    found = _text(raw.get("Text")) if isinstance(raw, Mapping) else None
    if found:
        return found

    for point in gist_points:
        if _text(point):
            return point.strip()

    return gist


@dataclass(frozen=True)
class Engagement:
    likes: int = 0
    comments: int = 0
    shares: int = 0

    def weighted(self, likes: float, comments: float, shares: float) -> float:
        return self.likes * likes + self.comments * comments + self.shares * shares


def _first_count(raw: Mapping[str, Any], keys: Sequence[str]) -> int:
    for key in keys:
        value = _to_float(read_path(raw, key))
        if value is None:
            value = _to_float(read_path(raw, f"Metadata.{key}"))
        if value is not None:
            return max(int(value), 0)
    return 0


def extract_engagement(raw: Mapping[str, Any]) -> Engagement:
    """Canonical counters first, platform aliases after."""
    if not raw:
        return Engagement()
    return Engagement(
        likes=_first_count(raw, LIKE_KEYS),
        comments=_first_count(raw, COMMENT_KEYS),
        shares=_first_count(raw, SHARE_KEYS),
    )
