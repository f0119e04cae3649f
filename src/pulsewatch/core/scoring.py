"""
Pure ranking and tiering logic shared by the rules.
Nothing here touches the network or the stores.
"""
from typing import Dict, List, Optional, Sequence, Tuple

from pulsewatch.core.entities import CandidateObservation, PostingWindow
from pulsewatch.services.config import (
    EngagementSpikeConfig,
    PostingFrequencyConfig,
    ReviewObservationConfig,
)

# Lower value is picked first.
REVIEW_TYPE_PRIORITY: Dict[str, int] = {
    "Pain": 0,
    "FeatureRequest": 1,
    "Praise": 2,
}

COMPANY_TYPE_PRIORITY: Dict[str, int] = {
    "StrategicMove": 0,
    "FeatureLaunch": 1,
    "MarketRecognition": 2,
}

# (type, declared tier, rating bucket, confidence bucket) -> adjusted tier.
# Combinations not listed keep the declared tier.
TIER_ADJUSTMENTS: Dict[Tuple[str, int, str, str], int] = {
    # Low stars confirm a pain point
    ("Pain", 1, "low", "low"): 1,
    ("Pain", 1, "low", "high"): 1,
    ("Pain", 2, "low", "low"): 1,
    ("Pain", 2, "low", "high"): 1,
    ("Pain", 3, "low", "low"): 1,
    ("Pain", 3, "low", "high"): 1,
    # A happy reviewer's gripe is minor unless the model is sure
    ("Pain", 1, "high", "low"): 2,
    # Requests from dissatisfied reviewers are an opening
    ("FeatureRequest", 2, "low", "low"): 1,
    ("FeatureRequest", 2, "low", "high"): 1,
    # Praise inside a bad review is noise
    ("Praise", 1, "low", "low"): 3,
    ("Praise", 1, "low", "high"): 3,
    ("Praise", 2, "low", "low"): 3,
    ("Praise", 2, "low", "high"): 3,
}


def select_candidate(
    candidates: Sequence[CandidateObservation],
    priority: Dict[str, int],
) -> Optional[CandidateObservation]:
    """
    Pick the single observation to act on: type priority first,
    then declared tier, then input order.
    """
    if not candidates:
        return None

    fallback = len(priority)
    ranked = sorted(
        enumerate(candidates),
        key=lambda pair: (priority.get(pair[1].type, fallback), pair[1].tier, pair[0]),
    )
    return ranked[0][1]


def rating_bucket(rating: Optional[float], cfg: ReviewObservationConfig) -> str:
    if rating is None:
        return "unknown"
    if rating <= cfg.low_rating_max:
        return "low"
    if rating >= cfg.high_rating_min:
        return "high"
    return "mid"


def confidence_bucket(confidence: float, cfg: ReviewObservationConfig) -> str:
    return "high" if confidence >= cfg.high_confidence else "low"


def adjust_tier(
    candidate: CandidateObservation,
    rating: Optional[float],
    cfg: ReviewObservationConfig,
) -> int:
    key = (
        candidate.type,
        candidate.tier,
        rating_bucket(rating, cfg),
        confidence_bucket(candidate.confidence, cfg),
    )
    return TIER_ADJUSTMENTS.get(key, candidate.tier)


def engagement_tier(ratio: float, cfg: EngagementSpikeConfig) -> Optional[int]:
    """
    Map an engagement/baseline ratio to a tier, or None below the spike floor.
    """
    if ratio >= cfg.tier1_ratio:
        return 1
    if ratio >= cfg.tier2_ratio:
        return 2
    if ratio >= cfg.min_ratio:
        return 3
    return None


def posting_tier(window: PostingWindow, cfg: PostingFrequencyConfig) -> Optional[int]:
    """
    Tier for a posting-volume jump. Both the ratio and the absolute
    post count must clear a tier's floor.
    """
    current = window.current_posts
    previous = max(window.previous_posts, 0)

    if current <= 0:
        return None

    if previous == 0:
        # No baseline to compare against, so never more than tier 2
        return 2 if current >= cfg.new_activity_min_posts else None

    ratio = current / previous
    steps: List[Tuple[int, float, int]] = [
        (1, cfg.tier1_ratio, cfg.tier1_min_posts),
        (2, cfg.tier2_ratio, cfg.tier2_min_posts),
        (3, cfg.tier3_ratio, cfg.tier3_min_posts),
    ]
    for tier, min_ratio, min_posts in steps:
        if ratio >= min_ratio and current >= min_posts:
            return tier
    return None
