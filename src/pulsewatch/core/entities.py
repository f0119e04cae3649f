from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ContentCategory(str, Enum):
    REVIEW = "review"
    COMPANY_CONTENT = "company_content"
    COMMUNITY = "community"


class Bucket(str, Enum):
    """
    Downstream routing tag for an alert.
    """
    CUSTOMER_VOICE = "customer_voice"
    MARKETING = "marketing"
    COMPANY_ACTIVITY = "company_activity"


class ObservationType(str, Enum):
    # Reviews taxonomy
    PAIN = "Pain"
    FEATURE_REQUEST = "FeatureRequest"
    PRAISE = "Praise"

    # Company content taxonomy
    STRATEGIC_MOVE = "StrategicMove"
    FEATURE_LAUNCH = "FeatureLaunch"
    MARKET_RECOGNITION = "MarketRecognition"

    # Statistical rules
    ENGAGEMENT_SPIKE = "EngagementSpike"
    POSTING_FREQUENCY = "PostingFrequency"


class Chip:
    """
    Stable classifier slugs attached to alerts.
    """
    PAIN_SIGNAL = "pain-signal"
    FEATURE_GAP = "feature-gap"
    SOCIAL_PROOF_DROP = "social-proof-drop"
    FEATURE_LAUNCH = "feature-launch"
    STRATEGIC_MOVE = "strategic-move"
    ENGAGEMENT_SPIKE = "engagement-spike"
    MARKETING_TACTIC = "marketing-tactic"


@dataclass(frozen=True)
class Item:
    """
    One summarized content record, the unit of evaluation.
    """
    id: int
    company_id: int
    company_name: str
    source_type: str
    category: ContentCategory
    gist: str
    observed_at: datetime
    gist_points: Tuple[str, ...] = ()
    rating: Optional[float] = None
    url: str = ""
    raw_content: Dict[str, Any] = field(default_factory=dict)
    raw_content_id: Optional[int] = None


@dataclass(frozen=True)
class CandidateObservation:
    """
    Typed, tiered claim extracted from one item before ranking.
    """
    type: str
    topic: str
    blurb: str
    tier: int
    confidence: float
    evidence: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class Alert:
    """
    A pulse surfaced to the curation stage.
    """
    company_id: int
    company_name: str
    bucket: Bucket
    chip: str
    tier: int
    title: str
    url: str
    observed_at: datetime
    context: Dict[str, Any]
    item_id: Optional[int] = None
    raw_content_id: Optional[int] = None
    rule: str = ""
    source_key: Optional[str] = None


@dataclass(frozen=True)
class LedgerEntry:
    company_id: int
    type: str
    topic_key: str
    day: str
    first_seen_at: datetime
    last_seen_at: datetime
    count: int


@dataclass(frozen=True)
class PostingWindow:
    """
    Company-authored posting volume for the current and previous period.
    """
    window_start: datetime
    window_end: datetime
    current_posts: int
    previous_posts: int
    breakdown: Dict[str, int] = field(default_factory=dict)
