"""
Pydantic schemas for the JSON the extraction prompts ask the LLM to return.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def _normalize_tier(value):
    """Accept "Tier1", "tier 1", "1" or 1."""
    if isinstance(value, int):
        return f"Tier{value}"
    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch.isdigit())
        if digits:
            return f"Tier{digits}"
    return value


class ReviewObservationOut(BaseModel):
    """
    One observation extracted from a review-like item.
    """
    type: Literal["Pain", "FeatureRequest", "Praise"]
    tier: Literal["Tier1", "Tier2", "Tier3"]
    topic: str = Field(..., min_length=1)
    blurb: str = Field(..., min_length=1)
    evidence: Optional[str] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    @field_validator("tier", mode="before")
    @classmethod
    def normalize_tier(cls, value):
        return _normalize_tier(value)


class CompanyObservationOut(BaseModel):
    """
    One strategic observation extracted from company-authored content.
    """
    signalType: Literal["StrategicMove", "FeatureLaunch", "MarketRecognition"]
    headline: str = Field(..., min_length=1)
    description: str = ""
    topic: Optional[str] = None
    tier: Literal["Tier1", "Tier2", "Tier3"]
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    @field_validator("tier", mode="before")
    @classmethod
    def normalize_tier(cls, value):
        return _normalize_tier(value)


class ObservationEnvelope(BaseModel):
    """
    Outer shape shared by both prompts: {"observations": [...]}.
    Entries are validated one by one against the rule's schema.
    """
    observations: List[dict] = []


def tier_number(tier: str) -> int:
    return {"Tier1": 1, "Tier2": 2}.get(tier, 3)
