"""
Base classes for Ingestion
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from pulsewatch.core.content import read_rating
from pulsewatch.core.entities import ContentCategory, Item
from pulsewatch.core.sources import category_for_source


class ItemRecord(BaseModel):
    """
    One summarized content record as produced upstream.
    """
    id: int
    company_id: int
    company_name: str = "Unknown"
    source_type: str
    category: Optional[ContentCategory] = None
    gist: str = ""
    gist_points: List[str] = []
    rating: Optional[float] = None
    url: str = ""
    raw_content: Dict[str, Any] = Field(default_factory=dict)
    raw_content_id: Optional[int] = None
    observed_at: datetime

    @field_validator("raw_content", mode="before")
    @classmethod
    def parse_raw_content(cls, value):
        # Upstream stores raw content as a JSON string; plain text goes under "Text"
        if value is None:
            return {}
        if isinstance(value, str):
            if not value.strip():
                return {}
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                return {"Text": value}
            return parsed if isinstance(parsed, dict) else {"Text": value}
        return value

    @field_validator("gist_points", mode="before")
    @classmethod
    def parse_gist_points(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return [value]
        return [p for p in value if isinstance(p, str) and p.strip()]

    @field_validator("observed_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_item(self) -> Item:
        category = self.category or category_for_source(self.source_type)
        rating = self.rating if self.rating is not None else read_rating(self.raw_content)

        return Item(
            id=self.id,
            company_id=self.company_id,
            company_name=self.company_name,
            source_type=self.source_type,
            category=category,
            gist=self.gist.strip(),
            observed_at=self.observed_at,
            gist_points=tuple(self.gist_points),
            rating=rating,
            url=self.url,
            raw_content=self.raw_content,
            raw_content_id=self.raw_content_id,
        )


class ItemSource(ABC):
    """
    Base interface for item streams.
    """

    name: str

    @abstractmethod
    async def fetch_items(self) -> List[Item]:
        """
        Load every valid item. Invalid records are skipped and logged.
        """
        raise NotImplementedError
