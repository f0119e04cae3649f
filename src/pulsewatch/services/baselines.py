"""
Comparison statistics for the engagement and posting-volume rules.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from pulsewatch.core.entities import ContentCategory, PostingWindow
from pulsewatch.services.config import SUPPORTED_PERIODS
from pulsewatch.services.database import Database, as_utc

logger = logging.getLogger(__name__)


def period_days(period_type: str) -> int:
    if period_type not in SUPPORTED_PERIODS:
        raise ValueError(f"Unsupported period type: {period_type}")
    return int(period_type.rstrip("d"))


class BaselineProvider(ABC):

    @abstractmethod
    async def get_engagement_baseline(
        self,
        company_id: int,
        source_type: Optional[str],
        as_of: datetime,
        period_type: str,
    ) -> float:
        """Average weighted engagement per post over the period before `as_of`."""
        raise NotImplementedError


class PostingStatsProvider(ABC):

    @abstractmethod
    async def get_posting_window(
        self,
        company_id: int,
        period_type: str,
        as_of: Optional[datetime] = None,
    ) -> Optional[PostingWindow]:
        """Current vs previous period post counts for company-authored content."""
        raise NotImplementedError


class SqliteBaselineProvider(BaselineProvider):
    """
    Baselines computed from the item history table.
    """

    def __init__(self, database: Database):
        self.db = database

    async def get_engagement_baseline(self, company_id, source_type, as_of, period_type) -> float:
        days = period_days(period_type)
        until = as_utc(as_of)
        baseline = await self.db.average_engagement(
            company_id, source_type, until - timedelta(days=days), until
        )
        logger.debug(
            f"Engagement baseline company={company_id} source={source_type} "
            f"period={period_type}: {baseline:.2f}"
        )
        return baseline


class SqlitePostingStatsProvider(PostingStatsProvider):
    """
    Windows end at the start of the `as_of` UTC day, so a partially
    ingested day never counts.
    """

    def __init__(self, database: Database):
        self.db = database

    async def get_posting_window(self, company_id, period_type, as_of=None) -> Optional[PostingWindow]:
        days = period_days(period_type)
        as_of = as_utc(as_of or datetime.now(timezone.utc))

        window_end = as_of.replace(hour=0, minute=0, second=0, microsecond=0)
        window_start = window_end - timedelta(days=days)
        previous_start = window_start - timedelta(days=days)
        category = ContentCategory.COMPANY_CONTENT.value

        current = await self.db.count_items(company_id, category, window_start, window_end)
        previous = await self.db.count_items(company_id, category, previous_start, window_start)
        breakdown = await self.db.item_source_breakdown(company_id, category, window_start, window_end)

        return PostingWindow(
            window_start=window_start,
            window_end=window_end,
            current_posts=current,
            previous_posts=previous,
            breakdown=breakdown,
        )
