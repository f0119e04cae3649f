"""
ObservationStore - the per-day mention ledger and the per-topic cooldown watermark.
"""
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional

from pulsewatch.core.entities import LedgerEntry
from pulsewatch.services.database import Database, from_db_timestamp

logger = logging.getLogger(__name__)


class ObservationStore(ABC):
    """
    Persistence contract used by the dedup policy.
    Every write is an upsert, so retrying after a failure is safe.
    """

    @abstractmethod
    async def record_mention(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        seen_at: datetime,
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_entry(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        day: date,
    ) -> Optional[LedgerEntry]:
        raise NotImplementedError

    @abstractmethod
    async def count_since(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        since: datetime,
    ) -> int:
        """Sum of mentions on days from `since`'s UTC day onward."""
        raise NotImplementedError

    @abstractmethod
    async def get_last_notified_at(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
    ) -> Optional[datetime]:
        raise NotImplementedError

    @abstractmethod
    async def set_last_notified_at(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        when: datetime,
    ) -> None:
        """Advance the watermark; never moves it backwards."""
        raise NotImplementedError


class SqliteObservationStore(ObservationStore):

    def __init__(self, database: Database):
        self.db = database
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the database tables."""
        if not self._initialized:
            await self.db.init_tables()
            self._initialized = True

    async def record_mention(self, company_id, obs_type, topic_key, seen_at) -> None:
        await self.initialize()
        await self.db.upsert_observation(company_id, obs_type, topic_key, seen_at)
        logger.debug(f"Recorded mention: company={company_id} type={obs_type} topic={topic_key}")

    async def get_entry(self, company_id, obs_type, topic_key, day) -> Optional[LedgerEntry]:
        await self.initialize()
        row = await self.db.get_observation(company_id, obs_type, topic_key, day)
        if row is None:
            return None
        return LedgerEntry(
            company_id=row[0],
            type=row[1],
            topic_key=row[2],
            day=row[3],
            first_seen_at=from_db_timestamp(row[4]),
            last_seen_at=from_db_timestamp(row[5]),
            count=row[6],
        )

    async def count_since(self, company_id, obs_type, topic_key, since) -> int:
        await self.initialize()
        return await self.db.sum_observations_since(company_id, obs_type, topic_key, since)

    async def get_last_notified_at(self, company_id, obs_type, topic_key) -> Optional[datetime]:
        await self.initialize()
        return await self.db.get_last_notified_at(company_id, obs_type, topic_key)

    async def set_last_notified_at(self, company_id, obs_type, topic_key, when) -> None:
        await self.initialize()
        await self.db.advance_last_notified_at(company_id, obs_type, topic_key, when)
