import aiosqlite
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    """UTC, fixed-width ISO format so timestamps compare correctly as text."""
    return as_utc(value).isoformat(timespec="microseconds")


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def to_day_bucket(value: datetime) -> str:
    return as_utc(value).date().isoformat()


class Database:
    def __init__(self, path: str):
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path, timeout=30.0)
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA busy_timeout=30000;")
        try:
            yield conn
        finally:
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> None:
        async with self.connect() as conn:
            await conn.execute(query, params)
            await conn.commit()

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def init_tables(self) -> None:
        """Initialize the observation ledger, topic state and item history tables."""
        async with self.connect() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS pulse_observations (
                    company_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    topic_key TEXT NOT NULL,
                    day TEXT NOT NULL,
                    first_seen_at TEXT NOT NULL,
                    last_seen_at TEXT NOT NULL,
                    count INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (company_id, type, topic_key, day)
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS pulse_topic_state (
                    company_id INTEGER NOT NULL,
                    type TEXT NOT NULL,
                    topic_key TEXT NOT NULL,
                    last_notified_at TEXT,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (company_id, type, topic_key)
                )
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS content_items (
                    id INTEGER PRIMARY KEY,
                    company_id INTEGER NOT NULL,
                    source_type TEXT NOT NULL,
                    category TEXT NOT NULL,
                    observed_at TEXT NOT NULL,
                    engagement REAL
                )
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_content_items_company_observed
                ON content_items(company_id, observed_at)
            """)
            await conn.commit()
            logger.info("Database tables initialized")

    # ------------------------------------------------------------------
    # Observation ledger
    # ------------------------------------------------------------------

    async def upsert_observation(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        seen_at: datetime,
    ) -> None:
        """Add one mention to the (company, type, topic, day) row."""
        ts = to_db_timestamp(seen_at)
        await self.execute(
            """
            INSERT INTO pulse_observations
            (company_id, type, topic_key, day, first_seen_at, last_seen_at, count)
            VALUES (?, ?, ?, ?, ?, ?, 1)
            ON CONFLICT (company_id, type, topic_key, day) DO UPDATE SET
                count = count + 1,
                first_seen_at = MIN(first_seen_at, excluded.first_seen_at),
                last_seen_at = MAX(last_seen_at, excluded.last_seen_at)
            """,
            (company_id, obs_type, topic_key, to_day_bucket(seen_at), ts, ts),
        )

    async def get_observation(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        day: date,
    ):
        return await self.fetchone(
            """SELECT company_id, type, topic_key, day, first_seen_at, last_seen_at, count
               FROM pulse_observations
               WHERE company_id = ? AND type = ? AND topic_key = ? AND day = ?""",
            (company_id, obs_type, topic_key, day.isoformat()),
        )

    async def sum_observations_since(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        since: datetime,
    ) -> int:
        row = await self.fetchone(
            """SELECT COALESCE(SUM(count), 0) FROM pulse_observations
               WHERE company_id = ? AND type = ? AND topic_key = ? AND day >= ?""",
            (company_id, obs_type, topic_key, to_day_bucket(since)),
        )
        return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # Topic cooldown state
    # ------------------------------------------------------------------

    async def get_last_notified_at(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
    ) -> Optional[datetime]:
        row = await self.fetchone(
            """SELECT last_notified_at FROM pulse_topic_state
               WHERE company_id = ? AND type = ? AND topic_key = ?""",
            (company_id, obs_type, topic_key),
        )
        return from_db_timestamp(row[0]) if row else None

    async def advance_last_notified_at(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        when: datetime,
    ) -> None:
        """Move the watermark forward to `when`; an earlier value never overwrites a later one."""
        ts = to_db_timestamp(when)
        await self.execute(
            """
            INSERT INTO pulse_topic_state
            (company_id, type, topic_key, last_notified_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (company_id, type, topic_key) DO UPDATE SET
                last_notified_at = CASE
                    WHEN last_notified_at IS NULL OR excluded.last_notified_at > last_notified_at
                    THEN excluded.last_notified_at
                    ELSE last_notified_at
                END,
                updated_at = excluded.updated_at
            """,
            (company_id, obs_type, topic_key, ts, to_db_timestamp(datetime.now(timezone.utc))),
        )

    # ------------------------------------------------------------------
    # Item history (feeds the baseline and posting window providers)
    # ------------------------------------------------------------------

    async def upsert_content_items(self, rows: List[tuple]) -> None:
        """
        rows: (id, company_id, source_type, category, observed_at, engagement)
        A None engagement marks the item as pending; averages skip it.
        """
        if not rows:
            return
        async with self.connect() as conn:
            await conn.executemany(
                """
                INSERT INTO content_items
                (id, company_id, source_type, category, observed_at, engagement)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    company_id = excluded.company_id,
                    source_type = excluded.source_type,
                    category = excluded.category,
                    observed_at = excluded.observed_at,
                    engagement = excluded.engagement
                """,
                [
                    (item_id, company_id, source_type, category, to_db_timestamp(observed_at), engagement)
                    for item_id, company_id, source_type, category, observed_at, engagement in rows
                ],
            )
            await conn.commit()

    async def set_engagement(self, rows: List[tuple]) -> None:
        """rows: (id, engagement)"""
        if not rows:
            return
        async with self.connect() as conn:
            await conn.executemany(
                "UPDATE content_items SET engagement = ? WHERE id = ?",
                [(engagement, item_id) for item_id, engagement in rows],
            )
            await conn.commit()

    async def average_engagement(
        self,
        company_id: int,
        source_type: Optional[str],
        since: datetime,
        until: datetime,
    ) -> float:
        row = await self.fetchone(
            """SELECT AVG(engagement) FROM content_items
               WHERE company_id = ?
                 AND (? IS NULL OR source_type = ?)
                 AND observed_at >= ? AND observed_at < ?""",
            (company_id, source_type, source_type, to_db_timestamp(since), to_db_timestamp(until)),
        )
        return float(row[0]) if row and row[0] is not None else 0.0

    async def count_items(
        self,
        company_id: int,
        category: str,
        since: datetime,
        until: datetime,
    ) -> int:
        row = await self.fetchone(
            """SELECT COUNT(*) FROM content_items
               WHERE company_id = ? AND category = ?
                 AND observed_at >= ? AND observed_at < ?""",
            (company_id, category, to_db_timestamp(since), to_db_timestamp(until)),
        )
        return int(row[0]) if row else 0

    async def item_source_breakdown(
        self,
        company_id: int,
        category: str,
        since: datetime,
        until: datetime,
    ) -> Dict[str, int]:
        rows = await self.fetchall(
            """SELECT source_type, COUNT(*) FROM content_items
               WHERE company_id = ? AND category = ?
                 AND observed_at >= ? AND observed_at < ?
               GROUP BY source_type""",
            (company_id, category, to_db_timestamp(since), to_db_timestamp(until)),
        )
        return {source_type: count for source_type, count in rows}
