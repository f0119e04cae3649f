"""
PulsePipeline - records item history, runs the dispatcher and tidies the alerts
it produces before handing them to delivery.
"""
import hashlib
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from pulsewatch.core.content import extract_engagement
from pulsewatch.core.entities import Alert, Item
from pulsewatch.core.sources import normalize_source
from pulsewatch.services.config import EngagementWeights
from pulsewatch.services.database import Database, as_utc
from pulsewatch.workflows.dispatcher import RuleDispatcher

logger = logging.getLogger(__name__)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def build_source_key(alert: Alert) -> str:
    """
    Stable identifier of what an alert was derived from.
    """
    if alert.item_id is not None:
        return f"item:{alert.item_id}"
    if alert.raw_content_id is not None:
        return f"rc:{alert.raw_content_id}"
    if alert.url and alert.url.strip():
        return f"url:{_sha256(alert.url.strip().lower())}"

    fallback = "|".join([
        str(alert.company_id),
        alert.chip,
        alert.title.strip().lower(),
        as_utc(alert.observed_at).date().isoformat(),
    ])
    return f"fb:{_sha256(fallback)}"


def _dedupe_key(alert: Alert) -> Tuple:
    return (
        alert.company_id,
        alert.bucket.value,
        alert.chip,
        " ".join(alert.title.lower().split()),
        as_utc(alert.observed_at).date(),
    )


def dedupe_alerts(alerts: Sequence[Alert]) -> List[Alert]:
    """
    Drop alerts repeating the same company/bucket/chip/title on the same day.
    The most severe copy wins.
    """
    ranked = sorted(
        alerts,
        key=lambda a: (a.tier, as_utc(a.observed_at), a.item_id if a.item_id is not None else -1),
    )

    seen: Dict[Tuple, Alert] = {}
    for alert in ranked:
        key = _dedupe_key(alert)
        if key in seen:
            logger.debug(f"Dropping same-day duplicate alert: {alert.title}")
            continue
        seen[key] = alert

    return list(seen.values())


class PulsePipeline:
    name = "pulse"

    def __init__(
        self,
        dispatcher: RuleDispatcher,
        database: Optional[Database] = None,
        weights: Optional[EngagementWeights] = None,
    ):
        self.dispatcher = dispatcher
        self.db = database
        self.weights = weights or EngagementWeights()

    def _engagement(self, item: Item) -> float:
        return extract_engagement(item.raw_content).weighted(
            self.weights.likes, self.weights.comments, self.weights.shares
        )

    async def record_history(self, items: Sequence[Item], pending: bool = False) -> None:
        """
        Store item counts and engagement for the baseline providers.

        With `pending`, engagement is left empty until `record_engagement`
        runs, so items being scored stay out of their own baseline while
        still counting as posts.
        """
        if self.db is None or not items:
            return

        rows = [
            (
                item.id,
                item.company_id,
                normalize_source(item.source_type),
                item.category.value,
                item.observed_at,
                None if pending else self._engagement(item),
            )
            for item in items
        ]

        await self.db.init_tables()
        await self.db.upsert_content_items(rows)
        suffix = " (engagement pending)" if pending else ""
        logger.info(f"Recorded history for {len(rows)} items{suffix}")

    async def record_engagement(self, items: Sequence[Item]) -> None:
        if self.db is None or not items:
            return
        await self.db.set_engagement([(item.id, self._engagement(item)) for item in items])

    async def run(self, items: Sequence[Item], now: Optional[datetime] = None) -> List[Alert]:
        if not items:
            logger.info("No items to evaluate")
            return []

        await self.record_history(items, pending=True)

        alerts: List[Alert] = []
        async for alert in self.dispatcher.dispatch(items, now=now):
            alerts.append(alert)

        await self.record_engagement(items)

        unique = dedupe_alerts(alerts)
        logger.info(f"Pipeline produced {len(unique)} alerts ({len(alerts) - len(unique)} same-day duplicates dropped)")

        return [replace(alert, source_key=build_source_key(alert)) for alert in unique]
