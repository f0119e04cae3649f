"""
Dedup policy: cooldown per (company, type, topic) with a surge override.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from pulsewatch.services.config import DedupConfig
from pulsewatch.services.database import as_utc
from pulsewatch.services.observations import ObservationStore

logger = logging.getLogger(__name__)


class DedupPolicy:
    """
    Decides whether an observation may be surfaced again.

    The ledger is always updated first, so suppressed mentions still
    count towards a later surge.
    """

    def __init__(self, store: ObservationStore, config: DedupConfig):
        self.store = store
        self.config = config

    async def record_mention(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        now: datetime,
    ) -> None:
        await self.store.record_mention(company_id, obs_type, topic_key, as_utc(now))

    async def should_emit(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        now: datetime,
    ) -> bool:
        now = as_utc(now)

        last = await self.store.get_last_notified_at(company_id, obs_type, topic_key)
        cooldown = timedelta(days=self.config.cooldown_for(obs_type))
        if last is None or now - as_utc(last) >= cooldown:
            return True

        if await self._is_surge(company_id, obs_type, topic_key, now):
            logger.info(
                f"Surge override: company={company_id} type={obs_type} topic={topic_key}"
            )
            return True

        logger.debug(
            f"Suppressed by cooldown: company={company_id} type={obs_type} "
            f"topic={topic_key} last_notified_at={last.isoformat()}"
        )
        return False

    async def _is_surge(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        now: datetime,
    ) -> bool:
        surge = self.config.surge

        recent = await self.store.count_since(
            company_id, obs_type, topic_key, now - timedelta(days=surge.lookback_days)
        )
        if recent < surge.min_mentions:
            return False

        total = await self.store.count_since(
            company_id, obs_type, topic_key, now - timedelta(days=surge.baseline_days)
        )
        prior = max(total - recent, 0)

        # Scale the prior window down to the length of the recent one
        expected = prior * surge.lookback_days / (surge.baseline_days - surge.lookback_days)
        return recent >= surge.multiplier * expected

    async def mark_emitted(
        self,
        company_id: int,
        obs_type: str,
        topic_key: str,
        now: datetime,
    ) -> None:
        await self.store.set_last_notified_at(company_id, obs_type, topic_key, as_utc(now))

    async def record_once(
        self,
        ctx,
        item_id: Optional[int],
        company_id: int,
        obs_type: str,
        topic_key: str,
        now: datetime,
    ) -> bool:
        """
        Record the mention unless this item already counted towards the key
        earlier in the batch. Returns whether a mention was written.
        """
        if not ctx.first_mention(item_id, company_id, obs_type, topic_key):
            logger.debug(f"Mention already counted: item={item_id} type={obs_type} topic={topic_key}")
            return False

        ctx.ensure_active()
        await self.record_mention(company_id, obs_type, topic_key, now)
        return True

    async def admit(
        self,
        ctx,
        company_id: int,
        obs_type: str,
        topic_key: str,
        now: datetime,
        item_id: Optional[int] = None,
    ) -> bool:
        """
        Record the mention, decide, and advance the cooldown on emit.
        `ctx.ensure_active()` is checked before each store write.

        Calls for the same key within one batch are serialized so two
        concurrent items cannot both pass an empty cooldown. An item is
        counted at most once per key and batch, whichever rule sees it first.
        """
        async with ctx.lock_for(("dedup", company_id, obs_type, topic_key)):
            ctx.ensure_active()
            await self.record_once(ctx, item_id, company_id, obs_type, topic_key, now)

            if not await self.should_emit(company_id, obs_type, topic_key, now):
                return False

            ctx.ensure_active()
            await self.mark_emitted(company_id, obs_type, topic_key, now)
            return True
