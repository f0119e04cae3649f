"""
Rules for company-authored content: LLM-extracted company actions,
engagement spikes and posting-cadence jumps.
"""
import json
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from pulsewatch.core.content import extract_engagement
from pulsewatch.core.entities import (
    Alert,
    Bucket,
    CandidateObservation,
    Chip,
    ContentCategory,
    Item,
    ObservationType,
    PostingWindow,
)
from pulsewatch.core.schemas import CompanyObservationOut, tier_number
from pulsewatch.core.scoring import COMPANY_TYPE_PRIORITY, engagement_tier, posting_tier, select_candidate
from pulsewatch.core.sources import normalize_source, source_label
from pulsewatch.core.topics import topic_key
from pulsewatch.processing.dedup import DedupPolicy
from pulsewatch.processing.extraction import parse_observations
from pulsewatch.rules.base import PulseRule, RuleContext
from pulsewatch.rules.prompts import COMPANY_SYSTEM_PROMPT, build_company_prompt
from pulsewatch.services.baselines import BaselineProvider, PostingStatsProvider
from pulsewatch.services.config import (
    CompanyObservationConfig,
    EngagementSpikeConfig,
    PostingFrequencyConfig,
)
from pulsewatch.services.database import as_utc
from pulsewatch.services.llm import OllamaClient

logger = logging.getLogger(__name__)

COMPANY_CHIPS = {
    ObservationType.STRATEGIC_MOVE.value: Chip.STRATEGIC_MOVE,
    ObservationType.FEATURE_LAUNCH.value: Chip.FEATURE_LAUNCH,
    ObservationType.MARKET_RECOGNITION.value: Chip.SOCIAL_PROOF_DROP,
}


class CompanyObservationRule(PulseRule):
    """
    Detects launches, partnerships, funding, hires and awards in
    company-authored content.
    """

    name = "company_observations"
    order = 20
    categories = frozenset({ContentCategory.COMPANY_CONTENT})

    def __init__(self, llm: OllamaClient, dedup: DedupPolicy, config: CompanyObservationConfig):
        self.llm = llm
        self.dedup = dedup
        self.config = config

    def matches(self, item: Item) -> bool:
        # No gist, no call
        return bool(item.gist and item.gist.strip())

    async def extract_candidates(self, item: Item) -> List[CandidateObservation]:
        prompt = build_company_prompt(
            company=item.company_name,
            source=source_label(item.source_type),
            gist=item.gist,
            gist_points=item.gist_points,
            raw=json.dumps(item.raw_content, ensure_ascii=False, default=str) if item.raw_content else "",
        )

        try:
            response = await self.llm.evaluate(prompt, system=COMPANY_SYSTEM_PROMPT)
        except Exception as e:
            logger.warning(f"Company observation LLM call failed for item {item.id}: {e}")
            return []

        parsed = parse_observations(response["content"], CompanyObservationOut, self.config.max_observations)
        return [
            CandidateObservation(
                type=obs.signalType,
                topic=obs.topic or obs.headline,
                blurb=obs.headline,
                tier=tier_number(obs.tier),
                confidence=obs.confidence,
                description=obs.description,
            )
            for obs in parsed
        ]

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        logger.info(f"Company observation start: item={item.id} company={item.company_id} source={item.source_type}")

        candidates = await self.extract_candidates(item)
        pick = select_candidate(candidates, COMPANY_TYPE_PRIORITY)
        if pick is None:
            return None

        key = topic_key(f"{pick.type}:{pick.topic}")
        now = ctx.clock_for(item)
        if not await self.dedup.admit(ctx, item.company_id, pick.type, key, now, item_id=item.id):
            logger.info(f"Company observation suppressed: company={item.company_id} type={pick.type} topic={key}")
            return None

        return Alert(
            company_id=item.company_id,
            company_name=item.company_name,
            bucket=Bucket.COMPANY_ACTIVITY,
            chip=COMPANY_CHIPS.get(pick.type, Chip.STRATEGIC_MOVE),
            tier=pick.tier,
            title=pick.blurb,
            url=item.url,
            observed_at=item.observed_at,
            context={
                "type": pick.type,
                "topic": pick.topic,
                "topic_key": key,
                "description": pick.description,
                "confidence": pick.confidence,
                "source": source_label(item.source_type),
            },
            item_id=item.id,
            raw_content_id=item.raw_content_id,
            rule=self.name,
        )


def _start_of_day(value: datetime) -> datetime:
    return as_utc(value).replace(hour=0, minute=0, second=0, microsecond=0)


class EngagementSpikeRule(PulseRule):
    """
    Flags a post whose weighted engagement is well above the company's
    recent average for the same source.
    """

    name = "engagement_spike"
    order = 30
    categories = frozenset({ContentCategory.COMPANY_CONTENT})

    def __init__(self, baselines: BaselineProvider, dedup: DedupPolicy, config: EngagementSpikeConfig):
        self.baselines = baselines
        self.dedup = dedup
        self.config = config

    def matches(self, item: Item) -> bool:
        return bool(item.raw_content)

    async def _baseline(self, item: Item, ctx: RuleContext) -> float:
        as_of = _start_of_day(ctx.now)
        source = normalize_source(item.source_type)
        cache_key = ("engagement-baseline", item.company_id, source, self.config.period, as_of.date())

        return await ctx.cache.get_or_load(
            cache_key,
            lambda: self.baselines.get_engagement_baseline(item.company_id, source, as_of, self.config.period),
        )

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        engagement = extract_engagement(item.raw_content)
        weights = self.config.weights
        score = engagement.weighted(weights.likes, weights.comments, weights.shares)
        if score <= 0:
            return None

        baseline = await self._baseline(item, ctx)
        if baseline <= 0:
            return None

        ratio = score / baseline
        tier = engagement_tier(ratio, self.config)
        if tier is None:
            return None

        key = topic_key(f"engagement-spike-{self.config.period}")
        if not await self.dedup.admit(
            ctx, item.company_id, ObservationType.ENGAGEMENT_SPIKE.value, key, ctx.clock_for(item), item_id=item.id
        ):
            logger.info(f"Engagement spike suppressed: company={item.company_id} ratio={ratio:.2f}")
            return None

        source = source_label(item.source_type)

        return Alert(
            company_id=item.company_id,
            company_name=item.company_name,
            bucket=Bucket.MARKETING,
            chip=Chip.ENGAGEMENT_SPIKE,
            tier=tier,
            title=f"{source} post generated {ratio:.1f}× higher engagement than baseline",
            url=item.url,
            observed_at=item.observed_at,
            context={
                "likes": engagement.likes,
                "comments": engagement.comments,
                "shares": engagement.shares,
                "engagement": score,
                "baseline": baseline,
                "ratio": ratio,
                "period": self.config.period,
                "source": source,
            },
            item_id=item.id,
            raw_content_id=item.raw_content_id,
            rule=self.name,
        )


def top_source(breakdown: dict) -> Tuple[Optional[str], int]:
    """The busiest channel in a posting breakdown, prettified for titles."""
    if not breakdown:
        return None, 0

    source, posts = max(breakdown.items(), key=lambda pair: pair[1])
    if not source or posts <= 0:
        return None, 0
    return source_label(source), posts


class PostingFrequencyRule(PulseRule):
    """
    Flags a jump in how often the company publishes, period over period.
    One alert per company per window.
    """

    name = "posting_frequency"
    order = 40
    categories = frozenset({ContentCategory.COMPANY_CONTENT})

    def __init__(self, posting_stats: PostingStatsProvider, dedup: DedupPolicy, config: PostingFrequencyConfig):
        self.posting_stats = posting_stats
        self.dedup = dedup
        self.config = config

    def matches(self, item: Item) -> bool:
        return True

    async def _window(self, item: Item, ctx: RuleContext) -> Optional[PostingWindow]:
        period = self.config.period
        return await ctx.cache.get_or_load(
            ("posting-window", item.company_id, period),
            lambda: self.posting_stats.get_posting_window(item.company_id, period, as_of=ctx.now),
        )

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        window = await self._window(item, ctx)
        if window is None:
            return None

        tier = posting_tier(window, self.config)
        if tier is None:
            return None

        period = self.config.period
        current = window.current_posts
        previous = max(window.previous_posts, 0)

        key = topic_key(f"posting-frequency-{period}-{window.window_end:%Y%m%d}")
        if not await self.dedup.admit(
            ctx, item.company_id, ObservationType.POSTING_FREQUENCY.value, key, ctx.clock_for(item), item_id=item.id
        ):
            logger.info(f"Posting frequency alert suppressed: company={item.company_id} topic={key}")
            return None

        source, source_posts = top_source(window.breakdown)
        ratio = current / previous if previous else None
        ratio_text = "from zero baseline" if ratio is None else f"{ratio:.1f}× vs prior"
        subject = f"{source} posting" if source else "Posting cadence"

        return Alert(
            company_id=item.company_id,
            company_name=item.company_name,
            bucket=Bucket.MARKETING,
            chip=Chip.MARKETING_TACTIC,
            tier=tier,
            title=f"{subject} up {ratio_text} ({current} vs {previous} posts, {period})",
            url=item.url,
            observed_at=item.observed_at,
            context={
                "period": period,
                "window_start": window.window_start.isoformat(),
                "window_end": window.window_end.isoformat(),
                "current_posts": current,
                "previous_posts": previous,
                "ratio": ratio,
                "top_source": source,
                "top_source_posts": source_posts,
            },
            item_id=item.id,
            raw_content_id=item.raw_content_id,
            rule=self.name,
        )
