"""
Rules for review-site items: the low-star headline and LLM-extracted observations.
"""
import json
import logging
from typing import List, Optional

from pulsewatch.core.content import extract_evidence
from pulsewatch.core.entities import (
    Alert,
    Bucket,
    CandidateObservation,
    Chip,
    ContentCategory,
    Item,
    ObservationType,
)
from pulsewatch.core.schemas import ReviewObservationOut, tier_number
from pulsewatch.core.scoring import REVIEW_TYPE_PRIORITY, adjust_tier, select_candidate
from pulsewatch.core.sources import source_label
from pulsewatch.core.topics import topic_key
from pulsewatch.processing.dedup import DedupPolicy
from pulsewatch.processing.extraction import parse_observations
from pulsewatch.rules.base import PulseRule, RuleContext
from pulsewatch.rules.prompts import REVIEW_SYSTEM_PROMPT, build_review_prompt
from pulsewatch.services.config import LowRatingConfig, ReviewObservationConfig
from pulsewatch.services.llm import OllamaClient

logger = logging.getLogger(__name__)

# Every low-star review of a company shares one dedup bucket
LOW_RATING_TYPE = ObservationType.PAIN.value
LOW_RATING_TOPIC = "low-star-review"

REVIEW_CHIPS = {
    ObservationType.PAIN.value: Chip.PAIN_SIGNAL,
    ObservationType.FEATURE_REQUEST.value: Chip.FEATURE_GAP,
    ObservationType.PRAISE.value: Chip.SOCIAL_PROOF_DROP,
}


class LowRatingRule(PulseRule):
    """
    Tier 1 headline whenever a review at or below the threshold appears.
    No LLM involved.
    """

    name = "low_rating"
    order = 10
    categories = frozenset({ContentCategory.REVIEW})

    def __init__(self, dedup: DedupPolicy, config: LowRatingConfig):
        self.dedup = dedup
        self.config = config

    def matches(self, item: Item) -> bool:
        return item.rating is not None

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        rating = item.rating
        if rating is None or rating > self.config.threshold:
            return None

        now = ctx.clock_for(item)
        key = topic_key(LOW_RATING_TOPIC)

        if not await self.dedup.admit(ctx, item.company_id, LOW_RATING_TYPE, key, now, item_id=item.id):
            logger.info(f"Low-rating alert suppressed: company={item.company_id} item={item.id}")
            return None

        source = source_label(item.source_type)
        gist = item.gist or "Very negative review reported"
        evidence = extract_evidence(item.raw_content, item.gist_points, item.gist) or "Low-star review"

        return Alert(
            company_id=item.company_id,
            company_name=item.company_name,
            bucket=Bucket.CUSTOMER_VOICE,
            chip=Chip.PAIN_SIGNAL,
            tier=1,
            title=f"{round(rating)}★ on {source}: {gist}",
            url=item.url,
            observed_at=item.observed_at,
            context={
                "rating": rating,
                "source": source,
                "topic": LOW_RATING_TOPIC,
                "headline": True,
                "evidence": evidence,
            },
            item_id=item.id,
            raw_content_id=item.raw_content_id,
            rule=self.name,
        )


class ReviewObservationRule(PulseRule):
    """
    Asks the LLM for Pain / FeatureRequest / Praise observations and
    surfaces the most actionable one.

    When `preempt_threshold` is set, reviews at or below it are left to
    LowRatingRule: the mention is counted under its canonical topic (once
    per item and batch) and nothing is emitted here.
    """

    name = "review_observations"
    order = 20
    categories = frozenset({ContentCategory.REVIEW})

    def __init__(
        self,
        llm: OllamaClient,
        dedup: DedupPolicy,
        config: ReviewObservationConfig,
        preempt_threshold: Optional[float] = None,
    ):
        self.llm = llm
        self.dedup = dedup
        self.config = config
        self.preempt_threshold = preempt_threshold

    def matches(self, item: Item) -> bool:
        return bool(item.gist or item.gist_points or item.raw_content)

    async def extract_candidates(self, item: Item) -> List[CandidateObservation]:
        """
        LLM call + parsing. Any failure here means no candidates.
        """
        prompt = build_review_prompt(
            company=item.company_name,
            source=source_label(item.source_type),
            rating=item.rating,
            gist=item.gist,
            gist_points=item.gist_points,
            raw=json.dumps(item.raw_content, ensure_ascii=False, default=str) if item.raw_content else "",
        )

        try:
            response = await self.llm.evaluate(prompt, system=REVIEW_SYSTEM_PROMPT)
        except Exception as e:
            logger.warning(f"Review observation LLM call failed for item {item.id}: {e}")
            return []

        logger.debug(f"Review observation response for item {item.id} (latency: {response['latency_ms']}ms)")

        parsed = parse_observations(response["content"], ReviewObservationOut, self.config.max_observations)
        return [
            CandidateObservation(
                type=obs.type,
                topic=obs.topic,
                blurb=obs.blurb,
                tier=tier_number(obs.tier),
                confidence=obs.confidence,
                evidence=obs.evidence,
            )
            for obs in parsed
        ]

    def _preempted(self, item: Item) -> bool:
        return (
            self.preempt_threshold is not None
            and item.rating is not None
            and item.rating <= self.preempt_threshold
        )

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        candidates = await self.extract_candidates(item)
        pick = select_candidate(candidates, REVIEW_TYPE_PRIORITY)
        if pick is None:
            return None

        now = ctx.clock_for(item)

        if self._preempted(item):
            await self.dedup.record_once(
                ctx, item.id, item.company_id, LOW_RATING_TYPE, topic_key(LOW_RATING_TOPIC), now
            )
            logger.info(f"Review observation preempted by low rating: company={item.company_id} item={item.id}")
            return None

        key = topic_key(pick.topic)
        if not await self.dedup.admit(ctx, item.company_id, pick.type, key, now, item_id=item.id):
            logger.info(f"Review observation suppressed: company={item.company_id} type={pick.type} topic={key}")
            return None

        source = source_label(item.source_type)

        return Alert(
            company_id=item.company_id,
            company_name=item.company_name,
            bucket=Bucket.CUSTOMER_VOICE,
            chip=REVIEW_CHIPS.get(pick.type, Chip.PAIN_SIGNAL),
            tier=adjust_tier(pick, item.rating, self.config),
            title=pick.blurb,
            url=item.url,
            observed_at=item.observed_at,
            context={
                "type": pick.type,
                "topic": pick.topic,
                "topic_key": key,
                "evidence": pick.evidence,
                "confidence": pick.confidence,
                "declared_tier": pick.tier,
                "source": source,
                "rating": item.rating,
            },
            item_id=item.id,
            raw_content_id=item.raw_content_id,
            rule=self.name,
        )
