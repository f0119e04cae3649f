import logging
from typing import List

from pulsewatch.processing.dedup import DedupPolicy
from pulsewatch.rules.base import PulseRule
from pulsewatch.rules.company import CompanyObservationRule, EngagementSpikeRule, PostingFrequencyRule
from pulsewatch.rules.reviews import LowRatingRule, ReviewObservationRule
from pulsewatch.services.baselines import BaselineProvider, PostingStatsProvider
from pulsewatch.services.config import Config
from pulsewatch.services.llm import OllamaClient
from pulsewatch.services.observations import ObservationStore

logger = logging.getLogger(__name__)


def build_rules(
    *,
    config: Config,
    llm: OllamaClient,
    store: ObservationStore,
    baselines: BaselineProvider,
    posting_stats: PostingStatsProvider,
) -> List[PulseRule]:
    """
    Create the enabled rules, sorted by execution order.
    """
    dedup = DedupPolicy(store, config.dedup)
    rules_cfg = config.rules
    rules: List[PulseRule] = []

    if rules_cfg.low_rating.enabled:
        rules.append(LowRatingRule(dedup, rules_cfg.low_rating))

    if rules_cfg.review_observations.enabled:
        # Preemption only makes sense while the low-rating rule is there to fire
        preempt = rules_cfg.review_observations.preempt_low_rating and rules_cfg.low_rating.enabled
        rules.append(
            ReviewObservationRule(
                llm,
                dedup,
                rules_cfg.review_observations,
                preempt_threshold=rules_cfg.low_rating.threshold if preempt else None,
            )
        )

    if rules_cfg.company_observations.enabled:
        rules.append(CompanyObservationRule(llm, dedup, rules_cfg.company_observations))

    if rules_cfg.engagement_spike.enabled:
        rules.append(EngagementSpikeRule(baselines, dedup, rules_cfg.engagement_spike))

    if rules_cfg.posting_frequency.enabled:
        rules.append(PostingFrequencyRule(posting_stats, dedup, rules_cfg.posting_frequency))

    rules.sort(key=lambda rule: rule.order)
    logger.info(f"Enabled rules: {', '.join(rule.name for rule in rules) or 'none'}")
    return rules
