"""
Detection rules. Each rule inspects one item and returns at most one alert.
"""
from pulsewatch.rules.base import PulseRule, RuleContext, RunCache
from pulsewatch.rules.company import CompanyObservationRule, EngagementSpikeRule, PostingFrequencyRule
from pulsewatch.rules.registry import build_rules
from pulsewatch.rules.reviews import LowRatingRule, ReviewObservationRule

__all__ = [
    "PulseRule",
    "RuleContext",
    "RunCache",
    "LowRatingRule",
    "ReviewObservationRule",
    "CompanyObservationRule",
    "EngagementSpikeRule",
    "PostingFrequencyRule",
    "build_rules",
]
