"""
Tests for the rule dispatcher (pulsewatch/workflows/dispatcher.py).

Verifies rule filtering, per-item ordering, bounded concurrency,
per-run caches, cancellation and error propagation.

Run: pytest tests/test_dispatcher.py -v
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

import pytest

from conftest import NOW, FakeBaselines, FakeLLM, FakePostingStats, make_post, make_review
from pulsewatch.core.entities import Alert, Bucket, ContentCategory, Item
from pulsewatch.rules.base import PulseRule, RuleContext
from pulsewatch.rules.registry import build_rules
from pulsewatch.rules.reviews import LowRatingRule
from pulsewatch.services.config import LowRatingConfig, parse_config
from pulsewatch.workflows.dispatcher import RuleDispatcher


def _alert(item: Item, rule: str) -> Alert:
    return Alert(
        company_id=item.company_id,
        company_name=item.company_name,
        bucket=Bucket.CUSTOMER_VOICE,
        chip="test-chip",
        tier=3,
        title=f"{rule} on {item.id}",
        url=item.url,
        observed_at=item.observed_at,
        context={},
        item_id=item.id,
        rule=rule,
    )


class RecordingRule(PulseRule):
    """Emits one alert per item and remembers what it saw."""

    def __init__(self, name, order, categories, log: List[str], delay: float = 0.0):
        self.name = name
        self.order = order
        self.categories = frozenset(categories)
        self.log = log
        self.delay = delay
        self.contexts: List[RuleContext] = []

    def matches(self, item: Item) -> bool:
        return True

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        self.contexts.append(ctx)
        self.log.append(f"{item.id}:{self.name}")
        if self.delay:
            await asyncio.sleep(self.delay)
        return _alert(item, self.name)


class ConcurrencyProbe(PulseRule):
    name = "probe"
    order = 1
    categories = frozenset({ContentCategory.REVIEW, ContentCategory.COMPANY_CONTENT})

    def __init__(self):
        self.active = 0
        self.peak = 0

    def matches(self, item: Item) -> bool:
        return True

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0.01)
        self.active -= 1
        return None


class FailingRule(PulseRule):
    name = "failing"
    order = 1
    categories = frozenset({ContentCategory.REVIEW})

    def __init__(self, bad_item_id: int):
        self.bad_item_id = bad_item_id

    def matches(self, item: Item) -> bool:
        return True

    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        await asyncio.sleep(0)
        if item.id == self.bad_item_id:
            raise RuntimeError("baseline store unavailable")
        return _alert(item, self.name)


async def _drain(dispatcher: RuleDispatcher, items, **kwargs) -> List[Alert]:
    return [alert async for alert in dispatcher.dispatch(items, **kwargs)]


class TestRuleDispatcher:

    def test_rules_filtered_by_category(self):
        log: List[str] = []
        review_rule = RecordingRule("reviews", 10, [ContentCategory.REVIEW], log)
        content_rule = RecordingRule("content", 10, [ContentCategory.COMPANY_CONTENT], log)
        dispatcher = RuleDispatcher([review_rule, content_rule])

        alerts = asyncio.run(_drain(dispatcher, [make_review(item_id=1), make_post(item_id=2)], now=NOW))

        assert sorted(log) == ["1:reviews", "2:content"]
        assert len(alerts) == 2

    def test_rules_for_one_item_run_in_order(self):
        log: List[str] = []
        late = RecordingRule("late", 40, [ContentCategory.REVIEW], log)
        early = RecordingRule("early", 10, [ContentCategory.REVIEW], log)
        dispatcher = RuleDispatcher([late, early])

        asyncio.run(_drain(dispatcher, [make_review(item_id=1)], now=NOW))

        assert log == ["1:early", "1:late"]

    def test_concurrency_is_bounded(self):
        probe = ConcurrencyProbe()
        dispatcher = RuleDispatcher([probe], max_concurrency=2)
        items = [make_review(item_id=i) for i in range(8)]

        asyncio.run(_drain(dispatcher, items, now=NOW))

        assert probe.peak == 2

    def test_items_run_concurrently(self):
        probe = ConcurrencyProbe()
        dispatcher = RuleDispatcher([probe], max_concurrency=8)

        asyncio.run(_drain(dispatcher, [make_review(item_id=i) for i in range(4)], now=NOW))

        assert probe.peak == 4

    def test_fresh_context_per_dispatch(self):
        log: List[str] = []
        rule = RecordingRule("reviews", 10, [ContentCategory.REVIEW], log)
        dispatcher = RuleDispatcher([rule])

        asyncio.run(_drain(dispatcher, [make_review(item_id=1), make_review(item_id=2)], now=NOW))
        asyncio.run(_drain(dispatcher, [make_review(item_id=3)], now=NOW))

        first_run, second_run = rule.contexts[0], rule.contexts[2]
        assert rule.contexts[0] is rule.contexts[1]
        assert first_run.cache is not second_run.cache

    def test_failure_propagates(self):
        dispatcher = RuleDispatcher([FailingRule(bad_item_id=3)], max_concurrency=2)
        items = [make_review(item_id=i) for i in range(6)]

        with pytest.raises(RuntimeError, match="baseline store unavailable"):
            asyncio.run(_drain(dispatcher, items, now=NOW))

    def test_cancelled_batch_yields_nothing(self):
        log: List[str] = []
        rule = RecordingRule("reviews", 10, [ContentCategory.REVIEW], log)
        dispatcher = RuleDispatcher([rule])

        async def scenario():
            cancel = asyncio.Event()
            cancel.set()
            return await _drain(dispatcher, [make_review(item_id=i) for i in range(3)], cancel_event=cancel)

        assert asyncio.run(scenario()) == []
        assert log == []

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            RuleDispatcher([], max_concurrency=0)

    def test_same_fact_in_batch_alerts_once(self, dedup, store):
        rule = LowRatingRule(dedup, LowRatingConfig())
        dispatcher = RuleDispatcher([rule], max_concurrency=4)
        items = [make_review(item_id=1, rating=1.0), make_review(item_id=2, rating=1.5)]

        alerts = asyncio.run(_drain(dispatcher, items, now=NOW))

        assert len(alerts) == 1
        entry = asyncio.run(store.get_entry(7, "Pain", "low-star-review", NOW.date()))
        assert entry.count == 2


# ---------------------------------------------------------------------------
# Default rule set over repeated passes
# ---------------------------------------------------------------------------

PAIN = {"type": "Pain", "tier": "Tier1", "topic": "slow support", "blurb": "Support never answers.", "confidence": 0.9}


class TestDefaultRuleSet:

    @pytest.fixture
    def dispatcher(self, store):
        rules = build_rules(
            config=parse_config({}),
            llm=FakeLLM({"observations": [PAIN]}),
            store=store,
            baselines=FakeBaselines(),
            posting_stats=FakePostingStats(),
        )
        return RuleDispatcher(rules)

    def test_low_star_review_twice_within_cooldown(self, dispatcher, store):
        item = make_review(rating=1.5)

        first = asyncio.run(_drain(dispatcher, [item], now=NOW))
        second = asyncio.run(_drain(dispatcher, [item], now=NOW + timedelta(minutes=10)))

        assert [(a.rule, a.tier) for a in first] == [("low_rating", 1)]
        assert second == []
        entry = asyncio.run(store.get_entry(7, "Pain", "low-star-review", NOW.date()))
        assert entry.count == 2

    def test_two_low_star_reviews_alert_once(self, dispatcher, store):
        reviews = [make_review(item_id=1, rating=1.0), make_review(item_id=2, rating=2.0)]

        first = asyncio.run(_drain(dispatcher, reviews[:1], now=NOW))
        second = asyncio.run(_drain(dispatcher, reviews[1:], now=NOW + timedelta(hours=1)))

        assert len(first) == 1
        assert second == []
        entry = asyncio.run(store.get_entry(7, "Pain", "low-star-review", NOW.date()))
        assert entry.count == 2
