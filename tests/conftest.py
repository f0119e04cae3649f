"""Shared pytest fixtures and stubs for the pulsewatch test suite.

The LLM and the baseline/posting providers are replaced by small stubs;
the observation store runs against a real SQLite file under tmp_path.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import pytest

from pulsewatch.core.entities import ContentCategory, Item, PostingWindow
from pulsewatch.processing.dedup import DedupPolicy
from pulsewatch.services.baselines import BaselineProvider, PostingStatsProvider
from pulsewatch.services.config import DedupConfig
from pulsewatch.services.database import Database
from pulsewatch.services.observations import SqliteObservationStore

NOW = datetime(2025, 3, 12, 15, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Stubs
# ---------------------------------------------------------------------------

class FakeLLM:
    """Returns canned responses in order; an Exception instance is raised instead."""

    def __init__(self, *responses: Union[str, dict, Exception]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def evaluate(self, prompt: str, system: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append({"prompt": prompt, "system": system})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            response = json.dumps(response)
        return {"raw": response, "content": response, "latency_ms": 1}


class FakeBaselines(BaselineProvider):

    def __init__(self, value: Union[float, Exception] = 10.0):
        self.value = value
        self.calls: List[tuple] = []

    async def get_engagement_baseline(self, company_id, source_type, as_of, period_type) -> float:
        self.calls.append((company_id, source_type, as_of, period_type))
        if isinstance(self.value, Exception):
            raise self.value
        return self.value


class FakePostingStats(PostingStatsProvider):

    def __init__(self, window: Optional[PostingWindow] = None):
        self.window = window
        self.calls: List[tuple] = []

    async def get_posting_window(self, company_id, period_type, as_of=None) -> Optional[PostingWindow]:
        self.calls.append((company_id, period_type, as_of))
        return self.window


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

def make_review(item_id: int = 1, company_id: int = 7, rating: Optional[float] = 4.0, **overrides) -> Item:
    fields = dict(
        id=item_id,
        company_id=company_id,
        company_name="Acme",
        source_type="G2",
        category=ContentCategory.REVIEW,
        gist="Setup took weeks and support never answered.",
        observed_at=NOW,
        gist_points=("Slow onboarding", "Unresponsive support"),
        rating=rating,
        url=f"https://g2.example/reviews/{item_id}",
        raw_content={"Text": {"cons": "Support never answered.", "overall": "Disappointing."}},
        raw_content_id=100 + item_id,
    )
    fields.update(overrides)
    return Item(**fields)


def make_post(item_id: int = 50, company_id: int = 7, raw_content: Optional[dict] = None, **overrides) -> Item:
    fields = dict(
        id=item_id,
        company_id=company_id,
        company_name="Acme",
        source_type="LinkedIn",
        category=ContentCategory.COMPANY_CONTENT,
        gist="Acme announces a partnership with Globex.",
        observed_at=NOW,
        gist_points=("Partnership with Globex",),
        url=f"https://linkedin.example/posts/{item_id}",
        raw_content=raw_content if raw_content is not None else {"likes": 10, "comments": 2, "shares": 1},
    )
    fields.update(overrides)
    return Item(**fields)


def make_window(current: int, previous: int, breakdown: Optional[dict] = None) -> PostingWindow:
    return PostingWindow(
        window_start=datetime(2025, 2, 10, tzinfo=timezone.utc),
        window_end=datetime(2025, 3, 12, tzinfo=timezone.utc),
        current_posts=current,
        previous_posts=previous,
        breakdown=breakdown or {},
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def database(tmp_path) -> Database:
    return Database(str(tmp_path / "pulse.db"))


@pytest.fixture
def store(database) -> SqliteObservationStore:
    return SqliteObservationStore(database)


@pytest.fixture
def dedup_config() -> DedupConfig:
    return DedupConfig()


@pytest.fixture
def dedup(store, dedup_config) -> DedupPolicy:
    return DedupPolicy(store, dedup_config)
