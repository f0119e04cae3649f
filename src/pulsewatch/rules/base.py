"""
Contains base class for pulse rules and the per-run evaluation context
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Hashable, Optional, Set, Tuple

from pulsewatch.core.entities import Alert, ContentCategory, Item

_MISSING = object()


class RunCache:
    """
    Memoises lookups for one evaluation batch.

    Concurrent callers asking for the same key share a single load. A
    failed load is not cached, so the next caller tries again.
    """

    def __init__(self):
        self._values: Dict[Hashable, Any] = {}
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        value = self._values.get(key, _MISSING)
        if value is not _MISSING:
            return value

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            value = self._values.get(key, _MISSING)
            if value is _MISSING:
                value = await loader()
                self._values[key] = value
            return value

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


@dataclass
class RuleContext:
    """
    State shared by every rule invocation of one dispatched batch.
    """
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    cache: RunCache = field(default_factory=RunCache)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    clock: str = "run"
    locks: Dict[Hashable, asyncio.Lock] = field(default_factory=dict)
    mentions: Set[Tuple] = field(default_factory=set)

    def lock_for(self, key: Hashable) -> asyncio.Lock:
        return self.locks.setdefault(key, asyncio.Lock())

    def first_mention(self, item_id: Optional[int], company_id: int, obs_type: str, topic_key: str) -> bool:
        """
        True the first time an item mentions a key in this batch.
        Items without an id are always counted.
        """
        if item_id is None:
            return True
        key = (item_id, company_id, obs_type, topic_key)
        if key in self.mentions:
            return False
        self.mentions.add(key)
        return True

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def ensure_active(self) -> None:
        """Raise CancelledError once the batch has been cancelled."""
        if self.cancel_event.is_set():
            raise asyncio.CancelledError("rule evaluation cancelled")

    def clock_for(self, item: Item) -> datetime:
        """The timestamp dedup decisions are made against for `item`."""
        if self.clock == "observed":
            return item.observed_at
        return self.now


class PulseRule(ABC):
    """
    Base interface for all detection rules.
    """

    name: str
    order: int = 100
    categories: FrozenSet[ContentCategory] = frozenset()

    def applies_to(self, item: Item) -> bool:
        return item.category in self.categories and self.matches(item)

    @abstractmethod
    def matches(self, item: Item) -> bool:
        """
        Cheap predicate used to skip inapplicable rules.
        Must not call external services.
        """
        raise NotImplementedError

    @abstractmethod
    async def evaluate(self, item: Item, ctx: RuleContext) -> Optional[Alert]:
        """
        Evaluate one item and return at most one alert.
        LLM failures are handled here; store and provider failures propagate.
        """
        raise NotImplementedError
