# -*- coding: utf-8 -*-
"""
ingest_state.py
Per-source bookkeeping that decides what to fetch next and when to stop.

Three state machines, same contract:
    begin_run()        reset per-run scratch
    record_seen(id)    -> True the first time an id shows up, False afterwards
    should_continue()  -> may the adapter request another item/page
    advance()          commit progress (end of run / end of page)

- WatermarkCursor: incrementing numeric ids (HackerNews)
- BoundedSeenSet:  opaque string ids, insertion-ordered, oldest evicted first
- RateLimitBudget: API call budget parsed from response headers (Mastodon)

No module-level state here: SourceStates holds one of each per source and is
owned by the scheduler (main.py), so tests build their own.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Set

from swearmeter.utils import parse_timestamp, utc_now


class WatermarkCursor:
    """Highest fully processed numeric id; never moves backwards."""

    def __init__(self, max_batch: int = 500, initial_backfill: int = 200, watermark: int = 0):
        self.max_batch = max(1, int(max_batch))
        self.initial_backfill = max(0, int(initial_backfill))
        self.watermark = int(watermark)
        self._run_seen: Set[int] = set()
        self._run_high = 0

    def begin_run(self) -> None:
        self._run_seen.clear()
        self._run_high = 0

    def plan(self, current_max: int) -> range:
        """
        Ids to fetch this run: strictly above the watermark, at most max_batch of
        them, newest kept when the gap is larger. First run backfills a little.
        """
        current_max = int(current_max)
        floor = self.watermark
        if floor <= 0:
            floor = current_max - self.initial_backfill
        start = max(floor + 1, current_max - self.max_batch + 1, 1)
        if start > current_max:
            return range(0)
        return range(start, current_max + 1)

    def is_seen(self, item_id: int) -> bool:
        item_id = int(item_id)
        return item_id <= self.watermark or item_id in self._run_seen

    def record_seen(self, item_id: Any) -> bool:
        item_id = int(item_id)
        if self.is_seen(item_id):
            return False
        self._run_seen.add(item_id)
        self._run_high = max(self._run_high, item_id)
        return True

    def should_continue(self) -> bool:
        return len(self._run_seen) < self.max_batch

    def advance(self) -> int:
        # skipped/deleted ids were recorded too, so they count as seen
        self.watermark = max(self.watermark, self._run_high)
        self._run_seen.clear()
        self._run_high = 0
        return self.watermark


class BoundedSeenSet:
    """
    Recently seen ids with a hard capacity. Eviction drops the oldest insert.
    An evicted id can come back and be processed again; that's the trade for
    bounded memory.

    Ids recorded during a run are staged and only join the committed set on
    advance(); begin_run() drops whatever a failed run staged so it gets retried.
    """

    def __init__(self, capacity: int = 10_000):
        if int(capacity) < 1:
            raise ValueError("BoundedSeenSet: capacity must be >= 1")
        self.capacity = int(capacity)
        self._ids: "OrderedDict[str, None]" = OrderedDict()
        self._run_ids: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, item_id: object) -> bool:
        key = str(item_id)
        return key in self._ids or key in self._run_ids

    def __len__(self) -> int:
        return len(self._ids)

    def begin_run(self) -> None:
        self._run_ids.clear()

    def record_seen(self, item_id: Any) -> bool:
        key = str(item_id)
        if key in self:
            return False
        self._run_ids[key] = None
        return True

    def should_continue(self) -> bool:
        return True

    def advance(self) -> int:
        for key in self._run_ids:
            self._ids[key] = None
        self._run_ids.clear()
        while len(self._ids) > self.capacity:
            self._ids.popitem(last=False)
        return len(self._ids)


class RateLimitBudget:
    """
    Remaining-call count and reset time from the last response.
    Paging stops once remaining drops below safety_margin or max_pages is hit.
    """

    def __init__(
        self,
        max_pages: int = 5,
        safety_margin: int = 10,
        remaining: int = 300,
        reset_window_sec: int = 300,
    ):
        self.max_pages = max(1, int(max_pages))
        self.safety_margin = int(safety_margin)
        self.remaining = int(remaining)
        self.reset_window_sec = int(reset_window_sec)
        self.reset_at: Optional[datetime] = None
        self.pages = 0
        self.cursor: Optional[str] = None
        self.stopped_early = False
        self._run_ids: Set[str] = set()

    def begin_run(self) -> None:
        self.pages = 0
        self.cursor = None
        self.stopped_early = False
        self._run_ids.clear()

    def update(self, remaining: int, reset_at: Optional[datetime] = None) -> None:
        self.remaining = int(remaining)
        self.reset_at = reset_at or (utc_now() + timedelta(seconds=self.reset_window_sec))

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        raw_remaining = headers.get("X-RateLimit-Remaining") or headers.get("x-ratelimit-remaining")
        raw_reset = headers.get("X-RateLimit-Reset") or headers.get("x-ratelimit-reset")
        try:
            remaining = int(raw_remaining) if raw_remaining not in (None, "") else self.remaining
        except ValueError:
            remaining = self.remaining
        self.update(remaining, parse_timestamp(raw_reset))

    def record_seen(self, item_id: Any) -> bool:
        key = str(item_id)
        # last id of the page becomes the next page's max_id
        self.cursor = key
        if key in self._run_ids:
            return False
        self._run_ids.add(key)
        return True

    def should_continue(self, now: Optional[datetime] = None) -> bool:
        if self.pages >= self.max_pages:
            return False
        if self.reset_at is not None and (now or utc_now()) >= self.reset_at:
            # window rolled over since the last response; budget is fresh again
            return True
        if self.remaining < self.safety_margin:
            self.stopped_early = True
            return False
        return True

    def advance(self) -> int:
        self.pages += 1
        return self.pages


@dataclass
class SourceStates:
    """Process-wide ingestion state, one instance per scheduler."""
    hackernews: WatermarkCursor = field(default_factory=WatermarkCursor)
    mastodon_budget: RateLimitBudget = field(default_factory=RateLimitBudget)
    mastodon_seen: BoundedSeenSet = field(default_factory=BoundedSeenSet)
    bluesky_seen: BoundedSeenSet = field(default_factory=BoundedSeenSet)
    youtube_seen: BoundedSeenSet = field(default_factory=BoundedSeenSet)
    gdelt_seen: BoundedSeenSet = field(default_factory=BoundedSeenSet)

    @classmethod
    def from_config(cls, sources_cfg: Dict[str, Dict[str, Any]]) -> "SourceStates":
        def c(name: str) -> Dict[str, Any]:
            return sources_cfg.get(name) or {}

        hn, md = c("hackernews"), c("mastodon")
        return cls(
            hackernews=WatermarkCursor(
                max_batch=hn.get("max_batch", 500),
                initial_backfill=hn.get("initial_backfill", 200),
            ),
            mastodon_budget=RateLimitBudget(
                max_pages=md.get("max_pages", 5),
                safety_margin=md.get("safety_margin", 10),
            ),
            mastodon_seen=BoundedSeenSet(md.get("seen_capacity", 10_000)),
            bluesky_seen=BoundedSeenSet(c("bluesky").get("seen_capacity", 10_000)),
            youtube_seen=BoundedSeenSet(c("youtube").get("seen_capacity", 10_000)),
            gdelt_seen=BoundedSeenSet(c("gdelt").get("seen_capacity", 10_000)),
        )
