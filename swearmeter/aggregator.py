# -*- coding: utf-8 -*-
"""
aggregator.py
In-memory accumulation for one ingestion run, flushed as additive upserts.
Keys: (term, bucket) for hourly counts, (term, nearby word) for collocations;
the source is fixed per Aggregator. Merging is a plain sum, so flushing the same
increments twice equals flushing them once with doubled counts.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

import aiosqlite
from loguru import logger

from swearmeter import storage
from swearmeter.models import (
    SOURCES,
    Collocation,
    HourlyAggregate,
    MatchResult,
    NewsEvent,
    empty_context_counts,
)
from swearmeter.utils import hour_bucket, iso_utc, parse_timestamp, utc_now


class Aggregator:
    def __init__(self, source: str, now: Optional[datetime] = None):
        if source not in SOURCES:
            raise ValueError(f"Aggregator: unknown source {source!r}")
        self.source = source
        self.now = now or utc_now()
        self.hourly: Dict[Tuple[str, str], HourlyAggregate] = {}
        self.collocations: Counter = Counter()
        self.news_events: List[NewsEvent] = []

    def bucket_for(self, timestamp) -> str:
        """Hour bucket of the item; items without a usable timestamp land in the run's hour."""
        return hour_bucket(parse_timestamp(timestamp) or self.now)

    def add_matches(self, bucket: str, matches: Iterable[MatchResult]) -> None:
        for m in matches:
            key = (m.term, bucket)
            agg = self.hourly.get(key)
            if agg is None:
                agg = self.hourly[key] = HourlyAggregate(term=m.term, source=self.source, bucket_start=bucket)
            ctx = empty_context_counts()
            ctx[m.context] += m.count
            agg.add(m.count, ctx)

    def add_collocations(self, term: str, words: Iterable[str]) -> None:
        for w in words:
            self.collocations[(term, w)] += 1

    def add_news_event(self, event: NewsEvent) -> None:
        self.news_events.append(event)

    def merge(self, other: "Aggregator") -> "Aggregator":
        """Fold another accumulator for the same source into this one."""
        if other.source != self.source:
            raise ValueError("Aggregator.merge: source mismatch")
        for key, agg in other.hourly.items():
            mine = self.hourly.get(key)
            if mine is None:
                mine = self.hourly[key] = HourlyAggregate(term=agg.term, source=self.source, bucket_start=agg.bucket_start)
            mine.add(agg.count, agg.context_counts())
        self.collocations.update(other.collocations)
        self.news_events.extend(other.news_events)
        return self

    def total(self) -> int:
        return sum(a.count for a in self.hourly.values())

    def is_empty(self) -> bool:
        return not self.hourly and not self.collocations and not self.news_events

    def collocation_rows(self, updated_at: Optional[str] = None) -> List[Collocation]:
        stamp = updated_at or iso_utc(utc_now())
        return [
            Collocation(term=term, nearby_term=word, source=self.source, count=count, updated_at=stamp)
            for (term, word), count in self.collocations.items()
        ]

    async def flush(self, db: aiosqlite.Connection) -> int:
        """
        Write everything accumulated so far and reset.
        One commit for the whole batch; each row is an atomic increment-or-insert.
        If any write fails the batch is rolled back and nothing is reset.
        """
        if self.is_empty():
            return 0
        async with storage.write_lock(db):
            try:
                n_hourly = await storage.upsert_hourly_counts(db, self.hourly.values(), commit=False)
                n_colloc = await storage.upsert_collocations(db, self.collocation_rows(), commit=False)
                n_news = await storage.insert_news_events(db, self.news_events, commit=False)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        logger.debug("[aggregator] {} flushed hourly={} collocations={} news={}",
                     self.source, n_hourly, n_colloc, n_news)

        self.hourly.clear()
        self.collocations.clear()
        self.news_events.clear()
        return n_hourly
