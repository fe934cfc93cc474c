# -*- coding: utf-8 -*-
"""
tests/test_aggregator_storage.py
Additive merge in memory and in SQLite, read queries, ingestion log, news events.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from swearmeter import storage
from swearmeter.aggregator import Aggregator
from swearmeter.models import HourlyAggregate, MatchResult, NewsEvent
from swearmeter.storage import init_db

NOW = datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)
H = "2026-10-19T14:00:00Z"


def _agg(term, source, bucket, count, ctx="unknown"):
    a = HourlyAggregate(term=term, source=source, bucket_start=bucket)
    a.add(count, {ctx: count})
    return a


def test_hourly_aggregate_merge_in_memory():
    a = HourlyAggregate(term="shit", source="gdelt", bucket_start=H)
    a.add(3, {"anger": 3})
    a.add(2, {"humor": 1, "unknown": 1})
    assert a.count == 5
    assert sum(a.context_counts().values()) == 5
    assert a.anger_count == 3 and a.humor_count == 1


def test_aggregator_buckets_and_contexts():
    agg = Aggregator("mastodon", NOW)
    assert agg.bucket_for("2026-10-19T09:59:59Z") == "2026-10-19T09:00:00Z"
    assert agg.bucket_for("garbage") == H
    agg.add_matches(H, [MatchResult("fuck", 2, [0, 10], "anger"), MatchResult("damn", 1, [5], "quote")])
    agg.add_matches(H, [MatchResult("fuck", 1, [0], "humor")])
    fuck = agg.hourly[("fuck", H)]
    assert fuck.count == 3 and fuck.anger_count == 2 and fuck.humor_count == 1
    assert agg.total() == 4


def test_aggregator_merge_is_a_sum():
    a, b = Aggregator("gdelt", NOW), Aggregator("gdelt", NOW)
    a.add_matches(H, [MatchResult("shit", 3, [0, 1, 2], "anger")])
    b.add_matches(H, [MatchResult("shit", 2, [0, 1], "unknown")])
    b.add_collocations("shit", ["show", "show"])
    a.merge(b)
    assert a.hourly[("shit", H)].count == 5
    assert a.collocations[("shit", "show")] == 2
    with pytest.raises(ValueError):
        a.merge(Aggregator("youtube", NOW))


def test_aggregator_rejects_unknown_source():
    with pytest.raises(ValueError):
        Aggregator("reddit")


def test_flush_is_additive_in_sqlite(tmp_path):
    async def main():
        db = await init_db(tmp_path / "t.db")
        try:
            for count, ctx in ((3, "anger"), (2, "humor")):
                agg = Aggregator("gdelt", NOW)
                agg.add_matches(H, [MatchResult("shit", count, list(range(count)), ctx)])
                agg.add_collocations("shit", ["storm"])
                await agg.flush(db)
                assert agg.is_empty()

            row = await storage.get_hourly(db, "shit", "gdelt", H)
            assert row.count == 5
            assert row.anger_count == 3 and row.humor_count == 2
            assert sum(row.context_counts().values()) == 5

            colloc = await storage.get_collocations(db, "shit", "gdelt")
            assert [(c.nearby_term, c.count) for c in colloc] == [("storm", 2)]
        finally:
            await db.close()

    asyncio.run(main())


def test_upsert_rejects_inconsistent_rows(tmp_path):
    async def main():
        db = await init_db(tmp_path / "t.db")
        try:
            bad = HourlyAggregate(term="damn", source="gdelt", bucket_start=H, count=4, anger_count=1)
            with pytest.raises(ValueError):
                await storage.upsert_hourly_counts(db, [bad])
            with pytest.raises(ValueError):
                await storage.upsert_hourly_counts(db, [_agg("damn", "twitter", H, 1)])
            assert await storage.get_hourly(db, "damn", "gdelt", H) is None
        finally:
            await db.close()

    asyncio.run(main())


def test_read_queries(tmp_path):
    async def main():
        db = await init_db(tmp_path / "t.db")
        try:
            await storage.upsert_hourly_counts(db, [
                _agg("fuck", "mastodon", "2026-10-19T13:00:00Z", 6),
                _agg("fuck", "bluesky", "2026-10-19T13:00:00Z", 4),
                _agg("fuck", "bluesky", H, 2),
                _agg("damn", "bluesky", H, 3),
                _agg("shit", "youtube", "2026-10-18T14:00:00Z", 5),
            ])

            ts = await storage.get_time_series(db, "fuck", "combined", "2026-10-19T00:00:00Z", NOW)
            assert [(p.timestamp, p.value) for p in ts] == [("2026-10-19T13:00:00Z", 10), (H, 2)]

            ts = await storage.get_time_series(db, "all", "bluesky", "2026-10-19T00:00:00Z", NOW)
            assert [(p.timestamp, p.value) for p in ts] == [("2026-10-19T13:00:00Z", 4), (H, 5)]

            total = await storage.get_total_count(db, "combined", "2026-10-19T00:00:00Z", NOW)
            assert total == 15

            tree = await storage.get_treemap(db, "combined", "2026-10-19T00:00:00Z", NOW)
            assert [(n.term, n.count, n.percentage) for n in tree] == [("fuck", 12, 80.0), ("damn", 3, 20.0)]
            assert await storage.get_treemap(db, "combined", "2020-01-01T00:00:00Z", "2020-01-02T00:00:00Z") == []

            top = await storage.get_top_terms(db, "combined", hours=24, limit=10, now=NOW)
            # the youtube bucket from yesterday 14:00 is older than 24h at 14:30
            assert top == [{"term": "fuck", "count": 12}, {"term": "damn", "count": 3}]

            heat = await storage.get_heatmap(db, "shit", "youtube", now=NOW)
            # 2026-10-18 is a Sunday
            assert [(c.day_of_week, c.hour_of_day, c.count) for c in heat] == [(0, 14, 5)]

            with pytest.raises(ValueError):
                await storage.get_total_count(db, "reddit", "2026-10-19T00:00:00Z", NOW)
        finally:
            await db.close()

    asyncio.run(main())


def test_ingestion_log_single_terminal_transition(tmp_path):
    async def main():
        db = await init_db(tmp_path / "t.db")
        try:
            run_id = await storage.log_ingestion_start(db, "hackernews")
            run = await storage.get_run(db, run_id)
            assert run.status == "running" and run.completed_at is None

            assert await storage.log_ingestion_complete(db, run_id, 12, "completed")
            assert not await storage.log_ingestion_complete(db, run_id, 0, "failed", "late")
            run = await storage.get_run(db, run_id)
            assert run.status == "completed" and run.items_processed == 12 and run.error_message is None

            failed_id = await storage.log_ingestion_start(db, "gdelt")
            await storage.log_ingestion_complete(db, failed_id, 0, "failed", "boom")
            recent = await storage.get_recent_runs(db)
            assert [r.id for r in recent] == [failed_id, run_id]
            assert [r.source for r in await storage.get_recent_runs(db, "gdelt")] == ["gdelt"]

            with pytest.raises(ValueError):
                await storage.log_ingestion_start(db, "reddit")
            with pytest.raises(ValueError):
                await storage.log_ingestion_complete(db, run_id, 0, "running")
        finally:
            await db.close()

    asyncio.run(main())


def test_news_events_dedupe_by_url(tmp_path):
    async def main():
        db = await init_db(tmp_path / "t.db")
        try:
            agg = Aggregator("gdelt", NOW)
            agg.add_news_event(NewsEvent("2026-10-19T13:05:00Z", "Old headline", "example.com", "https://e.com/1"))
            agg.add_news_event(NewsEvent("2026-10-19T14:05:00Z", "New headline", "example.org", "https://e.org/2"))
            await agg.flush(db)
            await storage.insert_news_events(db, [NewsEvent("2026-10-19T14:10:00Z", "Dup", "x", "https://e.com/1")])

            events = await storage.get_news_events(db, "2026-10-19T00:00:00Z", NOW)
            assert [e.headline for e in events] == ["New headline", "Old headline"]
        finally:
            await db.close()

    asyncio.run(main())
