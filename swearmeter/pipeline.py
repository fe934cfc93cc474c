# -*- coding: utf-8 -*-
"""
pipeline.py
One item:  sanitize -> slur gate -> scan -> collocations -> aggregator
One run:   log start -> page loop (sequential) -> flush -> commit source state -> log end

run_source() is the failure fence for a source: any exception ends up as a
`failed` IngestionRun and is not re-raised, so sibling sources keep going.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Sequence

import aiosqlite
from loguru import logger

from swearmeter import storage
from swearmeter.aggregator import Aggregator
from swearmeter.collocations import extract_collocations
from swearmeter.models import RUN_COMPLETED, RUN_FAILED, IngestionRun, LexiconEntry, MatchResult, NewsEvent, TextItem
from swearmeter.sanitizer import sanitize_text
from swearmeter.scorer import contains_slur, scan_text
from swearmeter.utils import iso_utc, now_ms, parse_timestamp

if TYPE_CHECKING:
    from swearmeter.collector import SourceAdapter


@dataclass
class RunCounters:
    fetched: int = 0
    processed: int = 0
    matched: int = 0
    rejected: int = 0
    pages: int = 0


def process_item(
    item: TextItem,
    aggregator: Aggregator,
    counters: Optional[RunCounters] = None,
    lexicon: Optional[Sequence[LexiconEntry]] = None,
) -> Optional[List[MatchResult]]:
    """
    Run one item through the core and fold the result into `aggregator`.
    Returns the matches, or None when the slur gate dropped the item.
    `lexicon` defaults to the built-in one; its slur entries gate, the rest are counted.
    """
    counters = counters if counters is not None else RunCounters()
    counters.processed += 1

    text = sanitize_text(item.text)
    if not text:
        return []
    if contains_slur(text, lexicon):
        # policy drop, not an error: nothing from this item is aggregated
        counters.rejected += 1
        return None

    matches = scan_text(text, [e for e in lexicon if not e.is_slur] if lexicon is not None else None)
    if not matches:
        return matches

    counters.matched += 1
    bucket = aggregator.bucket_for(item.timestamp)
    aggregator.add_matches(bucket, matches)
    for m in matches:
        aggregator.add_collocations(m.term, extract_collocations(text, m.positions))

    if item.headline:
        published = parse_timestamp(item.timestamp) or aggregator.now
        aggregator.add_news_event(NewsEvent(
            timestamp=iso_utc(published),
            headline=item.headline,
            source=item.domain or item.source_id,
            url=item.url,
        ))
    return matches


async def run_source(
    adapter: "SourceAdapter",
    db: aiosqlite.Connection,
    now: Optional[datetime] = None,
) -> IngestionRun:
    """
    One fetch cycle for one source. Pages are processed strictly in order; the
    aggregate flush and the source-state commit happen only after the last page.
    """
    name = adapter.name
    run_id = await storage.log_ingestion_start(db, name)
    logger.info("[{}] ingestion started (run {})", name, run_id)

    aggregator = Aggregator(name, now)
    counters = RunCounters()
    started = now_ms()
    try:
        adapter.begin_run()
        async for page in adapter.pages():
            counters.pages += 1
            counters.fetched += len(page)
            for item in page:
                process_item(item, aggregator, counters)

        await aggregator.flush(db)
        adapter.commit()
        await storage.log_ingestion_complete(db, run_id, counters.processed, RUN_COMPLETED)
        logger.info(
            "[{}] ingestion complete: pages={} fetched={} processed={} matched={} dropped={} took={}ms",
            name, counters.pages, counters.fetched, counters.processed, counters.matched, counters.rejected,
            now_ms() - started,
        )
    except Exception as e:
        # the source state was not committed, so these items come back next run;
        # nothing of this run may stay in the shared connection's open transaction
        async with storage.write_lock(db):
            await db.rollback()
        message = str(e) or e.__class__.__name__
        logger.error("[{}] ingestion failed: {!r}", name, e)
        await storage.log_ingestion_complete(db, run_id, 0, RUN_FAILED, message)

    return await storage.get_run(db, run_id)
