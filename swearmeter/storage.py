# -*- coding: utf-8 -*-
"""
swearmeter/storage.py
SQLite (aiosqlite) persistence:
- init / schema bootstrap
- additive upserts for hourly counts and collocations (increment-or-insert, one statement per key)
- ingestion log (one row per run, exactly one terminal transition)
- news events (gdelt headlines for spike correlation)
- read queries for the query layer: time series, heatmap, share of total,
  collocations, top terms, totals, spike inputs
Bucket strings and every time bound use utils.iso_utc, so text comparison is time order.
"""

from __future__ import annotations

import asyncio
import weakref
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import aiosqlite

from swearmeter.models import (
    ALL_TERMS,
    COMBINED,
    CONTEXT_TAGS,
    RUN_COMPLETED,
    RUN_FAILED,
    RUN_RUNNING,
    SOURCES,
    Collocation,
    HeatmapCell,
    HourlyAggregate,
    IngestionRun,
    NewsEvent,
    TimeSeriesPoint,
    TreemapNode,
)
from swearmeter.utils import iso_utc, utc_now

_SOURCE_CHECK = "CHECK (source IN ({}))".format(", ".join(f"'{s}'" for s in SOURCES))

# --------- schema ---------
SCHEMA_HOURLY = f"""
CREATE TABLE IF NOT EXISTS hourly_counts (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    term           TEXT NOT NULL,
    source         TEXT NOT NULL {_SOURCE_CHECK},
    bucket_start   TEXT NOT NULL,
    count          INTEGER NOT NULL DEFAULT 0,
    anger_count    INTEGER NOT NULL DEFAULT 0,
    humor_count    INTEGER NOT NULL DEFAULT 0,
    emphasis_count INTEGER NOT NULL DEFAULT 0,
    quote_count    INTEGER NOT NULL DEFAULT 0,
    unknown_count  INTEGER NOT NULL DEFAULT 0,
    UNIQUE(term, source, bucket_start)
);
"""

SCHEMA_COLLOCATIONS = f"""
CREATE TABLE IF NOT EXISTS collocations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    term        TEXT NOT NULL,
    nearby_term TEXT NOT NULL,
    source      TEXT NOT NULL {_SOURCE_CHECK},
    count       INTEGER NOT NULL DEFAULT 0,
    updated_at  TEXT NOT NULL,
    UNIQUE(term, nearby_term, source)
);
"""

SCHEMA_INGESTION_LOG = f"""
CREATE TABLE IF NOT EXISTS ingestion_log (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    source          TEXT NOT NULL {_SOURCE_CHECK},
    started_at      TEXT NOT NULL,
    completed_at    TEXT,
    items_processed INTEGER NOT NULL DEFAULT 0,
    status          TEXT NOT NULL CHECK (status IN ('running', 'completed', 'failed')),
    error_message   TEXT
);
"""

SCHEMA_NEWS_EVENTS = """
CREATE TABLE IF NOT EXISTS news_events (
    id        INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    headline  TEXT NOT NULL,
    source    TEXT NOT NULL,
    url       TEXT,
    UNIQUE(url)
);
"""

SCHEMA_IDX = """
CREATE INDEX IF NOT EXISTS idx_hourly_term   ON hourly_counts(term);
CREATE INDEX IF NOT EXISTS idx_hourly_source ON hourly_counts(source);
CREATE INDEX IF NOT EXISTS idx_hourly_bucket ON hourly_counts(bucket_start);
CREATE INDEX IF NOT EXISTS idx_colloc_term   ON collocations(term);
CREATE INDEX IF NOT EXISTS idx_ingest_source ON ingestion_log(source, started_at DESC);
CREATE INDEX IF NOT EXISTS idx_news_ts       ON news_events(timestamp DESC);
"""


# Sources share one connection; a multi-statement write (flush, run log) holds
# this so another source's commit or rollback cannot land in the middle of it.
_WRITE_LOCKS: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = weakref.WeakKeyDictionary()


def write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    lock = _WRITE_LOCKS.get(db)
    if lock is None:
        lock = _WRITE_LOCKS[db] = asyncio.Lock()
    return lock


# --------- init ---------
async def init_db(db_path: Union[str, Path]) -> aiosqlite.Connection:
    """Open (and create if needed) the database; returns the shared connection."""
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(p))
    await db.execute("PRAGMA journal_mode=WAL;")
    await db.execute("PRAGMA synchronous=NORMAL;")
    for schema in (SCHEMA_HOURLY, SCHEMA_COLLOCATIONS, SCHEMA_INGESTION_LOG, SCHEMA_NEWS_EVENTS):
        await db.execute(schema)
    for stmt in filter(None, SCHEMA_IDX.split(";")):
        s = stmt.strip()
        if s:
            await db.execute(s + ";")
    await db.commit()
    return db


def _check_source(source: str, allow_combined: bool = False) -> None:
    if source in SOURCES or (allow_combined and source == COMBINED):
        return
    raise ValueError(f"unknown source: {source!r}")


# --------- additive writes ---------
UPSERT_HOURLY_SQL = """
INSERT INTO hourly_counts(
    term, source, bucket_start, count,
    anger_count, humor_count, emphasis_count, quote_count, unknown_count
) VALUES(?,?,?,?,?,?,?,?,?)
ON CONFLICT(term, source, bucket_start) DO UPDATE SET
    count          = count          + excluded.count,
    anger_count    = anger_count    + excluded.anger_count,
    humor_count    = humor_count    + excluded.humor_count,
    emphasis_count = emphasis_count + excluded.emphasis_count,
    quote_count    = quote_count    + excluded.quote_count,
    unknown_count  = unknown_count  + excluded.unknown_count
"""

UPSERT_COLLOCATION_SQL = """
INSERT INTO collocations(term, nearby_term, source, count, updated_at)
VALUES(?,?,?,?,?)
ON CONFLICT(term, nearby_term, source) DO UPDATE SET
    count      = count + excluded.count,
    updated_at = excluded.updated_at
"""

INSERT_NEWS_SQL = """
INSERT INTO news_events(timestamp, headline, source, url) VALUES(?,?,?,?)
ON CONFLICT(url) DO NOTHING
"""


def _hourly_row(agg: HourlyAggregate) -> Tuple:
    _check_source(agg.source)
    ctx = agg.context_counts()
    if sum(ctx.values()) != agg.count:
        raise ValueError(f"context sub-counts do not sum to count for {agg.term}/{agg.bucket_start}")
    return (agg.term.lower(), agg.source, agg.bucket_start, agg.count,
            *(ctx[tag] for tag in CONTEXT_TAGS))


async def upsert_hourly_counts(db: aiosqlite.Connection, rows: Iterable[HourlyAggregate], commit: bool = True) -> int:
    params = [_hourly_row(r) for r in rows if r.count > 0]
    if params:
        await db.executemany(UPSERT_HOURLY_SQL, params)
        if commit:
            await db.commit()
    return len(params)


async def upsert_collocations(
    db: aiosqlite.Connection,
    rows: Iterable[Collocation],
    updated_at: Optional[str] = None,
    commit: bool = True,
) -> int:
    stamp = updated_at or iso_utc(utc_now())
    params = []
    for r in rows:
        if r.count <= 0:
            continue
        _check_source(r.source)
        params.append((r.term.lower(), r.nearby_term, r.source, r.count, r.updated_at or stamp))
    if params:
        await db.executemany(UPSERT_COLLOCATION_SQL, params)
        if commit:
            await db.commit()
    return len(params)


async def insert_news_events(db: aiosqlite.Connection, events: Iterable[NewsEvent], commit: bool = True) -> int:
    params = [(e.timestamp, e.headline, e.source, e.url) for e in events]
    if params:
        await db.executemany(INSERT_NEWS_SQL, params)
        if commit:
            await db.commit()
    return len(params)


# --------- ingestion log ---------
async def log_ingestion_start(db: aiosqlite.Connection, source: str) -> int:
    _check_source(source)
    async with write_lock(db):
        cur = await db.execute(
            "INSERT INTO ingestion_log(source, started_at, status) VALUES(?,?,?);",
            (source, iso_utc(utc_now()), RUN_RUNNING),
        )
        await db.commit()
    return int(cur.lastrowid)


async def log_ingestion_complete(
    db: aiosqlite.Connection,
    run_id: int,
    items_processed: int,
    status: str,
    error_message: Optional[str] = None,
) -> bool:
    """
    Terminal transition running -> completed|failed. Only the first call per run
    takes effect; returns False if the run was already closed (or does not exist).
    """
    if status not in (RUN_COMPLETED, RUN_FAILED):
        raise ValueError(f"not a terminal status: {status!r}")
    async with write_lock(db):
        cur = await db.execute(
            """
            UPDATE ingestion_log
               SET completed_at = ?, items_processed = ?, status = ?, error_message = ?
             WHERE id = ? AND status = ?;
            """,
            (iso_utc(utc_now()), int(items_processed), status, error_message, int(run_id), RUN_RUNNING),
        )
        await db.commit()
    return cur.rowcount == 1


def _run_from_row(row: Sequence[Any]) -> IngestionRun:
    return IngestionRun(
        id=row[0], source=row[1], started_at=row[2], completed_at=row[3],
        items_processed=row[4], status=row[5], error_message=row[6],
    )


async def get_run(db: aiosqlite.Connection, run_id: int) -> Optional[IngestionRun]:
    sql = """
    SELECT id, source, started_at, completed_at, items_processed, status, error_message
      FROM ingestion_log WHERE id = ?;
    """
    async with db.execute(sql, (int(run_id),)) as cur:
        row = await cur.fetchone()
    return _run_from_row(row) if row else None


async def get_recent_runs(db: aiosqlite.Connection, source: Optional[str] = None, limit: int = 20) -> List[IngestionRun]:
    where, params = "", []
    if source:
        _check_source(source)
        where, params = "WHERE source = ?", [source]
    sql = f"""
    SELECT id, source, started_at, completed_at, items_processed, status, error_message
      FROM ingestion_log {where}
     ORDER BY id DESC
     LIMIT ?;
    """
    async with db.execute(sql, (*params, int(limit))) as cur:
        return [_run_from_row(r) async for r in cur]


# --------- reads ---------
def _filters(term: Optional[str], source: str) -> Tuple[str, List[Any]]:
    """WHERE fragments for the term/source pseudo-values ('all', 'combined')."""
    _check_source(source, allow_combined=True)
    clauses: List[str] = []
    params: List[Any] = []
    if term and term != ALL_TERMS:
        clauses.append("term = ?")
        params.append(term.lower())
    if source != COMBINED:
        clauses.append("source = ?")
        params.append(source)
    return "".join(f" AND {c}" for c in clauses), params


def _bound(v: Union[str, datetime]) -> str:
    return iso_utc(v) if isinstance(v, datetime) else v


async def get_hourly(db: aiosqlite.Connection, term: str, source: str, bucket_start: str) -> Optional[HourlyAggregate]:
    sql = """
    SELECT term, source, bucket_start, count,
           anger_count, humor_count, emphasis_count, quote_count, unknown_count
      FROM hourly_counts WHERE term = ? AND source = ? AND bucket_start = ?;
    """
    async with db.execute(sql, (term.lower(), source, bucket_start)) as cur:
        row = await cur.fetchone()
    return HourlyAggregate(*row) if row else None


async def get_time_series(
    db: aiosqlite.Connection,
    term: str,
    source: str,
    start: Union[str, datetime],
    end: Union[str, datetime],
) -> List[TimeSeriesPoint]:
    """Summed count per hour bucket in [start, end]; term may be 'all', source may be 'combined'."""
    extra, params = _filters(term, source)
    sql = f"""
    SELECT bucket_start, SUM(count)
      FROM hourly_counts
     WHERE bucket_start >= ? AND bucket_start <= ? {extra}
     GROUP BY bucket_start
     ORDER BY bucket_start;
    """
    async with db.execute(sql, (_bound(start), _bound(end), *params)) as cur:
        return [TimeSeriesPoint(timestamp=r[0], value=int(r[1])) async for r in cur]


async def get_heatmap(
    db: aiosqlite.Connection,
    term: str,
    source: str,
    days: int = 30,
    now: Optional[datetime] = None,
) -> List[HeatmapCell]:
    """Hour-of-day x day-of-week (UTC, 0 = Sunday) over the last `days` days."""
    extra, params = _filters(term, source)
    since = iso_utc((now or utc_now()) - timedelta(days=int(days)))
    sql = f"""
    SELECT CAST(strftime('%w', bucket_start) AS INTEGER) AS dow,
           CAST(strftime('%H', bucket_start) AS INTEGER) AS hod,
           SUM(count)
      FROM hourly_counts
     WHERE bucket_start >= ? {extra}
     GROUP BY dow, hod
     ORDER BY dow, hod;
    """
    async with db.execute(sql, (since, *params)) as cur:
        return [HeatmapCell(day_of_week=r[0], hour_of_day=r[1], count=int(r[2])) async for r in cur]


async def get_treemap(
    db: aiosqlite.Connection,
    source: str,
    start: Union[str, datetime],
    end: Union[str, datetime],
    limit: int = 50,
) -> List[TreemapNode]:
    """Share of total per term within [start, end], largest first."""
    extra, params = _filters(None, source)
    window = (_bound(start), _bound(end), *params)
    total = await get_total_count(db, source, start, end)
    if total <= 0:
        return []
    sql = f"""
    SELECT term, SUM(count) AS c
      FROM hourly_counts
     WHERE bucket_start >= ? AND bucket_start <= ? {extra}
     GROUP BY term
     ORDER BY c DESC, term
     LIMIT ?;
    """
    async with db.execute(sql, (*window, int(limit))) as cur:
        return [TreemapNode(term=r[0], count=int(r[1]), percentage=round(r[1] * 100.0 / total, 2)) async for r in cur]


async def get_collocations(db: aiosqlite.Connection, term: str, source: str, limit: int = 20) -> List[Collocation]:
    """Top-N nearby words for a term ('all' merges every term; 'combined' merges sources)."""
    extra, params = _filters(term, source)
    sql = f"""
    SELECT nearby_term, SUM(count) AS c, MAX(updated_at)
      FROM collocations
     WHERE 1=1 {extra}
     GROUP BY nearby_term
     ORDER BY c DESC, nearby_term
     LIMIT ?;
    """
    async with db.execute(sql, (*params, int(limit))) as cur:
        return [
            Collocation(term=(term or ALL_TERMS).lower(), nearby_term=r[0], source=source, count=int(r[1]), updated_at=r[2])
            async for r in cur
        ]


async def get_top_terms(
    db: aiosqlite.Connection,
    source: str,
    hours: int = 24,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    extra, params = _filters(None, source)
    since = iso_utc((now or utc_now()) - timedelta(hours=int(hours)))
    sql = f"""
    SELECT term, SUM(count) AS c
      FROM hourly_counts
     WHERE bucket_start >= ? {extra}
     GROUP BY term
     ORDER BY c DESC, term
     LIMIT ?;
    """
    async with db.execute(sql, (since, *params, int(limit))) as cur:
        return [{"term": r[0], "count": int(r[1])} async for r in cur]


async def get_total_count(
    db: aiosqlite.Connection,
    source: str,
    start: Union[str, datetime],
    end: Union[str, datetime],
) -> int:
    extra, params = _filters(None, source)
    sql = f"""
    SELECT COALESCE(SUM(count), 0)
      FROM hourly_counts
     WHERE bucket_start >= ? AND bucket_start <= ? {extra};
    """
    async with db.execute(sql, (_bound(start), _bound(end), *params)) as cur:
        row = await cur.fetchone()
    return int(row[0] or 0)


async def get_bucket_counts(db: aiosqlite.Connection, source: str, bucket_start: str) -> Dict[str, int]:
    """term -> summed count in a single bucket (spike detector: current hour)."""
    extra, params = _filters(None, source)
    sql = f"""
    SELECT term, SUM(count) FROM hourly_counts
     WHERE bucket_start = ? {extra}
     GROUP BY term;
    """
    async with db.execute(sql, (bucket_start, *params)) as cur:
        return {r[0]: int(r[1]) async for r in cur}


async def get_baseline_averages(
    db: aiosqlite.Connection,
    source: str,
    since: str,
    before: str,
) -> Dict[str, float]:
    """
    term -> average hourly count over buckets in [since, before).
    Sources are summed per bucket first so 'combined' averages hours, not rows.
    """
    extra, params = _filters(None, source)
    sql = f"""
    SELECT term, AVG(c) FROM (
        SELECT term, bucket_start, SUM(count) AS c
          FROM hourly_counts
         WHERE bucket_start >= ? AND bucket_start < ? {extra}
         GROUP BY term, bucket_start
    )
    GROUP BY term;
    """
    async with db.execute(sql, (since, before, *params)) as cur:
        return {r[0]: float(r[1]) async for r in cur}


async def get_news_events(
    db: aiosqlite.Connection,
    start: Union[str, datetime],
    end: Union[str, datetime],
    limit: int = 50,
) -> List[NewsEvent]:
    sql = """
    SELECT timestamp, headline, source, url
      FROM news_events
     WHERE timestamp >= ? AND timestamp <= ?
     ORDER BY timestamp DESC
     LIMIT ?;
    """
    async with db.execute(sql, (_bound(start), _bound(end), int(limit))) as cur:
        return [NewsEvent(timestamp=r[0], headline=r[1], source=r[2], url=r[3]) async for r in cur]
