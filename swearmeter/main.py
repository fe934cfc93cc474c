# swearmeter/main.py
# Wires everything together: adapters -> pipeline.run_source -> storage
# Startup: every enabled source's first run at once; then one interval loop per source.

from __future__ import annotations

import asyncio
import sys
from typing import Dict, List, Optional

import aiosqlite
import httpx
from loguru import logger

from swearmeter.collector import ADAPTERS, SourceAdapter, build_adapter, make_client
from swearmeter.config import db_path, load_cfg
from swearmeter.ingest_state import SourceStates
from swearmeter.models import RUN_COMPLETED, IngestionRun
from swearmeter.pipeline import run_source
from swearmeter.storage import init_db


def setup_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(level).upper(),
               format="{time:YYYY-MM-DD HH:mm:ss} | {level:<7} | {message}")


def enabled_adapters(client: httpx.AsyncClient, cfg: dict, states: SourceStates) -> List[SourceAdapter]:
    sources_cfg: Dict[str, dict] = cfg.get("sources") or {}
    out: List[SourceAdapter] = []
    for name in ADAPTERS:
        scfg = sources_cfg.get(name) or {}
        if not scfg.get("enabled", True):
            logger.info("[scheduler] {} disabled", name)
            continue
        out.append(build_adapter(name, client, scfg, states))
    return out


async def run_initial_ingestion(adapters: List[SourceAdapter], db: aiosqlite.Connection) -> List[Optional[IngestionRun]]:
    """First run of every source in parallel; one failure doesn't stop the rest."""
    results = await asyncio.gather(*(run_source(a, db) for a in adapters), return_exceptions=True)
    runs: List[Optional[IngestionRun]] = []
    for adapter, res in zip(adapters, results):
        if isinstance(res, BaseException):
            logger.error("[scheduler] {} initial run crashed: {!r}", adapter.name, res)
            runs.append(None)
        else:
            runs.append(res)
    ok = sum(1 for r in runs if r is not None and r.status == RUN_COMPLETED)
    logger.info("[scheduler] initial ingestion done: {}/{} sources completed", ok, len(adapters))
    return runs


async def run_source_loop(adapter: SourceAdapter, db: aiosqlite.Connection, interval_sec: float):
    """Re-run one source every interval_sec. Runs of the same source never overlap."""
    logger.info("[scheduler] {} every {}s", adapter.name, interval_sec)
    try:
        while True:
            await asyncio.sleep(interval_sec)
            try:
                await run_source(adapter, db)
            except Exception as e:
                logger.error("[scheduler] {} run error: {!r}", adapter.name, e)
    except asyncio.CancelledError:
        logger.info("[scheduler] {} loop cancelled", adapter.name)
        raise


async def main(run_seconds: int = 0, once: bool = False, cfg: Optional[dict] = None):
    cfg = cfg or load_cfg()
    setup_logging(cfg.get("log_level", "INFO"))

    db = await init_db(db_path(cfg))
    client = make_client()
    states = SourceStates.from_config(cfg.get("sources") or {})
    adapters = enabled_adapters(client, cfg, states)

    tasks: List[asyncio.Task] = []
    try:
        await run_initial_ingestion(adapters, db)
        if once:
            return

        sources_cfg = cfg.get("sources") or {}
        for a in adapters:
            interval = float((sources_cfg.get(a.name) or {}).get("interval_sec", 300))
            tasks.append(asyncio.create_task(run_source_loop(a, db, interval)))

        logger.info("[main] running {}", f"for {run_seconds}s" if run_seconds > 0 else "until stopped")
        if run_seconds and run_seconds > 0:
            await asyncio.sleep(run_seconds)
        else:
            # 0 or negative => run forever
            await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("[main] cancelled")
        raise
    finally:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await client.aclose()
        await db.close()
        logger.info("[main] finished")


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="Profanity trend ingestion scheduler")
    parser.add_argument("--run-seconds", type=int, default=0)
    parser.add_argument("--once", action="store_true", help="run each source once and exit")
    parser.add_argument("--config", default=None, help="path to a config.yml")
    args = parser.parse_args()

    asyncio.run(main(run_seconds=args.run_seconds, once=args.once, cfg=load_cfg(args.config)))
