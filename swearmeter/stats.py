from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

import aiosqlite

from swearmeter import storage
from swearmeter.models import COMBINED, DashboardStats
from swearmeter.spikes import BASELINE_DAYS, DEFAULT_THRESHOLD, MAX_SPIKES, detect_spikes
from swearmeter.utils import utc_now


async def dashboard_stats(
    db: aiosqlite.Connection,
    source: str = COMBINED,
    *,
    now: Optional[datetime] = None,
    cfg: Optional[dict] = None,
) -> DashboardStats:
    """
    Today (UTC midnight -> now) vs. yesterday, plus top terms and current spikes.
    `cfg` is the loaded config; its `spikes` and `stats` blocks tune the last two.
    """
    cfg = cfg or {}
    spikes_cfg = cfg.get("spikes") or {}
    stats_cfg = cfg.get("stats") or {}

    now = now or utc_now()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday_start = today_start - timedelta(days=1)

    today = await storage.get_total_count(db, source, today_start, now)
    # yesterday's window stops at its last bucket so today's 00:00 isn't counted twice
    yesterday = await storage.get_total_count(db, source, yesterday_start, today_start - timedelta(seconds=1))
    change = round((today - yesterday) / yesterday * 100) if yesterday > 0 else 0

    top_terms = await storage.get_top_terms(
        db, source,
        hours=int(stats_cfg.get("top_terms_hours", 24)),
        limit=int(stats_cfg.get("top_terms_limit", 10)),
        now=now,
    )
    spikes = await detect_spikes(
        db, source,
        float(spikes_cfg.get("threshold", DEFAULT_THRESHOLD)),
        now=now,
        baseline_days=int(spikes_cfg.get("baseline_days", BASELINE_DAYS)),
        max_results=int(spikes_cfg.get("max_results", MAX_SPIKES)),
    )
    return DashboardStats(
        total_count_today=today,
        total_count_yesterday=yesterday,
        change_percent=int(change),
        top_terms=top_terms,
        latest_spikes=spikes,
    )
