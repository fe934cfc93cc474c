"""
spikes.py
Current-hour count vs. trailing baseline, per term.

    multiplier = current / max(baseline, 1)

baseline is the average hourly count over the previous `baseline_days` days,
current hour excluded, averaged over the hours that have data. The floor of 1
keeps thin-history terms from showing up as infinite spikes.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import aiosqlite

from swearmeter import storage
from swearmeter.models import COMBINED, Spike
from swearmeter.utils import iso_utc, truncate_hour, utc_now

DEFAULT_THRESHOLD = 2.0
MAX_SPIKES = 10
BASELINE_DAYS = 7


def spike_multiplier(current: float, baseline: float) -> float:
    return round(max(current or 0, 0) / max(baseline or 0, 1.0), 2)


def rank_spikes(
    current_counts: Dict[str, int],
    baselines: Dict[str, float],
    *,
    source: str,
    timestamp: str,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = MAX_SPIKES,
) -> List[Spike]:
    """Pure part of the detector: terms at or above threshold, biggest multiplier first."""
    spikes: List[Spike] = []
    for term, current in current_counts.items():
        baseline = float(baselines.get(term, 0.0))
        multiplier = spike_multiplier(current, baseline)
        if multiplier >= threshold:
            spikes.append(Spike(
                term=term,
                source=source,
                timestamp=timestamp,
                current_rate=float(current),
                baseline_rate=round(baseline, 2),
                multiplier=multiplier,
            ))
    spikes.sort(key=lambda s: (-s.multiplier, -s.current_rate, s.term))
    return spikes[:max_results]


async def detect_spikes(
    db: aiosqlite.Connection,
    source: str = COMBINED,
    threshold: float = DEFAULT_THRESHOLD,
    *,
    now: Optional[datetime] = None,
    baseline_days: int = BASELINE_DAYS,
    max_results: int = MAX_SPIKES,
) -> List[Spike]:
    now = now or utc_now()
    current_hour = truncate_hour(now)
    bucket = iso_utc(current_hour)
    since = iso_utc(current_hour - timedelta(days=baseline_days))

    current_counts = await storage.get_bucket_counts(db, source, bucket)
    if not current_counts:
        return []
    baselines = await storage.get_baseline_averages(db, source, since, bucket)
    return rank_spikes(
        current_counts,
        baselines,
        source=source,
        timestamp=iso_utc(now),
        threshold=threshold,
        max_results=max_results,
    )
