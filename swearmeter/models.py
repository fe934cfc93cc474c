# -*- coding: utf-8 -*-
"""
models.py
Data model shared by the scanner, the aggregator and storage.
Field names line up with the columns in storage.py, keep them in sync.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Fixed source set; storage enforces it with a CHECK constraint
SOURCES = ("gdelt", "mastodon", "hackernews", "bluesky", "youtube")

# Pseudo-source for queries summed across every source
COMBINED = "combined"

# Pseudo-term for queries summed across every term
ALL_TERMS = "all"

CONTEXT_TAGS = ("anger", "humor", "emphasis", "quote", "unknown")

CATEGORIES = ("general", "sexual", "scatological", "religious", "slur")

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"


def empty_context_counts() -> Dict[str, int]:
    return {tag: 0 for tag in CONTEXT_TAGS}


@dataclass
class TextItem:
    """One normalized item handed over by a source adapter."""
    text: str
    source_id: str
    timestamp: str  # ISO string as delivered; bucketed by the aggregator

    # Optional extras, only gdelt fills them (news event overlay)
    headline: Optional[str] = None
    url: Optional[str] = None
    domain: Optional[str] = None


@dataclass(frozen=True)
class LexiconEntry:
    term: str             # canonical, lower-case
    pattern: re.Pattern   # compiled once, reused; finditer gives a fresh iterator
    severity: int         # 1 mild / 2 moderate / 3 strong
    category: str
    is_slur: bool = False


@dataclass
class MatchResult:
    term: str
    count: int
    positions: List[int]
    context: str  # fixed at the first occurrence


@dataclass
class HourlyAggregate:
    term: str
    source: str
    bucket_start: str
    count: int = 0
    anger_count: int = 0
    humor_count: int = 0
    emphasis_count: int = 0
    quote_count: int = 0
    unknown_count: int = 0

    def add(self, count: int, contexts: Dict[str, int]) -> None:
        """Additive merge; the same increment twice == once with doubled magnitude."""
        self.count += count
        for tag in CONTEXT_TAGS:
            setattr(self, f"{tag}_count", getattr(self, f"{tag}_count") + int(contexts.get(tag, 0) or 0))

    def context_counts(self) -> Dict[str, int]:
        return {tag: getattr(self, f"{tag}_count") for tag in CONTEXT_TAGS}


@dataclass
class Collocation:
    term: str
    nearby_term: str
    source: str
    count: int = 0
    updated_at: Optional[str] = None


@dataclass
class IngestionRun:
    id: int
    source: str
    started_at: str
    completed_at: Optional[str] = None
    items_processed: int = 0
    status: str = RUN_RUNNING
    error_message: Optional[str] = None


@dataclass
class Spike:
    term: str
    source: str
    timestamp: str
    current_rate: float
    baseline_rate: float
    multiplier: float


@dataclass
class TimeSeriesPoint:
    timestamp: str
    value: int


@dataclass
class HeatmapCell:
    day_of_week: int  # 0 = Sunday
    hour_of_day: int  # 0-23, UTC
    count: int


@dataclass
class TreemapNode:
    term: str
    count: int
    percentage: float


@dataclass
class NewsEvent:
    timestamp: str
    headline: str
    source: str
    url: Optional[str] = None


@dataclass
class DashboardStats:
    total_count_today: int
    total_count_yesterday: int
    change_percent: int
    top_terms: List[Dict[str, int]] = field(default_factory=list)
    latest_spikes: List[Spike] = field(default_factory=list)
