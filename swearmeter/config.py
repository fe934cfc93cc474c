# swearmeter/config.py
# ops/config.yml is optional; whatever it leaves out comes from DEFAULT_CFG.

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Optional, Union

import yaml
from loguru import logger

ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CFG = {
    "log_level": "INFO",
    "storage": {
        "db_path": "data/swearmeter.db",
    },
    "spikes": {
        "threshold": 2.0,
        "max_results": 10,
        "baseline_days": 7,
    },
    "stats": {
        "top_terms_hours": 24,
        "top_terms_limit": 10,
    },
    "sources": {
        "gdelt": {
            "enabled": True,
            "interval_sec": 900,
            "request_delay_sec": 0.5,
            "max_records": 50,
            "timespan": "1h",
            "queries": ["fuck", "shit", "damn", "bullshit", "asshole", "crap", "bastard", "wtf"],
        },
        "mastodon": {
            "enabled": True,
            "interval_sec": 300,
            "request_delay_sec": 0.2,
            "instance": "https://mastodon.social",
            "page_size": 40,
            "max_pages": 5,
            "safety_margin": 10,
            "seen_capacity": 10_000,
        },
        "hackernews": {
            "enabled": True,
            "interval_sec": 300,
            "request_delay_sec": 0.1,
            "page_size": 50,
            "max_batch": 500,
            "initial_backfill": 200,
        },
        "bluesky": {
            "enabled": True,
            "interval_sec": 600,
            "request_delay_sec": 0.2,
            "feed_limit": 100,
            "account_limit": 30,
            "seen_capacity": 10_000,
            "accounts": [],
        },
        "youtube": {
            "enabled": True,
            "interval_sec": 1800,
            "request_delay_sec": 0.2,
            "videos_per_query": 3,
            "comments_per_video": 50,
            "lookback_hours": 24,
            "seen_capacity": 10_000,
            "queries": ["rant", "reaction", "gaming rage", "live stream highlights"],
        },
    },
}

# blocks merged one level deeper than the top level
_NESTED = ("storage", "spikes", "stats")


def _merge(data: dict) -> dict:
    out = {**copy.deepcopy(DEFAULT_CFG), **data}
    for key in _NESTED:
        if key in data:
            out[key] = {**DEFAULT_CFG[key], **(data.get(key) or {})}
    if "sources" in data:
        sources = copy.deepcopy(DEFAULT_CFG["sources"])
        for name, block in (data.get("sources") or {}).items():
            sources[name] = {**sources.get(name, {}), **(block or {})}
        out["sources"] = sources
    return out


def load_cfg(path: Optional[Union[str, Path]] = None) -> dict:
    """Read config from `path`, $SWEARMETER_CONFIG, or ops/config.yml, in that order."""
    cfg_path = Path(path or os.environ.get("SWEARMETER_CONFIG") or ROOT / "ops" / "config.yml")
    if cfg_path.exists():
        try:
            data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
            return _merge(data)
        except Exception as e:
            logger.warning("[config] failed to read {}, using defaults. err={}", cfg_path, e)
    return copy.deepcopy(DEFAULT_CFG)


def db_path(cfg: dict) -> Path:
    p = Path((cfg.get("storage") or {}).get("db_path") or DEFAULT_CFG["storage"]["db_path"])
    return p if p.is_absolute() else ROOT / p
