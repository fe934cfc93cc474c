import re
import time
from datetime import datetime, timezone
from typing import Optional, Union

from bs4 import BeautifulSoup


_WS_RE = re.compile(r"\s+")

# GDELT "seendate": 20261019T140500Z
_COMPACT_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_utc(dt: datetime) -> str:
    """
    Format as YYYY-MM-DDTHH:MM:SSZ.
    Every bound handed to SQL goes through here so string comparison orders correctly.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def truncate_hour(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


def hour_bucket(dt: Optional[datetime] = None) -> str:
    """Hour bucket key, e.g. 2026-10-19T14:00:00Z."""
    return iso_utc(truncate_hour(dt or utc_now()))


def parse_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """
    Parse whatever an adapter hands us: ISO 8601 (with or without Z), GDELT
    compact form, epoch seconds or epoch milliseconds. Returns None when unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        secs = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(secs, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    s = str(value).strip()
    m = _COMPACT_RE.match(s)
    if m:
        y, mo, d, hh, mm, ss = (int(x) for x in m.groups())
        return datetime(y, mo, d, hh, mm, ss, tzinfo=timezone.utc)
    if s.isdigit():
        return parse_timestamp(int(s))
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def strip_html(s: Optional[str]) -> str:
    """
    HTML fragment -> plain text (Mastodon content, HN comment bodies, YouTube comments).
    Every tag boundary becomes a space, so <li>a</li><li>b</li> stays two words;
    entities are decoded by the parser.
    """
    if not s:
        return ""
    text = BeautifulSoup(s, "html.parser").get_text(separator=" ")
    return _WS_RE.sub(" ", text).strip()
