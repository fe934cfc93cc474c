"""
collector.py
Thin source adapters: fetch items, turn them into TextItem, hand pages to the pipeline.
Each adapter is an async page iterator; the next page is requested only after the
pipeline has consumed the previous one. Dedup/cursor/rate-limit state lives in
ingest_state.SourceStates, passed in by the scheduler.
"""

from __future__ import annotations

import asyncio
import os
from datetime import timedelta
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from loguru import logger

from swearmeter.ingest_state import SourceStates
from swearmeter.models import TextItem
from swearmeter.utils import iso_utc, parse_timestamp, strip_html, utc_now

HN_API_BASE = "https://hacker-news.firebaseio.com/v0"
MASTODON_INSTANCE = "https://mastodon.social"
BSKY_API = "https://public.api.bsky.app/xrpc"
BSKY_WHATS_HOT = "at://did:plc:z72i7hdynmk6r22z27h6tvur/app.bsky.feed.generator/whats-hot"
YOUTUBE_API = "https://www.googleapis.com/youtube/v3"
GDELT_DOC_API = "https://api.gdeltproject.org/api/v2/doc/doc"


class SourceFetchError(RuntimeError):
    """Non-retryable HTTP status from a source; fails the current run."""


def make_client(timeout: float = 15.0) -> httpx.AsyncClient:
    """One shared client for all adapters, reused across runs."""
    return httpx.AsyncClient(timeout=timeout, headers={"User-Agent": "swearmeter/1.0"})


class SourceAdapter:
    name = ""

    def __init__(self, client: httpx.AsyncClient, cfg: Optional[Dict[str, Any]], states: SourceStates):
        self.client = client
        self.cfg = cfg or {}
        self.states = states
        self.delay = float(self.cfg.get("request_delay_sec", 0.2))

    def trackers(self) -> list:
        return []

    def begin_run(self) -> None:
        for t in self.trackers():
            t.begin_run()

    def commit(self) -> None:
        """Called by the pipeline after a successful flush."""
        for t in self.trackers():
            t.advance()

    async def pause(self) -> None:
        if self.delay > 0:
            await asyncio.sleep(self.delay)

    def pages(self) -> AsyncIterator[List[TextItem]]:
        raise NotImplementedError


# -------------------- hackernews: numeric watermark --------------------

class HackerNewsAdapter(SourceAdapter):
    name = "hackernews"

    def trackers(self) -> list:
        return [self.states.hackernews]

    async def _fetch_item(self, base: str, item_id: int) -> Optional[dict]:
        try:
            resp = await self.client.get(f"{base}/item/{item_id}.json")
        except httpx.HTTPError as e:
            logger.debug("[hackernews] item {} fetch error: {!r}", item_id, e)
            return None
        if resp.status_code != 200:
            return None
        return resp.json()

    async def pages(self) -> AsyncIterator[List[TextItem]]:
        base = self.cfg.get("api_base", HN_API_BASE)
        page_size = int(self.cfg.get("page_size", 50))
        cursor = self.states.hackernews

        resp = await self.client.get(f"{base}/maxitem.json")
        resp.raise_for_status()
        ids = list(cursor.plan(int(resp.json())))
        if not ids:
            logger.info("[hackernews] nothing new above watermark {}", cursor.watermark)
            return
        logger.info("[hackernews] fetching items {}..{} ({} ids)", ids[0], ids[-1], len(ids))

        for i in range(0, len(ids), page_size):
            if not cursor.should_continue():
                break
            # deleted/dead/failed ids are still recorded: they count as seen
            batch = [x for x in ids[i:i + page_size] if cursor.record_seen(x)]
            raws = await asyncio.gather(*(self._fetch_item(base, x) for x in batch))

            page: List[TextItem] = []
            for raw in raws:
                if not raw or raw.get("type") != "comment" or not raw.get("text"):
                    continue
                if raw.get("deleted") or raw.get("dead"):
                    continue
                ts = parse_timestamp(raw.get("time"))
                page.append(TextItem(
                    text=strip_html(raw["text"]),
                    source_id=self.name,
                    timestamp=iso_utc(ts) if ts else "",
                ))
            yield page
            await self.pause()


# -------------------- mastodon: rate-limited paging --------------------

class MastodonAdapter(SourceAdapter):
    name = "mastodon"

    def trackers(self) -> list:
        return [self.states.mastodon_seen]

    def begin_run(self) -> None:
        super().begin_run()
        self.states.mastodon_budget.begin_run()

    async def pages(self) -> AsyncIterator[List[TextItem]]:
        instance = os.environ.get("MASTODON_INSTANCE") or self.cfg.get("instance", MASTODON_INSTANCE)
        token = os.environ.get("MASTODON_ACCESS_TOKEN")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        budget = self.states.mastodon_budget
        seen = self.states.mastodon_seen
        url = f"{instance.rstrip('/')}/api/v1/timelines/public"

        while budget.should_continue():
            params = {"limit": str(self.cfg.get("page_size", 40)), "local": "false"}
            if budget.cursor:
                params["max_id"] = budget.cursor

            resp = await self.client.get(url, params=params, headers=headers)
            budget.update_from_headers(resp.headers)
            if resp.status_code == 429:
                raise SourceFetchError(f"rate limited, reset at {budget.reset_at}")
            if resp.status_code != 200:
                raise SourceFetchError(f"mastodon API error: {resp.status_code}")

            statuses = resp.json() or []
            budget.advance()
            if not statuses:
                break

            page: List[TextItem] = []
            for st in statuses:
                budget.record_seen(st.get("id"))
                if not seen.record_seen(st.get("id")):
                    continue
                if st.get("language") and st.get("language") != "en":
                    continue
                if st.get("visibility") != "public":
                    continue
                page.append(TextItem(
                    text=strip_html(st.get("content")),
                    source_id=self.name,
                    timestamp=st.get("created_at") or "",
                ))
            yield page
            await self.pause()

        if budget.stopped_early:
            logger.info("[mastodon] rate limit low (remaining={}), stopped after {} pages",
                        budget.remaining, budget.pages)
        else:
            logger.info("[mastodon] retrieved {} pages, rate limit remaining {}", budget.pages, budget.remaining)


# -------------------- bluesky: seen-set on post URIs --------------------

class BlueskyAdapter(SourceAdapter):
    name = "bluesky"

    def trackers(self) -> list:
        return [self.states.bluesky_seen]

    async def _feed(self, endpoint: str, params: Dict[str, Any], label: str) -> List[dict]:
        base = self.cfg.get("api_base", BSKY_API)
        resp = await self.client.get(f"{base}/{endpoint}", params=params, headers={"Accept": "application/json"})
        if resp.status_code == 400:
            # unknown or private actor
            logger.warning("[bluesky] {} not available", label)
            return []
        if resp.status_code != 200:
            raise SourceFetchError(f"bluesky {label} error: {resp.status_code}")
        return [f.get("post") or {} for f in (resp.json() or {}).get("feed", [])]

    def _to_page(self, posts: List[dict]) -> List[TextItem]:
        page: List[TextItem] = []
        for post in posts:
            uri = post.get("uri")
            record = post.get("record") or {}
            if not uri or not self.states.bluesky_seen.record_seen(uri):
                continue
            page.append(TextItem(
                text=record.get("text") or "",
                source_id=self.name,
                timestamp=record.get("createdAt") or "",
            ))
        return page

    async def pages(self) -> AsyncIterator[List[TextItem]]:
        limit = int(self.cfg.get("feed_limit", 100))
        posts = await self._feed("app.bsky.feed.getFeed",
                                 {"feed": self.cfg.get("feed", BSKY_WHATS_HOT), "limit": limit}, "popular feed")
        yield self._to_page(posts)
        await self.pause()

        for actor in self.cfg.get("accounts") or []:
            posts = await self._feed("app.bsky.feed.getAuthorFeed",
                                     {"actor": actor, "limit": int(self.cfg.get("account_limit", 30))}, f"@{actor}")
            yield self._to_page(posts)
            await self.pause()


# -------------------- youtube: seen-set on comment ids --------------------

class YouTubeAdapter(SourceAdapter):
    name = "youtube"

    def trackers(self) -> list:
        return [self.states.youtube_seen]

    async def _search(self, key: str, query: str) -> List[str]:
        params = {
            "part": "id",
            "q": query,
            "type": "video",
            "order": "date",
            "maxResults": str(self.cfg.get("videos_per_query", 3)),
            "publishedAfter": iso_utc(utc_now() - timedelta(hours=int(self.cfg.get("lookback_hours", 24)))),
            "key": key,
        }
        resp = await self.client.get(f"{YOUTUBE_API}/search", params=params)
        if resp.status_code != 200:
            raise SourceFetchError(f"youtube search error: {resp.status_code}")
        return [it["id"]["videoId"] for it in (resp.json() or {}).get("items", []) if it.get("id", {}).get("videoId")]

    async def _comments(self, key: str, video_id: str) -> List[dict]:
        params = {
            "part": "snippet",
            "videoId": video_id,
            "maxResults": str(self.cfg.get("comments_per_video", 50)),
            "order": "time",
            "key": key,
        }
        resp = await self.client.get(f"{YOUTUBE_API}/commentThreads", params=params)
        if resp.status_code == 403:
            # comments disabled on this video
            return []
        if resp.status_code != 200:
            raise SourceFetchError(f"youtube comments error: {resp.status_code}")
        return (resp.json() or {}).get("items", [])

    async def pages(self) -> AsyncIterator[List[TextItem]]:
        key = os.environ.get("YOUTUBE_API_KEY") or self.cfg.get("api_key")
        if not key:
            logger.warning("[youtube] no API key configured, skipping")
            return

        for query in self.cfg.get("queries") or []:
            video_ids = await self._search(key, query)
            await self.pause()
            for vid in video_ids:
                page: List[TextItem] = []
                for c in await self._comments(key, vid):
                    if not self.states.youtube_seen.record_seen(c.get("id")):
                        continue
                    snip = ((c.get("snippet") or {}).get("topLevelComment") or {}).get("snippet") or {}
                    page.append(TextItem(
                        text=strip_html(snip.get("textDisplay")),
                        source_id=self.name,
                        timestamp=snip.get("publishedAt") or "",
                    ))
                yield page
                await self.pause()


# -------------------- gdelt: headlines, seen-set on URLs --------------------

class GdeltAdapter(SourceAdapter):
    name = "gdelt"

    def trackers(self) -> list:
        return [self.states.gdelt_seen]

    async def _articles(self, query: str) -> List[dict]:
        params = {
            "query": f"{query} sourcelang:english",
            "mode": "artlist",
            "maxrecords": str(self.cfg.get("max_records", 50)),
            "format": "json",
            "timespan": self.cfg.get("timespan", "1h"),
        }
        resp = await self.client.get(self.cfg.get("api_base", GDELT_DOC_API), params=params)
        if resp.status_code != 200:
            raise SourceFetchError(f"gdelt API error: {resp.status_code}")
        body = resp.text
        # GDELT answers throttled/invalid queries with a plain-text notice
        if not body or body.startswith("Queries"):
            logger.info("[gdelt] empty or throttled response for {!r}", query)
            return []
        try:
            return (resp.json() or {}).get("articles") or []
        except ValueError:
            logger.warning("[gdelt] unparseable response for {!r}", query)
            return []

    async def pages(self) -> AsyncIterator[List[TextItem]]:
        for query in self.cfg.get("queries") or []:
            page: List[TextItem] = []
            for a in await self._articles(query):
                url = a.get("url")
                title = a.get("title") or ""
                if not url or not title or not self.states.gdelt_seen.record_seen(url):
                    continue
                page.append(TextItem(
                    text=title,
                    source_id=self.name,
                    timestamp=a.get("seendate") or "",
                    headline=title,
                    url=url,
                    domain=a.get("domain"),
                ))
            yield page
            await self.pause()


ADAPTERS = {
    cls.name: cls
    for cls in (HackerNewsAdapter, MastodonAdapter, BlueskyAdapter, YouTubeAdapter, GdeltAdapter)
}


def build_adapter(name: str, client: httpx.AsyncClient, cfg: Optional[Dict[str, Any]], states: SourceStates) -> SourceAdapter:
    try:
        cls = ADAPTERS[name]
    except KeyError:
        raise ValueError(f"unknown source: {name!r}") from None
    return cls(client, cfg, states)
