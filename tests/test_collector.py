# -*- coding: utf-8 -*-
"""
tests/test_collector.py
Source adapters against httpx.MockTransport: paging, dedup, stop conditions. No network.
"""
import asyncio

import httpx
import pytest

from swearmeter import storage
from swearmeter.collector import (
    BlueskyAdapter,
    GdeltAdapter,
    HackerNewsAdapter,
    MastodonAdapter,
    SourceFetchError,
    YouTubeAdapter,
    build_adapter,
)
from swearmeter.ingest_state import RateLimitBudget, SourceStates, WatermarkCursor
from swearmeter.pipeline import run_source
from swearmeter.storage import init_db

NO_DELAY = {"request_delay_sec": 0}


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _collect(adapter):
    adapter.begin_run()
    return [page async for page in adapter.pages()]


# -------------------- hackernews --------------------

def _hn_handler(calls):
    items = {
        1000: {"id": 1000, "type": "comment", "text": "<p>what the f*ck is this</p>", "time": 1792418700},
        999: {"id": 999, "type": "comment", "deleted": True},
        998: {"id": 998, "type": "story", "title": "Show HN"},
        997: {"id": 997, "type": "comment", "text": "dead one", "dead": True},
    }

    def handler(request):
        calls.append(request.url.path)
        if request.url.path.endswith("/maxitem.json"):
            return httpx.Response(200, json=1000)
        item_id = int(request.url.path.rsplit("/", 1)[-1].split(".")[0])
        if item_id not in items:
            return httpx.Response(200, content=b"null")
        return httpx.Response(200, json=items[item_id])

    return handler


def test_hackernews_watermark_paging():
    async def main():
        calls = []
        states = SourceStates(hackernews=WatermarkCursor(initial_backfill=5))
        async with _client(_hn_handler(calls)) as client:
            adapter = HackerNewsAdapter(client, {**NO_DELAY, "page_size": 2}, states)
            pages = await _collect(adapter)
            assert len(pages) == 3
            items = [i for p in pages for i in p]
            assert [i.text for i in items] == ["what the f*ck is this"]
            assert items[0].source_id == "hackernews"
            assert items[0].timestamp.startswith("2026-")
            adapter.commit()
            assert states.hackernews.watermark == 1000

            calls.clear()
            assert await _collect(adapter) == []
            assert calls == ["/v0/maxitem.json"]

    asyncio.run(main())


def test_hackernews_run_source_end_to_end(tmp_path):
    async def main():
        db = await init_db(tmp_path / "t.db")
        states = SourceStates(hackernews=WatermarkCursor(initial_backfill=5))
        try:
            async with _client(_hn_handler([])) as client:
                run = await run_source(HackerNewsAdapter(client, NO_DELAY, states), db)
            assert run.status == "completed" and run.items_processed == 1
            runs = await storage.get_recent_runs(db, "hackernews")
            assert len(runs) == 1
        finally:
            await db.close()

    asyncio.run(main())


# -------------------- mastodon --------------------

def _status(sid, text, language="en", visibility="public"):
    return {"id": sid, "content": f"<p>{text}</p>", "language": language,
            "visibility": visibility, "created_at": "2026-10-19T14:01:00.000Z"}


def test_mastodon_stops_when_budget_low(monkeypatch):
    monkeypatch.delenv("MASTODON_INSTANCE", raising=False)
    monkeypatch.delenv("MASTODON_ACCESS_TOKEN", raising=False)
    seen_params = []

    def handler(request):
        assert request.url.path == "/api/v1/timelines/public"
        seen_params.append(dict(request.url.params))
        body = [
            _status("105", "holy shit"),
            _status("104", "verdammte scheiße", language="de"),
            _status("103", "private damn", visibility="unlisted"),
        ]
        return httpx.Response(200, json=body, headers={
            "X-RateLimit-Remaining": "8",
            "X-RateLimit-Reset": "2099-01-01T00:00:00.000Z",
        })

    async def main():
        states = SourceStates()
        async with _client(handler) as client:
            adapter = MastodonAdapter(client, {**NO_DELAY, "instance": "https://mastodon.test"}, states)
            pages = await _collect(adapter)
        assert len(pages) == 1
        assert [i.text for i in pages[0]] == ["holy shit"]
        assert "max_id" not in seen_params[0]
        assert states.mastodon_budget.stopped_early
        assert states.mastodon_budget.pages == 1

    asyncio.run(main())


def test_mastodon_pages_with_max_id_and_dedupes(monkeypatch):
    monkeypatch.delenv("MASTODON_INSTANCE", raising=False)
    seen_params = []

    def handler(request):
        seen_params.append(dict(request.url.params))
        if "max_id" not in request.url.params:
            body = [_status("20", "damn"), _status("19", "hell no")]
        else:
            body = [_status("19", "hell no"), _status("18", "crap")]
        return httpx.Response(200, json=body, headers={"X-RateLimit-Remaining": "250"})

    async def main():
        states = SourceStates(mastodon_budget=RateLimitBudget(max_pages=2))
        async with _client(handler) as client:
            adapter = MastodonAdapter(client, {**NO_DELAY, "instance": "https://mastodon.test"}, states)
            pages = await _collect(adapter)
        assert [[i.text for i in p] for p in pages] == [["damn", "hell no"], ["crap"]]
        assert seen_params[1]["max_id"] == "19"
        assert not states.mastodon_budget.stopped_early

    asyncio.run(main())


def test_mastodon_rate_limited_raises(monkeypatch):
    monkeypatch.delenv("MASTODON_INSTANCE", raising=False)

    def handler(request):
        return httpx.Response(429, json={"error": "Too many requests"})

    async def main():
        async with _client(handler) as client:
            adapter = MastodonAdapter(client, NO_DELAY, SourceStates())
            with pytest.raises(SourceFetchError):
                await _collect(adapter)

    asyncio.run(main())


# -------------------- bluesky --------------------

def test_bluesky_feed_accounts_and_unknown_actor():
    def handler(request):
        if request.url.path.endswith("getFeed"):
            posts = [{"uri": "at://1", "record": {"text": "wtf is this", "createdAt": "2026-10-19T14:00:00Z"}},
                     {"uri": "at://2", "record": {"text": "lovely", "createdAt": "2026-10-19T14:00:00Z"}}]
            return httpx.Response(200, json={"feed": [{"post": p} for p in posts]})
        if request.url.params["actor"] == "ghost.bsky.social":
            return httpx.Response(400, json={"error": "InvalidRequest"})
        posts = [{"uri": "at://1", "record": {"text": "wtf is this"}},
                 {"uri": "at://3", "record": {"text": "bloody hell"}}]
        return httpx.Response(200, json={"feed": [{"post": p} for p in posts]})

    async def main():
        cfg = {**NO_DELAY, "accounts": ["ghost.bsky.social", "real.bsky.social"]}
        async with _client(handler) as client:
            pages = await _collect(BlueskyAdapter(client, cfg, SourceStates()))
        assert [[i.text for i in p] for p in pages] == [["wtf is this", "lovely"], [], ["bloody hell"]]

    asyncio.run(main())


def test_bluesky_server_error_raises():
    def handler(request):
        return httpx.Response(503)

    async def main():
        async with _client(handler) as client:
            with pytest.raises(SourceFetchError):
                await _collect(BlueskyAdapter(client, NO_DELAY, SourceStates()))

    asyncio.run(main())


# -------------------- youtube --------------------

def test_youtube_without_key_is_skipped(monkeypatch):
    monkeypatch.delenv("YOUTUBE_API_KEY", raising=False)

    def handler(request):
        raise AssertionError("no request expected without a key")

    async def main():
        async with _client(handler) as client:
            adapter = YouTubeAdapter(client, {**NO_DELAY, "queries": ["rant"]}, SourceStates())
            assert await _collect(adapter) == []

    asyncio.run(main())


def test_youtube_comments_and_disabled_video(monkeypatch):
    monkeypatch.setenv("YOUTUBE_API_KEY", "k")

    def comment(cid, text):
        return {"id": cid, "snippet": {"topLevelComment": {"snippet": {
            "textDisplay": text, "publishedAt": "2026-10-19T13:59:00Z"}}}}

    def handler(request):
        assert request.url.params["key"] == "k"
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json={"items": [{"id": {"videoId": "v1"}}, {"id": {"videoId": "v2"}}]})
        if request.url.params["videoId"] == "v2":
            return httpx.Response(403, json={"error": {"message": "commentsDisabled"}})
        return httpx.Response(200, json={"items": [comment("c1", "this is crap &amp; junk"), comment("c1", "dup")]})

    async def main():
        async with _client(handler) as client:
            pages = await _collect(YouTubeAdapter(client, {**NO_DELAY, "queries": ["rant"]}, SourceStates()))
        assert [[i.text for i in p] for p in pages] == [["this is crap & junk"], []]

    asyncio.run(main())


# -------------------- gdelt --------------------

def test_gdelt_articles_become_headline_items():
    def handler(request):
        q = request.url.params["query"]
        assert q.endswith("sourcelang:english")
        assert request.url.params["timespan"] == "1h"
        if q.startswith("crap"):
            return httpx.Response(200, text="Queries must be at least 3 characters")
        art = {"url": "https://news.example/a", "title": "Mayor: this is bullshit", "seendate": "20261019T140500Z",
               "domain": "news.example"}
        return httpx.Response(200, json={"articles": [art]})

    async def main():
        cfg = {**NO_DELAY, "queries": ["bullshit", "damn", "crap"]}
        async with _client(handler) as client:
            pages = await _collect(GdeltAdapter(client, cfg, SourceStates()))
        assert len(pages) == 3
        first = pages[0][0]
        assert first.headline == first.text == "Mayor: this is bullshit"
        assert first.url == "https://news.example/a" and first.domain == "news.example"
        # same url under the second query is a duplicate; third query was throttled
        assert pages[1] == [] and pages[2] == []

    asyncio.run(main())


def test_build_adapter():
    async def main():
        async with _client(lambda r: httpx.Response(200)) as client:
            assert isinstance(build_adapter("gdelt", client, {}, SourceStates()), GdeltAdapter)
            with pytest.raises(ValueError):
                build_adapter("reddit", client, {}, SourceStates())

    asyncio.run(main())
