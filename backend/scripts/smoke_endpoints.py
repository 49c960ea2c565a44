from __future__ import annotations

import json
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from starlette.requests import Request

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import backend.main as main_module
from backend.app.models import IdeaRequest, TrendingItem, VideoStats
from backend.app.services.idea_store import InMemoryIdeaStore, RecentIdeasBuffer
from backend.app.services.idea_synthesizer import IdeaSynthesizer
from backend.app.services.llm_client import AssistantRunTimeout
from backend.app.services.trend_summarizer import TrendSummarizer
from backend.app.services.trending_aggregator import TrendingAggregator
from backend.app.services.ttl_cache import TTLCache

SMOKE_TOKEN = "smoke-token"
SMOKE_USER = "smoke-user"


def make_request(token: str | None = None) -> Request:
    headers = [(b"authorization", f"Bearer {token}".encode())] if token else []
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": headers,
            "client": ("127.0.0.1", 8000),
            "query_string": b"",
            "server": ("test", 80),
            "scheme": "http",
            "http_version": "1.1",
        }
    )


def make_item(video_id: str, views: int, author: str) -> TrendingItem:
    return TrendingItem(
        video_id=video_id,
        title=f"Smoke video {video_id}",
        author=author,
        views=str(views),
        stats=VideoStats(views=str(views), likes="10", comments="1"),
        tags=["smoke"],
        category="24",
    )


def assert_true(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


class StubLLM:
    """Assistant path always times out so every idea goes through the completion fallback."""

    def __init__(self):
        self.completions = 0

    def run_assistant(self, prompt: str) -> str:
        raise AssistantRunTimeout("Timeout waiting for response")

    def complete(self, prompt: str) -> str:
        self.completions += 1
        if prompt.startswith("Analyze these"):
            return json.dumps({field: ["smoke"] for field in (
                "themes", "contentTypes", "videoFormats", "trendingTopics",
                "engagementInsights", "topCategories", "titlePatterns", "popularTags",
            )})
        return json.dumps({"title": "Smoke idea", "concept": "Smoke concept", "viralityScore": 64})


def no_channels(channel_id: str):
    raise RuntimeError(f"no channel data for {channel_id} in smoke run")


def install_services(fetch_region) -> SimpleNamespace:
    llm = StubLLM()
    aggregator = TrendingAggregator(fetch_region, TTLCache(3600), global_regions=("US", "GB", "JP"))
    summarizer = TrendSummarizer(llm.complete, TTLCache(3600))
    synthesizer = IdeaSynthesizer(
        get_trending=aggregator.get_trending,
        summarize=summarizer.summarize,
        fetch_channel=no_channels,
        llm=llm,
    )
    main_module.SERVICES = main_module.Services(
        youtube=None,
        aggregator=aggregator,
        summarizer=summarizer,
        synthesizer=synthesizer,
        store=InMemoryIdeaStore(tokens={SMOKE_TOKEN: SMOKE_USER}),
        recent_ideas=RecentIdeasBuffer(),
    )
    return SimpleNamespace(llm=llm)


def default_fetch(region: str) -> list[TrendingItem]:
    return [make_item(f"{region.lower()}{index}", 1000 - index, f"{region}-{index % 3}") for index in range(6)]


def test_health() -> None:
    payload = main_module.health()
    assert_true(payload.get("ok") is True, "/health should return ok=true")


def test_global_trending_partial_failure() -> None:
    def fetch(region: str) -> list[TrendingItem]:
        if region == "JP":
            raise RuntimeError("JP unavailable")
        return default_fetch(region)

    install_services(fetch)
    payload = main_module.youtube_trending(region="GLOBAL")
    assert_true(payload["metadata"]["regionsIncluded"] == ["US", "GB"], "GLOBAL should skip the failed region")
    ids = [video["videoId"] for video in payload["videos"]]
    assert_true(len(ids) == len(set(ids)), "GLOBAL list should contain each video once")


def test_trending_top_cache() -> None:
    calls = {"fetch": 0}

    def fetch(region: str) -> list[TrendingItem]:
        calls["fetch"] += 1
        return default_fetch(region)

    install_services(fetch)
    payload_1 = main_module.trending_videos(region="US")
    payload_2 = main_module.trending_videos(region="US")
    assert_true(payload_1["videos"] == payload_2["videos"], "/api/trending-videos cached list should be identical")
    assert_true(calls["fetch"] == 1, "/api/trending-videos should hit source once then cache")
    authors = [video["author"] for video in payload_1["videos"]]
    assert_true(all(authors.count(author) <= 2 for author in authors), "no author should appear more than twice")


def test_generate_idea_fallback() -> None:
    stubs = install_services(default_fetch)
    payload = main_module.generate_idea(IdeaRequest(niche="cooking", platform="tiktok", content_type="tutorial"))
    assert_true(payload["title"] == "Smoke idea", "fallback completion should produce the idea")
    assert_true(payload["videoFormat"]["hooks"] == ["Hook 1", "Hook 2", "Hook 3"], "missing hooks should default")
    assert_true(stubs.llm.completions == 2, "summary and idea should each use one completion")
    recent = main_module.recent_ideas()["ideas"]
    assert_true(recent == [], "store answered with no rows, buffer should not be used")


def test_ideas_auth_and_ownership() -> None:
    install_services(default_fetch)
    idea = main_module.generate_idea(IdeaRequest(niche="travel", platform="youtube", content_type="vlog"))

    with patch.object(main_module.SERVICES.store, "create", side_effect=AssertionError("should not write")):
        try:
            main_module.save_idea(make_request(), idea)
            raise AssertionError("anonymous save should be rejected")
        except main_module.ApiError as exc:
            assert_true(exc.status_code == 401, "anonymous save should be 401")

    saved = main_module.save_idea(make_request(SMOKE_TOKEN), idea)
    assert_true(saved["success"] is True, "authenticated save should succeed")
    listed = main_module.list_ideas(make_request(SMOKE_TOKEN))["ideas"]
    assert_true([row["id"] for row in listed] == [idea["id"]], "saved idea should be listed for its owner")
    main_module.delete_idea(idea["id"], make_request(SMOKE_TOKEN))
    assert_true(main_module.list_ideas(make_request(SMOKE_TOKEN))["ideas"] == [], "delete should remove the idea")


def run() -> int:
    checks = [
        ("health", test_health),
        ("global trending partial failure", test_global_trending_partial_failure),
        ("trending top cache", test_trending_top_cache),
        ("generate idea fallback", test_generate_idea_fallback),
        ("ideas auth + ownership", test_ideas_auth_and_ownership),
    ]
    failures = []

    for check_name, check_fn in checks:
        try:
            check_fn()
            print(f"[PASS] {check_name}")
        except Exception as exc:  # pragma: no cover - smoke script output path
            failures.append((check_name, str(exc)))
            print(f"[FAIL] {check_name}: {exc}")

    if failures:
        print(f"\nSmoke checks failed: {len(failures)}")
        for check_name, message in failures:
            print(f"- {check_name}: {message}")
        return 1

    print("\nAll smoke checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(run())
