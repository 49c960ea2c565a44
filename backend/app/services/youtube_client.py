import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable

import requests

from ..models import (
    AuthorStats,
    ChannelInfo,
    ChannelProfile,
    ChannelSearchResult,
    TrendingItem,
    VideoStats,
)
from .retry_policy import BatchPolicy, RetryPolicy, chunked

logger = logging.getLogger(__name__)

YOUTUBE_VIDEOS_LIST = "https://www.googleapis.com/youtube/v3/videos"
YOUTUBE_SEARCH_LIST = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_CHANNELS_LIST = "https://www.googleapis.com/youtube/v3/channels"
YOUTUBE_PLAYLIST_ITEMS_LIST = "https://www.googleapis.com/youtube/v3/playlistItems"

DEFAULT_REGION = "US"
GLOBAL_REGION = "GLOBAL"

REGION_CODES = {
    "GLOBAL": "Global",
    "US": "United States",
    "GB": "United Kingdom",
    "CA": "Canada",
    "AU": "Australia",
    "IN": "India",
    "JP": "Japan",
    "KR": "South Korea",
    "BR": "Brazil",
    "MX": "Mexico",
    "DE": "Germany",
    "FR": "France",
    "ES": "Spain",
    "IT": "Italy",
    "NL": "Netherlands",
    "RU": "Russia",
    "ID": "Indonesia",
    "PH": "Philippines",
    "NG": "Nigeria",
    "ZA": "South Africa",
}

# Regions fanned out for the GLOBAL view
GLOBAL_REGIONS = ("US", "GB", "IN", "JP", "BR", "CA", "DE", "FR", "AU", "KR")

TRENDING_MAX_RESULTS = 50
CHANNEL_TOP_VIDEOS = 20
MISSING_KEY_MESSAGE = "Missing YOUTUBE_API_KEY in backend/.env"


class YouTubeApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class ChannelNotFoundError(Exception):
    pass


class NoChannelsFoundError(Exception):
    pass


def normalize_region(region: str | None) -> str:
    code = (region or DEFAULT_REGION).strip().upper()
    if code not in REGION_CODES:
        logger.info("Invalid region code %s, falling back to %s", region, DEFAULT_REGION)
        return DEFAULT_REGION
    return code


def parse_iso8601_datetime(value: str | None):
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def days_ago_label(days: int) -> str:
    if days < 1:
        return "Today"
    if days == 1:
        return "1 day ago"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        weeks = days // 7
        return f"{weeks} {'week' if weeks == 1 else 'weeks'} ago"
    months = days // 30
    return f"{months} {'month' if months == 1 else 'months'} ago"


def published_label(published_at: str | None, now: datetime) -> str:
    published = parse_iso8601_datetime(published_at)
    if published is None:
        return "Unknown"
    elapsed = abs((now - published).total_seconds())
    return days_ago_label(math.ceil(elapsed / 86400))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _count(value: Any) -> str:
    return str(value or "0")


def build_trending_item(
    video: dict[str, Any],
    author_stats: AuthorStats,
    published_text: str,
) -> TrendingItem:
    snippet = video.get("snippet") or {}
    statistics = video.get("statistics") or {}
    return TrendingItem(
        video_id=video.get("id") or "",
        title=snippet.get("title") or "",
        description=snippet.get("description") or "",
        author=snippet.get("channelTitle") or "",
        views=_count(statistics.get("viewCount")),
        author_stats=author_stats,
        published_text=published_text,
        stats=VideoStats(
            views=_count(statistics.get("viewCount")),
            likes=_count(statistics.get("likeCount")),
            comments=_count(statistics.get("commentCount")),
        ),
        tags=list(snippet.get("tags") or []),
        category=snippet.get("categoryId") or "N/A",
    )


def sort_by_views(items: list[TrendingItem]) -> list[TrendingItem]:
    return sorted(items, key=lambda item: item.view_count, reverse=True)


class YouTubeClient:
    """YouTube Data API v3 access with the shared retry policy on every call."""

    def __init__(
        self,
        api_key: str | None,
        session: Any = None,
        retry_policy: RetryPolicy | None = None,
        batch_policy: BatchPolicy | None = None,
        timeout: int = 15,
        now: Callable[[], datetime] = utc_now,
    ):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_policy = batch_policy or BatchPolicy()
        self.timeout = timeout
        self.now = now

    @classmethod
    def from_settings(cls, settings) -> "YouTubeClient":
        if not settings.youtube_api_key:
            logger.warning("YOUTUBE_API_KEY is not set, YouTube lookups will fail")
        return cls(settings.youtube_api_key)

    def _get_once(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise YouTubeApiError(500, MISSING_KEY_MESSAGE)
        merged = dict(params)
        merged["key"] = self.api_key
        try:
            response = self.session.get(url, params=merged, timeout=self.timeout)
        except requests.RequestException as exc:
            raise YouTubeApiError(502, f"YouTube is temporarily unavailable: {exc}") from exc

        if response.status_code == 200:
            try:
                return response.json()
            except ValueError as exc:
                raise YouTubeApiError(502, "YouTube returned an unreadable response") from exc

        message = response.text
        try:
            error = (response.json() or {}).get("error") or {}
            message = error.get("message") or message
        except ValueError:
            pass
        raise YouTubeApiError(response.status_code, message or "Could not fetch YouTube data")

    def api_get(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        return self.retry_policy.call(self._get_once, url, params)

    # ---------------------------
    # Trending
    # ---------------------------

    def fetch_author_stats(self, channel_id: str) -> AuthorStats:
        payload = self.api_get(YOUTUBE_CHANNELS_LIST, {"part": "statistics", "id": channel_id})
        items = payload.get("items") or []
        statistics = (items[0].get("statistics") or {}) if items else {}
        return AuthorStats(
            subscribers=_count(statistics.get("subscriberCount")),
            total_views=_count(statistics.get("viewCount")),
        )

    def _enrich(self, video: dict[str, Any]) -> TrendingItem:
        channel_id = (video.get("snippet") or {}).get("channelId")
        try:
            author_stats = self.fetch_author_stats(channel_id) if channel_id else AuthorStats()
            published_text = published_label((video.get("snippet") or {}).get("publishedAt"), self.now())
        except Exception as exc:
            logger.warning("Error processing video %s: %s", video.get("id"), exc)
            return build_trending_item(video, AuthorStats(), "Unknown")
        return build_trending_item(video, author_stats, published_text)

    def fetch_region_trending(self, region: str, max_results: int = TRENDING_MAX_RESULTS) -> list[TrendingItem]:
        region = normalize_region(region)
        if region == GLOBAL_REGION:
            raise ValueError("GLOBAL is an aggregate view; fetch its regions individually")

        logger.info("Fetching YouTube trending videos for region: %s", region)
        payload = self.api_get(
            YOUTUBE_VIDEOS_LIST,
            {
                "part": "snippet,statistics,contentDetails",
                "chart": "mostPopular",
                "regionCode": region,
                "maxResults": max(1, min(max_results, TRENDING_MAX_RESULTS)),
            },
        )
        videos = [video for video in payload.get("items") or [] if video.get("id")]
        items = self.batch_policy.map(self._enrich, videos)
        logger.info("Processed %d trending videos for %s", len(items), region)
        return sort_by_views(items)

    # ---------------------------
    # Channels
    # ---------------------------

    def hydrate_videos(self, video_ids: list[str]) -> list[dict[str, Any]]:
        hydrated: list[dict[str, Any]] = []
        for batch in chunked(video_ids, 50):
            payload = self.api_get(
                YOUTUBE_VIDEOS_LIST,
                {"part": "snippet,statistics,contentDetails", "id": ",".join(batch)},
            )
            hydrated.extend(payload.get("items") or [])
        return hydrated

    def fetch_playlist_video_ids(self, playlist_id: str, max_items: int = 50) -> list[str]:
        payload = self.api_get(
            YOUTUBE_PLAYLIST_ITEMS_LIST,
            {"part": "snippet,contentDetails", "playlistId": playlist_id, "maxResults": min(50, max_items)},
        )
        ids = []
        for item in payload.get("items") or []:
            video_id = (item.get("contentDetails") or {}).get("videoId")
            if video_id:
                ids.append(video_id)
        return ids[:max_items]

    def fetch_channel_profile(self, channel_id: str, top_n: int = CHANNEL_TOP_VIDEOS) -> ChannelProfile:
        payload = self.api_get(
            YOUTUBE_CHANNELS_LIST,
            {"part": "snippet,statistics,contentDetails", "id": channel_id},
        )
        items = payload.get("items") or []
        if not items:
            raise ChannelNotFoundError(channel_id)

        channel = items[0]
        snippet = channel.get("snippet") or {}
        statistics = channel.get("statistics") or {}
        info = ChannelInfo(
            id=channel.get("id") or channel_id,
            title=snippet.get("title") or "",
            description=snippet.get("description") or "",
            custom_url=snippet.get("customUrl"),
            thumbnails=snippet.get("thumbnails") or {},
            statistics=statistics,
        )

        uploads = ((channel.get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
        if not uploads:
            return ChannelProfile(channel_info=info, videos=[])

        video_ids = self.fetch_playlist_video_ids(uploads)
        if not video_ids:
            return ChannelProfile(channel_info=info, videos=[])

        # Channel stats are already known, so videos are built without a per-item lookup.
        author_stats = AuthorStats(
            subscribers=_count(statistics.get("subscriberCount")),
            total_views=_count(statistics.get("viewCount")),
        )
        now = self.now()
        videos = [
            build_trending_item(
                video,
                author_stats,
                published_label((video.get("snippet") or {}).get("publishedAt"), now),
            )
            for video in self.hydrate_videos(video_ids)
        ]
        return ChannelProfile(channel_info=info, videos=sort_by_views(videos)[:top_n])

    def search_channels(self, query: str, max_results: int = 5) -> list[ChannelSearchResult]:
        payload = self.api_get(
            YOUTUBE_SEARCH_LIST,
            {"part": "snippet", "q": query, "type": "channel", "maxResults": max(1, min(max_results, 50))},
        )
        items = payload.get("items") or []
        if not items:
            raise NoChannelsFoundError(query)

        results = []
        for item in items:
            snippet = item.get("snippet") or {}
            channel_id = (item.get("id") or {}).get("channelId") or snippet.get("channelId")
            if not channel_id:
                continue
            results.append(
                ChannelSearchResult(
                    channel_id=channel_id,
                    title=snippet.get("title") or "",
                    description=snippet.get("description") or "",
                    thumbnails=snippet.get("thumbnails") or {},
                )
            )
        if not results:
            raise NoChannelsFoundError(query)
        return results
