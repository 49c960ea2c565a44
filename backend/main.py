import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

try:
    from backend.app.config import Settings, load_settings, parse_cors_origins
    from backend.app.models import IdeaRequest, VideoIdea
    from backend.app.services.idea_analytics import summarize_ideas
    from backend.app.services.idea_store import (
        RECENT_IDEAS_LIMIT,
        InMemoryIdeaStore,
        RecentIdeasBuffer,
        StoreError,
        StoreNotProvisionedError,
        SupabaseIdeaStore,
    )
    from backend.app.services.idea_synthesizer import IdeaGenerationError, IdeaSynthesizer
    from backend.app.services.llm_client import LLMClient
    from backend.app.services.trend_insights import build_trend_insights
    from backend.app.services.trend_summarizer import TrendSummarizer
    from backend.app.services.trending_aggregator import TrendingAggregator, TrendingUnavailableError
    from backend.app.services.ttl_cache import TTLCache
    from backend.app.services.youtube_client import (
        GLOBAL_REGION,
        ChannelNotFoundError,
        NoChannelsFoundError,
        YouTubeApiError,
        YouTubeClient,
        normalize_region,
    )
except ModuleNotFoundError:
    from app.config import Settings, load_settings, parse_cors_origins
    from app.models import IdeaRequest, VideoIdea
    from app.services.idea_analytics import summarize_ideas
    from app.services.idea_store import (
        RECENT_IDEAS_LIMIT,
        InMemoryIdeaStore,
        RecentIdeasBuffer,
        StoreError,
        StoreNotProvisionedError,
        SupabaseIdeaStore,
    )
    from app.services.idea_synthesizer import IdeaGenerationError, IdeaSynthesizer
    from app.services.llm_client import LLMClient
    from app.services.trend_insights import build_trend_insights
    from app.services.trend_summarizer import TrendSummarizer
    from app.services.trending_aggregator import TrendingAggregator, TrendingUnavailableError
    from app.services.ttl_cache import TTLCache
    from app.services.youtube_client import (
        GLOBAL_REGION,
        ChannelNotFoundError,
        NoChannelsFoundError,
        YouTubeApiError,
        YouTubeClient,
        normalize_region,
    )


logger = logging.getLogger("videa")

MAINTENANCE_MESSAGE = "System is currently undergoing maintenance. Please try again later."
YOUTUBE_SOURCE = "YouTube Data API"


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------
# Service wiring
# ---------------------------

@dataclass
class Services:
    youtube: YouTubeClient
    aggregator: TrendingAggregator
    summarizer: TrendSummarizer
    synthesizer: IdeaSynthesizer
    store: Any
    recent_ideas: RecentIdeasBuffer


def build_services(settings: Settings) -> Services:
    youtube = YouTubeClient.from_settings(settings)
    llm = LLMClient.from_settings(settings)
    aggregator = TrendingAggregator(youtube.fetch_region_trending, TTLCache(settings.trend_cache_ttl_seconds))
    summarizer = TrendSummarizer(llm.complete, TTLCache(settings.trend_cache_ttl_seconds))
    synthesizer = IdeaSynthesizer(
        get_trending=aggregator.get_trending,
        summarize=summarizer.summarize,
        fetch_channel=youtube.fetch_channel_profile,
        llm=llm,
    )
    if settings.supabase_url and settings.supabase_service_key:
        store: Any = SupabaseIdeaStore.from_settings(settings)
    else:
        logger.warning("SUPABASE_URL/SUPABASE_SERVICE_KEY not set, ideas are kept in memory only")
        store = InMemoryIdeaStore()
    return Services(
        youtube=youtube,
        aggregator=aggregator,
        summarizer=summarizer,
        synthesizer=synthesizer,
        store=store,
        recent_ideas=RecentIdeasBuffer(),
    )


SETTINGS = load_settings()
SERVICES: Services | None = None


def get_services() -> Services:
    global SERVICES
    if SERVICES is None:
        SERVICES = build_services(SETTINGS)
    return SERVICES


# ---------------------------
# Auth helpers
# ---------------------------

def get_bearer_token(request: Request) -> str | None:
    header = (request.headers.get("authorization") or "").strip()
    if not header.startswith("Bearer "):
        return None
    token = header[len("Bearer "):].strip()
    return token or None


def resolve_user_id(request: Request) -> str | None:
    token = get_bearer_token(request)
    if not token:
        return None
    return get_services().store.get_user_id(token)


def require_user_id(request: Request, message: str) -> str:
    user_id = resolve_user_id(request)
    if not user_id:
        raise ApiError(401, message)
    return user_id


def store_failure(exc: StoreError, fallback: str) -> ApiError:
    if isinstance(exc, StoreNotProvisionedError):
        return ApiError(503, MAINTENANCE_MESSAGE)
    return ApiError(500, exc.message or fallback)


# ---------------------------
# App setup
# ---------------------------

logging.basicConfig(
    level=getattr(logging, SETTINGS.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Videa API")

cors_origins, cors_credentials = parse_cors_origins(SETTINGS.cors_allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApiError)
async def api_error_handler(_request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(HTTPException)
async def http_exception_handler(_request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg") or "Invalid request"
    return JSONResponse(status_code=400, content={"error": f"{location}: {message}" if location else message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# ---------------------------
# Routes: YouTube data
# ---------------------------

@app.get("/health")
def health():
    return {"ok": True}


@app.get("/api/youtube-trending")
def youtube_trending(region: str = "US"):
    """Raw trending list for one region, or the merged multi-region list for GLOBAL."""
    region = normalize_region(region)
    services = get_services()
    try:
        if region == GLOBAL_REGION:
            items, regions_included = services.aggregator.fetch_global()
        else:
            items, regions_included = services.aggregator.fetch_region(region), [region]
    except (YouTubeApiError, TrendingUnavailableError) as exc:
        logger.error("Error fetching trending videos for %s: %s", region, exc)
        raise ApiError(500, "Failed to fetch trending videos")

    return {
        "videos": [item.to_wire() for item in items],
        "metadata": {
            "fetchedAt": iso_now(),
            "region": region,
            "regionsIncluded": regions_included,
            "totalFetched": len(items),
            "source": YOUTUBE_SOURCE,
        },
    }


@app.get("/api/trending-videos")
def trending_videos(region: str = GLOBAL_REGION):
    """Top ten diversified trending videos."""
    region = normalize_region(region)
    try:
        items = get_services().aggregator.get_trending(region)
    except (YouTubeApiError, TrendingUnavailableError) as exc:
        logger.error("Error building trending list for %s: %s", region, exc)
        raise ApiError(500, "Failed to fetch trending videos")
    return {
        "videos": [item.to_wire() for item in items],
        "metadata": {"fetchedAt": iso_now(), "region": region, "totalFetched": len(items)},
    }


@app.get("/api/trending-insights")
def trending_insights(region: str = GLOBAL_REGION):
    region = normalize_region(region)
    aggregator = get_services().aggregator
    try:
        if region == GLOBAL_REGION:
            items, regions_included = aggregator.fetch_global()
        else:
            items, regions_included = aggregator.fetch_region(region), [region]
    except (YouTubeApiError, TrendingUnavailableError) as exc:
        logger.error("Error fetching trending insights for %s: %s", region, exc)
        raise ApiError(500, "Failed to fetch trending data")
    return build_trend_insights(items, region, regions_included, iso_now())


@app.get("/api/youtube-channel")
def youtube_channel(channelId: str | None = None):
    channel_id = (channelId or "").strip()
    if not channel_id:
        raise ApiError(400, "Channel ID is required")

    try:
        profile = get_services().youtube.fetch_channel_profile(channel_id)
    except ChannelNotFoundError:
        raise ApiError(404, "Channel not found")
    except YouTubeApiError as exc:
        logger.error("Error fetching channel videos for %s: %s", channel_id, exc)
        raise ApiError(500, "Failed to fetch channel videos")

    return {
        "channelInfo": profile.channel_info.to_wire(),
        "videos": [video.to_wire() for video in profile.videos],
        "metadata": {
            "fetchedAt": iso_now(),
            "totalFetched": len(profile.videos),
            "source": YOUTUBE_SOURCE,
        },
    }


@app.get("/api/youtube-search")
def youtube_search(query: str | None = None, maxResults: int = 5):
    query = (query or "").strip()
    if not query:
        raise ApiError(400, "Search query is required")

    try:
        channels = get_services().youtube.search_channels(query, max_results=maxResults)
    except NoChannelsFoundError:
        raise ApiError(404, "No channels found matching that name")
    except YouTubeApiError as exc:
        logger.error("Error searching for YouTube channel %r: %s", query, exc)
        raise ApiError(500, "Failed to search for YouTube channel")

    return {"channels": [channel.to_wire() for channel in channels]}


# ---------------------------
# Routes: ideas
# ---------------------------

@app.post("/api/generate-idea")
def generate_idea(payload: IdeaRequest):
    services = get_services()
    request = payload.model_copy(update={"region": normalize_region(payload.region)})
    try:
        idea = services.synthesizer.generate(request)
    except IdeaGenerationError as exc:
        raise ApiError(500, str(exc))
    services.recent_ideas.push(idea)
    return idea.to_wire()


@app.get("/api/ideas/recent")
def recent_ideas():
    services = get_services()
    try:
        ideas = services.store.list_recent()
    except StoreError as exc:
        logger.warning("Error fetching recent ideas, using in-process buffer: %s", exc)
        ideas = services.recent_ideas.recent(RECENT_IDEAS_LIMIT)
    return {"ideas": [idea.to_wire() for idea in ideas]}


@app.get("/api/ideas/stats")
def idea_stats(request: Request):
    user_id = require_user_id(request, "You must be logged in to view ideas")
    try:
        ideas = get_services().store.list_for_user(user_id)
    except StoreError as exc:
        raise store_failure(exc, "Failed to fetch ideas")
    return summarize_ideas(ideas)


@app.get("/api/ideas")
def list_ideas(request: Request):
    user_id = require_user_id(request, "You must be logged in to view ideas")
    try:
        ideas = get_services().store.list_for_user(user_id)
    except StoreError as exc:
        raise store_failure(exc, "Failed to fetch ideas")
    return {"ideas": [idea.to_wire() for idea in ideas]}


@app.post("/api/ideas")
def save_idea(request: Request, payload: Any = Body(default=None)):
    user_id = require_user_id(request, "You must be logged in to save ideas")
    try:
        idea = VideoIdea.model_validate(payload)
    except ValidationError:
        raise ApiError(400, "Invalid idea data provided")

    try:
        saved = get_services().store.create(idea, user_id)
    except StoreError as exc:
        raise store_failure(exc, "Failed to save idea")
    return {"success": True, "data": saved.to_wire()}


@app.delete("/api/ideas/{idea_id}")
def delete_idea(idea_id: str, request: Request):
    user_id = require_user_id(request, "Unauthorized")
    try:
        removed = get_services().store.delete(idea_id, user_id)
    except StoreError as exc:
        raise store_failure(exc, "Failed to delete idea")
    if not removed:
        logger.info("Delete of idea %s by %s matched no rows", idea_id, user_id)
    return {"success": True}
