import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from ..models import (
    ChannelProfile,
    IdeaRequest,
    TrendAnalysis,
    TrendingItem,
    TrendSummary,
    VideoFormat,
    VideoIdea,
)
from .llm_client import LLMClient, parse_json_object

logger = logging.getLogger(__name__)

UNTITLED_IDEA = "Untitled Video Idea"
MISSING_CONCEPT = "No concept provided"
GENERATION_FAILED_MESSAGE = "Failed to generate a video idea. Please try again."
CHANNEL_HIGHLIGHTS = 5

IDEA_JSON_TEMPLATE = """{
  "title": "Catchy video title",
  "concept": "Detailed description of the video concept, structure, and execution",
  "hashtags": ["tag1", "tag2", "tag3"],
  "viralityScore": 85,
  "viralityJustification": "Explanation of why this idea has viral potential",
  "monetizationStrategy": "How to monetize this content",
  "videoFormat": {
    "type": "The type of video format that works best",
    "length": "Optimal video length",
    "hooks": ["Key moment 1 to hook viewers", "Key moment 2", "Key moment 3"]
  },
  "trendAnalysis": {
    "relevantThemes": ["theme1", "theme2"],
    "relatedContent": ["related1", "related2"],
    "suggestedTags": ["tag1", "tag2", "tag3"]
  },
  "channelInspirations": "How the reference channels influenced this idea (only if reference channels were provided)"
}"""


class IdeaGenerationError(Exception):
    pass


class SynthesisStage(str, Enum):
    IDLE = "idle"
    FETCHING_TRENDS = "fetching_trends"
    SUMMARIZING = "summarizing"
    CHANNEL_ENRICHMENT = "channel_enrichment"
    PRIMARY_GENERATE = "primary_generate"
    FALLBACK_GENERATE = "fallback_generate"
    DONE = "done"
    FAILED = "failed"


def new_idea_id() -> str:
    return uuid.uuid4().hex[:12]


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------
# Prompt
# ---------------------------

def build_channel_insights(profiles: list[ChannelProfile]) -> str:
    if not profiles:
        return ""
    sections = []
    for index, profile in enumerate(profiles, start=1):
        videos = "\n".join(
            f'  {v_index}. "{video.title}"\n'
            f"  Stats: {video.stats.views} views, {video.stats.likes} likes, {video.stats.comments} comments\n"
            f"  Tags: {', '.join(video.tags)}"
            for v_index, video in enumerate(profile.videos[:CHANNEL_HIGHLIGHTS], start=1)
        )
        sections.append(
            f"Channel {index}: {profile.channel_info.title}\n"
            f"Subscribers: {profile.channel_info.subscriber_count}\n"
            f"Top Performing Videos:\n{videos}"
        )
    return "Reference Channels Analysis:\n" + "\n\n".join(sections)


def build_previous_idea_section(previous_idea: str | None) -> str:
    if not previous_idea:
        return ""
    try:
        previous = json.loads(previous_idea)
    except ValueError as exc:
        logger.warning("Failed to parse previous idea: %s", exc)
        return ""
    if not isinstance(previous, dict):
        return ""
    hashtags = previous.get("hashtags") or []
    if not isinstance(hashtags, list):
        hashtags = []
    return (
        "PREVIOUS IDEA TO IMPROVE:\n"
        f'Title: "{previous.get("title", "")}"\n'
        f'Concept: "{previous.get("concept", "")}"\n'
        f"Hashtags: {', '.join(str(tag) for tag in hashtags)}\n"
        f"Virality Score: {previous.get('viralityScore', 0)}%\n"
        f'Monetization Strategy: "{previous.get("monetizationStrategy", "")}"\n\n'
        "Using the user's feedback, create an IMPROVED version of this idea. "
        "Maintain the strengths but address the feedback directly."
    )


def build_feedback_section(feedback: str | None) -> str:
    return (
        "USER FEEDBACK TO INCORPORATE:\n"
        f'"{feedback}"\n\n'
        "Please carefully consider this feedback and make specific improvements to the previous idea based on it."
    )


def build_idea_prompt(
    request: IdeaRequest,
    summary: TrendSummary,
    profiles: list[ChannelProfile] | None = None,
) -> str:
    improving = bool(request.feedback)
    previous_section = ""
    feedback_section = ""
    if request.feedback and request.previous_idea:
        previous_section = build_previous_idea_section(request.previous_idea)
        feedback_section = build_feedback_section(request.feedback)

    details = [
        f"- Content type: {request.content_type}",
        f"- Region: {request.region}",
        f"- Virality factor: {request.virality_factor}% (higher means more experimental)",
    ]
    if request.keywords:
        details.append(f"- Keywords to incorporate: {request.keywords}")

    goals = [
        "1. Leverages current trends",
        "2. Has viral potential",
        f"3. Is authentic to the {request.niche} niche",
        f"4. Works well on {request.platform}",
        "5. Incorporates insights from the reference channels (if provided)",
    ]
    if improving:
        goals.append("6. Directly addresses the user's feedback for improvements")
        closing = (
            "Create an improved version of the video idea by incorporating the user's feedback "
            "while maintaining viral potential."
        )
    else:
        closing = "Create a completely original video idea that:"

    sections = [
        f"{'IMPROVE AN EXISTING' if improving else 'CREATE AN ORIGINAL'} viral video idea for "
        f"{request.platform} focusing on the {request.niche} niche.",
        "Details:\n" + "\n".join(details),
        "Based on current YouTube trending data:\n"
        f"- Common themes: {', '.join(summary.themes)}\n"
        f"- Popular content types: {', '.join(summary.content_types)}\n"
        f"- Trending topics: {', '.join(summary.trending_topics)}\n"
        f"- Engagement insights: {', '.join(summary.engagement_insights)}\n"
        f"- Top categories: {', '.join(summary.top_categories)}\n"
        f"- Title patterns: {', '.join(summary.title_patterns)}\n"
        f"- Popular tags: {', '.join(summary.popular_tags)}",
        build_channel_insights(profiles or []),
        previous_section,
        feedback_section,
        closing + "\n" + "\n".join(goals),
        "Provide a JSON response in this exact format (no markdown, no code blocks):\n" + IDEA_JSON_TEMPLATE,
    ]
    return "\n\n".join(section for section in sections if section)


# ---------------------------
# Parsing
# ---------------------------

def _text(value: Any, default: str) -> str:
    if value is None or value == "":
        return default
    return value if isinstance(value, str) else str(value)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value if entry is not None]


def _score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, score))


def _video_format(value: Any) -> VideoFormat:
    if not isinstance(value, dict):
        return VideoFormat()
    defaults = VideoFormat()
    hooks = _string_list(value.get("hooks"))
    return VideoFormat(
        type=_text(value.get("type"), defaults.type),
        length=_text(value.get("length"), defaults.length),
        hooks=hooks or defaults.hooks,
    )


def _trend_analysis(value: Any) -> TrendAnalysis:
    if not isinstance(value, dict):
        return TrendAnalysis()
    return TrendAnalysis(
        relevant_themes=_string_list(value.get("relevantThemes")),
        related_content=_string_list(value.get("relatedContent")),
        suggested_tags=_string_list(value.get("suggestedTags")),
    )


def build_video_idea(
    payload: dict[str, Any],
    request: IdeaRequest,
    id_factory: Callable[[], str] = new_idea_id,
    timestamp: Callable[[], str] = utc_timestamp,
) -> VideoIdea:
    """Map a parsed LLM reply onto a VideoIdea; id and createdAt never come from the reply."""
    inspirations = payload.get("channelInspirations")
    return VideoIdea(
        id=id_factory(),
        title=_text(payload.get("title"), UNTITLED_IDEA),
        concept=_text(payload.get("concept"), MISSING_CONCEPT),
        hashtags=_string_list(payload.get("hashtags")),
        virality_score=_score(payload.get("viralityScore")),
        virality_justification=_text(payload.get("viralityJustification"), ""),
        monetization_strategy=_text(payload.get("monetizationStrategy"), ""),
        video_format=_video_format(payload.get("videoFormat")),
        platform=request.platform,
        content_type=request.content_type,
        created_at=timestamp(),
        trend_analysis=_trend_analysis(payload.get("trendAnalysis")),
        region=request.region,
        channel_inspirations=_text(inspirations, "") or None,
    )


# ---------------------------
# Pipeline
# ---------------------------

class IdeaSynthesizer:
    def __init__(
        self,
        get_trending: Callable[[str], list[TrendingItem]],
        summarize: Callable[[list[TrendingItem]], TrendSummary],
        fetch_channel: Callable[[str], ChannelProfile],
        llm: LLMClient,
        id_factory: Callable[[], str] = new_idea_id,
        timestamp: Callable[[], str] = utc_timestamp,
    ):
        self._get_trending = get_trending
        self._summarize = summarize
        self._fetch_channel = fetch_channel
        self.llm = llm
        self.id_factory = id_factory
        self.timestamp = timestamp

    def _trending(self, region: str) -> list[TrendingItem]:
        try:
            return self._get_trending(region)
        except Exception as exc:
            logger.error("Error fetching trending videos for %s: %s", region, exc)
            return []

    def _reference_channels(self, channel_ids: list[str]) -> list[ChannelProfile]:
        profiles = []
        for channel_id in channel_ids:
            try:
                profiles.append(self._fetch_channel(channel_id))
            except Exception as exc:
                logger.warning("Error fetching channel data for %s: %s", channel_id, exc)
        logger.info("Retrieved data for %d/%d reference channels", len(profiles), len(channel_ids))
        return profiles

    def _to_idea(self, text: str, request: IdeaRequest) -> VideoIdea:
        return build_video_idea(parse_json_object(text), request, self.id_factory, self.timestamp)

    def generate(
        self,
        request: IdeaRequest,
        on_stage: Callable[[SynthesisStage], None] | None = None,
    ) -> VideoIdea:
        def enter(stage: SynthesisStage) -> None:
            if on_stage is not None:
                on_stage(stage)

        logger.info(
            "Generating video idea: niche=%s platform=%s region=%s",
            request.niche,
            request.platform,
            request.region,
        )
        enter(SynthesisStage.FETCHING_TRENDS)
        items = self._trending(request.region)
        logger.info("Found %d trending videos", len(items))

        enter(SynthesisStage.SUMMARIZING)
        summary = self._summarize(items)

        profiles: list[ChannelProfile] = []
        if request.reference_channels:
            enter(SynthesisStage.CHANNEL_ENRICHMENT)
            profiles = self._reference_channels(request.reference_channels)

        prompt = build_idea_prompt(request, summary, profiles)

        enter(SynthesisStage.PRIMARY_GENERATE)
        try:
            idea = self._to_idea(self.llm.run_assistant(prompt), request)
            enter(SynthesisStage.DONE)
            return idea
        except Exception as exc:
            logger.warning("Failed to generate idea using assistant, falling back: %s", exc)

        enter(SynthesisStage.FALLBACK_GENERATE)
        text = ""
        try:
            text = self.llm.complete(prompt)
            idea = self._to_idea(text, request)
        except Exception as exc:
            logger.error("Failed to parse idea response: %s", exc)
            logger.debug("Raw idea response: %s", text)
            enter(SynthesisStage.FAILED)
            raise IdeaGenerationError(GENERATION_FAILED_MESSAGE) from exc
        enter(SynthesisStage.DONE)
        return idea
