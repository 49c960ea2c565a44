from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Platform = Literal["tiktok", "youtube", "instagram", "youtube-shorts"]
ContentType = Literal["entertainment", "educational", "tutorial", "vlog", "challenge", "reaction"]


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


def to_int(value: Any) -> int:
    """YouTube counts arrive as numeric strings; anything unparseable counts as 0."""
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


class VideoStats(CamelModel):
    views: str = "0"
    likes: str = "0"
    comments: str = "0"


class AuthorStats(CamelModel):
    subscribers: str = "0"
    total_views: str = "0"


class TrendingItem(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    video_id: str
    title: str = ""
    description: str = ""
    author: str = ""
    views: str = "0"
    author_stats: AuthorStats = Field(default_factory=AuthorStats)
    published_text: str = "Unknown"
    stats: VideoStats = Field(default_factory=VideoStats)
    tags: list[str] = Field(default_factory=list)
    category: str = "N/A"

    @property
    def view_count(self) -> int:
        return to_int(self.stats.views)

    @property
    def engagement(self) -> int:
        return to_int(self.stats.views) + to_int(self.stats.likes) + to_int(self.stats.comments)


class ChannelInfo(CamelModel):
    id: str
    title: str = ""
    description: str = ""
    custom_url: str | None = None
    thumbnails: dict[str, Any] = Field(default_factory=dict)
    statistics: dict[str, Any] = Field(default_factory=dict)

    @property
    def subscriber_count(self) -> str:
        return str(self.statistics.get("subscriberCount") or "0")


class ChannelProfile(CamelModel):
    channel_info: ChannelInfo
    videos: list[TrendingItem] = Field(default_factory=list)


class ChannelSearchResult(CamelModel):
    channel_id: str
    title: str = ""
    description: str = ""
    thumbnails: dict[str, Any] = Field(default_factory=dict)


class TrendSummary(CamelModel):
    themes: list[str]
    content_types: list[str]
    video_formats: list[str]
    trending_topics: list[str]
    engagement_insights: list[str]
    top_categories: list[str]
    title_patterns: list[str]
    popular_tags: list[str]

    @classmethod
    def placeholder(cls) -> "TrendSummary":
        return cls(
            themes=["Unable to analyze themes"],
            content_types=["Unable to analyze content types"],
            video_formats=["Unable to analyze formats"],
            trending_topics=["Unable to analyze topics"],
            engagement_insights=["Unable to analyze engagement"],
            top_categories=["Unable to analyze categories"],
            title_patterns=["Unable to analyze patterns"],
            popular_tags=["Unable to analyze tags"],
        )


class IdeaRequest(CamelModel):
    niche: str = Field(min_length=1)
    platform: Platform
    content_type: ContentType
    virality_factor: int = Field(default=50, ge=0, le=100)
    keywords: str | None = None
    region: str = "US"
    reference_channels: list[str] = Field(default_factory=list)
    feedback: str | None = None
    previous_idea: str | None = None


def default_hooks() -> list[str]:
    return ["Hook 1", "Hook 2", "Hook 3"]


class VideoFormat(CamelModel):
    type: str = "Short form"
    length: str = "60 seconds"
    hooks: list[str] = Field(default_factory=default_hooks)


class TrendAnalysis(CamelModel):
    relevant_themes: list[str] = Field(default_factory=list)
    related_content: list[str] = Field(default_factory=list)
    suggested_tags: list[str] = Field(default_factory=list)


class VideoIdea(CamelModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    concept: str = ""
    hashtags: list[str] = Field(default_factory=list)
    virality_score: int = Field(default=0, ge=0, le=100)
    virality_justification: str = ""
    monetization_strategy: str = ""
    video_format: VideoFormat = Field(default_factory=VideoFormat)
    platform: str = ""
    content_type: str = ""
    created_at: str = ""
    trend_analysis: TrendAnalysis = Field(default_factory=TrendAnalysis)
    region: str = "US"
    channel_inspirations: str | None = None
    user_id: str | None = None
    is_saved: bool | None = None
