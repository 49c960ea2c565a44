import logging
from collections import Counter
from typing import Callable

from pydantic import ValidationError

from ..models import TrendingItem, TrendSummary
from .llm_client import parse_json_object
from .ttl_cache import TTLCache

logger = logging.getLogger(__name__)

SUMMARY_CACHE_KEY = "trend-summary"
TOP_ENGAGING = 20
TOP_CATEGORY_COUNT = 5
TOP_TAG_COUNT = 10

SUMMARY_FIELDS = (
    "themes",
    "contentTypes",
    "videoFormats",
    "trendingTopics",
    "engagementInsights",
    "topCategories",
    "titlePatterns",
    "popularTags",
)


def rank_by_engagement(items: list[TrendingItem]) -> list[TrendingItem]:
    return sorted(items, key=lambda item: item.engagement, reverse=True)


def top_categories(items: list[TrendingItem], limit: int = TOP_CATEGORY_COUNT) -> list[str]:
    counts = Counter(item.category for item in items)
    return [category for category, _ in counts.most_common(limit)]


def top_tags(items: list[TrendingItem], limit: int = TOP_TAG_COUNT) -> list[str]:
    counts = Counter(tag for item in items for tag in item.tags)
    return [tag for tag, _ in counts.most_common(limit)]


def _describe_item(index: int, item: TrendingItem) -> str:
    return (
        f'{index}. "{item.title}"\n'
        f"Author: {item.author} ({item.author_stats.subscribers} subscribers)\n"
        f"Stats: {item.stats.views} views, {item.stats.likes} likes, {item.stats.comments} comments\n"
        f"Category: {item.category}\n"
        f"Tags: {', '.join(item.tags)}\n"
        f"Published: {item.published_text}"
    )


def build_summary_prompt(items: list[TrendingItem]) -> str:
    top = rank_by_engagement(items)[:TOP_ENGAGING]
    described = "\n\n".join(_describe_item(index, item) for index, item in enumerate(top, start=1))
    example = ",\n".join(f'  "{field}": ["{field}1", "{field}2"]' for field in SUMMARY_FIELDS)
    return f"""Analyze these {len(items)} trending YouTube videos. I'm providing detailed data for the top {len(top)} most engaging videos:

Top Performing Videos:
{described}

Additional Context:
- Total videos analyzed: {len(items)}
- Most common categories: {', '.join(top_categories(items))}
- Most used tags: {', '.join(top_tags(items))}

Please provide a comprehensive analysis including:
1. Common themes and patterns
2. Popular content types
3. Successful video formats
4. Trending topics
5. Engagement patterns
6. Top performing categories
7. Most effective video titles
8. Popular hashtags/tags

Respond with ONLY a JSON object in this exact format (no markdown, no code blocks):
{{
{example}
}}"""


def parse_trend_summary(text: str) -> TrendSummary:
    """Raises ValueError or ValidationError unless every one of the eight fields is present."""
    payload = parse_json_object(text)
    missing = [field for field in SUMMARY_FIELDS if payload.get(field) is None]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")
    return TrendSummary.model_validate(payload)


class TrendSummarizer:
    def __init__(self, complete: Callable[[str], str], cache: TTLCache):
        self._complete = complete
        self.cache = cache

    def summarize(self, items: list[TrendingItem]) -> TrendSummary:
        cached = self.cache.get(SUMMARY_CACHE_KEY)
        if cached is not None:
            return cached

        prompt = build_summary_prompt(items)
        try:
            text = self._complete(prompt)
        except Exception as exc:
            logger.error("Trend analysis call failed: %s", exc)
            return TrendSummary.placeholder()

        try:
            summary = parse_trend_summary(text)
        except (ValueError, ValidationError) as exc:
            logger.error("Failed to parse trend analysis: %s", exc)
            logger.debug("Raw trend analysis response: %s", text)
            return TrendSummary.placeholder()

        self.cache.set(SUMMARY_CACHE_KEY, summary)
        return summary
