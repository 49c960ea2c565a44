from typing import Any

from ..models import VideoIdea

PLATFORM_NAMES = {
    "tiktok": "TikTok",
    "youtube": "YouTube",
    "instagram": "Instagram Reels",
    "youtube-shorts": "YouTube Shorts",
}


def platform_display_name(platform: str) -> str:
    return PLATFORM_NAMES.get(platform, platform)


def _group(ideas: list[VideoIdea], key, label) -> list[dict[str, Any]]:
    groups: dict[str, dict[str, Any]] = {}
    for idea in ideas:
        value = key(idea)
        entry = groups.setdefault(value, {"key": value, "name": label(value), "count": 0, "totalViralityScore": 0})
        entry["count"] += 1
        entry["totalViralityScore"] += idea.virality_score
    for entry in groups.values():
        entry["avgViralityScore"] = entry["totalViralityScore"] / entry["count"]
    return list(groups.values())


def summarize_ideas(ideas: list[VideoIdea]) -> dict[str, Any]:
    if not ideas:
        return {
            "totalIdeas": 0,
            "avgViralityScore": 0.0,
            "platforms": [],
            "contentTypes": [],
            "mostPopularPlatform": None,
            "highestPerformingContentType": None,
            "topIdea": None,
        }

    platforms = _group(ideas, lambda idea: idea.platform, platform_display_name)
    content_types = _group(
        ideas,
        lambda idea: idea.content_type,
        lambda value: value[:1].upper() + value[1:],
    )
    top_idea = max(ideas, key=lambda idea: idea.virality_score)
    return {
        "totalIdeas": len(ideas),
        "avgViralityScore": sum(idea.virality_score for idea in ideas) / len(ideas),
        "platforms": platforms,
        "contentTypes": content_types,
        "mostPopularPlatform": max(platforms, key=lambda entry: entry["count"]),
        "highestPerformingContentType": max(content_types, key=lambda entry: entry["avgViralityScore"]),
        "topIdea": top_idea.to_wire(),
    }
