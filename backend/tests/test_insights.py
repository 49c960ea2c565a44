from backend.app.models import TrendingItem, VideoIdea
from backend.app.services.idea_analytics import platform_display_name, summarize_ideas
from backend.app.services.trend_insights import build_trend_insights, category_name, title_topics


def make_item(video_id, title, category="20", tags=()):
    return TrendingItem(video_id=video_id, title=title, category=category, tags=list(tags))


def make_idea(idea_id, platform, content_type, score):
    return VideoIdea(id=idea_id, title=f"Idea {idea_id}", platform=platform, content_type=content_type, virality_score=score)


def test_category_name_falls_back_to_id():
    assert category_name("20") == "Gaming"
    assert category_name("99") == "Category 99"


def test_title_topics_include_adjacent_pairs():
    assert title_topics("The Ultimate Minecraft Speedrun!") == ["ultimate", "minecraft", "ultimate minecraft"]


def test_trend_insights_counts_and_growth():
    items = [
        make_item(f"g{i}", "Minecraft speedrun record", category="20", tags=["minecraft", "Speed Run", "#bad"])
        for i in range(6)
    ]
    items.append(make_item("m1", "Concert highlights", category="10", tags=["music"]))

    insights = build_trend_insights(items, "GLOBAL", ["US", "GB"], "2024-06-15T12:00:00Z")

    assert insights["categories"][0] == {"name": "Gaming", "count": 6, "growth": "high"}
    assert insights["categories"][1] == {"name": "Music", "count": 1, "growth": "medium"}
    tag_names = [tag["name"] for tag in insights["tags"]]
    assert tag_names[:2] == ["minecraft", "speed run"]
    assert "#bad" not in tag_names
    assert insights["topics"][0]["growth"] == "high"
    assert insights["isGlobal"] is True
    assert insights["regionsIncluded"] == ["US", "GB"]


def test_summarize_ideas_empty():
    stats = summarize_ideas([])
    assert stats["totalIdeas"] == 0
    assert stats["topIdea"] is None
    assert stats["mostPopularPlatform"] is None


def test_summarize_ideas_groups_by_platform_and_content_type():
    ideas = [
        make_idea("a", "tiktok", "vlog", 40),
        make_idea("b", "tiktok", "tutorial", 90),
        make_idea("c", "instagram", "vlog", 60),
    ]
    stats = summarize_ideas(ideas)

    assert stats["totalIdeas"] == 3
    assert stats["avgViralityScore"] == 190 / 3
    assert stats["mostPopularPlatform"]["name"] == "TikTok"
    assert stats["mostPopularPlatform"]["count"] == 2
    assert stats["highestPerformingContentType"]["name"] == "Tutorial"
    assert stats["topIdea"]["id"] == "b"
    assert platform_display_name("instagram") == "Instagram Reels"
    assert platform_display_name("other") == "other"
