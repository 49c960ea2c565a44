import re
from collections import Counter
from typing import Any

from ..models import TrendingItem

CATEGORY_NAMES = {
    "1": "Film & Animation",
    "2": "Autos & Vehicles",
    "10": "Music",
    "15": "Pets & Animals",
    "17": "Sports",
    "19": "Travel & Events",
    "20": "Gaming",
    "22": "People & Blogs",
    "23": "Comedy",
    "24": "Entertainment",
    "25": "News & Politics",
    "26": "Howto & Style",
    "27": "Education",
    "28": "Science & Technology",
    "29": "Nonprofit & Activism",
}

TOPIC_STOP_WORDS = frozenset(
    {
        "the", "this", "and", "for", "with", "that", "you", "can", "how", "to", "its",
        "what", "why", "who", "when", "where", "does", "is", "of", "on", "in",
    }
)

_TAG_RE = re.compile(r"^[a-zA-Z0-9 ]+$")
_WORD_RE = re.compile(r"^[a-zA-Z0-9]+$")


def category_name(category_id: str) -> str:
    return CATEGORY_NAMES.get(category_id, f"Category {category_id}")


def _ranked(counts: Counter, limit: int, high_above: int, label=lambda key: key) -> list[dict[str, Any]]:
    return [
        {"name": label(key), "count": count, "growth": "high" if count > high_above else "medium"}
        for key, count in counts.most_common(limit)
    ]


def title_topics(title: str) -> list[str]:
    words = [
        word
        for word in (title or "").lower().split()
        if len(word) > 3 and word not in TOPIC_STOP_WORDS and _WORD_RE.match(word)
    ]
    pairs = [f"{first} {second}" for first, second in zip(words, words[1:])]
    return words + pairs


def build_trend_insights(items: list[TrendingItem], region: str, regions_included: list[str], timestamp: str) -> dict[str, Any]:
    categories = Counter(item.category for item in items)
    tags = Counter(
        tag.lower()
        for item in items
        for tag in item.tags
        if len(tag) >= 3 and _TAG_RE.match(tag)
    )
    topics = Counter(topic for item in items for topic in title_topics(item.title))

    return {
        "categories": _ranked(categories, 5, 5, label=category_name),
        "tags": _ranked(tags, 10, 3),
        "topics": _ranked(topics, 10, 3),
        "timestamp": timestamp,
        "isGlobal": region == "GLOBAL",
        "regionsIncluded": regions_included,
    }
