import logging
import math
import re
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable

from ..models import TrendingItem
from .ttl_cache import TTLCache
from .youtube_client import GLOBAL_REGION, GLOBAL_REGIONS, normalize_region, sort_by_views

logger = logging.getLogger(__name__)

TOP_LIMIT = 10
AUTHOR_CAP = 2
TITLE_OVERLAP_RATIO = 0.4
TITLE_OVERLAP_MAX_WORDS = 3
SIGNIFICANT_WORD_MIN_LEN = 4

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


class TrendingUnavailableError(Exception):
    pass


def normalize_title(title: str) -> str:
    return _PUNCTUATION_RE.sub("", (title or "").lower())


def significant_words(normalized_title: str) -> list[str]:
    return [word for word in normalized_title.split() if len(word) >= SIGNIFICANT_WORD_MIN_LEN]


def is_title_similar(normalized_title: str, seen_titles: Iterable[str]) -> bool:
    """
    A title is similar when enough of its significant words already appear in
    an admitted title: at least 40% of them, never more than 3.
    """
    words = significant_words(normalized_title)
    if not words:
        return False
    threshold = min(TITLE_OVERLAP_MAX_WORDS, math.ceil(len(words) * TITLE_OVERLAP_RATIO))
    for existing in seen_titles:
        existing_words = set(existing.split())
        matches = sum(1 for word in words if word in existing_words)
        if matches >= threshold:
            return True
    return False


def dedupe_by_video_id(items: Iterable[TrendingItem]) -> list[TrendingItem]:
    """Keep one instance per video id (the higher view count wins), ranked by views."""
    unique: dict[str, TrendingItem] = {}
    for item in items:
        existing = unique.get(item.video_id)
        if existing is None or item.view_count > existing.view_count:
            unique[item.video_id] = item
    return sort_by_views(list(unique.values()))


def diversify(
    ranked: list[TrendingItem],
    limit: int = TOP_LIMIT,
    author_cap: int = AUTHOR_CAP,
    check_titles: bool = True,
) -> list[TrendingItem]:
    selected: list[TrendingItem] = []
    author_counts: Counter[str] = Counter()
    seen_titles: list[str] = []

    for item in ranked:
        if len(selected) >= limit:
            break
        if author_counts[item.author] >= author_cap:
            continue
        normalized = normalize_title(item.title)
        if check_titles and is_title_similar(normalized, seen_titles):
            continue
        selected.append(item)
        author_counts[item.author] += 1
        seen_titles.append(normalized)

    return backfill(selected, ranked, limit, author_cap)


def backfill(
    selected: list[TrendingItem],
    ranked: list[TrendingItem],
    limit: int = TOP_LIMIT,
    author_cap: int = AUTHOR_CAP,
) -> list[TrendingItem]:
    """Top up with the next highest-ranked unused items; the author cap still applies."""
    if len(selected) >= limit:
        return selected[:limit]
    filled = list(selected)
    included = {item.video_id for item in filled}
    author_counts = Counter(item.author for item in filled)
    for item in ranked:
        if len(filled) >= limit:
            break
        if item.video_id in included or author_counts[item.author] >= author_cap:
            continue
        filled.append(item)
        included.add(item.video_id)
        author_counts[item.author] += 1
    return filled


class TrendingAggregator:
    """Region selector (single code or GLOBAL) to a bounded, de-duplicated, diversified list."""

    def __init__(
        self,
        fetch_region: Callable[[str], list[TrendingItem]],
        cache: TTLCache,
        global_regions: tuple[str, ...] = GLOBAL_REGIONS,
        limit: int = TOP_LIMIT,
    ):
        self._fetch_region = fetch_region
        self.cache = cache
        self.global_regions = global_regions
        self.limit = limit

    def fetch_region(self, region: str) -> list[TrendingItem]:
        region = normalize_region(region)
        cache_key = f"region:{region}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        items = sort_by_views(self._fetch_region(region))
        self.cache.set(cache_key, items)
        return items

    def fetch_global(self) -> tuple[list[TrendingItem], list[str]]:
        """Merged and de-duplicated items from every region that answered, plus those regions."""
        collected: list[TrendingItem] = []
        succeeded: list[str] = []
        with ThreadPoolExecutor(max_workers=len(self.global_regions)) as executor:
            future_to_region = {
                executor.submit(self.fetch_region, region): region
                for region in self.global_regions
            }
            for future in as_completed(future_to_region):
                region = future_to_region[future]
                try:
                    collected.extend(future.result())
                    succeeded.append(region)
                except Exception as exc:
                    logger.warning("Error fetching trending data for region %s: %s", region, exc)

        logger.info(
            "Fetched a total of %d videos from %d/%d regions",
            len(collected),
            len(succeeded),
            len(self.global_regions),
        )
        if not succeeded:
            raise TrendingUnavailableError("Failed to fetch global trending data")
        ordered = [region for region in self.global_regions if region in succeeded]
        return dedupe_by_video_id(collected), ordered

    def get_trending(self, region: str) -> list[TrendingItem]:
        selector = normalize_region(region)
        cache_key = f"top:{selector}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        if selector == GLOBAL_REGION:
            ranked, _ = self.fetch_global()
            top = diversify(ranked, limit=self.limit, check_titles=True)
        else:
            ranked = self.fetch_region(selector)
            top = diversify(ranked, limit=self.limit, check_titles=False)

        self.cache.set(cache_key, top)
        return top
