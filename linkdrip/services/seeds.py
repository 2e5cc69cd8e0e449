"""Seed URLs per opportunity category and the hourly rotation over them."""

import random
from dataclasses import dataclass
from datetime import datetime

SEED_URLS: dict[str, list[str]] = {
    "resource_page": [
        "https://ahrefs.com/blog/seo-resources/",
        "https://moz.com/learn/seo",
        "https://backlinko.com/seo-tools",
        "https://www.semrush.com/blog/resources/",
        "https://neilpatel.com/blog/seo-tools/",
        "https://www.searchenginejournal.com/category/seo/tools-seo/",
        "https://www.hubspot.com/resources",
        "https://www.wordstream.com/blog/resources",
        "https://buffer.com/resources/",
    ],
    "directory": [
        "https://botw.org/",
        "https://directorysearch.com/",
        "https://www.jasminedirectory.com/",
        "https://www.business.com/directory/",
        "https://www.jayde.com/",
        "https://www.chamberofcommerce.com/business-directory",
        "https://www.hotfrog.com/",
        "https://www.g2.com/categories/",
    ],
    "guest_post": [
        "https://www.searchenginejournal.com/contribute/",
        "https://www.convinceandconvert.com/write-for-us/",
        "https://www.entrepreneur.com/getpublished",
        "https://www.semrush.com/blog/contribute/",
        "https://contentmarketinginstitute.com/blog/contributor-guidelines/",
        "https://www.jeffbullas.com/submit-a-guest-post/",
        "https://www.business2community.com/become-a-contributor",
        "https://sproutsocial.com/insights/write-for-us/",
    ],
    "forum": [
        "https://forums.digitalpoint.com/",
        "https://www.webmasterworld.com/",
        "https://indiehackers.com/groups/marketing",
        "https://www.warriorforum.com/",
        "https://community.semrush.com/",
    ],
    "blog": [
        "https://moz.com/blog",
        "https://ahrefs.com/blog",
        "https://www.semrush.com/blog/",
        "https://searchengineland.com/",
        "https://backlinko.com/blog",
        "https://www.seroundtable.com/",
    ],
    "competitor_backlink": [
        "https://majestic.com/",
        "https://www.linkody.com/",
        "https://www.buzzstream.com/",
        "https://www.linkresearchtools.com/",
    ],
    "social_mention": [
        "https://medium.com/tag/seo",
        "https://www.reddit.com/r/SEO/",
    ],
    "comment_section": [
        "https://moz.com/blog/",
        "https://backlinko.com/blog",
        "https://searchengineland.com/",
        "https://searchenginewatch.com/",
        "https://www.gsqi.com/marketing-blog/",
    ],
}

# Start hour of each 6-hour bucket -> categories emphasised during it
HOUR_BUCKETS: list[tuple[int, list[str]]] = [
    (0, ["resource_page", "directory"]),
    (6, ["guest_post", "blog"]),
    (12, ["forum", "comment_section", "resource_page"]),
    (18, ["directory", "guest_post", "competitor_backlink"]),
]

DEEP_CRAWL_CATEGORIES = ("resource_page", "guest_post")


@dataclass(frozen=True)
class SeedPlan:
    category: str
    seed_urls: list[str]
    max_depth: int
    trigger_reason: str


def categories_for_hour(hour: int) -> list[str]:
    categories = HOUR_BUCKETS[0][1]
    for start, bucket in HOUR_BUCKETS:
        if hour >= start:
            categories = bucket
    return categories


class SeedRotation:
    """Chooses which seeds to crawl on a given pipeline run."""

    def __init__(
        self,
        seeds_per_category: int = 3,
        default_max_depth: int = 1,
        deep_crawl_probability: float = 0.1,
        deep_crawl_max_depth: int = 2,
        seed_urls: dict[str, list[str]] | None = None,
    ):
        self.seeds_per_category = seeds_per_category
        self.default_max_depth = default_max_depth
        self.deep_crawl_probability = deep_crawl_probability
        self.deep_crawl_max_depth = deep_crawl_max_depth
        self.seed_urls = seed_urls or SEED_URLS

    def _sample(self, category: str, rng: random.Random) -> list[str]:
        urls = self.seed_urls.get(category, [])
        return rng.sample(urls, min(self.seeds_per_category, len(urls)))

    def select(self, now: datetime, rng: random.Random) -> list[SeedPlan]:
        plans = []
        for category in categories_for_hour(now.hour):
            seeds = self._sample(category, rng)
            if seeds:
                plans.append(SeedPlan(category, seeds, self.default_max_depth, "scheduled"))

        if rng.random() < self.deep_crawl_probability:
            category = rng.choice(DEEP_CRAWL_CATEGORIES)
            seeds = self._sample(category, rng)
            if seeds:
                plans.append(SeedPlan(category, seeds, self.deep_crawl_max_depth, "deep_crawl"))

        return plans
