"""Opportunity classification by weighted pattern matching.

Each category has characteristic URL-path substrings (strong signal, +2
each) and body-text phrases (weak signal, +1 each), plus a few
category-specific structural heuristics. The same tables drive the
discovery pre-score and the ranking of links worth following.
"""

from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

from linkdrip.services.page_extractor import ExtractedPage, Link

DEFAULT_CATEGORY = "blog"

URL_PATTERN_WEIGHT = 2
PHRASE_WEIGHT = 1

# Category -> (URL path substrings, body-text phrases)
CATEGORY_PATTERNS: dict[str, tuple[list[str], list[str]]] = {
    "resource_page": (
        ["resources", "links", "useful-links", "helpful-resources", "recommended", "tools"],
        ["resources", "useful links", "helpful resources", "recommended tools", "recommended sites"],
    ),
    "guest_post": (
        ["write-for-us", "guest-post", "contribute", "contributors", "submit-article",
         "submission-guidelines"],
        ["guest post", "write for us", "submit article", "submission guidelines",
         "become a contributor", "guest author"],
    ),
    "directory": (
        ["directory", "listings", "businesses", "sites", "catalog"],
        ["business directory", "submit your site", "add your listing", "add listing",
         "browse categories"],
    ),
    "forum": (
        ["forum", "community", "discussions", "board"],
        ["forum", "new thread", "replies", "join the community", "start a discussion"],
    ),
    "blog": (
        ["blog", "article", "news", "posts", "stories"],
        ["posted on", "read more", "latest posts", "recent posts"],
    ),
    "competitor_backlink": (
        ["backlinks", "referrals", "referring-domains"],
        ["backlinks", "referring domains", "link profile", "backlink checker"],
    ),
    "social_mention": (
        ["mentions", "social", "share", "shares"],
        ["mentioned by", "share this", "follow us", "social media"],
    ),
    "comment_section": (
        ["comments", "responses", "discussion", "feedback"],
        ["leave a comment", "leave a reply", "post comment", "add a comment"],
    ),
}

OPPORTUNITY_CATEGORIES = tuple(CATEGORY_PATTERNS)

# Headings that mark a page as open to contributed content
CONTRIBUTOR_HEADING_TERMS = [
    "write for us", "guest post", "contribute", "contributor", "submission", "submit",
]

# Categories that earn the pre-score category bonus
HIGH_VALUE_CATEGORIES = ("resource_page", "guest_post", "directory")

# Anchor text that suggests a link leads to an opportunity
PROMISING_ANCHOR_TERMS = [
    "resources", "write for us", "contribute", "guest", "directory", "links", "submit",
]

PAGING_QUERY_PARAMS = {"page", "paged", "p", "sort", "order", "orderby", "filter"}


@dataclass
class Classification:
    """Winning category plus the full weight breakdown."""
    category: str
    weights: dict[str, int] = field(default_factory=dict)
    ambiguous: bool = False  # No category scored above zero
    tied: bool = False  # Several categories shared the top weight

    @property
    def weight(self) -> int:
        return self.weights.get(self.category, 0)


class PageClassifier:
    """Classify pages into opportunity categories and rank follow links."""

    def classify(self, url: str, page: ExtractedPage) -> Classification:
        """Classify a page. Deterministic for a given URL and page."""
        path = urlparse(url).path.lower()
        text = page.text.lower()
        headings = " ".join(page.headings).lower()

        weights: dict[str, int] = {}
        for category, (url_patterns, phrases) in CATEGORY_PATTERNS.items():
            weight = 0
            weight += URL_PATTERN_WEIGHT * sum(1 for p in url_patterns if p in path)
            weight += PHRASE_WEIGHT * sum(1 for p in phrases if p in text)
            weights[category] = weight

        # Structural heuristics
        if page.external_link_count > 20:
            weights["resource_page"] += 2
        elif page.external_link_count > 10:
            weights["resource_page"] += 1
        if any(term in headings for term in CONTRIBUTOR_HEADING_TERMS):
            weights["guest_post"] += 2
        if len(page.links) >= 30:
            weights["directory"] += 1
        if page.has_forum_markup:
            weights["forum"] += 1
        if page.has_comment_section:
            weights["comment_section"] += 2

        top = max(weights.values())
        if top <= 0:
            return Classification(category=DEFAULT_CATEGORY, weights=weights, ambiguous=True)

        leaders = [c for c, w in weights.items() if w == top]
        if len(leaders) > 1:
            return Classification(category=DEFAULT_CATEGORY, weights=weights, tied=True)

        return Classification(category=leaders[0], weights=weights)

    def calculate_prescore(self, page: ExtractedPage, category: str) -> int:
        """Coarse 0-10 discovery-time score."""
        score = 0

        if page.title:
            score += 1
            if 10 <= len(page.title) <= 70:
                score += 1

        if page.description:
            score += 1
            if len(page.description) >= 50:
                score += 1

        if page.emails:
            score += 2
        if page.has_contact_form:
            score += 1

        if category in HIGH_VALUE_CATEGORIES:
            score += 1

        if page.word_count >= 300:
            score += 1
        if page.word_count >= 1000:
            score += 1

        return min(score, 10)

    def score_link(self, link: Link) -> int:
        """Score how promising a same-host link is to follow."""
        parsed = urlparse(link.url)
        path = parsed.path.lower()
        anchor = link.text.lower()
        score = 0

        for url_patterns, _ in CATEGORY_PATTERNS.values():
            score += 3 * sum(1 for p in url_patterns if p in path)

        if any(term in anchor for term in PROMISING_ANCHOR_TERMS):
            score += 2

        segments = [s for s in path.split("/") if s]
        if len(segments) > 3:
            score -= len(segments) - 3

        query_keys = {k.lower() for k in parse_qs(parsed.query, keep_blank_values=True)}
        if query_keys & PAGING_QUERY_PARAMS:
            score -= 3

        return score


# Singleton instance
_classifier: PageClassifier | None = None


def get_classifier() -> PageClassifier:
    """Get the page classifier singleton."""
    global _classifier
    if _classifier is None:
        _classifier = PageClassifier()
    return _classifier
