"""Website profiler: keyword and topic fingerprint of a subscriber's site."""

import logging
import re
from collections import Counter
from datetime import datetime, timedelta

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkdrip.config import Settings
from linkdrip.database import as_utc, utcnow
from linkdrip.exceptions import TransientFetchError
from linkdrip.models import DiscoveredOpportunity, WebsiteProfile
from linkdrip.services.page_extractor import PageExtractor
from linkdrip.services.url_validator import ensure_scheme

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[a-z0-9]+(?:['\-][a-z0-9]+)*")
MIN_KEYWORD_LENGTH = 4

STOP_WORDS = frozenset({
    "about", "after", "again", "also", "been", "before", "being", "both", "could",
    "does", "doing", "down", "each", "even", "every", "from", "have", "having",
    "here", "into", "just", "like", "more", "most", "much", "must", "only", "other",
    "over", "same", "should", "some", "such", "than", "that", "their", "them",
    "then", "there", "these", "they", "this", "those", "through", "under", "until",
    "very", "what", "when", "where", "which", "while", "will", "with", "would",
    "your", "yours", "ours", "http", "https", "www",
})


def extract_keywords(text: str, limit: int) -> list[str]:
    """Most frequent content words, ties broken by first occurrence."""
    tokens = [
        token for token in TOKEN_PATTERN.findall(text.lower())
        if len(token) >= MIN_KEYWORD_LENGTH and token not in STOP_WORDS and not token.isdigit()
    ]
    return [word for word, _ in Counter(tokens).most_common(limit)]


def extract_topics(headings: list[str], limit: int) -> list[str]:
    """Heading texts, de-duplicated case-insensitively, in document order."""
    seen: set[str] = set()
    topics = []
    for heading in headings:
        key = heading.lower()
        if key in seen:
            continue
        seen.add(key)
        topics.append(heading)
        if len(topics) >= limit:
            break
    return topics


def matched_keywords(profile: WebsiteProfile, opportunity: DiscoveredOpportunity) -> list[str]:
    """Profile keywords that appear anywhere in the opportunity's text."""
    text = opportunity.text_blob()
    return [kw for kw in profile.keywords or [] if kw.lower() in text]


def matched_topics(profile: WebsiteProfile, opportunity: DiscoveredOpportunity) -> list[str]:
    """Profile topics (homepage headings) that appear in the opportunity's text."""
    text = opportunity.text_blob()
    return [topic for topic in profile.topics or [] if topic.lower() in text]


def calculate_relevance(profile: WebsiteProfile, opportunity: DiscoveredOpportunity) -> int:
    """Share of profile keywords found in the opportunity, scaled to 0-100."""
    keywords = profile.keywords or []
    if not keywords:
        return 0
    matched = len(matched_keywords(profile, opportunity))
    return min(100, round(matched / len(keywords) * 100))


class WebsiteProfiler:
    """Fetches a website's homepage and stores its profile."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        client: httpx.Client | None = None,
    ):
        self.session = session
        self.settings = settings
        self.keyword_limit = settings.profile_keyword_limit
        self.topic_limit = settings.profile_topic_limit
        self.max_age = timedelta(hours=settings.profile_max_age_hours)
        self.extractor = PageExtractor()
        self._client = client
        self._owns_client = client is None

    def __enter__(self) -> "WebsiteProfiler":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.settings.crawl_timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self.settings.user_agents[0]},
            )
        return self._client

    def needs_refresh(self, profile: WebsiteProfile | None, now: datetime | None = None) -> bool:
        if profile is None or profile.last_analyzed_at is None:
            return True
        return as_utc(profile.last_analyzed_at) < (now or utcnow()) - self.max_age

    def analyze_website(self, website_id: str, url: str) -> WebsiteProfile:
        """Fetch and profile a website, replacing any previous profile.

        Raises:
            TransientFetchError: The homepage could not be fetched.
        """
        url = ensure_scheme(url)
        html_content, final_url = self._fetch(url)
        page = self.extractor.extract(html_content, final_url)

        keywords = extract_keywords(page.text, self.keyword_limit)
        topics = extract_topics(page.headings, self.topic_limit)

        profile = self._upsert_profile(
            website_id,
            keywords=keywords,
            topics=topics,
            page_title=page.title,
            meta_description=page.description,
            word_count=page.word_count,
            last_analyzed_at=utcnow(),
        )
        logger.info(
            f"Profiled website {website_id} ({url}): {len(keywords)} keywords, "
            f"{len(topics)} topics, {page.word_count} words"
        )
        return profile

    def _fetch(self, url: str) -> tuple[str, str]:
        try:
            response = self._get_client().get(url)
        except httpx.TimeoutException as e:
            raise TransientFetchError(url, f"Timeout fetching {url}", kind="timeout") from e
        except httpx.HTTPError as e:
            raise TransientFetchError(url, f"Error fetching {url}: {e}") from e

        if not response.is_success:
            raise TransientFetchError(
                url,
                f"HTTP {response.status_code} fetching {url}",
                status_code=response.status_code,
                kind="status",
            )
        return response.text, str(response.url)

    def _upsert_profile(self, website_id: str, **fields) -> WebsiteProfile:
        profile = self.session.scalars(
            select(WebsiteProfile).where(WebsiteProfile.website_id == website_id)
        ).first()

        if profile is None:
            profile = WebsiteProfile(website_id=website_id, **fields)
            try:
                with self.session.begin_nested():
                    self.session.add(profile)
            except IntegrityError:
                profile = self.session.scalars(
                    select(WebsiteProfile).where(WebsiteProfile.website_id == website_id)
                ).one()

        for name, value in fields.items():
            setattr(profile, name, value)
        self.session.commit()
        return profile
