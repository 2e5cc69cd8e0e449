"""
Tests for website profiling and keyword relevance.
"""

from datetime import timedelta

import httpx
import pytest
from conftest import MockSite, make_user, make_website
from sqlalchemy import func, select

from linkdrip.database import utcnow
from linkdrip.exceptions import TransientFetchError
from linkdrip.models import DiscoveredOpportunity, WebsiteProfile
from linkdrip.services.website_profiler import (
    WebsiteProfiler,
    calculate_relevance,
    extract_keywords,
    extract_topics,
    matched_keywords,
)

GARDEN_HOME_HTML = """
<html>
<head>
  <title>Garden Hub - Organic Gardening Supplies</title>
  <meta name="description" content="Organic seeds, compost and tools.">
</head>
<body>
  <nav>Shop Cart Account</nav>
  <h1>Organic gardening made simple</h1>
  <h2>Compost guides</h2>
  <h2>compost guides</h2>
  <h3>Seed starting</h3>
  <p>Organic gardening starts with healthy compost. Our compost guides cover
     gardening basics, organic seeds and raised beds for every gardener.</p>
</body>
</html>
"""


def _opportunity(title: str, description: str | None = None) -> DiscoveredOpportunity:
    return DiscoveredOpportunity(
        url="https://blog.example.net/post",
        domain="blog.example.net",
        source_type="blog",
        title=title,
        description=description,
        categories=[],
    )


# =============================================================================
# Text helpers
# =============================================================================

class TestExtractKeywords:

    def test_ranked_by_frequency(self):
        text = "Organic gardening tips. Organic compost and gardening tools for organic growers"
        assert extract_keywords(text, 3) == ["organic", "gardening", "tips"]

    def test_stop_words_short_words_and_numbers_are_dropped(self):
        keywords = extract_keywords("This is what they would do with 2024 seeds and the soil", 10)
        assert keywords == ["seeds", "soil"]

    def test_limit(self):
        text = " ".join(f"keyword{i}" for i in range(50))
        assert len(extract_keywords(text, 30)) == 30


class TestExtractTopics:

    def test_deduplicated_in_order(self):
        assert extract_topics(["Compost", "Seeds", "compost", "Tools"], 10) == ["Compost", "Seeds", "Tools"]

    def test_limit(self):
        assert extract_topics([f"Topic {i}" for i in range(20)], 15) == [f"Topic {i}" for i in range(15)]


class TestRelevance:

    def test_two_of_three_keywords(self):
        profile = WebsiteProfile(keywords=["organic", "gardening", "compost"])
        opportunity = _opportunity("Organic Gardening Resources")

        assert matched_keywords(profile, opportunity) == ["organic", "gardening"]
        assert calculate_relevance(profile, opportunity) == 67

    def test_all_keywords(self):
        profile = WebsiteProfile(keywords=["organic", "compost"])
        opportunity = _opportunity("Organic living", "Compost tips")
        assert calculate_relevance(profile, opportunity) == 100

    def test_empty_profile_scores_zero(self):
        assert calculate_relevance(WebsiteProfile(keywords=[]), _opportunity("Organic")) == 0


# =============================================================================
# Profiling
# =============================================================================

class TestWebsiteProfiler:

    @pytest.fixture
    def site(self) -> MockSite:
        return MockSite({"https://gardenhub.org": GARDEN_HOME_HTML})

    @pytest.fixture
    def website(self, db_session):
        return make_website(db_session, make_user(db_session))

    def test_profile_is_built(self, db_session, settings, site, website):
        profiler = WebsiteProfiler(db_session, settings, client=site.client())

        profile = profiler.analyze_website(website.id, "gardenhub.org")

        assert profile.keywords[:3] == ["compost", "organic", "gardening"]
        assert "shop" not in profile.keywords
        assert profile.topics == ["Organic gardening made simple", "Compost guides", "Seed starting"]
        assert profile.page_title == "Garden Hub - Organic Gardening Supplies"
        assert profile.meta_description == "Organic seeds, compost and tools."
        assert profile.word_count > 0
        assert site.requested == ["https://gardenhub.org"]

    def test_reanalysis_replaces_the_profile(self, db_session, settings, site, website):
        profiler = WebsiteProfiler(db_session, settings, client=site.client())
        first = profiler.analyze_website(website.id, website.url)

        site.add("https://gardenhub.org", "<html><body><p>Beekeeping honey beekeeping</p></body></html>")
        second = profiler.analyze_website(website.id, website.url)

        assert second.id == first.id
        assert second.keywords == ["beekeeping", "honey"]
        assert db_session.scalar(select(func.count()).select_from(WebsiteProfile)) == 1

    def test_fetch_failure_raises(self, db_session, settings, website):
        site = MockSite({"https://gardenhub.org": httpx.Response(503, text="maintenance")})
        profiler = WebsiteProfiler(db_session, settings, client=site.client())

        with pytest.raises(TransientFetchError) as exc_info:
            profiler.analyze_website(website.id, website.url)

        assert exc_info.value.status_code == 503
        assert exc_info.value.kind == "status"

    def test_timeout_raises(self, db_session, settings, website):
        site = MockSite({"https://gardenhub.org": httpx.ReadTimeout})
        profiler = WebsiteProfiler(db_session, settings, client=site.client())

        with pytest.raises(TransientFetchError) as exc_info:
            profiler.analyze_website(website.id, website.url)

        assert exc_info.value.kind == "timeout"

    def test_needs_refresh(self, db_session, settings):
        profiler = WebsiteProfiler(db_session, settings, client=MockSite().client())
        now = utcnow()

        assert profiler.needs_refresh(None, now)
        assert not profiler.needs_refresh(WebsiteProfile(last_analyzed_at=now - timedelta(hours=2)), now)
        assert profiler.needs_refresh(WebsiteProfile(last_analyzed_at=now - timedelta(hours=30)), now)


class TestClientOwnership:

    def test_own_client_is_closed(self, db_session, settings):
        with WebsiteProfiler(db_session, settings) as profiler:
            client = profiler._get_client()
            assert not client.is_closed

        assert client.is_closed

    def test_injected_client_stays_open(self, db_session, settings):
        client = MockSite().client()

        with WebsiteProfiler(db_session, settings, client=client):
            pass

        assert not client.is_closed
        client.close()
