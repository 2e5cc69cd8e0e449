"""
Tests for match scoring and the reasons shown to subscribers.
"""

import pytest

from linkdrip.models import DiscoveredOpportunity, Website, WebsiteProfile
from linkdrip.services.match_scorer import PREMIUM_THRESHOLD, STANDARD_THRESHOLD, MatchScorer

KEYWORDS = ["organic", "gardening", "compost"]


def _opportunity(
    title: str = "Organic gardening resources",
    source_type: str = "resource_page",
    domain_authority: int = 35,
    page_authority: int = 30,
    spam_score: int = 1,
) -> DiscoveredOpportunity:
    opportunity = DiscoveredOpportunity(
        url="https://links.example.net/resources",
        domain="links.example.net",
        source_type=source_type,
        title=title,
        categories=[],
    )
    opportunity.attach_metrics(domain_authority, page_authority, spam_score)
    return opportunity


def _website(niche=None, target_niches=None, avoid_niches=None) -> Website:
    return Website(
        url="https://gardenhub.org",
        name="Garden Hub",
        niche=niche,
        target_niches=target_niches or [],
        avoid_niches=avoid_niches or [],
    )


@pytest.fixture
def profile() -> WebsiteProfile:
    return WebsiteProfile(keywords=KEYWORDS, topics=[])


# =============================================================================
# Standard opportunities
# =============================================================================

class TestStandardScore:

    def test_score_and_reasons(self, profile):
        result = MatchScorer().score(profile, _opportunity())

        # base 50 + 2 keywords x 3 + authority tier 10 + resource page 10
        assert result.score == 76
        assert result.relevance == 67
        assert not result.is_premium
        assert result.threshold == STANDARD_THRESHOLD
        assert result.accepted
        assert result.reasons == [
            "Good content relevance to your website",
            "Moderate domain authority (35)",
            "Very low spam risk",
            "Matches 2 keywords from your website",
            "Resource page that links out to helpful sites",
        ]

    def test_target_niche_bonus_is_clamped(self, profile):
        result = MatchScorer().score(profile, _opportunity(), _website(niche="gardening"))
        assert result.score == 100

    def test_avoided_niche_penalty(self, profile):
        website = _website(target_niches=["beekeeping"], avoid_niches=["resources"])
        result = MatchScorer().score(profile, _opportunity(), website)
        assert result.score == 51

    def test_keyword_bonus_is_capped(self):
        keywords = ["organic", "gardening", "resources", "links", "tools", "seeds", "compost"]
        title = "Organic gardening resources links tools seeds compost"
        result = MatchScorer().score(WebsiteProfile(keywords=keywords), _opportunity(title=title))
        # base 50 + capped keywords 15 + authority tier 10 + resource page 10
        assert result.score == 85

    def test_spammy_low_authority_page_is_rejected(self, profile):
        opportunity = _opportunity(title="Cheap casino links", source_type="blog", domain_authority=10, spam_score=17)

        result = MatchScorer().score(profile, opportunity)

        # base 50 - low authority 10 - spam penalty 14
        assert result.score == 26
        assert not result.accepted
        assert result.reasons == ["Some content relevance to your website", "High spam risk"]

    def test_single_keyword_wording(self, profile):
        result = MatchScorer().score(profile, _opportunity(title="Compost bins", source_type="directory"))
        assert "Matches 1 keyword from your website" in result.reasons
        assert result.reasons[-1] == "Directory that accepts new listings"

    def test_topic_overlap_is_reported(self):
        profile = WebsiteProfile(keywords=KEYWORDS, topics=["organic gardening", "seed saving"])

        result = MatchScorer().score(profile, _opportunity())

        assert result.score == 76
        assert result.reasons[3:5] == [
            "Matches 1 topic from your website",
            "Matches 2 keywords from your website",
        ]


# =============================================================================
# Premium opportunities
# =============================================================================

class TestPremiumScore:

    def test_quality_weighted_score(self, profile):
        opportunity = _opportunity(domain_authority=60, page_authority=55, spam_score=1)

        result = MatchScorer().score(profile, opportunity)

        assert result.is_premium
        assert result.quality == 68
        assert result.score == 68
        assert result.threshold == PREMIUM_THRESHOLD
        assert result.accepted
        assert result.reasons[1] == "High domain authority (60)"

    def test_premium_needs_relevance(self, profile):
        opportunity = _opportunity(title="Luxury watches", domain_authority=60, page_authority=55, spam_score=1)

        result = MatchScorer().score(profile, opportunity)

        assert result.score == 41
        assert not result.accepted


# =============================================================================
# Bounds
# =============================================================================

@pytest.mark.parametrize("domain_authority", [0, 15, 35, 60, 100])
@pytest.mark.parametrize("spam_score", [0, 2, 9, 17])
@pytest.mark.parametrize("source_type", ["resource_page", "blog"])
def test_score_is_always_within_bounds(profile, domain_authority, spam_score, source_type):
    opportunity = _opportunity(
        source_type=source_type,
        domain_authority=domain_authority,
        page_authority=domain_authority,
        spam_score=spam_score,
    )
    for website in (None, _website(niche="gardening"), _website(avoid_niches=["organic"])):
        result = MatchScorer().score(profile, opportunity, website)
        assert 0 <= result.score <= 100
        assert 0 <= result.quality <= 100
