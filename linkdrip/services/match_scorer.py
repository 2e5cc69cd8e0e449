"""Relevance/quality scoring of an opportunity against a website profile.

Standard opportunities start at 50 and move with niche alignment,
keyword overlap, authority and spam tiers, and source type. Premium
opportunities are scored on a 40/60 relevance/quality blend and must
clear a higher bar.
"""

from dataclasses import dataclass, field

from linkdrip.models import DiscoveredOpportunity, Website, WebsiteProfile
from linkdrip.services.website_profiler import calculate_relevance, matched_keywords, matched_topics

BASE_SCORE = 50
NICHE_ADJUSTMENT = 25
KEYWORD_BONUS = 3
KEYWORD_BONUS_CAP = 15
SPAM_PENALTY_THRESHOLD = 10
SPAM_PENALTY_PER_POINT = 2
SPAM_PENALTY_CAP = 20

STANDARD_THRESHOLD = 40
PREMIUM_THRESHOLD = 60

SOURCE_BONUS = {
    "resource_page": 10,
    "directory": 5,
}

SOURCE_COMMENTARY = {
    "resource_page": "Resource page that links out to helpful sites",
    "directory": "Directory that accepts new listings",
    "guest_post": "Accepts guest contributions",
    "forum": "Community forum where you can join the discussion",
    "comment_section": "Open comment section",
}


@dataclass
class MatchScore:
    score: int
    reasons: list[str] = field(default_factory=list)
    relevance: int = 0
    quality: int = 0
    is_premium: bool = False

    @property
    def threshold(self) -> int:
        return PREMIUM_THRESHOLD if self.is_premium else STANDARD_THRESHOLD

    @property
    def accepted(self) -> bool:
        return self.score > self.threshold


def _clamp(value: float, low: int = 0, high: int = 100) -> int:
    return int(max(low, min(high, round(value))))


class MatchScorer:
    """Scores (profile, opportunity) pairs. Pure, no I/O."""

    def score(
        self,
        profile: WebsiteProfile,
        opportunity: DiscoveredOpportunity,
        website: Website | None = None,
    ) -> MatchScore:
        """Score an opportunity for a website. The result is always within [0, 100]."""
        relevance = calculate_relevance(profile, opportunity)
        keywords = matched_keywords(profile, opportunity)
        topics = matched_topics(profile, opportunity)
        domain_authority = opportunity.domain_authority or 0
        page_authority = opportunity.page_authority or 0
        spam_score = opportunity.spam_score or 0

        if opportunity.is_premium:
            spam_quality = _clamp(100 - spam_score * 10)
            quality = _clamp(0.5 * domain_authority + 0.3 * spam_quality + 0.2 * page_authority)
            score = _clamp(0.4 * relevance + 0.6 * quality)
        else:
            quality = _clamp(domain_authority)
            score = _clamp(BASE_SCORE + self._standard_adjustments(
                opportunity, website, keywords, domain_authority, spam_score
            ))

        return MatchScore(
            score=score,
            reasons=self.build_reasons(opportunity, relevance, keywords, topics),
            relevance=relevance,
            quality=quality,
            is_premium=opportunity.is_premium,
        )

    def _standard_adjustments(
        self,
        opportunity: DiscoveredOpportunity,
        website: Website | None,
        keywords: list[str],
        domain_authority: int,
        spam_score: int,
    ) -> int:
        adjustment = 0

        if website is not None:
            text = opportunity.text_blob()
            if any(n.lower() in text for n in website.all_target_niches if n):
                adjustment += NICHE_ADJUSTMENT
            if any(n.lower() in text for n in website.avoid_niches or [] if n):
                adjustment -= NICHE_ADJUSTMENT

        adjustment += min(KEYWORD_BONUS_CAP, KEYWORD_BONUS * len(keywords))

        if domain_authority >= 50:
            adjustment += 20
        elif domain_authority >= 30:
            adjustment += 10
        elif domain_authority < 20:
            adjustment -= 10

        if spam_score > SPAM_PENALTY_THRESHOLD:
            adjustment -= min(
                SPAM_PENALTY_CAP,
                SPAM_PENALTY_PER_POINT * (spam_score - SPAM_PENALTY_THRESHOLD),
            )

        adjustment += SOURCE_BONUS.get(opportunity.source_type, 0)
        return adjustment

    def build_reasons(
        self,
        opportunity: DiscoveredOpportunity,
        relevance: int,
        keywords: list[str],
        topics: list[str] | None = None,
    ) -> list[str]:
        """Human-readable reasons: relevance, authority, spam, overlap, source."""
        reasons = []

        if relevance > 80:
            reasons.append("High content relevance to your website")
        elif relevance > 60:
            reasons.append("Good content relevance to your website")
        else:
            reasons.append("Some content relevance to your website")

        domain_authority = opportunity.domain_authority
        if domain_authority is not None:
            if domain_authority >= 40:
                reasons.append(f"High domain authority ({domain_authority})")
            elif domain_authority >= 20:
                reasons.append(f"Moderate domain authority ({domain_authority})")

        spam_score = opportunity.spam_score
        if spam_score is not None:
            if spam_score < 2:
                reasons.append("Very low spam risk")
            elif spam_score < 5:
                reasons.append("Acceptable spam risk")
            elif spam_score >= SPAM_PENALTY_THRESHOLD:
                reasons.append("High spam risk")

        if topics:
            noun = "topic" if len(topics) == 1 else "topics"
            reasons.append(f"Matches {len(topics)} {noun} from your website")
        if keywords:
            noun = "keyword" if len(keywords) == 1 else "keywords"
            reasons.append(f"Matches {len(keywords)} {noun} from your website")

        commentary = SOURCE_COMMENTARY.get(opportunity.source_type)
        if commentary:
            reasons.append(commentary)

        return reasons
