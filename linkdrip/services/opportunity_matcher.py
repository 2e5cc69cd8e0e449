"""Matching analyzed opportunities to websites and allocating daily drips."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkdrip.config import Settings
from linkdrip.database import utcnow
from linkdrip.exceptions import PersistenceConflict
from linkdrip.models import (
    DailyAllocation,
    DailyAllocationEntry,
    DiscoveredOpportunity,
    OpportunityMatch,
    User,
    Website,
    WebsiteProfile,
)
from linkdrip.services.match_scorer import MatchScorer
from linkdrip.services.plans import PlanService

logger = logging.getLogger(__name__)

# Opportunities that can still be delivered to another user
ALLOCATABLE_STATUSES = ("matched", "assigned", "premium")

NOT_ENOUGH_DATA = "Not enough data to explain match"


@dataclass
class MatchExplanation:
    reasons: list[str]
    score: int
    metrics: dict[str, Any] = field(default_factory=dict)


class OpportunityMatcher:
    """Creates scored matches and turns them into daily allocations."""

    def __init__(
        self,
        session: Session,
        settings: Settings,
        scorer: MatchScorer | None = None,
        plans: PlanService | None = None,
    ):
        self.session = session
        self.settings = settings
        self.scorer = scorer or MatchScorer()
        self.plans = plans or PlanService(settings)
        self.errors = 0

    # =========================================================================
    # Matching
    # =========================================================================

    def _profiled_websites(self) -> list[tuple[Website, WebsiteProfile]]:
        rows = self.session.execute(
            select(Website, WebsiteProfile)
            .join(WebsiteProfile, WebsiteProfile.website_id == Website.id)
            .where(Website.is_active.is_(True))
            .order_by(Website.created_at)
        ).all()
        return [(website, profile) for website, profile in rows]

    def process_new_opportunities(self) -> int:
        """Score every analyzed opportunity against every profiled website.

        Returns the number of matches created.
        """
        self.errors = 0
        opportunities = self.session.scalars(
            select(DiscoveredOpportunity)
            .where(DiscoveredOpportunity.status == "analyzed")
            .order_by(DiscoveredOpportunity.discovered_at)
        ).all()
        websites = self._profiled_websites()
        if not opportunities or not websites:
            return 0

        created = 0
        for opportunity in opportunities:
            try:
                created += self._match_opportunity(opportunity, websites)
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                self.errors += 1
                logger.error(f"Matching failed for opportunity {opportunity.id}: {e}")

        logger.info(f"Created {created} matches for {len(opportunities)} opportunities")
        return created

    def _match_opportunity(
        self,
        opportunity: DiscoveredOpportunity,
        websites: list[tuple[Website, WebsiteProfile]],
    ) -> int:
        existing = set(self.session.scalars(
            select(OpportunityMatch.website_id).where(
                OpportunityMatch.opportunity_id == opportunity.id
            )
        ).all())

        created = 0
        for website, profile in websites:
            if website.id in existing:
                continue

            result = self.scorer.score(profile, opportunity, website)
            if not result.accepted:
                continue

            match = OpportunityMatch(
                opportunity_id=opportunity.id,
                website_id=website.id,
                user_id=website.user_id,
                match_score=result.score,
                match_reasons=result.reasons,
                is_premium=result.is_premium,
                status="pending",
            )
            try:
                self._insert_match(match)
            except PersistenceConflict:
                logger.debug(f"Match for {opportunity.id}/{website.id} already exists")
            else:
                created += 1
            existing.add(website.id)

        if existing:
            opportunity.status = "matched"
        return created

    def _insert_match(self, match: OpportunityMatch) -> None:
        try:
            with self.session.begin_nested():
                self.session.add(match)
        except IntegrityError as e:
            raise PersistenceConflict(str(e)) from e

    # =========================================================================
    # Daily allocation
    # =========================================================================

    def assign_daily_opportunities(self, today: date | None = None) -> int:
        """Create today's allocation for every user who does not have one yet.

        Returns the number of opportunities assigned across all users.
        """
        self.errors = 0
        today = today or utcnow().date()

        users = self.session.scalars(
            select(User)
            .where(User.websites.any(Website.is_active.is_(True)))
            .order_by(User.created_at)
        ).all()

        total = 0
        for user in users:
            try:
                total += self._allocate_for_user(user, today)
                self.session.commit()
            except Exception as e:
                self.session.rollback()
                self.errors += 1
                logger.error(f"Allocation failed for user {user.id}: {e}")

        logger.info(f"Assigned {total} opportunities to {len(users)} users for {today}")
        return total

    def _allocate_for_user(self, user: User, today: date) -> int:
        limits = self.plans.get_limits(user)
        premium_allowance = self.plans.premium_allowance(user)

        try:
            allocation = self._create_allocation(user, today, limits.daily_drips, premium_allowance)
        except PersistenceConflict:
            logger.info(f"User {user.id} already has an allocation for {today}, skipping")
            return 0

        website_ids = [w.id for w in user.websites if w.is_active]
        candidates = self.session.execute(
            select(OpportunityMatch, DiscoveredOpportunity)
            .join(DiscoveredOpportunity, DiscoveredOpportunity.id == OpportunityMatch.opportunity_id)
            .where(
                OpportunityMatch.user_id == user.id,
                OpportunityMatch.status == "pending",
                OpportunityMatch.website_id.in_(website_ids),
                DiscoveredOpportunity.status.in_(ALLOCATABLE_STATUSES),
            )
            .order_by(OpportunityMatch.match_score.desc(), OpportunityMatch.created_at)
        ).all()

        premium = [(m, o) for m, o in candidates if m.is_premium]
        standard = [(m, o) for m, o in candidates if not m.is_premium]

        chosen_opportunities: set[str] = set()
        picked = self._pick_per_website(premium, premium_allowance, chosen_opportunities)
        premium_count = len(picked)
        picked += self._pick_per_website(standard, limits.daily_drips, chosen_opportunities)

        for match, opportunity in picked:
            match.assign()
            if match.is_premium:
                opportunity.status = "premium"
            elif opportunity.status != "premium":
                opportunity.status = "assigned"
            allocation.entries.append(DailyAllocationEntry(
                match_id=match.id,
                opportunity_id=opportunity.id,
                website_id=match.website_id,
                is_premium=match.is_premium,
            ))

        allocation.delivered_count = len(picked)
        self.plans.consume_splashes(user, premium_count)

        logger.info(
            f"Allocated {len(picked)} opportunities ({premium_count} premium) "
            f"to user {user.id} for {today}"
        )
        return len(picked)

    def _create_allocation(
        self,
        user: User,
        today: date,
        daily_limit: int,
        premium_limit: int,
    ) -> DailyAllocation:
        """Insert today's allocation, or raise PersistenceConflict if one exists."""
        existing = self.session.scalars(
            select(DailyAllocation).where(
                DailyAllocation.user_id == user.id,
                DailyAllocation.allocation_date == today,
            )
        ).first()
        if existing is not None:
            raise PersistenceConflict(f"Allocation exists for {user.id} on {today}")

        allocation = DailyAllocation(
            user_id=user.id,
            allocation_date=today,
            daily_limit=daily_limit,
            premium_limit=premium_limit,
        )
        try:
            with self.session.begin_nested():
                self.session.add(allocation)
        except IntegrityError as e:
            raise PersistenceConflict(f"Allocation exists for {user.id} on {today}") from e
        return allocation

    def _pick_per_website(
        self,
        candidates: list[tuple[OpportunityMatch, DiscoveredOpportunity]],
        limit: int,
        chosen_opportunities: set[str],
    ) -> list[tuple[OpportunityMatch, DiscoveredOpportunity]]:
        """Round-robin across websites, best match first within each website."""
        if limit <= 0:
            return []

        by_website: dict[str, list[tuple[OpportunityMatch, DiscoveredOpportunity]]] = {}
        for match, opportunity in candidates:
            by_website.setdefault(match.website_id, []).append((match, opportunity))

        picked = []
        queues = list(by_website.values())
        while queues and len(picked) < limit:
            remaining = []
            for queue in queues:
                while queue:
                    match, opportunity = queue.pop(0)
                    if opportunity.id in chosen_opportunities:
                        continue
                    chosen_opportunities.add(opportunity.id)
                    picked.append((match, opportunity))
                    break
                if queue:
                    remaining.append(queue)
                if len(picked) >= limit:
                    break
            queues = remaining
        return picked

    # =========================================================================
    # Read paths
    # =========================================================================

    def get_user_daily_opportunities(
        self,
        user_id: str,
        website_id: str | None = None,
        today: date | None = None,
    ) -> list[DiscoveredOpportunity]:
        """Opportunities in the user's allocation for today. Empty if none."""
        today = today or utcnow().date()
        query = (
            select(DiscoveredOpportunity)
            .join(DailyAllocationEntry, DailyAllocationEntry.opportunity_id == DiscoveredOpportunity.id)
            .join(DailyAllocation, DailyAllocation.id == DailyAllocationEntry.allocation_id)
            .join(OpportunityMatch, OpportunityMatch.id == DailyAllocationEntry.match_id)
            .where(
                DailyAllocation.user_id == user_id,
                DailyAllocation.allocation_date == today,
            )
            .order_by(DailyAllocationEntry.is_premium.desc(), OpportunityMatch.match_score.desc())
        )
        if website_id:
            query = query.where(DailyAllocationEntry.website_id == website_id)
        return list(self.session.scalars(query).all())

    def explain_match(self, opportunity_id: str, website_id: str) -> MatchExplanation:
        """Why an opportunity was (or would be) matched to a website."""
        opportunity = self.session.get(DiscoveredOpportunity, opportunity_id)
        if opportunity is None:
            return MatchExplanation(reasons=[NOT_ENOUGH_DATA], score=0)

        metrics = {
            "domain_authority": opportunity.domain_authority,
            "page_authority": opportunity.page_authority,
            "spam_score": opportunity.spam_score,
            "synthetic": opportunity.metrics_synthetic,
            "is_premium": opportunity.is_premium,
        }

        match = self.session.scalars(
            select(OpportunityMatch).where(
                OpportunityMatch.opportunity_id == opportunity_id,
                OpportunityMatch.website_id == website_id,
            )
        ).first()
        if match is not None and match.match_reasons:
            return MatchExplanation(reasons=list(match.match_reasons), score=match.match_score, metrics=metrics)

        website = self.session.get(Website, website_id)
        if website is None or website.profile is None:
            return MatchExplanation(reasons=[NOT_ENOUGH_DATA], score=0, metrics=metrics)

        result = self.scorer.score(website.profile, opportunity, website)
        return MatchExplanation(reasons=result.reasons, score=result.score, metrics=metrics)
