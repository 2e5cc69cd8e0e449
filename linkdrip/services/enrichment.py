"""Attach domain metrics to discovered opportunities."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from linkdrip.models import DiscoveredOpportunity
from linkdrip.services.metrics_provider import MetricsProvider

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentStats:
    processed: int = 0
    analyzed: int = 0
    premium: int = 0
    synthetic: int = 0


class OpportunityEnricher:
    """Moves opportunities from ``discovered`` to ``analyzed``."""

    def __init__(self, session: Session, metrics_provider: MetricsProvider):
        self.session = session
        self.metrics_provider = metrics_provider

    def process_discovered_batch(
        self,
        opportunity_ids: list[str] | None = None,
        limit: int | None = None,
    ) -> EnrichmentStats:
        """Enrich the given opportunities, or every ``discovered`` one."""
        query = select(DiscoveredOpportunity).where(DiscoveredOpportunity.status == "discovered")
        if opportunity_ids:
            query = query.where(DiscoveredOpportunity.id.in_(opportunity_ids))
        query = query.order_by(DiscoveredOpportunity.discovered_at)
        if limit:
            query = query.limit(limit)

        opportunities = list(self.session.scalars(query).all())
        if not opportunities:
            return EnrichmentStats()

        stats = self._attach(opportunities, advance_status=True)
        self.session.commit()
        logger.info(
            f"Enriched {stats.analyzed} opportunities "
            f"({stats.premium} premium, {stats.synthetic} synthetic)"
        )
        return stats

    def refresh_metrics(self, opportunities: list[DiscoveredOpportunity]) -> EnrichmentStats:
        """Re-attach fresh metrics without touching status (except ``discovered``)."""
        stats = self._attach(opportunities, advance_status=False)
        self.session.commit()
        return stats

    def _attach(
        self,
        opportunities: list[DiscoveredOpportunity],
        advance_status: bool,
    ) -> EnrichmentStats:
        metrics = self.metrics_provider.get_batch_metrics([o.domain for o in opportunities])
        stats = EnrichmentStats()

        for opportunity in opportunities:
            stats.processed += 1
            domain_metrics = metrics.get(opportunity.domain)
            if domain_metrics is None:
                continue

            opportunity.attach_metrics(
                domain_authority=domain_metrics.domain_authority,
                page_authority=domain_metrics.page_authority,
                spam_score=domain_metrics.spam_score,
                synthetic=domain_metrics.synthetic,
            )
            if advance_status or opportunity.status == "discovered":
                opportunity.status = "analyzed"
                stats.analyzed += 1
            if opportunity.is_premium:
                stats.premium += 1
            if domain_metrics.synthetic:
                stats.synthetic += 1

        return stats
