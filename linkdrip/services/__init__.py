"""Discovery and matching services."""

from linkdrip.services.crawler import CrawlError, CrawlResult, OpportunityCrawler
from linkdrip.services.enrichment import OpportunityEnricher
from linkdrip.services.frontier import CrawlFrontier
from linkdrip.services.match_scorer import MatchScorer
from linkdrip.services.metrics_provider import MetricsProvider, build_metrics_provider
from linkdrip.services.opportunity_matcher import OpportunityMatcher
from linkdrip.services.orchestrator import DiscoveryOrchestrator
from linkdrip.services.website_profiler import WebsiteProfiler

__all__ = [
    "CrawlError",
    "CrawlFrontier",
    "CrawlResult",
    "DiscoveryOrchestrator",
    "MatchScorer",
    "MetricsProvider",
    "OpportunityCrawler",
    "OpportunityEnricher",
    "OpportunityMatcher",
    "WebsiteProfiler",
    "build_metrics_provider",
]
