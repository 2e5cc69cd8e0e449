"""SQLAlchemy models."""

from linkdrip.models.crawl_job import CrawlJob
from linkdrip.models.daily_allocation import DailyAllocation, DailyAllocationEntry
from linkdrip.models.discovered_opportunity import DiscoveredOpportunity
from linkdrip.models.opportunity_match import OpportunityMatch
from linkdrip.models.website import User, Website
from linkdrip.models.website_profile import WebsiteProfile

__all__ = [
    "CrawlJob",
    "DailyAllocation",
    "DailyAllocationEntry",
    "DiscoveredOpportunity",
    "OpportunityMatch",
    "User",
    "Website",
    "WebsiteProfile",
]
