"""Repository implementations for data access."""

from linkdrip.repositories.postgres import (
    PostgresCrawlJobRepository,
    PostgresOpportunityRepository,
    PostgresUserRepository,
    PostgresWebsiteRepository,
)

__all__ = [
    "PostgresCrawlJobRepository",
    "PostgresOpportunityRepository",
    "PostgresUserRepository",
    "PostgresWebsiteRepository",
]
