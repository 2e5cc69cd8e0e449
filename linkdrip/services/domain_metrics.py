"""Domain metrics payload and the deterministic fallback."""

import hashlib
from datetime import datetime
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from linkdrip.database import utcnow

MOZ_MAX_SPAM_SCORE = 17


class DomainMetrics(BaseModel):
    """Authority and spam metrics for one domain.

    ``spam_score`` uses Moz's 0-17 spam-flag scale.
    """

    model_config = ConfigDict(frozen=True)

    domain: str
    domain_authority: int = Field(ge=0, le=100)
    page_authority: int = Field(ge=0, le=100)
    spam_score: int = Field(ge=0, le=MOZ_MAX_SPAM_SCORE)
    synthetic: bool = False
    provider: str
    fetched_at: datetime = Field(default_factory=utcnow)


class DomainMetricsSource(Protocol):
    """An external metrics provider.

    ``fetch_batch`` returns metrics for the domains it knows about and
    raises ``ProviderUnavailable`` when the provider cannot be used.
    """

    name: str

    def fetch_batch(self, domains: list[str]) -> dict[str, DomainMetrics]: ...


def synthesize_metrics(domain: str) -> DomainMetrics:
    """Stable stand-in metrics derived from a hash of the domain name."""
    digest = hashlib.sha256(domain.encode("utf-8")).digest()
    domain_authority = 20 + int.from_bytes(digest[0:4], "big") % 60
    page_authority = max(10, domain_authority - 10 + digest[4] % 20)
    spam_score = digest[5] % 11

    return DomainMetrics(
        domain=domain,
        domain_authority=domain_authority,
        page_authority=min(page_authority, 100),
        spam_score=spam_score,
        synthetic=True,
        provider="synthetic",
    )
