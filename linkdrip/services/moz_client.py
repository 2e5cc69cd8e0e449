"""Moz Links API v2 client (``url_metrics`` endpoint)."""

import logging

import httpx
from pydantic import BaseModel, ConfigDict

from linkdrip.exceptions import ProviderUnavailable
from linkdrip.services.domain_metrics import MOZ_MAX_SPAM_SCORE, DomainMetrics

logger = logging.getLogger(__name__)


class MozUrlMetrics(BaseModel):
    model_config = ConfigDict(extra="ignore")

    page: str | None = None
    domain_authority: float = 0
    page_authority: float = 0
    spam_score: float = -1  # Percentage, -1 when Moz has no estimate


class MozUrlMetricsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    results: list[MozUrlMetrics]


def spam_percent_to_flags(percent: float) -> int:
    """Moz v2 reports spam as a percentage, stored on the 0-17 flag scale."""
    if percent < 0:
        return 0
    return min(MOZ_MAX_SPAM_SCORE, round(percent * MOZ_MAX_SPAM_SCORE / 100))


class MozClient:
    """Fetches domain authority, page authority and spam score from Moz."""

    name = "moz"

    def __init__(
        self,
        access_id: str,
        secret_key: str,
        api_url: str = "https://lsapi.seomoz.com/v2/url_metrics",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.access_id = access_id
        self.secret_key = secret_key
        self.api_url = api_url
        self.client = client or httpx.Client(timeout=timeout)

    def fetch_batch(self, domains: list[str]) -> dict[str, DomainMetrics]:
        if not domains:
            return {}

        try:
            response = self.client.post(
                self.api_url,
                json={"targets": domains},
                auth=(self.access_id, self.secret_key),
            )
            response.raise_for_status()
            payload = MozUrlMetricsResponse.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(self.name, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise ProviderUnavailable(self.name, f"malformed payload: {e}") from e

        # Results come back in target order
        if len(payload.results) != len(domains):
            raise ProviderUnavailable(
                self.name,
                f"expected {len(domains)} results, got {len(payload.results)}",
            )

        metrics = {}
        for domain, item in zip(domains, payload.results):
            metrics[domain] = DomainMetrics(
                domain=domain,
                domain_authority=max(0, min(100, round(item.domain_authority))),
                page_authority=max(0, min(100, round(item.page_authority))),
                spam_score=spam_percent_to_flags(item.spam_score),
                provider=self.name,
            )

        logger.info(f"Moz returned metrics for {len(metrics)} domains")
        return metrics
