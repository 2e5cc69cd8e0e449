"""OpenPageRank client, used when Moz is unavailable or has no data."""

import logging

import httpx
from pydantic import BaseModel, ConfigDict

from linkdrip.exceptions import ProviderUnavailable
from linkdrip.services.domain_metrics import DomainMetrics

logger = logging.getLogger(__name__)


class PageRankEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status_code: int
    domain: str
    page_rank_decimal: float | None = None
    rank: str | None = None


class PageRankResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status_code: int
    response: list[PageRankEntry] = []


def page_rank_to_authority(page_rank: float) -> int:
    """Map a 0-10 page rank onto a 0-100 domain-authority-like scale."""
    if page_rank <= 0:
        return 0
    if page_rank >= 10:
        return 100
    if page_rank < 2:
        return round(page_rank * 5)
    if page_rank < 4:
        return round(10 + (page_rank - 2) * 10)
    if page_rank < 6:
        return round(30 + (page_rank - 4) * 15)
    return round(60 + (page_rank - 6) * 10)


class OpenPageRankClient:
    """Page rank lookups. OpenPageRank has no spam or page-level data."""

    name = "openpagerank"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://openpagerank.com/api/v1.0/getPageRank",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.client = client or httpx.Client(timeout=timeout)

    def fetch_batch(self, domains: list[str]) -> dict[str, DomainMetrics]:
        if not domains:
            return {}

        try:
            response = self.client.get(
                self.api_url,
                params=[("domains[]", domain) for domain in domains],
                headers={"API-OPR": self.api_key, "Accept": "application/json"},
            )
            response.raise_for_status()
            payload = PageRankResponse.model_validate(response.json())
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(self.name, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise ProviderUnavailable(self.name, f"malformed payload: {e}") from e

        if payload.status_code != 200:
            raise ProviderUnavailable(self.name, f"API status {payload.status_code}")

        requested = set(domains)
        metrics = {}
        for entry in payload.response:
            domain = entry.domain.lower()
            if entry.status_code != 200 or domain not in requested:
                continue
            authority = page_rank_to_authority(entry.page_rank_decimal or 0)
            metrics[domain] = DomainMetrics(
                domain=domain,
                domain_authority=authority,
                page_authority=authority,
                spam_score=0,
                provider=self.name,
            )

        logger.info(f"OpenPageRank returned metrics for {len(metrics)}/{len(domains)} domains")
        return metrics
