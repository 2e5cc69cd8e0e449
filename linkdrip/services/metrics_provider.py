"""Metrics provider: cached, chunked, multi-source domain metrics.

Sources are tried in order for each chunk of uncached domains; any
domain no source could answer for gets deterministic synthetic metrics.
Provider failures are logged and never reach the caller.
"""

import logging
import time
from collections.abc import Callable

import redis

from linkdrip.config import Settings
from linkdrip.exceptions import ProviderUnavailable
from linkdrip.services.domain_metrics import DomainMetrics, DomainMetricsSource, synthesize_metrics
from linkdrip.services.metrics_cache import MetricsCache
from linkdrip.services.moz_client import MozClient
from linkdrip.services.open_page_rank import OpenPageRankClient
from linkdrip.services.url_validator import extract_domain

logger = logging.getLogger(__name__)


class MetricsProvider:
    """Read-through metrics lookups with synthetic fallback."""

    def __init__(
        self,
        sources: list[DomainMetricsSource],
        cache: MetricsCache | None = None,
        batch_size: int = 10,
        chunk_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.sources = sources
        self.cache = cache
        self.batch_size = max(1, batch_size)
        self.chunk_delay_seconds = chunk_delay_seconds
        self._sleep = sleep

    def get_metrics(self, domain: str) -> DomainMetrics:
        """Metrics for one domain (a bare domain or any URL on it)."""
        normalized = extract_domain(domain)
        if not normalized:
            raise ValueError(f"Not a domain: {domain!r}")
        return self.get_batch_metrics([normalized])[normalized]

    def get_batch_metrics(self, domains: list[str]) -> dict[str, DomainMetrics]:
        """Metrics keyed by normalized domain. Always returns every domain."""
        unique: list[str] = []
        for domain in domains:
            normalized = extract_domain(domain)
            if normalized and normalized not in unique:
                unique.append(normalized)

        results = self.cache.get_many(unique) if self.cache else {}
        uncached = [d for d in unique if d not in results]
        if results:
            logger.debug(f"Metrics cache hit for {len(results)}/{len(unique)} domains")

        chunks = [uncached[i:i + self.batch_size] for i in range(0, len(uncached), self.batch_size)]
        for index, chunk in enumerate(chunks):
            if index > 0 and self.chunk_delay_seconds > 0:
                self._sleep(self.chunk_delay_seconds)

            fetched = self._fetch_chunk(chunk)
            for domain in chunk:
                metrics = fetched.get(domain)
                if metrics is None:
                    metrics = synthesize_metrics(domain)
                if self.cache:
                    self.cache.set(metrics)
                results[domain] = metrics

        return {domain: results[domain] for domain in unique}

    def _fetch_chunk(self, chunk: list[str]) -> dict[str, DomainMetrics]:
        found: dict[str, DomainMetrics] = {}
        remaining = list(chunk)

        for source in self.sources:
            if not remaining:
                break
            try:
                fetched = source.fetch_batch(remaining)
            except ProviderUnavailable as e:
                logger.warning(f"Metrics provider unavailable, trying next: {e}")
                continue

            for domain in remaining:
                if domain in fetched:
                    found[domain] = fetched[domain]
            remaining = [d for d in remaining if d not in found]

        if remaining:
            logger.info(f"Using synthetic metrics for {len(remaining)} domains")
        return found


def build_metrics_provider(
    settings: Settings,
    redis_client: redis.Redis | None = None,
) -> MetricsProvider:
    """Assemble the provider from configured sources, in configured order."""
    sources: list[DomainMetricsSource] = []
    for name in settings.metrics_providers:
        if name == "moz" and settings.moz_access_id and settings.moz_secret_key:
            sources.append(MozClient(
                settings.moz_access_id,
                settings.moz_secret_key,
                api_url=settings.moz_api_url,
                timeout=settings.metrics_timeout_seconds,
            ))
        elif name == "openpagerank" and settings.open_page_rank_api_key:
            sources.append(OpenPageRankClient(
                settings.open_page_rank_api_key,
                api_url=settings.open_page_rank_api_url,
                timeout=settings.metrics_timeout_seconds,
            ))

    if not sources:
        logger.warning("No metrics providers configured, all metrics will be synthetic")

    if redis_client is None:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)

    return MetricsProvider(
        sources=sources,
        cache=MetricsCache(redis_client, settings.metrics_cache_ttl_seconds),
        batch_size=settings.metrics_batch_size,
        chunk_delay_seconds=settings.metrics_chunk_delay_seconds,
    )
