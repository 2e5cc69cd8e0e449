"""Redis read-through cache for domain metrics.

Keys:
- metrics:{domain} - JSON-encoded DomainMetrics, expires after the TTL
  (half the TTL for synthetic entries so real data replaces them sooner)
"""

import logging

import redis
from pydantic import ValidationError

from linkdrip.services.domain_metrics import DomainMetrics

logger = logging.getLogger(__name__)

KEY_PREFIX = "metrics:"


class MetricsCache:
    """Domain -> DomainMetrics with a fixed TTL. Cache failures are never fatal."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(domain: str) -> str:
        return f"{KEY_PREFIX}{domain}"

    def ttl_for(self, metrics: DomainMetrics) -> int:
        if metrics.synthetic:
            return max(1, self.ttl_seconds // 2)
        return self.ttl_seconds

    def get(self, domain: str) -> DomainMetrics | None:
        return self.get_many([domain]).get(domain)

    def get_many(self, domains: list[str]) -> dict[str, DomainMetrics]:
        if not domains:
            return {}

        try:
            raw_values = self.redis.mget([self._key(d) for d in domains])
        except redis.RedisError as e:
            logger.warning(f"Metrics cache read failed: {e}")
            return {}

        cached = {}
        for domain, raw in zip(domains, raw_values):
            if raw is None:
                continue
            try:
                cached[domain] = DomainMetrics.model_validate_json(raw)
            except ValidationError:
                logger.warning(f"Discarding corrupt metrics cache entry for {domain}")
        return cached

    def set(self, metrics: DomainMetrics) -> None:
        try:
            self.redis.setex(self._key(metrics.domain), self.ttl_for(metrics), metrics.model_dump_json())
        except redis.RedisError as e:
            logger.warning(f"Metrics cache write failed for {metrics.domain}: {e}")

    def invalidate(self, domain: str) -> bool:
        try:
            return self.redis.delete(self._key(domain)) > 0
        except redis.RedisError as e:
            logger.warning(f"Metrics cache delete failed for {domain}: {e}")
            return False
