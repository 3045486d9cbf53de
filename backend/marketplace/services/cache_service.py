# Overview: Catalog cache invalidation against the shared redis cache.

from __future__ import annotations

import logging
from typing import Optional

import redis

logger = logging.getLogger(__name__)

PRODUCT_KEY_PATTERNS = (
    "api:*:/products*",
    "user:*:/products*",
    "role:*:/products*",
    "global:*:/products*",
)

SALES_REPORT_KEY_PATTERNS = (
    "api:*:/sales-report*",
    "user:*:/sales-report*",
    "role:*:/sales-report*",
    "salesreport:*",
)


class CatalogCache:
    """
    Invalidation signal for caches keyed on the catalog.

    The cache is advisory: redis failures are logged and reported as zero
    deletions, never raised. Without REDIS_URL every call is a no-op.
    """

    def __init__(self, app=None, client: Optional[redis.Redis] = None):
        self._client = client
        self.redis_url: Optional[str] = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.redis_url = app.config.get("REDIS_URL")
        app.extensions["catalog_cache"] = self

    @property
    def client(self) -> Optional[redis.Redis]:
        if self._client is None and self.redis_url:
            self._client = redis.Redis.from_url(self.redis_url, decode_responses=True)
        return self._client

    @client.setter
    def client(self, value: Optional[redis.Redis]) -> None:
        self._client = value

    def delete_patterns(self, patterns) -> int:
        client = self.client
        if client is None:
            logger.debug("Catalog cache disabled; skipping invalidation of %s", patterns)
            return 0
        deleted = 0
        try:
            for pattern in patterns:
                keys = list(client.scan_iter(match=pattern))
                if keys:
                    deleted += client.delete(*keys)
        except redis.RedisError as exc:
            logger.warning("Catalog cache invalidation failed: %s", exc)
            return deleted
        return deleted

    def invalidate_products(self) -> int:
        deleted = self.delete_patterns(PRODUCT_KEY_PATTERNS)
        logger.info("Invalidated %d cached product keys", deleted)
        return deleted

    def invalidate_sales_reports(self) -> int:
        deleted = self.delete_patterns(SALES_REPORT_KEY_PATTERNS)
        logger.info("Invalidated %d cached sales report keys", deleted)
        return deleted
