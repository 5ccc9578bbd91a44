"""Cache-tag invalidation for downstream readers of the catalog."""

from __future__ import annotations

from typing import Any

import redis
from flask import current_app

QUESTS = 'quests'
EXPEDITIONS = 'expeditions'
ORGANIZATIONS = 'organizations'
ADMIN = 'admin'

KIND_TAGS = {
    'quest': QUESTS,
    'expedition': EXPEDITIONS,
    'organization': ORGANIZATIONS,
}


class CacheInvalidator:
    """Bumps per-tag generation counters that cached readers key on."""

    def __init__(self, client: Any = None, prefix: str = 'questgate'):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_app(cls, app) -> "CacheInvalidator":
        redis_url = app.config.get('REDIS_URL')
        client = redis.from_url(redis_url) if redis_url else None
        return cls(client=client, prefix=app.config.get('CACHE_TAG_PREFIX', 'questgate'))

    def key_for(self, tag: str) -> str:
        return f"{self.prefix}:tag:{tag}"

    def generation(self, tag: str) -> int:
        if self.client is None:
            return 0
        value = self.client.get(self.key_for(tag))
        return int(value) if value else 0

    def invalidate(self, *tags: str) -> list[str]:
        """Invalidate the given tags; returns the ones actually bumped.

        A failing cache backend is logged but never undoes a committed write.
        """
        bumped = []
        for tag in dict.fromkeys(tags):
            key = self.key_for(tag)
            if self.client is None:
                current_app.logger.debug(f'Cache tag invalidated (no backend): {key}')
                bumped.append(tag)
                continue
            try:
                self.client.incr(key)
                bumped.append(tag)
                current_app.logger.debug(f'Cache tag invalidated: {key}')
            except redis.RedisError as e:
                current_app.logger.error(f'Failed to invalidate cache tag {key}: {e}')
        return bumped

    def invalidate_kind(self, kind: str) -> list[str]:
        return self.invalidate(KIND_TAGS[kind], ADMIN)


def get_cache() -> CacheInvalidator:
    """The invalidator bound to the current app."""
    return current_app.extensions['questgate.cache']


__all__ = [
    "CacheInvalidator",
    "get_cache",
    "QUESTS",
    "EXPEDITIONS",
    "ORGANIZATIONS",
    "ADMIN",
    "KIND_TAGS",
]
