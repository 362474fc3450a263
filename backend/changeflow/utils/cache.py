"""Redis caching of resolved permissions.

Resolved permission sets are derived data: they are safe to cache only for a
short TTL and only under a key that captures every input reference:

    {prefix}:r:{role_id}:g:|{group_id}|{group_id}|:o:{override_version}

(ids are percent-encoded, so they cannot contain a separator; tenant-scoped
keys are prefixed with `t:{organization}:`). A membership
change, an override set/clear or a role reassignment produces a different
key, so those never serve stale data. Editing a role's or a group's own
permission set keeps the key stable, so those edits must call
`invalidate_role()` / `invalidate_group()`.

If Redis is unavailable every call degrades to a miss / no-op and logs a
warning; resolution itself never depends on the cache.
"""

import json
import logging
from typing import Any, Iterable, Optional
from urllib.parse import quote

import redis.asyncio as redis

from changeflow.auth.capabilities import Capability
from changeflow.auth.permission_set import PermissionSet
from changeflow.auth.resolver import Resolution
from changeflow.config import settings
from changeflow.middleware.exceptions import (
    ResolutionError,
    ResolutionErrorKind,
    ValidationError,
)
from changeflow.tenancy import _tenant_ctx

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


# ── Keys ────────────────────────────────────────────────────

def _encode(value: str) -> str:
    """Percent-encode an id so it holds no separator (`:` `|`) or glob character."""
    return quote(str(value), safe="")


def _scoped(key: str) -> str:
    tenant = _tenant_ctx.get()  # None when outside tenant context
    return f"t:{tenant}:{key}" if tenant else key


def resolution_key(
    role_id: str,
    group_ids: Iterable[str],
    override_version: int | None,
    prefix: str | None = None,
) -> str:
    """Deterministic key for (role, sorted groups, override version)."""
    prefix = prefix or settings.permission_cache_prefix
    groups = "|".join(_encode(g) for g in sorted(set(map(str, group_ids))))
    version = "none" if override_version is None else str(override_version)
    return f"{prefix}:r:{_encode(role_id)}:g:|{groups}|:o:{version}"


# ── Serialization ───────────────────────────────────────────

def dump_resolution(resolution: Resolution) -> str:
    return json.dumps(
        {
            "resolved": resolution.resolved.to_dict(),
            "provenance": {c.value: s for c, s in resolution.provenance.items()},
            "errors": [
                {"kind": e.kind.value, "source": e.source} for e in resolution.errors
            ],
        },
        sort_keys=True,
    )


def load_resolution(raw: str) -> Resolution:
    data: dict[str, Any] = json.loads(raw)
    return Resolution(
        resolved=PermissionSet(data["resolved"]),
        provenance={Capability(c): s for c, s in data["provenance"].items()},
        errors=tuple(
            ResolutionError(ResolutionErrorKind(e["kind"]), source=e["source"])
            for e in data.get("errors", [])
        ),
    )


# ── Cache operations ────────────────────────────────────────

async def invalidate_cache(pattern: str):
    """Invalidate cache keys matching a pattern, scoped to the current tenant.

    Automatically prepends the tenant prefix so callers don't need to know
    about the key structure.  If no tenant context is active, the pattern
    is used as-is.

    Example:
        await invalidate_cache("perms:r:admin:*")
    """
    try:
        scoped_pattern = _scoped(pattern)

        redis_client = await get_redis()
        keys = []
        async for key in redis_client.scan_iter(match=scoped_pattern):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching {scoped_pattern}")
    except redis.RedisError as e:
        logger.warning(f"Failed to invalidate cache: {e}")


class ResolutionCache:
    """Redis-backed store for Resolution objects, keyed by `resolution_key()`."""

    def __init__(self, ttl: int | None = None, prefix: str | None = None):
        self.ttl = ttl if ttl is not None else settings.permission_cache_ttl_seconds
        self.prefix = prefix or settings.permission_cache_prefix

    def key_for(self, role_id: str, group_ids: Iterable[str], override_version: int | None) -> str:
        return resolution_key(role_id, group_ids, override_version, prefix=self.prefix)

    async def get(self, key: str) -> Resolution | None:
        scoped = _scoped(key)
        try:
            redis_client = await get_redis()
            raw = await redis_client.get(scoped)
        except redis.RedisError as e:
            logger.warning(f"Redis error (falling back to uncached): {e}")
            return None

        if not raw:
            logger.debug(f"Cache MISS: {scoped}")
            return None
        logger.debug(f"Cache HIT: {scoped}")
        try:
            return load_resolution(raw)
        except (ValidationError, ValueError, KeyError, TypeError, AttributeError) as e:
            # Corrupt entry, or written before the vocabulary changed
            logger.warning(f"Discarding unreadable cache entry {scoped}: {e}")
            try:
                await redis_client.delete(scoped)
            except redis.RedisError as exc:
                logger.warning(f"Failed to delete cache entry {scoped}: {exc}")
            return None

    async def set(self, key: str, resolution: Resolution) -> None:
        scoped = _scoped(key)
        try:
            redis_client = await get_redis()
            await redis_client.setex(scoped, self.ttl, dump_resolution(resolution))
        except redis.RedisError as e:
            logger.warning(f"Redis error (resolution not cached): {e}")

    async def invalidate_role(self, role_id: str) -> None:
        await invalidate_cache(f"{self.prefix}:r:{_encode(role_id)}:*")

    async def invalidate_group(self, group_id: str) -> None:
        await invalidate_cache(f"{self.prefix}:r:*|{_encode(group_id)}|*")

    async def invalidate_all(self) -> None:
        await invalidate_cache(f"{self.prefix}:*")
