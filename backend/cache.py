"""
Read-through cache in front of the balance engine and the read repositories.

The cache is an optimization, never a dependency: every backend failure is
logged and swallowed, and the caller gets a freshly computed value instead.

Keys are user scoped and deterministic:

    {prefix}:{scope}:user:{user_id}:{sha1(input)}

Every write also adds its key to a registry set {prefix}:reg:{scope}:{user_id}
so invalidation can delete everything for a user and scope without scanning
the keyspace.
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

from cache_scopes import REGISTRY_TTL_SECONDS
from config import CACHE_PREFIX
from exceptions import CacheError

logger = logging.getLogger(__name__)

HIT = "HIT"
MISS = "MISS"

# How long to stop talking to a failing backend before trying again
RETRY_AFTER_SECONDS = 60


def build_user_scoped_cache_key(scope: str, user_id, input: str = "", prefix: str = CACHE_PREFIX) -> str:
    digest = hashlib.sha1(input.encode("utf-8")).hexdigest()
    return f"{prefix}:{scope}:user:{user_id}:{digest}"


def registry_key(scope: str, user_id, prefix: str = CACHE_PREFIX) -> str:
    return f"{prefix}:reg:{scope}:{user_id}"


def parse_key_parts(key: str, prefix: str = CACHE_PREFIX) -> Optional[tuple[str, str]]:
    """Extract (scope, user_id) from a key built by build_user_scoped_cache_key."""
    if not key.startswith(prefix + ":"):
        return None
    parts = key[len(prefix) + 1:].split(":")
    if len(parts) < 4 or parts[1] != "user":
        return None
    scope, user_id = parts[0], parts[2]
    if not scope or not user_id:
        return None
    return scope, user_id


@dataclass
class CacheResult:
    data: Any
    cache_status: str


class LedgerCache:
    """
    TTL cache over a Redis-compatible client.

    The client is injected so one long-lived handle serves the whole app and
    tests can pass a fake. With client=None every lookup goes to the loader.
    """

    def __init__(
        self,
        client=None,
        prefix: str = CACHE_PREFIX,
        registry_ttl: int = REGISTRY_TTL_SECONDS,
        retry_after: float = RETRY_AFTER_SECONDS,
    ):
        self.client = client
        self.prefix = prefix
        self.registry_ttl = registry_ttl
        self.retry_after = retry_after
        self._disabled_until = 0.0

    @property
    def enabled(self) -> bool:
        return self.client is not None and time.monotonic() >= self._disabled_until

    def build_key(self, scope: str, user_id, input: str = "") -> str:
        return build_user_scoped_cache_key(scope, user_id, input, prefix=self.prefix)

    def _backend_failed(self, action: str, error: Exception) -> None:
        logger.warning("Cache %s failed, continuing without cache: %s", action, error)
        # Unlocked: concurrent failures only race on which deadline wins
        self._disabled_until = time.monotonic() + self.retry_after

    def _read(self, key: str) -> Optional[str]:
        try:
            return self.client.get(key)
        except Exception as e:
            raise CacheError(f"read of {key} failed") from e

    def _write(self, key: str, ttl: int, payload: str) -> None:
        try:
            pipe = self.client.pipeline(transaction=False)
            pipe.set(key, payload, ex=ttl)
            parsed = parse_key_parts(key, self.prefix)
            if parsed:
                reg_key = registry_key(parsed[0], parsed[1], self.prefix)
                pipe.sadd(reg_key, key)
                pipe.expire(reg_key, self.registry_ttl)
            pipe.execute()
        except Exception as e:
            raise CacheError(f"write of {key} failed") from e

    def get_or_set_with_meta(self, key: str, ttl: int, loader: Callable[[], Any]) -> CacheResult:
        """
        Return the cached value for key, or call loader and cache its result.

        Loader exceptions propagate; cache exceptions never do.
        """
        if self.enabled:
            try:
                cached = self._read(key)
                if cached is not None:
                    return CacheResult(data=json.loads(cached), cache_status=HIT)
            except CacheError as e:
                self._backend_failed("read", e.__cause__ or e)
            except ValueError as e:
                logger.warning("Discarding undecodable cache entry %s: %s", key, e)

        fresh = loader()

        if self.enabled:
            try:
                self._write(key, ttl, json.dumps(fresh))
            except CacheError as e:
                self._backend_failed("write", e.__cause__ or e)
            except (TypeError, ValueError) as e:
                logger.warning("Value for %s is not JSON serializable, not caching: %s", key, e)

        return CacheResult(data=fresh, cache_status=MISS)

    def get_or_set(self, key: str, ttl: int, loader: Callable[[], Any]) -> Any:
        return self.get_or_set_with_meta(key, ttl, loader).data

    def invalidate(self, user_ids: Iterable, scopes: Iterable[str]) -> None:
        """
        Drop every cached entry for the given users and scopes.

        One SMEMBERS per user/scope pair and a single DEL for the union of the
        tracked keys plus the registry keys themselves.
        """
        scopes = list(dict.fromkeys(scopes))
        users = list(dict.fromkeys(str(u) for u in user_ids if u is not None and str(u)))
        if not users or not scopes or self.client is None:
            return

        try:
            keys_to_delete = []
            for user_id in users:
                for scope in scopes:
                    reg_key = registry_key(scope, user_id, self.prefix)
                    keys_to_delete.extend(self.client.smembers(reg_key) or ())
                    keys_to_delete.append(reg_key)
            if keys_to_delete:
                self.client.delete(*keys_to_delete)
        except Exception as e:
            logger.warning("Cache invalidation failed for users=%s scopes=%s: %s", users, scopes, e)
