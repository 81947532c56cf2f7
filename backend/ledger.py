"""
LedgerService: the balance engine behind the cache.

Wraps the pure functions in utils/ with read-through caching. Balance keys
live in the user-balance scope, group settle-up plans in the groups scope,
so the scope lists in cache_scopes.py invalidate them after writes.
"""

import logging
from typing import Callable, Dict, Iterable, Optional

import cache_scopes
import schemas
from cache import CacheResult, LedgerCache
from repositories.base import LedgerStore
from utils import balances, debts, splits

logger = logging.getLogger(__name__)


class LedgerService:
    def __init__(self, store: LedgerStore, cache: Optional[LedgerCache] = None):
        self.store = store
        self.cache = cache or LedgerCache()

    def cached_with_meta(self, scope: str, user_id, input: str, loader: Callable) -> CacheResult:
        """Read-through helper for callers that cache their own payloads."""
        key = self.cache.build_key(scope, user_id, input)
        return self.cache.get_or_set_with_meta(key, cache_scopes.ttl_for(scope), loader)

    def cached(self, scope: str, user_id, input: str, loader: Callable):
        return self.cached_with_meta(scope, user_id, input, loader).data

    def compute_split(self, amount, participant_ids, payer_id, method=schemas.SplitMethod.EQUAL, method_params=None):
        return splits.compute_split(amount, participant_ids, payer_id, method, method_params)

    def pairwise_balance(self, user_a: int, user_b: int) -> float:
        """Positive when user_b owes user_a."""
        if user_a == user_b:
            return 0.0

        # Each direction is its own entry; multi-party expenses make them asymmetric
        return self.cached(
            cache_scopes.USER_BALANCE, user_a, f"pair:{user_a}:{user_b}",
            lambda: balances.pairwise_balance(self.store, user_a, user_b)
        )

    def aggregate_balances(self, user_id: int) -> Dict[int, float]:
        # JSON object keys are strings, so the map is cached as [id, amount] pairs
        pairs = self.cached(
            cache_scopes.USER_BALANCE, user_id, "aggregate",
            lambda: [[other_id, amount] for other_id, amount in balances.aggregate_balances(self.store, user_id).items()]
        )
        return {int(other_id): float(amount) for other_id, amount in pairs}

    def simplify_debts(self, user_ids: Iterable[int]) -> dict:
        """
        Settle-up plan among a set of users.

        Net positions come from the expenses and settlements closed within
        the set, so they sum to zero.
        """
        return debts.simplify_debts(balances.set_net_balances(self.store, user_ids))

    def group_simplified_debts(self, group_id: int, viewer_id: Optional[int] = None) -> dict:
        """
        Settle-up plan for a group from each member's paid - owed position.

        Cached in the viewer's groups scope when a viewer is given.
        """
        def load():
            member_ids = self.store.get_group_member_ids(group_id)
            return debts.simplify_debts(balances.group_net_balances(self.store, group_id, member_ids))

        if viewer_id is None:
            return load()
        return self.cached(cache_scopes.GROUPS, viewer_id, f"debts:{group_id}", load)

    def invalidate(self, user_ids: Iterable, scopes: Iterable[str]) -> None:
        user_ids = list(user_ids)
        scopes = list(scopes)
        logger.debug("Invalidating scopes %s for users %s", scopes, user_ids)
        self.cache.invalidate(user_ids, scopes)
