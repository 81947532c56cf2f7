"""Cache scopes and the scope sets each kind of mutation must invalidate."""

EXPENSES = "expenses"
FRIENDS = "friends"
GROUPS = "groups"
ACTIVITIES = "activities"
DASHBOARD_ACTIVITY = "dashboard-activity"
SETTLEMENTS = "settlements"
FRIEND_TRANSACTIONS = "friend-transactions"
FRIEND_DETAILS = "friend-details"
USER_BALANCE = "user-balance"
ANALYTICS = "analytics"

# Data TTLs in seconds: short enough that staleness after a write is tolerable,
# long enough to absorb bursts of reads.
CACHE_TTL = {
    EXPENSES: 180,
    FRIENDS: 180,
    GROUPS: 180,
    ACTIVITIES: 120,
    DASHBOARD_ACTIVITY: 120,
    SETTLEMENTS: 180,
    FRIEND_TRANSACTIONS: 120,
    FRIEND_DETAILS: 120,
    USER_BALANCE: 120,
    ANALYTICS: 180,
}

# Registry sets outlive every data key they track, then expire on their own
REGISTRY_TTL_SECONDS = max(CACHE_TTL.values()) + 60

ALL_SCOPES = tuple(CACHE_TTL)

EXPENSE_MUTATION_CACHE_SCOPES = (
    EXPENSES,
    FRIENDS,
    GROUPS,
    ACTIVITIES,
    DASHBOARD_ACTIVITY,
    FRIEND_TRANSACTIONS,
    FRIEND_DETAILS,
    USER_BALANCE,
    ANALYTICS,
)

SETTLEMENT_MUTATION_CACHE_SCOPES = (SETTLEMENTS,) + EXPENSE_MUTATION_CACHE_SCOPES

FRIEND_MUTATION_CACHE_SCOPES = (
    FRIENDS,
    GROUPS,
    ACTIVITIES,
    DASHBOARD_ACTIVITY,
    FRIEND_TRANSACTIONS,
    FRIEND_DETAILS,
    USER_BALANCE,
    SETTLEMENTS,
    ANALYTICS,
)

GROUP_MUTATION_CACHE_SCOPES = (
    GROUPS,
    EXPENSES,
    ACTIVITIES,
    DASHBOARD_ACTIVITY,
    FRIEND_DETAILS,
    USER_BALANCE,
    ANALYTICS,
)


def ttl_for(scope: str) -> int:
    return CACHE_TTL.get(scope, min(CACHE_TTL.values()))
