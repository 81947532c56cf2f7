"""Store-agnostic interfaces implemented by every backing store."""

import functools
from abc import ABC, abstractmethod
from typing import Iterable

import schemas
from exceptions import StoreError


def store_operation(backend_errors):
    """Re-raise the given driver errors as StoreError tagged with backend and method name."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, *args, **kwargs):
            try:
                return fn(self, *args, **kwargs)
            except backend_errors as e:
                raise StoreError(self.backend_name, fn.__name__, e) from e
        return wrapper
    return decorator


class LedgerStore(ABC):
    """
    The queries the balance aggregator needs from a backing store.

    Participant queries return unsettled rows only. Expense queries return
    non-deleted expenses only. Implementations raise StoreError on failure.
    """

    backend_name = "unknown"

    @abstractmethod
    def get_participant_rows_by_user(self, user_id: int) -> list[schemas.ParticipantRow]:
        ...

    @abstractmethod
    def get_participant_rows_by_expenses(self, expense_ids: Iterable[int]) -> list[schemas.ParticipantRow]:
        ...

    @abstractmethod
    def get_active_expenses(self, expense_ids: Iterable[int]) -> dict[int, schemas.ExpenseRow]:
        """Non-deleted expenses among expense_ids, keyed by id. Missing ids are simply absent."""

    @abstractmethod
    def get_group_expenses(self, group_id: int) -> dict[int, schemas.ExpenseRow]:
        ...

    @abstractmethod
    def get_settlements_for_user(self, user_id: int) -> list[schemas.SettlementRow]:
        """Settlements where the user is either the payer or the payee."""

    @abstractmethod
    def get_group_settlements(self, group_id: int) -> list[schemas.SettlementRow]:
        ...

    @abstractmethod
    def get_group_member_ids(self, group_id: int) -> list[int]:
        ...


class ReadRepository(ABC):
    """
    Read model served to the request layer.

    Every method returns a plain dict whose top-level list ("friends",
    "groups", "expenses", "settlements" or "activities") is what shadow
    mode compares between stores.
    """

    backend_name = "unknown"

    @abstractmethod
    def get_friends(self, user_id: int) -> dict:
        ...

    @abstractmethod
    def get_groups(self, user_id: int) -> dict:
        ...

    @abstractmethod
    def get_expenses(self, user_id: int, query: schemas.ExpenseQuery) -> dict:
        ...

    @abstractmethod
    def get_settlements(self, user_id: int, query: schemas.SettlementQuery) -> dict:
        ...

    @abstractmethod
    def get_dashboard_activity(self, user_id: int) -> dict:
        ...

    @abstractmethod
    def get_activities(self, user_id: int, page: int = 1, limit: int = 20) -> dict:
        ...
