"""
Shadow reads: serve every read from the primary store and replay it against
the secondary store in the background, logging when the two disagree.

Only the length of the top-level list is compared. The secondary never
affects the response: its result, latency and errors are all confined to
the background worker.
"""

import logging
from concurrent.futures import Executor
from typing import Optional

import schemas
from repositories.base import ReadRepository

logger = logging.getLogger(__name__)

COUNTED_KEYS = ("friends", "groups", "expenses", "activities", "settlements")


def extract_primary_count(payload) -> Optional[int]:
    if not isinstance(payload, dict):
        return None
    for key in COUNTED_KEYS:
        if isinstance(payload.get(key), list):
            return len(payload[key])
    return None


class ShadowReadRepository(ReadRepository):
    backend_name = "shadow"

    def __init__(self, primary: ReadRepository, secondary: ReadRepository, executor: Executor):
        self.primary = primary
        self.secondary = secondary
        self.executor = executor

    def _compare(self, route_name: str, user_id: int, request_key: str, primary_payload, read_secondary) -> None:
        try:
            secondary_payload = read_secondary()
        except Exception as e:
            logger.warning(
                "Shadow read error route=%s user_id=%s request=%s backend=%s: %s",
                route_name, user_id, request_key, self.secondary.backend_name, e
            )
            return

        primary_count = extract_primary_count(primary_payload)
        secondary_count = extract_primary_count(secondary_payload)
        if primary_count != secondary_count:
            logger.warning(
                "Shadow read mismatch route=%s user_id=%s request=%s %s_count=%s %s_count=%s",
                route_name, user_id, request_key,
                self.primary.backend_name, primary_count,
                self.secondary.backend_name, secondary_count
            )

    def _read(self, route_name: str, user_id: int, request_key: str, read_primary, read_secondary):
        payload = read_primary()
        try:
            self.executor.submit(self._compare, route_name, user_id, request_key, payload, read_secondary)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning("Shadow read for %s not scheduled: %s", route_name, e)
        return payload

    def get_friends(self, user_id: int) -> dict:
        return self._read(
            "friends", user_id, "",
            lambda: self.primary.get_friends(user_id),
            lambda: self.secondary.get_friends(user_id),
        )

    def get_groups(self, user_id: int) -> dict:
        return self._read(
            "groups", user_id, "",
            lambda: self.primary.get_groups(user_id),
            lambda: self.secondary.get_groups(user_id),
        )

    def get_expenses(self, user_id: int, query: schemas.ExpenseQuery) -> dict:
        return self._read(
            "expenses", user_id, query.model_dump_json(),
            lambda: self.primary.get_expenses(user_id, query),
            lambda: self.secondary.get_expenses(user_id, query),
        )

    def get_settlements(self, user_id: int, query: schemas.SettlementQuery) -> dict:
        return self._read(
            "settlements", user_id, query.model_dump_json(),
            lambda: self.primary.get_settlements(user_id, query),
            lambda: self.secondary.get_settlements(user_id, query),
        )

    def get_dashboard_activity(self, user_id: int) -> dict:
        return self._read(
            "dashboard-activity", user_id, "",
            lambda: self.primary.get_dashboard_activity(user_id),
            lambda: self.secondary.get_dashboard_activity(user_id),
        )

    def get_activities(self, user_id: int, page: int = 1, limit: int = 20) -> dict:
        return self._read(
            "activities", user_id, f"page={page}&limit={limit}",
            lambda: self.primary.get_activities(user_id, page, limit),
            lambda: self.secondary.get_activities(user_id, page, limit),
        )
