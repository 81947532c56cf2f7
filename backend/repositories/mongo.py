"""
Document backend: one MongoDB collection per relational table.

Documents carry the same integer "id" and field names as the SQL rows, so
both backends hand identical dicts to repositories.payloads.
"""

from collections import defaultdict
from typing import Callable, Iterable, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

import schemas
from repositories import payloads
from repositories.base import LedgerStore, ReadRepository, store_operation
from utils.balances import aggregate_balances, group_net_balances

mongo_operation = store_operation(PyMongoError)

NO_ID = {"_id": 0}
NEWEST_FIRST = [("created_at", DESCENDING), ("id", DESCENDING)]
NOT_DELETED = {"is_deleted": {"$ne": True}}
NOT_SETTLED = {"is_settled": {"$ne": True}}


class MongoLedgerStore(LedgerStore):
    backend_name = "mongo"

    def __init__(self, db):
        self.db = db

    @mongo_operation
    def get_participant_rows_by_user(self, user_id: int) -> list[schemas.ParticipantRow]:
        docs = self.db.expense_participants.find({"user_id": user_id, **NOT_SETTLED}, NO_ID)
        return [schemas.ParticipantRow.model_validate(d) for d in docs]

    @mongo_operation
    def get_participant_rows_by_expenses(self, expense_ids: Iterable[int]) -> list[schemas.ParticipantRow]:
        expense_ids = list(expense_ids)
        if not expense_ids:
            return []
        docs = self.db.expense_participants.find({"expense_id": {"$in": expense_ids}, **NOT_SETTLED}, NO_ID)
        return [schemas.ParticipantRow.model_validate(d) for d in docs]

    @mongo_operation
    def get_active_expenses(self, expense_ids: Iterable[int]) -> dict[int, schemas.ExpenseRow]:
        expense_ids = list(expense_ids)
        if not expense_ids:
            return {}
        docs = self.db.expenses.find({"id": {"$in": expense_ids}, **NOT_DELETED}, NO_ID)
        return {d["id"]: schemas.ExpenseRow.model_validate(d) for d in docs}

    @mongo_operation
    def get_group_expenses(self, group_id: int) -> dict[int, schemas.ExpenseRow]:
        docs = self.db.expenses.find({"group_id": group_id, **NOT_DELETED}, NO_ID)
        return {d["id"]: schemas.ExpenseRow.model_validate(d) for d in docs}

    @mongo_operation
    def get_settlements_for_user(self, user_id: int) -> list[schemas.SettlementRow]:
        docs = self.db.settlements.find({"$or": [{"from_user_id": user_id}, {"to_user_id": user_id}]}, NO_ID)
        return [schemas.SettlementRow.model_validate(d) for d in docs]

    @mongo_operation
    def get_group_settlements(self, group_id: int) -> list[schemas.SettlementRow]:
        docs = self.db.settlements.find({"group_id": group_id}, NO_ID)
        return [schemas.SettlementRow.model_validate(d) for d in docs]

    @mongo_operation
    def get_group_member_ids(self, group_id: int) -> list[int]:
        return [d["user_id"] for d in self.db.group_members.find({"group_id": group_id}, {"_id": 0, "user_id": 1})]


class MongoReadRepository(ReadRepository):
    backend_name = "mongo"

    def __init__(self, db, balance_provider: Optional[Callable[[int], dict]] = None):
        self.db = db
        self.store = MongoLedgerStore(db)
        self._balances = balance_provider or (lambda user_id: aggregate_balances(self.store, user_id))

    def _by_id(self, collection: str, ids) -> dict:
        ids = list({i for i in ids if i is not None})
        if not ids:
            return {}
        return {d["id"]: d for d in self.db[collection].find({"id": {"$in": ids}}, NO_ID)}

    def _participants_by_expense(self, expense_ids) -> dict:
        grouped = defaultdict(list)
        if not expense_ids:
            return grouped
        docs = self.db.expense_participants.find({"expense_id": {"$in": list(expense_ids)}}, NO_ID).sort("id", 1)
        for d in docs:
            grouped[d["expense_id"]].append(d)
        return grouped

    def _user_expense_filter(self, user_id: int) -> dict:
        expense_ids = self.db.expense_participants.distinct("expense_id", {"user_id": user_id})
        return {"id": {"$in": expense_ids}, **NOT_DELETED}

    def _user_settlement_filter(self, user_id: int) -> dict:
        return {"$or": [{"from_user_id": user_id}, {"to_user_id": user_id}]}

    def _friendship_filter(self, user_id: int, status: str) -> dict:
        return {"$or": [{"user_id": user_id}, {"friend_id": user_id}], "status": status}

    @mongo_operation
    def get_friends(self, user_id: int) -> dict:
        friendships = list(self.db.friends.find(self._friendship_filter(user_id, "accepted"), NO_ID).sort(NEWEST_FIRST))
        friendships = payloads.dedupe_friendships(friendships, user_id)

        users = self._by_id("users", (payloads.friend_id_of(f, user_id) for f in friendships))
        balances = self._balances(user_id) if friendships else {}

        return {"friends": [payloads.friend_item(f, user_id, users, balances) for f in friendships]}

    @mongo_operation
    def get_groups(self, user_id: int) -> dict:
        role_by_group = {
            m["group_id"]: m.get("role") for m in self.db.group_members.find({"user_id": user_id}, NO_ID)
        }
        if not role_by_group:
            return {"groups": []}

        groups = list(self.db.groups.find(
            {"id": {"$in": list(role_by_group)}, "is_active": {"$ne": False}}, NO_ID
        ).sort(NEWEST_FIRST))

        members_by_group = defaultdict(list)
        if groups:
            members = self.db.group_members.find({"group_id": {"$in": [g["id"] for g in groups]}}, NO_ID).sort("id", 1)
            for m in members:
                members_by_group[m["group_id"]].append(m)

        users = self._by_id("users", (m["user_id"] for rows in members_by_group.values() for m in rows))

        result = []
        for group in groups:
            members = members_by_group.get(group["id"], [])
            net = group_net_balances(self.store, group["id"], [m["user_id"] for m in members])
            result.append(payloads.group_item(
                group, members, users, role_by_group.get(group["id"]) or "member", net.get(user_id, 0.0)
            ))
        return {"groups": result}

    @mongo_operation
    def get_expenses(self, user_id: int, query: schemas.ExpenseQuery) -> dict:
        criteria = self._user_expense_filter(user_id)
        if query.category:
            criteria["category"] = query.category
        if query.group_id:
            criteria["group_id"] = query.group_id
        date_range = {}
        if query.start_date:
            date_range["$gte"] = query.start_date
        if query.end_date:
            date_range["$lte"] = query.end_date
        if date_range:
            criteria["date"] = date_range

        total = self.db.expenses.count_documents(criteria)
        expenses = list(self.db.expenses.find(criteria, NO_ID).sort(
            [("date", DESCENDING)] + NEWEST_FIRST
        ).skip((query.page - 1) * query.limit).limit(query.limit))

        participants = self._participants_by_expense([e["id"] for e in expenses])
        users = self._by_id(
            "users",
            [e.get("created_by_id") for e in expenses] + [p["user_id"] for rows in participants.values() for p in rows]
        )
        groups = self._by_id("groups", (e.get("group_id") for e in expenses))

        items = [payloads.expense_item(e, participants.get(e["id"], []), users, groups) for e in expenses]
        return payloads.paginated("expenses", items, query.page, query.limit, total)

    @mongo_operation
    def get_settlements(self, user_id: int, query: schemas.SettlementQuery) -> dict:
        if query.friend_id:
            criteria = {"$or": [
                {"from_user_id": user_id, "to_user_id": query.friend_id},
                {"from_user_id": query.friend_id, "to_user_id": user_id},
            ]}
        else:
            criteria = self._user_settlement_filter(user_id)
        if query.group_id:
            criteria["group_id"] = query.group_id

        total = self.db.settlements.count_documents(criteria)
        settlements = list(self.db.settlements.find(criteria, NO_ID).sort(
            [("date", DESCENDING)] + NEWEST_FIRST
        ).skip((query.page - 1) * query.limit).limit(query.limit))

        users = self._by_id("users", [s["from_user_id"] for s in settlements] + [s["to_user_id"] for s in settlements])
        groups = self._by_id("groups", (s.get("group_id") for s in settlements))

        items = [payloads.settlement_item(s, users, groups) for s in settlements]
        return payloads.paginated("settlements", items, query.page, query.limit, total)

    @mongo_operation
    def get_dashboard_activity(self, user_id: int) -> dict:
        expenses = list(self.db.expenses.find(self._user_expense_filter(user_id), NO_ID)
                        .sort(NEWEST_FIRST).limit(payloads.DASHBOARD_EXPENSE_LIMIT))
        settlements = list(self.db.settlements.find(self._user_settlement_filter(user_id), NO_ID)
                           .sort(NEWEST_FIRST).limit(payloads.DASHBOARD_SETTLEMENT_LIMIT))
        friendships = list(self.db.friends.find(self._friendship_filter(user_id, "accepted"), NO_ID)
                           .sort(NEWEST_FIRST).limit(payloads.DASHBOARD_FRIEND_LIMIT))

        users = self._by_id(
            "users",
            [e.get("created_by_id") for e in expenses]
            + [s["from_user_id"] for s in settlements] + [s["to_user_id"] for s in settlements]
            + [f["user_id"] for f in friendships] + [f["friend_id"] for f in friendships]
        )
        groups = self._by_id("groups", (e.get("group_id") for e in expenses))

        return payloads.dashboard_activity(user_id, expenses, settlements, friendships, users, groups)

    @mongo_operation
    def get_activities(self, user_id: int, page: int = 1, limit: int = 20) -> dict:
        fetch_limit = payloads.activity_fetch_limit(page, limit)

        expenses = list(self.db.expenses.find(self._user_expense_filter(user_id), NO_ID)
                        .sort(NEWEST_FIRST).limit(fetch_limit))
        settlements = list(self.db.settlements.find(self._user_settlement_filter(user_id), NO_ID)
                           .sort(NEWEST_FIRST).limit(fetch_limit))
        requests = list(self.db.friends.find(self._friendship_filter(user_id, "pending"), NO_ID)
                        .sort(NEWEST_FIRST).limit(fetch_limit))
        participants = self._participants_by_expense([e["id"] for e in expenses])

        users = self._by_id(
            "users",
            [e.get("created_by_id") for e in expenses]
            + [p["user_id"] for rows in participants.values() for p in rows]
            + [s["from_user_id"] for s in settlements] + [s["to_user_id"] for s in settlements]
            + [r["user_id"] for r in requests] + [r["friend_id"] for r in requests]
        )
        groups = self._by_id("groups", [e.get("group_id") for e in expenses] + [s.get("group_id") for s in settlements])

        return payloads.activity_feed(expenses, participants, settlements, requests, users, groups, page, limit)
