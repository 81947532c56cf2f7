"""Relational backend: SQLAlchemy session over the tables in models.py."""

from collections import defaultdict
from typing import Callable, Iterable, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import models
import schemas
from repositories import payloads
from repositories.base import LedgerStore, ReadRepository, store_operation
from utils.balances import aggregate_balances, group_net_balances

sql_operation = store_operation(SQLAlchemyError)


def _row(obj) -> dict:
    return {column.name: getattr(obj, column.name) for column in obj.__table__.columns}


class SqlLedgerStore(LedgerStore):
    backend_name = "sql"

    def __init__(self, db: Session):
        self.db = db

    @sql_operation
    def get_participant_rows_by_user(self, user_id: int) -> list[schemas.ParticipantRow]:
        rows = self.db.query(models.ExpenseParticipant).filter(
            models.ExpenseParticipant.user_id == user_id,
            models.ExpenseParticipant.is_settled == False
        ).all()
        return [schemas.ParticipantRow.model_validate(r) for r in rows]

    @sql_operation
    def get_participant_rows_by_expenses(self, expense_ids: Iterable[int]) -> list[schemas.ParticipantRow]:
        expense_ids = list(expense_ids)
        if not expense_ids:
            return []
        rows = self.db.query(models.ExpenseParticipant).filter(
            models.ExpenseParticipant.expense_id.in_(expense_ids),
            models.ExpenseParticipant.is_settled == False
        ).all()
        return [schemas.ParticipantRow.model_validate(r) for r in rows]

    @sql_operation
    def get_active_expenses(self, expense_ids: Iterable[int]) -> dict[int, schemas.ExpenseRow]:
        expense_ids = list(expense_ids)
        if not expense_ids:
            return {}
        rows = self.db.query(models.Expense).filter(
            models.Expense.id.in_(expense_ids),
            models.Expense.is_deleted == False
        ).all()
        return {r.id: schemas.ExpenseRow.model_validate(r) for r in rows}

    @sql_operation
    def get_group_expenses(self, group_id: int) -> dict[int, schemas.ExpenseRow]:
        rows = self.db.query(models.Expense).filter(
            models.Expense.group_id == group_id,
            models.Expense.is_deleted == False
        ).all()
        return {r.id: schemas.ExpenseRow.model_validate(r) for r in rows}

    @sql_operation
    def get_settlements_for_user(self, user_id: int) -> list[schemas.SettlementRow]:
        rows = self.db.query(models.Settlement).filter(
            (models.Settlement.from_user_id == user_id) | (models.Settlement.to_user_id == user_id)
        ).all()
        return [schemas.SettlementRow.model_validate(r) for r in rows]

    @sql_operation
    def get_group_settlements(self, group_id: int) -> list[schemas.SettlementRow]:
        rows = self.db.query(models.Settlement).filter(models.Settlement.group_id == group_id).all()
        return [schemas.SettlementRow.model_validate(r) for r in rows]

    @sql_operation
    def get_group_member_ids(self, group_id: int) -> list[int]:
        rows = self.db.query(models.GroupMember.user_id).filter(models.GroupMember.group_id == group_id).all()
        return [r.user_id for r in rows]


class SqlReadRepository(ReadRepository):
    backend_name = "sql"

    def __init__(self, db: Session, balance_provider: Optional[Callable[[int], dict]] = None):
        self.db = db
        self.store = SqlLedgerStore(db)
        self._balances = balance_provider or (lambda user_id: aggregate_balances(self.store, user_id))

    def _users(self, user_ids) -> dict:
        user_ids = {u for u in user_ids if u is not None}
        if not user_ids:
            return {}
        rows = self.db.query(models.User).filter(models.User.id.in_(user_ids)).all()
        return {r.id: _row(r) for r in rows}

    def _groups(self, group_ids) -> dict:
        group_ids = {g for g in group_ids if g is not None}
        if not group_ids:
            return {}
        rows = self.db.query(models.Group).filter(models.Group.id.in_(group_ids)).all()
        return {r.id: _row(r) for r in rows}

    def _participants_by_expense(self, expense_ids) -> dict:
        grouped = defaultdict(list)
        if not expense_ids:
            return grouped
        rows = self.db.query(models.ExpenseParticipant).filter(
            models.ExpenseParticipant.expense_id.in_(expense_ids)
        ).order_by(models.ExpenseParticipant.id).all()
        for r in rows:
            grouped[r.expense_id].append(_row(r))
        return grouped

    def _user_expense_query(self, user_id: int):
        participant_expenses = select(models.ExpenseParticipant.expense_id).where(
            models.ExpenseParticipant.user_id == user_id
        )
        return self.db.query(models.Expense).filter(
            models.Expense.id.in_(participant_expenses),
            models.Expense.is_deleted == False
        )

    def _user_settlement_query(self, user_id: int):
        return self.db.query(models.Settlement).filter(
            (models.Settlement.from_user_id == user_id) | (models.Settlement.to_user_id == user_id)
        )

    def _friendship_query(self, user_id: int, status: str):
        return self.db.query(models.Friendship).filter(
            (models.Friendship.user_id == user_id) | (models.Friendship.friend_id == user_id),
            models.Friendship.status == status
        )

    @sql_operation
    def get_friends(self, user_id: int) -> dict:
        friendships = self._friendship_query(user_id, "accepted").order_by(
            models.Friendship.created_at.desc(), models.Friendship.id.desc()
        ).all()
        friendships = payloads.dedupe_friendships([_row(f) for f in friendships], user_id)

        users = self._users(payloads.friend_id_of(f, user_id) for f in friendships)
        balances = self._balances(user_id) if friendships else {}

        return {"friends": [payloads.friend_item(f, user_id, users, balances) for f in friendships]}

    @sql_operation
    def get_groups(self, user_id: int) -> dict:
        memberships = self.db.query(models.GroupMember).filter(models.GroupMember.user_id == user_id).all()
        role_by_group = {m.group_id: m.role for m in memberships}
        if not role_by_group:
            return {"groups": []}

        groups = self.db.query(models.Group).filter(
            models.Group.id.in_(list(role_by_group)),
            models.Group.is_active == True
        ).order_by(models.Group.created_at.desc(), models.Group.id.desc()).all()

        members_by_group = defaultdict(list)
        if groups:
            members = self.db.query(models.GroupMember).filter(
                models.GroupMember.group_id.in_([g.id for g in groups])
            ).order_by(models.GroupMember.id).all()
            for m in members:
                members_by_group[m.group_id].append(_row(m))

        users = self._users(m["user_id"] for rows in members_by_group.values() for m in rows)

        result = []
        for group in groups:
            members = members_by_group.get(group.id, [])
            net = group_net_balances(self.store, group.id, [m["user_id"] for m in members])
            result.append(payloads.group_item(
                _row(group), members, users, role_by_group.get(group.id) or "member", net.get(user_id, 0.0)
            ))
        return {"groups": result}

    @sql_operation
    def get_expenses(self, user_id: int, query: schemas.ExpenseQuery) -> dict:
        q = self._user_expense_query(user_id)
        if query.category:
            q = q.filter(models.Expense.category == query.category)
        if query.group_id:
            q = q.filter(models.Expense.group_id == query.group_id)
        if query.start_date:
            q = q.filter(models.Expense.date >= query.start_date)
        if query.end_date:
            q = q.filter(models.Expense.date <= query.end_date)

        total = q.count()
        expenses = q.order_by(
            models.Expense.date.desc(), models.Expense.created_at.desc(), models.Expense.id.desc()
        ).offset((query.page - 1) * query.limit).limit(query.limit).all()
        expenses = [_row(e) for e in expenses]

        participants = self._participants_by_expense([e["id"] for e in expenses])
        users = self._users(
            [e["created_by_id"] for e in expenses] + [p["user_id"] for rows in participants.values() for p in rows]
        )
        groups = self._groups(e["group_id"] for e in expenses)

        items = [payloads.expense_item(e, participants.get(e["id"], []), users, groups) for e in expenses]
        return payloads.paginated("expenses", items, query.page, query.limit, total)

    @sql_operation
    def get_settlements(self, user_id: int, query: schemas.SettlementQuery) -> dict:
        q = self._user_settlement_query(user_id)
        if query.group_id:
            q = q.filter(models.Settlement.group_id == query.group_id)
        if query.friend_id:
            q = q.filter(or_(
                and_(models.Settlement.from_user_id == user_id, models.Settlement.to_user_id == query.friend_id),
                and_(models.Settlement.from_user_id == query.friend_id, models.Settlement.to_user_id == user_id),
            ))

        total = q.count()
        settlements = q.order_by(
            models.Settlement.date.desc(), models.Settlement.created_at.desc(), models.Settlement.id.desc()
        ).offset((query.page - 1) * query.limit).limit(query.limit).all()
        settlements = [_row(s) for s in settlements]

        users = self._users([s["from_user_id"] for s in settlements] + [s["to_user_id"] for s in settlements])
        groups = self._groups(s["group_id"] for s in settlements)

        items = [payloads.settlement_item(s, users, groups) for s in settlements]
        return payloads.paginated("settlements", items, query.page, query.limit, total)

    @sql_operation
    def get_dashboard_activity(self, user_id: int) -> dict:
        expenses = self._user_expense_query(user_id).order_by(
            models.Expense.created_at.desc(), models.Expense.id.desc()
        ).limit(payloads.DASHBOARD_EXPENSE_LIMIT).all()
        settlements = self._user_settlement_query(user_id).order_by(
            models.Settlement.created_at.desc(), models.Settlement.id.desc()
        ).limit(payloads.DASHBOARD_SETTLEMENT_LIMIT).all()
        friendships = self._friendship_query(user_id, "accepted").order_by(
            models.Friendship.created_at.desc(), models.Friendship.id.desc()
        ).limit(payloads.DASHBOARD_FRIEND_LIMIT).all()

        expenses = [_row(e) for e in expenses]
        settlements = [_row(s) for s in settlements]
        friendships = [_row(f) for f in friendships]

        users = self._users(
            [e["created_by_id"] for e in expenses]
            + [s["from_user_id"] for s in settlements] + [s["to_user_id"] for s in settlements]
            + [f["user_id"] for f in friendships] + [f["friend_id"] for f in friendships]
        )
        groups = self._groups(e["group_id"] for e in expenses)

        return payloads.dashboard_activity(user_id, expenses, settlements, friendships, users, groups)

    @sql_operation
    def get_activities(self, user_id: int, page: int = 1, limit: int = 20) -> dict:
        fetch_limit = payloads.activity_fetch_limit(page, limit)

        expenses = self._user_expense_query(user_id).order_by(
            models.Expense.created_at.desc(), models.Expense.id.desc()
        ).limit(fetch_limit).all()
        settlements = self._user_settlement_query(user_id).order_by(
            models.Settlement.created_at.desc(), models.Settlement.id.desc()
        ).limit(fetch_limit).all()
        requests = self._friendship_query(user_id, "pending").order_by(
            models.Friendship.created_at.desc(), models.Friendship.id.desc()
        ).limit(fetch_limit).all()

        expenses = [_row(e) for e in expenses]
        settlements = [_row(s) for s in settlements]
        requests = [_row(r) for r in requests]
        participants = self._participants_by_expense([e["id"] for e in expenses])

        users = self._users(
            [e["created_by_id"] for e in expenses]
            + [p["user_id"] for rows in participants.values() for p in rows]
            + [s["from_user_id"] for s in settlements] + [s["to_user_id"] for s in settlements]
            + [r["user_id"] for r in requests] + [r["friend_id"] for r in requests]
        )
        groups = self._groups([e["group_id"] for e in expenses] + [s["group_id"] for s in settlements])

        return payloads.activity_feed(expenses, participants, settlements, requests, users, groups, page, limit)
