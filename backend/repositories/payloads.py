"""
Response shapes shared by every read backend.

Backends fetch rows as plain dicts keyed by column name and hand them here,
so the same logical data produces the same payload whichever store served
it. Everything returned is JSON-ready (datetimes become ISO strings).
"""

from datetime import datetime
from typing import Optional

import schemas

DASHBOARD_EXPENSE_LIMIT = 12
DASHBOARD_SETTLEMENT_LIMIT = 8
DASHBOARD_FRIEND_LIMIT = 3
DASHBOARD_ACTIVITY_LIMIT = 20
ACTIVITY_FETCH_CAP = 200


def iso(value) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def activity_fetch_limit(page: int, limit: int) -> int:
    return min(ACTIVITY_FETCH_CAP, page * limit + limit)


def user_ref(users: dict, user_id) -> Optional[dict]:
    if user_id is None:
        return None
    user = users.get(user_id)
    if not user:
        return {"id": user_id, "name": "Unknown User", "email": None}
    return {"id": user["id"], "name": user.get("full_name") or user.get("email"), "email": user.get("email")}


def group_ref(groups: dict, group_id) -> Optional[dict]:
    if group_id is None:
        return None
    group = groups.get(group_id)
    return {"id": group_id, "name": group["name"] if group else "Unknown Group"}


def friend_id_of(friendship: dict, user_id: int):
    return friendship["friend_id"] if friendship["user_id"] == user_id else friendship["user_id"]


def friend_item(friendship: dict, user_id: int, users: dict, balances: dict) -> dict:
    other_id = friend_id_of(friendship, user_id)
    return {
        "id": friendship["id"],
        "friend": user_ref(users, other_id),
        "balance": balances.get(other_id, 0.0),
        "friendship_date": iso(friendship.get("created_at")),
    }


def dedupe_friendships(friendships: list[dict], user_id: int) -> list[dict]:
    """A pair can be stored in both directions; keep the first row per friend."""
    seen = set()
    unique = []
    for friendship in friendships:
        other_id = friend_id_of(friendship, user_id)
        if other_id in seen:
            continue
        seen.add(other_id)
        unique.append(friendship)
    return unique


def group_item(group: dict, members: list[dict], users: dict, user_role: str, balance: float) -> dict:
    return {
        "id": group["id"],
        "name": group["name"],
        "description": group.get("description"),
        "created_by_id": group.get("created_by_id"),
        "created_at": iso(group.get("created_at")),
        "member_count": len(members),
        "members": [
            {**user_ref(users, m["user_id"]), "role": m.get("role") or "member"}
            for m in members
        ],
        "user_role": user_role,
        "balance": balance,
    }


def participant_item(participant: dict, users: dict) -> dict:
    return {
        "user": user_ref(users, participant["user_id"]),
        "paid_amount": float(participant.get("paid_amount") or 0),
        "owed_amount": float(participant.get("owed_amount") or 0),
        "is_settled": bool(participant.get("is_settled")),
    }


def expense_item(expense: dict, participants: list[dict], users: dict, groups: dict) -> dict:
    return {
        "id": expense["id"],
        "description": expense.get("description"),
        "amount": float(expense["amount"]),
        "currency": expense.get("currency"),
        "category": expense.get("category"),
        "date": iso(expense.get("date")),
        "created_by": user_ref(users, expense.get("created_by_id")),
        "group": group_ref(groups, expense.get("group_id")),
        "created_at": iso(expense.get("created_at")),
        "updated_at": iso(expense.get("updated_at")),
        "participants": [participant_item(p, users) for p in participants],
    }


def settlement_item(settlement: dict, users: dict, groups: dict) -> dict:
    return {
        "id": settlement["id"],
        "from_user": user_ref(users, settlement["from_user_id"]),
        "to_user": user_ref(users, settlement["to_user_id"]),
        "amount": float(settlement["amount"]),
        "currency": settlement.get("currency"),
        "date": iso(settlement.get("date")),
        "group": group_ref(groups, settlement.get("group_id")),
        "notes": settlement.get("notes"),
        "created_at": iso(settlement.get("created_at")),
    }


def paginated(key: str, items: list, page: int, limit: int, total: int) -> dict:
    return {key: items, "pagination": schemas.Pagination.build(page, limit, total).model_dump()}


def _sort_newest_first(activities: list[dict], field: str) -> list[dict]:
    # ISO strings of naive UTC datetimes sort chronologically
    return sorted(activities, key=lambda a: a.get(field) or "", reverse=True)


def dashboard_activity(
    user_id: int,
    expenses: list[dict],
    settlements: list[dict],
    friendships: list[dict],
    users: dict,
    groups: dict,
) -> dict:
    activities = []

    for expense in expenses:
        creator = user_ref(users, expense.get("created_by_id"))
        group = group_ref(groups, expense.get("group_id"))
        if group:
            description = f'{creator["name"]} added "{expense.get("description")}" in {group["name"]}'
        else:
            description = f'{creator["name"]} added "{expense.get("description")}" with friends'
        activities.append({
            "id": expense["id"],
            "type": "expense_added",
            "expense_type": "group" if group else "non-group",
            "description": description,
            "amount": float(expense["amount"]),
            "currency": expense.get("currency"),
            "created_at": iso(expense.get("created_at")),
            "user": creator,
            "group": group,
        })

    for settlement in settlements:
        paid = settlement["from_user_id"] == user_id
        other = user_ref(users, settlement["to_user_id"] if paid else settlement["from_user_id"])
        action = "paid" if paid else "received payment from"
        activities.append({
            "id": settlement["id"],
            "type": "settlement",
            "description": f'You {action} {other["name"]}',
            "amount": float(settlement["amount"]),
            "currency": settlement.get("currency"),
            "created_at": iso(settlement.get("created_at")),
            "user": other,
        })

    for friendship in friendships:
        other_id = friend_id_of(friendship, user_id)
        other = user_ref(users, other_id)
        activities.append({
            "id": friendship["id"],
            "type": "friend_added",
            "description": f'You became friends with {other["name"]}',
            "created_at": iso(friendship.get("created_at")),
            "user": other,
        })

    activities = _sort_newest_first(activities, "created_at")
    return {"activities": activities[:DASHBOARD_ACTIVITY_LIMIT]}


def activity_feed(
    expenses: list[dict],
    participants_by_expense: dict,
    settlements: list[dict],
    friend_requests: list[dict],
    users: dict,
    groups: dict,
    page: int,
    limit: int,
) -> dict:
    activities = []

    for expense in expenses:
        activities.append({
            "type": "expense",
            "id": expense["id"],
            "timestamp": iso(expense.get("created_at")),
            "data": expense_item(expense, participants_by_expense.get(expense["id"], []), users, groups),
        })
    for settlement in settlements:
        activities.append({
            "type": "settlement",
            "id": settlement["id"],
            "timestamp": iso(settlement.get("created_at")),
            "data": settlement_item(settlement, users, groups),
        })
    for request in friend_requests:
        activities.append({
            "type": "friend_request",
            "id": request["id"],
            "timestamp": iso(request.get("created_at")),
            "data": {
                "from_user": user_ref(users, request["user_id"]),
                "to_user": user_ref(users, request["friend_id"]),
                "status": request.get("status"),
            },
        })

    activities = _sort_newest_first(activities, "timestamp")
    skip = (page - 1) * limit
    return paginated("activities", activities[skip:skip + limit], page, limit, len(activities))
