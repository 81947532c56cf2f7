"""
Balance calculation over expense-participant and settlement rows.

Sign convention everywhere: a positive amount means the counterparty owes
the user, a negative amount means the user owes the counterparty.

Different formulas answer "who owes whom" here and they are kept apart
on purpose:

- aggregate_balances() apportions a user's net position on each expense
  across the other participants of that expense.
- group_net_balances() sums paid - owed per user with no apportionment.
- set_net_balances() does the same over the expenses closed within a set
  of users, so the positions always sum to zero.

They agree on two-person expenses and can diverge on expenses with three or
more participants.
"""

from collections import defaultdict
from typing import Dict, Iterable

from repositories.base import LedgerStore

ZERO_THRESHOLD = 0.005


def round2(value: float) -> float:
    # "+ 0.0" folds -0.0 into 0.0
    return round(value, 2) + 0.0


def net_position(row) -> float:
    return float(row.paid_amount or 0) - float(row.owed_amount or 0)


def _apply_settlements(balances: Dict[int, float], user_id: int, settlements, only_with: int | None = None) -> None:
    """A payment from the user to X reduces what the user owes X, and vice versa."""
    for settlement in settlements:
        amount = float(settlement.amount or 0)
        if amount <= 0:
            continue
        if settlement.from_user_id == user_id and settlement.to_user_id != user_id:
            other = settlement.to_user_id
            delta = amount
        elif settlement.to_user_id == user_id and settlement.from_user_id != user_id:
            other = settlement.from_user_id
            delta = -amount
        else:
            continue
        if only_with is not None and other != only_with:
            continue
        balances[other] = balances.get(other, 0.0) + delta


def pairwise_balance(store: LedgerStore, user_a: int, user_b: int) -> float:
    """
    Balance between two users from user_a's point of view.

    Sums user_a's own net position on every non-deleted expense the two
    share, then applies the settlements between them. Positive means user_b
    owes user_a. Multi-party expenses contribute user_a's whole net row; it
    is not split among the other participants.
    """
    if user_a == user_b:
        return 0.0

    rows_a = [r for r in store.get_participant_rows_by_user(user_a) if not r.is_settled]
    rows_b = [r for r in store.get_participant_rows_by_user(user_b) if not r.is_settled]

    shared_ids = {r.expense_id for r in rows_a} & {r.expense_id for r in rows_b}
    active = store.get_active_expenses(shared_ids) if shared_ids else {}

    balance = 0.0
    for row in rows_a:
        # Rows whose expense is deleted or cannot be found contribute nothing
        if row.expense_id in active:
            balance += net_position(row)

    adjustments: Dict[int, float] = {}
    _apply_settlements(adjustments, user_a, store.get_settlements_for_user(user_a), only_with=user_b)
    balance += adjustments.get(user_b, 0.0)

    return round2(balance)


def _apportion_expense(user_id: int, rows) -> Dict[int, float]:
    """
    Spread user_id's net position on one expense across the other participants.

    A creditor's surplus is split among the other participants who are net
    debtors on this expense, in proportion to each debtor's deficit. A
    debtor's deficit is split among the net creditors in proportion to each
    creditor's surplus. Participants on the same side as user_id get nothing.
    """
    nets: Dict[int, float] = defaultdict(float)
    for row in rows:
        nets[row.user_id] += net_position(row)

    my_net = nets.pop(user_id, 0.0)
    if abs(my_net) < ZERO_THRESHOLD:
        return {}

    if my_net > 0:
        counterparties = {uid: -net for uid, net in nets.items() if net < -ZERO_THRESHOLD}
    else:
        counterparties = {uid: net for uid, net in nets.items() if net > ZERO_THRESHOLD}

    weight_total = sum(counterparties.values())
    if weight_total <= 0:
        return {}

    return {uid: my_net * weight / weight_total for uid, weight in counterparties.items()}


def aggregate_balances(store: LedgerStore, user_id: int) -> Dict[int, float]:
    """
    Balance of user_id against every counterparty.

    Each non-deleted expense the user takes part in is apportioned with
    _apportion_expense(), summed per counterparty, then adjusted by every
    settlement the user paid or received. This is a heuristic for expenses
    with more than two participants, not an exact multi-party netting.
    """
    my_rows = [r for r in store.get_participant_rows_by_user(user_id) if not r.is_settled]
    expense_ids = {r.expense_id for r in my_rows}
    active = store.get_active_expenses(expense_ids) if expense_ids else {}

    rows_by_expense = defaultdict(list)
    if active:
        for row in store.get_participant_rows_by_expenses(active.keys()):
            if row.is_settled or row.expense_id not in active:
                continue
            rows_by_expense[row.expense_id].append(row)

    balances: Dict[int, float] = {}
    for rows in rows_by_expense.values():
        for other_id, delta in _apportion_expense(user_id, rows).items():
            balances[other_id] = balances.get(other_id, 0.0) + delta

    _apply_settlements(balances, user_id, store.get_settlements_for_user(user_id))

    return {other_id: round2(amount) for other_id, amount in balances.items()}


def group_net_balances(store: LedgerStore, group_id: int, member_ids: Iterable[int] = ()) -> Dict[int, float]:
    """
    Net position of every user in a group: paid - owed summed over the
    group's non-deleted expenses, adjusted by the group's settlements.

    Listed members with no activity are reported at 0.
    """
    balances: Dict[int, float] = {member_id: 0.0 for member_id in member_ids}

    expenses = store.get_group_expenses(group_id)
    if expenses:
        for row in store.get_participant_rows_by_expenses(expenses.keys()):
            if row.is_settled or row.expense_id not in expenses:
                continue
            balances[row.user_id] = balances.get(row.user_id, 0.0) + net_position(row)

    for settlement in store.get_group_settlements(group_id):
        amount = float(settlement.amount or 0)
        if amount <= 0:
            continue
        balances[settlement.from_user_id] = balances.get(settlement.from_user_id, 0.0) + amount
        balances[settlement.to_user_id] = balances.get(settlement.to_user_id, 0.0) - amount

    return {user_id: round2(amount) for user_id, amount in balances.items()}


def set_net_balances(store: LedgerStore, user_ids: Iterable[int]) -> Dict[int, float]:
    """
    Net position of every user in a set, summing to zero across the set.

    Counts paid - owed on the non-deleted expenses whose participants are all
    in the set, plus the settlements between two users of the set. Expenses
    shared with anyone outside the set are left out.
    """
    user_ids = list(dict.fromkeys(user_ids))
    members = set(user_ids)
    balances: Dict[int, float] = {user_id: 0.0 for user_id in user_ids}

    expense_ids = set()
    settlements = {}
    for user_id in user_ids:
        expense_ids.update(r.expense_id for r in store.get_participant_rows_by_user(user_id) if not r.is_settled)
        for settlement in store.get_settlements_for_user(user_id):
            settlements[settlement.id] = settlement

    active = store.get_active_expenses(expense_ids) if expense_ids else {}
    rows_by_expense = defaultdict(list)
    if active:
        for row in store.get_participant_rows_by_expenses(active.keys()):
            if row.is_settled or row.expense_id not in active:
                continue
            rows_by_expense[row.expense_id].append(row)

    for rows in rows_by_expense.values():
        if any(row.user_id not in members for row in rows):
            continue
        for row in rows:
            balances[row.user_id] += net_position(row)

    for settlement in settlements.values():
        amount = float(settlement.amount or 0)
        if amount <= 0 or settlement.from_user_id not in members or settlement.to_user_id not in members:
            continue
        balances[settlement.from_user_id] += amount
        balances[settlement.to_user_id] -= amount

    return {user_id: round2(amount) for user_id, amount in balances.items()}


def summarize_balances(balances: Dict[int, float]) -> dict:
    """Total, amount owed to others and amount owed by others."""
    you_owe = sum(-amount for amount in balances.values() if amount < 0)
    you_are_owed = sum(amount for amount in balances.values() if amount > 0)
    return {
        "total": round2(you_are_owed - you_owe),
        "you_owe": round2(you_owe),
        "you_are_owed": round2(you_are_owed),
    }
