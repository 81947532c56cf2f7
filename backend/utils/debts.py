"""Debt simplification: collapse net positions into a short list of transfers."""

from typing import Dict

from utils.balances import round2

ZERO_THRESHOLD = 0.01


def simplify_debts(net_balances: Dict[int, float]) -> dict:
    """
    Greedy settle-up over net positions (positive = creditor, negative = debtor).

    Debtors and creditors are kept as two lists sorted by size, largest
    first. The largest remaining debtor pays the largest remaining creditor
    the smaller of the two amounts, and whichever side reaches zero is
    retired. Not guaranteed minimal; the exact minimum is NP-hard.

    originalCount is an upper-bound proxy (non-zero holders // 2), not a
    count of existing pairwise debts, so savings is floored at zero.
    """
    debtors = []
    creditors = []

    for user_id, amount in net_balances.items():
        amount = round2(amount)
        if amount < -ZERO_THRESHOLD:
            debtors.append({"id": user_id, "amount": -amount})
        elif amount > ZERO_THRESHOLD:
            creditors.append({"id": user_id, "amount": amount})

    debtors.sort(key=lambda x: x["amount"], reverse=True)
    creditors.sort(key=lambda x: x["amount"], reverse=True)

    transactions = []
    i = 0
    j = 0

    while i < len(debtors) and j < len(creditors):
        debtor = debtors[i]
        creditor = creditors[j]

        amount = round2(min(debtor["amount"], creditor["amount"]))
        if amount > ZERO_THRESHOLD:
            transactions.append({
                "from": debtor["id"],
                "to": creditor["id"],
                "amount": amount,
            })

        debtor["amount"] = round2(debtor["amount"] - amount)
        creditor["amount"] = round2(creditor["amount"] - amount)

        if debtor["amount"] <= ZERO_THRESHOLD:
            i += 1
        if creditor["amount"] <= ZERO_THRESHOLD:
            j += 1

    non_zero = len(debtors) + len(creditors)
    original_count = non_zero // 2

    return {
        "transactions": transactions,
        "originalCount": original_count,
        "optimizedCount": len(transactions),
        "savings": max(original_count - len(transactions), 0),
    }
