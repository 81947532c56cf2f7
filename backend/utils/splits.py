"""Split calculation: turn one expense into per-person paid/owed amounts."""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Mapping, Optional

import schemas
from exceptions import ValidationError

CENT = Decimal("0.01")
TOLERANCE_CENTS = 1  # 0.01 in currency units


def to_cents(value) -> int:
    """Convert a currency amount (float, str, int or Decimal) to integer cents, half-up."""
    try:
        return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def _require_params(method: schemas.SplitMethod, participant_ids: list[int], params: Mapping) -> list[Decimal]:
    values = []
    for user_id in participant_ids:
        if user_id not in params:
            raise ValidationError(f"{method.value} split requires a value for participant {user_id}")
        try:
            value = Decimal(str(params[user_id]))
        except InvalidOperation as e:
            raise ValidationError(f"Invalid {method.value} value for participant {user_id}") from e
        if value < 0:
            raise ValidationError(f"{method.value} value for participant {user_id} cannot be negative")
        values.append(value)
    return values


def _split_equally(total: int, participant_ids: list[int]) -> list[int]:
    # Floor to the cent per head; every leftover cent goes to the first participant
    per_person = total // len(participant_ids)
    remainder = total - per_person * len(participant_ids)
    owed = [per_person] * len(participant_ids)
    owed[0] += remainder
    return owed


def _split_exact(total: int, participant_ids: list[int], params: Mapping) -> list[int]:
    owed = [to_cents(v) for v in _require_params(schemas.SplitMethod.EXACT, participant_ids, params)]
    difference = total - sum(owed)
    if abs(difference) > TOLERANCE_CENTS:
        raise ValidationError(
            f"Total owed amounts ({from_cents(sum(owed))}) do not match expense amount ({from_cents(total)})"
        )
    if difference:
        # A tolerated one-cent gap lands on the largest share so nobody goes negative
        largest = max(range(len(owed)), key=lambda i: owed[i])
        owed[largest] += difference
    return owed


def _split_weighted(total: int, weights: list[Decimal], denominator: Decimal) -> list[int]:
    # Everyone but the last is rounded to the cent; the last absorbs the rounding error
    owed = []
    for weight in weights[:-1]:
        share = (Decimal(total) * weight / denominator).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        owed.append(int(share))
    last = total - sum(owed)
    if last < 0:
        raise ValidationError("Rounding left the last participant with a negative share")
    owed.append(last)
    return owed


def _split_by_percentages(total: int, participant_ids: list[int], params: Mapping) -> list[int]:
    percentages = _require_params(schemas.SplitMethod.PERCENTAGE, participant_ids, params)
    total_percentage = sum(percentages)
    if abs(total_percentage - 100) > CENT:
        raise ValidationError(f"Total percentages ({total_percentage}%) must equal 100%")
    return _split_weighted(total, percentages, Decimal(100))


def _split_by_shares(total: int, participant_ids: list[int], params: Mapping) -> list[int]:
    shares = _require_params(schemas.SplitMethod.SHARES, participant_ids, params)
    total_shares = sum(shares)
    if total_shares <= 0:
        raise ValidationError("Total shares must be greater than zero")
    return _split_weighted(total, shares, total_shares)


def compute_split(
    amount,
    participant_ids: Iterable[int],
    payer_id: int,
    method: schemas.SplitMethod | str = schemas.SplitMethod.EQUAL,
    method_params: Optional[Mapping[int, object]] = None,
) -> list[schemas.SplitParticipant]:
    """
    Split an expense amount among its participants.

    Returns one SplitParticipant per participant, in the order given. The payer's
    paid_amount is the full amount and everyone else's is zero; owed amounts
    always sum to the amount exactly.

    Raises:
        ValidationError: non-positive amount, no participants, duplicate
            participants, a payer who is not a participant, unknown method,
            or method params that do not conserve the amount.
    """
    participant_ids = list(participant_ids)
    params = method_params or {}

    try:
        method = schemas.SplitMethod(method)
    except ValueError as e:
        raise ValidationError(f"Unknown split method: {method}") from e

    total = to_cents(amount)
    if total <= 0:
        raise ValidationError("Amount must be greater than 0")
    if not participant_ids:
        raise ValidationError("At least one participant is required")
    if len(set(participant_ids)) != len(participant_ids):
        raise ValidationError("Participants must be unique")
    if payer_id not in participant_ids:
        raise ValidationError("Payer must be a participant")

    if method == schemas.SplitMethod.EQUAL:
        owed = _split_equally(total, participant_ids)
    elif method == schemas.SplitMethod.EXACT:
        owed = _split_exact(total, participant_ids, params)
    elif method == schemas.SplitMethod.PERCENTAGE:
        owed = _split_by_percentages(total, participant_ids, params)
    else:
        owed = _split_by_shares(total, participant_ids, params)

    return [
        schemas.SplitParticipant(
            user_id=user_id,
            paid_amount=from_cents(total if user_id == payer_id else 0),
            owed_amount=from_cents(owed_cents),
        )
        for user_id, owed_cents in zip(participant_ids, owed)
    ]


def validate_split(participants: list[schemas.SplitParticipant], amount) -> bool:
    """Check that paid and owed totals both match the amount within a cent."""
    total = to_cents(amount)
    total_owed = sum(to_cents(p.owed_amount) for p in participants)
    total_paid = sum(to_cents(p.paid_amount) for p in participants)
    return abs(total_owed - total) <= TOLERANCE_CENTS and abs(total_paid - total) <= TOLERANCE_CENTS
