from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SplitMethod(str, Enum):
    EQUAL = "EQUAL"
    EXACT = "EXACT"
    PERCENTAGE = "PERCENTAGE"
    SHARES = "SHARES"


class SplitParticipant(BaseModel):
    """One person's side of an expense."""
    user_id: int
    paid_amount: Decimal
    owed_amount: Decimal


class SplitRequest(BaseModel):
    amount: Decimal
    participant_ids: list[int]
    payer_id: int
    method: SplitMethod = SplitMethod.EQUAL
    # EXACT: owed amount, PERCENTAGE: percent, SHARES: weight; keyed by user id
    method_params: dict[int, Decimal] = {}


class SplitResult(BaseModel):
    amount: Decimal
    method: SplitMethod
    participants: list[SplitParticipant]


# Store-agnostic ledger rows. Both backends hand these to the aggregator.
class ParticipantRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    expense_id: int
    user_id: int
    paid_amount: float = 0.0
    owed_amount: float = 0.0
    is_settled: bool = False


class ExpenseRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: float
    currency: str = "INR"
    group_id: Optional[int] = None
    is_deleted: bool = False


class SettlementRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    from_user_id: int
    to_user_id: int
    amount: float
    group_id: Optional[int] = None


class BalanceSummary(BaseModel):
    total: float
    you_owe: float
    you_are_owed: float


class CounterpartyBalance(BaseModel):
    user_id: int
    amount: float  # Positive means they owe you, negative means you owe them


class UserBalances(BaseModel):
    user_id: int
    balances: list[CounterpartyBalance]
    summary: BalanceSummary


class PairwiseBalance(BaseModel):
    user_id: int
    other_user_id: int
    amount: float


class SimplifyRequest(BaseModel):
    user_ids: list[int] = Field(..., min_length=1)


class InvalidateRequest(BaseModel):
    user_ids: list[int]
    scopes: list[str]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if limit > 0 else 0
        return cls(page=page, limit=limit, total=total, total_pages=total_pages)


class ExpenseQuery(BaseModel):
    page: int = 1
    limit: int = 20
    category: Optional[str] = None
    group_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SettlementQuery(BaseModel):
    page: int = 1
    limit: int = 20
    group_id: Optional[int] = None
    friend_id: Optional[int] = None
