"""Balances router: balance calculations, debt simplification and cache invalidation."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

import schemas
from cache_scopes import ALL_SCOPES
from dependencies import get_ledger_service, ledger_errors
from ledger import LedgerService
from utils.balances import summarize_balances


router = APIRouter(tags=["balances"])


@router.get("/users/{user_id}/balances", response_model=schemas.UserBalances)
def get_user_balances(
    user_id: int,
    service: LedgerService = Depends(get_ledger_service),
):
    with ledger_errors():
        balances = service.aggregate_balances(user_id)

    # Fully settled counterparties are left out
    non_zero = {other_id: amount for other_id, amount in balances.items() if amount != 0}

    return schemas.UserBalances(
        user_id=user_id,
        balances=[
            schemas.CounterpartyBalance(user_id=other_id, amount=amount)
            for other_id, amount in sorted(non_zero.items())
        ],
        summary=schemas.BalanceSummary(**summarize_balances(non_zero)),
    )


@router.get("/users/{user_id}/balances/{other_id}", response_model=schemas.PairwiseBalance)
def get_pairwise_balance(
    user_id: int,
    other_id: int,
    service: LedgerService = Depends(get_ledger_service),
):
    with ledger_errors():
        amount = service.pairwise_balance(user_id, other_id)
    return schemas.PairwiseBalance(user_id=user_id, other_user_id=other_id, amount=amount)


@router.post("/debts/simplify")
def simplify_debts(
    request: schemas.SimplifyRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    with ledger_errors():
        return service.simplify_debts(request.user_ids)


@router.get("/groups/{group_id}/simplified-debts")
def get_simplified_debts(
    group_id: int,
    viewer_id: Optional[int] = None,
    service: LedgerService = Depends(get_ledger_service),
):
    """
    Calculate simplified debts for a group to minimize transactions.
    Uses a greedy algorithm to match largest debtors with largest creditors.
    """
    with ledger_errors():
        return service.group_simplified_debts(group_id, viewer_id)


@router.post("/cache/invalidate")
def invalidate_cache(
    request: schemas.InvalidateRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    unknown = [scope for scope in request.scopes if scope not in ALL_SCOPES]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown cache scopes: {', '.join(unknown)}")

    service.invalidate(request.user_ids, request.scopes)
    return {"user_ids": request.user_ids, "scopes": request.scopes}
