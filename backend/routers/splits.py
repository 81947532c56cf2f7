"""Splits router: compute how an expense amount divides among participants."""

from fastapi import APIRouter, Depends

import schemas
from dependencies import get_ledger_service, ledger_errors
from ledger import LedgerService


router = APIRouter(tags=["splits"])


@router.post("/splits", response_model=schemas.SplitResult)
def compute_split(
    request: schemas.SplitRequest,
    service: LedgerService = Depends(get_ledger_service),
):
    with ledger_errors():
        participants = service.compute_split(
            request.amount,
            request.participant_ids,
            request.payer_id,
            request.method,
            request.method_params,
        )

    return schemas.SplitResult(amount=request.amount, method=request.method, participants=participants)
