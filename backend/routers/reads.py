"""Reads router: cached list views served by the active read backend."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

import cache_scopes
import schemas
from dependencies import get_ledger_service, get_read_repository, ledger_errors
from ledger import LedgerService
from repositories.base import ReadRepository


router = APIRouter(tags=["reads"])


def _cached_read(response: Response, service: LedgerService, scope: str, user_id: int, input: str, loader):
    with ledger_errors():
        result = service.cached_with_meta(scope, user_id, input, loader)
    response.headers["X-Cache"] = result.cache_status
    return result.data


@router.get("/users/{user_id}/friends")
def get_friends(
    user_id: int,
    response: Response,
    service: LedgerService = Depends(get_ledger_service),
    repository: ReadRepository = Depends(get_read_repository),
):
    return _cached_read(response, service, cache_scopes.FRIENDS, user_id, "list",
                        lambda: repository.get_friends(user_id))


@router.get("/users/{user_id}/groups")
def get_groups(
    user_id: int,
    response: Response,
    service: LedgerService = Depends(get_ledger_service),
    repository: ReadRepository = Depends(get_read_repository),
):
    return _cached_read(response, service, cache_scopes.GROUPS, user_id, "list",
                        lambda: repository.get_groups(user_id))


@router.get("/users/{user_id}/expenses")
def get_expenses(
    user_id: int,
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    group_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    service: LedgerService = Depends(get_ledger_service),
    repository: ReadRepository = Depends(get_read_repository),
):
    query = schemas.ExpenseQuery(
        page=page, limit=limit, category=category, group_id=group_id,
        start_date=start_date, end_date=end_date
    )
    return _cached_read(response, service, cache_scopes.EXPENSES, user_id, query.model_dump_json(),
                        lambda: repository.get_expenses(user_id, query))


@router.get("/users/{user_id}/settlements")
def get_settlements(
    user_id: int,
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    group_id: Optional[int] = None,
    friend_id: Optional[int] = None,
    service: LedgerService = Depends(get_ledger_service),
    repository: ReadRepository = Depends(get_read_repository),
):
    query = schemas.SettlementQuery(page=page, limit=limit, group_id=group_id, friend_id=friend_id)
    return _cached_read(response, service, cache_scopes.SETTLEMENTS, user_id, query.model_dump_json(),
                        lambda: repository.get_settlements(user_id, query))


@router.get("/users/{user_id}/dashboard/activity")
def get_dashboard_activity(
    user_id: int,
    response: Response,
    service: LedgerService = Depends(get_ledger_service),
    repository: ReadRepository = Depends(get_read_repository),
):
    return _cached_read(response, service, cache_scopes.DASHBOARD_ACTIVITY, user_id, "recent",
                        lambda: repository.get_dashboard_activity(user_id))


@router.get("/users/{user_id}/activities")
def get_activities(
    user_id: int,
    response: Response,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: LedgerService = Depends(get_ledger_service),
    repository: ReadRepository = Depends(get_read_repository),
):
    return _cached_read(response, service, cache_scopes.ACTIVITIES, user_id, f"page={page}&limit={limit}",
                        lambda: repository.get_activities(user_id, page, limit))
