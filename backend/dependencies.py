"""Shared dependencies: stores, cache and services built per request."""

import logging
from contextlib import contextmanager

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from cache import LedgerCache
from config import get_data_backend_mode
from database import get_db
from exceptions import StoreError, ValidationError
from ledger import LedgerService
from repositories.base import LedgerStore, ReadRepository
from repositories.mongo import MongoLedgerStore
from repositories.routing import build_read_repository
from repositories.sql import SqlLedgerStore

logger = logging.getLogger(__name__)


def get_cache(request: Request) -> LedgerCache:
    return request.app.state.cache


def get_mongo_db(request: Request):
    return request.app.state.mongo_db


def get_shadow_executor(request: Request):
    return request.app.state.shadow_executor


def get_ledger_store(db: Session = Depends(get_db), mongo_db=Depends(get_mongo_db)) -> LedgerStore:
    """Balances are always computed from the primary store of the active mode."""
    if get_data_backend_mode() == "mongo":
        return MongoLedgerStore(mongo_db)
    return SqlLedgerStore(db)


def get_ledger_service(
    store: LedgerStore = Depends(get_ledger_store),
    cache: LedgerCache = Depends(get_cache),
) -> LedgerService:
    return LedgerService(store, cache)


def get_read_repository(
    db: Session = Depends(get_db),
    mongo_db=Depends(get_mongo_db),
    executor=Depends(get_shadow_executor),
    service: LedgerService = Depends(get_ledger_service),
) -> ReadRepository:
    return build_read_repository(
        get_data_backend_mode(),
        sql_db=db,
        mongo_db=mongo_db,
        executor=executor,
        balance_provider=service.aggregate_balances,
    )


@contextmanager
def ledger_errors():
    """Translate ledger exceptions into HTTP errors at the router seam."""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreError as e:
        logger.error("Store failure: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Data store unavailable")
