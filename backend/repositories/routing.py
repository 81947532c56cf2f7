"""Pick the read repository for the active DATA_BACKEND_MODE."""

from concurrent.futures import Executor
from typing import Callable, Optional

from sqlalchemy.orm import Session

from repositories.base import ReadRepository
from repositories.mongo import MongoReadRepository
from repositories.shadow import ShadowReadRepository
from repositories.sql import SqlReadRepository


def build_read_repository(
    mode: str,
    sql_db: Optional[Session] = None,
    mongo_db=None,
    executor: Optional[Executor] = None,
    balance_provider: Optional[Callable[[int], dict]] = None,
) -> ReadRepository:
    """
    "sql" and "mongo" read from that store alone. "shadow" serves from SQL
    and replays against Mongo in the background; the secondary computes its
    own balances so the cached primary values never leak into the comparison.
    """
    if mode == "mongo":
        return MongoReadRepository(mongo_db, balance_provider)

    if mode == "shadow":
        if mongo_db is None or executor is None:
            raise ValueError("shadow mode needs a Mongo database and an executor")
        return ShadowReadRepository(
            SqlReadRepository(sql_db, balance_provider),
            MongoReadRepository(mongo_db),
            executor,
        )

    return SqlReadRepository(sql_db, balance_provider)
