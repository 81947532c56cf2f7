"""
Splitledger Backend API

A FastAPI backend over the ledger core: split computation, balances, debt
simplification and cached reads from the relational or document store.
This module sets up the app and its long-lived clients - all endpoint logic is in routers/.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError

import models
from cache import LedgerCache
from config import MONGO_DB_NAME, SHADOW_READ_WORKERS, get_data_backend_mode
from database import engine
from document_db import create_mongo_client, ensure_indexes
from redis_client import build_redis_client

# Import routers
from routers import splits, balances, reads

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    models.Base.metadata.create_all(bind=engine)

    # Clients are created once and shared; none of them connects until first use
    redis_client = build_redis_client()
    app.state.cache = LedgerCache(redis_client)

    mongo_client = create_mongo_client()
    app.state.mongo_db = mongo_client[MONGO_DB_NAME]
    if get_data_backend_mode() != "sql":
        try:
            ensure_indexes(app.state.mongo_db)
        except PyMongoError as e:
            logger.warning("Could not create Mongo indexes: %s", e)

    app.state.shadow_executor = ThreadPoolExecutor(
        max_workers=SHADOW_READ_WORKERS, thread_name_prefix="shadow-read"
    )

    yield

    app.state.shadow_executor.shutdown(wait=False)
    mongo_client.close()
    if redis_client is not None:
        redis_client.close()


# Initialize FastAPI app
app = FastAPI(
    title="Splitledger API",
    description="API for expense splitting, balances and debt simplification",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this to frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(splits.router)
app.include_router(balances.router)
app.include_router(reads.router)
