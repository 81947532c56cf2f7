"""Runtime configuration read from environment variables."""

import os

# Relational store (primary in "sql" mode)
DATABASE_PATH = os.environ.get("DATABASE_PATH", "./db.sqlite3")
DATABASE_URL = os.environ.get("DATABASE_URL", f"sqlite:///{DATABASE_PATH}")
SQL_STATEMENT_TIMEOUT_SECONDS = float(os.environ.get("SQL_STATEMENT_TIMEOUT_SECONDS", "10"))

# Document store (primary in "mongo" mode, secondary in "shadow" mode)
MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "splitledger")
MONGO_TIMEOUT_MS = int(os.environ.get("MONGO_TIMEOUT_MS", "5000"))

# Cache
CACHE_PREFIX = os.environ.get("CACHE_PREFIX", "splitledger:v1")
REDIS_SOCKET_TIMEOUT_SECONDS = float(os.environ.get("REDIS_SOCKET_TIMEOUT_SECONDS", "2"))

# Shadow reads run on a small background pool so they never block a response
SHADOW_READ_WORKERS = int(os.environ.get("SHADOW_READ_WORKERS", "4"))

DATA_BACKEND_MODES = ("sql", "mongo", "shadow")


def get_data_backend_mode() -> str:
    """
    Active read backend: "sql", "mongo" or "shadow".

    Read on every call so the mode can be flipped without a restart.
    Unknown values fall back to "sql".
    """
    mode = os.environ.get("DATA_BACKEND_MODE", "sql").strip().lower()
    if mode not in DATA_BACKEND_MODES:
        return "sql"
    return mode


def get_redis_settings() -> dict | None:
    """Connection settings for the cache, or None when caching is not configured."""
    url = os.environ.get("REDIS_URL")
    if url:
        return {"url": url}

    host = os.environ.get("REDIS_HOST")
    port = os.environ.get("REDIS_PORT")
    if not host or not port:
        return None

    return {
        "host": host,
        "port": int(port),
        "username": os.environ.get("REDIS_USERNAME"),
        "password": os.environ.get("REDIS_PASSWORD"),
        "ssl": os.environ.get("REDIS_TLS", "false").lower() == "true",
    }
