import mongomock
import pytest
import redis

import cache_scopes
from config import get_data_backend_mode, get_redis_settings
from document_db import COLLECTIONS, ensure_indexes
from redis_client import build_redis_client


@pytest.mark.parametrize("value, expected", [
    ("sql", "sql"),
    ("mongo", "mongo"),
    (" Shadow ", "shadow"),
    ("supabase", "sql"),
    ("", "sql"),
])
def test_data_backend_mode(monkeypatch, value, expected):
    monkeypatch.setenv("DATA_BACKEND_MODE", value)
    assert get_data_backend_mode() == expected


def test_data_backend_mode_defaults_to_sql(monkeypatch):
    monkeypatch.delenv("DATA_BACKEND_MODE", raising=False)
    assert get_data_backend_mode() == "sql"


@pytest.fixture
def no_redis_env(monkeypatch):
    for name in ("REDIS_URL", "REDIS_HOST", "REDIS_PORT", "REDIS_USERNAME", "REDIS_PASSWORD", "REDIS_TLS"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_redis_settings_unconfigured(no_redis_env):
    assert get_redis_settings() is None
    assert build_redis_client() is None


def test_redis_settings_from_url(no_redis_env):
    no_redis_env.setenv("REDIS_URL", "redis://cache:6379/0")
    assert get_redis_settings() == {"url": "redis://cache:6379/0"}


def test_redis_settings_from_host(no_redis_env):
    no_redis_env.setenv("REDIS_HOST", "cache.internal")
    no_redis_env.setenv("REDIS_PORT", "6380")
    no_redis_env.setenv("REDIS_TLS", "true")

    settings = get_redis_settings()

    assert settings["host"] == "cache.internal"
    assert settings["port"] == 6380
    assert settings["ssl"] is True


def test_host_without_port_is_unconfigured(no_redis_env):
    no_redis_env.setenv("REDIS_HOST", "cache.internal")
    assert get_redis_settings() is None


def test_build_redis_client_from_settings():
    client = build_redis_client({"url": "redis://localhost:6379/0"})

    assert isinstance(client, redis.Redis)
    assert client.connection_pool.connection_kwargs["decode_responses"] is True


def test_ensure_indexes_covers_ledger_queries():
    db = mongomock.MongoClient()["indexes"]

    ensure_indexes(db)

    assert set(COLLECTIONS) >= {"expense_participants", "expenses", "settlements", "friends", "group_members"}
    member_indexes = db.group_members.index_information()
    assert any(info.get("unique") for info in member_indexes.values())


def test_mutation_scopes_are_known_scopes():
    for scopes in (
        cache_scopes.EXPENSE_MUTATION_CACHE_SCOPES,
        cache_scopes.SETTLEMENT_MUTATION_CACHE_SCOPES,
        cache_scopes.FRIEND_MUTATION_CACHE_SCOPES,
        cache_scopes.GROUP_MUTATION_CACHE_SCOPES,
    ):
        assert set(scopes) <= set(cache_scopes.ALL_SCOPES)
    # Balances depend on every kind of write
    for scopes in (cache_scopes.EXPENSE_MUTATION_CACHE_SCOPES, cache_scopes.FRIEND_MUTATION_CACHE_SCOPES):
        assert cache_scopes.USER_BALANCE in scopes


def test_unknown_scope_gets_shortest_ttl():
    assert cache_scopes.ttl_for("friends") == 180
    assert cache_scopes.ttl_for("nope") == 120
