import os

# Keep the app's own engine off disk; tests use the session below
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from concurrent.futures import Executor, Future
from datetime import datetime, timedelta

import fakeredis
import mongomock
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models
from cache import LedgerCache
from database import Base, get_db
from dependencies import get_cache, get_mongo_db, get_shadow_executor
from main import app

# Setup in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

BASE_TIME = datetime(2025, 1, 1, 12, 0, 0)


class ImmediateExecutor(Executor):
    """Runs submitted work on the calling thread so shadow comparisons finish before asserts."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class LedgerSeeder:
    """Writes the same rows to SQLite and to the Mongo collections."""

    def __init__(self, db_session, mongo_db):
        self.db = db_session
        self.mongo_db = mongo_db
        self._ids = {}
        self._tick = 0

    def _next_id(self, table: str) -> int:
        self._ids[table] = self._ids.get(table, 0) + 1
        return self._ids[table]

    def _next_time(self) -> datetime:
        self._tick += 1
        return BASE_TIME + timedelta(minutes=self._tick)

    def _insert(self, model, collection: str, row: dict, mongo: bool = True) -> dict:
        self.db.add(model(**row))
        self.db.commit()
        if mongo:
            self.mongo_db[collection].insert_one(dict(row))
        return row

    def user(self, full_name: str, email: str = None, **kw) -> dict:
        row = {
            "id": self._next_id("users"),
            "full_name": full_name,
            "email": email or f"{full_name.lower()}@example.com",
            "created_at": self._next_time(),
        }
        row.update(kw)
        return self._insert(models.User, "users", row)

    def friendship(self, user, friend, status: str = "accepted", **kw) -> dict:
        row = {
            "id": self._next_id("friends"),
            "user_id": user["id"],
            "friend_id": friend["id"],
            "status": status,
            "created_at": self._next_time(),
        }
        row.update(kw)
        return self._insert(models.Friendship, "friends", row)

    def group(self, name: str, creator, members=(), **kw) -> dict:
        row = {
            "id": self._next_id("groups"),
            "name": name,
            "description": None,
            "created_by_id": creator["id"],
            "is_active": True,
            "created_at": self._next_time(),
        }
        row.update(kw)
        self._insert(models.Group, "groups", row)
        self.member(row, creator, role="admin")
        for member in members:
            self.member(row, member)
        return row

    def member(self, group, user, role: str = "member") -> dict:
        row = {
            "id": self._next_id("group_members"),
            "group_id": group["id"],
            "user_id": user["id"],
            "role": role,
            "joined_at": self._next_time(),
        }
        return self._insert(models.GroupMember, "group_members", row)

    def expense(self, amount: float, payer, shares: dict, group=None, mongo: bool = True, **kw) -> dict:
        """shares maps each participant (user dict) id to the amount they owe."""
        created_at = self._next_time()
        row = {
            "id": self._next_id("expenses"),
            "description": kw.pop("description", "Expense"),
            "amount": amount,
            "currency": "INR",
            "category": kw.pop("category", "other"),
            "date": kw.pop("date", created_at),
            "created_by_id": payer["id"],
            "group_id": group["id"] if group else None,
            "is_deleted": False,
            "created_at": created_at,
            "updated_at": created_at,
        }
        row.update(kw)
        self._insert(models.Expense, "expenses", row, mongo=mongo)
        for user_id, owed in shares.items():
            self._insert(models.ExpenseParticipant, "expense_participants", {
                "id": self._next_id("expense_participants"),
                "expense_id": row["id"],
                "user_id": user_id,
                "paid_amount": amount if user_id == payer["id"] else 0.0,
                "owed_amount": owed,
                "is_settled": False,
            }, mongo=mongo)
        return row

    def settlement(self, from_user, to_user, amount: float, group=None, **kw) -> dict:
        created_at = self._next_time()
        row = {
            "id": self._next_id("settlements"),
            "from_user_id": from_user["id"],
            "to_user_id": to_user["id"],
            "amount": amount,
            "currency": "INR",
            "date": created_at,
            "group_id": group["id"] if group else None,
            "notes": None,
            "created_at": created_at,
        }
        row.update(kw)
        return self._insert(models.Settlement, "settlements", row)

    def delete_expense(self, expense) -> None:
        self.db.query(models.Expense).filter(models.Expense.id == expense["id"]).update({"is_deleted": True})
        self.db.commit()
        self.mongo_db.expenses.update_one({"id": expense["id"]}, {"$set": {"is_deleted": True}})


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["splitledger_test"]


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def cache(redis_client):
    return LedgerCache(redis_client, prefix="test")


@pytest.fixture
def seed(db_session, mongo_db):
    return LedgerSeeder(db_session, mongo_db)


@pytest.fixture
def executor():
    return ImmediateExecutor()


@pytest.fixture(autouse=True)
def backend_mode(monkeypatch):
    """Default every test to the SQL backend regardless of the environment."""
    monkeypatch.setenv("DATA_BACKEND_MODE", "sql")


@pytest.fixture(scope="function")
def client(db_session, mongo_db, cache, executor):
    """Create a FastAPI TestClient with overridden store, cache and executor dependencies."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mongo_db] = lambda: mongo_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_shadow_executor] = lambda: executor
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
