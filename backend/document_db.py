"""MongoDB connection for the document-store backend."""

from pymongo import ASCENDING, DESCENDING, MongoClient

from config import MONGO_TIMEOUT_MS, MONGO_URL

# Collections mirror the relational tables one-to-one; rows keep their integer "id".
COLLECTIONS = (
    "users",
    "friends",
    "groups",
    "group_members",
    "expenses",
    "expense_participants",
    "expense_edits",
    "settlements",
)


def create_mongo_client(url: str = MONGO_URL) -> MongoClient:
    """Create a client whose calls fail after MONGO_TIMEOUT_MS instead of hanging."""
    return MongoClient(
        url,
        serverSelectionTimeoutMS=MONGO_TIMEOUT_MS,
        socketTimeoutMS=MONGO_TIMEOUT_MS,
        connectTimeoutMS=MONGO_TIMEOUT_MS,
        tz_aware=False,
    )


def ensure_indexes(db) -> None:
    """Create the indexes the ledger queries rely on."""
    db.expense_participants.create_index([("user_id", ASCENDING), ("is_settled", ASCENDING), ("expense_id", ASCENDING)])
    db.expense_participants.create_index([("expense_id", ASCENDING), ("is_settled", ASCENDING)])
    db.expenses.create_index([("group_id", ASCENDING), ("date", DESCENDING)])
    db.expenses.create_index([("is_deleted", ASCENDING)])
    db.settlements.create_index([("from_user_id", ASCENDING), ("created_at", DESCENDING)])
    db.settlements.create_index([("to_user_id", ASCENDING), ("created_at", DESCENDING)])
    db.settlements.create_index([("group_id", ASCENDING)])
    db.friends.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
    db.friends.create_index([("friend_id", ASCENDING), ("status", ASCENDING)])
    db.group_members.create_index([("group_id", ASCENDING), ("user_id", ASCENDING)], unique=True)

