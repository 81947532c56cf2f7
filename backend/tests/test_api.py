import logging
from decimal import Decimal
from unittest.mock import Mock

from pymongo.errors import ServerSelectionTimeoutError

from dependencies import get_mongo_db
from main import app


def test_compute_split_endpoint(client):
    response = client.post("/splits", json={"amount": "100.00", "participant_ids": [1, 2, 3], "payer_id": 1})

    assert response.status_code == 200
    data = response.json()
    assert data["method"] == "EQUAL"
    assert [Decimal(p["owed_amount"]) for p in data["participants"]] == [
        Decimal("33.34"), Decimal("33.33"), Decimal("33.33")
    ]
    assert [Decimal(p["paid_amount"]) for p in data["participants"]] == [
        Decimal("100.00"), Decimal("0"), Decimal("0")
    ]


def test_compute_split_with_shares(client):
    response = client.post("/splits", json={
        "amount": 60,
        "participant_ids": [4, 5],
        "payer_id": 5,
        "method": "SHARES",
        "method_params": {"4": 1, "5": 2},
    })

    assert response.status_code == 200
    assert [Decimal(p["owed_amount"]) for p in response.json()["participants"]] == [Decimal("20"), Decimal("40")]


def test_invalid_split_returns_400(client):
    response = client.post("/splits", json={
        "amount": 100,
        "participant_ids": [1, 2],
        "payer_id": 1,
        "method": "PERCENTAGE",
        "method_params": {"1": 50, "2": 40},
    })

    assert response.status_code == 400
    assert "100%" in response.json()["detail"]


def test_user_balances_endpoint(client, seed):
    alice, bob, carol = seed.user("Alice"), seed.user("Bob"), seed.user("Carol")
    seed.expense(20, alice, {alice["id"]: 10, bob["id"]: 10})
    seed.expense(9, carol, {alice["id"]: 9, carol["id"]: 0})
    seed.expense(4, alice, {alice["id"]: 2, carol["id"]: 2})

    response = client.get(f"/users/{alice['id']}/balances")

    assert response.status_code == 200
    data = response.json()
    assert data["balances"] == [
        {"user_id": bob["id"], "amount": 10.0},
        {"user_id": carol["id"], "amount": -7.0},
    ]
    assert data["summary"] == {"total": 3.0, "you_owe": 7.0, "you_are_owed": 10.0}


def test_settled_counterparties_are_hidden(client, seed):
    alice, bob = seed.user("Alice"), seed.user("Bob")
    seed.expense(20, alice, {alice["id"]: 10, bob["id"]: 10})
    seed.settlement(bob, alice, 10)

    data = client.get(f"/users/{bob['id']}/balances").json()

    assert data["balances"] == []
    assert data["summary"]["total"] == 0.0


def test_pairwise_balance_endpoint(client, seed):
    alice, bob = seed.user("Alice"), seed.user("Bob")
    seed.expense(50, bob, {alice["id"]: 25, bob["id"]: 25})

    forward = client.get(f"/users/{alice['id']}/balances/{bob['id']}").json()
    backward = client.get(f"/users/{bob['id']}/balances/{alice['id']}").json()

    assert forward == {"user_id": alice["id"], "other_user_id": bob["id"], "amount": -25.0}
    assert backward["amount"] == 25.0


def test_simplify_endpoint(client, seed):
    alice, bob, carol = seed.user("Alice"), seed.user("Bob"), seed.user("Carol")
    seed.expense(20, alice, {alice["id"]: 10, bob["id"]: 10})
    seed.expense(20, bob, {bob["id"]: 10, carol["id"]: 10})

    response = client.post("/debts/simplify", json={"user_ids": [alice["id"], bob["id"], carol["id"]]})

    assert response.status_code == 200
    # Bob owes Alice 10 and is owed 10 by Carol: one transfer replaces two
    assert response.json()["transactions"] == [{"from": carol["id"], "to": alice["id"], "amount": 10.0}]


def test_simplify_requires_users(client):
    assert client.post("/debts/simplify", json={"user_ids": []}).status_code == 422


def test_group_simplified_debts_endpoint(client, seed):
    alice, bob, carol = seed.user("Alice"), seed.user("Bob"), seed.user("Carol")
    trip = seed.group("Trip", alice, members=[bob, carol])
    seed.expense(60, alice, {alice["id"]: 20, bob["id"]: 20, carol["id"]: 20}, group=trip)
    seed.settlement(bob, alice, 20, group=trip)

    response = client.get(f"/groups/{trip['id']}/simplified-debts", params={"viewer_id": alice["id"]})

    assert response.status_code == 200
    data = response.json()
    assert data["transactions"] == [{"from": carol["id"], "to": alice["id"], "amount": 20.0}]
    assert data["optimizedCount"] == 1


def test_reads_are_cached_until_invalidated(client, seed):
    alice, bob = seed.user("Alice"), seed.user("Bob")
    seed.friendship(alice, bob)

    first = client.get(f"/users/{alice['id']}/friends")
    second = client.get(f"/users/{alice['id']}/friends")
    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert second.json() == first.json()

    carol = seed.user("Carol")
    seed.friendship(carol, alice)
    assert len(client.get(f"/users/{alice['id']}/friends").json()["friends"]) == 1

    response = client.post("/cache/invalidate", json={"user_ids": [alice["id"]], "scopes": ["friends"]})
    assert response.status_code == 200

    refreshed = client.get(f"/users/{alice['id']}/friends")
    assert refreshed.headers["X-Cache"] == "MISS"
    assert [f["friend"]["name"] for f in refreshed.json()["friends"]] == ["Carol", "Bob"]


def test_invalidate_rejects_unknown_scope(client):
    response = client.post("/cache/invalidate", json={"user_ids": [1], "scopes": ["friends", "nope"]})

    assert response.status_code == 400
    assert "nope" in response.json()["detail"]


def test_expense_and_settlement_reads(client, seed):
    alice, bob = seed.user("Alice"), seed.user("Bob")
    seed.expense(12, alice, {alice["id"]: 6, bob["id"]: 6}, category="food")
    seed.expense(8, bob, {alice["id"]: 4, bob["id"]: 4}, category="travel")
    seed.settlement(alice, bob, 3)

    expenses = client.get(f"/users/{alice['id']}/expenses", params={"category": "food"}).json()
    settlements = client.get(f"/users/{alice['id']}/settlements", params={"friend_id": bob["id"]}).json()

    assert [e["amount"] for e in expenses["expenses"]] == [12.0]
    assert expenses["pagination"]["total"] == 1
    assert [s["amount"] for s in settlements["settlements"]] == [3.0]


def test_activity_reads(client, seed):
    alice, bob = seed.user("Alice"), seed.user("Bob")
    seed.friendship(alice, bob)
    seed.expense(12, alice, {alice["id"]: 6, bob["id"]: 6})

    dashboard = client.get(f"/users/{alice['id']}/dashboard/activity").json()
    activities = client.get(f"/users/{alice['id']}/activities", params={"limit": 1}).json()

    assert [a["type"] for a in dashboard["activities"]] == ["expense_added", "friend_added"]
    assert [a["type"] for a in activities["activities"]] == ["expense"]
    assert activities["pagination"]["total_pages"] == 1


def test_limit_is_bounded(client):
    assert client.get("/users/1/activities", params={"limit": 0}).status_code == 422
    assert client.get("/users/1/expenses", params={"limit": 101}).status_code == 422


def test_mongo_mode_reads_from_documents(client, seed, monkeypatch):
    alice, bob = seed.user("Alice"), seed.user("Bob")
    seed.friendship(alice, bob)
    seed.expense(10, alice, {alice["id"]: 5, bob["id"]: 5}, mongo=False)
    monkeypatch.setenv("DATA_BACKEND_MODE", "mongo")

    friends = client.get(f"/users/{alice['id']}/friends").json()["friends"]
    balances = client.get(f"/users/{alice['id']}/balances").json()

    # The expense only exists in SQL, so Mongo mode sees no debt
    assert friends[0]["balance"] == 0.0
    assert balances["balances"] == []


def test_shadow_mode_serves_primary_and_logs_drift(client, seed, mongo_db, monkeypatch, caplog):
    alice, bob = seed.user("Alice"), seed.user("Bob")
    seed.friendship(alice, bob)
    mongo_db.friends.delete_many({})
    monkeypatch.setenv("DATA_BACKEND_MODE", "shadow")

    with caplog.at_level(logging.WARNING, logger="repositories.shadow"):
        response = client.get(f"/users/{alice['id']}/friends")

    assert response.status_code == 200
    assert len(response.json()["friends"]) == 1
    assert "Shadow read mismatch" in caplog.text


def test_store_failure_returns_503(client, monkeypatch):
    broken = Mock()
    broken.friends.find.side_effect = ServerSelectionTimeoutError("no servers")
    broken.expense_participants.find.side_effect = ServerSelectionTimeoutError("no servers")
    app.dependency_overrides[get_mongo_db] = lambda: broken
    monkeypatch.setenv("DATA_BACKEND_MODE", "mongo")

    friends = client.get("/users/1/friends")
    balances = client.get("/users/1/balances")

    assert friends.status_code == 503
    assert balances.status_code == 503
    assert friends.json()["detail"] == "Data store unavailable"
