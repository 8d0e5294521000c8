"""
reward_ledger/tests/test_api.py - HTTP surface tests.

Uses FastAPI's TestClient; no server process needed.
"""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from reward_ledger.api import create_app
from reward_ledger.config import Settings
from reward_ledger.store import LedgerStore

ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def store():
    s = LedgerStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def settings():
    return Settings(db_path=":memory:", admin_token=ADMIN_TOKEN)


@pytest.fixture
def client(store, settings):
    with TestClient(create_app(store=store, settings=settings)) as c:
        yield c


def _claim(client, reward_id, user_id):
    return client.post(f"/rewards/{reward_id}/claim", headers={"X-User-Id": str(user_id)})


class TestHealth:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "service": "reward-ledger"}


class TestRewards:
    def test_list_sorted_by_points(self, client, store):
        store.add_reward("Jersey", points_required=400, stock=2)
        store.add_reward("Sticker", points_required=10)

        resp = client.get("/rewards")

        assert resp.status_code == 200
        assert [r["title"] for r in resp.json()] == ["Sticker", "Jersey"]

    def test_list_available_only(self, client, store):
        store.add_reward("Sold out", points_required=10, stock=0)
        store.add_reward("Cap", points_required=20, stock=1)

        resp = client.get("/rewards", params={"available_only": True})

        assert [r["title"] for r in resp.json()] == ["Cap"]

    def test_get_unknown_reward(self, client):
        resp = client.get(f"/rewards/{uuid4()}")
        assert resp.status_code == 404

    def test_create_reward_as_admin(self, client):
        resp = client.post(
            "/rewards",
            json={"title": "Team jersey", "description": "Official jersey", "points_required": 80, "stock": 10},
            headers={"X-Admin-Token": ADMIN_TOKEN},
        )

        assert resp.status_code == 201
        data = resp.json()
        assert data["stock"] == 10
        assert client.get(f"/rewards/{data['id']}").json()["title"] == "Team jersey"

    def test_create_reward_requires_admin(self, client):
        resp = client.post("/rewards", json={"title": "Free stuff", "description": "Anything", "points_required": 1})
        assert resp.status_code == 403

        resp = client.post(
            "/rewards",
            json={"title": "Free stuff", "description": "Anything", "points_required": 1},
            headers={"X-Admin-Token": "wrong"},
        )
        assert resp.status_code == 403

    def test_admin_routes_disabled_without_token(self, store):
        app = create_app(store=store, settings=Settings(db_path=":memory:"))
        with TestClient(app) as c:
            resp = c.post(
                "/rewards",
                json={"title": "Cap", "description": "Team cap", "points_required": 5},
                headers={"X-Admin-Token": ""},
            )
        assert resp.status_code == 403

    def test_create_reward_validates_fields(self, client):
        headers = {"X-Admin-Token": ADMIN_TOKEN}
        assert client.post("/rewards", json={"title": "Cap", "description": "Team cap", "points_required": 0}, headers=headers).status_code == 422
        assert client.post(
            "/rewards", json={"title": "Cap", "description": "Team cap", "points_required": 5, "stock": -2}, headers=headers
        ).status_code == 422

    def test_create_reward_rejects_oversized_numbers(self, client, store):
        headers = {"X-Admin-Token": ADMIN_TOKEN}

        resp = client.post(
            "/rewards",
            json={"title": "Cap", "description": "Team cap", "points_required": 10**19},
            headers=headers,
        )
        assert resp.status_code == 422

        resp = client.post(
            "/rewards",
            json={"title": "Cap", "description": "Team cap", "points_required": 5, "stock": 10**19},
            headers=headers,
        )
        assert resp.status_code == 422
        assert store.list_rewards() == []

    def test_create_reward_requires_title_and_description(self, client, store):
        headers = {"X-Admin-Token": ADMIN_TOKEN}

        blank_title = client.post(
            "/rewards", json={"title": "   ", "description": "Team cap", "points_required": 5}, headers=headers
        )
        missing_description = client.post(
            "/rewards", json={"title": "Cap", "points_required": 5}, headers=headers
        )
        blank_description = client.post(
            "/rewards", json={"title": "Cap", "description": " ", "points_required": 5}, headers=headers
        )

        assert blank_title.status_code == 422
        assert missing_description.status_code == 422
        assert blank_description.status_code == 422
        assert store.list_rewards() == []

    def test_create_reward_strips_text(self, client):
        resp = client.post(
            "/rewards",
            json={"title": "  Cap  ", "description": " Team cap ", "points_required": 5},
            headers={"X-Admin-Token": ADMIN_TOKEN},
        )

        assert resp.status_code == 201
        assert resp.json()["title"] == "Cap"
        assert resp.json()["description"] == "Team cap"


class TestClaimEndpoint:
    def test_claim_success(self, client, store):
        user = store.open_account(points=100)
        reward = store.add_reward("Jersey", points_required=80, stock=1)

        resp = _claim(client, reward.id, user.user_id)

        assert resp.status_code == 200
        data = resp.json()
        assert data["message"] == "Reward claimed successfully"
        assert data["claim"]["balance_after"] == 20
        assert data["claim"]["stock_after"] == 0
        assert client.get(f"/users/{user.user_id}/balance").json()["points"] == 20

    def test_insufficient_points(self, client, store):
        user = store.open_account(points=50)
        reward = store.add_reward("Jersey", points_required=80, stock=1)

        resp = _claim(client, reward.id, user.user_id)

        assert resp.status_code == 400
        assert resp.json() == {"error": "Insufficient points"}

    def test_out_of_stock(self, client, store):
        user = store.open_account(points=500)
        reward = store.add_reward("Jersey", points_required=80, stock=0)

        resp = _claim(client, reward.id, user.user_id)

        assert resp.status_code == 400
        assert resp.json() == {"error": "Reward out of stock"}

    def test_unknown_reward(self, client, store):
        user = store.open_account(points=500)

        resp = _claim(client, uuid4(), user.user_id)

        assert resp.status_code == 404
        assert resp.json() == {"error": "Reward not found"}

    def test_unknown_user(self, client, store):
        reward = store.add_reward("Jersey", points_required=80)

        resp = _claim(client, reward.id, uuid4())

        assert resp.status_code == 404
        assert resp.json() == {"error": "User not found"}

    def test_missing_identity(self, client, store):
        reward = store.add_reward("Jersey", points_required=80)

        assert client.post(f"/rewards/{reward.id}/claim").status_code == 401
        assert client.post(
            f"/rewards/{reward.id}/claim", headers={"X-User-Id": "not-a-uuid"}
        ).status_code == 401

    def test_storage_failure_is_500(self, client, store):
        user = store.open_account(points=100)
        reward = store.add_reward("Jersey", points_required=80, stock=1)
        store._conn.execute(
            "CREATE TRIGGER fail_claims BEFORE INSERT ON claims "
            "BEGIN SELECT RAISE(ABORT, 'disk on fire'); END"
        )

        resp = _claim(client, reward.id, user.user_id)

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert store.get_balance(user.user_id) == 100

    def test_once_per_user_policy(self, store):
        app = create_app(store=store, settings=Settings(db_path=":memory:", once_per_user=True))
        user = store.open_account(points=100)
        reward = store.add_reward("Sticker", points_required=10)

        with TestClient(app) as c:
            assert _claim(c, reward.id, user.user_id).status_code == 200
            resp = _claim(c, reward.id, user.user_id)

        assert resp.status_code == 400
        assert resp.json() == {"error": "Reward already claimed"}


class TestUsers:
    def test_open_account(self, client):
        user_id = uuid4()

        resp = client.post(
            "/users",
            json={"user_id": str(user_id), "points": 250},
            headers={"X-Admin-Token": ADMIN_TOKEN},
        )

        assert resp.status_code == 201
        assert resp.json()["points"] == 250
        assert client.get(f"/users/{user_id}/balance").json()["points"] == 250

    def test_open_duplicate_account(self, client, store):
        user = store.open_account()

        resp = client.post(
            "/users",
            json={"user_id": str(user.user_id)},
            headers={"X-Admin-Token": ADMIN_TOKEN},
        )

        assert resp.status_code == 409

    def test_open_account_rejects_oversized_balance(self, client):
        user_id = uuid4()

        resp = client.post(
            "/users",
            json={"user_id": str(user_id), "points": 10**19},
            headers={"X-Admin-Token": ADMIN_TOKEN},
        )

        assert resp.status_code == 422
        assert client.get(f"/users/{user_id}/balance").status_code == 404

    def test_unknown_balance(self, client):
        assert client.get(f"/users/{uuid4()}/balance").status_code == 404

    def test_claim_history(self, client, store):
        user = store.open_account(points=100)
        reward = store.add_reward("Sticker", points_required=10)
        _claim(client, reward.id, user.user_id)
        _claim(client, reward.id, user.user_id)

        resp = client.get(f"/users/{user.user_id}/claims")

        assert resp.status_code == 200
        claims = resp.json()
        assert len(claims) == 2
        assert [c["balance_after"] for c in claims] == [80, 90]
