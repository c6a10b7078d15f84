"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from spendshare.core.database import get_db
from spendshare.web.app import app


@pytest.fixture
def client(db_session, users):
    """Create a test client with the test database."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def as_user(user_id):
    return {"X-User-Id": user_id}


@pytest.fixture
def shared_group(client):
    """Group of alice and bob, created through the API."""
    group = client.post("/groups", json={"name": "Flat"}, headers=as_user("alice")).json()
    invitation = client.post(
        f"/groups/{group['id']}/invitations",
        json={"email": "bob@example.com"},
        headers=as_user("alice"),
    ).json()
    client.post(f"/invitations/{invitation['id']}/accept", headers=as_user("bob"))
    return group


def test_missing_identity_is_401(client):
    response = client.get("/groups")
    assert response.status_code == 401


def test_create_and_list_groups(client):
    response = client.post("/groups", json={"name": "Trip", "description": "Goa"}, headers=as_user("alice"))
    assert response.status_code == 201
    group = response.json()
    assert group["created_by"] == "alice"

    [listed] = client.get("/groups", headers=as_user("alice")).json()
    assert listed["id"] == group["id"]
    assert listed["role"] == "admin"
    assert listed["member_count"] == 1
    assert client.get("/groups", headers=as_user("bob")).json() == []


def test_error_mapping(client, shared_group):
    gid = shared_group["id"]

    denied = client.get(f"/groups/{gid}", headers=as_user("carol"))
    assert denied.status_code == 403
    assert denied.json()["error"] == "Unauthorized"

    assert client.get("/groups/999", headers=as_user("alice")).status_code == 404

    invite = {"email": "carol@example.com"}
    assert client.post(f"/groups/{gid}/invitations", json=invite, headers=as_user("bob")).status_code == 201
    assert client.post(f"/groups/{gid}/invitations", json=invite, headers=as_user("alice")).status_code == 409

    assert client.put(f"/groups/{gid}/limit", json={"amount": 0}, headers=as_user("bob")).status_code == 422
    assert client.post("/groups", json={}, headers=as_user("alice")).status_code == 422


def test_outsider_is_denied_everywhere(client, shared_group):
    gid = shared_group["id"]
    for path in (
        f"/groups/{gid}",
        f"/groups/{gid}/members",
        f"/groups/{gid}/invitations",
        f"/groups/{gid}/transactions",
    ):
        assert client.get(path, headers=as_user("carol")).status_code == 403, path


def test_invitation_flow(client, shared_group):
    gid = shared_group["id"]
    client.post(f"/groups/{gid}/invitations", json={"email": "carol@example.com"}, headers=as_user("alice"))

    [pending] = client.get("/invitations", headers=as_user("carol")).json()
    assert pending["group_name"] == "Flat"
    assert pending["inviter_name"] == "Alice"

    declined = client.post(f"/invitations/{pending['id']}/decline", headers=as_user("carol"))
    assert declined.json()["status"] == "declined"
    assert client.get("/invitations", headers=as_user("carol")).json() == []

    members = client.get(f"/groups/{gid}/members", headers=as_user("bob")).json()
    assert [m["user_id"] for m in members] == ["alice", "bob"]


def test_group_budget_status_over_api(client, shared_group):
    gid = shared_group["id"]
    for user_id, amount in (("alice", 300), ("bob", 250)):
        category = client.post("/categories", json={"name": "Food"}, headers=as_user(user_id)).json()
        created = client.post(
            "/transactions",
            json={"amount": amount, "category_id": category["id"], "group_id": gid},
            headers=as_user(user_id),
        )
        assert created.status_code == 201

    limit = client.put(f"/groups/{gid}/budgets/Food", json={"amount": 500}, headers=as_user("bob"))
    assert limit.status_code == 200
    assert limit.json()["category_name"] == "Food"

    status = client.get(f"/groups/{gid}/budgets", headers=as_user("alice")).json()
    [food] = status["categories"]
    assert food["spent"] == 550.0
    assert food["is_over_budget"] is True
    assert food["overspend"] == 50.0
    assert food["capped_percentage"] == 100.0
    assert len(status["budgets"]) == 1

    assert client.delete(f"/groups/{gid}/budgets/food", headers=as_user("alice")).status_code == 204
    assert client.get(f"/groups/{gid}/budgets", headers=as_user("alice")).json()["categories"] == []


def test_group_aggregate_limit_any_member(client, shared_group):
    gid = shared_group["id"]

    response = client.put(f"/groups/{gid}/limit", json={"amount": 120}, headers=as_user("bob"))
    assert response.status_code == 200
    assert response.json()["total_expenditure_limit"] == 120.0

    assert client.delete(f"/groups/{gid}/limit", headers=as_user("bob")).status_code == 204
    assert client.get(f"/groups/{gid}", headers=as_user("alice")).json()["total_expenditure_limit"] is None


def test_personal_budgets(client):
    food = client.post("/categories", json={"name": "Food"}, headers=as_user("alice")).json()
    client.post("/transactions", json={"amount": 80, "category_id": food["id"]}, headers=as_user("alice"))

    first = client.put(f"/budgets/{food['id']}", json={"amount": 50}, headers=as_user("alice")).json()
    second = client.put(f"/budgets/{food['id']}", json={"amount": 60}, headers=as_user("alice")).json()
    assert first["id"] == second["id"]

    total = client.put("/budgets/total", json={"amount": 100}, headers=as_user("alice"))
    assert total.json()["total_expenditure_limit"] == 100.0

    status = client.get("/budgets", headers=as_user("alice")).json()
    [food_status] = status["categories"]
    assert food_status["spent"] == 80.0
    assert food_status["overspend"] == 20.0
    assert status["total"]["spent"] == 80.0

    assert client.delete("/budgets/total", headers=as_user("alice")).status_code == 204
    assert client.get("/budgets", headers=as_user("alice")).json()["total"] is None


def test_transaction_patch_shares_with_group(client, shared_group):
    gid = shared_group["id"]
    tx = client.post("/transactions", json={"amount": 12.5, "description": "milk"}, headers=as_user("bob")).json()
    assert tx["group_id"] is None
    assert client.get(f"/transactions/{tx['id']}", headers=as_user("alice")).status_code == 403

    patched = client.patch(f"/transactions/{tx['id']}", json={"group_id": gid}, headers=as_user("bob")).json()
    assert patched["group_id"] == gid
    assert patched["user_id"] == "bob"

    seen = client.get(f"/groups/{gid}/transactions", headers=as_user("alice")).json()
    assert [t["id"] for t in seen] == [tx["id"]]

    cleared = client.patch(f"/transactions/{tx['id']}", json={"group_id": None}, headers=as_user("bob")).json()
    assert cleared["group_id"] is None


def test_admin_changes_member_role(client, shared_group):
    gid = shared_group["id"]

    denied = client.patch(f"/groups/{gid}/members/alice", json={"role": "member"}, headers=as_user("bob"))
    assert denied.status_code == 403

    promoted = client.patch(f"/groups/{gid}/members/bob", json={"role": "admin"}, headers=as_user("alice"))
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "admin"
    assert client.post(f"/groups/{gid}/leave", headers=as_user("alice")).status_code == 204


def test_profile_reports_personal_limit(client):
    assert client.put("/budgets/total", json={"amount": 75}, headers=as_user("alice")).status_code == 200

    profile = client.get("/profile", headers=as_user("alice")).json()

    assert profile["email"] == "alice@example.com"
    assert profile["display_name"] == "Alice"
    assert profile["total_expenditure_limit"] == 75.0
    assert client.get("/profile", headers=as_user("nobody")).status_code == 404
