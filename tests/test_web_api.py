from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from forecast_tracker import database, recurring
from forecast_tracker.core.models import RuleKind
from webapp.main import create_app

ALICE = {"Authorization": "Bearer alice"}
BOB = {"X-User-Id": "bob"}


@pytest.fixture
def client(db_path):
    return TestClient(create_app(db_path))


@pytest.fixture
def space(client):
    space_id = client.post("/api/spaces", json={"name": "Home"}, headers=ALICE).json()["id"]
    account = client.post(
        f"/api/spaces/{space_id}/accounts",
        json={"name": "Checking", "starting_balance": 1000},
        headers=ALICE,
    ).json()
    category = client.post(
        f"/api/spaces/{space_id}/categories", json={"name": "Bills"}, headers=ALICE
    ).json()
    return {"id": space_id, "account_id": account["id"], "category_id": category["id"]}


def _rule_payload(space, **overrides):
    payload = {
        "account_id": space["account_id"],
        "category_id": space["category_id"],
        "title": "Internet",
        "amount": 60,
        "frequency": "Monthly",
        "start_date": "2025-01-15",
    }
    payload.update(overrides)
    return payload


def test_identity_required(client):
    res = client.get("/api/spaces")
    assert res.status_code == 401
    assert res.json() == {"error": "authentication required"}
    assert res.headers["WWW-Authenticate"].startswith("Bearer")


def test_non_member_is_forbidden(client, space):
    res = client.get(f"/api/spaces/{space['id']}/recurring-expenses", headers=BOB)
    assert res.status_code == 403
    assert "error" in res.json()


def test_create_and_read_rule(client, space):
    base = f"/api/spaces/{space['id']}/recurring-expenses"
    res = client.post(base, json=_rule_payload(space), headers=ALICE)
    assert res.status_code == 201, res.text
    rule = res.json()
    assert rule["kind"] == "expense"
    assert rule["frequency"] == "Monthly"
    assert rule["next_due_date"] == "2025-02-15"
    assert rule["created_by"] == "alice"

    assert client.get(f"{base}/{rule['id']}", headers=ALICE).json()["title"] == "Internet"
    listed = client.get(base, headers=ALICE).json()
    assert [r["id"] for r in listed] == [rule["id"]]
    assert client.get(f"/api/spaces/{space['id']}/recurring-incomes", headers=ALICE).json() == []


def test_create_rule_bad_input(client, space):
    base = f"/api/spaces/{space['id']}/recurring-expenses"
    res = client.post(base, json=_rule_payload(space, amount=-5), headers=ALICE)
    assert res.status_code == 400
    assert "Amount" in res.json()["error"]

    res = client.post(base, json=_rule_payload(space, frequency=9), headers=ALICE)
    assert res.status_code == 400

    res = client.post(base, json={"title": "missing fields"}, headers=ALICE)
    assert res.status_code == 400
    assert "account_id" in res.json()["error"]

    res = client.post(base, json=_rule_payload(space, account_id=999), headers=ALICE)
    assert res.status_code == 404


def test_income_rule_rejects_category(client, space):
    res = client.post(
        f"/api/spaces/{space['id']}/recurring-incomes",
        json=_rule_payload(space, title="Salary"),
        headers=ALICE,
    )
    assert res.status_code == 400


def test_update_and_delete_rule(client, space):
    base = f"/api/spaces/{space['id']}/recurring-expenses"
    rule = client.post(base, json=_rule_payload(space), headers=ALICE).json()

    res = client.put(f"{base}/{rule['id']}", json={"amount": 75.5}, headers=ALICE)
    assert res.status_code == 200
    assert res.json()["amount"] == 75.5
    assert res.json()["next_due_date"] == "2025-02-15"

    res = client.put(f"{base}/{rule['id']}", json={"frequency": "Quarterly"}, headers=ALICE)
    assert res.json()["next_due_date"] == "2025-04-15"

    res = client.put(f"{base}/{rule['id']}", json={"is_active": False}, headers=ALICE)
    assert res.json()["is_active"] is False

    assert client.delete(f"{base}/{rule['id']}", headers=ALICE).status_code == 204
    res = client.get(f"{base}/{rule['id']}", headers=ALICE)
    assert res.status_code == 404
    assert "not found" in res.json()["error"]


def test_due_and_generate(client, space, db_path):
    today = date.today()
    rule = recurring.create_rule(
        db_path,
        space["id"],
        RuleKind.EXPENSE,
        account_id=space["account_id"],
        category_id=space["category_id"],
        title="Internet",
        amount=60,
        frequency="Monthly",
        start_date=today - timedelta(days=40),
    )
    base = f"/api/spaces/{space['id']}/recurring-expenses"

    due = client.get(f"{base}/due", headers=ALICE).json()
    assert [d["id"] for d in due] == [rule.id]
    assert due[0]["account_name"] == "Checking"
    assert due[0]["category_name"] == "Bills"

    res = client.post(f"{base}/{rule.id}/generate", headers=BOB)
    assert res.status_code == 403

    res = client.post(f"{base}/{rule.id}/generate", headers=ALICE)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["message"] == "Expense generated successfully"
    assert body["rule_id"] == rule.id
    assert body["next_due_date"] == recurring.calculate_next_due_date(rule.next_due_date, "Monthly").isoformat()

    expenses = client.get(f"/api/spaces/{space['id']}/expenses", headers=ALICE).json()
    assert [e["id"] for e in expenses] == [body["transaction_id"]]
    assert expenses[0]["added_by"] == "alice"
    account = client.get(f"/api/spaces/{space['id']}/accounts/{space['account_id']}", headers=ALICE).json()
    assert account["current_balance"] == 940.0
    assert account["drift"] == 0


def test_generate_inactive_rule_returns_400(client, space, db_path):
    base = f"/api/spaces/{space['id']}/recurring-expenses"
    rule = client.post(base, json=_rule_payload(space), headers=ALICE).json()
    client.put(f"{base}/{rule['id']}", json={"is_active": False}, headers=ALICE)

    res = client.post(f"{base}/{rule['id']}/generate", headers=ALICE)
    assert res.status_code == 400
    assert "inactive" in res.json()["error"]
    with database.open_db(db_path) as conn:
        assert database.count_entries(conn, RuleKind.EXPENSE) == 0


def test_generate_unknown_rule_returns_404(client, space):
    res = client.post(f"/api/spaces/{space['id']}/recurring-incomes/42/generate", headers=ALICE)
    assert res.status_code == 404


def test_storage_errors_are_hidden(client, space, monkeypatch):
    import sqlite3

    def boom(*_a, **_k):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(recurring, "list_rules", boom)
    res = client.get(f"/api/spaces/{space['id']}/recurring-expenses", headers=ALICE)
    assert res.status_code == 500
    assert res.json() == {"error": "internal error"}


def test_members_can_share_a_space(client, space):
    res = client.post(f"/api/spaces/{space['id']}/members", json={"user_id": "bob"}, headers=ALICE)
    assert res.status_code == 204
    assert client.get(f"/api/spaces/{space['id']}/recurring-expenses", headers=BOB).status_code == 200
    assert [s["name"] for s in client.get("/api/spaces", headers=BOB).json()] == ["Home"]


def test_manual_income_entry(client, space):
    base = f"/api/spaces/{space['id']}/incomes"
    res = client.post(
        base,
        json={"account_id": space["account_id"], "title": "Gift", "amount": 25, "date": "2025-03-01"},
        headers=ALICE,
    )
    assert res.status_code == 201, res.text
    entry = res.json()
    assert entry["kind"] == "income"

    res = client.put(f"{base}/{entry['id']}", json={"amount": 30}, headers=ALICE)
    assert res.json()["amount"] == 30.0
    assert client.delete(f"{base}/{entry['id']}", headers=ALICE).status_code == 204
    assert client.get(base, headers=ALICE).json() == []


def test_only_the_owner_manages_members(client, space):
    members = f"/api/spaces/{space['id']}/members"
    assert client.post(members, json={"user_id": "bob"}, headers=ALICE).status_code == 204

    res = client.post(members, json={"user_id": "alice", "role": "member"}, headers=BOB)
    assert res.status_code == 403
    assert res.json() == {"error": "Only space owners can add members"}
    assert client.post(members, json={"user_id": "mallory", "role": "owner"}, headers=BOB).status_code == 403
    assert client.post(members, json={"user_id": "carol", "role": "owner"}, headers=ALICE).status_code == 400

    assert client.get("/api/spaces", headers={"X-User-Id": "mallory"}).json() == []
    assert client.get("/api/spaces", headers=BOB).json()[0]["owner_id"] == "alice"


def test_non_finite_amounts_are_rejected(client, space):
    base = f"/api/spaces/{space['id']}/recurring-expenses"
    for bad in ("nan", "inf"):
        res = client.post(base, json=_rule_payload(space, amount=bad), headers=ALICE)
        assert res.status_code == 400, res.text
    assert client.get(base, headers=ALICE).json() == []
