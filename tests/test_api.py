"""
Integration tests for the Vault Ledger API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from vault_ledger.api import create_app
from vault_ledger.api.dependencies import get_vault_system

from conftest import FakeClock, make_system


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(clock):
    """Test client backed by an in-memory vault system"""
    app = create_app()
    test_system = make_system(clock=clock)
    app.dependency_overrides[get_vault_system] = lambda: test_system
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def open_account(client, name="Alice", email="alice@example.com", **extra):
    r = client.post("/accounts", json={"display_name": name, "email": email, **extra})
    assert r.status_code == 201
    data = r.json()
    headers = {"X-Owner-Id": data["profile"]["id"]}
    vaults = {v["vault_type"]: v["id"] for v in data["vaults"]}
    return data["profile"], headers, vaults


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Vault Ledger API"
        assert "vaults" in data["endpoints"]


class TestAccountFlow:

    def test_open_account(self, client):
        r = client.post("/accounts", json={"display_name": "Alice", "email": "alice@example.com"})
        assert r.status_code == 201
        data = r.json()
        assert data["message"] == "Account created successfully"
        assert len(data["profile"]["public_id"]) == 6
        assert [v["vault_type"] for v in data["vaults"]] == ["general", "emergency", "pension"]
        assert all(v["balance"]["amount"] == "0.00" for v in data["vaults"])

    def test_duplicate_email(self, client):
        open_account(client)
        r = client.post("/accounts", json={"display_name": "Other", "email": "ALICE@example.com"})
        assert r.status_code == 400
        assert r.json()["error"] == "validation_error"

    def test_missing_owner_header(self, client):
        assert client.get("/accounts/me").status_code == 401
        assert client.get("/vaults").status_code == 401

    def test_get_account(self, client):
        profile, headers, vaults = open_account(client)
        client.post(f"/vaults/{vaults['general']}/deposit", json={"amount": "12.50"}, headers=headers)

        r = client.get("/accounts/me", headers=headers)
        assert r.status_code == 200
        data = r.json()
        assert data["profile"]["email"] == "alice@example.com"
        assert data["total_balance"]["amount"] == "12.50"
        assert data["total_balance"]["display"] == "$12.50"

    def test_pension_target_year(self, client):
        _, headers, _ = open_account(client)

        r = client.put("/accounts/me/pension-target-year", json={"year": 2040}, headers=headers)
        assert r.status_code == 200

        r = client.put("/accounts/me/pension-target-year", json={"year": 2030}, headers=headers)
        assert r.status_code == 400

        r = client.get("/accounts/me/pension-status", headers=headers)
        assert r.status_code == 200
        data = r.json()
        assert data["target_year"] == 2040
        assert data["state"] == "unfunded"

    def test_close_account(self, client):
        _, headers, vaults = open_account(client)
        client.post(f"/vaults/{vaults['general']}/deposit", json={"amount": "10.00"}, headers=headers)

        r = client.delete("/accounts/me", headers=headers)
        assert r.status_code == 400
        assert "Withdraw all funds" in r.json()["message"]

        client.post(f"/vaults/{vaults['general']}/withdraw", json={"amount": "9.95"}, headers=headers)
        r = client.delete("/accounts/me", headers=headers)
        assert r.status_code == 200
        assert client.get("/accounts/me", headers=headers).status_code == 404


class TestVaultFlow:

    def test_deposit_and_withdraw(self, client):
        _, headers, vaults = open_account(client)
        general = vaults["general"]

        r = client.post(
            f"/vaults/{general}/deposit",
            json={"amount": "100.00", "method": "wallet_topup"},
            headers=headers
        )
        assert r.status_code == 200
        assert r.json()["new_balance"] == "100.00"

        r = client.post(f"/vaults/{general}/withdraw", json={"amount": "50.00"}, headers=headers)
        assert r.status_code == 200
        data = r.json()
        assert data["fee"] == "0.25"
        assert data["new_balance"] == "49.75"

        r = client.get(f"/vaults/{general}/transactions", headers=headers)
        kinds = [t["kind"] for t in r.json()["transactions"]]
        assert kinds == ["withdrawal_fee", "withdrawal", "deposit"]

        r = client.get(f"/vaults/{general}/reconcile", headers=headers)
        assert r.json()["balanced"] is True
        assert r.json()["chain_valid"] is True

    def test_insufficient_funds_body(self, client):
        _, headers, vaults = open_account(client)
        general = vaults["general"]
        client.post(f"/vaults/{general}/deposit", json={"amount": "100.00"}, headers=headers)

        r = client.post(f"/vaults/{general}/withdraw", json={"amount": "99.60"}, headers=headers)
        assert r.status_code == 400
        data = r.json()
        assert data["error"] == "insufficient_funds"
        assert data["fee"] == "0.50"
        assert data["total"] == "100.10"
        assert data["shortfall"] == "0.10"

    @pytest.mark.parametrize("amount", [10.5, 10, "abc", "0", "1.001", "1e30", "1" + "0" * 29])
    def test_bad_amounts(self, client, amount):
        _, headers, vaults = open_account(client)
        r = client.post(
            f"/vaults/{vaults['general']}/deposit", json={"amount": amount}, headers=headers
        )
        assert r.status_code in (400, 422)
        assert client.get(f"/vaults/{vaults['general']}", headers=headers).json()["balance"]["amount"] == "0.00"

    @pytest.mark.parametrize("amount", ["1e30", "1" + "0" * 29])
    def test_oversized_amounts_are_validation_errors(self, client, amount):
        _, headers, vaults = open_account(client)
        r = client.post(
            f"/vaults/{vaults['general']}/deposit", json={"amount": amount}, headers=headers
        )
        assert r.status_code == 400
        assert r.json()["error"] == "validation_error"

        r = client.post("/goals", json={"name": "Moon", "target_amount": amount}, headers=headers)
        assert r.status_code == 400

    def test_float_amount_is_rejected_by_schema(self, client):
        _, headers, vaults = open_account(client)
        r = client.post(
            f"/vaults/{vaults['general']}/deposit", json={"amount": 10.5}, headers=headers
        )
        assert r.status_code == 422

    def test_other_owners_vault_is_not_found(self, client):
        _, alice_headers, _ = open_account(client)
        _, _, bob_vaults = open_account(client, "Bob", "bob@example.com")

        r = client.get(f"/vaults/{bob_vaults['general']}", headers=alice_headers)
        assert r.status_code == 404
        assert r.json() == {"error": "not_found", "message": "Vault not found"}

    def test_locked_pension(self, client, clock):
        _, headers, vaults = open_account(client, pension_target_year=2040)
        pension = vaults["pension"]

        r = client.post(f"/vaults/{pension}/deposit", json={"amount": "500.00"}, headers=headers)
        assert r.status_code == 200

        r = client.post(f"/vaults/{pension}/withdraw-full", headers=headers)
        assert r.status_code == 423
        data = r.json()
        assert data["error"] == "locked"
        assert data["unlock_date"].startswith("2026-03-01")

        r = client.post(f"/vaults/{pension}/withdraw", json={"amount": "1.00"}, headers=headers)
        assert r.status_code == 400

        clock.advance(days=366)
        r = client.post(f"/vaults/{pension}/withdraw-full", headers=headers)
        assert r.status_code == 200
        assert r.json()["payout"] == "500.00"

    def test_parking_incentive(self, client):
        _, headers, vaults = open_account(client)
        emergency = vaults["emergency"]
        client.post(f"/vaults/{emergency}/deposit", json={"amount": "1000.00"}, headers=headers)

        r = client.post(f"/vaults/{emergency}/parking-incentive", headers=headers)
        assert r.status_code == 200
        assert r.json()["incentive"] == "2.50"
        assert r.json()["new_balance"] == "1002.50"


class TestTransferAndGoalFlow:

    def test_transfer_to_user(self, client):
        _, alice_headers, alice_vaults = open_account(client)
        bob, bob_headers, _ = open_account(client, "Bob", "bob@example.com")
        client.post(
            f"/vaults/{alice_vaults['general']}/deposit", json={"amount": "30.00"}, headers=alice_headers
        )

        r = client.post("/transfers/user", json={
            "source_vault_id": alice_vaults["general"],
            "amount": "10.00",
            "public_id": bob["public_id"],
        }, headers=alice_headers)
        assert r.status_code == 200
        assert r.json()["source_balance"] == "20.00"
        assert r.json()["message"] == "Transfer of $10.00 to Bob successful!"

        r = client.get("/accounts/me", headers=bob_headers)
        assert r.json()["total_balance"]["amount"] == "10.00"

    def test_transfer_with_both_identifiers(self, client):
        _, headers, vaults = open_account(client)
        r = client.post("/transfers/user", json={
            "source_vault_id": vaults["general"],
            "amount": "10.00",
            "public_id": "123456",
            "email": "bob@example.com",
        }, headers=headers)
        assert r.status_code == 400

    def test_own_transfer(self, client):
        _, headers, vaults = open_account(client)
        client.post(f"/vaults/{vaults['general']}/deposit", json={"amount": "30.00"}, headers=headers)

        r = client.post("/transfers/own", json={
            "source_vault_id": vaults["general"],
            "dest_vault_type": "emergency",
            "amount": "5.00",
        }, headers=headers)
        assert r.status_code == 200
        r = client.get(f"/vaults/{vaults['emergency']}", headers=headers)
        assert r.json()["balance"]["amount"] == "5.00"

    def test_goal_lifecycle(self, client):
        _, headers, vaults = open_account(client)
        client.post(f"/vaults/{vaults['general']}/deposit", json={"amount": "100.00"}, headers=headers)

        r = client.post("/goals", json={"name": "Bike", "target_amount": "50.00"}, headers=headers)
        assert r.status_code == 201
        goal_id = r.json()["goal"]["id"]

        r = client.post(f"/goals/{goal_id}/allocate", json={"amount": "20.00"}, headers=headers)
        assert r.status_code == 200
        assert r.json()["goal_completed"] is False

        r = client.patch(f"/goals/{goal_id}", json={"target_amount": "40.00"}, headers=headers)
        assert r.status_code == 200
        assert r.json()["goal"]["progress"] == 50

        r = client.post(f"/goals/{goal_id}/allocate", json={"amount": "20.00"}, headers=headers)
        assert r.json()["goal_completed"] is True
        assert r.json()["message"].startswith("Congratulations!")

        r = client.delete(f"/goals/{goal_id}", headers=headers)
        assert r.status_code == 400

        r = client.get("/goals", headers=headers)
        assert [g["status"] for g in r.json()["goals"]] == ["completed"]

    def test_unknown_goal(self, client):
        _, headers, _ = open_account(client)
        assert client.get("/goals/missing", headers=headers).status_code == 404
