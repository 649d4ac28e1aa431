# tests/test_api.py

"""
Tests for the HTTP routes, with auth and storage swapped for in-memory fakes.
"""

import asyncio

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

import app.database as database
import app.dependencies as dependencies
import app.routers.reconcile as reconcile_router
from app.main import app
from app.dependencies import get_batch_runner, get_current_user, get_tenant_guard, require_tenant_admin
from app.exceptions import ProviderError
from app.models import RosterEntry, RosterRecord
from app.core.alias_store import InMemoryAliasStore
from app.core.batch import BatchRunner
from app.core.roster import RosterProvider, build_roster_entry


# ============================================
# Fakes
# ============================================

class FakeRosterProvider(RosterProvider):
    def __init__(self, fail: bool = False):
        self.fail = fail

    def fetch(self, tenant_id: str) -> list[RosterEntry]:
        if self.fail:
            raise RuntimeError("database unavailable")
        return [
            build_roster_entry(RosterRecord(id="p1", last_name="Rojas", first_name="Maria Eugenia")),
            build_roster_entry(RosterRecord(id="p3", last_name="Gonzalez", first_name="Mario")),
            build_roster_entry(RosterRecord(id="p4", last_name="Gonzalez", first_name="Mario")),
        ]


async def allow_all(tenant_id: str, user_id: str) -> None:
    return None


async def deny_all(tenant_id: str, user_id: str) -> None:
    raise HTTPException(status_code=403, detail="Only tenant administrators can reconcile payments")


@pytest.fixture
def runner() -> BatchRunner:
    return BatchRunner(InMemoryAliasStore(), FakeRosterProvider(), workers=1, strategy="token_set")


@pytest.fixture
def client(runner):
    app.dependency_overrides[get_current_user] = lambda: "user-1"
    app.dependency_overrides[get_batch_runner] = lambda: runner
    app.dependency_overrides[get_tenant_guard] = lambda: allow_all
    yield TestClient(app)
    app.dependency_overrides.clear()


# ============================================
# Health
# ============================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


# ============================================
# Reconcile
# ============================================

class TestReconcile:

    def test_reconcile(self, client):
        response = client.post("/reconcile", json={
            "tenant_id": "t1",
            "persist": False,
            "rows": [
                {"payer_raw": "Rojas Maria Eugenia", "amount": 120.5},
                {"payer_raw": "Gonzalez Mario"},
                {"payer_raw": ""},
            ],
        })

        assert response.status_code == 200
        body = response.json()
        assert [r["status"] for r in body["results"]] == ["matched", "review", "unmatched"]
        assert body["results"][0]["matched_account_id"] == "p1"
        assert body["results"][0]["amount"] == 120.5
        assert len(body["results"][1]["candidates"]) == 2
        assert body["summary"]["total_rows"] == 3

    def test_no_rows(self, client):
        response = client.post("/reconcile", json={"tenant_id": "t1", "rows": [], "persist": False})
        assert response.status_code == 400

    def test_provider_failure_is_503(self, client):
        app.dependency_overrides[get_batch_runner] = lambda: BatchRunner(
            InMemoryAliasStore(), FakeRosterProvider(fail=True), workers=1,
        )

        response = client.post("/reconcile", json={
            "tenant_id": "t1",
            "persist": False,
            "rows": [{"payer_raw": "Rojas Maria Eugenia"}],
        })

        assert response.status_code == 503

    def test_non_admin_is_forbidden(self, client):
        app.dependency_overrides[get_tenant_guard] = lambda: deny_all

        response = client.post("/reconcile", json={
            "tenant_id": "t1",
            "persist": False,
            "rows": [{"payer_raw": "Rojas Maria Eugenia"}],
        })

        assert response.status_code == 403

    def test_decisions(self, client, runner):
        run = client.post("/reconcile", json={
            "tenant_id": "t1",
            "persist": False,
            "rows": [{"payer_raw": "Gonzalez Mario"}],
        }).json()

        response = client.post("/reconcile/decisions", json={
            "tenant_id": "t1",
            "results": run["results"],
            "decisions": [{"row_index": 0, "action": "confirm", "account_id": "p3"}],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["results"][0]["status"] == "matched"
        assert body["summary"]["confirmed"] == 1
        assert runner.alias_store.get("t1", "GONZALEZ MARIO").created_by == "user-1"

    def test_decision_for_unknown_row(self, client):
        response = client.post("/reconcile/decisions", json={
            "tenant_id": "t1",
            "results": [],
            "decisions": [{"row_index": 3, "action": "reject"}],
        })

        assert response.status_code == 400


# ============================================
# Aliases
# ============================================

class TestAliases:

    def test_confirm_then_conflict(self, client, runner):
        first = client.post("/aliases/confirm", json={
            "tenant_id": "t1",
            "normalized_payer_key": "Lopez Ariel",
            "account_id": "clientA",
        })
        second = client.post("/aliases/confirm", json={
            "tenant_id": "t1",
            "normalized_payer_key": "LOPEZ ARIEL",
            "account_id": "clientB",
        })

        assert first.status_code == 200
        assert first.json()["status"] == "created"
        assert second.status_code == 409
        assert second.json()["status"] == "conflict"
        assert second.json()["existing_account_id"] == "clientA"
        assert runner.alias_store.get("t1", "LOPEZ ARIEL").account_id == "clientA"

    def test_confirm_empty_key(self, client):
        response = client.post("/aliases/confirm", json={
            "tenant_id": "t1",
            "normalized_payer_key": "  ",
            "account_id": "clientA",
        })
        assert response.status_code == 400

    def test_reassign(self, client):
        client.post("/aliases/confirm", json={
            "tenant_id": "t1",
            "normalized_payer_key": "LOPEZ ARIEL",
            "account_id": "clientA",
        })

        stale = client.post("/aliases/reassign", json={
            "tenant_id": "t1",
            "normalized_payer_key": "LOPEZ ARIEL",
            "account_id": "clientB",
            "expected_account_id": "clientC",
        })
        fresh = client.post("/aliases/reassign", json={
            "tenant_id": "t1",
            "normalized_payer_key": "LOPEZ ARIEL",
            "account_id": "clientB",
            "expected_account_id": "clientA",
        })

        assert stale.status_code == 409
        assert fresh.status_code == 200
        assert fresh.json()["status"] == "updated"

    def test_list(self, client):
        client.post("/aliases/confirm", json={
            "tenant_id": "t1",
            "normalized_payer_key": "J. Perez",
            "account_id": "p2",
        })

        response = client.get("/aliases", params={"tenant_id": "t1"})

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["aliases"][0]["normalized_payer_key"] == "J PEREZ"
        assert body["aliases"][0]["record_id"] == "J_PEREZ"

    def test_seed(self, client):
        response = client.post("/aliases/seed", json={
            "tenant_id": "t1",
            "pairs": [
                {"client_name": "Rojas Maria Eugenia", "payer_text": "M E ROJAS"},
                {"client_name": "Unknown Person", "payer_text": "X"},
            ],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["created"] == 1
        assert len(body["not_found"]) == 1


# ============================================
# Backend failures outside the batch
# ============================================

class FailingQuery:
    """Stands in for a Supabase query builder whose request fails."""

    def __getattr__(self, name):
        return lambda *args, **kwargs: self

    def execute(self):
        raise APIError({"message": "connection reset", "code": "08006", "hint": None, "details": None})


class FailingClient:
    def table(self, name):
        return FailingQuery()


async def unavailable(*args, **kwargs):
    raise ProviderError("connection reset", provider="runs", tenant_id="t1")


class TestBackendFailures:

    def test_role_lookup_wraps_api_error(self, monkeypatch):
        monkeypatch.setattr(database, "get_supabase_admin", lambda: FailingClient())

        with pytest.raises(ProviderError) as exc_info:
            asyncio.run(database.get_tenant_role("t1", "user-1"))

        assert exc_info.value.provider == "tenant_users"

    def test_history_wraps_api_error(self, monkeypatch):
        monkeypatch.setattr(database, "get_supabase_admin", lambda: FailingClient())

        with pytest.raises(ProviderError):
            asyncio.run(database.get_reconciliation_history("t1"))

    def test_history_unavailable_is_503(self, client, monkeypatch):
        monkeypatch.setattr(reconcile_router, "get_reconciliation_history", unavailable)

        response = client.get("/reconcile/history", params={"tenant_id": "t1"})

        assert response.status_code == 503

    def test_history(self, client, monkeypatch):
        async def two_runs(tenant_id, limit):
            return [{"tenant_id": tenant_id, "total_rows": 3}, {"tenant_id": tenant_id, "total_rows": 5}]

        monkeypatch.setattr(reconcile_router, "get_reconciliation_history", two_runs)

        response = client.get("/reconcile/history", params={"tenant_id": "t1"})

        assert response.status_code == 200
        assert response.json()["count"] == 2

    def test_role_lookup_unavailable_is_503(self, client, monkeypatch):
        app.dependency_overrides[get_tenant_guard] = lambda: require_tenant_admin
        monkeypatch.setattr(dependencies, "get_tenant_role", unavailable)

        response = client.post("/reconcile", json={
            "tenant_id": "t1",
            "persist": False,
            "rows": [{"payer_raw": "Rojas Maria Eugenia"}],
        })

        assert response.status_code == 503

    def test_non_member_is_forbidden(self, client, monkeypatch):
        async def no_role(tenant_id, user_id):
            return None

        app.dependency_overrides[get_tenant_guard] = lambda: require_tenant_admin
        monkeypatch.setattr(dependencies, "get_tenant_role", no_role)

        response = client.get("/aliases", params={"tenant_id": "t1"})

        assert response.status_code == 403
