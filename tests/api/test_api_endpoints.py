"""
API tests for the lifecycle, refresh and compliance endpoints.

Requests go through the ASGI app with the database dependency bound to the
test session.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.main import app
from app.modules.compliance.domain.builtin_rules import seed_builtin_rules
from app.modules.compliance.domain.service import ComplianceService
from app.modules.inventory.domain.service import InventorySyncService
from app.shared.core.exceptions import ResourceNotFoundError
from app.shared.db.session import get_db

EVAL_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def client(db_session):
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture
async def evaluated_account(db_session, account, fake_client):
    await InventorySyncService(
        db_session, client_factory=lambda token: fake_client, clock=lambda: EVAL_TIME
    ).sync(account.id)
    await seed_builtin_rules(db_session)
    await ComplianceService(
        db_session, client_factory=lambda token: fake_client, clock=lambda: EVAL_TIME
    ).evaluate(account.id)
    return account


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_health_reports_database_status(client):
    with patch(
        "app.shared.core.app_routes.db_health_check",
        new=AsyncMock(return_value={"status": "up", "latency_ms": 1.2}),
    ):
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    with patch(
        "app.shared.core.app_routes.db_health_check",
        new=AsyncMock(return_value={"status": "down", "error": "connection refused"}),
    ):
        response = await client.get("/health")
    assert response.status_code == 503
    assert response.json()["database"]["status"] == "down"


@pytest.mark.asyncio
async def test_refresh_returns_per_account_outcomes(client):
    account_id = str(uuid4())
    outcome = [{"account_id": account_id, "sync": {"error": "down"}, "eval": {"evaluated": 3}}]
    orchestrator = MagicMock()
    orchestrator.refresh = AsyncMock(return_value=outcome)

    with patch(
        "app.modules.inventory.api.v1.refresh.RefreshOrchestrator", return_value=orchestrator
    ):
        response = await client.post(
            "/api/v1/refresh", json={"account_ids": [account_id], "skip_eval": True}
        )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["accounts_processed"] == 1
    assert body["results"] == outcome
    args, kwargs = orchestrator.refresh.call_args
    assert [str(a) for a in args[0]] == [account_id]
    assert kwargs == {"skip_sync": False, "skip_eval": True}


@pytest.mark.asyncio
async def test_refresh_without_accounts_is_not_found(client):
    orchestrator = MagicMock()
    orchestrator.refresh = AsyncMock(side_effect=ResourceNotFoundError("No accounts found"))

    with patch(
        "app.modules.inventory.api.v1.refresh.RefreshOrchestrator", return_value=orchestrator
    ):
        response = await client.post("/api/v1/refresh")

    assert response.status_code == 404
    assert response.json() == {"error": "No accounts found", "code": "not_found"}


@pytest.mark.asyncio
async def test_list_results_with_filters(client, evaluated_account):
    url = f"/api/v1/accounts/{evaluated_account.id}/results"

    everything = (await client.get(url)).json()
    failing = (await client.get(url, params={"status": "non_compliant"})).json()
    critical = (await client.get(url, params={"severity": "critical"})).json()

    assert everything
    assert failing and all(r["status"] == "non_compliant" for r in failing)
    assert 0 < len(critical) < len(everything)
    assert (await client.get(url, params={"status": "broken"})).status_code == 422


@pytest.mark.asyncio
async def test_acknowledge_round_trip(client, evaluated_account):
    url = f"/api/v1/accounts/{evaluated_account.id}/results"
    target = (await client.get(url, params={"status": "non_compliant"})).json()[0]

    response = await client.post(
        f"/api/v1/results/{target['id']}/acknowledge",
        json={"note": "  accepted for now  ", "acknowledged_by": "ops"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["acknowledged"] is True
    assert body["acknowledged_note"] == "accepted for now"
    assert body["status"] == target["status"]

    acked = (await client.get(url, params={"acknowledged": "true"})).json()
    assert [r["id"] for r in acked] == [target["id"]]

    response = await client.delete(f"/api/v1/results/{target['id']}/acknowledge")
    assert response.status_code == 200
    assert response.json()["acknowledged"] is False


@pytest.mark.asyncio
async def test_acknowledge_validation_and_missing_result(client):
    missing = uuid4()
    response = await client.post(f"/api/v1/results/{missing}/acknowledge", json={"note": "ok"})
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"

    response = await client.post(f"/api/v1/results/{missing}/acknowledge", json={"note": "   "})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_score_history(client, evaluated_account):
    url = f"/api/v1/accounts/{evaluated_account.id}/score-history"

    # The run was recorded in 2024, outside any window measured from today.
    assert (await client.get(url)).json() == []
    assert (await client.get(url, params={"days": 0})).status_code == 422

    with patch.object(ComplianceService, "list_score_history", AsyncMock(return_value=[])) as listed:
        await client.get(url, params={"days": 7})
    assert listed.await_args.kwargs == {"days": 7}


@pytest.mark.asyncio
async def test_metrics_endpoint(client):
    response = await client.get("/metrics/")
    assert response.status_code == 200
    assert "cirrus_system_health" in response.text
