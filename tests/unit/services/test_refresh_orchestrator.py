"""
Tests for RefreshOrchestrator and RefreshScheduler.

Service factories are replaced with mocks so each test controls exactly which
phase of which account succeeds.
"""
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.schemas.compliance import EvaluationSummary
from app.schemas.inventory import SyncSummary
from app.services.scheduler.orchestrator import RefreshOrchestrator, RefreshScheduler
from app.shared.core.exceptions import ExternalAPIError, ResourceNotFoundError


def _session_maker():
    """Session factory whose sessions are plain async context managers."""
    session = MagicMock()
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return MagicMock(return_value=session)


def _sync_factory(failing=()):
    async def sync(account_id):
        if account_id in failing:
            raise ExternalAPIError("Provider request failed with status 401: /linode/instances")
        return SyncSummary(account_id=str(account_id), count=3)

    return lambda db: MagicMock(sync=AsyncMock(side_effect=sync))


def _eval_factory(failing=()):
    async def evaluate(account_id):
        if account_id in failing:
            raise RuntimeError("boom")
        return EvaluationSummary(account_id=str(account_id), evaluated=4, compliant=3, non_compliant=1, score=75.0)

    return lambda db: MagicMock(evaluate=AsyncMock(side_effect=evaluate))


@pytest.mark.asyncio
async def test_one_failing_account_does_not_stop_the_others():
    good, bad = uuid4(), uuid4()
    orchestrator = RefreshOrchestrator(
        _session_maker(),
        sync_service_factory=_sync_factory(failing={bad}),
        compliance_service_factory=_eval_factory(),
    )

    results = await orchestrator.refresh([good, bad])

    assert [r["account_id"] for r in results] == [str(good), str(bad)]
    assert results[0]["sync"]["count"] == 3
    assert results[0]["eval"]["score"] == 75.0
    assert results[1]["sync"] == {
        "error": "Provider request failed with status 401: /linode/instances",
        "code": "external_api_error",
    }
    # Evaluation still runs against whatever inventory was stored before.
    assert results[1]["eval"]["evaluated"] == 4


@pytest.mark.asyncio
async def test_unexpected_errors_are_reported_without_code():
    account_id = uuid4()
    orchestrator = RefreshOrchestrator(
        _session_maker(),
        sync_service_factory=_sync_factory(),
        compliance_service_factory=_eval_factory(failing={account_id}),
    )

    [result] = await orchestrator.refresh([account_id])
    assert result["eval"] == {"error": "boom"}


@pytest.mark.asyncio
async def test_skip_flags():
    account_id = uuid4()
    sync_factory = MagicMock(side_effect=_sync_factory())
    eval_factory = MagicMock(side_effect=_eval_factory())
    orchestrator = RefreshOrchestrator(
        _session_maker(),
        sync_service_factory=sync_factory,
        compliance_service_factory=eval_factory,
    )

    [result] = await orchestrator.refresh([account_id], skip_sync=True)
    assert result["sync"] is None
    assert result["eval"] is not None
    sync_factory.assert_not_called()

    [result] = await orchestrator.refresh([account_id], skip_eval=True)
    assert result["eval"] is None
    assert eval_factory.call_count == 1


@pytest.mark.asyncio
async def test_refresh_defaults_to_every_account(db_session, session_maker, account):
    orchestrator = RefreshOrchestrator(
        session_maker,
        sync_service_factory=_sync_factory(),
        compliance_service_factory=_eval_factory(),
    )
    results = await orchestrator.refresh()
    assert [r["account_id"] for r in results] == [str(account.id)]


@pytest.mark.asyncio
async def test_refresh_without_accounts_raises(db_session, session_maker):
    orchestrator = RefreshOrchestrator(session_maker)
    with pytest.raises(ResourceNotFoundError):
        await orchestrator.refresh()


@pytest.mark.asyncio
async def test_scheduler_job_records_partial_failure():
    orchestrator = MagicMock()
    orchestrator.refresh = AsyncMock(
        return_value=[{"account_id": "a", "sync": {"error": "down"}, "eval": None}]
    )
    scheduler = RefreshScheduler(orchestrator, "0 3 * * *")

    await scheduler.refresh_job()

    status = scheduler.get_status()
    assert status["last_run_success"] is False
    assert status["last_run_time"] is not None
    assert status["cron"] == "0 3 * * *"
    assert status["running"] is False


@pytest.mark.asyncio
async def test_scheduler_job_survives_orchestrator_errors():
    orchestrator = MagicMock()
    orchestrator.refresh = AsyncMock(side_effect=ResourceNotFoundError("No accounts found"))
    scheduler = RefreshScheduler(orchestrator, "0 3 * * *")

    await scheduler.refresh_job()
    assert scheduler.get_status()["last_run_success"] is False


@pytest.mark.asyncio
async def test_scheduler_registers_cron_job():
    orchestrator = MagicMock()
    orchestrator.refresh = AsyncMock(return_value=[])
    scheduler = RefreshScheduler(orchestrator, "*/15 * * * *")

    scheduler.start()
    try:
        status = scheduler.get_status()
        assert status["running"] is True
        assert status["jobs"] == ["account_refresh"]
    finally:
        scheduler.stop()
