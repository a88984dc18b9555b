import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence
from uuid import UUID

import sqlalchemy as sa
import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from prometheus_client import Counter, Histogram
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import ProviderAccount
from app.modules.compliance.domain.service import ComplianceService
from app.modules.inventory.domain.service import InventorySyncService
from app.shared.core.config import Settings, get_settings
from app.shared.core.exceptions import CirrusException, ResourceNotFoundError

logger = structlog.get_logger()

SessionFactory = Callable[[], AsyncSession]

SCHEDULER_JOB_RUNS = Counter(
    "cirrus_scheduler_job_runs_total",
    "Total number of scheduled job runs",
    ["job_name", "status"],
)

SCHEDULER_JOB_DURATION = Histogram(
    "cirrus_scheduler_job_duration_seconds",
    "Duration of scheduled jobs in seconds",
    ["job_name"],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600],
)

REFRESH_JOB = "account_refresh"


def _error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, CirrusException):
        return {"error": exc.message, "code": exc.code}
    return {"error": str(exc) or type(exc).__name__}


class RefreshOrchestrator:
    """
    Runs sync and/or evaluation for many accounts concurrently.

    Each account gets its own session and service instances; at most
    ACCOUNT_MAX_CONCURRENCY accounts are in flight. One account failing never
    stops the others: its failed phase is reported as `{"error": ...}`.
    """

    def __init__(
        self,
        session_maker: SessionFactory,
        *,
        settings: Optional[Settings] = None,
        sync_service_factory: Callable[[AsyncSession], InventorySyncService] = InventorySyncService,
        compliance_service_factory: Callable[[AsyncSession], ComplianceService] = ComplianceService,
    ):
        self.session_maker = session_maker
        self.settings = settings or get_settings()
        self.sync_service_factory = sync_service_factory
        self.compliance_service_factory = compliance_service_factory
        self.semaphore = asyncio.Semaphore(max(1, self.settings.ACCOUNT_MAX_CONCURRENCY))

    async def _all_account_ids(self) -> list[UUID]:
        async with self.session_maker() as db:
            rows = await db.scalars(sa.select(ProviderAccount.id).order_by(ProviderAccount.created_at))
            return list(rows)

    async def refresh(
        self,
        account_ids: Optional[Sequence[UUID]] = None,
        *,
        skip_sync: bool = False,
        skip_eval: bool = False,
    ) -> list[dict[str, Any]]:
        ids = list(account_ids) if account_ids else await self._all_account_ids()
        if not ids:
            raise ResourceNotFoundError("No accounts found")

        logger.info("refresh_started", accounts=len(ids), skip_sync=skip_sync, skip_eval=skip_eval)
        results = await asyncio.gather(
            *(self._refresh_account(account_id, skip_sync, skip_eval) for account_id in ids)
        )
        logger.info(
            "refresh_completed",
            accounts=len(ids),
            failed=sum(1 for r in results if _failed(r)),
        )
        return list(results)

    async def _refresh_account(
        self, account_id: UUID, skip_sync: bool, skip_eval: bool
    ) -> dict[str, Any]:
        outcome: dict[str, Any] = {"account_id": str(account_id), "sync": None, "eval": None}
        async with self.semaphore:
            with structlog.contextvars.bound_contextvars(account_id=str(account_id)):
                if not skip_sync:
                    outcome["sync"] = await self._run_phase(
                        "sync", account_id, lambda db: self.sync_service_factory(db).sync(account_id)
                    )
                if not skip_eval:
                    outcome["eval"] = await self._run_phase(
                        "eval",
                        account_id,
                        lambda db: self.compliance_service_factory(db).evaluate(account_id),
                    )
        return outcome

    async def _run_phase(self, phase: str, account_id: UUID, run: Callable[[AsyncSession], Any]):
        try:
            async with self.session_maker() as db:
                summary = await run(db)
            return summary.model_dump()
        except Exception as exc:  # noqa: BLE001 - one account must not abort the batch
            logger.error(
                "refresh_phase_failed",
                phase=phase,
                account_id=str(account_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return _error_payload(exc)


def _failed(outcome: dict[str, Any]) -> bool:
    return any(isinstance(outcome.get(k), dict) and "error" in outcome[k] for k in ("sync", "eval"))


class RefreshScheduler:
    """Runs a full refresh on the REFRESH_CRON schedule (UTC)."""

    def __init__(self, orchestrator: RefreshOrchestrator, cron: str):
        self.scheduler = AsyncIOScheduler()
        self.orchestrator = orchestrator
        self.cron = cron
        self._last_run_success: bool | None = None
        self._last_run_time: str | None = None

    async def refresh_job(self) -> None:
        job_id = str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(correlation_id=job_id, job_type="refresh")
        start_time = time.time()
        try:
            results = await self.orchestrator.refresh()
            self._last_run_success = not any(_failed(r) for r in results)
            SCHEDULER_JOB_RUNS.labels(
                job_name=REFRESH_JOB,
                status="success" if self._last_run_success else "partial",
            ).inc()
        except Exception as e:  # noqa: BLE001 - keep the scheduler alive for the next tick
            logger.error("scheduler_refresh_failed", job=REFRESH_JOB, error=str(e))
            SCHEDULER_JOB_RUNS.labels(job_name=REFRESH_JOB, status="failure").inc()
            self._last_run_success = False
        finally:
            SCHEDULER_JOB_DURATION.labels(job_name=REFRESH_JOB).observe(time.time() - start_time)
            self._last_run_time = datetime.now(timezone.utc).isoformat()
            structlog.contextvars.unbind_contextvars("correlation_id", "job_type")

    def start(self) -> None:
        self.scheduler.add_job(
            self.refresh_job,
            trigger=CronTrigger.from_crontab(self.cron, timezone="UTC"),
            id=REFRESH_JOB,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("scheduler_started", cron=self.cron)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def get_status(self) -> dict:
        return {
            "running": self.scheduler.running,
            "cron": self.cron,
            "last_run_success": self._last_run_success,
            "last_run_time": self._last_run_time,
            "jobs": [job.id for job in self.scheduler.get_jobs()],
        }
