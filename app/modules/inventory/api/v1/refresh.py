"""
Refresh API

Manual trigger for inventory sync + compliance evaluation across accounts.
Per-account failures are reported inline; the request itself only fails when
there is nothing to refresh.
"""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter

from app.schemas.compliance import RefreshRequest
from app.services.scheduler.orchestrator import RefreshOrchestrator
from app.shared.db.session import async_session_maker

logger = structlog.get_logger()
router = APIRouter(tags=["Refresh"])


@router.post("/refresh")
async def trigger_refresh(payload: RefreshRequest | None = None) -> dict[str, Any]:
    request = payload or RefreshRequest()
    orchestrator = RefreshOrchestrator(async_session_maker)
    results = await orchestrator.refresh(
        request.account_ids,
        skip_sync=request.skip_sync,
        skip_eval=request.skip_eval,
    )
    return {
        "success": True,
        "accounts_processed": len(results),
        "results": results,
        "completed_at": datetime.now(timezone.utc).isoformat(),
    }
