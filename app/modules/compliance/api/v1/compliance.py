from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.compliance import ComplianceStatus, Severity
from app.modules.compliance.domain.service import ComplianceService
from app.schemas.compliance import (
    AcknowledgeRequest,
    ComplianceResultResponse,
    ScoreHistoryResponse,
)
from app.shared.db.session import get_db

router = APIRouter(tags=["Compliance"])


@router.get(
    "/accounts/{account_id}/results",
    response_model=list[ComplianceResultResponse],
)
async def list_results(
    account_id: UUID,
    result_status: Optional[ComplianceStatus] = Query(default=None, alias="status"),
    rule_id: Optional[UUID] = None,
    resource_id: Optional[UUID] = None,
    acknowledged: Optional[bool] = None,
    severity: Optional[Severity] = None,
    db: AsyncSession = Depends(get_db),
):
    service = ComplianceService(db)
    return await service.list_results(
        account_id,
        status=result_status.value if result_status else None,
        rule_id=rule_id,
        resource_id=resource_id,
        acknowledged=acknowledged,
        severity=severity.value if severity else None,
    )


@router.get(
    "/accounts/{account_id}/score-history",
    response_model=list[ScoreHistoryResponse],
)
async def score_history(
    account_id: UUID,
    days: Optional[int] = Query(default=None, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
):
    return await ComplianceService(db).list_score_history(account_id, days=days)


@router.post(
    "/results/{result_id}/acknowledge",
    response_model=ComplianceResultResponse,
)
async def acknowledge_result(
    result_id: UUID,
    payload: AcknowledgeRequest,
    db: AsyncSession = Depends(get_db),
):
    return await ComplianceService(db).acknowledge(
        result_id, payload.note, acknowledged_by=payload.acknowledged_by
    )


@router.delete(
    "/results/{result_id}/acknowledge",
    response_model=ComplianceResultResponse,
    status_code=status.HTTP_200_OK,
)
async def unacknowledge_result(result_id: UUID, db: AsyncSession = Depends(get_db)):
    return await ComplianceService(db).unacknowledge(result_id)
