"""
Compliance evaluation: read -> evaluate -> merge acknowledgements -> replace.

Every provider call (account-level conditions) happens during the evaluate
phase, before the write transaction opens. The result set, score history,
per-resource history and `last_evaluated_at` are then written in one
transaction, so a run either replaces the account's results completely or
leaves them untouched.
"""

import time
from contextlib import AsyncExitStack
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Sequence
from uuid import UUID, uuid4

import structlog
from pydantic import ValidationError
from sqlalchemy import delete, insert, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import ProviderAccount
from app.models.compliance import (
    ComplianceResult,
    ComplianceRule,
    ComplianceScoreHistory,
    ComplianceStatus,
    ResourceComplianceHistory,
)
from app.models.inventory import Resource
from app.modules.compliance.domain.acknowledgements import AcknowledgementIndex
from app.modules.compliance.domain.composite import evaluate_composites
from app.modules.compliance.domain.context import (
    EvaluatedResource,
    EvaluationContext,
    LinodeAccountDirectory,
)
from app.modules.compliance.domain.evaluator import RuleEvaluator
from app.modules.compliance.domain.results import RuleResult
from app.modules.compliance.domain.scoring import ScoredResult, ScoreSummary, summarize
from app.schemas.compliance import EvaluationSummary
from app.shared.adapters.linode import LinodeClient
from app.shared.core.config import Settings, get_settings
from app.shared.core.exceptions import PersistenceError, ResourceNotFoundError
from app.shared.core.ops_metrics import (
    COMPLIANCE_SCORE,
    EVALUATION_DURATION,
    EVALUATION_RUNS,
)

logger = structlog.get_logger()

ClientFactory = Callable[[Optional[str]], LinodeClient]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ComplianceService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        client_factory: Optional[ClientFactory] = None,
        evaluator: Optional[RuleEvaluator] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.client_factory: ClientFactory = client_factory or (lambda token: LinodeClient(token))
        self.evaluator = evaluator or RuleEvaluator()
        self.settings = settings or get_settings()
        self.clock = clock

    async def _get_account(self, account_id: UUID) -> ProviderAccount:
        account = await self.db.get(ProviderAccount, account_id)
        if account is None:
            raise ResourceNotFoundError(f"Provider account {account_id} not found")
        return account

    async def _active_rules(self, account_id: UUID) -> list[ComplianceRule]:
        rows = await self.db.scalars(
            select(ComplianceRule)
            .where(
                ComplianceRule.is_active.is_(True),
                or_(ComplianceRule.account_id.is_(None), ComplianceRule.account_id == account_id),
            )
            .order_by(ComplianceRule.created_at, ComplianceRule.name)
        )
        return list(rows)

    async def _resources(self, account_id: UUID) -> list[EvaluatedResource]:
        rows = await self.db.scalars(
            select(Resource)
            .where(Resource.account_id == account_id)
            .order_by(Resource.resource_type, Resource.external_id)
            # Rows are bulk-replaced by sync; never trust a stale identity map.
            .execution_options(populate_existing=True)
        )
        evaluated = []
        for row in rows:
            try:
                evaluated.append(EvaluatedResource.from_model(row))
            except ValidationError as exc:
                logger.warning(
                    "resource_specs_unreadable",
                    account_id=str(account_id),
                    resource_id=str(row.id),
                    resource_type=row.resource_type,
                    error_count=exc.error_count(),
                )
                evaluated.append(
                    EvaluatedResource.unreadable(row, "stored specs failed validation")
                )
        return evaluated

    async def _acknowledgements(self, account_id: UUID) -> AcknowledgementIndex:
        rows = await self.db.scalars(
            select(ComplianceResult).where(
                ComplianceResult.account_id == account_id,
                ComplianceResult.acknowledged.is_(True),
            )
        )
        return AcknowledgementIndex.from_rows(rows)

    async def evaluate(self, account_id: UUID) -> EvaluationSummary:
        """Evaluate every active rule for an account and replace its result set."""
        start = time.perf_counter()
        account = await self._get_account(account_id)
        log = logger.bind(account_id=str(account_id))

        rules = await self._active_rules(account_id)
        resources = await self._resources(account_id)
        acks = await self._acknowledgements(account_id)
        evaluated_at = self.clock()

        async with AsyncExitStack() as stack:
            directory = None
            if account.api_token:
                client = await stack.enter_async_context(self.client_factory(account.api_token))
                directory = LinodeAccountDirectory(client)
            ctx = EvaluationContext(
                account_id=account_id,
                now=evaluated_at,
                resources=resources,
                directory=directory,
            )
            atomic = await self.evaluator.evaluate(rules, ctx)

        rules_by_id = {rule.id: rule for rule in rules}
        composite = evaluate_composites(
            (rule for rule in rules if rule.is_composite), rules_by_id, atomic
        )
        results = [*atomic, *composite]
        rows = self._merge(account_id, results, acks, evaluated_at)
        summary = summarize(
            [
                ScoredResult(
                    row["rule_id"], ComplianceStatus(row["status"]), row["acknowledged"]
                )
                for row in rows
            ],
            rules,
        )

        try:
            await self._replace(account, rows, rules_by_id, summary, evaluated_at)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            EVALUATION_RUNS.labels(status="failure").inc()
            log.error("compliance_evaluation_persist_failed", error=str(exc))
            raise PersistenceError(
                f"Compliance results for account {account_id} could not be saved",
                details={"error": str(exc)},
            ) from exc

        EVALUATION_RUNS.labels(status="success").inc()
        EVALUATION_DURATION.observe(time.perf_counter() - start)
        if summary.score is not None:
            COMPLIANCE_SCORE.labels(account_id=str(account_id)).set(summary.score)
        log.info(
            "compliance_evaluation_completed",
            rules=len(rules),
            results=len(rows),
            carried_acknowledgements=summary.acknowledged_count,
            score=summary.score,
        )
        return EvaluationSummary(
            account_id=str(account_id),
            evaluated=len(rows),
            compliant=summary.counts.compliant,
            non_compliant=summary.counts.non_compliant,
            not_applicable=summary.counts.not_applicable,
            acknowledged=summary.acknowledged_count,
            score=summary.score,
        )

    @staticmethod
    def _merge(
        account_id: UUID,
        results: Sequence[RuleResult],
        acks: AcknowledgementIndex,
        evaluated_at: datetime,
    ) -> list[dict[str, Any]]:
        return [
            {
                "id": uuid4(),
                "account_id": account_id,
                "rule_id": result.rule_id,
                "resource_id": result.resource_id,
                "subject": result.subject,
                "status": result.status.value,
                "detail": result.detail,
                "evaluated_at": evaluated_at,
                **acks.fields_for(result),
            }
            for result in results
        ]

    async def _replace(
        self,
        account: ProviderAccount,
        rows: list[dict[str, Any]],
        rules_by_id: dict[UUID, ComplianceRule],
        summary: ScoreSummary,
        evaluated_at: datetime,
    ) -> None:
        await self.db.execute(
            delete(ComplianceResult).where(ComplianceResult.account_id == account.id)
        )
        if rows:
            await self.db.execute(insert(ComplianceResult), rows)

        self.db.add(
            ComplianceScoreHistory(
                account_id=account.id,
                evaluated_at=evaluated_at,
                total_results=summary.counts.total,
                compliant_count=summary.counts.compliant,
                non_compliant_count=summary.counts.non_compliant,
                not_applicable_count=summary.counts.not_applicable,
                acknowledged_count=summary.acknowledged_count,
                compliance_score=(
                    Decimal(str(summary.score)) if summary.score is not None else None
                ),
                total_rules_evaluated=summary.total_rules_evaluated,
                rule_breakdown=summary.rule_breakdown,
            )
        )

        per_resource: dict[UUID, list[dict[str, Any]]] = {}
        for row in rows:
            if row["resource_id"] is None:
                continue
            rule = rules_by_id.get(row["rule_id"])
            per_resource.setdefault(row["resource_id"], []).append(
                {
                    "rule_id": str(row["rule_id"]),
                    "rule_name": rule.name if rule else "",
                    "severity": rule.severity if rule else "info",
                    "status": row["status"],
                    "detail": row["detail"],
                    "acknowledged": row["acknowledged"],
                }
            )
        if per_resource:
            await self.db.execute(
                insert(ResourceComplianceHistory),
                [
                    {
                        "account_id": account.id,
                        "resource_id": resource_id,
                        "evaluated_at": evaluated_at,
                        "results": entries,
                    }
                    for resource_id, entries in per_resource.items()
                ],
            )

        account.last_evaluated_at = evaluated_at

    async def _get_result(self, result_id: UUID) -> ComplianceResult:
        result = await self.db.get(ComplianceResult, result_id)
        if result is None:
            raise ResourceNotFoundError(f"Compliance result {result_id} not found")
        return result

    async def acknowledge(
        self, result_id: UUID, note: str, acknowledged_by: Optional[str] = None
    ) -> ComplianceResult:
        """Mark a result as accepted. Only the acknowledgement columns change."""
        result = await self._get_result(result_id)
        result.acknowledged = True
        result.acknowledged_at = self.clock()
        result.acknowledged_note = note
        result.acknowledged_by = acknowledged_by
        await self.db.commit()
        await self.db.refresh(result)
        logger.info(
            "compliance_result_acknowledged",
            result_id=str(result_id),
            rule_id=str(result.rule_id),
            acknowledged_by=acknowledged_by,
        )
        return result

    async def unacknowledge(self, result_id: UUID) -> ComplianceResult:
        result = await self._get_result(result_id)
        result.acknowledged = False
        result.acknowledged_at = None
        result.acknowledged_note = None
        result.acknowledged_by = None
        await self.db.commit()
        await self.db.refresh(result)
        logger.info("compliance_result_unacknowledged", result_id=str(result_id))
        return result

    async def list_results(
        self,
        account_id: UUID,
        *,
        status: Optional[str] = None,
        rule_id: Optional[UUID] = None,
        resource_id: Optional[UUID] = None,
        acknowledged: Optional[bool] = None,
        severity: Optional[str] = None,
    ) -> list[ComplianceResult]:
        stmt = select(ComplianceResult).where(ComplianceResult.account_id == account_id)
        if status is not None:
            stmt = stmt.where(ComplianceResult.status == status)
        if rule_id is not None:
            stmt = stmt.where(ComplianceResult.rule_id == rule_id)
        if resource_id is not None:
            stmt = stmt.where(ComplianceResult.resource_id == resource_id)
        if acknowledged is not None:
            stmt = stmt.where(ComplianceResult.acknowledged.is_(acknowledged))
        if severity is not None:
            stmt = stmt.join(ComplianceRule, ComplianceRule.id == ComplianceResult.rule_id).where(
                ComplianceRule.severity == severity
            )
        stmt = stmt.order_by(ComplianceResult.rule_id, ComplianceResult.resource_id)
        return list(await self.db.scalars(stmt))

    async def list_score_history(
        self, account_id: UUID, days: Optional[int] = None
    ) -> list[ComplianceScoreHistory]:
        window = days if days is not None else self.settings.SCORE_HISTORY_DEFAULT_DAYS
        since = self.clock() - timedelta(days=window)
        rows = await self.db.scalars(
            select(ComplianceScoreHistory)
            .where(
                ComplianceScoreHistory.account_id == account_id,
                ComplianceScoreHistory.evaluated_at >= since,
            )
            .order_by(ComplianceScoreHistory.evaluated_at)
        )
        return list(rows)
