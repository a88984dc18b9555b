from datetime import datetime, timezone
from uuid import uuid4

import pytest

from app.models.compliance import ComplianceStatus
from app.modules.compliance.domain.conditions import conditions
from app.modules.compliance.domain.context import EvaluatedResource, EvaluationContext
from app.modules.compliance.domain.registry import ConditionRegistry
from app.modules.compliance.domain.results import Verdict
from app.schemas.inventory import InstanceSpecs, VolumeSpecs


def _volume() -> EvaluatedResource:
    return EvaluatedResource(
        id=uuid4(),
        external_id="301",
        resource_type="block_volume",
        label="data",
        region="us-east",
        plan_type=None,
        status="active",
        specs=VolumeSpecs(size=20),
    )


def _ctx() -> EvaluationContext:
    return EvaluationContext(account_id=uuid4(), now=datetime.now(timezone.utc))


def test_every_condition_kind_is_registered():
    assert len(conditions.condition_types) == 30
    assert conditions.is_account_level("tfa_users")
    assert conditions.is_account_level("login_allowed_ips")
    assert not conditions.is_account_level("has_tags")


def test_unknown_condition_is_not_applicable():
    verdict = conditions.evaluate_resource("does_not_exist", _volume(), {}, _ctx())
    assert verdict.status == ComplianceStatus.NOT_APPLICABLE
    assert verdict.detail == "Rule condition not recognized."


def test_condition_for_other_resource_type_is_not_applicable():
    verdict = conditions.evaluate_resource("linode_backups_enabled", _volume(), {}, _ctx())
    assert verdict.status == ComplianceStatus.NOT_APPLICABLE
    assert "does not apply to block_volume" in verdict.detail


def test_duplicate_registration_is_rejected():
    registry = ConditionRegistry()

    @registry.resource("custom", specs=InstanceSpecs)
    def first(resource, specs, config, ctx):
        return Verdict.compliant("ok")

    # Registering the same function again is harmless.
    registry.resource("custom", specs=InstanceSpecs)(first)

    with pytest.raises(ValueError, match="Duplicate condition registration"):

        @registry.account("custom")
        async def second(config, ctx):
            return []
