from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from app.models.compliance import ComplianceStatus
from app.modules.compliance.domain.conditions import conditions
from app.modules.compliance.domain.context import EvaluationContext, LinodeAccountDirectory
from app.shared.core.exceptions import ExternalAPIError


class FakeDirectory:
    def __init__(self, logins=None, users=None):
        self.logins = logins or []
        self.users = users or []

    async def list_logins(self):
        return self.logins

    async def list_users(self):
        return self.users


def _ctx(directory):
    return EvaluationContext(
        account_id=uuid4(), now=datetime.now(timezone.utc), directory=directory
    )


async def _run(kind, config, directory):
    check = conditions.account_check(kind)
    return await check(config, _ctx(directory))


@pytest.mark.asyncio
async def test_login_ips_one_verdict_per_login():
    directory = FakeDirectory(
        logins=[
            {"id": 1, "ip": "203.0.113.5", "username": "alice", "datetime": "2024-05-30T10:00:00"},
            {"id": 2, "ip": "198.51.100.9", "username": "bob", "datetime": "2024-05-30T11:00:00"},
        ]
    )
    verdicts = await _run("login_allowed_ips", {"allowed_ips": ["203.0.113.5"]}, directory)

    assert [v.subject for v in verdicts] == ["login:1", "login:2"]
    assert [v.status for v in verdicts] == [
        ComplianceStatus.COMPLIANT,
        ComplianceStatus.NON_COMPLIANT,
    ]
    assert "bob from 198.51.100.9 on 2024-05-30T11:00:00+00:00" in verdicts[1].detail


@pytest.mark.asyncio
async def test_logins_without_id_keep_distinct_subjects():
    directory = FakeDirectory(
        logins=[
            {"ip": "198.51.100.9", "username": "bob", "datetime": "2024-05-30T11:00:00"},
            {"ip": "198.51.100.9", "username": "bob", "datetime": "2024-05-30T12:00:00"},
            {"ip": "198.51.100.9", "username": "carol", "datetime": "2024-05-30T11:00:00"},
        ]
    )
    verdicts = await _run("login_allowed_ips", {"allowed_ips": ["203.0.113.5"]}, directory)

    subjects = [v.subject for v in verdicts]
    assert len(set(subjects)) == 3
    assert subjects[0] == "login:bob@2024-05-30T11:00:00"
    assert "login:None" not in subjects


@pytest.mark.asyncio
async def test_login_ips_without_allow_list_is_not_applicable():
    directory = FakeDirectory(logins=[{"id": 1, "ip": "203.0.113.5", "username": "alice"}])
    verdicts = await _run("login_allowed_ips", {}, directory)
    assert len(verdicts) == 1
    assert verdicts[0].status == ComplianceStatus.NOT_APPLICABLE
    assert verdicts[0].subject is None


@pytest.mark.asyncio
async def test_missing_token_is_not_applicable():
    verdicts = await _run("tfa_users", {}, None)
    assert verdicts[0].status == ComplianceStatus.NOT_APPLICABLE
    assert verdicts[0].detail.startswith("No API token available")


@pytest.mark.asyncio
async def test_feed_failure_is_not_applicable():
    directory = FakeDirectory()
    directory.list_users = AsyncMock(side_effect=ExternalAPIError("Provider request failed"))
    verdicts = await _run("tfa_users", {}, directory)
    assert verdicts[0].status == ComplianceStatus.NOT_APPLICABLE
    assert verdicts[0].detail == "Could not fetch users: Provider request failed"


@pytest.mark.asyncio
async def test_tfa_excludes_proxy_users():
    directory = FakeDirectory(
        users=[
            {"username": "alice", "tfa_enabled": True, "user_type": "default"},
            {"username": "bob", "tfa_enabled": False, "user_type": "default"},
            {"username": "svc", "tfa_enabled": False, "user_type": "proxy"},
        ]
    )
    verdicts = await _run("tfa_users", {}, directory)

    assert {v.subject: v.status for v in verdicts} == {
        "user:alice": ComplianceStatus.COMPLIANT,
        "user:bob": ComplianceStatus.NON_COMPLIANT,
    }


@pytest.mark.asyncio
async def test_linode_directory_reads_account_feeds(fake_client):
    directory = LinodeAccountDirectory(fake_client)
    users = await directory.list_users()
    logins = await directory.list_logins()

    assert [u["username"] for u in users] == ["alice", "bob"]
    assert logins[0]["ip"] == "203.0.113.5"
