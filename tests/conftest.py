"""
Global pytest fixtures for the Cirrus test suite.

Provides:
- Async database session on a temporary SQLite file
- A fake provider client serving canned API payloads
- A provider account seeded with a complete inventory
"""
import os
from copy import deepcopy
from typing import Any, AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio

# Set test environment BEFORE any app imports
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENCRYPTION_KEY"] = "32-byte-long-test-encryption-key"
os.environ["ENVIRONMENT"] = "development"
os.environ["REFRESH_CRON"] = ""

from app.shared.core.exceptions import ExternalAPIError  # noqa: E402


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create async SQLite engine for testing using a temporary file."""
    from sqlalchemy.ext.asyncio import create_async_engine

    db_file = tmp_path / f"test_{uuid4().hex}.sqlite"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", echo=False)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncGenerator:
    """Create database tables and provide async session."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from app.shared.db.base import Base
    import app.models  # noqa: F401

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture
def session_maker(async_engine):
    """Session factory bound to the test engine, for code that opens its own sessions."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


# ============================================================================
# Fake Provider
# ============================================================================

class FakeLinodeClient:
    """
    In-memory stand-in for LinodeClient.

    `routes` maps an API path to its payload: a list for list endpoints, a dict
    for single objects, or an exception instance to raise. Unknown list paths
    return an empty list; unknown object paths raise a 404 ExternalAPIError.
    """

    def __init__(self, routes: dict[str, Any]):
        self.routes = routes
        self.calls: list[str] = []
        self.entered = 0

    async def __aenter__(self) -> "FakeLinodeClient":
        self.entered += 1
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def _lookup(self, path: str, default: Any) -> Any:
        self.calls.append(path)
        value = self.routes.get(path, default)
        if isinstance(value, Exception):
            raise value
        return deepcopy(value)

    async def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        missing = ExternalAPIError(f"Provider request failed with status 404: {path}", upstream_status=404)
        return self._lookup(path, missing)

    async def list_all(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        return self._lookup(path, [])

    async def list_page(self, path: str, page_size: int) -> list[dict[str, Any]]:
        return self._lookup(path, [])[:page_size]


def provider_routes() -> dict[str, Any]:
    """One account's worth of provider payloads covering every resource type."""
    return {
        "/linode/instances": [
            {
                "id": 101,
                "label": "web-1",
                "region": "us-east",
                "type": "g6-standard-2",
                "status": "running",
                "tags": ["Owner:infra"],
                "specs": {"vcpus": 2, "memory": 4096, "disk": 81920, "transfer": 4000},
                "backups": {
                    "enabled": True,
                    "available": True,
                    "last_successful": "2024-05-30T02:00:00",
                },
                "disk_encryption": "enabled",
                "created": "2024-01-01T00:00:00",
            },
            {
                "id": 102,
                "label": "batch-1",
                "region": "us-east",
                "type": "g6-nanode-1",
                "status": "offline",
                "tags": [],
                "specs": {"vcpus": 1, "memory": 1024, "disk": 25600, "transfer": 1000},
                "backups": {"enabled": False},
                "disk_encryption": "disabled",
                "created": "2024-02-01T00:00:00",
            },
        ],
        "/linode/types/g6-standard-2": {"id": "g6-standard-2", "price": {"monthly": 24.0}},
        "/linode/types/g6-nanode-1": {"id": "g6-nanode-1", "price": {"monthly": 5.0}},
        "/linode/instances/101/firewalls": [{"id": 501, "label": "edge-fw", "status": "enabled"}],
        "/linode/instances/102/firewalls": [],
        "/networking/firewalls": [
            {
                "id": 501,
                "label": "edge-fw",
                "status": "enabled",
                "tags": [],
                "rules": {
                    "inbound_policy": "DROP",
                    "outbound_policy": "ACCEPT",
                    "inbound": [
                        {
                            "action": "ACCEPT",
                            "protocol": "TCP",
                            "ports": "22",
                            "addresses": {"ipv4": ["0.0.0.0/0"]},
                            "label": "ssh",
                        }
                    ],
                    "outbound": [],
                },
                "entities": [{"id": 101, "type": "linode", "label": "web-1"}],
            }
        ],
        "/volumes": [
            {
                "id": 301,
                "label": "data",
                "region": "us-east",
                "size": 20,
                "linode_id": 101,
                "linode_label": "web-1",
                "status": "active",
                "encryption": "enabled",
            }
        ],
        "/nodebalancers": [{"id": 401, "label": "lb-1", "region": "us-east", "ipv4": "192.0.2.10"}],
        "/nodebalancers/401/configs": [
            {"id": 11, "port": 80, "protocol": "http"},
            {"id": 12, "port": 443, "protocol": "https"},
        ],
        "/nodebalancers/401/configs/11/nodes": [
            {"id": 9001, "label": "web-1", "address": "192.168.1.10:80", "status": "UP", "linode_id": 101}
        ],
        "/nodebalancers/401/configs/12/nodes": [
            {"id": 9001, "label": "web-1", "address": "192.168.1.10:80", "status": "UP", "linode_id": 101},
            {"id": 9002, "label": "batch-1", "address": "192.168.1.11:80", "status": "DOWN", "linode_id": 102},
        ],
        "/lke/types": [
            {"id": "g6-standard-2", "price": {"monthly": 24.0}},
            {"id": "lke-ha", "price": {"monthly": 60.0}},
        ],
        "/lke/clusters": [
            {
                "id": 601,
                "label": "k8s-prod",
                "region": "us-east",
                "k8s_version": "1.29",
                "control_plane": {"high_availability": True},
                "tags": [],
            }
        ],
        "/lke/clusters/601/pools": [{"id": 1, "type": "g6-standard-2", "count": 3}],
        "/lke/clusters/601/control_plane_acl": {
            "acl": {"enabled": True, "addresses": {"ipv4": ["203.0.113.0/24"]}}
        },
        "/object-storage/buckets": [
            {
                "label": "assets",
                "region": "us-east-1",
                "hostname": "assets.us-east-1.linodeobjects.com",
                "objects": 5,
                "size": 10 * 1024 ** 3,
            }
        ],
        "/object-storage/buckets/us-east-1/assets/access": {"acl": "private", "cors_enabled": False},
        "/databases/types": [
            {"id": "g6-dedicated-2", "engines": {"mysql": [{"price": {"monthly": 65.0}}]}}
        ],
        "/databases/instances": [
            {
                "id": 701,
                "label": "orders",
                "engine": "mysql",
                "type": "g6-dedicated-2",
                "cluster_size": 1,
                "region": "us-east",
                "status": "active",
            }
        ],
        "/databases/mysql/instances/701": {
            "private_network": {"vpc_id": 801, "subnet_id": 81, "public_access": True},
            "allow_list": ["0.0.0.0/0"],
        },
        "/vpcs": [
            {
                "id": 801,
                "label": "main",
                "region": "us-east",
                "subnets": [
                    {"id": 81, "label": "app", "ipv4": "10.0.0.0/24", "linodes": [{"id": 101}, {"id": 102}]}
                ],
            }
        ],
        "/account/events": [
            {
                "id": 1,
                "action": "linode_boot",
                "created": "2024-05-01T10:00:00",
                "entity": {"id": 101, "type": "linode", "label": "web-1"},
                "status": "finished",
                "username": "alice",
            }
        ],
        "/account/logins": [
            {"id": 1, "ip": "203.0.113.5", "username": "alice", "datetime": "2024-05-01T09:00:00"}
        ],
        "/account/users": [
            {"username": "alice", "tfa_enabled": True, "user_type": "default"},
            {"username": "bob", "tfa_enabled": False, "user_type": "default"},
        ],
    }


@pytest.fixture
def routes() -> dict[str, Any]:
    return provider_routes()


@pytest.fixture
def fake_client(routes) -> FakeLinodeClient:
    return FakeLinodeClient(routes)


@pytest.fixture
def make_fake_client():
    """Constructor for ad-hoc fake clients with custom routes."""
    return FakeLinodeClient


# ============================================================================
# Data Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def account(db_session):
    from app.models.account import ProviderAccount

    record = ProviderAccount(name="Production", api_token="test-token")
    db_session.add(record)
    await db_session.commit()
    return record
