from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence
from uuid import UUID

from app.models.inventory import Resource, ResourceType
from app.schemas.inventory import FirewallSpecs, InstanceSpecs, SpecsBase, parse_specs
from app.shared.adapters.linode import LinodeClient


@dataclass(frozen=True)
class EvaluatedResource:
    """Read-only view of a persisted resource with its specs parsed into the typed record."""

    id: UUID
    external_id: str
    resource_type: str
    label: Optional[str]
    region: Optional[str]
    plan_type: Optional[str]
    status: Optional[str]
    specs: SpecsBase
    # Set when the stored specs failed validation; checks then report not_applicable.
    specs_error: Optional[str] = None

    @classmethod
    def from_model(cls, resource: Resource) -> "EvaluatedResource":
        return cls(
            id=resource.id,
            external_id=resource.external_id,
            resource_type=resource.resource_type,
            label=resource.label,
            region=resource.region,
            plan_type=resource.plan_type,
            status=resource.status,
            specs=parse_specs(resource.resource_type, resource.specs),
        )

    @classmethod
    def unreadable(cls, resource: Resource, error: str) -> "EvaluatedResource":
        return cls(
            id=resource.id,
            external_id=resource.external_id,
            resource_type=resource.resource_type,
            label=resource.label,
            region=resource.region,
            plan_type=resource.plan_type,
            status=resource.status,
            specs=SpecsBase(),
            specs_error=error,
        )


class AccountDirectory(Protocol):
    """Account-wide feeds consumed by account-level conditions."""

    async def list_logins(self) -> list[dict[str, Any]]: ...

    async def list_users(self) -> list[dict[str, Any]]: ...


class LinodeAccountDirectory:
    def __init__(self, client: LinodeClient):
        self.client = client

    async def list_logins(self) -> list[dict[str, Any]]:
        return await self.client.list_all("/account/logins")

    async def list_users(self) -> list[dict[str, Any]]:
        return await self.client.list_all("/account/users")


@dataclass
class EvaluationContext:
    account_id: UUID
    now: datetime
    resources: Sequence[EvaluatedResource] = field(default_factory=tuple)
    # None when the account has no API token to call the provider with.
    directory: Optional[AccountDirectory] = None

    def __post_init__(self) -> None:
        self._firewalls = {
            r.external_id: r
            for r in self.resources
            if r.resource_type == ResourceType.FIREWALL.value
            and isinstance(r.specs, FirewallSpecs)
        }

    def _firewalls_listing(self, instance: EvaluatedResource) -> list[EvaluatedResource]:
        matches = []
        for firewall in self._firewalls.values():
            specs = firewall.specs
            if any(str(entity.id) == instance.external_id for entity in specs.entities):
                matches.append(firewall)
        return matches

    def attached_firewall_labels(self, instance: EvaluatedResource) -> list[str]:
        """Labels of every firewall protecting an instance, whether or not it was collected."""
        specs = instance.specs
        direct = specs.attached_firewalls if isinstance(specs, InstanceSpecs) else []
        direct_ids = {str(fw.id) for fw in direct}
        labels = [fw.label or str(fw.id) for fw in direct]
        labels.extend(
            fw.label or fw.external_id
            for fw in self._firewalls_listing(instance)
            if fw.external_id not in direct_ids
        )
        return labels

    def protecting_firewalls(self, instance: EvaluatedResource) -> list[EvaluatedResource]:
        """Collected firewall resources protecting an instance, direct attachments first."""
        specs = instance.specs
        direct = specs.attached_firewalls if isinstance(specs, InstanceSpecs) else []
        found: dict[str, EvaluatedResource] = {}
        for attached in direct:
            firewall = self._firewalls.get(str(attached.id))
            if firewall is not None:
                found.setdefault(firewall.external_id, firewall)
        for firewall in self._firewalls_listing(instance):
            found.setdefault(firewall.external_id, firewall)
        return list(found.values())
