"""
Collaborators the time tracking core consumes but does not own.

Each class is both the interface and its default implementation. Deployments
subclass and pass their own bundle through the ``collaborators=`` keyword
that every core operation accepts.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from time_tracking.core.authorization import Actor, Capability, capability_for_role
from time_tracking.core.exceptions import ValidationFailed
from time_tracking.services.audit_service import AuditSink, ChangeLogAuditSink
from time_tracking.services.settings_service import DbSettingsProvider, SettingsProvider


class TenantResolver:
    def resolve_company_id(self, actor: Actor) -> int:
        return int(actor.company_id)


class AuthorizationPolicy:
    def capability(self, actor: Actor) -> Capability:
        return capability_for_role(actor.role)

    def can_manage_all(self, actor: Actor) -> bool:
        return self.capability(actor) is Capability.MANAGE_ALL


class OwnershipValidator:
    """Confirms that a client/task belongs to the company. Accepts everything by default."""

    def validate(
        self,
        company_id: int,
        client_id: Optional[str] = None,
        task_id: Optional[str] = None,
        *,
        db: Optional[Session] = None,
    ) -> bool:
        return True


@dataclass
class Collaborators:
    tenant_resolver: TenantResolver
    policy: AuthorizationPolicy
    ownership: OwnershipValidator
    settings: SettingsProvider
    audit: AuditSink


_default: Optional[Collaborators] = None


def default_collaborators() -> Collaborators:
    global _default
    if _default is None:
        _default = Collaborators(
            tenant_resolver=TenantResolver(),
            policy=AuthorizationPolicy(),
            ownership=OwnershipValidator(),
            settings=DbSettingsProvider(),
            audit=ChangeLogAuditSink(),
        )
    return _default


def resolve_collaborators(collaborators: Optional[Collaborators]) -> Collaborators:
    return collaborators if collaborators is not None else default_collaborators()


def ensure_associations_owned(
    deps: Collaborators,
    company_id: int,
    client_id: Optional[str],
    task_id: Optional[str],
    *,
    db: Optional[Session] = None,
) -> None:
    if client_id is None and task_id is None:
        return
    if not deps.ownership.validate(company_id, client_id, task_id, db=db):
        raise ValidationFailed(
            "Client or task does not belong to this company",
            {"client_id": client_id, "task_id": task_id},
        )
