"""
Approval workflow for time entries.

    DRAFT -> SUBMITTED           (submit, owner only)
    SUBMITTED -> APPROVED        (approve, manager; also locks the entry)
    SUBMITTED -> REJECTED        (reject, manager; note required)

APPROVED and REJECTED are terminal; there is no resubmission path.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from time_tracking.core.authorization import Actor
from time_tracking.core.exceptions import (
    ForbiddenAction,
    InvalidStatusTransition,
    TimeEntryNotFound,
    ValidationFailed,
)
from time_tracking.database import unit_of_work
from time_tracking.models.time_entry import TimeEntry, TimeEntryStatus
from time_tracking.services import time_entry_repository as repo
from time_tracking.services.audit_service import TIME_ENTRY, entry_snapshot
from time_tracking.services.collaborators import Collaborators, resolve_collaborators
from time_tracking.services.entry_lock_service import ensure_mutable
from time_tracking.services.time_calculation import to_utc, utc_now

logger = logging.getLogger(__name__)

TRANSITIONS = {
    TimeEntryStatus.DRAFT: {TimeEntryStatus.SUBMITTED},
    TimeEntryStatus.SUBMITTED: {TimeEntryStatus.APPROVED, TimeEntryStatus.REJECTED},
    TimeEntryStatus.APPROVED: set(),
    TimeEntryStatus.REJECTED: set(),
}


@dataclass(frozen=True)
class BulkApprovalResult:
    approved: int
    not_found: int


@dataclass(frozen=True)
class BulkRejectionResult:
    rejected: int
    not_found: int


def can_transition(current: TimeEntryStatus, target: TimeEntryStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


def _ensure_transition(entry: TimeEntry, target: TimeEntryStatus) -> None:
    current = TimeEntryStatus(entry.status)
    if not can_transition(current, target):
        raise InvalidStatusTransition(current.value, target.value)


def _require_manager(deps: Collaborators, actor: Actor, action: str) -> None:
    if not deps.policy.can_manage_all(actor):
        raise ForbiddenAction(f"Only managers can {action} time entries")


def _require_note(note: Optional[str]) -> str:
    if note is None or not note.strip():
        raise ValidationFailed("A rejection note is required", {"field": "rejection_note"})
    return note.strip()


def _unique_ids(entry_ids: Iterable[str]) -> List[str]:
    seen = []
    for entry_id in entry_ids:
        entry_id = str(entry_id)
        if entry_id not in seen:
            seen.append(entry_id)
    return seen


def _apply_approval(entry: TimeEntry, actor: Actor, now: datetime) -> None:
    entry.status = TimeEntryStatus.APPROVED.value
    entry.approved_by_id = str(actor.user_id)
    entry.approved_at = now
    entry.is_locked = True
    entry.locked_at = now
    entry.locked_by_id = str(actor.user_id)


def _apply_rejection(entry: TimeEntry, note: str, actor: Actor, now: datetime) -> None:
    entry.status = TimeEntryStatus.REJECTED.value
    entry.rejection_note = note
    entry.rejected_by_id = str(actor.user_id)
    entry.rejected_at = now


def submit(
    entry_id: str,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)

    with unit_of_work(db) as session:
        entry = repo.get_entry(session, entry_id, company_id, for_update=True)
        if entry is None or entry.user_id != str(actor.user_id):
            raise TimeEntryNotFound(str(entry_id))

        ensure_mutable(entry, None, now)
        if entry.is_running:
            raise InvalidStatusTransition("RUNNING", TimeEntryStatus.SUBMITTED.value)
        _ensure_transition(entry, TimeEntryStatus.SUBMITTED)

        before = entry_snapshot(entry)
        entry.status = TimeEntryStatus.SUBMITTED.value
        entry.submitted_at = now
        session.flush()

    logger.info(
        "Time entry submitted for approval",
        extra={"entry_id": entry.id, "user_id": actor.user_id, "company_id": company_id},
    )
    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry


def approve(
    entry_id: str,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    _require_manager(deps, actor, "approve")
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)

    with unit_of_work(db) as session:
        entry = repo.get_entry(session, entry_id, company_id, for_update=True)
        if entry is None:
            raise TimeEntryNotFound(str(entry_id))

        _ensure_transition(entry, TimeEntryStatus.APPROVED)

        before = entry_snapshot(entry)
        _apply_approval(entry, actor, now)
        session.flush()

    logger.info(
        "Time entry approved",
        extra={"entry_id": entry.id, "user_id": actor.user_id, "company_id": company_id},
    )
    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry


def reject(
    entry_id: str,
    rejection_note: Optional[str],
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    _require_manager(deps, actor, "reject")
    note = _require_note(rejection_note)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)

    with unit_of_work(db) as session:
        entry = repo.get_entry(session, entry_id, company_id, for_update=True)
        if entry is None:
            raise TimeEntryNotFound(str(entry_id))

        _ensure_transition(entry, TimeEntryStatus.REJECTED)

        before = entry_snapshot(entry)
        _apply_rejection(entry, note, actor, now)
        session.flush()

    logger.info(
        "Time entry rejected",
        extra={"entry_id": entry.id, "user_id": actor.user_id, "company_id": company_id},
    )
    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry


def bulk_approve(
    entry_ids: Iterable[str],
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> BulkApprovalResult:
    """Approve every requested entry that is SUBMITTED in the actor's company; others count as not found."""
    deps = resolve_collaborators(collaborators)
    _require_manager(deps, actor, "approve")
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)
    ids = _unique_ids(entry_ids)

    audits = []
    with unit_of_work(db) as session:
        rows = repo.lock_submitted_entries(session, company_id, ids)
        for entry in rows:
            before = entry_snapshot(entry)
            _apply_approval(entry, actor, now)
            audits.append((entry, before))
        session.flush()

    logger.info(
        "Bulk approval",
        extra={"user_id": actor.user_id, "company_id": company_id, "requested": len(ids), "approved": len(rows)},
    )
    for entry, before in audits:
        deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)

    return BulkApprovalResult(approved=len(rows), not_found=len(ids) - len(rows))


def bulk_reject(
    entry_ids: Iterable[str],
    rejection_note: Optional[str],
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> BulkRejectionResult:
    deps = resolve_collaborators(collaborators)
    _require_manager(deps, actor, "reject")
    note = _require_note(rejection_note)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)
    ids = _unique_ids(entry_ids)

    audits = []
    with unit_of_work(db) as session:
        rows = repo.lock_submitted_entries(session, company_id, ids)
        for entry in rows:
            before = entry_snapshot(entry)
            _apply_rejection(entry, note, actor, now)
            audits.append((entry, before))
        session.flush()

    logger.info(
        "Bulk rejection",
        extra={"user_id": actor.user_id, "company_id": company_id, "requested": len(ids), "rejected": len(rows)},
    )
    for entry, before in audits:
        deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)

    return BulkRejectionResult(rejected=len(rows), not_found=len(ids) - len(rows))
