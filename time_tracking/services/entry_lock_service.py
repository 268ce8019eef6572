import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from time_tracking.core.authorization import Actor
from time_tracking.core.exceptions import ForbiddenAction, TimeEntryLocked, TimeEntryNotFound, UnlockNotAuthorized
from time_tracking.database import unit_of_work
from time_tracking.models.time_entry import TimeEntry
from time_tracking.services import time_entry_repository as repo
from time_tracking.services.audit_service import TIME_ENTRY, entry_snapshot
from time_tracking.services.collaborators import Collaborators, resolve_collaborators
from time_tracking.services.settings_service import CompanyTimeSettings
from time_tracking.services.time_calculation import to_utc, utc_now

logger = logging.getLogger(__name__)


def is_age_locked(entry: TimeEntry, lock_entries_after_days: int, now: datetime) -> bool:
    if not lock_entries_after_days or lock_entries_after_days <= 0:
        return False
    cutoff = to_utc(now) - timedelta(days=int(lock_entries_after_days))
    return to_utc(entry.start_time) < cutoff


def ensure_mutable(
    entry: TimeEntry,
    settings: Optional[CompanyTimeSettings],
    now: datetime,
) -> None:
    """Raise TimeEntryLocked for an explicit lock, or an age lock when settings are given."""
    if entry.is_locked:
        raise TimeEntryLocked(entry.id, reason="locked")
    if settings is not None and is_age_locked(entry, settings.lock_entries_after_days, now):
        raise TimeEntryLocked(entry.id, reason="age")


def lock(
    entry_id: str,
    actor: Actor,
    reason: Optional[str] = None,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    if not deps.policy.can_manage_all(actor):
        raise ForbiddenAction("Only managers can lock time entries", {"entry_id": str(entry_id)})

    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)

    with unit_of_work(db) as session:
        entry = repo.get_entry(session, entry_id, company_id, for_update=True)
        if entry is None:
            raise TimeEntryNotFound(str(entry_id))

        if entry.is_locked:
            return entry

        before = entry_snapshot(entry)
        entry.is_locked = True
        entry.locked_at = now
        entry.locked_by_id = str(actor.user_id)
        session.flush()

    logger.info(
        "Time entry locked",
        extra={"entry_id": entry.id, "user_id": actor.user_id, "company_id": company_id, "reason": reason},
    )
    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry


def unlock(
    entry_id: str,
    actor: Actor,
    reason: Optional[str] = None,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> TimeEntry:
    """Clear the lock; the workflow status is left as it is."""
    deps = resolve_collaborators(collaborators)
    if not deps.policy.can_manage_all(actor):
        raise UnlockNotAuthorized(str(entry_id))

    company_id = deps.tenant_resolver.resolve_company_id(actor)

    with unit_of_work(db) as session:
        entry = repo.get_entry(session, entry_id, company_id, for_update=True)
        if entry is None:
            raise TimeEntryNotFound(str(entry_id))

        if not entry.is_locked:
            return entry

        before = entry_snapshot(entry)
        entry.is_locked = False
        entry.locked_at = None
        entry.locked_by_id = None
        session.flush()

    logger.info(
        "Time entry unlocked",
        extra={"entry_id": entry.id, "user_id": actor.user_id, "company_id": company_id, "reason": reason},
    )
    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry
