"""
Running-timer lifecycle: start, stop, discard, read and edit the one running
entry a user may have per company.

Start, stop, discard and update each run in a single unit of work that holds
a write lock on the user's running row (and, for start, the user's timeline
lock) until commit. When the company disallows overlapping entries, a start
is also checked against the user's other active entries. The partial unique
index on running rows is the backstop if two starts ever get past the lock;
its violation surfaces as TimerAlreadyRunning, never as a storage error.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from time_tracking.core.authorization import Actor
from time_tracking.core.exceptions import TimerAlreadyRunning, TimerNotRunning
from time_tracking.database import unit_of_work
from time_tracking.models.time_entry import TimeEntry, TimeEntryStatus
from time_tracking.schemas.time_entry import TimerStartRequest, TimerStopRequest, TimerUpdateRequest
from time_tracking.services import time_entry_repository as repo
from time_tracking.services.audit_service import TIME_ENTRY, entry_snapshot
from time_tracking.services.collaborators import (
    Collaborators,
    ensure_associations_owned,
    resolve_collaborators,
)
from time_tracking.services.entry_lock_service import ensure_mutable
from time_tracking.services.overlap_detector import ensure_no_overlap
from time_tracking.services.time_calculation import (
    calc_duration,
    effective_hourly_rate,
    round_duration,
    to_utc,
    total_amount,
    utc_now,
)

logger = logging.getLogger(__name__)

TIMER_EDITABLE_FIELDS = ("description", "is_billable", "client_id", "task_id", "tags")


def _join_description(current: Optional[str], addition: Optional[str]) -> Optional[str]:
    if not addition:
        return current
    if current:
        return f"{current} {addition}"
    return addition


def start_timer(
    payload: TimerStartRequest,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    started_at = utc_now() if now is None else to_utc(now)

    ensure_associations_owned(deps, company_id, payload.client_id, payload.task_id, db=db)

    try:
        with unit_of_work(db) as session:
            repo.lock_user_timeline(session, company_id, actor.user_id)

            running = repo.get_running_entry(session, company_id, actor.user_id, for_update=True)
            if running is not None:
                raise TimerAlreadyRunning()

            settings = deps.settings.get_settings(company_id, db=session)
            if not settings.allow_overlapping_entries:
                ensure_no_overlap(session, company_id, actor.user_id, started_at, None)

            entry = TimeEntry(
                company_id=company_id,
                user_id=str(actor.user_id),
                created_by_id=str(actor.user_id),
                description=payload.description,
                start_time=started_at,
                end_time=None,
                duration_minutes=None,
                is_running=True,
                client_id=payload.client_id,
                task_id=payload.task_id,
                tags=payload.tags,
                is_billable=True if payload.is_billable is None else payload.is_billable,
                hourly_rate=payload.hourly_rate,
                status=TimeEntryStatus.DRAFT.value,
                is_locked=False,
                is_active=True,
            )
            session.add(entry)
            session.flush()
    except IntegrityError as exc:
        if repo.is_running_timer_violation(exc):
            logger.warning(
                "Concurrent timer start rejected by running-timer index",
                extra={"user_id": actor.user_id, "company_id": company_id},
            )
            raise TimerAlreadyRunning() from exc
        raise

    logger.info(
        "Timer started",
        extra={"user_id": actor.user_id, "company_id": company_id, "entry_id": entry.id},
    )
    deps.audit.log_create(TIME_ENTRY, entry.id, entry_snapshot(entry), actor, db=db)
    return entry


def stop_timer(
    payload: TimerStopRequest,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    ended_at = utc_now() if now is None else to_utc(now)

    with unit_of_work(db) as session:
        entry = repo.get_running_entry(session, company_id, actor.user_id, for_update=True)
        if entry is None:
            raise TimerNotRunning()

        before = entry_snapshot(entry)
        settings = deps.settings.get_settings(company_id, db=session)

        duration = round_duration(
            calc_duration(entry.start_time, ended_at),
            settings.rounding_method,
            settings.rounding_interval_minutes,
        )
        rate = effective_hourly_rate(entry.hourly_rate, settings.default_hourly_rate)

        entry.end_time = ended_at
        entry.duration_minutes = duration
        entry.hourly_rate = rate
        entry.total_amount = total_amount(duration, rate) if entry.is_billable and rate is not None else None
        entry.description = _join_description(entry.description, payload.description)
        entry.is_running = False
        session.flush()

    logger.info(
        "Timer stopped",
        extra={
            "user_id": actor.user_id,
            "company_id": company_id,
            "entry_id": entry.id,
            "duration_minutes": duration,
        },
    )
    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry


def discard_timer(
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> TimeEntry:
    """Drop the running entry without materializing duration or amount."""
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)

    with unit_of_work(db) as session:
        entry = repo.get_running_entry(session, company_id, actor.user_id, for_update=True)
        if entry is None:
            raise TimerNotRunning()

        before = entry_snapshot(entry)
        entry.is_running = False
        entry.is_active = False
        session.flush()

    logger.info(
        "Timer discarded",
        extra={"user_id": actor.user_id, "company_id": company_id, "entry_id": entry.id},
    )
    deps.audit.log_delete(TIME_ENTRY, entry.id, before, actor, db=db)
    return entry


def get_active_timer(
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> Optional[TimeEntry]:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)

    with unit_of_work(db) as session:
        return repo.get_running_entry(session, company_id, actor.user_id)


def update_timer(
    payload: TimerUpdateRequest,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    """
    Patch the running entry in place.

    The running row is locked FOR UPDATE like stop/discard, so an edit racing
    a stop either lands before it or fails with TimerNotRunning.
    """
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)
    changes = {k: getattr(payload, k) for k in TIMER_EDITABLE_FIELDS if k in payload.model_fields_set}

    ensure_associations_owned(deps, company_id, changes.get("client_id"), changes.get("task_id"), db=db)

    with unit_of_work(db) as session:
        entry = repo.get_running_entry(session, company_id, actor.user_id, for_update=True)
        if entry is None:
            raise TimerNotRunning()

        ensure_mutable(entry, None, now)

        before = entry_snapshot(entry)
        for field, value in changes.items():
            if field == "is_billable" and value is None:
                continue
            setattr(entry, field, value)
        session.flush()

    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry
