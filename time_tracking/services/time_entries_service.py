import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from time_tracking.core.authorization import Actor
from time_tracking.core.exceptions import TimeEntryNotFound, ValidationFailed
from time_tracking.database import unit_of_work
from time_tracking.models.time_entry import TimeEntry, TimeEntryStatus
from time_tracking.schemas.time_entry import TimeEntryCreate, TimeEntryFilters, TimeEntryUpdate
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

_PLAIN_UPDATE_FIELDS = ("description", "currency", "tags", "client_id", "task_id")


@dataclass
class TimeEntryPageResult:
    items: List[TimeEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _require_ordered(start_time: datetime, end_time: Optional[datetime]) -> None:
    if end_time is not None and to_utc(end_time) < to_utc(start_time):
        raise ValidationFailed(
            "end_time must not be before start_time",
            {"start_time": start_time.isoformat(), "end_time": end_time.isoformat()},
        )


def find_one(
    entry_id: str,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)

    with unit_of_work(db) as session:
        entry = repo.get_visible_entry(
            session, entry_id, company_id, actor.user_id, deps.policy.can_manage_all(actor)
        )
        if entry is None:
            raise TimeEntryNotFound(str(entry_id))
        return entry


def find_all(
    actor: Actor,
    filters: Optional[TimeEntryFilters] = None,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> TimeEntryPageResult:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    filters = filters or TimeEntryFilters()

    if deps.policy.can_manage_all(actor):
        user_id = filters.user_id
    else:
        user_id = actor.user_id

    statuses = []
    if filters.status is not None:
        statuses.append(filters.status.value)
    for status in filters.statuses or []:
        if status.value not in statuses:
            statuses.append(status.value)

    with unit_of_work(db) as session:
        rows, total = repo.search_entries(
            session,
            company_id,
            user_id=user_id,
            search=filters.search,
            statuses=statuses,
            client_id=filters.client_id,
            task_id=filters.task_id,
            is_billable=filters.is_billable,
            start_date_from=None if filters.start_date_from is None else to_utc(filters.start_date_from),
            start_date_to=None if filters.start_date_to is None else to_utc(filters.start_date_to),
            is_active=filters.is_active,
            offset=(filters.page - 1) * filters.limit,
            limit=filters.limit,
        )

    return TimeEntryPageResult(items=rows, total=total, page=filters.page, limit=filters.limit)


def create(
    payload: TimeEntryCreate,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)

    start_time = to_utc(payload.start_time)
    end_time = None if payload.end_time is None else to_utc(payload.end_time)
    _require_ordered(start_time, end_time)
    ensure_associations_owned(deps, company_id, payload.client_id, payload.task_id, db=db)

    with unit_of_work(db) as session:
        settings = deps.settings.get_settings(company_id, db=session)

        if not settings.allow_overlapping_entries:
            ensure_no_overlap(session, company_id, actor.user_id, start_time, end_time)

        duration = payload.duration_minutes
        if duration is None and end_time is not None:
            duration = calc_duration(start_time, end_time)
        if duration is not None:
            duration = round_duration(duration, settings.rounding_method, settings.rounding_interval_minutes)

        is_billable = True if payload.is_billable is None else payload.is_billable
        rate = effective_hourly_rate(payload.hourly_rate, settings.default_hourly_rate)
        amount = None
        if duration is not None and rate is not None and is_billable:
            amount = total_amount(duration, rate)

        entry = TimeEntry(
            company_id=company_id,
            user_id=str(actor.user_id),
            created_by_id=str(actor.user_id),
            description=payload.description,
            start_time=start_time,
            end_time=end_time,
            duration_minutes=duration,
            is_running=False,
            client_id=payload.client_id,
            task_id=payload.task_id,
            tags=payload.tags,
            is_billable=is_billable,
            hourly_rate=rate,
            total_amount=amount,
            currency=payload.currency or settings.default_currency,
            status=TimeEntryStatus.DRAFT.value,
            is_locked=False,
            is_active=True,
        )
        session.add(entry)
        session.flush()

    logger.info(
        "Time entry created",
        extra={"user_id": actor.user_id, "company_id": company_id, "entry_id": entry.id},
    )
    deps.audit.log_create(TIME_ENTRY, entry.id, entry_snapshot(entry), actor, db=db)
    return entry


def update(
    entry_id: str,
    payload: TimeEntryUpdate,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> TimeEntry:
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)
    sent = payload.model_fields_set

    if "client_id" in sent or "task_id" in sent:
        ensure_associations_owned(deps, company_id, payload.client_id, payload.task_id, db=db)

    with unit_of_work(db) as session:
        entry = repo.get_visible_entry(
            session,
            entry_id,
            company_id,
            actor.user_id,
            deps.policy.can_manage_all(actor),
            for_update=True,
        )
        if entry is None:
            raise TimeEntryNotFound(str(entry_id))

        settings = deps.settings.get_settings(company_id, db=session)
        ensure_mutable(entry, settings, now)

        times_changed = payload.start_time is not None or payload.end_time is not None
        if entry.is_running and (times_changed or "duration_minutes" in sent):
            raise ValidationFailed(
                "A running timer's interval and duration can only change through the timer operations",
                {"entry_id": entry.id},
            )

        before = entry_snapshot(entry)

        start_time = to_utc(payload.start_time) if payload.start_time is not None else to_utc(entry.start_time)
        if payload.end_time is not None:
            end_time = to_utc(payload.end_time)
        elif entry.end_time is not None:
            end_time = to_utc(entry.end_time)
        else:
            end_time = None
        _require_ordered(start_time, end_time)

        if times_changed and not settings.allow_overlapping_entries:
            ensure_no_overlap(
                session, company_id, entry.user_id, start_time, end_time, exclude_entry_id=entry.id
            )

        duration = payload.duration_minutes if payload.duration_minutes is not None else entry.duration_minutes
        if times_changed and end_time is not None:
            duration = round_duration(
                calc_duration(start_time, end_time),
                settings.rounding_method,
                settings.rounding_interval_minutes,
            )
        elif payload.duration_minutes is not None:
            duration = round_duration(
                payload.duration_minutes,
                settings.rounding_method,
                settings.rounding_interval_minutes,
            )

        rate = effective_hourly_rate(payload.hourly_rate, entry.hourly_rate)
        is_billable = entry.is_billable if payload.is_billable is None else payload.is_billable
        amount = entry.total_amount
        if entry.is_running:
            amount = None
        elif duration is not None and rate is not None and is_billable:
            amount = total_amount(duration, rate)
        elif not is_billable:
            amount = None

        for field in _PLAIN_UPDATE_FIELDS:
            if field in sent:
                setattr(entry, field, getattr(payload, field))
        entry.start_time = start_time
        entry.end_time = end_time
        entry.duration_minutes = duration
        entry.hourly_rate = rate
        entry.is_billable = is_billable
        entry.total_amount = amount
        session.flush()

    logger.info(
        "Time entry updated",
        extra={"user_id": actor.user_id, "company_id": company_id, "entry_id": entry.id},
    )
    deps.audit.log_update(TIME_ENTRY, entry.id, before, entry_snapshot(entry), actor, db=db)
    return entry


def remove(
    entry_id: str,
    actor: Actor,
    *,
    db: Optional[Session] = None,
    collaborators: Optional[Collaborators] = None,
    now: Optional[datetime] = None,
) -> None:
    """Soft delete; the row stays for audit and reporting."""
    deps = resolve_collaborators(collaborators)
    company_id = deps.tenant_resolver.resolve_company_id(actor)
    now = utc_now() if now is None else to_utc(now)

    with unit_of_work(db) as session:
        entry = repo.get_visible_entry(
            session,
            entry_id,
            company_id,
            actor.user_id,
            deps.policy.can_manage_all(actor),
            for_update=True,
        )
        if entry is None:
            raise TimeEntryNotFound(str(entry_id))

        settings = deps.settings.get_settings(company_id, db=session)
        ensure_mutable(entry, settings, now)

        before = entry_snapshot(entry)
        entry.is_active = False
        entry.is_running = False
        session.flush()

    logger.info(
        "Time entry removed",
        extra={"user_id": actor.user_id, "company_id": company_id, "entry_id": entry.id},
    )
    deps.audit.log_delete(TIME_ENTRY, entry.id, before, actor, db=db)
