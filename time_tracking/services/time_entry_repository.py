"""Queries and row locks for time entries. Every function runs on the caller's session."""
import zlib
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import or_, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from time_tracking.database import is_postgresql
from time_tracking.models.time_entry import RUNNING_TIMER_INDEX, TimeEntry, TimeEntryStatus

# Advisory-lock namespace for per-user timeline locks (pg_advisory_xact_lock(int, int)).
_TIMELINE_LOCK_SPACE = 7301


def _signed_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def timeline_lock_key(company_id: int, user_id: str) -> int:
    return _signed_int32(zlib.crc32(f"{int(company_id)}:{user_id}".encode("utf-8")))


def lock_user_timeline(db: Session, company_id: int, user_id: str) -> None:
    """
    Serialize check-then-write sequences on one user's entries.

    On PostgreSQL this takes a transaction-scoped advisory lock, which also
    covers the case where no row exists yet to lock FOR UPDATE. SQLite
    sessions already hold the database write lock from BEGIN IMMEDIATE.
    """
    if not is_postgresql(db):
        return
    db.execute(
        text("SELECT pg_advisory_xact_lock(:space, :key)"),
        {"space": _TIMELINE_LOCK_SPACE, "key": timeline_lock_key(company_id, user_id)},
    )


def is_running_timer_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    if diag is not None and getattr(diag, "constraint_name", None) == RUNNING_TIMER_INDEX:
        return True

    message = str(orig if orig is not None else exc)
    if RUNNING_TIMER_INDEX in message:
        return True
    # SQLite reports the indexed columns rather than the index name.
    return "time_entries.user_id, time_entries.company_id" in message


def _running_query(db: Session, company_id: int, user_id: str) -> Query:
    return db.query(TimeEntry).filter(
        TimeEntry.company_id == int(company_id),
        TimeEntry.user_id == str(user_id),
        TimeEntry.is_running.is_(True),
        TimeEntry.is_active.is_(True),
    )


def get_running_entry(
    db: Session,
    company_id: int,
    user_id: str,
    *,
    for_update: bool = False,
) -> Optional[TimeEntry]:
    q = _running_query(db, company_id, user_id)
    if for_update:
        q = q.with_for_update()
    return q.first()


def get_entry(
    db: Session,
    entry_id: str,
    company_id: int,
    *,
    for_update: bool = False,
) -> Optional[TimeEntry]:
    q = db.query(TimeEntry).filter(
        TimeEntry.id == str(entry_id),
        TimeEntry.company_id == int(company_id),
        TimeEntry.is_active.is_(True),
    )
    if for_update:
        q = q.with_for_update()
    return q.first()


def get_visible_entry(
    db: Session,
    entry_id: str,
    company_id: int,
    user_id: str,
    can_manage_all: bool,
    *,
    for_update: bool = False,
) -> Optional[TimeEntry]:
    """Tenant-scoped lookup; users without manage-all authority only see their own entries."""
    entry = get_entry(db, entry_id, company_id, for_update=for_update)
    if entry is None:
        return None
    if not can_manage_all and entry.user_id != str(user_id):
        return None
    return entry


def find_overlap_candidates(
    db: Session,
    company_id: int,
    user_id: str,
    start_time: datetime,
    end_time: Optional[datetime],
    exclude_entry_id: Optional[str] = None,
) -> List[TimeEntry]:
    """Active entries of the user whose range may intersect [start_time, end_time)."""
    q = db.query(TimeEntry).filter(
        TimeEntry.company_id == int(company_id),
        TimeEntry.user_id == str(user_id),
        TimeEntry.is_active.is_(True),
        or_(TimeEntry.end_time.is_(None), TimeEntry.end_time > start_time),
    )
    if end_time is not None:
        q = q.filter(TimeEntry.start_time < end_time)
    if exclude_entry_id is not None:
        q = q.filter(TimeEntry.id != str(exclude_entry_id))
    return q.order_by(TimeEntry.start_time.asc()).all()


def lock_submitted_entries(db: Session, company_id: int, entry_ids: Iterable[str]) -> List[TimeEntry]:
    ids = [str(i) for i in entry_ids]
    if not ids:
        return []
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.id.in_(ids),
            TimeEntry.company_id == int(company_id),
            TimeEntry.status == TimeEntryStatus.SUBMITTED.value,
            TimeEntry.is_active.is_(True),
        )
        .order_by(TimeEntry.id.asc())
        .with_for_update()
        .all()
    )


def escape_like(pattern: str) -> str:
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_entries(
    db: Session,
    company_id: int,
    *,
    user_id: Optional[str] = None,
    search: Optional[str] = None,
    statuses: Sequence[str] = (),
    client_id: Optional[str] = None,
    task_id: Optional[str] = None,
    is_billable: Optional[bool] = None,
    start_date_from: Optional[datetime] = None,
    start_date_to: Optional[datetime] = None,
    is_active: bool = True,
    offset: int = 0,
    limit: int = 20,
) -> Tuple[List[TimeEntry], int]:
    q = db.query(TimeEntry).filter(TimeEntry.company_id == int(company_id))

    if user_id is not None:
        q = q.filter(TimeEntry.user_id == str(user_id))
    if search:
        q = q.filter(TimeEntry.description.ilike(f"%{escape_like(search)}%", escape="\\"))
    if statuses:
        q = q.filter(TimeEntry.status.in_([str(s) for s in statuses]))
    if client_id is not None:
        q = q.filter(TimeEntry.client_id == str(client_id))
    if task_id is not None:
        q = q.filter(TimeEntry.task_id == str(task_id))
    if is_billable is not None:
        q = q.filter(TimeEntry.is_billable.is_(bool(is_billable)))
    if start_date_from is not None:
        q = q.filter(TimeEntry.start_time >= start_date_from)
    if start_date_to is not None:
        q = q.filter(TimeEntry.start_time <= start_date_to)

    q = q.filter(TimeEntry.is_active.is_(bool(is_active)))

    total = q.count()
    rows = (
        q.order_by(TimeEntry.start_time.desc(), TimeEntry.id.asc())
        .offset(int(offset))
        .limit(int(limit))
        .all()
    )
    return rows, total
