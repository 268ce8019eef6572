import threading
from datetime import datetime, timedelta, timezone

import pytest

from time_tracking.core.exceptions import ErrorKind, TimeEntryOverlap, TimeTrackingError
from time_tracking.database import SessionLocal
from time_tracking.models import TimeEntry
from time_tracking.schemas.time_entry import TimeEntryCreate, TimeEntryUpdate
from time_tracking.services import time_entries_service
from time_tracking.services.overlap_detector import ensure_no_overlap, ranges_overlap
from time_tracking.tests.helpers import COMPANY_ID

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


def test_touching_ranges_do_not_overlap():
    assert not ranges_overlap(_at(0), _at(60), _at(60), _at(120))
    assert not ranges_overlap(_at(60), _at(120), _at(0), _at(60))


def test_intersecting_ranges_overlap():
    assert ranges_overlap(_at(0), _at(60), _at(30), _at(90))
    assert ranges_overlap(_at(0), _at(120), _at(30), _at(60))


def test_open_range_extends_forever():
    assert ranges_overlap(_at(0), None, _at(600), _at(660))
    assert not ranges_overlap(_at(600), None, _at(0), _at(60))


def test_ensure_no_overlap_reports_conflicting_entry(entry_factory):
    existing = entry_factory(start_time=_at(0), minutes=60)

    db = SessionLocal()
    try:
        with pytest.raises(TimeEntryOverlap) as exc:
            ensure_no_overlap(db, COMPANY_ID, "user-1", _at(30), _at(90))
        assert exc.value.kind is ErrorKind.OVERLAP
        assert exc.value.conflicting_entry_id == existing.id

        ensure_no_overlap(db, COMPANY_ID, "user-1", _at(60), _at(90))
    finally:
        db.rollback()
        db.close()


def test_ensure_no_overlap_ignores_other_users_and_inactive_entries(entry_factory):
    entry_factory(user_id="user-2", start_time=_at(0), minutes=60)
    entry_factory(start_time=_at(0), minutes=60, is_active=False)

    db = SessionLocal()
    try:
        ensure_no_overlap(db, COMPANY_ID, "user-1", _at(0), _at(60))
    finally:
        db.rollback()
        db.close()


def test_ensure_no_overlap_sees_running_timer(entry_factory):
    entry_factory(start_time=_at(0), minutes=0, end_time=None, duration_minutes=None, is_running=True)

    db = SessionLocal()
    try:
        with pytest.raises(TimeEntryOverlap):
            ensure_no_overlap(db, COMPANY_ID, "user-1", _at(300), _at(360))
    finally:
        db.rollback()
        db.close()


def test_create_rejects_overlap_when_disallowed(entry_factory, settings_factory, employee):
    settings_factory(allow_overlapping_entries=False)
    entry_factory(start_time=_at(0), minutes=60)

    with pytest.raises(TimeEntryOverlap):
        time_entries_service.create(
            TimeEntryCreate(start_time=_at(30), end_time=_at(90)),
            employee,
        )

    created = time_entries_service.create(
        TimeEntryCreate(start_time=_at(60), end_time=_at(90)),
        employee,
    )
    assert created.duration_minutes == 30


def test_create_allows_overlap_by_default(entry_factory, employee):
    entry_factory(start_time=_at(0), minutes=60)

    created = time_entries_service.create(
        TimeEntryCreate(start_time=_at(30), end_time=_at(90)),
        employee,
    )
    assert created.id is not None


def test_update_excludes_the_entry_itself(entry_factory, settings_factory, employee):
    settings_factory(allow_overlapping_entries=False)
    entry = entry_factory(start_time=_at(0), minutes=60)
    entry_factory(start_time=_at(120), minutes=60)

    moved = time_entries_service.update(
        entry.id,
        TimeEntryUpdate(start_time=_at(10), end_time=_at(70)),
        employee,
    )
    assert moved.duration_minutes == 60

    with pytest.raises(TimeEntryOverlap):
        time_entries_service.update(
            entry.id,
            TimeEntryUpdate(end_time=_at(150)),
            employee,
        )


def test_concurrent_overlapping_creates_commit_once(settings_factory, employee):
    settings_factory(allow_overlapping_entries=False)
    barrier = threading.Barrier(4)
    results = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        try:
            time_entries_service.create(TimeEntryCreate(start_time=_at(0), end_time=_at(60)), employee)
            outcome = "created"
        except TimeTrackingError as exc:
            outcome = exc.kind
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results, key=str) == sorted(["created"] + [ErrorKind.OVERLAP] * 3, key=str)

    db = SessionLocal()
    try:
        active = (
            db.query(TimeEntry)
            .filter(TimeEntry.company_id == COMPANY_ID, TimeEntry.user_id == "user-1", TimeEntry.is_active.is_(True))
            .count()
        )
    finally:
        db.close()
    assert active == 1
