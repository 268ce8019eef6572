from datetime import timedelta

import pytest

from time_tracking.core.exceptions import (
    ErrorKind,
    ForbiddenAction,
    TimeEntryLocked,
    TimeEntryNotFound,
    UnlockNotAuthorized,
)
from time_tracking.schemas.time_entry import TimeEntryUpdate, TimerStopRequest
from time_tracking.services import entry_lock_service, time_entries_service, timer_service
from time_tracking.services.entry_lock_service import is_age_locked
from time_tracking.services.time_calculation import utc_now
from time_tracking.tests.helpers import as_utc, change_logs_for, load_entry


def test_age_lock_applies_only_when_configured(entry_factory):
    now = utc_now()
    old = entry_factory(start_time=now - timedelta(days=400))

    assert is_age_locked(old, 7, now) is True
    assert is_age_locked(old, 0, now) is False
    assert is_age_locked(old, 500, now) is False


def test_old_entry_is_editable_when_age_lock_disabled(entry_factory, employee):
    old = entry_factory(start_time=utc_now() - timedelta(days=400))

    updated = time_entries_service.update(old.id, TimeEntryUpdate(description="Fixed typo"), employee)

    assert updated.description == "Fixed typo"


def test_old_entry_is_refused_when_age_lock_enabled(entry_factory, settings_factory, employee):
    settings_factory(lock_entries_after_days=7)
    old = entry_factory(start_time=utc_now() - timedelta(days=400))

    with pytest.raises(TimeEntryLocked) as exc:
        time_entries_service.update(old.id, TimeEntryUpdate(description="Too late"), employee)

    assert exc.value.kind is ErrorKind.LOCKED
    assert exc.value.reason == "age"

    with pytest.raises(TimeEntryLocked):
        time_entries_service.remove(old.id, employee)


def test_manager_lock_blocks_owner_edits(entry_factory, employee, manager):
    entry = entry_factory()

    locked = entry_lock_service.lock(entry.id, manager, "period closed")

    assert locked.is_locked is True
    assert locked.locked_by_id == "manager-1"
    assert locked.locked_at is not None

    with pytest.raises(TimeEntryLocked) as exc:
        time_entries_service.update(entry.id, TimeEntryUpdate(description="x"), employee)
    assert exc.value.reason == "locked"

    with pytest.raises(TimeEntryLocked):
        time_entries_service.remove(entry.id, employee)


def test_lock_is_idempotent(entry_factory, manager):
    entry = entry_factory()

    first = entry_lock_service.lock(entry.id, manager)
    second = entry_lock_service.lock(entry.id, manager)

    assert second.is_locked is True
    assert as_utc(second.locked_at) == as_utc(first.locked_at)
    assert [log.action for log in change_logs_for(entry.id)] == ["UPDATE"]


def test_employee_cannot_lock(entry_factory, employee):
    entry = entry_factory()

    with pytest.raises(ForbiddenAction):
        entry_lock_service.lock(entry.id, employee)

    assert load_entry(entry.id).is_locked is False


def test_unlock_requires_manager(entry_factory, employee, manager):
    entry = entry_factory(is_locked=True)

    with pytest.raises(UnlockNotAuthorized) as exc:
        entry_lock_service.unlock(entry.id, employee)
    assert exc.value.kind is ErrorKind.UNLOCK_NOT_AUTHORIZED

    unlocked = entry_lock_service.unlock(entry.id, manager, "correction")

    assert unlocked.is_locked is False
    assert unlocked.locked_at is None
    assert unlocked.locked_by_id is None


def test_unlock_keeps_workflow_status(entry_factory, manager):
    entry = entry_factory(status="APPROVED", is_locked=True)

    unlocked = entry_lock_service.unlock(entry.id, manager)

    assert unlocked.status == "APPROVED"
    assert load_entry(entry.id).status == "APPROVED"


def test_unlock_of_unlocked_entry_is_a_no_op(entry_factory, manager):
    entry = entry_factory()

    entry_lock_service.unlock(entry.id, manager)

    assert change_logs_for(entry.id) == []


def test_lock_is_tenant_scoped(entry_factory, outsider_manager):
    entry = entry_factory()

    with pytest.raises(TimeEntryNotFound):
        entry_lock_service.lock(entry.id, outsider_manager)


def test_running_timer_can_be_stopped_after_lock(employee, manager, entry_factory):
    running = entry_factory(end_time=None, duration_minutes=None, is_running=True)
    entry_lock_service.lock(running.id, manager)

    stopped = timer_service.stop_timer(TimerStopRequest(), employee)

    assert stopped.id == running.id
    assert stopped.is_running is False
    assert stopped.is_locked is True
