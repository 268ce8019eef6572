from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from time_tracking.core.authorization import Actor
from time_tracking.deps.auth import require_actor
from time_tracking.models.time_entry import TimeEntry, TimeEntryStatus
from time_tracking.schemas.time_entry import (
    BulkApproveRequest,
    BulkApproveResult,
    BulkRejectRequest,
    BulkRejectResult,
    LockRequest,
    RejectRequest,
    TimeEntryCreate,
    TimeEntryFilters,
    TimeEntryPage,
    TimeEntryResponse,
    TimeEntryUpdate,
    TimerStartRequest,
    TimerStopRequest,
    TimerUpdateRequest,
)
from time_tracking.services import (
    approval_service,
    entry_lock_service,
    time_entries_service,
    timer_service,
)

router = APIRouter(
    prefix="/time-tracking/entries",
    tags=["Time Entries"],
)


def _to_response(entry: TimeEntry) -> TimeEntryResponse:
    return TimeEntryResponse.model_validate(entry)


# Literal paths (timer/*, bulk-*) are registered before /{entry_id}.

@router.post("/timer/start", response_model=TimeEntryResponse, status_code=201)
def start_timer(payload: TimerStartRequest, actor: Actor = Depends(require_actor)):
    return _to_response(timer_service.start_timer(payload, actor))


@router.post("/timer/stop", response_model=TimeEntryResponse)
def stop_timer(payload: Optional[TimerStopRequest] = None, actor: Actor = Depends(require_actor)):
    return _to_response(timer_service.stop_timer(payload or TimerStopRequest(), actor))


@router.get("/timer/active", response_model=Optional[TimeEntryResponse])
def get_active_timer(actor: Actor = Depends(require_actor)):
    entry = timer_service.get_active_timer(actor)
    if entry is None:
        return None
    return _to_response(entry)


@router.patch("/timer/active", response_model=TimeEntryResponse)
def update_timer(payload: TimerUpdateRequest, actor: Actor = Depends(require_actor)):
    return _to_response(timer_service.update_timer(payload, actor))


@router.delete("/timer/discard", status_code=204)
def discard_timer(actor: Actor = Depends(require_actor)):
    timer_service.discard_timer(actor)
    return Response(status_code=204)


@router.post("/bulk-approve", response_model=BulkApproveResult)
def bulk_approve(payload: BulkApproveRequest, actor: Actor = Depends(require_actor)):
    result = approval_service.bulk_approve(payload.entry_ids, actor)
    return BulkApproveResult(approved=result.approved, not_found=result.not_found)


@router.post("/bulk-reject", response_model=BulkRejectResult)
def bulk_reject(payload: BulkRejectRequest, actor: Actor = Depends(require_actor)):
    result = approval_service.bulk_reject(payload.entry_ids, payload.rejection_note, actor)
    return BulkRejectResult(rejected=result.rejected, not_found=result.not_found)


@router.get("", response_model=TimeEntryPage)
def list_time_entries(
    actor: Actor = Depends(require_actor),
    search: Optional[str] = Query(default=None, max_length=100),
    status: Optional[TimeEntryStatus] = None,
    statuses: Optional[List[TimeEntryStatus]] = Query(default=None),
    user_id: Optional[str] = None,
    client_id: Optional[str] = None,
    task_id: Optional[str] = None,
    is_billable: Optional[bool] = None,
    start_date_from: Optional[datetime] = None,
    start_date_to: Optional[datetime] = None,
    is_active: bool = True,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    filters = TimeEntryFilters(
        search=search,
        status=status,
        statuses=statuses,
        user_id=user_id,
        client_id=client_id,
        task_id=task_id,
        is_billable=is_billable,
        start_date_from=start_date_from,
        start_date_to=start_date_to,
        is_active=is_active,
        page=page,
        limit=limit,
    )
    result = time_entries_service.find_all(actor, filters)
    return TimeEntryPage(
        items=[_to_response(e) for e in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.post("", response_model=TimeEntryResponse, status_code=201)
def create_time_entry(payload: TimeEntryCreate, actor: Actor = Depends(require_actor)):
    return _to_response(time_entries_service.create(payload, actor))


@router.get("/{entry_id}", response_model=TimeEntryResponse)
def get_time_entry(entry_id: str, actor: Actor = Depends(require_actor)):
    return _to_response(time_entries_service.find_one(entry_id, actor))


@router.patch("/{entry_id}", response_model=TimeEntryResponse)
def update_time_entry(entry_id: str, payload: TimeEntryUpdate, actor: Actor = Depends(require_actor)):
    return _to_response(time_entries_service.update(entry_id, payload, actor))


@router.delete("/{entry_id}", status_code=204)
def delete_time_entry(entry_id: str, actor: Actor = Depends(require_actor)):
    time_entries_service.remove(entry_id, actor)
    return Response(status_code=204)


@router.post("/{entry_id}/submit", response_model=TimeEntryResponse)
def submit_time_entry(entry_id: str, actor: Actor = Depends(require_actor)):
    return _to_response(approval_service.submit(entry_id, actor))


@router.post("/{entry_id}/approve", response_model=TimeEntryResponse)
def approve_time_entry(entry_id: str, actor: Actor = Depends(require_actor)):
    return _to_response(approval_service.approve(entry_id, actor))


@router.post("/{entry_id}/reject", response_model=TimeEntryResponse)
def reject_time_entry(entry_id: str, payload: RejectRequest, actor: Actor = Depends(require_actor)):
    return _to_response(approval_service.reject(entry_id, payload.rejection_note, actor))


@router.post("/{entry_id}/lock", response_model=TimeEntryResponse)
def lock_time_entry(
    entry_id: str,
    payload: Optional[LockRequest] = None,
    actor: Actor = Depends(require_actor),
):
    reason = payload.reason if payload is not None else None
    return _to_response(entry_lock_service.lock(entry_id, actor, reason))


@router.post("/{entry_id}/unlock", response_model=TimeEntryResponse)
def unlock_time_entry(
    entry_id: str,
    payload: Optional[LockRequest] = None,
    actor: Actor = Depends(require_actor),
):
    reason = payload.reason if payload is not None else None
    return _to_response(entry_lock_service.unlock(entry_id, actor, reason))
