from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from time_tracking.models.time_entry import TimeEntryStatus
from time_tracking.models.time_settings import RoundingMethod
from time_tracking.services.time_calculation import format_duration, format_duration_human


class TimerStartRequest(BaseModel):
    description: Optional[str] = Field(default=None, max_length=255)
    client_id: Optional[str] = None
    task_id: Optional[str] = None
    is_billable: Optional[bool] = None
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    tags: Optional[List[str]] = None


class TimerStopRequest(BaseModel):
    description: Optional[str] = Field(default=None, max_length=255)


class TimerUpdateRequest(BaseModel):
    """Only the fields explicitly sent are applied."""

    description: Optional[str] = Field(default=None, max_length=255)
    is_billable: Optional[bool] = None
    client_id: Optional[str] = None
    task_id: Optional[str] = None
    tags: Optional[List[str]] = None


class TimeEntryCreate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=255)
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    is_billable: Optional[bool] = None
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    tags: Optional[List[str]] = None
    client_id: Optional[str] = None
    task_id: Optional[str] = None


class TimeEntryUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=255)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    is_billable: Optional[bool] = None
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    tags: Optional[List[str]] = None
    client_id: Optional[str] = None
    task_id: Optional[str] = None


class TimeEntryFilters(BaseModel):
    search: Optional[str] = Field(default=None, max_length=100)
    status: Optional[TimeEntryStatus] = None
    statuses: Optional[List[TimeEntryStatus]] = None
    user_id: Optional[str] = None
    client_id: Optional[str] = None
    task_id: Optional[str] = None
    is_billable: Optional[bool] = None
    start_date_from: Optional[datetime] = None
    start_date_to: Optional[datetime] = None
    is_active: bool = True
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class RejectRequest(BaseModel):
    rejection_note: str = Field(max_length=500)


class BulkApproveRequest(BaseModel):
    entry_ids: List[str]


class BulkRejectRequest(BaseModel):
    entry_ids: List[str]
    rejection_note: str = Field(max_length=500)


class LockRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class TimeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_id: int
    user_id: str
    created_by_id: str
    description: Optional[str]
    start_time: datetime
    end_time: Optional[datetime]
    duration_minutes: Optional[int]
    is_running: bool
    client_id: Optional[str]
    task_id: Optional[str]
    tags: Optional[List[str]]
    is_billable: bool
    hourly_rate: Optional[Decimal]
    total_amount: Optional[Decimal]
    currency: str
    status: TimeEntryStatus
    submitted_at: Optional[datetime]
    approved_by_id: Optional[str]
    approved_at: Optional[datetime]
    rejection_note: Optional[str]
    rejected_by_id: Optional[str]
    rejected_at: Optional[datetime]
    is_locked: bool
    locked_at: Optional[datetime]
    locked_by_id: Optional[str]
    is_active: bool

    @computed_field
    @property
    def duration_formatted(self) -> Optional[str]:
        """Clock style, e.g. "01:30"."""
        if self.duration_minutes is None:
            return None
        return format_duration(self.duration_minutes)

    @computed_field
    @property
    def duration_human(self) -> Optional[str]:
        if self.duration_minutes is None:
            return None
        return format_duration_human(self.duration_minutes)


class TimeEntryPage(BaseModel):
    items: List[TimeEntryResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class BulkApproveResult(BaseModel):
    approved: int
    not_found: int


class BulkRejectResult(BaseModel):
    rejected: int
    not_found: int


class TimeSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_id: int
    rounding_method: RoundingMethod
    rounding_interval_minutes: int
    allow_overlapping_entries: bool
    lock_entries_after_days: int
    default_hourly_rate: Optional[Decimal]
    default_currency: str


class TimeSettingsUpdate(BaseModel):
    rounding_method: Optional[RoundingMethod] = None
    rounding_interval_minutes: Optional[int] = Field(default=None, ge=0, le=480)
    allow_overlapping_entries: Optional[bool] = None
    lock_entries_after_days: Optional[int] = Field(default=None, ge=0)
    default_hourly_rate: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    default_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
