from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text, func, text
from sqlalchemy.schema import CheckConstraint, Index

from time_tracking.database import Base

RUNNING_TIMER_INDEX = "uq_time_entries_one_running_per_user"


class TimeEntryStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))

    company_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    created_by_id = Column(String, nullable=False)

    description = Column(String(255), nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    is_running = Column(Boolean, nullable=False, default=False)

    client_id = Column(String, nullable=True, index=True)
    task_id = Column(String, nullable=True, index=True)
    tags = Column(JSON, nullable=True)

    is_billable = Column(Boolean, nullable=False, default=True)
    hourly_rate = Column(Numeric(10, 2), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="PLN")

    status = Column(String, nullable=False, default=TimeEntryStatus.DRAFT.value, index=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_id = Column(String, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_note = Column(Text, nullable=True)
    rejected_by_id = Column(String, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    locked_by_id = Column(String, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index(
            RUNNING_TIMER_INDEX,
            "user_id",
            "company_id",
            unique=True,
            postgresql_where=text("is_running AND is_active"),
            sqlite_where=text("is_running AND is_active"),
        ),
        Index("ix_time_entries_company_user_start", "company_id", "user_id", "start_time"),
        CheckConstraint(
            "duration_minutes IS NULL OR duration_minutes >= 0",
            name="ck_time_entries_duration_nonnegative",
        ),
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED')",
            name="ck_time_entries_status",
        ),
    )
