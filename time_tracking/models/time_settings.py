from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, func

from time_tracking.database import Base


class RoundingMethod(str, Enum):
    NONE = "NONE"
    UP = "UP"
    DOWN = "DOWN"
    NEAREST = "NEAREST"


DEFAULT_ROUNDING_INTERVAL_MINUTES = 15


class TimeSettings(Base):
    __tablename__ = "time_settings"

    id = Column(Integer, primary_key=True)

    company_id = Column(Integer, nullable=False, unique=True, index=True)

    rounding_method = Column(String, nullable=False, default=RoundingMethod.NONE.value)
    rounding_interval_minutes = Column(
        Integer, nullable=False, default=DEFAULT_ROUNDING_INTERVAL_MINUTES
    )
    allow_overlapping_entries = Column(Boolean, nullable=False, default=True)
    lock_entries_after_days = Column(Integer, nullable=False, default=0)
    default_hourly_rate = Column(Numeric(10, 2), nullable=True)
    default_currency = Column(String(3), nullable=False, default="PLN")

    updated_by_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
