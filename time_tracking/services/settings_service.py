import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from time_tracking.core.cache import TTLCache
from time_tracking.core.config import get_settings_cache_ttl_seconds
from time_tracking.database import unit_of_work
from time_tracking.models.time_settings import (
    DEFAULT_ROUNDING_INTERVAL_MINUTES,
    RoundingMethod,
    TimeSettings,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "rounding_method",
    "rounding_interval_minutes",
    "allow_overlapping_entries",
    "lock_entries_after_days",
    "default_hourly_rate",
    "default_currency",
)


@dataclass(frozen=True)
class CompanyTimeSettings:
    company_id: int
    rounding_method: RoundingMethod = RoundingMethod.NONE
    rounding_interval_minutes: int = DEFAULT_ROUNDING_INTERVAL_MINUTES
    allow_overlapping_entries: bool = True
    lock_entries_after_days: int = 0
    default_hourly_rate: Optional[Decimal] = None
    default_currency: str = "PLN"


def _default_values(company_id: int) -> dict:
    defaults = CompanyTimeSettings(company_id=company_id)
    return {
        "company_id": company_id,
        "rounding_method": defaults.rounding_method.value,
        "rounding_interval_minutes": defaults.rounding_interval_minutes,
        "allow_overlapping_entries": defaults.allow_overlapping_entries,
        "lock_entries_after_days": defaults.lock_entries_after_days,
        "default_hourly_rate": defaults.default_hourly_rate,
        "default_currency": defaults.default_currency,
    }


def _snapshot(row: TimeSettings) -> CompanyTimeSettings:
    return CompanyTimeSettings(
        company_id=int(row.company_id),
        rounding_method=RoundingMethod(row.rounding_method),
        rounding_interval_minutes=int(row.rounding_interval_minutes),
        allow_overlapping_entries=bool(row.allow_overlapping_entries),
        lock_entries_after_days=int(row.lock_entries_after_days),
        default_hourly_rate=None if row.default_hourly_rate is None else Decimal(str(row.default_hourly_rate)),
        default_currency=row.default_currency,
    )


def _insert_defaults_ignoring_conflict(db: Session, company_id: int) -> None:
    """INSERT ... ON CONFLICT DO NOTHING, so concurrent first reads create one row."""
    values = _default_values(company_id)
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = postgresql.insert(TimeSettings).values(**values).on_conflict_do_nothing(
            index_elements=["company_id"]
        )
        db.execute(stmt)
        return

    if dialect == "sqlite":
        stmt = sqlite.insert(TimeSettings).values(**values).on_conflict_do_nothing(
            index_elements=["company_id"]
        )
        db.execute(stmt)
        return

    try:
        with db.begin_nested():
            db.add(TimeSettings(**values))
    except IntegrityError:
        logger.info("Time settings already created concurrently", extra={"company_id": company_id})


def _get_or_create_row(db: Session, company_id: int, *, for_update: bool = False) -> TimeSettings:
    q = db.query(TimeSettings).filter(TimeSettings.company_id == int(company_id))
    if for_update:
        q = q.with_for_update()
    row = q.first()
    if row is not None:
        return row

    _insert_defaults_ignoring_conflict(db, company_id)
    row = q.first()
    if row is None:
        raise RuntimeError(f"Failed to retrieve or create time settings for company {company_id}")

    logger.info("Ensured time settings exist", extra={"company_id": company_id})
    return row


class SettingsProvider:
    """Read access to the per-company settings the core depends on."""

    def get_settings(self, company_id: int, *, db: Optional[Session] = None) -> CompanyTimeSettings:
        return CompanyTimeSettings(company_id=int(company_id))


class DbSettingsProvider(SettingsProvider):
    """
    Database-backed settings with a per-company TTL cache.

    Updates made through this provider invalidate the company's cache entry
    before returning, and again once a caller-supplied session commits, so a
    read that re-cached the old row in between is dropped. Other processes
    are not notified and may serve the old values until their own entry
    expires.
    """

    def __init__(self, cache: Optional[TTLCache] = None):
        self.cache = cache if cache is not None else TTLCache(get_settings_cache_ttl_seconds())

    def get_settings(self, company_id: int, *, db: Optional[Session] = None) -> CompanyTimeSettings:
        company_id = int(company_id)

        cached = self.cache.get(company_id)
        if cached is not None:
            return cached

        with unit_of_work(db) as session:
            settings = _snapshot(_get_or_create_row(session, company_id))

        self.cache.set(company_id, settings)
        return settings

    def update_settings(
        self,
        company_id: int,
        changes: dict,
        *,
        updated_by_id: str,
        db: Optional[Session] = None,
    ) -> CompanyTimeSettings:
        company_id = int(company_id)
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")

        with unit_of_work(db) as session:
            row = _get_or_create_row(session, company_id, for_update=True)
            for field, value in changes.items():
                if field == "rounding_method" and value is not None:
                    value = RoundingMethod(value).value
                setattr(row, field, value)
            row.updated_by_id = str(updated_by_id)
            session.flush()
            settings = _snapshot(row)

        if db is not None:
            event.listen(db, "after_commit", lambda session: self.invalidate(company_id), once=True)
        self.invalidate(company_id)
        logger.info(
            "Updated time settings",
            extra={"company_id": company_id, "user_id": str(updated_by_id), "fields": sorted(changes)},
        )
        return settings

    def invalidate(self, company_id: int) -> None:
        self.cache.invalidate(int(company_id))

    def clear_cache(self) -> None:
        self.cache.clear()
