from datetime import datetime, timezone
from decimal import Decimal

from time_tracking import database
from time_tracking.models import ChangeLog, TimeEntry

COMPANY_ID = 1
OTHER_COMPANY_ID = 2


def load_entry(entry_id: str) -> TimeEntry:
    db = database.SessionLocal()
    try:
        return db.query(TimeEntry).filter(TimeEntry.id == str(entry_id)).one()
    finally:
        db.close()


def change_logs_for(entity_id: str):
    db = database.SessionLocal()
    try:
        return (
            db.query(ChangeLog)
            .filter(ChangeLog.entity_id == str(entity_id))
            .order_by(ChangeLog.id.asc())
            .all()
        )
    finally:
        db.close()


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
