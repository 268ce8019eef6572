import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from time_tracking.core.authorization import Actor
from time_tracking.database import unit_of_work
from time_tracking.models.change_log import ChangeLog
from time_tracking.models.time_entry import TimeEntry

logger = logging.getLogger(__name__)

TIME_ENTRY = "TimeEntry"

_SNAPSHOT_FIELDS = (
    "description",
    "start_time",
    "end_time",
    "duration_minutes",
    "is_billable",
    "hourly_rate",
    "total_amount",
    "status",
    "user_id",
    "client_id",
    "task_id",
    "is_running",
    "is_locked",
    "is_active",
)


def _json_value(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def entry_snapshot(entry: TimeEntry) -> dict:
    return {field: _json_value(getattr(entry, field)) for field in _SNAPSHOT_FIELDS}


class AuditSink:
    """Fire-and-forget change recorder. The default discards everything."""

    def log_create(self, entity_type: str, entity_id: str, after: dict, actor: Actor, *, db: Optional[Session] = None) -> None:
        pass

    def log_update(self, entity_type: str, entity_id: str, before: dict, after: dict, actor: Actor, *, db: Optional[Session] = None) -> None:
        pass

    def log_delete(self, entity_type: str, entity_id: str, before: dict, actor: Actor, *, db: Optional[Session] = None) -> None:
        pass


class ChangeLogAuditSink(AuditSink):
    """
    Writes change_logs rows.

    Called after the business transaction has committed, in a session of its
    own. A failure here is logged and dropped; it must never undo or fail the
    operation being audited. When the caller owns the transaction (db given),
    the row joins that transaction instead.
    """

    def _write(self, action: str, entity_type: str, entity_id: str, changes: dict, actor: Actor, db: Optional[Session]) -> None:
        row = ChangeLog(
            company_id=int(actor.company_id),
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            changes=changes,
            changed_by_id=str(actor.user_id),
        )
        try:
            if db is not None:
                with db.begin_nested():
                    db.add(row)
                return
            with unit_of_work() as session:
                session.add(row)
        except Exception:
            logger.exception(
                "Audit write failed",
                extra={
                    "entity_type": entity_type,
                    "entry_id": str(entity_id),
                    "action": action,
                    "company_id": actor.company_id,
                },
            )

    def log_create(self, entity_type, entity_id, after, actor, *, db=None):
        self._write("CREATE", entity_type, entity_id, {"after": after}, actor, db)

    def log_update(self, entity_type, entity_id, before, after, actor, *, db=None):
        changed = {k: {"old": before.get(k), "new": v} for k, v in after.items() if before.get(k) != v}
        self._write("UPDATE", entity_type, entity_id, {"before": before, "after": after, "changed": changed}, actor, db)

    def log_delete(self, entity_type, entity_id, before, actor, *, db=None):
        self._write("DELETE", entity_type, entity_id, {"before": before}, actor, db)
