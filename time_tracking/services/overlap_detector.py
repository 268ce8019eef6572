from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from time_tracking.core.exceptions import TimeEntryOverlap
from time_tracking.services import time_entry_repository as repo
from time_tracking.services.time_calculation import to_utc

# Stand-in end for open ranges (running timers). Comparison only, never stored.
FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def ranges_overlap(
    start1: datetime,
    end1: Optional[datetime],
    start2: datetime,
    end2: Optional[datetime],
) -> bool:
    """Half-open [start, end) intersection; touching ranges do not overlap."""
    e1 = FAR_FUTURE if end1 is None else to_utc(end1)
    e2 = FAR_FUTURE if end2 is None else to_utc(end2)
    return to_utc(start1) < e2 and to_utc(start2) < e1


def ensure_no_overlap(
    db: Session,
    company_id: int,
    user_id: str,
    start_time: datetime,
    end_time: Optional[datetime],
    exclude_entry_id: Optional[str] = None,
) -> None:
    """
    Must run inside the transaction that writes the entry. The timeline lock
    is held until that transaction ends, so a concurrent writer for the same
    user cannot read the candidate set before this one commits.
    """
    repo.lock_user_timeline(db, company_id, user_id)

    candidates = repo.find_overlap_candidates(
        db,
        company_id,
        user_id,
        to_utc(start_time),
        None if end_time is None else to_utc(end_time),
        exclude_entry_id=exclude_entry_id,
    )
    for other in candidates:
        if ranges_overlap(start_time, end_time, other.start_time, other.end_time):
            raise TimeEntryOverlap(other.id)
