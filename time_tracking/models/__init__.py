from time_tracking.models.change_log import ChangeLog
from time_tracking.models.time_entry import TimeEntry, TimeEntryStatus
from time_tracking.models.time_settings import RoundingMethod, TimeSettings

__all__ = [
    "ChangeLog",
    "RoundingMethod",
    "TimeEntry",
    "TimeEntryStatus",
    "TimeSettings",
]
