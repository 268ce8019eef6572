"""
Domain errors for the time tracking core.

Every business failure resolves to exactly one ErrorKind. Callers branch on
``exc.kind``; the message is for humans only.
"""
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    ALREADY_RUNNING = "ALREADY_RUNNING"
    NOT_RUNNING = "NOT_RUNNING"
    OVERLAP = "OVERLAP"
    LOCKED = "LOCKED"
    INVALID_STATUS = "INVALID_STATUS"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    UNLOCK_NOT_AUTHORIZED = "UNLOCK_NOT_AUTHORIZED"
    VALIDATION_FAILED = "VALIDATION_FAILED"


class TimeTrackingError(Exception):
    """Base class for all expected, recoverable time tracking errors."""

    kind: ErrorKind

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ============ Timer ============

class TimerAlreadyRunning(TimeTrackingError):
    kind = ErrorKind.ALREADY_RUNNING

    def __init__(self):
        super().__init__("A timer is already running for this user")


class TimerNotRunning(TimeTrackingError):
    kind = ErrorKind.NOT_RUNNING

    def __init__(self):
        super().__init__("No running timer found for this user")


# ============ Entries ============

class TimeEntryNotFound(TimeTrackingError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Time entry {entry_id} not found", {"entry_id": entry_id})


class TimeEntryOverlap(TimeTrackingError):
    kind = ErrorKind.OVERLAP

    def __init__(self, conflicting_entry_id: Optional[str] = None):
        self.conflicting_entry_id = conflicting_entry_id
        details = {"conflicting_entry_id": conflicting_entry_id} if conflicting_entry_id else None
        super().__init__("Time entry overlaps with an existing entry", details)


class TimeEntryLocked(TimeTrackingError):
    kind = ErrorKind.LOCKED

    def __init__(self, entry_id: str, reason: str = "locked"):
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(
            f"Time entry {entry_id} is locked",
            {"entry_id": entry_id, "reason": reason},
        )


class InvalidStatusTransition(TimeTrackingError):
    kind = ErrorKind.INVALID_STATUS

    def __init__(self, current: str, attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Cannot change status from {current} to {attempted}",
            {"current": current, "attempted": attempted},
        )


# ============ Authorization / validation ============

class ForbiddenAction(TimeTrackingError):
    kind = ErrorKind.FORBIDDEN


class UnlockNotAuthorized(TimeTrackingError):
    kind = ErrorKind.UNLOCK_NOT_AUTHORIZED

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(
            f"Not authorized to unlock time entry {entry_id}",
            {"entry_id": entry_id},
        )


class ValidationFailed(TimeTrackingError):
    kind = ErrorKind.VALIDATION_FAILED
