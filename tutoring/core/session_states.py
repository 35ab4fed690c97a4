from __future__ import annotations

from enum import Enum

from tutoring.core.errors import InvalidStateTransition


class SessionType(str, Enum):
    PRIVATE = 'Private'
    GROUP = 'Group'


class SessionStatus(str, Enum):
    PENDING = 'Pending'
    SCHEDULED = 'Scheduled'
    COMPLETED = 'Completed'
    MISSED = 'Missed'
    CANCELLED_BY_PARENT = 'Cancelled by Parent'
    CANCELLED_BY_TEACHER = 'Cancelled by Teacher'


class Attendance(str, Enum):
    PRESENT = 'Present'
    ABSENT = 'Absent'
    EXCUSED = 'Excused'
    UNEXCUSED = 'Unexcused'


class CancelledBy(str, Enum):
    PARENT = 'Parent'
    TEACHER = 'Teacher'


class CreditStatus(str, Enum):
    AVAILABLE = 'Available'
    USED = 'Used'


class ReminderThreshold(str, Enum):
    DAY_AHEAD = '24h'
    HOUR_AHEAD = '1h'


OPEN_STATUSES = (SessionStatus.PENDING, SessionStatus.SCHEDULED)
OPEN_STATUS_VALUES = tuple(status.value for status in OPEN_STATUSES)

# Absences that entitle the student to a makeup session.
CREDIT_GRANTING_ATTENDANCE = (Attendance.ABSENT, Attendance.EXCUSED)

CANCELLED_STATUS_BY_ACTOR = {
    CancelledBy.PARENT: SessionStatus.CANCELLED_BY_PARENT,
    CancelledBy.TEACHER: SessionStatus.CANCELLED_BY_TEACHER,
}

_ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset(
        {
            SessionStatus.SCHEDULED,
            SessionStatus.COMPLETED,
            SessionStatus.MISSED,
            SessionStatus.CANCELLED_BY_PARENT,
            SessionStatus.CANCELLED_BY_TEACHER,
        }
    ),
    SessionStatus.SCHEDULED: frozenset(
        {
            SessionStatus.COMPLETED,
            SessionStatus.MISSED,
            SessionStatus.CANCELLED_BY_PARENT,
            SessionStatus.CANCELLED_BY_TEACHER,
        }
    ),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.MISSED: frozenset(),
    SessionStatus.CANCELLED_BY_PARENT: frozenset(),
    SessionStatus.CANCELLED_BY_TEACHER: frozenset(),
}


def coerce_status(value: str | SessionStatus) -> SessionStatus:
    try:
        return SessionStatus(value)
    except ValueError as exc:
        raise InvalidStateTransition(f'Unknown session status: {value!r}') from exc


def is_open(status: str | SessionStatus) -> bool:
    return coerce_status(status) in OPEN_STATUSES


def ensure_transition(current: str | SessionStatus, target: str | SessionStatus, *, session_id: int | None = None) -> SessionStatus:
    """Validate ``current -> target`` and return the target status.

    Every status write in the package goes through this function.
    """
    current_status = coerce_status(current)
    target_status = coerce_status(target)
    if target_status not in _ALLOWED_TRANSITIONS[current_status]:
        raise InvalidStateTransition(
            f'Cannot move session from {current_status.value} to {target_status.value}',
            session_id=session_id,
            current=current_status.value,
            target=target_status.value,
        )
    return target_status
