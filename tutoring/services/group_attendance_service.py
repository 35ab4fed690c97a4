from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from tutoring.core.errors import InvalidStateTransition, SubjectNotFound
from tutoring.core.session_states import (
    CREDIT_GRANTING_ATTENDANCE,
    Attendance,
    SessionStatus,
    coerce_status,
    ensure_transition,
    is_open,
)
from tutoring.core.time_provider import TimeProvider, default_time_provider
from tutoring.db import transaction
from tutoring.metrics import timed_service
from tutoring.models import GroupAttendanceRecord, GroupSession
from tutoring.services import makeup_credit_service
from tutoring.services.session_store import require_session, require_student


logger = logging.getLogger(__name__)


def _require_group_session(db: Session, session_id: int, *, for_update: bool = False) -> GroupSession:
    row = require_session(db, session_id, for_update=for_update)
    if not isinstance(row, GroupSession):
        raise InvalidStateTransition('Not a group session', session_id=session_id)
    return row


def _parse_entries(entries: list[dict]) -> dict[int, Attendance]:
    parsed: dict[int, Attendance] = {}
    for item in entries:
        student_id = int(item['student_id'])
        if student_id in parsed:
            raise ValueError(f'Duplicate attendance entry for student {student_id}')
        parsed[student_id] = Attendance(item['attendance'])
    return parsed


@timed_service('mark_group_attendance')
def mark_group_attendance(
    db: Session,
    session_id: int,
    entries: list[dict],
    *,
    time_provider: TimeProvider = default_time_provider,
) -> dict:
    """Record one attendance pass for every participant of a group session.

    Counters move only for participants whose attendance actually changed, so
    a correction pass on a Completed session nets out against the first one.
    Credits are granted at most once per participant and session.
    """
    marks = _parse_entries(entries)
    summary = {'session_id': session_id, 'present': 0, 'absent': 0, 'changed': 0, 'credits_granted': 0}

    with transaction(db, label='mark_group_attendance'):
        row = _require_group_session(db, session_id, for_update=True)
        current = coerce_status(row.status)
        if current is SessionStatus.COMPLETED:
            target = None
        else:
            target = ensure_transition(current, SessionStatus.COMPLETED, session_id=row.id)

        records: dict[int, GroupAttendanceRecord] = {rec.student_id: rec for rec in row.attendance_records}
        unknown = sorted(set(marks) - set(records))
        if unknown:
            raise SubjectNotFound('Student is not a participant of this session', session_id=row.id, student_ids=unknown)
        missing = sorted(set(records) - set(marks))
        if missing:
            raise ValueError(f'Attendance missing for participants: {missing}')

        marked_at = time_provider.utc_naive_now()
        for student_id in sorted(records):
            record = records[student_id]
            new_mark = marks[student_id]
            summary['present' if new_mark is Attendance.PRESENT else 'absent'] += 1
            previous = Attendance(record.attendance) if record.attendance else None
            if previous is new_mark:
                continue

            student = require_student(db, student_id, for_update=True)
            if new_mark is Attendance.PRESENT and previous is not Attendance.PRESENT:
                student.completed_sessions = int(student.completed_sessions or 0) + 1
                student.remaining_sessions = max(0, int(student.remaining_sessions or 0) - 1)
            elif previous is Attendance.PRESENT:
                student.completed_sessions = max(0, int(student.completed_sessions or 0) - 1)
                student.remaining_sessions = int(student.remaining_sessions or 0) + 1

            if new_mark in CREDIT_GRANTING_ATTENDANCE and not makeup_credit_service.has_credit_for_session(
                db, student_id, row.id
            ):
                makeup_credit_service.grant(
                    db,
                    student_id,
                    row.id,
                    f'{new_mark.value} from group class on {row.session_date.isoformat()}',
                    time_provider=time_provider,
                )
                summary['credits_granted'] += 1

            record.attendance = new_mark.value
            record.marked_at = marked_at
            summary['changed'] += 1

        if target is not None:
            row.status = target.value

    logger.info(
        'group_attendance_marked session_id=%s present=%s absent=%s changed=%s credits=%s',
        session_id,
        summary['present'],
        summary['absent'],
        summary['changed'],
        summary['credits_granted'],
    )
    return summary


def get_group_attendance(db: Session, session_id: int) -> list[dict]:
    row = _require_group_session(db, session_id)
    return [
        {
            'student_id': record.student_id,
            'student_name': record.student.name if record.student else '',
            'attendance': record.attendance or 'Unmarked',
            'homework_grade': record.homework_grade,
            'homework_comments': record.homework_comments or '',
        }
        for record in row.attendance_records
    ]


def grade_homework(
    db: Session,
    session_id: int,
    student_id: int,
    grade: str,
    comments: str = '',
) -> GroupAttendanceRecord:
    with transaction(db, label='grade_homework'):
        row = _require_group_session(db, session_id)
        if is_open(row.status):
            raise InvalidStateTransition('Homework is graded after the class', session_id=row.id, current=row.status)
        record = next((rec for rec in row.attendance_records if rec.student_id == student_id), None)
        if record is None:
            raise SubjectNotFound('Student is not a participant of this session', session_id=row.id, student_id=student_id)
        record.homework_grade = grade
        record.homework_comments = comments or ''
    logger.info('homework_graded session_id=%s student_id=%s', session_id, student_id)
    return record
