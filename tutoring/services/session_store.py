from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import and_, func, or_, update
from sqlalchemy.orm import Session

from tutoring.core.errors import SessionNotFound, SubjectNotFound
from tutoring.core.session_states import OPEN_STATUS_VALUES, ReminderThreshold
from tutoring.models import Group, GroupEnrollment, PrivateSession, Student, TutoringSession


REMINDER_MARKER_COLUMNS = {
    ReminderThreshold.DAY_AHEAD: 'reminder_24h_sent_at',
    ReminderThreshold.HOUR_AHEAD: 'reminder_1h_sent_at',
}


def require_session(db: Session, session_id: int, *, for_update: bool = False) -> TutoringSession:
    query = db.query(TutoringSession).filter(TutoringSession.id == session_id)
    if for_update:
        query = query.with_for_update()
    row = query.first()
    if not row:
        raise SessionNotFound('Session not found', session_id=session_id)
    return row


def require_student(db: Session, student_id: int, *, for_update: bool = False) -> Student:
    query = db.query(Student).filter(Student.id == student_id)
    if for_update:
        query = query.with_for_update()
    row = query.first()
    if not row:
        raise SubjectNotFound('Student not found', student_id=student_id)
    return row


def require_group(db: Session, group_id: int) -> Group:
    row = db.query(Group).filter(Group.id == group_id).first()
    if not row:
        raise SubjectNotFound('Group not found', group_id=group_id)
    return row


def next_session_number(db: Session, *, student_id: int | None = None, group_id: int | None = None) -> int:
    query = db.query(func.count(TutoringSession.id))
    if student_id is not None:
        query = query.filter(TutoringSession.student_id == student_id)
    else:
        query = query.filter(TutoringSession.group_id == group_id)
    return int(query.scalar() or 0) + 1


def list_active_students_for_group(db: Session, group_id: int) -> list[Student]:
    return (
        db.query(Student)
        .join(GroupEnrollment, GroupEnrollment.student_id == Student.id)
        .filter(
            GroupEnrollment.group_id == group_id,
            GroupEnrollment.active.is_(True),
            Student.is_active.is_(True),
        )
        .distinct()
        .order_by(Student.id.asc())
        .all()
    )


def session_start_utc(row: TutoringSession) -> datetime:
    """Naive UTC start of the session, matching how timestamps are stored."""
    return datetime.combine(row.session_date, row.session_time)


def utc_window_filter(start: datetime, end: datetime, *, end_inclusive: bool = False):
    """Filter sessions whose naive-UTC (date, time) start lies in [start, end)."""
    clauses = []
    day = start.date()
    while day <= end.date():
        parts = [TutoringSession.session_date == day]
        if day == start.date():
            parts.append(TutoringSession.session_time >= start.time())
        if day == end.date():
            if end_inclusive:
                parts.append(TutoringSession.session_time <= end.time())
            else:
                parts.append(TutoringSession.session_time < end.time())
        clauses.append(and_(*parts))
        day += timedelta(days=1)
    return or_(*clauses)


def list_open_sessions_in_window(
    db: Session,
    start: datetime,
    end: datetime,
    *,
    end_inclusive: bool = False,
    unnotified: ReminderThreshold | None = None,
) -> list[TutoringSession]:
    query = db.query(TutoringSession).filter(
        utc_window_filter(start, end, end_inclusive=end_inclusive),
        TutoringSession.status.in_(OPEN_STATUS_VALUES),
    )
    if unnotified is not None:
        query = query.filter(getattr(TutoringSession, REMINDER_MARKER_COLUMNS[unnotified]).is_(None))
    return query.order_by(TutoringSession.session_date.asc(), TutoringSession.session_time.asc(), TutoringSession.id.asc()).all()


def claim_reminder(db: Session, session_id: int, threshold: ReminderThreshold, claimed_at: datetime) -> bool:
    """Atomically set the per-threshold marker if unset and the session is still open."""
    column = getattr(TutoringSession, REMINDER_MARKER_COLUMNS[threshold])
    result = db.execute(
        update(TutoringSession)
        .where(
            TutoringSession.id == session_id,
            column.is_(None),
            TutoringSession.status.in_(OPEN_STATUS_VALUES),
        )
        .values({column.key: claimed_at})
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def release_reminder(db: Session, session_id: int, threshold: ReminderThreshold) -> None:
    column = getattr(TutoringSession, REMINDER_MARKER_COLUMNS[threshold])
    db.execute(
        update(TutoringSession)
        .where(TutoringSession.id == session_id)
        .values({column.key: None})
        .execution_options(synchronize_session=False)
    )
    db.commit()


def list_student_sessions(db: Session, student_id: int) -> list[PrivateSession]:
    return (
        db.query(PrivateSession)
        .filter(PrivateSession.student_id == student_id)
        .order_by(PrivateSession.session_date.asc(), PrivateSession.session_time.asc())
        .all()
    )


def list_upcoming_sessions(db: Session, now_utc: datetime, limit: int = 10) -> list[TutoringSession]:
    return (
        db.query(TutoringSession)
        .filter(
            or_(
                TutoringSession.session_date > now_utc.date(),
                and_(TutoringSession.session_date == now_utc.date(), TutoringSession.session_time >= now_utc.time()),
            ),
            TutoringSession.status.in_(OPEN_STATUS_VALUES),
        )
        .order_by(TutoringSession.session_date.asc(), TutoringSession.session_time.asc(), TutoringSession.id.asc())
        .limit(limit)
        .all()
    )


def list_past_sessions(db: Session, today_utc: date, limit: int = 50) -> list[TutoringSession]:
    return (
        db.query(TutoringSession)
        .filter(TutoringSession.session_date <= today_utc)
        .order_by(TutoringSession.session_date.desc(), TutoringSession.session_time.desc(), TutoringSession.id.desc())
        .limit(limit)
        .all()
    )
