"""Session lifecycle: attendance, cancellation, notes and removal.

Every status change is validated with ``ensure_transition`` before anything
is written, so a rejected request leaves the session, the student counters
and the credit ledger untouched.
"""

from __future__ import annotations

from datetime import timedelta
import logging

from sqlalchemy.orm import Session

from tutoring.config import settings
from tutoring.core.errors import CancellationWindowClosed, InvalidStateTransition, SubjectNotFound
from tutoring.core.session_states import (
    CANCELLED_STATUS_BY_ACTOR,
    CREDIT_GRANTING_ATTENDANCE,
    OPEN_STATUS_VALUES,
    Attendance,
    CancelledBy,
    SessionStatus,
    ensure_transition,
    is_open,
)
from tutoring.core.time_normalizer import TimeNormalizer, get_time_normalizer
from tutoring.core.time_provider import TimeProvider, default_time_provider
from tutoring.db import transaction
from tutoring.metrics import timed_service
from tutoring.models import Group, GroupEnrollment, GroupSession, PrivateSession, Student, TutoringSession
from tutoring.services import makeup_credit_service
from tutoring.services.notification_service import build_cancellation_message, dispatch, recipient_for_student
from tutoring.services.session_store import require_group, require_session, require_student, session_start_utc


logger = logging.getLogger(__name__)

ABSENCE_ATTENDANCE = (Attendance.ABSENT, Attendance.EXCUSED, Attendance.UNEXCUSED)


def _require_private(row: TutoringSession) -> PrivateSession:
    if not isinstance(row, PrivateSession):
        raise InvalidStateTransition(
            'Group sessions are marked through group attendance',
            session_id=row.id,
        )
    return row


def _require_group_session(row: TutoringSession) -> GroupSession:
    if not isinstance(row, GroupSession):
        raise InvalidStateTransition('Not a group session', session_id=row.id)
    return row


def _ensure_cancellation_lead(row: TutoringSession, time_provider: TimeProvider) -> None:
    lead = session_start_utc(row) - time_provider.utc_naive_now()
    minimum = timedelta(hours=settings.cancellation_min_lead_hours)
    if lead < minimum:
        raise CancellationWindowClosed(
            f'Cancellation must be made at least {settings.cancellation_min_lead_hours} hours before the class',
            session_id=row.id,
            lead_minutes=int(lead.total_seconds() // 60),
        )


@timed_service('mark_present')
def mark_present(db: Session, session_id: int) -> PrivateSession:
    with transaction(db, label='mark_present'):
        row = _require_private(require_session(db, session_id, for_update=True))
        target = ensure_transition(row.status, SessionStatus.COMPLETED, session_id=row.id)
        student = require_student(db, row.student_id, for_update=True)
        student.completed_sessions = int(student.completed_sessions or 0) + 1
        if not row.is_makeup:
            student.remaining_sessions = max(0, int(student.remaining_sessions or 0) - 1)
        row.attendance = Attendance.PRESENT.value
        row.status = target.value
    logger.info('session_marked_present session_id=%s student_id=%s makeup=%s', row.id, row.student_id, row.is_makeup)
    return row


@timed_service('mark_absent')
def mark_absent(
    db: Session,
    session_id: int,
    *,
    attendance: str | Attendance = Attendance.ABSENT,
    reason: str = '',
    time_provider: TimeProvider = default_time_provider,
) -> PrivateSession:
    marked = Attendance(attendance)
    if marked not in ABSENCE_ATTENDANCE:
        raise ValueError(f'Not an absence: {marked.value}')

    with transaction(db, label='mark_absent'):
        row = _require_private(require_session(db, session_id, for_update=True))
        target = ensure_transition(row.status, SessionStatus.MISSED, session_id=row.id)
        row.attendance = marked.value
        row.status = target.value
        if reason:
            row.teacher_notes = '\n'.join(part for part in (row.teacher_notes, reason) if part)
        if marked in CREDIT_GRANTING_ATTENDANCE:
            makeup_credit_service.grant(
                db,
                row.student_id,
                row.id,
                f'{marked.value} on {row.session_date.isoformat()}',
                notes=reason,
                time_provider=time_provider,
            )
    logger.info('session_marked_absent session_id=%s attendance=%s', row.id, marked.value)
    return row


def _notify_cancellation(
    db: Session,
    row: TutoringSession,
    targets: list[tuple[Student, Group | None]],
    *,
    cancelled_by: CancelledBy,
    reason: str,
    normalizer: TimeNormalizer,
) -> int:
    sent = 0
    for student, group in targets:
        recipient = recipient_for_student(student, group)
        try:
            message = build_cancellation_message(
                recipient,
                row,
                cancelled_by=cancelled_by.value,
                reason=reason,
                has_makeup_credit=True,
                normalizer=normalizer,
            )
            if dispatch(db, recipient, message, session_id=row.id):
                sent += 1
        except Exception:
            logger.exception('cancellation_notice_failed session_id=%s recipient=%s', row.id, recipient.address)
    return sent


@timed_service('cancel_session')
def cancel_session(
    db: Session,
    session_id: int,
    *,
    actor: str | CancelledBy,
    reason: str = '',
    time_provider: TimeProvider = default_time_provider,
    normalizer: TimeNormalizer | None = None,
    notify: bool = True,
) -> TutoringSession:
    cancelled_by = CancelledBy(actor)
    targets: list[tuple[Student, Group | None]] = []

    with transaction(db, label='cancel_session'):
        row = require_session(db, session_id, for_update=True)
        target = ensure_transition(row.status, CANCELLED_STATUS_BY_ACTOR[cancelled_by], session_id=row.id)
        credit_reason = f'Cancelled by {cancelled_by.value.lower()} on {row.session_date.isoformat()}'

        if isinstance(row, GroupSession):
            if cancelled_by is CancelledBy.PARENT:
                raise InvalidStateTransition(
                    'Parents withdraw a single participant from group sessions',
                    session_id=row.id,
                )
            for record in row.attendance_records:
                # Withdrawn participants already hold a credit for this session.
                if makeup_credit_service.has_credit_for_session(db, record.student_id, row.id):
                    continue
                makeup_credit_service.grant(
                    db, record.student_id, row.id, credit_reason, notes=reason, time_provider=time_provider
                )
                targets.append((record.student, row.group))
        else:
            if cancelled_by is CancelledBy.PARENT:
                _ensure_cancellation_lead(row, time_provider)
            student = require_student(db, row.student_id, for_update=True)
            makeup_credit_service.grant(db, student.id, row.id, credit_reason, notes=reason, time_provider=time_provider)
            if cancelled_by is CancelledBy.PARENT:
                student.remaining_sessions = int(student.remaining_sessions or 0) + 1
            targets.append((student, None))

        row.status = target.value
        row.cancelled_by = cancelled_by.value
        row.cancel_reason = reason or ''

    logger.info(
        'session_cancelled session_id=%s by=%s credits=%s',
        row.id,
        cancelled_by.value,
        len(targets),
    )
    if notify and targets:
        _notify_cancellation(
            db,
            row,
            targets,
            cancelled_by=cancelled_by,
            reason=reason,
            normalizer=normalizer or get_time_normalizer(),
        )
    return row


def cancel_group_participation(
    db: Session,
    session_id: int,
    student_id: int,
    *,
    reason: str = '',
    time_provider: TimeProvider = default_time_provider,
):
    """Withdraw one participant from an upcoming group session."""
    with transaction(db, label='cancel_group_participation'):
        row = _require_group_session(require_session(db, session_id, for_update=True))
        if not is_open(row.status):
            raise InvalidStateTransition(
                f'Cannot withdraw from a {row.status} session',
                session_id=row.id,
                current=row.status,
            )
        _ensure_cancellation_lead(row, time_provider)
        record = next((rec for rec in row.attendance_records if rec.student_id == student_id), None)
        if record is None:
            raise SubjectNotFound('Student is not a participant of this session', session_id=row.id, student_id=student_id)
        if record.attendance is not None:
            raise InvalidStateTransition(
                'Participation already recorded',
                session_id=row.id,
                student_id=student_id,
                current=record.attendance,
            )
        record.attendance = Attendance.EXCUSED.value
        record.marked_at = time_provider.utc_naive_now()
        student = require_student(db, student_id, for_update=True)
        if not makeup_credit_service.has_credit_for_session(db, student_id, row.id):
            makeup_credit_service.grant(
                db,
                student_id,
                row.id,
                f'Withdrawn by parent on {row.session_date.isoformat()}',
                notes=reason,
                time_provider=time_provider,
            )
        student.remaining_sessions = int(student.remaining_sessions or 0) + 1
    logger.info('group_participation_cancelled session_id=%s student_id=%s', session_id, student_id)
    return record


def update_teacher_notes(db: Session, session_id: int, notes: str) -> TutoringSession:
    with transaction(db, label='update_teacher_notes'):
        row = require_session(db, session_id, for_update=True)
        row.teacher_notes = notes or ''
    return row


def delete_session(db: Session, session_id: int, *, time_provider: TimeProvider = default_time_provider) -> None:
    """Remove a session that has not started; anything with history must be cancelled instead."""
    with transaction(db, label='delete_session'):
        row = require_session(db, session_id, for_update=True)
        if not is_open(row.status) or session_start_utc(row) <= time_provider.utc_naive_now():
            raise InvalidStateTransition(
                'Only open sessions that have not started can be deleted',
                session_id=row.id,
                current=row.status,
            )
        if row.is_makeup:
            raise InvalidStateTransition('Makeup sessions must be cancelled, not deleted', session_id=row.id)
        if makeup_credit_service.session_has_credits(db, row.id):
            raise InvalidStateTransition('Sessions that issued makeup credits must be cancelled, not deleted', session_id=row.id)
        db.delete(row)
    logger.info('session_deleted session_id=%s', session_id)


def delete_group(db: Session, group_id: int, *, time_provider: TimeProvider = default_time_provider) -> dict:
    """Retire a group.

    Open future sessions are removed, except those that already issued makeup
    credits: those are cancelled by the teacher so the credits keep their origin.
    """
    now_utc = time_provider.utc_naive_now()
    with transaction(db, label='delete_group'):
        group = require_group(db, group_id)
        group.is_active = False
        for link in db.query(GroupEnrollment).filter(GroupEnrollment.group_id == group.id).all():
            link.active = False
        open_rows = (
            db.query(GroupSession)
            .filter(GroupSession.group_id == group.id, GroupSession.status.in_(OPEN_STATUS_VALUES))
            .all()
        )
        removed, cancelled = [], []
        for row in open_rows:
            if session_start_utc(row) <= now_utc:
                continue
            if makeup_credit_service.session_has_credits(db, row.id):
                ensure_transition(row.status, SessionStatus.CANCELLED_BY_TEACHER, session_id=row.id)
                row.status = SessionStatus.CANCELLED_BY_TEACHER.value
                row.cancelled_by = CancelledBy.TEACHER.value
                row.cancel_reason = 'Group retired'
                cancelled.append(row)
            else:
                db.delete(row)
                removed.append(row)
    logger.info(
        'group_deleted group_id=%s removed_sessions=%s cancelled_sessions=%s',
        group_id,
        len(removed),
        len(cancelled),
    )
    return {'group_id': group_id, 'removed_sessions': len(removed), 'cancelled_sessions': len(cancelled)}
