from __future__ import annotations

from datetime import date, time
import logging

from sqlalchemy.orm import Session

from tutoring.config import settings
from tutoring.core.errors import InsufficientSessionBalance, InvalidTimeInput, SubjectNotFound
from tutoring.core.session_states import SessionStatus
from tutoring.core.time_normalizer import TimeNormalizer, get_time_normalizer
from tutoring.core.time_provider import TimeProvider, default_time_provider
from tutoring.db import transaction
from tutoring.metrics import timed_service
from tutoring.models import GroupAttendanceRecord, GroupSession, PrivateSession, Student, TutoringSession
from tutoring.services import makeup_credit_service
from tutoring.services.notification_service import Recipient, build_schedule_message, dispatch, recipient_for_student
from tutoring.services.session_store import (
    list_active_students_for_group,
    next_session_number,
    require_group,
    require_student,
)


logger = logging.getLogger(__name__)


def normalize_slots(normalizer: TimeNormalizer, slots: list[dict]) -> list[tuple[date, time]]:
    """Convert every canonical-zone slot to UTC, rejecting the batch on the first bad one."""
    if not slots:
        raise InvalidTimeInput('At least one session slot is required')
    converted = []
    for index, slot in enumerate(slots):
        try:
            converted.append(normalizer.to_canonical(slot.get('date'), slot.get('time')))
        except InvalidTimeInput as exc:
            raise InvalidTimeInput(f'Slot {index + 1}: {exc}', slot_index=index) from exc
    return converted


def _require_active_student(db: Session, student_id: int) -> Student:
    student = require_student(db, student_id, for_update=True)
    if not student.is_active:
        raise SubjectNotFound('Student is not active', student_id=student_id)
    return student


def _send_confirmations(
    db: Session,
    targets: list[tuple[Recipient, str]],
    sessions: list[TutoringSession],
    normalizer: TimeNormalizer,
) -> int:
    sent = 0
    for recipient, label in targets:
        try:
            message = build_schedule_message(recipient, sessions, subject_label=label, normalizer=normalizer)
            if dispatch(db, recipient, message):
                sent += 1
        except Exception:
            logger.exception(
                'schedule_confirmation_failed student_id=%s recipient=%s',
                recipient.student_id,
                recipient.address,
            )
    return sent


@timed_service('schedule_private_sessions')
def schedule_private_sessions(
    db: Session,
    student_id: int,
    slots: list[dict],
    *,
    normalizer: TimeNormalizer | None = None,
    notify: bool = True,
) -> list[PrivateSession]:
    normalizer = normalizer or get_time_normalizer()
    canonical_slots = normalize_slots(normalizer, slots)

    with transaction(db, label='schedule_private_sessions'):
        student = _require_active_student(db, student_id)
        if int(student.remaining_sessions or 0) < len(canonical_slots):
            raise InsufficientSessionBalance(
                'Not enough sessions remaining',
                student_id=student_id,
                remaining=int(student.remaining_sessions or 0),
                requested=len(canonical_slots),
            )
        first_number = next_session_number(db, student_id=student.id)
        created: list[PrivateSession] = []
        for offset, (session_date, session_time) in enumerate(canonical_slots):
            row = PrivateSession(
                student_id=student.id,
                session_number=first_number + offset,
                session_date=session_date,
                session_time=session_time,
                status=SessionStatus.PENDING.value,
                meeting_link=settings.default_meeting_link,
            )
            db.add(row)
            created.append(row)
        db.flush()

    logger.info('private_sessions_scheduled student_id=%s count=%s', student_id, len(created))
    if notify:
        _send_confirmations(db, [(recipient_for_student(student), student.name)], created, normalizer)
    return created


@timed_service('schedule_group_sessions')
def schedule_group_sessions(
    db: Session,
    group_id: int,
    slots: list[dict],
    *,
    normalizer: TimeNormalizer | None = None,
    notify: bool = True,
) -> list[GroupSession]:
    normalizer = normalizer or get_time_normalizer()
    canonical_slots = normalize_slots(normalizer, slots)

    with transaction(db, label='schedule_group_sessions'):
        group = require_group(db, group_id)
        if not group.is_active:
            raise SubjectNotFound('Group is not active', group_id=group_id)
        participants = list_active_students_for_group(db, group.id)
        first_number = next_session_number(db, group_id=group.id)
        created: list[GroupSession] = []
        for offset, (session_date, session_time) in enumerate(canonical_slots):
            row = GroupSession(
                group_id=group.id,
                session_number=first_number + offset,
                session_date=session_date,
                session_time=session_time,
                status=SessionStatus.PENDING.value,
                meeting_link=settings.default_meeting_link,
            )
            row.attendance_records = [GroupAttendanceRecord(student_id=student.id) for student in participants]
            db.add(row)
            created.append(row)
        db.flush()

    logger.info(
        'group_sessions_scheduled group_id=%s count=%s participants=%s',
        group_id,
        len(created),
        len(participants),
    )
    if notify:
        targets = [
            (recipient_for_student(student, group), f'{student.name} ({group.group_name})')
            for student in participants
        ]
        _send_confirmations(db, targets, created, normalizer)
    return created


def schedule_makeup_session(
    db: Session,
    credit_id: int,
    slot: dict,
    *,
    normalizer: TimeNormalizer | None = None,
    time_provider: TimeProvider = default_time_provider,
    notify: bool = True,
) -> PrivateSession:
    normalizer = normalizer or get_time_normalizer()
    ((session_date, session_time),) = normalize_slots(normalizer, [slot])

    with transaction(db, label='schedule_makeup_session'):
        credit = makeup_credit_service.redeem(db, credit_id, time_provider=time_provider)
        student = _require_active_student(db, credit.student_id)
        row = PrivateSession(
            student_id=student.id,
            session_number=next_session_number(db, student_id=student.id),
            session_date=session_date,
            session_time=session_time,
            status=SessionStatus.PENDING.value,
            meeting_link=settings.default_meeting_link,
            is_makeup=True,
        )
        db.add(row)
        db.flush()
        credit.used_for_session_id = row.id

    logger.info('makeup_session_scheduled credit_id=%s session_id=%s', credit_id, row.id)
    if notify:
        _send_confirmations(db, [(recipient_for_student(student), student.name)], [row], normalizer)
    return row

