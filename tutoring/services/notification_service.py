from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any

import httpx
from sqlalchemy.orm import Session

from tutoring.config import settings
from tutoring.core.time_normalizer import TimeNormalizer, get_time_normalizer
from tutoring.models import EmailLog, Group, Student, TutoringSession
from tutoring.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    student_id: int
    student_name: str
    name: str
    address: str
    timezone: str


@dataclass
class NotificationMessage:
    email_type: str
    subject: str
    body: str
    template: str
    context: dict[str, Any] = field(default_factory=dict)


class NotificationSender:
    def send(
        self,
        recipient_address: str,
        recipient_name: str,
        subject: str,
        body: str,
        *,
        email_type: str = '',
        session_id: int | None = None,
    ) -> bool:
        raise NotImplementedError

    def is_configured(self) -> bool:
        return True


class EmailApiSender(NotificationSender):
    """Transactional e-mail over HTTP (Brevo-compatible payload)."""

    def __init__(self, *, api_url: str, api_key: str, sender_address: str, sender_name: str, timeout: float) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.sender_address = sender_address
        self.sender_name = sender_name
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send(
        self,
        recipient_address: str,
        recipient_name: str,
        subject: str,
        body: str,
        *,
        email_type: str = '',
        session_id: int | None = None,
    ) -> bool:
        if not self.api_key:
            logger.warning('email_api_key_missing recipient=%s', recipient_address)
            return False
        payload = {
            'sender': {'name': self.sender_name, 'email': self.sender_address},
            'to': [{'email': recipient_address, 'name': recipient_name or recipient_address}],
            'subject': subject,
            'textContent': body,
        }
        try:
            response = httpx.post(
                self.api_url,
                json=payload,
                headers={'api-key': self.api_key},
                timeout=self.timeout,
            )
        except httpx.HTTPError:
            logger.exception('email_send_failed session_id=%s recipient=%s type=%s', session_id, recipient_address, email_type)
            return False
        if response.status_code >= 400:
            logger.warning('email_send_rejected recipient=%s status_code=%s', recipient_address, response.status_code)
            return False
        return True


def _default_sender() -> NotificationSender:
    return EmailApiSender(
        api_url=settings.email_api_url,
        api_key=settings.email_api_key,
        sender_address=settings.email_sender_address,
        sender_name=settings.academy_name,
        timeout=settings.notification_timeout_seconds,
    )


_sender: NotificationSender | None = None


def get_notification_sender() -> NotificationSender:
    global _sender
    if _sender is None:
        _sender = _default_sender()
    return _sender


def set_notification_sender(sender: NotificationSender | None) -> None:
    global _sender
    _sender = sender


def delivery_available() -> bool:
    """False when e-mail is switched off or the sender has no credentials."""
    return bool(settings.enable_email_notifications) and get_notification_sender().is_configured()


def recipient_for_student(student: Student, group: Group | None = None) -> Recipient:
    zone = (student.timezone or '').strip() or ((group.timezone or '').strip() if group else '')
    return Recipient(
        student_id=int(student.id),
        student_name=student.name,
        name=student.parent_name or student.name,
        address=(student.parent_email or '').strip(),
        timezone=zone,
    )


def _record_email_log(db: Session, log: EmailLog) -> None:
    try:
        db.add(log)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('email_log_write_failed recipient=%s', log.recipient_email)


def dispatch(
    db: Session,
    recipient: Recipient,
    message: NotificationMessage,
    *,
    session_id: int | None = None,
) -> bool:
    if not recipient.address:
        logger.info('notification_skipped_missing_address student_id=%s type=%s', recipient.student_id, message.email_type)
        _record_email_log(
            db,
            EmailLog(
                recipient_name=recipient.name,
                recipient_email='',
                email_type=message.email_type,
                subject=message.subject,
                status='Skipped',
                error='missing_address',
                session_id=session_id,
            ),
        )
        return False
    if not settings.enable_email_notifications:
        logger.info('notification_disabled recipient=%s type=%s', recipient.address, message.email_type)
        return False

    error = ''
    try:
        ok = bool(
            get_notification_sender().send(
                recipient.address,
                recipient.name,
                message.subject,
                message.body,
                email_type=message.email_type,
                session_id=session_id,
            )
        )
    except Exception as exc:
        ok = False
        error = str(exc)
        logger.exception(
            'notification_send_error session_id=%s recipient=%s type=%s',
            session_id,
            recipient.address,
            message.email_type,
        )
    record_observability_event(f'notification_{"sent" if ok else "failed"}:{message.email_type}')
    _record_email_log(
        db,
        EmailLog(
            recipient_name=recipient.name,
            recipient_email=recipient.address,
            email_type=message.email_type,
            subject=message.subject,
            status='Sent' if ok else 'Failed',
            error=error,
            session_id=session_id,
        ),
    )
    return ok


def _display(normalizer: TimeNormalizer, session: TutoringSession, recipient: Recipient) -> dict[str, str]:
    return normalizer.to_display(session.session_date, session.session_time, recipient.timezone).formatted()


def build_schedule_message(
    recipient: Recipient,
    sessions: list[TutoringSession],
    *,
    subject_label: str,
    normalizer: TimeNormalizer | None = None,
) -> NotificationMessage:
    normalizer = normalizer or get_time_normalizer()
    rows = []
    for session in sessions:
        shown = _display(normalizer, session, recipient)
        rows.append({'session_number': session.session_number, **shown})
    lines = [f'Hi {recipient.name}, here is the schedule for {subject_label}:']
    lines.extend(f"#{row['session_number']}  {row['day']} {row['date']}  {row['time']}" for row in rows)
    return NotificationMessage(
        email_type='Schedule',
        subject=f'Schedule for {subject_label}',
        body='\n'.join(lines),
        template='schedule',
        context={'parent_name': recipient.name, 'student_name': subject_label, 'schedule_rows': rows},
    )


def build_reminder_message(
    recipient: Recipient,
    session: TutoringSession,
    *,
    lead_label: str,
    normalizer: TimeNormalizer | None = None,
) -> NotificationMessage:
    normalizer = normalizer or get_time_normalizer()
    shown = _display(normalizer, session, recipient)
    meeting_link = session.meeting_link or settings.default_meeting_link
    body = (
        f"Hi {recipient.name}, {recipient.student_name}'s class #{session.session_number} starts in {lead_label}: "
        f"{shown['day']} {shown['date']} at {shown['time']}."
    )
    if meeting_link:
        body += f'\nJoin: {meeting_link}'
    return NotificationMessage(
        email_type=f'Reminder-{lead_label}',
        subject=f"Class reminder: {shown['date']} at {shown['time']}",
        body=body,
        template='reminder',
        context={
            'parent_name': recipient.name,
            'student_name': recipient.student_name,
            'session_number': session.session_number,
            'meeting_link': meeting_link,
            'lead': lead_label,
            **shown,
        },
    )


def build_cancellation_message(
    recipient: Recipient,
    session: TutoringSession,
    *,
    cancelled_by: str,
    reason: str,
    has_makeup_credit: bool,
    normalizer: TimeNormalizer | None = None,
) -> NotificationMessage:
    normalizer = normalizer or get_time_normalizer()
    shown = _display(normalizer, session, recipient)
    lines = [
        f"Dear {recipient.name}, {recipient.student_name}'s class on {shown['date']} at {shown['time']} has been cancelled.",
        f'Cancelled by: {cancelled_by}',
    ]
    if reason:
        lines.append(f'Reason: {reason}')
    if has_makeup_credit:
        lines.append('A makeup credit has been added to the account.')
    return NotificationMessage(
        email_type='Class-Cancelled',
        subject=f'Class cancelled: {shown["date"]}',
        body='\n'.join(lines),
        template='class_cancelled',
        context={
            'parent_name': recipient.name,
            'student_name': recipient.student_name,
            'session_date': shown['date'],
            'session_time': shown['time'],
            'cancelled_by': cancelled_by,
            'reason': reason,
            'has_makeup_credit': has_makeup_credit,
        },
    )
