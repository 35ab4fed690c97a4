"""Day-ahead and hour-ahead reminder passes.

Each session carries one marker column per threshold. A pass claims the
marker with a conditional UPDATE before sending, so two overlapping passes
can never both notify the same session. When every attempted send failed the
claim is released and a later pass retries. Sessions with nobody to contact,
or passes run with delivery switched off, keep the marker.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging

from sqlalchemy.orm import Session

from tutoring.core.session_states import ReminderThreshold
from tutoring.core.time_normalizer import TimeNormalizer, get_time_normalizer
from tutoring.core.time_provider import TimeProvider, default_time_provider
from tutoring.models import GroupSession, TutoringSession
from tutoring.services.notification_service import (
    Recipient,
    build_reminder_message,
    delivery_available,
    dispatch,
    recipient_for_student,
)
from tutoring.services.observability_counters import record_observability_event
from tutoring.services.session_store import claim_reminder, list_open_sessions_in_window, release_reminder


logger = logging.getLogger(__name__)

HOUR_AHEAD_WINDOW = timedelta(hours=1)


def _naive_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value.tzinfo is not None else value


def reminder_recipients(row: TutoringSession) -> list[Recipient]:
    if isinstance(row, GroupSession):
        return [
            recipient_for_student(record.student, row.group)
            for record in row.attendance_records
            # Withdrawn participants already carry an attendance mark.
            if record.attendance is None and record.student is not None and record.student.is_active
        ]
    if row.student is None or not row.student.is_active:
        return []
    return [recipient_for_student(row.student)]


def _remind_session(
    db: Session,
    row: TutoringSession,
    threshold: ReminderThreshold,
    normalizer: TimeNormalizer,
) -> str:
    recipients = reminder_recipients(row)
    if not recipients:
        logger.info('reminder_no_recipients session_id=%s threshold=%s', row.id, threshold.value)
        return 'skipped'
    if not delivery_available():
        logger.info('reminder_delivery_unavailable session_id=%s threshold=%s', row.id, threshold.value)
        return 'skipped'

    reachable = [recipient for recipient in recipients if recipient.address]
    delivered = 0
    for recipient in recipients:
        try:
            message = build_reminder_message(recipient, row, lead_label=threshold.value, normalizer=normalizer)
            if dispatch(db, recipient, message, session_id=row.id):
                delivered += 1
        except Exception:
            db.rollback()
            logger.exception(
                'reminder_dispatch_failed session_id=%s recipient=%s threshold=%s',
                row.id,
                recipient.address,
                threshold.value,
            )
    if delivered:
        return 'sent'
    if not reachable:
        # Nothing was attempted; keep the marker.
        logger.info('reminder_no_address session_id=%s threshold=%s', row.id, threshold.value)
        return 'skipped'
    release_reminder(db, row.id, threshold)
    logger.warning('reminder_claim_released session_id=%s threshold=%s', row.id, threshold.value)
    return 'failed'


def _run_pass(
    db: Session,
    rows: list[TutoringSession],
    threshold: ReminderThreshold,
    *,
    claimed_at: datetime,
    normalizer: TimeNormalizer,
) -> dict:
    summary = {'threshold': threshold.value, 'selected': len(rows), 'sent': 0, 'skipped': 0, 'failed': 0}
    session_ids = [row.id for row in rows]
    for session_id in session_ids:
        try:
            if not claim_reminder(db, session_id, threshold, claimed_at):
                # Already notified by an overlapping pass, or no longer open.
                summary['skipped'] += 1
                continue
            row = db.get(TutoringSession, session_id)
            outcome = _remind_session(db, row, threshold, normalizer)
        except Exception:
            db.rollback()
            logger.exception('reminder_session_failed session_id=%s threshold=%s', session_id, threshold.value)
            try:
                release_reminder(db, session_id, threshold)
            except Exception:
                db.rollback()
                logger.exception('reminder_release_failed session_id=%s threshold=%s', session_id, threshold.value)
            outcome = 'failed'
        summary[outcome] += 1

    record_observability_event(f'reminder_pass:{threshold.value}')
    logger.info(
        'reminder_pass_done threshold=%s selected=%s sent=%s skipped=%s failed=%s',
        threshold.value,
        summary['selected'],
        summary['sent'],
        summary['skipped'],
        summary['failed'],
    )
    return summary


def run_day_ahead_pass(
    db: Session,
    *,
    time_provider: TimeProvider = default_time_provider,
    normalizer: TimeNormalizer | None = None,
) -> dict:
    """Remind every open session starting on the canonical calendar day after today."""
    normalizer = normalizer or get_time_normalizer()
    tomorrow = time_provider.today() + timedelta(days=1)
    start, end = normalizer.canonical_day_bounds_utc(tomorrow)
    rows = list_open_sessions_in_window(
        db,
        _naive_utc(start),
        _naive_utc(end),
        unnotified=ReminderThreshold.DAY_AHEAD,
    )
    return _run_pass(
        db,
        rows,
        ReminderThreshold.DAY_AHEAD,
        claimed_at=time_provider.utc_naive_now(),
        normalizer=normalizer,
    )


def run_hour_ahead_pass(
    db: Session,
    *,
    time_provider: TimeProvider = default_time_provider,
    normalizer: TimeNormalizer | None = None,
) -> dict:
    """Remind every open session starting within the next hour."""
    normalizer = normalizer or get_time_normalizer()
    now_utc = time_provider.utc_naive_now()
    rows = list_open_sessions_in_window(
        db,
        now_utc,
        now_utc + HOUR_AHEAD_WINDOW,
        end_inclusive=True,
        unnotified=ReminderThreshold.HOUR_AHEAD,
    )
    return _run_pass(db, rows, ReminderThreshold.HOUR_AHEAD, claimed_at=now_utc, normalizer=normalizer)
