from __future__ import annotations

from tutoring.core.time_normalizer import TimeNormalizer, get_time_normalizer
from tutoring.models import MakeupCredit, TutoringSession


def serialize_session(row: TutoringSession, normalizer: TimeNormalizer | None = None) -> dict:
    normalizer = normalizer or get_time_normalizer()
    return {
        'id': row.id,
        'session_type': row.session_type,
        'student_id': row.student_id,
        'group_id': row.group_id,
        'session_number': row.session_number,
        'session_date': row.session_date,
        'session_time': row.session_time.strftime('%H:%M'),
        'duration_minutes': row.duration_minutes,
        'status': row.status,
        'attendance': row.attendance,
        'cancelled_by': row.cancelled_by,
        'is_makeup': bool(row.is_makeup),
        'meeting_link': row.meeting_link or '',
        'teacher_notes': row.teacher_notes or '',
        'display': normalizer.to_canonical_display(row.session_date, row.session_time).formatted(),
    }


def serialize_credit(row: MakeupCredit) -> dict:
    return {
        'id': row.id,
        'student_id': row.student_id,
        'original_session_id': row.original_session_id,
        'reason': row.reason or '',
        'credit_date': row.credit_date,
        'status': row.status,
        'used_date': row.used_date,
        'used_for_session_id': row.used_for_session_id,
        'notes': row.notes or '',
        'created_at': row.created_at,
    }
