"""Makeup credit ledger.

A credit is a compensating entitlement to one extra session. Credits are
granted by absences and cancellations (or manually by an administrator) and
move from Available to Used exactly once. Rows are never deleted, so the
ledger doubles as the audit trail.

``grant`` and ``redeem`` only flush; the caller owns the transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from tutoring.core.errors import CreditAlreadyUsed, CreditNotFound
from tutoring.core.session_states import CreditStatus
from tutoring.core.time_provider import TimeProvider, default_time_provider
from tutoring.db import transaction
from tutoring.models import MakeupCredit
from tutoring.services.session_store import require_student


logger = logging.getLogger(__name__)


def grant(
    db: Session,
    student_id: int,
    origin_session_id: int | None,
    reason: str,
    *,
    notes: str = '',
    time_provider: TimeProvider = default_time_provider,
) -> MakeupCredit:
    row = MakeupCredit(
        student_id=student_id,
        original_session_id=origin_session_id,
        reason=reason or 'Makeup credit',
        credit_date=time_provider.today(),
        status=CreditStatus.AVAILABLE.value,
        notes=notes,
    )
    db.add(row)
    db.flush()
    logger.info(
        'makeup_credit_granted credit_id=%s student_id=%s session_id=%s',
        row.id,
        student_id,
        origin_session_id,
    )
    return row


def has_credit_for_session(db: Session, student_id: int, session_id: int) -> bool:
    return (
        db.query(MakeupCredit.id)
        .filter(MakeupCredit.student_id == student_id, MakeupCredit.original_session_id == session_id)
        .first()
        is not None
    )


def session_has_credits(db: Session, session_id: int) -> bool:
    return db.query(MakeupCredit.id).filter(MakeupCredit.original_session_id == session_id).first() is not None


def redeem(
    db: Session,
    credit_id: int,
    *,
    used_for_session_id: int | None = None,
    time_provider: TimeProvider = default_time_provider,
) -> MakeupCredit:
    row = db.query(MakeupCredit).filter(MakeupCredit.id == credit_id).with_for_update().first()
    if not row:
        raise CreditNotFound('Makeup credit not found', credit_id=credit_id)
    if row.status != CreditStatus.AVAILABLE.value:
        raise CreditAlreadyUsed('Makeup credit already used', credit_id=credit_id, used_date=str(row.used_date))
    row.status = CreditStatus.USED.value
    row.used_date = time_provider.today()
    if used_for_session_id is not None:
        row.used_for_session_id = used_for_session_id
    db.flush()
    logger.info('makeup_credit_redeemed credit_id=%s student_id=%s', row.id, row.student_id)
    return row


def grant_manual_credit(
    db: Session,
    student_id: int,
    reason: str,
    *,
    notes: str = '',
    time_provider: TimeProvider = default_time_provider,
) -> MakeupCredit:
    with transaction(db, label='grant_manual_credit'):
        require_student(db, student_id)
        row = grant(db, student_id, None, reason, notes=notes, time_provider=time_provider)
    db.refresh(row)
    return row


def redeem_credit(
    db: Session,
    credit_id: int,
    *,
    time_provider: TimeProvider = default_time_provider,
) -> MakeupCredit:
    with transaction(db, label='redeem_credit'):
        row = redeem(db, credit_id, time_provider=time_provider)
    db.refresh(row)
    return row


def list_available(db: Session, student_id: int) -> list[MakeupCredit]:
    return (
        db.query(MakeupCredit)
        .filter(MakeupCredit.student_id == student_id, MakeupCredit.status == CreditStatus.AVAILABLE.value)
        .order_by(MakeupCredit.credit_date.desc(), MakeupCredit.id.desc())
        .all()
    )


def count_available(db: Session, student_id: int) -> int:
    return int(
        db.query(func.count(MakeupCredit.id))
        .filter(MakeupCredit.student_id == student_id, MakeupCredit.status == CreditStatus.AVAILABLE.value)
        .scalar()
        or 0
    )
