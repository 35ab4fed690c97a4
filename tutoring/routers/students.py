from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutoring.core.errors import PersistenceError, SessionDomainError
from tutoring.core.time_provider import TimeProvider, get_time_provider
from tutoring.db import get_db
from tutoring.routers.errors import to_http_error
from tutoring.schemas import ManualCreditRequest
from tutoring.services import makeup_credit_service
from tutoring.services.session_serializers import serialize_credit, serialize_session
from tutoring.services.session_store import list_student_sessions, require_student


router = APIRouter(tags=['Students'])


@router.get('/students/{student_id}/sessions')
def student_sessions(student_id: int, db: Session = Depends(get_db)):
    try:
        student = require_student(db, student_id)
    except SessionDomainError as exc:
        raise to_http_error(exc) from exc
    return {
        'student_id': student.id,
        'total_sessions': student.total_sessions,
        'completed_sessions': student.completed_sessions,
        'remaining_sessions': student.remaining_sessions,
        'sessions': [serialize_session(row) for row in list_student_sessions(db, student.id)],
    }


@router.get('/students/{student_id}/makeup-credits')
def available_credits(student_id: int, db: Session = Depends(get_db)):
    try:
        require_student(db, student_id)
    except SessionDomainError as exc:
        raise to_http_error(exc) from exc
    rows = makeup_credit_service.list_available(db, student_id)
    return {'student_id': student_id, 'available': len(rows), 'credits': [serialize_credit(row) for row in rows]}


@router.post('/students/{student_id}/makeup-credits')
def add_manual_credit(
    student_id: int,
    payload: ManualCreditRequest,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    try:
        row = makeup_credit_service.grant_manual_credit(
            db,
            student_id,
            payload.reason,
            notes=payload.notes,
            time_provider=time_provider,
        )
    except (SessionDomainError, PersistenceError) as exc:
        raise to_http_error(exc) from exc
    return serialize_credit(row)


@router.post('/makeup-credits/{credit_id}/redeem')
def redeem_credit(
    credit_id: int,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    try:
        row = makeup_credit_service.redeem_credit(db, credit_id, time_provider=time_provider)
    except (SessionDomainError, PersistenceError) as exc:
        raise to_http_error(exc) from exc
    return serialize_credit(row)
