from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutoring.core.errors import PersistenceError, SessionDomainError
from tutoring.core.time_provider import TimeProvider, get_time_provider
from tutoring.db import get_db
from tutoring.routers.errors import to_http_error
from tutoring.schemas import GroupScheduleRequest, MakeupScheduleRequest, PrivateScheduleRequest
from tutoring.services.scheduling_service import (
    schedule_group_sessions,
    schedule_makeup_session,
    schedule_private_sessions,
)
from tutoring.services.session_serializers import serialize_session


router = APIRouter(prefix='/schedule', tags=['Schedule'])


@router.post('/private-classes')
def create_private_classes(payload: PrivateScheduleRequest, db: Session = Depends(get_db)):
    try:
        rows = schedule_private_sessions(db, payload.student_id, [slot.model_dump() for slot in payload.sessions])
    except (SessionDomainError, PersistenceError) as exc:
        raise to_http_error(exc) from exc
    return {'created': len(rows), 'sessions': [serialize_session(row) for row in rows]}


@router.post('/group-classes')
def create_group_classes(payload: GroupScheduleRequest, db: Session = Depends(get_db)):
    try:
        rows = schedule_group_sessions(db, payload.group_id, [slot.model_dump() for slot in payload.sessions])
    except (SessionDomainError, PersistenceError) as exc:
        raise to_http_error(exc) from exc
    return {'created': len(rows), 'sessions': [serialize_session(row) for row in rows]}


@router.post('/makeup-class')
def create_makeup_class(
    payload: MakeupScheduleRequest,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    try:
        row = schedule_makeup_session(db, payload.credit_id, payload.session.model_dump(), time_provider=time_provider)
    except (SessionDomainError, PersistenceError) as exc:
        raise to_http_error(exc) from exc
    return serialize_session(row)
