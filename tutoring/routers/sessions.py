from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tutoring.core.errors import PersistenceError, SessionDomainError
from tutoring.core.session_states import Attendance
from tutoring.core.time_provider import TimeProvider, get_time_provider
from tutoring.db import get_db
from tutoring.routers.errors import to_http_error
from tutoring.schemas import (
    AttendanceRequest,
    CancelRequest,
    GroupAttendanceRequest,
    HomeworkGradeRequest,
    NotesUpdateRequest,
)
from tutoring.services import group_attendance_service, session_lifecycle_service
from tutoring.services.session_serializers import serialize_session
from tutoring.services.session_store import list_past_sessions, list_upcoming_sessions, require_session


router = APIRouter(prefix='/sessions', tags=['Sessions'])

_REQUEST_ERRORS = (SessionDomainError, PersistenceError, ValueError)


@router.get('/upcoming')
def upcoming_sessions(
    limit: int = Query(default=10, ge=1, le=200),
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    rows = list_upcoming_sessions(db, time_provider.utc_naive_now(), limit=limit)
    return [serialize_session(row) for row in rows]


@router.get('/past')
def past_sessions(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    rows = list_past_sessions(db, time_provider.utc_naive_now().date(), limit=limit)
    return [serialize_session(row) for row in rows]


@router.get('/{session_id}')
def get_session_detail(session_id: int, db: Session = Depends(get_db)):
    try:
        row = require_session(db, session_id)
    except SessionDomainError as exc:
        raise to_http_error(exc) from exc
    return serialize_session(row)


@router.post('/{session_id}/attendance')
def mark_attendance(
    session_id: int,
    payload: AttendanceRequest,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    try:
        if payload.attendance == Attendance.PRESENT.value:
            row = session_lifecycle_service.mark_present(db, session_id)
        else:
            row = session_lifecycle_service.mark_absent(
                db,
                session_id,
                attendance=payload.attendance,
                reason=payload.reason,
                time_provider=time_provider,
            )
    except _REQUEST_ERRORS as exc:
        raise to_http_error(exc) from exc
    return serialize_session(row)


@router.get('/{session_id}/group-attendance')
def read_group_attendance(session_id: int, db: Session = Depends(get_db)):
    try:
        return group_attendance_service.get_group_attendance(db, session_id)
    except SessionDomainError as exc:
        raise to_http_error(exc) from exc


@router.post('/{session_id}/group-attendance')
def submit_group_attendance(
    session_id: int,
    payload: GroupAttendanceRequest,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    try:
        return group_attendance_service.mark_group_attendance(
            db,
            session_id,
            [item.model_dump() for item in payload.records],
            time_provider=time_provider,
        )
    except _REQUEST_ERRORS as exc:
        raise to_http_error(exc) from exc


@router.post('/{session_id}/grade/{student_id}')
def grade_homework(session_id: int, student_id: int, payload: HomeworkGradeRequest, db: Session = Depends(get_db)):
    try:
        record = group_attendance_service.grade_homework(db, session_id, student_id, payload.grade, payload.comments)
    except _REQUEST_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {
        'session_id': session_id,
        'student_id': student_id,
        'homework_grade': record.homework_grade,
        'homework_comments': record.homework_comments,
    }


@router.post('/{session_id}/cancel')
def cancel_session(
    session_id: int,
    payload: CancelRequest,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    if payload.student_id is not None and payload.cancelled_by != 'Parent':
        raise HTTPException(status_code=400, detail='Only parents withdraw a single participant; teachers cancel the session')
    try:
        if payload.student_id is not None:
            record = session_lifecycle_service.cancel_group_participation(
                db,
                session_id,
                payload.student_id,
                reason=payload.reason,
                time_provider=time_provider,
            )
            return {'session_id': session_id, 'student_id': record.student_id, 'attendance': record.attendance}
        row = session_lifecycle_service.cancel_session(
            db,
            session_id,
            actor=payload.cancelled_by,
            reason=payload.reason,
            time_provider=time_provider,
        )
    except _REQUEST_ERRORS as exc:
        raise to_http_error(exc) from exc
    return serialize_session(row)


@router.put('/{session_id}/notes')
def update_notes(session_id: int, payload: NotesUpdateRequest, db: Session = Depends(get_db)):
    try:
        row = session_lifecycle_service.update_teacher_notes(db, session_id, payload.teacher_notes)
    except _REQUEST_ERRORS as exc:
        raise to_http_error(exc) from exc
    return serialize_session(row)


@router.delete('/{session_id}')
def delete_session(
    session_id: int,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    try:
        session_lifecycle_service.delete_session(db, session_id, time_provider=time_provider)
    except _REQUEST_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {'deleted': session_id}
