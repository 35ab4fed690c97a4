from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tutoring.core.errors import PersistenceError, SessionDomainError
from tutoring.core.time_provider import TimeProvider, get_time_provider
from tutoring.db import get_db
from tutoring.routers.errors import to_http_error
from tutoring.services.session_lifecycle_service import delete_group as retire_group


router = APIRouter(prefix='/groups', tags=['Groups'])


@router.delete('/{group_id}')
def delete_group(
    group_id: int,
    db: Session = Depends(get_db),
    time_provider: TimeProvider = Depends(get_time_provider),
):
    try:
        return retire_group(db, group_id, time_provider=time_provider)
    except (SessionDomainError, PersistenceError) as exc:
        raise to_http_error(exc) from exc
