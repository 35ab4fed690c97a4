import logging

from fastapi import HTTPException

from tutoring.core.errors import PersistenceError, SessionDomainError


logger = logging.getLogger(__name__)


def to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, SessionDomainError):
        return HTTPException(status_code=exc.status_code, detail=str(exc))
    if isinstance(exc, PersistenceError):
        logger.error('request_persistence_error error=%s', exc)
        return HTTPException(status_code=500, detail='Could not save changes, please retry')
    return HTTPException(status_code=400, detail=str(exc))
