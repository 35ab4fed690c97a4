from __future__ import annotations


class SessionDomainError(Exception):
    """Base for rule violations the caller should treat as a rejected request."""

    status_code = 400

    def __init__(self, message: str = '', **context) -> None:
        super().__init__(message or self.__class__.__name__)
        self.context = context


class InvalidTimeInput(SessionDomainError, ValueError):
    status_code = 422


class InsufficientSessionBalance(SessionDomainError):
    status_code = 400


class CancellationWindowClosed(SessionDomainError):
    status_code = 400


class InvalidStateTransition(SessionDomainError):
    status_code = 409


class CreditAlreadyUsed(SessionDomainError):
    status_code = 409


class SubjectNotFound(SessionDomainError):
    status_code = 404


class SessionNotFound(SessionDomainError):
    status_code = 404


class CreditNotFound(SessionDomainError):
    status_code = 404


class PersistenceError(RuntimeError):
    """Datastore transaction failure; distinct from the domain errors above."""
