from __future__ import annotations

from sqlalchemy.orm import Session

from tutoring.core.time_provider import TimeProvider, default_time_provider
from tutoring.db import SessionLocal
from tutoring.domain.jobs.runtime import run_job
from tutoring.services.reminder_service import run_hour_ahead_pass


def execute(*, time_provider: TimeProvider = default_time_provider, session_factory=SessionLocal):
    def _job(db: Session):
        return run_hour_ahead_pass(db, time_provider=time_provider)

    return run_job('hour_ahead_reminders', _job, session_factory=session_factory)
