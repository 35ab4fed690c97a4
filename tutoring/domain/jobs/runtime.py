from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from tutoring.config import settings
from tutoring.db import SessionLocal
from tutoring.domain.jobs.job_lock import acquire_job_lock, release_job_lock
from tutoring.metrics import run_timed_job
from tutoring.services.observability_counters import record_observability_event


logger = logging.getLogger(__name__)


def with_db(task, *, job_label: str, session_factory=SessionLocal):
    lock_token = acquire_job_lock(job_label, ttl_seconds=settings.job_lock_ttl_seconds)
    if not lock_token:
        logger.info('job_lock_skipped_concurrent job=%s', job_label)
        record_observability_event(f'job_lock_skipped:{job_label}')
        return None
    db: Session = session_factory()
    try:
        result = task(db)
        record_observability_event(f'job_success_count:{job_label}')
        return result
    except Exception:
        db.rollback()
        record_observability_event(f'job_failure_count:{job_label}')
        raise
    finally:
        db.close()
        release_job_lock(job_label, lock_token)


def run_job(label: str, task, *, session_factory=SessionLocal):
    return run_timed_job(label, lambda: with_db(task, job_label=label, session_factory=session_factory))
