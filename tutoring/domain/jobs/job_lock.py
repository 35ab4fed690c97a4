from __future__ import annotations

import logging
import threading
import time
import uuid


logger = logging.getLogger(__name__)
_lock = threading.RLock()
_KEY_PREFIX = 'job_lock'
# key -> (token, expires_at on the monotonic clock)
_held: dict[str, tuple[str, float]] = {}


def _lock_key(job_label: str) -> str:
    return f'{_KEY_PREFIX}:{job_label}'


def acquire_job_lock(job_label: str, *, ttl_seconds: int = 900) -> str | None:
    key = _lock_key(job_label)
    token = uuid.uuid4().hex
    now = time.monotonic()
    with _lock:
        existing = _held.get(key)
        if existing is not None and existing[1] > now:
            return None
        if existing is not None:
            logger.warning('job_lock_expired_reclaimed key=%s', key)
        _held[key] = (token, now + max(1, int(ttl_seconds)))
        return token


def release_job_lock(job_label: str, token: str) -> None:
    if not token:
        return
    key = _lock_key(job_label)
    with _lock:
        current = _held.get(key)
        if current is None:
            return
        if current[0] == token:
            del _held[key]


def clear_job_locks() -> None:
    with _lock:
        _held.clear()
