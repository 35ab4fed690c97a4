"""Rolling in-process counters for jobs, reminder passes and e-mail delivery.

Event names follow ``<kind>:<label>`` (``job_failure_count:day_ahead_reminders``,
``notification_sent:Reminder-1h``). Counts live in memory only and reset on
restart; ``/health`` reports them grouped by kind.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta
import threading

from tutoring.core.time_provider import TimeProvider, default_time_provider


class EventCounters:
    def __init__(self, *, retention: timedelta = timedelta(hours=25), time_provider: TimeProvider = default_time_provider):
        self.retention = retention
        self.time_provider = time_provider
        self._lock = threading.Lock()
        self._seen: dict[str, deque[datetime]] = {}

    @staticmethod
    def _key(name: str) -> str:
        return str(name or '').strip().lower()

    def _prune(self, stamps: deque[datetime], cutoff: datetime) -> None:
        while stamps and stamps[0] < cutoff:
            stamps.popleft()

    def record(self, name: str, *, at: datetime | None = None) -> None:
        key = self._key(name)
        if not key:
            return
        stamp = at or self.time_provider.utc_naive_now()
        with self._lock:
            stamps = self._seen.setdefault(key, deque())
            stamps.append(stamp)
            self._prune(stamps, stamp - self.retention)

    def count(self, name: str, *, window: timedelta = timedelta(hours=24), now: datetime | None = None) -> int:
        key = self._key(name)
        cutoff = (now or self.time_provider.utc_naive_now()) - window
        with self._lock:
            stamps = self._seen.get(key)
            if not stamps:
                return 0
            return sum(1 for stamp in stamps if stamp >= cutoff)

    def by_kind(self, *, window: timedelta = timedelta(hours=24)) -> dict[str, dict[str, int]]:
        with self._lock:
            names = sorted(self._seen)
        grouped: dict[str, dict[str, int]] = {}
        for name in names:
            kind, _, label = name.partition(':')
            total = self.count(name, window=window)
            if total:
                grouped.setdefault(kind, {})[label or kind] = total
        return grouped

    def clear(self) -> None:
        with self._lock:
            self._seen.clear()


event_counters = EventCounters()


def record_observability_event(name: str, *, at: datetime | None = None) -> None:
    event_counters.record(name, at=at)


def count_observability_events(name: str, *, window_hours: int = 24, now: datetime | None = None) -> int:
    return event_counters.count(name, window=timedelta(hours=max(1, int(window_hours or 24))), now=now)


def snapshot_observability_events(*, window_hours: int = 24) -> dict[str, dict[str, int]]:
    return event_counters.by_kind(window=timedelta(hours=max(1, int(window_hours or 24))))


def clear_observability_events() -> None:
    event_counters.clear()
