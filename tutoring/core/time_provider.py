from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from tutoring.core.time_normalizer import resolve_canonical_zone


class TimeProvider:
    def __init__(self, canonical_zone: ZoneInfo | None = None) -> None:
        self._zone = canonical_zone

    @property
    def zone(self) -> ZoneInfo:
        if self._zone is None:
            self._zone = resolve_canonical_zone()
        return self._zone

    def now(self) -> datetime:
        return datetime.now(self.zone)

    def today(self) -> date:
        return self.now().date()

    def utc_now(self) -> datetime:
        return self.now().astimezone(timezone.utc)

    def utc_naive_now(self) -> datetime:
        return self.utc_now().replace(tzinfo=None)


default_time_provider = TimeProvider()


def get_time_provider() -> TimeProvider:
    return default_time_provider
