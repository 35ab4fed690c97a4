"""Conversions between the canonical administrative zone, UTC and recipient zones.

Administrators always enter wall-clock times in the canonical zone configured
as ``settings.canonical_timezone``. Those times are stored as a UTC date and a
UTC wall-clock time, and rendered back into whichever zone the recipient
lives in. All arithmetic goes through the tz database, so zones that observe
daylight saving stay correct on both sides of a transition.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
import logging
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tutoring.config import settings
from tutoring.core.errors import InvalidTimeInput


logger = logging.getLogger(__name__)

FALLBACK_ZONE = 'UTC'


class DisplayTime(NamedTuple):
    date: date
    time: time
    day_of_week: str

    def formatted(self) -> dict[str, str]:
        hour = self.time.hour % 12 or 12
        meridiem = 'AM' if self.time.hour < 12 else 'PM'
        return {
            'date': f"{self.date.strftime('%b')} {self.date.day}, {self.date.year}",
            'time': f'{hour}:{self.time.minute:02d} {meridiem}',
            'day': self.day_of_week,
        }


def load_zone(name: str) -> ZoneInfo:
    cleaned = str(name or '').strip()
    if not cleaned:
        raise InvalidTimeInput('Timezone name is empty')
    try:
        return ZoneInfo(cleaned)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimeInput(f'Unknown timezone: {cleaned}', timezone=cleaned) from exc


def resolve_canonical_zone(name: str | None = None) -> ZoneInfo:
    configured = settings.canonical_timezone if name is None else name
    if not str(configured or '').strip():
        logger.warning('canonical_timezone_missing fallback=%s', FALLBACK_ZONE)
        return ZoneInfo(FALLBACK_ZONE)
    return load_zone(configured)


def parse_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value or '').strip()
    if 'T' in raw:
        raw = raw.split('T', 1)[0]
    if not raw:
        raise InvalidTimeInput('Date is missing')
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise InvalidTimeInput(f'Invalid date: {value!r}', value=str(value)) from exc


def parse_time(value: time | str) -> time:
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    raw = str(value or '').strip()
    if not raw:
        raise InvalidTimeInput('Time is missing')
    parts = raw.split(':')
    if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
        raise InvalidTimeInput(f'Invalid time: {value!r}', value=str(value))
    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    if hour > 23 or minute > 59 or second > 59:
        raise InvalidTimeInput(f'Invalid time: {value!r}', value=str(value))
    return time(hour=hour, minute=minute, second=second)


class TimeNormalizer:
    def __init__(self, canonical_zone: str | ZoneInfo | None = None) -> None:
        if isinstance(canonical_zone, ZoneInfo):
            self.canonical_zone = canonical_zone
        else:
            self.canonical_zone = resolve_canonical_zone(canonical_zone)

    @property
    def canonical_zone_name(self) -> str:
        return self.canonical_zone.key

    def localize(self, local_date: date | str, local_time: time | str, source_zone: str | ZoneInfo | None = None) -> datetime:
        zone = self._source_zone(source_zone)
        naive = datetime.combine(parse_date(local_date), parse_time(local_time))
        aware = naive.replace(tzinfo=zone, fold=0)
        # Wall-clock times skipped by a forward DST jump do not survive a round trip.
        round_trip = aware.astimezone(timezone.utc).astimezone(zone).replace(tzinfo=None)
        if round_trip != naive:
            raise InvalidTimeInput(
                f'{naive.isoformat()} does not exist in {zone.key}',
                value=naive.isoformat(),
                timezone=zone.key,
            )
        return aware

    def to_canonical(
        self,
        local_date: date | str,
        local_time: time | str,
        source_zone: str | ZoneInfo | None = None,
    ) -> tuple[date, time]:
        instant = self.localize(local_date, local_time, source_zone).astimezone(timezone.utc)
        return instant.date(), instant.time().replace(tzinfo=None)

    def to_display(self, utc_date: date | str, utc_time: time | str, target_zone: str | ZoneInfo | None) -> DisplayTime:
        instant = self.utc_instant(utc_date, utc_time).astimezone(self._display_zone(target_zone))
        return DisplayTime(
            date=instant.date(),
            time=instant.time().replace(tzinfo=None),
            day_of_week=instant.strftime('%a'),
        )

    def to_canonical_display(self, utc_date: date | str, utc_time: time | str) -> DisplayTime:
        return self.to_display(utc_date, utc_time, self.canonical_zone)

    @staticmethod
    def utc_instant(utc_date: date | str, utc_time: time | str) -> datetime:
        return datetime.combine(parse_date(utc_date), parse_time(utc_time), tzinfo=timezone.utc)

    def canonical_day_bounds_utc(self, canonical_day: date) -> tuple[datetime, datetime]:
        """UTC instants [start, end) covering one calendar day in the canonical zone."""
        start = datetime.combine(canonical_day, time.min, tzinfo=self.canonical_zone)
        next_day = date.fromordinal(canonical_day.toordinal() + 1)
        end = datetime.combine(next_day, time.min, tzinfo=self.canonical_zone)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def _source_zone(self, source_zone: str | ZoneInfo | None) -> ZoneInfo:
        if source_zone is None:
            return self.canonical_zone
        if isinstance(source_zone, ZoneInfo):
            return source_zone
        return load_zone(source_zone)

    def _display_zone(self, target_zone: str | ZoneInfo | None) -> ZoneInfo:
        if isinstance(target_zone, ZoneInfo):
            return target_zone
        try:
            return load_zone(target_zone or '')
        except InvalidTimeInput:
            logger.warning(
                'display_timezone_invalid timezone=%s fallback=%s',
                target_zone,
                self.canonical_zone_name,
            )
            return self.canonical_zone


_default_normalizer: TimeNormalizer | None = None


def get_time_normalizer() -> TimeNormalizer:
    global _default_normalizer
    if _default_normalizer is None:
        _default_normalizer = TimeNormalizer()
    return _default_normalizer
