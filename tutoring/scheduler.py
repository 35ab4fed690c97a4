import logging

from apscheduler.schedulers.background import BackgroundScheduler

from tutoring.config import settings
from tutoring.core.time_normalizer import resolve_canonical_zone
from tutoring.domain.jobs import day_ahead_reminders, hour_ahead_reminders


# One run per job at a time; an overrunning pass makes the next run skip, not queue.
scheduler = BackgroundScheduler(
    job_defaults={'max_instances': 1, 'coalesce': True, 'misfire_grace_time': 60},
)
logger = logging.getLogger(__name__)


def day_ahead_reminders_job():
    day_ahead_reminders.execute()


def hour_ahead_reminders_job():
    hour_ahead_reminders.execute()


def _parse_hhmm(value: str, default_hour: int = 9, default_minute: int = 0) -> tuple[int, int]:
    try:
        hour_raw, minute_raw = (value or '').split(':', 1)
        hour = int(hour_raw)
        minute = int(minute_raw)
        if hour < 0 or hour > 23 or minute < 0 or minute > 59:
            raise ValueError
        return hour, minute
    except ValueError:
        logger.warning('scheduler_invalid_time value=%r default=%02d:%02d', value, default_hour, default_minute)
        return default_hour, default_minute


def start_scheduler():
    if scheduler.running:
        return
    zone = resolve_canonical_zone()
    scheduler.configure(timezone=zone)
    day_hour, day_minute = _parse_hhmm(settings.day_ahead_reminder_time)
    poll_minutes = max(1, int(settings.hour_ahead_poll_minutes))
    scheduler.add_job(
        day_ahead_reminders_job,
        'cron',
        hour=day_hour,
        minute=day_minute,
        id='day_ahead_reminders',
        replace_existing=True,
    )
    scheduler.add_job(
        hour_ahead_reminders_job,
        'interval',
        minutes=poll_minutes,
        id='hour_ahead_reminders',
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        'scheduler_started timezone=%s day_ahead=%02d:%02d hour_ahead_every_min=%s',
        zone.key,
        day_hour,
        day_minute,
        poll_minutes,
    )


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
