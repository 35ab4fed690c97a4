import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Tutoring Sessions'
    app_env: str = 'local'
    # Administrators enter session times in this zone; required.
    canonical_timezone: str = ''
    default_meeting_link: str = ''
    database_url: str = 'sqlite:///./tutoring.db'
    academy_name: str = 'Tutoring Academy'
    email_api_url: str = 'https://api.brevo.com/v3/smtp/email'
    email_api_key: str = ''
    email_sender_address: str = ''
    enable_email_notifications: bool = True
    notification_timeout_seconds: float = 10.0
    cancellation_min_lead_hours: int = 2
    day_ahead_reminder_time: str = '09:00'
    hour_ahead_poll_minutes: int = 5
    job_lock_ttl_seconds: int = 900
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()


def check_startup_settings(current: Settings = settings) -> list[str]:
    warnings: list[str] = []
    if not (current.canonical_timezone or '').strip():
        warnings.append('canonical_timezone is not configured; session times will be anchored to UTC')
    if not (current.default_meeting_link or '').strip():
        warnings.append('default_meeting_link is not configured; sessions will be created without a meeting link')
    for message in warnings:
        logger.warning('startup_config_warning %s', message)
    return warnings
