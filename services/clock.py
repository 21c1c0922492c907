"""
Clock helpers.

All timestamps written to the database are naive UTC. Study days (streaks)
are calendar dates on the server clock in the configured STUDY_TIMEZONE;
this module is the only place either value is read from the system clock.
"""
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

DEFAULT_STUDY_TIMEZONE = 'UTC'


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def study_timezone() -> ZoneInfo:
    name = DEFAULT_STUDY_TIMEZONE
    if has_app_context():
        name = current_app.config.get('STUDY_TIMEZONE') or DEFAULT_STUDY_TIMEZONE
    return ZoneInfo(name)


def study_today(now: Optional[datetime] = None) -> date:
    """
    Calendar date of "today" for streak purposes.

    Args:
        now: Aware datetime to convert (defaults to the current time).
             Naive values are treated as UTC.

    Returns:
        date: The date in STUDY_TIMEZONE
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(study_timezone()).date()
