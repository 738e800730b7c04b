# anon_tracker/utils/time.py

from datetime import datetime, timedelta, timezone

MS_PER_MINUTE = 60 * 1000
MS_PER_DAY = 24 * 60 * MS_PER_MINUTE


def utcnow():
    """
    Always return timezone-aware UTC datetime
    """
    return datetime.now(timezone.utc)


def now_ms():
    """
    Current time in milliseconds since epoch (the unit every stored timestamp uses)
    """
    return int(utcnow().timestamp() * 1000)


def next_daily_run(after, hour, minute):
    """
    Next UTC datetime strictly after `after` that falls on hour:minute.
    """
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)
    candidate = after.astimezone(timezone.utc).replace(
        hour=hour, minute=minute, second=0, microsecond=0
    )
    if candidate <= after:
        candidate += timedelta(days=1)
    return candidate
