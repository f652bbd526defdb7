# lambdas/channel_summary/time_window.py
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional


@dataclass
class TimeWindow:
    """[start_ms, end_ms) in Unix milliseconds, which is what Mattermost timestamps use."""
    start_ms: int
    end_ms: int
    label: str
    date_label: str


def _to_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


def _zone_name(utc_offset_hours: int) -> str:
    if utc_offset_hours == 9:
        return "JST"
    return f"UTC{utc_offset_hours:+d}"


def get_time_window(for_today: bool, utc_offset_hours: int = 9, now: Optional[datetime] = None) -> TimeWindow:
    """
    Yesterday: the whole previous local calendar day.
    Today: local midnight up to now.
    """
    now = now or datetime.now(timezone.utc)
    local_tz = timezone(timedelta(hours=utc_offset_hours))
    today_local = now.astimezone(local_tz).date()
    start_of_today = datetime.combine(today_local, time.min, tzinfo=local_tz)
    start_of_yesterday = start_of_today - timedelta(days=1)

    if for_today:
        start, end, label, day = start_of_today, now, "今日", today_local
    else:
        start, end, label, day = start_of_yesterday, start_of_today, "昨日", start_of_yesterday.date()

    return TimeWindow(
        start_ms=_to_ms(start),
        end_ms=_to_ms(end),
        label=label,
        date_label=f"{day.isoformat()} ({_zone_name(utc_offset_hours)})",
    )


def describe(window: TimeWindow) -> str:
    start = datetime.fromtimestamp(window.start_ms / 1000, tz=timezone.utc).isoformat()
    end = datetime.fromtimestamp(window.end_ms / 1000, tz=timezone.utc).isoformat()
    return f"{start} to {end}"
