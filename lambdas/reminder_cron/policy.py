# lambdas/reminder_cron/policy.py
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import List

# Days before the deadline on which a heads-up is sent
REMIND_DAYS = (7, 5, 3, 2, 1)

SECONDS_PER_DAY = 24 * 60 * 60


def local_timezone(utc_offset_hours: int) -> timezone:
    return timezone(timedelta(hours=utc_offset_hours))


def days_until_due(due_date: date, now: datetime, utc_offset_hours: int = 9) -> int:
    """
    ceil((start of the due day, local time) - now) in days.
    Positive: days remaining, 0: due today, negative: days overdue.
    """
    due_start = datetime.combine(due_date, time.min, tzinfo=local_timezone(utc_offset_hours))
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.ceil((due_start - now).total_seconds() / SECONDS_PER_DAY)


def should_remind(diff_days: int) -> bool:
    """Heads-up on the fixed pre-due days, then every day from the due date on."""
    return diff_days in REMIND_DAYS or diff_days <= 0


def build_reminder_message(diff_days: int, due_date_text: str, pending_mentions: List[str]) -> str:
    mention_text = " ".join(pending_mentions)
    if diff_days < 0:
        return f'締切日 ({due_date_text}) を{abs(diff_days)}日過ぎています。まだ "done" がついていない対象者: {mention_text}'
    if diff_days == 0:
        return f'今日は締切日 ({due_date_text}) です！まだ "done" がついていない対象者: {mention_text}'
    return f'締切日 ({due_date_text}) まであと {diff_days}日です！まだ "done" がついていない対象者: {mention_text}'
