# lambdas/shared/command_parser.py
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

REMINDER_USAGE = "Usage: /reminder YYYY/MM/DD @user1 @user2 contents..."
MENTORS_USAGE = "Usage: /reminder-mentors YYYY/MM/DD contents..."
STOP_USAGE = "Usage: /reminder-stop <post id or permalink>"
INVALID_DATE_MESSAGE = "Invalid date format. Use YYYY/MM/DD"

# Mattermost ids are 26 lowercase alphanumerics; permalinks look like .../<team>/pl/<id>
POST_ID_PATTERN = re.compile(r"^[a-z0-9]{26}$")
PERMALINK_PATTERN = re.compile(r"https?://\S+?/pl/([a-z0-9]{26})(?![a-z0-9])")

_HEAD_PATTERN = re.compile(r"^(\S+)\s+(.+)$", re.DOTALL)
_MENTIONS_PATTERN = re.compile(r"^((?:@\S+\s+)+)(.*)$", re.DOTALL)
_DATE_PATTERN = re.compile(r"^\d{4}/\d{1,2}/\d{1,2}$")


class InvalidCommandError(ValueError):
    """Slash-command text that cannot be used; the message is shown to the user as is."""
    pass


@dataclass
class ReminderCommand:
    due_date: date
    date_text: str
    body: str
    raw_mentions: List[str] = field(default_factory=list)


def invalid_format(usage: str) -> InvalidCommandError:
    return InvalidCommandError(f"Invalid format.\n{usage}")


def parse_due_date(date_text: str) -> date:
    """
    Parses YYYY/MM/DD into a calendar date.

    Raises:
        InvalidCommandError: If the text is not a real date in that format.
    """
    if not _DATE_PATTERN.match(date_text):
        raise InvalidCommandError(INVALID_DATE_MESSAGE)
    try:
        return datetime.strptime(date_text, "%Y/%m/%d").date()
    except ValueError:
        raise InvalidCommandError(INVALID_DATE_MESSAGE)


def parse_reminder_command(text: str, require_mentions: bool) -> ReminderCommand:
    """
    Splits `<date> [@mention ...] <body>` into its parts.

    With require_mentions, at least one leading @mention and a non-empty body
    are mandatory. Without it, everything after the date is the body.

    Raises:
        InvalidCommandError: With the text to show back to the user.
    """
    usage = REMINDER_USAGE if require_mentions else MENTORS_USAGE
    head = _HEAD_PATTERN.match(text.strip())
    if not head:
        raise invalid_format(usage)

    date_text, rest = head.group(1), head.group(2)
    due_date = parse_due_date(date_text)

    if not require_mentions:
        return ReminderCommand(due_date=due_date, date_text=date_text, body=rest)

    mentions = _MENTIONS_PATTERN.match(rest)
    if not mentions:
        raise invalid_format(usage)

    raw_mentions = mentions.group(1).split()
    body = mentions.group(2).lstrip()
    if not body:
        raise invalid_format(usage)

    return ReminderCommand(due_date=due_date, date_text=date_text, body=body, raw_mentions=raw_mentions)


def extract_stop_id(text: str) -> Optional[str]:
    """A post id from a permalink anywhere in the text, else from the first token."""
    if not text:
        return None
    permalink = PERMALINK_PATTERN.search(text)
    if permalink:
        return permalink.group(1)
    tokens = text.split()
    if tokens and POST_ID_PATTERN.match(tokens[0]):
        return tokens[0]
    return None
