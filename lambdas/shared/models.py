# lambdas/shared/models.py
"""
Plain-dataclass models for the reminder workflow.

The `content` column carries two encodings: legacy rows hold the task text as
is, newer rows hold JSON `{"body": ..., "target_usernames": [...]}`. Parsing
tries JSON first and falls back to plain text, so old rows never need a
migration.
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional, Union


@dataclass(frozen=True)
class PlainText:
    """Legacy content: the task text only. Targets default to the mentor group."""
    body: str


@dataclass(frozen=True)
class Structured:
    """Content with an explicit list of target usernames."""
    body: str
    target_usernames: List[str] = field(default_factory=list)


ReminderContent = Union[PlainText, Structured]


def parse_content(raw) -> Optional[ReminderContent]:
    if not isinstance(raw, str):
        return None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return PlainText(raw)

    if not isinstance(parsed, dict):
        return PlainText(raw)

    body = parsed.get("body") if isinstance(parsed.get("body"), str) else raw
    targets = parsed.get("target_usernames")
    if not isinstance(targets, list):
        return PlainText(body)
    return Structured(body, [str(u) for u in targets])


def serialize_content(content: ReminderContent) -> str:
    if isinstance(content, Structured):
        return json.dumps(
            {"body": content.body, "target_usernames": list(content.target_usernames)},
            ensure_ascii=False,
        )
    return content.body


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Reminder:
    """One row of the reminders table, keyed by the announcing post id."""
    post_id: str
    channel_id: str
    due_date: date
    content: str
    completed: Optional[bool] = None
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def is_open(self) -> bool:
        return not self.completed

    @property
    def parsed_content(self) -> Optional[ReminderContent]:
        return parse_content(self.content)

    @property
    def target_usernames(self) -> Optional[List[str]]:
        """Explicit targets, or None when the mentor group applies."""
        parsed = self.parsed_content
        if isinstance(parsed, Structured) and parsed.target_usernames:
            return list(parsed.target_usernames)
        return None

    def to_item(self) -> dict:
        item = {
            "post_id": self.post_id,
            "channel_id": self.channel_id,
            "due_date": self.due_date.isoformat(),
            "content": self.content,
            "updated_at": self.updated_at,
        }
        if self.completed is not None:
            item["completed"] = self.completed
        return item

    @classmethod
    def from_item(cls, item: dict) -> "Reminder":
        return cls(
            post_id=item["post_id"],
            channel_id=item.get("channel_id", ""),
            due_date=date.fromisoformat(str(item["due_date"])[:10]),
            content=item.get("content") or "",
            completed=item.get("completed"),
            updated_at=item.get("updated_at") or "",
        )
