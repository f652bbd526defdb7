# lambdas/channel_summary/summarizer.py
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from openai import OpenAI, OpenAIError

from lambdas.shared.run_logger import RunLogger

PROMPT_DIR = Path(__file__).parent / "prompts"
NO_RESPONSE_TEXT = "(No response from OpenAI)"

SYSTEM_PROMPT = (
    "You are a helpful assistant summarizing multiple posts on Mattermost channel. "
    "日本語の響きを重視して、美しく、芸術作品のようにまとめます。"
)

COUNTDOWN_TEMPLATE = """
{event_name}が開催されるまでの残り時間を、クリエイティブな形式で伝えてください。
- 残り日数: {days}日
- 残り時間: {hours}時間
- 残り分数: {minutes}分
- 残り秒数: {seconds}秒
- それぞれの単位に面白い比喩を加える（例：「カップラーメンをX個作る時間」「東京〜大阪をX往復する時間」）
- ずんだもんらしく元気で面白い表現にする
"""


class SummaryGenerationError(Exception):
    """An LLM or voice backend call produced nothing usable."""


def load_prompt(file_name: str) -> str:
    return (PROMPT_DIR / file_name).read_text(encoding="utf-8")


def parse_event_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        event_date = datetime.fromisoformat(value)
    except ValueError:
        return None
    if event_date.tzinfo is None:
        event_date = event_date.replace(tzinfo=timezone.utc)
    return event_date


def calculate_countdown(event_date: datetime, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    total_seconds = int((event_date - now).total_seconds())
    return {
        "days": total_seconds // 86400,
        "hours": total_seconds // 3600,
        "minutes": total_seconds // 60,
        "seconds": total_seconds,
    }


def build_countdown_section(event_name: str, event_date_text: Optional[str], now: Optional[datetime] = None) -> str:
    """Empty unless an upcoming event is configured."""
    event_date = parse_event_date(event_date_text)
    now = now or datetime.now(timezone.utc)
    if not event_name or not event_date or event_date <= now:
        return ""
    return COUNTDOWN_TEMPLATE.format(event_name=event_name, **calculate_countdown(event_date, now))


def complete(client: OpenAI, model: str, system_prompt: str, user_prompt: str) -> str:
    """One chat completion; returns the placeholder text when the model says nothing."""
    completion = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
    )
    if not completion.choices:
        return NO_RESPONSE_TEXT
    return completion.choices[0].message.content or NO_RESPONSE_TEXT


class TextSummarizer:
    """
    Writes the persona-styled text digest of a channel transcript with the
    OpenAI chat-completion API.
    """

    def __init__(self, client: OpenAI, model: str, logger: RunLogger, channel_link_example: str,
                 countdown_event_name: str = "", countdown_event_date: Optional[str] = None):
        self.client = client
        self.model = model
        self.logger = logger
        self.channel_link_example = channel_link_example
        self.countdown_event_name = countdown_event_name
        self.countdown_event_date = countdown_event_date
        self.prompt_template = load_prompt("text_summary_prompt.txt")

    def build_prompt(self, transcript: str, time_range: str) -> str:
        return self.prompt_template.format(
            time_range=time_range,
            countdown_section=build_countdown_section(self.countdown_event_name, self.countdown_event_date),
            channel_link_example=self.channel_link_example,
            transcript=transcript,
        )

    def summarize(self, transcript: str, time_range: str) -> str:
        user_prompt = self.build_prompt(transcript, time_range)
        self.logger.log(f"Calling OpenAI for the text summary (model: {self.model})...")
        try:
            return complete(self.client, self.model, SYSTEM_PROMPT, user_prompt)
        except OpenAIError as e:
            raise SummaryGenerationError(f"OpenAI summary request failed: {e}") from e
