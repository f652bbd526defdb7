# lambdas/shared/settings.py
"""
Environment-driven configuration shared by every lambda.

Every field maps to one environment variable (the alias). Values can also
come from a local `.env` file, which is handy for `run_live.py` and the CLI.
Secrets default to empty strings so importing a lambda never fails; handlers
check what they need at request time.
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # Mattermost
    mattermost_url: str = Field("", alias='MATTERMOST_URL')
    mattermost_bot_token: str = Field("", alias='MATTERMOST_BOT_TOKEN')
    mattermost_main_team: str = Field("", alias='MATTERMOST_MAIN_TEAM')
    mattermost_team_name: str = Field("mitoujr", alias='MATTERMOST_TEAM_NAME')
    mattermost_summary_channel: str = Field("", alias='MATTERMOST_SUMMARY_CHANNEL')
    mattermost_mentor_group_id: str = Field("", alias='MATTERMOST_MENTOR_GROUP_ID')

    # Slash command shared secrets
    slash_reminder_token: str = Field("", alias='MATTERMOST_SLASH_REMINDER_TOKEN')
    slash_mentors_token: str = Field("", alias='MATTERMOST_SLASH_TOKEN')
    slash_stop_token: str = Field("", alias='MATTERMOST_SLASH_STOP_TOKEN')

    # Required as X-Trigger-Token on HTTP calls to the scheduled lambdas
    trigger_token: str = Field("", alias='TRIGGER_TOKEN')

    # AWS
    aws_region: str = Field("ap-northeast-1", alias='AWS_REGION')
    reminder_table_name: str = Field("Reminders", alias='REMINDER_TABLE_NAME')
    audio_bucket: str = Field("", alias='AUDIO_BUCKET')
    audio_public_base_url: str = Field("", alias='AUDIO_PUBLIC_BASE_URL')

    # LLM / voice backends
    openai_api_key: str = Field("", alias='OPENAI_API_KEY')
    openai_summary_model: str = Field("chatgpt-4o-latest", alias='OPENAI_SUMMARY_MODEL')
    openai_script_model: str = Field("gpt-4.1-2025-04-14", alias='OPENAI_SCRIPT_MODEL')
    gemini_api_key: str = Field("", alias='GEMINI_API_KEY')
    gemini_image_model: str = Field("gemini-3-pro-image-preview", alias='GEMINI_IMAGE_MODEL')
    summary_reference_image: str = Field("", alias='SUMMARY_REFERENCE_IMAGE')
    audio_job_api_url: str = Field("", alias='AUDIO_JOB_API_URL')
    voicevox_api_url: str = Field("", alias='VOICEVOX_API_URL')

    # Behaviour
    utc_offset_hours: int = Field(9, alias='UTC_OFFSET_HOURS')
    countdown_event_name: str = Field("", alias='COUNTDOWN_EVENT_NAME')
    countdown_event_date: Optional[str] = Field(None, alias='COUNTDOWN_EVENT_DATE')
    allowed_origin: str = Field("*", alias='ALLOWED_ORIGIN')
    reminder_append_stop_hint: bool = Field(True, alias='REMINDER_APPEND_STOP_HINT')
    http_timeout_seconds: float = Field(30.0, alias='HTTP_TIMEOUT_SECONDS')


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Returns the process-wide settings instance (reused across warm invocations)."""
    return AppSettings()
