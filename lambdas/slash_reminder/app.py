# lambdas/slash_reminder/app.py
from lambdas.shared.api_gateway import is_preflight, preflight_response, slash_response
from lambdas.shared.mattermost import UsernameCache, client_from_settings
from lambdas.shared.reminder_creation import process_reminder_command
from lambdas.shared.reminder_store import ReminderStore
from lambdas.shared.run_logger import RunLogger
from lambdas.shared.settings import get_settings
from lambdas.slash_reminder.mentions import expand_mentions

# Reused across warm invocations
USERNAME_CACHE = UsernameCache()


def handler(event: dict, context: object) -> dict:
    """
    `/reminder YYYY/MM/DD @user1 @group ... contents` slash command.
    Creates the announcement post and a reminder row with explicit targets.
    """
    if is_preflight(event):
        return preflight_response()

    logger = RunLogger()
    settings = get_settings()
    try:
        client = client_from_settings(settings, logger, USERNAME_CACHE)
        store = ReminderStore.from_settings(settings)
        return process_reminder_command(
            event,
            expected_token=settings.slash_reminder_token,
            require_mentions=True,
            client=client,
            store=store,
            logger=logger,
            append_stop_hint=settings.reminder_append_stop_hint,
            expand_mentions=expand_mentions,
        )
    except Exception as e:
        logger.error(f"slash-reminder error: {e}")
        return slash_response(str(e), status_code=500)
