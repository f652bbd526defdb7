# lambdas/slash_reminder_mentors/app.py
from lambdas.shared.api_gateway import is_preflight, preflight_response, slash_response
from lambdas.shared.mattermost import client_from_settings
from lambdas.shared.reminder_creation import process_reminder_command
from lambdas.shared.reminder_store import ReminderStore
from lambdas.shared.run_logger import RunLogger
from lambdas.shared.settings import get_settings


def handler(event: dict, context: object) -> dict:
    """
    `/reminder-mentors YYYY/MM/DD contents` slash command.
    The reminder has no explicit targets, so the whole mentor group is tracked.
    """
    if is_preflight(event):
        return preflight_response()

    logger = RunLogger()
    settings = get_settings()
    try:
        client = client_from_settings(settings, logger)
        store = ReminderStore.from_settings(settings)
        return process_reminder_command(
            event,
            expected_token=settings.slash_mentors_token,
            require_mentions=False,
            client=client,
            store=store,
            logger=logger,
            append_stop_hint=settings.reminder_append_stop_hint,
        )
    except Exception as e:
        logger.error(f"slash-reminder-mentors error: {e}")
        return slash_response(str(e), status_code=500)
