# lambdas/reminder_stop/app.py
from typing import Optional

from lambdas.shared.api_gateway import is_preflight, parse_form_body, preflight_response, slash_response
from lambdas.shared.command_parser import STOP_USAGE, extract_stop_id
from lambdas.shared.mattermost import MattermostClient, MattermostError, client_from_settings
from lambdas.shared.models import Reminder
from lambdas.shared.reminder_store import ReminderStore, ReminderStoreError
from lambdas.shared.run_logger import RunLogger
from lambdas.shared.settings import get_settings

NOT_FOUND_TEXT = "No reminder was found for that post."
ALREADY_STOPPED_TEXT = "This reminder is already stopped."
STOPPED_TEXT = "Reminder stopped."
CONFIRMATION_REPLY = "リマインダーを停止しました。"


def find_reminder(stop_id: str, client: MattermostClient, store: ReminderStore,
                  logger: RunLogger) -> Optional[Reminder]:
    """
    Looks the id up directly, then as a reply: the thread root's reminder is
    returned when the id points somewhere inside a reminder thread.
    """
    reminder = store.get(stop_id)
    if reminder:
        return reminder

    try:
        post = client.get_post(stop_id)
    except MattermostError as e:
        logger.log(f"Post {stop_id} could not be resolved: {e}")
        return None

    root_id = post.get("root_id") or post.get("id") or stop_id
    if root_id == stop_id:
        return None
    return store.get(root_id)


def stop_reminder(text: str, client: MattermostClient, store: ReminderStore, logger: RunLogger) -> dict:
    stop_id = extract_stop_id(text)
    if not stop_id:
        return slash_response(STOP_USAGE)

    try:
        reminder = find_reminder(stop_id, client, store, logger)
    except ReminderStoreError as e:
        logger.error(f"Reminder lookup failed: {e}")
        return slash_response(str(e), status_code=500)

    if not reminder:
        return slash_response(NOT_FOUND_TEXT)
    if reminder.completed:
        return slash_response(ALREADY_STOPPED_TEXT)

    try:
        store.mark_completed(reminder.post_id)
    except ReminderStoreError as e:
        logger.error(f"Could not stop reminder {reminder.post_id}: {e}")
        return slash_response(str(e), status_code=500)
    logger.log(f"Stopped reminder {reminder.post_id}.")

    try:
        client.post_reply(reminder.channel_id, reminder.post_id, CONFIRMATION_REPLY)
    except MattermostError as e:
        logger.error(f"Could not post stop confirmation for {reminder.post_id}: {e}")

    return slash_response(STOPPED_TEXT)


def handler(event: dict, context: object) -> dict:
    """`/reminder-stop <post id | permalink>` slash command."""
    if is_preflight(event):
        return preflight_response()

    logger = RunLogger()
    settings = get_settings()
    form = parse_form_body(event)

    token = form.get('token', '')
    if not settings.slash_stop_token or token != settings.slash_stop_token:
        logger.warn("Rejected slash command with an invalid token.")
        return slash_response('Invalid slash command token', status_code=403)

    try:
        client = client_from_settings(settings, logger)
        store = ReminderStore.from_settings(settings)
        return stop_reminder(form.get('text', ''), client, store, logger)
    except Exception as e:
        logger.error(f"reminder-stop error: {e}")
        return slash_response(str(e), status_code=500)
