# lambdas/shared/reminder_creation.py
"""
Slash-command flow shared by /reminder and /reminder-mentors.

Both create an announcement post, then upsert a reminder row keyed by the new
post id. If the upsert fails after the post was created, the post stays behind
without a tracked reminder; nothing compensates for that.
"""
from typing import Callable, List, Optional

from lambdas.shared.api_gateway import parse_form_body, slash_response, build_response
from lambdas.shared.command_parser import (
    InvalidCommandError,
    REMINDER_USAGE,
    invalid_format,
    parse_reminder_command,
)
from lambdas.shared.mattermost import MattermostClient, MattermostError
from lambdas.shared.models import PlainText, Reminder, Structured, serialize_content
from lambdas.shared.reminder_store import ReminderStore, ReminderStoreError
from lambdas.shared.run_logger import RunLogger

MentionExpander = Callable[[MattermostClient, List[str]], List[str]]


def format_mentions(usernames: List[str]) -> str:
    return " ".join(f"@{u}" for u in usernames)


def build_announcement(date_text: str, body: str, target_usernames: Optional[List[str]]) -> str:
    if target_usernames is None:
        return (
            "新しいメンター向けのタスクが作られました。自動でリマインダされます。\n"
            f"**締切日:** {date_text}\n"
            f"{body}"
        )
    return (
        "リマインド対象のタスクが作られました。自動でリマインダされます。\n"
        f"**対象:** {format_mentions(target_usernames)}\n"
        f"**締切日:** {date_text}\n"
        "完了したらこのポストに :done: リアクションを付けてください。\n"
        f"{body}"
    )


def build_stop_hint(post_id: str) -> str:
    return f"\n\n---\nリマインドを止めるには `/reminder-stop {post_id}` を実行してください。"


def build_success_text(date_text: str, target_usernames: Optional[List[str]]) -> str:
    if target_usernames is None:
        return f"リマインド用ポストを作成しました。\n締切日: {date_text}"
    return f"リマインド用ポストを作成しました。\n対象: {format_mentions(target_usernames)}\n締切日: {date_text}"


def process_reminder_command(
    event: dict,
    *,
    expected_token: str,
    require_mentions: bool,
    client: MattermostClient,
    store: ReminderStore,
    logger: RunLogger,
    append_stop_hint: bool = True,
    expand_mentions: Optional[MentionExpander] = None,
) -> dict:
    form = parse_form_body(event)

    token = form.get('token', '')
    if not expected_token or token != expected_token:
        logger.warn("Rejected slash command with an invalid token.")
        return slash_response('Invalid slash command token', status_code=403)

    text = form.get('text', '')
    channel_id = form.get('channel_id', '')
    if not channel_id:
        return build_response(400, {'error': 'Missing text or channel_id'})

    try:
        command = parse_reminder_command(text, require_mentions=require_mentions)

        target_usernames = None
        if require_mentions:
            target_usernames = expand_mentions(client, command.raw_mentions)
            if not target_usernames:
                raise invalid_format(REMINDER_USAGE)
    except InvalidCommandError as e:
        logger.log(f"Validation Error: {e}")
        return slash_response(str(e))

    if target_usernames is None:
        content = PlainText(command.body)
    else:
        content = Structured(command.body, target_usernames)

    message = build_announcement(command.date_text, command.body, target_usernames)
    try:
        new_post = client.create_post(channel_id, message)
    except MattermostError as e:
        logger.error(f"Failed to create post: {e}")
        new_post = None
    if not new_post or not new_post.get('id'):
        return slash_response("Failed to create post in Mattermost", status_code=500)

    post_id = new_post['id']
    reminder = Reminder(
        post_id=post_id,
        channel_id=channel_id,
        due_date=command.due_date,
        content=serialize_content(content),
    )
    try:
        store.upsert(reminder)
    except ReminderStoreError as e:
        logger.error(f"upsertError: {e}")
        return slash_response(str(e), status_code=500)
    logger.log(f"Saved reminder {post_id} due {reminder.due_date.isoformat()}.")

    if append_stop_hint:
        try:
            client.patch_post(post_id, message + build_stop_hint(post_id))
        except MattermostError as e:
            logger.error(f"Could not append stop hint to {post_id}: {e}")

    return slash_response(build_success_text(command.date_text, target_usernames))
