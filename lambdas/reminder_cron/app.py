# lambdas/reminder_cron/app.py
from datetime import datetime, timezone
from typing import List, Optional, Set

from lambdas.reminder_cron.policy import build_reminder_message, days_until_due, should_remind
from lambdas.shared.api_gateway import build_response, is_authorized_trigger, is_preflight, preflight_response
from lambdas.shared.mattermost import MattermostClient, MattermostError, NotFoundError, client_from_settings
from lambdas.shared.models import Reminder
from lambdas.shared.reminder_store import ReminderStore, ReminderStoreError
from lambdas.shared.run_logger import RunLogger
from lambdas.shared.settings import get_settings

DONE_EMOJI = "done"

NOTIFIED = "notified"
COMPLETED = "completed"
SILENT = "silent"
SKIPPED = "skipped"


def _clean_usernames(usernames: List[str]) -> List[str]:
    cleaned: List[str] = []
    for raw in usernames:
        name = str(raw).strip().lstrip("@").strip()
        if name and name not in cleaned:
            cleaned.append(name)
    return cleaned


class ReminderEvaluator:
    """
    Decides, for one open reminder at a time, whether it is finished, needs a
    nudge today, or stays quiet. Mentor-group members are fetched at most once
    per run and only if some reminder relies on them.
    """

    def __init__(self, client: MattermostClient, store: ReminderStore, logger: RunLogger,
                 now: datetime, utc_offset_hours: int = 9, mentor_group_id: str = ""):
        self.client = client
        self.store = store
        self.logger = logger
        self.now = now
        self.utc_offset_hours = utc_offset_hours
        self.mentor_group_id = mentor_group_id
        self._mentors: Optional[List[dict]] = None

    def mentors(self) -> List[dict]:
        if self._mentors is None:
            self._mentors = self.client.list_group_users(self.mentor_group_id) if self.mentor_group_id else []
        return self._mentors

    def done_user_ids(self, post_id: str) -> Set[str]:
        """Everyone who put :done: on the root post or any reply in its thread."""
        done: Set[str] = set()
        for pid in self.client.get_thread_post_ids(post_id):
            for reaction in self.client.get_reactions(pid):
                if reaction.get("emoji_name") == DONE_EMOJI and reaction.get("user_id"):
                    done.add(reaction["user_id"])
        return done

    def pending_mentions(self, reminder: Reminder, done_ids: Set[str]) -> Optional[List[str]]:
        """
        @mentions of targets without a :done: reaction. Usernames that do not
        resolve to a user are always pending. None means the target set could
        not be determined.
        """
        targets = reminder.target_usernames
        if targets:
            cleaned = _clean_usernames(targets)
            users = {u["username"]: u for u in self.client.get_users_by_usernames(cleaned)}
            missing = [f"@{name}" for name in cleaned if name in users and users[name]["id"] not in done_ids]
            unknown = [f"@{name}" for name in cleaned if name not in users]
            return missing + unknown

        mentors = self.mentors()
        if not mentors:
            return None
        return [f"@{m['username']}" for m in mentors if m["id"] not in done_ids]

    def evaluate(self, reminder: Reminder) -> str:
        post_id = reminder.post_id
        try:
            root_post = self.client.get_post(post_id)
            deleted = (root_post.get("delete_at") or 0) > 0
        except NotFoundError:
            deleted = True

        if deleted:
            self.logger.log(f" -> Root post {post_id} is gone. Closing reminder.")
            self.store.mark_completed(post_id)
            return COMPLETED

        diff_days = days_until_due(reminder.due_date, self.now, self.utc_offset_hours)
        done_ids = self.done_user_ids(post_id)

        pending = self.pending_mentions(reminder, done_ids)
        if pending is None:
            self.logger.error(f" -> No mentor list available for {post_id}. Skipping.")
            return SKIPPED

        if not pending:
            self.logger.log(f" -> Everyone is done for {post_id}. Marking completed.")
            self.store.mark_completed(post_id)
            return COMPLETED

        if not should_remind(diff_days):
            self.logger.log(f" -> {post_id}: {diff_days} day(s) left, no reminder today.")
            return SILENT

        message = build_reminder_message(diff_days, reminder.due_date.isoformat(), pending)
        self.client.post_reply(reminder.channel_id, post_id, message)
        self.logger.log(f" -> Reminded {len(pending)} target(s) on {post_id} (diff_days={diff_days}).")
        return NOTIFIED


def run_reminder_check(evaluator: ReminderEvaluator, reminders: List[Reminder]) -> dict:
    """Evaluates every reminder; a failure on one is logged and the run moves on."""
    counts = {NOTIFIED: 0, COMPLETED: 0, SILENT: 0, SKIPPED: 0}
    for i, reminder in enumerate(reminders):
        evaluator.logger.log(f"--- Reminder #{i+1}: {reminder.post_id} (due {reminder.due_date.isoformat()}) ---")
        try:
            outcome = evaluator.evaluate(reminder)
        except (MattermostError, ReminderStoreError) as e:
            evaluator.logger.error(f" -> Could not process reminder {reminder.post_id}: {e}")
            outcome = SKIPPED
        except Exception as e:
            evaluator.logger.error(
                f" -> Unexpected {type(e).__name__} on reminder {reminder.post_id}: {e}"
            )
            outcome = SKIPPED
        counts[outcome] += 1
    return counts


def handler(event: dict, context: object) -> dict:
    """
    Triggered once a day (EventBridge schedule or an HTTP call). Walks every
    open reminder, closes finished ones and nudges pending targets.
    """
    if is_preflight(event or {}):
        return preflight_response()

    logger = RunLogger()
    settings = get_settings()
    if not is_authorized_trigger(event or {}, settings.trigger_token):
        logger.warn("Rejected reminder-cron call without a valid trigger token.")
        return build_response(403, {'error': 'Forbidden'})
    logger.log("--- Reminder cron triggered ---")

    try:
        store = ReminderStore.from_settings(settings, logger)
        reminders = store.list_open()
    except Exception as e:
        logger.error(f"Could not load open reminders: {e}")
        return build_response(500, {'error': str(e)})

    logger.log(f"Found {len(reminders)} open reminder(s).")
    evaluator = ReminderEvaluator(
        client=client_from_settings(settings, logger),
        store=store,
        logger=logger,
        now=datetime.now(timezone.utc),
        utc_offset_hours=settings.utc_offset_hours,
        mentor_group_id=settings.mattermost_mentor_group_id,
    )
    try:
        counts = run_reminder_check(evaluator, reminders)
    except Exception as e:
        logger.error(f"reminder-cron error: {e}")
        return build_response(500, {'error': str(e)})

    return build_response(200, {
        'message': 'Reminder check completed.',
        'checked': len(reminders),
        **counts,
    })
