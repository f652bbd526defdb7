# tests/test_reminder_cron.py
import json
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from lambdas.reminder_cron import app as cron_app
from lambdas.reminder_cron.app import (
    COMPLETED,
    NOTIFIED,
    SILENT,
    SKIPPED,
    ReminderEvaluator,
    run_reminder_check,
)
from lambdas.reminder_cron.policy import build_reminder_message, days_until_due, should_remind
from lambdas.shared.mattermost import MattermostError
from lambdas.shared.models import Reminder, Structured, serialize_content

DUE = date(2025, 3, 10)
CHANNEL = "chan0000000000000000000001"


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


# 2025-03-10 00:00 JST is 2025-03-09 15:00 UTC
@pytest.mark.parametrize("now, expected", [
    (utc(2025, 3, 2, 15, 0), 7),
    (utc(2025, 3, 5, 15, 0), 4),
    (utc(2025, 3, 6, 15, 0), 3),
    (utc(2025, 3, 8, 16, 0), 1),
    (utc(2025, 3, 9, 15, 0), 0),
    (utc(2025, 3, 10, 3, 0), 0),
    (utc(2025, 3, 11, 3, 0), -1),
])
def test_days_until_due_counts_to_local_midnight(now, expected):
    assert days_until_due(DUE, now) == expected


def test_days_until_due_honours_offset():
    assert days_until_due(DUE, utc(2025, 3, 9, 12, 0), utc_offset_hours=0) == 1


@pytest.mark.parametrize("diff, expected", [
    (8, False), (7, True), (6, False), (5, True), (4, False),
    (3, True), (2, True), (1, True), (0, True), (-1, True), (-30, True),
])
def test_should_remind_schedule(diff, expected):
    assert should_remind(diff) is expected


def test_reminder_messages():
    mentions = ["@alice", "@bob"]
    assert build_reminder_message(3, "2025-03-10", mentions) == \
        '締切日 (2025-03-10) まであと 3日です！まだ "done" がついていない対象者: @alice @bob'
    assert build_reminder_message(0, "2025-03-10", mentions).startswith("今日は締切日 (2025-03-10) です！")
    assert build_reminder_message(-2, "2025-03-10", mentions).startswith("締切日 (2025-03-10) を2日過ぎています。")


@pytest.fixture
def explicit_reminder(mattermost, store):
    """An announcement post for alice and bob plus its row, as /reminder leaves them."""
    post = mattermost.create_post(CHANNEL, "announcement")
    reminder = Reminder(post["id"], CHANNEL, DUE, serialize_content(Structured("Ship", ["alice", "bob"])))
    store.upsert(reminder)
    return reminder


def evaluator_at(now, mattermost, store, logger, mentor_group_id=""):
    return ReminderEvaluator(mattermost, store, logger, now=now, mentor_group_id=mentor_group_id)


def test_four_days_out_is_silent_three_days_out_notifies(mattermost, store, logger, explicit_reminder):
    assert evaluator_at(utc(2025, 3, 5, 15, 0), mattermost, store, logger).evaluate(explicit_reminder) == SILENT
    assert mattermost.replies_to(explicit_reminder.post_id) == []

    assert evaluator_at(utc(2025, 3, 6, 15, 0), mattermost, store, logger).evaluate(explicit_reminder) == NOTIFIED
    replies = mattermost.replies_to(explicit_reminder.post_id)
    assert len(replies) == 1
    assert replies[0]["message"] == '締切日 (2025-03-10) まであと 3日です！まだ "done" がついていない対象者: @alice @bob'


def test_only_pending_targets_are_mentioned(mattermost, store, logger, explicit_reminder):
    mattermost.react(explicit_reminder.post_id, "alice")

    outcome = evaluator_at(utc(2025, 3, 8, 16, 0), mattermost, store, logger).evaluate(explicit_reminder)

    assert outcome == NOTIFIED
    message = mattermost.replies_to(explicit_reminder.post_id)[0]["message"]
    assert message.endswith("対象者: @bob")
    assert "@alice" not in message


def test_done_on_a_thread_reply_counts(mattermost, store, logger, explicit_reminder):
    reply = mattermost.post_reply(CHANNEL, explicit_reminder.post_id, "done!")
    mattermost.react(reply["id"], "alice")
    mattermost.react(explicit_reminder.post_id, "bob")

    outcome = evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger).evaluate(explicit_reminder)

    assert outcome == COMPLETED


def test_other_emojis_do_not_count(mattermost, store, logger, explicit_reminder):
    mattermost.react(explicit_reminder.post_id, "alice", "thumbsup")
    evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger).evaluate(explicit_reminder)
    assert "@alice" in mattermost.replies_to(explicit_reminder.post_id)[0]["message"]


def test_unknown_usernames_stay_pending(mattermost, store, logger):
    post = mattermost.create_post(CHANNEL, "announcement")
    reminder = Reminder(post["id"], CHANNEL, DUE, serialize_content(Structured("x", ["@alice", "ghost"])))
    mattermost.react(post["id"], "alice")

    evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger).evaluate(reminder)

    assert mattermost.replies_to(post["id"])[0]["message"].endswith("対象者: @ghost")


def test_deleted_root_post_completes_reminder(mattermost, store, table, logger, explicit_reminder):
    mattermost.posts[explicit_reminder.post_id]["delete_at"] = 1741500000000

    outcome = evaluator_at(utc(2025, 3, 6, 15, 0), mattermost, store, logger).evaluate(explicit_reminder)

    assert outcome == COMPLETED
    assert table.items[explicit_reminder.post_id]["completed"] is True


def test_missing_root_post_completes_reminder(mattermost, store, table, logger):
    reminder = Reminder("gone0000000000000000000000", CHANNEL, DUE, "x")
    store.upsert(reminder)

    assert evaluator_at(utc(2025, 3, 6, 15, 0), mattermost, store, logger).evaluate(reminder) == COMPLETED
    assert table.items[reminder.post_id]["completed"] is True


def test_legacy_reminder_targets_mentor_group(mattermost, store, logger):
    mattermost.add_group("gid-mentors", "mentors", ["bob", "carol"])
    post = mattermost.create_post(CHANNEL, "announcement")
    reminder = Reminder(post["id"], CHANNEL, DUE, "Review slides")
    mattermost.react(post["id"], "carol")

    evaluator = evaluator_at(utc(2025, 3, 11, 3, 0), mattermost, store, logger, mentor_group_id="gid-mentors")
    assert evaluator.evaluate(reminder) == NOTIFIED

    message = mattermost.replies_to(post["id"])[0]["message"]
    assert message == '締切日 (2025-03-10) を1日過ぎています。まだ "done" がついていない対象者: @bob'


def test_empty_mentor_group_skips_instead_of_completing(mattermost, store, table, logger):
    post = mattermost.create_post(CHANNEL, "announcement")
    reminder = Reminder(post["id"], CHANNEL, DUE, "Review slides")
    store.upsert(reminder)

    outcome = evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger).evaluate(reminder)

    assert outcome == SKIPPED
    assert "completed" not in table.items[post["id"]]


def test_mentor_list_is_fetched_once_per_run(mattermost, store, logger):
    mattermost.add_group("gid-mentors", "mentors", ["bob"])
    reminders = []
    for _ in range(3):
        post = mattermost.create_post(CHANNEL, "announcement")
        reminders.append(Reminder(post["id"], CHANNEL, DUE, "Review"))

    evaluator = evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger, mentor_group_id="gid-mentors")
    with patch.object(mattermost, "list_group_users", wraps=mattermost.list_group_users) as spy:
        counts = run_reminder_check(evaluator, reminders)

    assert spy.call_count == 1
    assert counts[NOTIFIED] == 3


def test_run_converges_to_completion(mattermost, store, logger, explicit_reminder):
    first = run_reminder_check(evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger), store.list_open())
    assert first[NOTIFIED] == 1

    mattermost.react(explicit_reminder.post_id, "alice")
    mattermost.react(explicit_reminder.post_id, "bob")
    second = run_reminder_check(evaluator_at(utc(2025, 3, 10, 15, 0), mattermost, store, logger), store.list_open())
    assert second[COMPLETED] == 1

    assert store.list_open() == []


def test_one_failing_reminder_does_not_stop_the_run(mattermost, store, logger, explicit_reminder):
    broken = Reminder("broken00000000000000000000", CHANNEL, DUE, "x")
    evaluator = evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger)
    real_get_post = mattermost.get_post

    def get_post(post_id):
        if post_id == broken.post_id:
            raise MattermostError("timeout")
        return real_get_post(post_id)

    with patch.object(mattermost, "get_post", side_effect=get_post):
        counts = run_reminder_check(evaluator, [broken, explicit_reminder])

    assert counts[SKIPPED] == 1
    assert counts[NOTIFIED] == 1


def test_handler_reports_counts(mattermost, store, explicit_reminder):
    settings = SimpleNamespace(utc_offset_hours=9, mattermost_mentor_group_id="", trigger_token="")

    with patch.object(cron_app, "get_settings", return_value=settings), \
         patch.object(cron_app, "client_from_settings", return_value=mattermost), \
         patch.object(cron_app.ReminderStore, "from_settings", return_value=store):
        response = cron_app.handler({}, None)

    body = json.loads(response["body"])
    assert response["statusCode"] == 200
    assert body["message"] == "Reminder check completed."
    assert body["checked"] == 1


def test_unexpected_error_on_one_reminder_is_skipped(mattermost, store, logger, explicit_reminder):
    broken = Reminder("broken00000000000000000000", CHANNEL, DUE, "x")
    evaluator = evaluator_at(utc(2025, 3, 9, 15, 0), mattermost, store, logger)
    real_get_post = mattermost.get_post

    def get_post(post_id):
        if post_id == broken.post_id:
            raise KeyError("username")
        return real_get_post(post_id)

    with patch.object(mattermost, "get_post", side_effect=get_post):
        counts = run_reminder_check(evaluator, [broken, explicit_reminder])

    assert counts[SKIPPED] == 1
    assert counts[NOTIFIED] == 1
    assert len(mattermost.replies_to(explicit_reminder.post_id)) == 1


def run_handler(event, mattermost, store, trigger_token=""):
    settings = SimpleNamespace(utc_offset_hours=9, mattermost_mentor_group_id="", trigger_token=trigger_token)
    with patch.object(cron_app, "get_settings", return_value=settings), \
         patch.object(cron_app, "client_from_settings", return_value=mattermost), \
         patch.object(cron_app.ReminderStore, "from_settings", return_value=store):
        return cron_app.handler(event, None)


def test_handler_ignores_unreadable_rows(mattermost, store, table, explicit_reminder):
    table.items["bad00000000000000000000000"] = {
        "post_id": "bad00000000000000000000000", "channel_id": CHANNEL, "due_date": "2025/03/10", "content": "x",
    }

    response = run_handler({}, mattermost, store)

    assert response["statusCode"] == 200
    assert json.loads(response["body"])["checked"] == 1


def test_http_call_needs_trigger_token(mattermost, store, explicit_reminder):
    event = {"requestContext": {"http": {"method": "POST"}}, "headers": {}}

    assert run_handler(event, mattermost, store, trigger_token="")["statusCode"] == 403
    assert run_handler(event, mattermost, store, trigger_token="s3cret")["statusCode"] == 403

    event["headers"] = {"x-trigger-token": "s3cret"}
    assert run_handler(event, mattermost, store, trigger_token="s3cret")["statusCode"] == 200
