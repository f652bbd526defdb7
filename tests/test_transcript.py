# tests/test_transcript.py
from unittest.mock import MagicMock

import pytest

from lambdas.channel_summary.time_window import TimeWindow
from lambdas.channel_summary.transcript import (
    build_transcript,
    fetch_posts_in_range,
    format_channel_link,
    is_restricted_channel,
    remove_mentions,
    select_updated_channels,
)
from lambdas.shared.mattermost import MattermostError
from lambdas.shared.run_logger import RunLogger

WINDOW = TimeWindow(start_ms=1000, end_ms=2000, label="昨日", date_label="2025-03-09 (JST)")


def channel(channel_id, **overrides):
    return {
        "id": channel_id,
        "type": "O",
        "name": f"name-{channel_id}",
        "display_name": f"Display {channel_id}",
        "last_post_at": 1500,
        "purpose": "",
        "header": "",
        **overrides,
    }


def post(post_id, create_at, message, user_id="u1", root_id=""):
    return {"id": post_id, "create_at": create_at, "message": message, "user_id": user_id, "root_id": root_id}


@pytest.fixture
def client():
    client = MagicMock()
    client.logger = RunLogger()
    client.get_reactions.return_value = []
    client.get_username.side_effect = lambda user_id: {"u1": "alice", "u2": "bob"}.get(user_id, "unknown")
    return client


def test_remove_mentions():
    assert remove_mentions("thanks @alice and @bob.smith!") == "thanks alice and bob.smith!"


def test_channel_link():
    assert format_channel_link("https://mm.example.com/", "mitoujr", "General", "general") == \
        "[General](https://mm.example.com/mitoujr/channels/general)"


def test_channel_selection():
    channels = [
        channel("keep"),
        channel("private", type="P"),
        channel("stale", last_post_at=999),
        channel("summary"),
        channel("notify", display_name="Bot Notification feed"),
    ]
    selected = select_updated_channels(channels, WINDOW, summary_channel_id="summary")
    assert [c["id"] for c in selected] == ["keep"]


@pytest.mark.parametrize("field", ["purpose", "header"])
def test_restriction_marker_in_purpose_or_header(field):
    assert is_restricted_channel(channel("c", **{field: "🈲 internal"}))
    assert is_restricted_channel(channel("c", **{field: "do not share 🚫"}))
    assert not is_restricted_channel(channel("c"))


def test_posts_are_windowed_and_sorted_oldest_first(client):
    client.get_channel_posts.return_value = {
        "order": ["p3", "p2", "p1", "p0"],
        "posts": {
            "p0": post("p0", 999, "too early"),
            "p1": post("p1", 1000, "first"),
            "p2": post("p2", 1500, "second"),
            "p3": post("p3", 2000, "too late"),
        },
    }

    posts = fetch_posts_in_range(client, channel("c1"), WINDOW)

    assert [p["id"] for p in posts] == ["p1", "p2"]


def test_restricted_threads_are_dropped(client):
    client.get_channel_posts.return_value = {
        "order": ["r2", "r1", "ok"],
        "posts": {
            "r1": post("r1", 1100, "  🈲 secret plans"),
            "r2": post("r2", 1200, "reply in secret thread", root_id="r1"),
            "ok": post("ok", 1300, "public"),
        },
    }

    posts = fetch_posts_in_range(client, channel("c1"), WINDOW)

    assert [p["id"] for p in posts] == ["ok"]


def test_reactions_are_appended(client):
    client.get_channel_posts.return_value = {"order": ["p1"], "posts": {"p1": post("p1", 1100, "shipped")}}
    client.get_reactions.return_value = [{"emoji_name": "tada", "user_id": "u2"}]

    posts = fetch_posts_in_range(client, channel("c1"), WINDOW)

    assert posts[0]["message"] == "shipped\n\n---\nReactions:\n:tada: by @bob"


def test_channel_fetch_failure_yields_nothing(client):
    client.get_channel_posts.side_effect = MattermostError("boom")
    assert fetch_posts_in_range(client, channel("c1"), WINDOW) == []


def test_restricted_channel_is_never_fetched(client):
    assert fetch_posts_in_range(client, channel("c1", purpose="🚫"), WINDOW) == []
    client.get_channel_posts.assert_not_called()


def test_transcript_blocks(client):
    client.get_channel_posts.side_effect = lambda channel_id: {
        "c1": {"order": ["p1"], "posts": {"p1": post("p1", 1100, "hi @bob")}},
        "c2": {"order": [], "posts": {}},
    }[channel_id]

    transcript = build_transcript(client, [channel("c1"), channel("c2")], WINDOW, "https://mm.example.com", "mitoujr")

    assert transcript == (
        "\n【チャンネル】[Display c1](https://mm.example.com/mitoujr/channels/name-c1)\n"
        "  - alice: hi bob\n"
        "\n"
    )
