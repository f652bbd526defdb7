# lambdas/channel_summary/transcript.py
"""
Turns a window of public channel activity into the plain-text transcript the
LLM summarizes. Channels or threads marked with a restriction glyph never
leave Mattermost.
"""
import re
from typing import Dict, List

from lambdas.channel_summary.time_window import TimeWindow
from lambdas.shared.mattermost import MattermostClient, MattermostError

RESTRICTION_MARKERS = ("🈲", "🚫")
RESERVED_CHANNEL_MARKER = "notification"
PUBLIC_CHANNEL_TYPE = "O"

_MENTION_PATTERN = re.compile(r"@([a-zA-Z0-9._-]+)")


def remove_mentions(text: str) -> str:
    return _MENTION_PATTERN.sub(r"\1", text or "")


def format_channel_link(base_url: str, team_name: str, display_name: str, name: str) -> str:
    return f"[{display_name}]({base_url.rstrip('/')}/{team_name}/channels/{name})"


def is_restricted_channel(channel: dict) -> bool:
    purpose = channel.get("purpose") or ""
    header = channel.get("header") or ""
    return any(marker in purpose or marker in header for marker in RESTRICTION_MARKERS)


def is_restricted_thread(post: dict, posts_by_id: Dict[str, dict]) -> bool:
    root_post = posts_by_id.get(post.get("root_id") or post.get("id"))
    if not root_post:
        return False
    message = (root_post.get("message") or "").lstrip()
    return message.startswith(RESTRICTION_MARKERS)


def select_updated_channels(channels: List[dict], window: TimeWindow, summary_channel_id: str) -> List[dict]:
    return [
        ch for ch in channels
        if ch.get("type") == PUBLIC_CHANNEL_TYPE
        and (ch.get("last_post_at") or 0) >= window.start_ms
        and ch.get("id") != summary_channel_id
        and RESERVED_CHANNEL_MARKER not in (ch.get("display_name") or "").lower()
    ]


def format_reactions(client: MattermostClient, reactions: List[dict]) -> str:
    lines = [f":{r.get('emoji_name')}: by @{client.get_username(r.get('user_id', ''))}" for r in reactions]
    return "\n\n---\nReactions:\n" + "\n".join(lines)


def fetch_posts_in_range(client: MattermostClient, channel: dict, window: TimeWindow) -> List[dict]:
    """
    Posts of one channel inside the window, oldest first, with their
    reactions appended to the message. Any failure yields [] for the channel.
    """
    logger = client.logger
    channel_id = channel["id"]

    if is_restricted_channel(channel):
        logger.log(f"Channel {channel_id} is restricted. Skipping.")
        return []

    try:
        data = client.get_channel_posts(channel_id)
    except MattermostError as e:
        logger.error(f"[fetch_posts_in_range] {e}")
        return []

    posts_by_id = data.get("posts") or {}
    order = data.get("order") or []
    logger.log(f"Total posts in channel {channel_id}: {len(order)}")

    result: List[dict] = []
    restricted_count = 0
    for pid in order:
        post = posts_by_id.get(pid)
        if not post or not (window.start_ms <= post.get("create_at", 0) < window.end_ms):
            continue
        if is_restricted_thread(post, posts_by_id):
            restricted_count += 1
            continue

        message = post.get("message") or ""
        reactions = client.get_reactions(post["id"])
        if reactions:
            message += format_reactions(client, reactions)
        result.append({**post, "message": message})

    result.sort(key=lambda p: p.get("create_at", 0))
    logger.log(f"Posts summary: {restricted_count} restricted, {len(result)} included")
    return result


def build_transcript(client: MattermostClient, channels: List[dict], window: TimeWindow,
                     base_url: str, team_name: str) -> str:
    transcript = ""
    for channel in channels:
        posts = fetch_posts_in_range(client, channel, window)
        if not posts:
            continue

        link = format_channel_link(base_url, team_name, channel.get("display_name", ""), channel.get("name", ""))
        transcript += f"\n【チャンネル】{link}\n"
        for post in posts:
            username = client.get_username(post.get("user_id", ""))
            transcript += f"  - {username}: {remove_mentions(post['message'])}\n"
        transcript += "\n"
    return transcript
