# lambdas/slash_reminder/mentions.py
from typing import List

from lambdas.shared.mattermost import MattermostClient, MattermostError


def normalize_mention(raw: str) -> str:
    return raw.strip().lstrip("@").strip()


def expand_mentions(client: MattermostClient, raw_mentions: List[str]) -> List[str]:
    """
    Resolves @mentions into a deduplicated username list, first seen first.

    Each token is tried as a user, then as a group (expanded to its members).
    Tokens that are neither are kept verbatim so they still show up as pending.
    """
    result: List[str] = []
    seen = set()

    def add(username: str) -> None:
        name = normalize_mention(username)
        if name and name not in seen:
            seen.add(name)
            result.append(name)

    for mention in raw_mentions:
        name = normalize_mention(mention)
        if not name:
            continue

        user = client.get_user_by_username(name)
        if user:
            add(user.get("username") or name)
            continue

        group = client.get_group_by_name(name)
        if group:
            try:
                member_ids = client.get_group_member_ids(group["id"])
                members = client.get_users_by_ids(member_ids)
            except MattermostError as e:
                client.logger.error(f"[expand_mentions] Could not expand group '{name}': {e}")
                add(name)
                continue
            for member in members:
                add(member.get("username", ""))
            continue

        add(name)

    return result
