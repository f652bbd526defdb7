# tests/conftest.py
from urllib.parse import urlencode

import pytest

from lambdas.shared.mattermost import NotFoundError
from lambdas.shared.reminder_store import ReminderStore
from lambdas.shared.run_logger import RunLogger


class FakeTable:
    """
    In-memory stand-in for a DynamoDB Table resource keyed by post_id.
    scan() applies the open-reminder filter itself instead of parsing the expression.
    """

    def __init__(self):
        self.items = {}

    def put_item(self, Item):
        self.items[Item["post_id"]] = dict(Item)

    def get_item(self, Key):
        item = self.items.get(Key["post_id"])
        return {"Item": dict(item)} if item else {}

    def scan(self, FilterExpression=None, ExclusiveStartKey=None):
        return {"Items": [dict(i) for i in self.items.values() if not i.get("completed")]}

    def update_item(self, Key, UpdateExpression, ExpressionAttributeValues):
        item = self.items[Key["post_id"]]
        item["completed"] = ExpressionAttributeValues[":done"]
        item["updated_at"] = ExpressionAttributeValues[":now"]


class FakeMattermost:
    """Just enough of MattermostClient to drive the reminder flows end to end."""

    def __init__(self):
        self.logger = RunLogger()
        self.posts = {}
        self.reactions = {}
        self.users = {}
        self.groups = {}
        self.group_users = {}
        self.created = []
        self.patched = []
        self._next_id = 0

    # users / groups
    def add_user(self, user_id, username):
        user = {"id": user_id, "username": username}
        self.users[username] = user
        return user

    def add_group(self, group_id, name, usernames):
        self.groups[name] = {"id": group_id, "name": name, "member_ids": [self.users[u]["id"] for u in usernames]}
        self.group_users[group_id] = [self.users[u] for u in usernames]

    def get_user_by_username(self, username):
        return self.users.get(username)

    def get_group_by_name(self, name):
        return self.groups.get(name)

    def get_group_member_ids(self, group_id):
        for group in self.groups.values():
            if group["id"] == group_id:
                return list(group["member_ids"])
        return []

    def get_users_by_ids(self, user_ids):
        return [u for u in self.users.values() if u["id"] in user_ids]

    def get_users_by_usernames(self, usernames):
        return [self.users[name] for name in usernames if name in self.users]

    def list_group_users(self, group_id):
        return list(self.group_users.get(group_id, []))

    # posts
    def create_post(self, channel_id, message, root_id=None, file_ids=None):
        self._next_id += 1
        post_id = f"post{self._next_id:022d}"
        post = {"id": post_id, "channel_id": channel_id, "message": message, "root_id": root_id or "", "delete_at": 0}
        self.posts[post_id] = post
        self.created.append(post)
        return post

    def post_reply(self, channel_id, root_id, message):
        return self.create_post(channel_id, message, root_id=root_id)

    def patch_post(self, post_id, message):
        self.posts[post_id]["message"] = message
        self.patched.append(post_id)
        return self.posts[post_id]

    def get_post(self, post_id):
        if post_id not in self.posts:
            raise NotFoundError(f"GET /posts/{post_id} returned 404", 404)
        return self.posts[post_id]

    def get_thread_post_ids(self, post_id):
        return [post_id] + [pid for pid, p in self.posts.items() if p["root_id"] == post_id]

    def get_reactions(self, post_id):
        return list(self.reactions.get(post_id, []))

    def react(self, post_id, username, emoji_name="done"):
        self.reactions.setdefault(post_id, []).append(
            {"post_id": post_id, "user_id": self.users[username]["id"], "emoji_name": emoji_name}
        )

    def replies_to(self, root_id):
        return [p for p in self.created if p["root_id"] == root_id]


def slash_event(text, token="secret", channel_id="chan0000000000000000000001"):
    """What a function URL hands the lambda for a Mattermost slash command."""
    fields = {"token": token, "text": text}
    if channel_id is not None:
        fields["channel_id"] = channel_id
    return {
        "requestContext": {"http": {"method": "POST"}},
        "body": urlencode(fields),
        "isBase64Encoded": False,
    }


@pytest.fixture
def logger() -> RunLogger:
    return RunLogger(collect=True)


@pytest.fixture
def table() -> FakeTable:
    return FakeTable()


@pytest.fixture
def store(table) -> ReminderStore:
    return ReminderStore(table)


@pytest.fixture
def mattermost() -> FakeMattermost:
    client = FakeMattermost()
    client.add_user("uid-alice", "alice")
    client.add_user("uid-bob", "bob")
    client.add_user("uid-carol", "carol")
    return client
