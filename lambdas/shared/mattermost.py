# lambdas/shared/mattermost.py
"""
Thin client for the Mattermost REST API v4, authenticated with a bot token.

Write operations (create/patch post, upload) raise MattermostError so the
handler can answer with a 500. Lookups used inside loops are best-effort:
they log and return None / [] so one bad item does not abort a batch.
"""
from typing import Dict, List, Optional

import requests

from lambdas.shared.run_logger import RunLogger

UNKNOWN_USERNAME = "unknown"


class MattermostError(Exception):
    """A Mattermost API call failed or returned a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class NotFoundError(MattermostError):
    """The requested resource does not exist (HTTP 404)."""


class UsernameCache:
    """
    user_id -> username memo. Never invalidated; usernames are treated as
    stable for the lifetime of a warm container.
    """

    def __init__(self):
        self._names: Dict[str, str] = {}

    def get(self, user_id: str) -> Optional[str]:
        return self._names.get(user_id)

    def set(self, user_id: str, username: str) -> None:
        self._names[user_id] = username

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._names

    def __len__(self) -> int:
        return len(self._names)


class MattermostClient:

    def __init__(self, base_url: str, token: str, user_cache: Optional[UsernameCache] = None,
                 logger: Optional[RunLogger] = None, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_cache = user_cache if user_cache is not None else UsernameCache()
        self.logger = logger or RunLogger()
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        })

    # Low-level helpers
    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v4{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise MattermostError(f"{method} {path} failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"{method} {path} returned 404", 404, response.text)
        if not response.ok:
            raise MattermostError(
                f"{method} {path} returned {response.status_code}: {response.text}",
                response.status_code,
                response.text,
            )
        return response

    def _json(self, method: str, path: str, **kwargs):
        response = self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise MattermostError(
                f"{method} {path} returned a non-JSON body: {response.text[:200]}",
                response.status_code,
                response.text,
            ) from e

    # Channels
    def list_team_channels(self, team_id: str, per_page: int = 200) -> List[dict]:
        return self._json("GET", f"/teams/{team_id}/channels", params={"per_page": per_page}) or []

    def get_channel(self, channel_id: str) -> dict:
        return self._json("GET", f"/channels/{channel_id}")

    def get_channel_posts(self, channel_id: str, per_page: int = 200) -> dict:
        """Returns the raw post list: {"order": [ids newest first], "posts": {id: post}}."""
        return self._json("GET", f"/channels/{channel_id}/posts", params={"per_page": per_page}) or {}

    # Posts
    def get_post(self, post_id: str) -> dict:
        """Raises NotFoundError when the post does not exist."""
        return self._json("GET", f"/posts/{post_id}")

    def get_thread_post_ids(self, post_id: str) -> List[str]:
        """Ids of the root post and all replies. Falls back to just the given id."""
        try:
            thread = self._json("GET", f"/posts/{post_id}/thread")
        except MattermostError as e:
            self.logger.error(f"[get_thread_post_ids] {e}")
            return [post_id]
        order = thread.get("order") or []
        if post_id not in order:
            order = [post_id] + order
        return order

    def get_reactions(self, post_id: str) -> List[dict]:
        """[{user_id, post_id, emoji_name, create_at}, ...]; [] when none or on failure."""
        try:
            return self._json("GET", f"/posts/{post_id}/reactions") or []
        except MattermostError as e:
            self.logger.error(f"[get_reactions] {e}")
            return []

    def create_post(self, channel_id: str, message: str, root_id: Optional[str] = None,
                    file_ids: Optional[List[str]] = None) -> dict:
        body = {"channel_id": channel_id, "message": message}
        if root_id:
            body["root_id"] = root_id
        if file_ids:
            body["file_ids"] = file_ids
        return self._json("POST", "/posts", json=body)

    def post_reply(self, channel_id: str, root_id: str, message: str) -> dict:
        return self.create_post(channel_id, message, root_id=root_id)

    def patch_post(self, post_id: str, message: str) -> dict:
        return self._json("PUT", f"/posts/{post_id}/patch", json={"message": message})

    def upload_file(self, channel_id: str, file_name: str, data: bytes, mime_type: str = "image/png") -> str:
        """Uploads one file and returns its id for use in `file_ids`."""
        result = self._json(
            "POST",
            "/files",
            data={"channel_id": channel_id},
            files={"files": (file_name, data, mime_type)},
        )
        file_infos = result.get("file_infos") or []
        if file_infos and file_infos[0].get("id"):
            return file_infos[0]["id"]
        if result.get("file_ids"):
            return result["file_ids"][0]
        if result.get("id"):
            return result["id"]
        raise MattermostError(f"Upload response carried no file id: {result}")

    # Users and groups
    def get_username(self, user_id: str) -> str:
        """Memoized id -> username; failures resolve (and are cached) as 'unknown'."""
        cached = self.user_cache.get(user_id)
        if cached:
            return cached
        try:
            username = self._json("GET", f"/users/{user_id}").get("username") or UNKNOWN_USERNAME
        except MattermostError as e:
            self.logger.error(f"[get_username] Failed to fetch user data for {user_id}: {e}")
            username = UNKNOWN_USERNAME
        self.user_cache.set(user_id, username)
        return username

    def get_user_by_username(self, username: str) -> Optional[dict]:
        try:
            return self._json("GET", f"/users/username/{username}")
        except NotFoundError:
            return None
        except MattermostError as e:
            self.logger.error(f"[get_user_by_username] {e}")
            return None

    def get_users_by_ids(self, user_ids: List[str]) -> List[dict]:
        if not user_ids:
            return []
        return self._json("POST", "/users/ids", json=list(user_ids)) or []

    def get_users_by_usernames(self, usernames: List[str]) -> List[dict]:
        if not usernames:
            return []
        return self._json("POST", "/users/usernames", json=list(usernames)) or []

    def get_group_by_name(self, name: str) -> Optional[dict]:
        try:
            groups = self._json(
                "GET",
                "/groups",
                params={"q": name, "filter_allow_reference": "true", "per_page": 100},
            ) or []
        except MattermostError as e:
            self.logger.error(f"[get_group_by_name] {e}")
            return None
        for group in groups:
            if group.get("name") == name:
                return group
        return None

    def get_group_member_ids(self, group_id: str) -> List[str]:
        data = self._json("GET", f"/groups/{group_id}/members", params={"per_page": 200}) or {}
        return [member["id"] for member in data.get("members") or [] if member.get("id")]

    def list_group_users(self, group_id: str) -> List[dict]:
        """[{id, username}] for every member of a group; [] on failure."""
        try:
            users = self._json("GET", "/users", params={"in_group": group_id, "per_page": 200}) or []
        except MattermostError as e:
            self.logger.error(f"[list_group_users] Failed to fetch group members: {e}")
            return []
        return [{"id": u["id"], "username": u["username"]} for u in users]


def client_from_settings(settings, logger: Optional[RunLogger] = None,
                         user_cache: Optional[UsernameCache] = None) -> MattermostClient:
    return MattermostClient(
        settings.mattermost_url,
        settings.mattermost_bot_token,
        user_cache=user_cache,
        logger=logger,
        timeout=settings.http_timeout_seconds,
    )
