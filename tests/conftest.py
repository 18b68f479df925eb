"""
Shared fixtures: an in-memory stand-in for the Bluesky session.
"""

import pytest

from bsky_mcp.dispatcher import ToolDispatcher
from bsky_mcp.errors import RemoteError
from bsky_mcp.tools import registry

ME = "did:plc:me"


def post_view(uri, cid, author_did, text="hello", reply=None):
    record = {"$type": "app.bsky.feed.post", "text": text, "createdAt": "2024-05-01T12:00:00.000Z"}
    if reply:
        record["reply"] = reply
    return {"uri": uri, "cid": cid, "author": {"did": author_did, "handle": "someone.bsky.social"}, "record": record}


class FakeSession:
    """Records every call; serves canned data."""

    did = ME
    handle = "me.bsky.social"

    def __init__(self):
        self.calls = []
        self.profiles = {}
        self.feed = []
        self.threads = {}
        self.notifications = []
        self.search_results = []
        self.handles = {}
        self.created = []
        self.errors = {}

    def _record(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.errors:
            raise self.errors[name]

    def get_profile(self, actor):
        self._record("get_profile", actor)
        if actor not in self.profiles:
            raise RemoteError("Profile not found", status_code=400)
        return self.profiles[actor]

    def get_author_feed(self, actor, limit, cursor=None, filter=None):
        self._record("get_author_feed", actor, limit, cursor, filter)
        return {"feed": self.feed[:limit], "cursor": "feed-cursor"}

    def get_post_thread(self, uri, depth=None, parent_height=None):
        self._record("get_post_thread", uri, depth, parent_height)
        thread = self.threads.get(uri)
        if isinstance(thread, Exception):
            raise thread
        if thread is None:
            raise RemoteError(f"Post not found: {uri}", status_code=400)
        return {"thread": thread}

    def search_posts(self, query, limit, cursor=None, sort=None):
        self._record("search_posts", query, limit, cursor, sort)
        return {"posts": self.search_results[:limit], "hitsTotal": len(self.search_results)}

    def list_notifications(self, limit, cursor=None):
        self._record("list_notifications", limit, cursor)
        return {"notifications": self.notifications[:limit], "cursor": "notif-cursor"}

    def resolve_handle(self, handle):
        self._record("resolve_handle", handle)
        if handle not in self.handles:
            raise RemoteError(f"Unable to resolve handle: {handle}", status_code=400)
        return self.handles[handle]

    def create_post(self, record):
        self._record("create_post", record)
        self.created.append(record)
        return {"uri": f"at://{ME}/app.bsky.feed.post/new{len(self.created)}", "cid": "bafynew"}


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def dispatcher(session):
    return ToolDispatcher(session, registry)
