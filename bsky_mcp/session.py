"""
Authenticated access to the Bluesky service.

Tools talk to Bluesky only through the `BlueskySession` interface so tests can
substitute a fake. `AtprotoSession` is the production implementation built on
the atproto SDK client.
"""

import sys
from functools import wraps
from typing import Dict, Any, Optional, Callable, Protocol

from atproto import Client
from atproto.exceptions import AtProtocolError

from .config import Settings
from .errors import RemoteError, StartupAuthError

POST_COLLECTION = "app.bsky.feed.post"


class BlueskySession(Protocol):
    """Operations the tools need from an authenticated Bluesky session."""

    @property
    def did(self) -> str: ...

    @property
    def handle(self) -> str: ...

    def get_profile(self, actor: str) -> Dict[str, Any]: ...

    def get_author_feed(self, actor: str, limit: int, cursor: Optional[str] = None,
                        filter: Optional[str] = None) -> Dict[str, Any]: ...

    def get_post_thread(self, uri: str, depth: Optional[int] = None,
                        parent_height: Optional[int] = None) -> Dict[str, Any]: ...

    def search_posts(self, query: str, limit: int, cursor: Optional[str] = None,
                     sort: Optional[str] = None) -> Dict[str, Any]: ...

    def list_notifications(self, limit: int, cursor: Optional[str] = None) -> Dict[str, Any]: ...

    def resolve_handle(self, handle: str) -> str: ...

    def create_post(self, record: Dict[str, Any]) -> Dict[str, Any]: ...


def describe_error(error: AtProtocolError) -> str:
    """Build a readable message from an atproto exception."""
    response = getattr(error, "response", None)
    content = getattr(response, "content", None)
    message = getattr(content, "message", None) or getattr(content, "error", None)
    if message:
        return str(message)
    if str(error):
        return str(error)
    return type(error).__name__


def remote_call(func: Callable) -> Callable:
    """Decorator turning atproto exceptions into RemoteError."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except AtProtocolError as e:
            status_code = getattr(getattr(e, "response", None), "status_code", None)
            raise RemoteError(describe_error(e), status_code=status_code) from e
    return wrapper


def _params(**kwargs) -> Dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}


def _to_dict(model: Any) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True, serialize_as_any=True)


class AtprotoSession:
    """BlueskySession backed by a logged-in atproto Client."""

    def __init__(self, client: Client):
        self.client = client

    @property
    def did(self) -> str:
        return self.client.me.did

    @property
    def handle(self) -> str:
        return self.client.me.handle

    @remote_call
    def get_profile(self, actor: str) -> Dict[str, Any]:
        return _to_dict(self.client.app.bsky.actor.get_profile(_params(actor=actor)))

    @remote_call
    def get_author_feed(self, actor: str, limit: int, cursor: Optional[str] = None,
                        filter: Optional[str] = None) -> Dict[str, Any]:
        return _to_dict(self.client.app.bsky.feed.get_author_feed(
            _params(actor=actor, limit=limit, cursor=cursor, filter=filter)
        ))

    @remote_call
    def get_post_thread(self, uri: str, depth: Optional[int] = None,
                        parent_height: Optional[int] = None) -> Dict[str, Any]:
        return _to_dict(self.client.app.bsky.feed.get_post_thread(
            _params(uri=uri, depth=depth, parent_height=parent_height)
        ))

    @remote_call
    def search_posts(self, query: str, limit: int, cursor: Optional[str] = None,
                     sort: Optional[str] = None) -> Dict[str, Any]:
        return _to_dict(self.client.app.bsky.feed.search_posts(
            _params(q=query, limit=limit, cursor=cursor, sort=sort)
        ))

    @remote_call
    def list_notifications(self, limit: int, cursor: Optional[str] = None) -> Dict[str, Any]:
        return _to_dict(self.client.app.bsky.notification.list_notifications(
            _params(limit=limit, cursor=cursor)
        ))

    @remote_call
    def resolve_handle(self, handle: str) -> str:
        return self.client.com.atproto.identity.resolve_handle(_params(handle=handle)).did

    @remote_call
    def create_post(self, record: Dict[str, Any]) -> Dict[str, Any]:
        created = self.client.com.atproto.repo.create_record(
            _params(repo=self.did, collection=POST_COLLECTION, record=record)
        )
        return {"uri": created.uri, "cid": created.cid}


def authenticate(settings: Settings, client_factory: Callable[..., Client] = Client) -> AtprotoSession:
    """
    Log in to Bluesky with the configured credentials.

    Args:
        settings: Loaded settings carrying the identifier and app password
        client_factory: Callable building the atproto client for a service URL

    Returns:
        An authenticated session

    Raises:
        StartupAuthError: If the credentials are missing or the login fails
    """
    if not settings.identifier or not settings.app_password:
        raise StartupAuthError("BLUESKY_IDENTIFIER and BLUESKY_APP_PASSWORD must be set")

    client = client_factory(base_url=settings.service)
    try:
        client.login(settings.identifier, settings.app_password)
    except AtProtocolError as e:
        raise StartupAuthError(f"Login to {settings.service} failed: {describe_error(e)}") from e

    session = AtprotoSession(client)
    print(f"logged in as {session.handle} ({session.did})", file=sys.stderr)
    return session
