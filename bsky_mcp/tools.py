"""
Bluesky tools exposed over MCP.

## Tools Provided

- `get_did`: DID of the logged-in account
- `get_profile`: Profile view of an actor
- `get_author_feed`: One page of an actor's posts and reposts
- `get_post_thread`: A post with its parents and replies
- `search_posts`: Full-text post search
- `list_notifications`: One page of notifications
- `get_unreplied_mentions`: Mentions the account has not replied to yet
- `create_post`: Publish a post or a reply

Paginated tools return a `cursor`; pass it back to fetch the next page.
"""

import sys
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Literal

from pydantic import Field, field_validator

from .dispatcher import ToolParams, ToolRegistry
from .errors import RemoteError
from .richtext import detect_facets, grapheme_length
from .session import BlueskySession, POST_COLLECTION
from .uris import check_post_reference, resolve_post_uri

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MAX_POST_LENGTH = 300
MAX_POST_BYTES = 3000

registry = ToolRegistry()


class NoParams(ToolParams):
    pass


class ActorParams(ToolParams):
    actor: str = Field(description="Handle or DID of account to fetch profile of")


class PageParams(ToolParams):
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT, description="Limit for the number of items to fetch")
    cursor: Optional[str] = Field(default=None, description="Pagination cursor returned by a previous call")


class AuthorFeedParams(PageParams):
    actor: str = Field(description="Handle or DID of account to fetch author feed of")
    filter: Optional[Literal[
        "posts_with_replies",
        "posts_no_replies",
        "posts_with_media",
        "posts_and_author_threads",
    ]] = Field(default=None, description="Combinations of post/repost types to include")


class PostThreadParams(ToolParams):
    uri: str = Field(description="AT URI or bsky.app URL of the post")
    depth: int = Field(default=6, ge=0, le=1000, description="How many levels of reply depth to include")
    parent_height: int = Field(default=80, ge=0, le=1000, description="How many levels of parent posts to include")

    @field_validator("uri")
    @classmethod
    def uri_must_name_a_post(cls, value: str) -> str:
        check_post_reference(value)
        return value


class SearchPostsParams(PageParams):
    query: str = Field(min_length=1, description="Search query string")
    sort: Optional[Literal["top", "latest"]] = Field(default=None, description="Ranking order of results")


class CreatePostParams(ToolParams):
    text: str = Field(description=f"Text content of the post, at most {MAX_POST_LENGTH} characters (graphemes)")
    reply_to: Optional[str] = Field(default=None, description="Optional AT URI or bsky.app URL of the post to reply to")
    facets: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Optional app.bsky.richtext.facet objects; links, mentions and tags are detected from the text when omitted",
    )

    @field_validator("text")
    @classmethod
    def text_fits_in_a_post(cls, value: str) -> str:
        length = grapheme_length(value)
        if length > MAX_POST_LENGTH:
            raise ValueError(f"Post is {length} characters long, the limit is {MAX_POST_LENGTH}")
        size = len(value.encode("UTF-8"))
        if size > MAX_POST_BYTES:
            raise ValueError(f"Post is {size} bytes long, the limit is {MAX_POST_BYTES}")
        return value

    @field_validator("reply_to")
    @classmethod
    def reply_to_must_name_a_post(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            check_post_reference(value)
        return value


@registry.tool(NoParams)
def get_did(session: BlueskySession, params: NoParams) -> str:
    """Get the current user DID"""
    return session.did


@registry.tool(ActorParams)
def get_profile(session: BlueskySession, params: ActorParams) -> Dict[str, Any]:
    """Get detailed profile view of an actor"""
    return session.get_profile(params.actor)


@registry.tool(AuthorFeedParams)
def get_author_feed(session: BlueskySession, params: AuthorFeedParams) -> Dict[str, Any]:
    """Get a view of an actor's 'author feed' (post and reposts by the author)"""
    output = session.get_author_feed(params.actor, params.limit, cursor=params.cursor, filter=params.filter)
    return {"feed": output.get("feed", []), "cursor": output.get("cursor")}


@registry.tool(PostThreadParams)
def get_post_thread(session: BlueskySession, params: PostThreadParams) -> Dict[str, Any]:
    """Get a post and its thread of parents and replies"""
    uri = resolve_post_uri(session, params.uri)
    output = session.get_post_thread(uri, depth=params.depth, parent_height=params.parent_height)
    return {"thread": output.get("thread")}


@registry.tool(SearchPostsParams)
def search_posts(session: BlueskySession, params: SearchPostsParams) -> Dict[str, Any]:
    """Find posts matching search criteria"""
    output = session.search_posts(params.query, params.limit, cursor=params.cursor, sort=params.sort)
    return {
        "posts": output.get("posts", []),
        "cursor": output.get("cursor"),
        "hits_total": output.get("hitsTotal"),
    }


@registry.tool(PageParams)
def list_notifications(session: BlueskySession, params: PageParams) -> Dict[str, Any]:
    """List notifications of the current user"""
    output = session.list_notifications(params.limit, cursor=params.cursor)
    return {"notifications": output.get("notifications", []), "cursor": output.get("cursor")}


def has_reply_from(session: BlueskySession, uri: str, did: str) -> bool:
    """Check whether `did` authored a direct reply to the post at `uri`."""
    thread = session.get_post_thread(uri, depth=1, parent_height=0).get("thread") or {}
    if "post" not in thread:
        raise RemoteError(f"Post is not available: {uri}")
    for reply in thread.get("replies") or []:
        author = (reply.get("post") or {}).get("author") or {}
        if author.get("did") == did:
            return True
    return False


@registry.tool(PageParams)
def get_unreplied_mentions(session: BlueskySession, params: PageParams) -> Dict[str, Any]:
    """
    List mentions of the current user that have no direct reply from the user yet.

    One page of notifications is fetched and filtered to mentions; each mention's
    thread is then checked for a direct reply by the current user. Replies further
    down the thread do not count. A mention whose thread cannot be fetched is
    left out of the result.
    """
    output = session.list_notifications(params.limit, cursor=params.cursor)
    me = session.did

    unreplied = []
    for notification in output.get("notifications", []):
        if notification.get("reason") != "mention":
            continue
        uri = notification.get("uri")
        if not uri:
            continue
        try:
            replied = has_reply_from(session, uri, me)
        except RemoteError as e:
            print(f"[DEBUG] Skipping mention {uri}: {e}", file=sys.stderr)
            continue
        if not replied:
            unreplied.append(notification)

    return {"notifications": unreplied, "cursor": output.get("cursor")}


def build_reply_ref(session: BlueskySession, reference: str) -> Dict[str, Dict[str, str]]:
    """
    Build the reply reference for a post answering `reference`.

    The parent is the target post itself. The root is the target's own thread
    root when the target is a reply, otherwise the target.
    """
    uri = resolve_post_uri(session, reference)
    thread = session.get_post_thread(uri, depth=0, parent_height=0).get("thread") or {}
    post = thread.get("post")
    if not post:
        raise RemoteError(f"Reply target not found: {reference}")

    parent = {"uri": post["uri"], "cid": post["cid"]}
    root = ((post.get("record") or {}).get("reply") or {}).get("root") or parent
    return {
        "root": {"uri": root["uri"], "cid": root["cid"]},
        "parent": parent,
    }


@registry.tool(CreatePostParams)
def create_post(session: BlueskySession, params: CreatePostParams) -> Dict[str, Any]:
    """Post a new message"""
    record: Dict[str, Any] = {
        "$type": POST_COLLECTION,
        "text": params.text,
        "createdAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }

    if params.reply_to:
        record["reply"] = build_reply_ref(session, params.reply_to)

    facets = params.facets
    if facets is None:
        facets = detect_facets(params.text, session.resolve_handle)
    if facets:
        record["facets"] = facets

    return session.create_post(record)
