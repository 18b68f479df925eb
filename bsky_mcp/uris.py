"""
Post references: AT URIs and web links to posts.

Accepted forms:
- at://did:plc:h25avmes6g7fgcddc3xj7qmg/app.bsky.feed.post/3loxuoxb5ts2w
- at://alice.bsky.social/app.bsky.feed.post/3loxuoxb5ts2w
- https://bsky.app/profile/did:plc:h25avmes6g7fgcddc3xj7qmg/post/3loxuoxb5ts2w
- https://deer.social/profile/alice.bsky.social/post/3loxuoxb5ts2w
"""

import re
from typing import NamedTuple, Optional

from .session import BlueskySession, POST_COLLECTION
from .errors import ToolValidationError

AT_URI_REGEX = r"^at://([^/]+)/([^/]+)/([^/]+)/?$"
WEB_POST_REGEX = r"^https?://(?:www\.)?(?:bsky\.app|deer\.social)/profile/([^/]+)/post/([^/?#]+)/?(?:[?#].*)?$"


class AtUri(NamedTuple):
    authority: str
    collection: str
    rkey: str

    def __str__(self) -> str:
        return f"at://{self.authority}/{self.collection}/{self.rkey}"


def parse_post_reference(reference: str) -> Optional[AtUri]:
    """
    Parse an AT URI or web post URL into its parts.

    Args:
        reference: AT URI or bsky.app / deer.social post URL

    Returns:
        The parsed AT URI if successful, None otherwise
    """
    reference = reference.strip()

    at_match = re.match(AT_URI_REGEX, reference)
    if at_match:
        return AtUri(at_match.group(1), at_match.group(2), at_match.group(3))

    web_match = re.match(WEB_POST_REGEX, reference)
    if web_match:
        return AtUri(web_match.group(1), POST_COLLECTION, web_match.group(2))

    return None


def check_post_reference(reference: str) -> AtUri:
    """
    Parse a post reference, rejecting anything that does not name a post.

    Raises:
        ValueError: If the reference is malformed or points at another collection
    """
    uri = parse_post_reference(reference)
    if uri is None:
        raise ValueError(f"Invalid post reference: {reference}")
    if uri.collection != POST_COLLECTION:
        raise ValueError(f"Not a post reference: {reference}")
    return uri


def resolve_post_uri(session: BlueskySession, reference: str) -> str:
    """Normalize a post reference to an AT URI with a DID authority."""
    try:
        uri = check_post_reference(reference)
    except ValueError as e:
        raise ToolValidationError(str(e)) from e

    if not uri.authority.startswith("did:"):
        uri = uri._replace(authority=session.resolve_handle(uri.authority.lstrip("@")))
    return str(uri)
