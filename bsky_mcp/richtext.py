"""
Rich text facet detection for post text.

Facets annotate byte ranges of the UTF-8 encoded text. Links, @mentions and
#hashtags are detected; mentions are only kept when the handle resolves to a DID.
"""

import re
import sys
from typing import Any, Callable, Dict, List

import regex

from .errors import RemoteError

MENTION_REGEX = rb"(?:^|\W)(@([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)"
URL_REGEX = rb"(?:^|\W)(https?://(www\.)?[-a-zA-Z0-9@:%._\+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b([-a-zA-Z0-9()@:%_\+.~#?&//=]*[-a-zA-Z0-9@%_\+~#//=])?)"
TAG_REGEX = rb"(?:^|\s)(#[^\d\s#][^\s#]*)"
TAG_TRAILING_PUNCTUATION = b".,;:!?'\")"
MAX_TAG_LENGTH = 64


def _facet(start: int, end: int, feature: Dict[str, Any]) -> Dict[str, Any]:
    return {"index": {"byteStart": start, "byteEnd": end}, "features": [feature]}


def detect_facets(text: str, resolve_handle: Callable[[str], str]) -> List[Dict[str, Any]]:
    """
    Detect link, mention and tag facets in post text.

    Args:
        text: Post text
        resolve_handle: Callable returning the DID for a handle

    Returns:
        Facets in app.bsky.richtext.facet shape, ordered by byte offset
    """
    text_bytes = text.encode("UTF-8")
    facets = []

    for m in re.finditer(URL_REGEX, text_bytes):
        facets.append(_facet(m.start(1), m.end(1), {
            "$type": "app.bsky.richtext.facet#link",
            "uri": m.group(1).decode("UTF-8"),
        }))
    link_spans = [(f["index"]["byteStart"], f["index"]["byteEnd"]) for f in facets]

    def inside_link(start: int, end: int) -> bool:
        return any(start < link_end and end > link_start for link_start, link_end in link_spans)

    for m in re.finditer(MENTION_REGEX, text_bytes):
        if inside_link(m.start(1), m.end(1)):
            continue
        handle = m.group(1)[1:].decode("UTF-8")
        try:
            did = resolve_handle(handle)
        except RemoteError as e:
            print(f"[DEBUG] Skipping mention @{handle}: {e}", file=sys.stderr)
            continue
        facets.append(_facet(m.start(1), m.end(1), {
            "$type": "app.bsky.richtext.facet#mention",
            "did": did,
        }))

    for m in re.finditer(TAG_REGEX, text_bytes):
        tag = m.group(1).rstrip(TAG_TRAILING_PUNCTUATION)
        tag_text = tag[1:].decode("UTF-8")
        start = m.start(1)
        if not tag_text or len(tag_text) > MAX_TAG_LENGTH or inside_link(start, start + len(tag)):
            continue
        facets.append(_facet(start, start + len(tag), {
            "$type": "app.bsky.richtext.facet#tag",
            "tag": tag_text,
        }))

    facets.sort(key=lambda facet: facet["index"]["byteStart"])
    return facets


def grapheme_length(text: str) -> int:
    """Count user-perceived characters (extended grapheme clusters) in `text`."""
    return len(regex.findall(r"\X", text))
