"""
Tests for tool validation, dispatch and error mapping.
"""

import json

import pytest

from bsky_mcp.config import ToolCallLogger
from bsky_mcp.dispatcher import ToolDispatcher
from bsky_mcp.errors import RemoteError, ToolValidationError, UnknownToolError
from bsky_mcp.tools import registry

REQUIRED_ARGUMENTS = {
    "get_profile": {},
    "get_author_feed": {"limit": 5},
    "get_post_thread": {"depth": 2},
    "search_posts": {"sort": "latest"},
    "create_post": {"reply_to": "at://did:plc:abc/app.bsky.feed.post/1"},
}


@pytest.mark.parametrize("tool_name,arguments", sorted(REQUIRED_ARGUMENTS.items()))
def test_missing_required_parameter_makes_no_remote_call(session, dispatcher, tool_name, arguments):
    with pytest.raises(ToolValidationError) as excinfo:
        dispatcher.call_tool(tool_name, arguments)

    assert "Field required" in excinfo.value.message
    assert session.calls == []


@pytest.mark.parametrize("tool_name,arguments", [
    ("get_profile", {"actor": 123}),
    ("get_author_feed", {"actor": "alice.bsky.social", "limit": "10"}),
    ("get_author_feed", {"actor": "alice.bsky.social", "limit": 101}),
    ("get_author_feed", {"actor": "alice.bsky.social", "filter": "everything"}),
    ("list_notifications", {"limit": 0}),
    ("create_post", {"text": "x" * 301}),
])
def test_type_mismatch_is_rejected(session, dispatcher, tool_name, arguments):
    with pytest.raises(ToolValidationError):
        dispatcher.call_tool(tool_name, arguments)
    assert session.calls == []


def test_arguments_must_be_an_object(session, dispatcher):
    with pytest.raises(ToolValidationError):
        dispatcher.call_tool("get_profile", ["alice"])


def test_unknown_tool(session, dispatcher):
    with pytest.raises(UnknownToolError) as excinfo:
        dispatcher.call_tool("delete_everything", {})

    assert excinfo.value.message == "Tool not found: delete_everything"
    assert session.calls == []


def test_get_did_returns_text(dispatcher):
    result = dispatcher.call_tool("get_did", None)

    assert result.isError is False
    assert result.content[0].text == "did:plc:me"


def test_success_result_is_json_text(session, dispatcher):
    session.profiles["alice.bsky.social"] = {"did": "did:plc:alice", "handle": "alice.bsky.social"}

    result = dispatcher.call_tool("get_profile", {"actor": "alice.bsky.social"})

    assert result.isError is False
    assert json.loads(result.content[0].text) == {"did": "did:plc:alice", "handle": "alice.bsky.social"}


def test_remote_failure_becomes_error_result(session, dispatcher):
    result = dispatcher.call_tool("get_profile", {"actor": "ghost.bsky.social"})

    assert result.isError is True
    assert result.content[0].text == "Bluesky request failed: Profile not found"


def test_rate_limit_is_reported(session, dispatcher):
    session.errors["list_notifications"] = RemoteError("Rate Limit Exceeded", status_code=429)

    result = dispatcher.call_tool("list_notifications", {})

    assert result.isError is True
    assert result.content[0].text.startswith("Rate limited by Bluesky")


@pytest.mark.parametrize("tool_name,arguments", [
    ("create_post", {"text": "hi @alice.bsky.social", "reply_to": "not a post link"}),
    ("create_post", {"text": "hi @alice.bsky.social", "reply_to": "at://did:plc:abc/app.bsky.feed.like/1"}),
    ("get_post_thread", {"uri": "https://bsky.app/profile/alice.bsky.social"}),
])
def test_bad_post_reference_makes_no_remote_call(session, dispatcher, tool_name, arguments):
    session.handles["alice.bsky.social"] = "did:plc:alice"

    with pytest.raises(ToolValidationError) as excinfo:
        dispatcher.call_tool(tool_name, arguments)

    assert "post reference" in excinfo.value.message
    assert session.calls == []


@pytest.mark.parametrize("text", [
    # Thumbs-up with a skin tone is two code points but one character
    "\U0001F44D\U0001F3FD" * 300,
    "e\u0301" * 300,
])
def test_post_length_counts_graphemes(session, dispatcher, text):
    result = dispatcher.call_tool("create_post", {"text": text})

    assert result.isError is False
    assert session.created[0]["text"] == text


@pytest.mark.parametrize("text", [
    "\U0001F44D\U0001F3FD" * 301,
    "e\u0301" * 301,
    # 121 family emoji fit the character limit but not 3000 bytes
    "\U0001F468\u200d\U0001F469\u200d\U0001F467\u200d\U0001F466" * 121,
])
def test_post_over_limit_is_rejected(session, dispatcher, text):
    with pytest.raises(ToolValidationError) as excinfo:
        dispatcher.call_tool("create_post", {"text": text})

    assert "the limit is" in excinfo.value.message
    assert session.calls == []


def test_defaults_are_applied(session, dispatcher):
    dispatcher.call_tool("get_author_feed", {"actor": "alice.bsky.social"})

    assert session.calls == [("get_author_feed", "alice.bsky.social", 10, None, None)]


def test_tool_calls_are_logged(session, tmp_path):
    log_file = tmp_path / "logs" / "tools.jsonl"
    dispatcher = ToolDispatcher(session, registry, ToolCallLogger(enabled=True, log_file=log_file))

    dispatcher.call_tool("get_did", {})
    dispatcher.call_tool("get_profile", {"actor": "ghost.bsky.social"})

    entries = [json.loads(line) for line in log_file.read_text().splitlines()]
    assert [entry["tool_name"] for entry in entries] == ["get_did", "get_profile"]
    assert entries[0]["success"] is True
    assert entries[1]["success"] is False
    assert entries[1]["parameters"] == {"actor": "ghost.bsky.social"}
    assert "Profile not found" in entries[1]["error_message"]
