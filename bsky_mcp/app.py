"""
Bluesky MCP - Main application module.

This module runs the MCP server over stdio: one JSON-RPC message per line on
stdin, one response per request on stdout. Diagnostics go to stderr.

## Claude Configuration

Sample configuration below:

```json
{
  "mcpServers": {
    "bluesky": {
      "command": "bsky-mcp",
      "env": {
        "BLUESKY_IDENTIFIER": "alice.bsky.social",
        "BLUESKY_APP_PASSWORD": "xxxx-xxxx-xxxx-xxxx"
      }
    }
  }
}
```
"""

import json
import sys
from typing import Dict, Any, Optional, TextIO

from dotenv import load_dotenv
from mcp import types
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS

from . import __version__
from .config import load_settings, ToolCallLogger
from .dispatcher import ToolDispatcher
from .errors import ProtocolError, StartupAuthError, ToolValidationError
from .session import authenticate
from .tools import registry

SERVER_NAME = "bsky-mcp"
INSTRUCTIONS = "Bluesky service: read profiles, feeds, threads and notifications, and publish posts."


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def handle_initialize(request: Dict[str, Any]) -> Dict[str, Any]:
    """Handle MCP initialize message."""
    params = request.get("params") or {}

    requested_version = params.get("protocolVersion")
    if requested_version in SUPPORTED_PROTOCOL_VERSIONS:
        protocol_version = requested_version
    else:
        protocol_version = types.LATEST_PROTOCOL_VERSION
        print(f"[DEBUG] Client requested unsupported protocol version {requested_version}, offering {protocol_version}", file=sys.stderr)

    client_info = params.get("clientInfo") or {}
    client_name = client_info.get("name", "unknown")
    client_version = client_info.get("version", "unknown")
    print(f"Client connected: {client_name} v{client_version}", file=sys.stderr)

    return _dump(types.InitializeResult(
        protocolVersion=protocol_version,
        capabilities=types.ServerCapabilities(tools=types.ToolsCapability(listChanged=False)),
        serverInfo=types.Implementation(name=SERVER_NAME, version=__version__),
        instructions=INSTRUCTIONS,
    ))


def handle_list_tools(dispatcher: ToolDispatcher) -> Dict[str, Any]:
    """Handle MCP tools/list message."""
    return _dump(types.ListToolsResult(tools=dispatcher.list_tools()))


def handle_call_tool(dispatcher: ToolDispatcher, request: Dict[str, Any]) -> Dict[str, Any]:
    """Handle MCP tools/call message."""
    params = request.get("params") or {}
    if not isinstance(params, dict):
        raise ToolValidationError("Invalid params: expected an object")

    name = params.get("name")
    if not isinstance(name, str) or not name:
        raise ToolValidationError("Missing required parameter: name")

    print(f"[DEBUG] Calling tool {name}", file=sys.stderr)
    return _dump(dispatcher.call_tool(name, params.get("arguments")))


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    """Build a JSON-RPC error response."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def handle_message(dispatcher: ToolDispatcher, message: Any) -> Optional[Dict[str, Any]]:
    """
    Dispatch one decoded JSON-RPC message.

    Returns:
        The response object, or None for notifications
    """
    if not isinstance(message, dict):
        return error_response(None, types.INVALID_REQUEST, "Invalid request: expected a JSON object")

    request_id = message.get("id")
    method = message.get("method")
    if not isinstance(method, str):
        return error_response(request_id, types.INVALID_REQUEST, "Invalid request: missing method")

    if "id" not in message:
        print(f"[DEBUG] Received notification: {method}", file=sys.stderr)
        return None

    try:
        if method == "initialize":
            result = handle_initialize(message)
        elif method == "ping":
            result = {}
        elif method == "tools/list":
            result = handle_list_tools(dispatcher)
        elif method == "tools/call":
            result = handle_call_tool(dispatcher, message)
        else:
            raise ProtocolError(f"Method not found: {method}", code=types.METHOD_NOT_FOUND)
    except ProtocolError as e:
        print(f"[DEBUG] Request {request_id} rejected: {e.message}", file=sys.stderr)
        return error_response(request_id, e.code, e.message, e.data)
    except Exception as e:
        error_msg = f"Error processing request: {str(e)}"
        print(error_msg, file=sys.stderr)
        return error_response(request_id, types.INTERNAL_ERROR, error_msg)

    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def handle_line(dispatcher: ToolDispatcher, line: str) -> Optional[Dict[str, Any]]:
    """Decode one input line and dispatch it."""
    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        print(f"[DEBUG] Unparseable input: {e}", file=sys.stderr)
        return error_response(None, types.PARSE_ERROR, f"Parse error: {e}")
    return handle_message(dispatcher, message)


def serve(dispatcher: ToolDispatcher, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None):
    """Read requests until end of input, writing one response line per request."""
    if stdin is None:
        sys.stdin.reconfigure(encoding="utf-8", errors="replace")
        stdin = sys.stdin
    if stdout is None:
        sys.stdout.reconfigure(encoding="utf-8")
        stdout = sys.stdout

    for line in stdin:
        if not line.strip():
            continue
        response = handle_line(dispatcher, line)
        if response is not None:
            stdout.write(json.dumps(response, ensure_ascii=False) + "\n")
            stdout.flush()

    print("End of input, shutting down", file=sys.stderr)


def start():
    """Entry point for starting the server."""
    load_dotenv()

    try:
        settings = load_settings()
        session = authenticate(settings)
    except StartupAuthError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    dispatcher = ToolDispatcher(session, registry, ToolCallLogger.from_settings(settings))
    print(f"Bluesky MCP server starting with {len(registry)} tools", file=sys.stderr)
    serve(dispatcher)


if __name__ == "__main__":
    start()
