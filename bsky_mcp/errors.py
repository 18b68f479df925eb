"""
Exception types for the Bluesky MCP server.
"""

from typing import Any, Optional

from mcp import types


class BlueskyMCPError(Exception):
    """Base exception class for Bluesky MCP errors."""
    pass


class StartupAuthError(BlueskyMCPError):
    """Raised when credentials are missing or the login fails at startup."""
    pass


class ProtocolError(BlueskyMCPError):
    """Raised for a request the server answers with a JSON-RPC error object."""

    code = types.INVALID_REQUEST

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.data = data


class ToolValidationError(ProtocolError):
    """Raised when tool arguments do not match the tool's input schema."""

    code = types.INVALID_PARAMS


class UnknownToolError(ProtocolError):
    """Raised when a tool name is not in the catalog."""

    code = types.METHOD_NOT_FOUND


class RemoteError(BlueskyMCPError):
    """Raised when a call to the Bluesky service fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429
