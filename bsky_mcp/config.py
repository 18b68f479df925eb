"""
Environment configuration and tool-call logging.

Environment Variables:
- BLUESKY_IDENTIFIER: Handle or DID of the account (required)
- BLUESKY_APP_PASSWORD: App password for the account (required)
- BLUESKY_SERVICE: PDS base URL (optional, default: https://bsky.social)
- BLUESKY_TOOL_LOGGING: Enable structured tool call logging (true/false, default: false)
- BLUESKY_LOG_FILE: Optional log file path (default: stderr if logging enabled)
"""

import os
import sys
import json
from pathlib import Path
from typing import Dict, Any, Optional, Mapping, NamedTuple
from datetime import datetime, timezone

from .errors import StartupAuthError

DEFAULT_SERVICE = "https://bsky.social"


class Settings(NamedTuple):
    identifier: str
    app_password: str
    service: str = DEFAULT_SERVICE
    tool_logging: bool = False
    log_file: Optional[Path] = None


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from environment variables."""
    if environ is None:
        environ = os.environ

    missing = [
        name for name in ("BLUESKY_IDENTIFIER", "BLUESKY_APP_PASSWORD")
        if not environ.get(name)
    ]
    if missing:
        raise StartupAuthError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    log_file = environ.get("BLUESKY_LOG_FILE")
    return Settings(
        identifier=environ["BLUESKY_IDENTIFIER"],
        app_password=environ["BLUESKY_APP_PASSWORD"],
        service=environ.get("BLUESKY_SERVICE") or DEFAULT_SERVICE,
        tool_logging=environ.get("BLUESKY_TOOL_LOGGING", "").lower() in ("true", "1", "yes"),
        log_file=Path(log_file).expanduser().resolve() if log_file else None,
    )


class ToolCallLogger:
    """Writes one JSON line per tool call when tool logging is enabled."""

    def __init__(self, enabled: bool = False, log_file: Optional[Path] = None):
        self.enabled = enabled
        self.log_file = None
        if enabled and log_file:
            try:
                log_file.parent.mkdir(parents=True, exist_ok=True)
                # Test write permissions
                with open(log_file, 'a'):
                    pass
                self.log_file = log_file
            except OSError as e:
                print(f"Warning: Could not initialize log file {log_file}: {e}", file=sys.stderr)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ToolCallLogger":
        return cls(enabled=settings.tool_logging, log_file=settings.log_file)

    def log(self, tool_name: str, parameters: Dict[str, Any], execution_time_ms: float,
            success: bool, error_message: Optional[str] = None):
        """Log a tool call with structured JSON format."""
        if not self.enabled:
            return

        try:
            log_entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "tool_name": tool_name,
                "parameters": parameters,
                "execution_time_ms": round(execution_time_ms, 2),
                "success": success,
                "error_message": error_message
            }
            log_line = json.dumps(log_entry, default=str)

            if self.log_file:
                try:
                    with open(self.log_file, 'a') as f:
                        f.write(log_line + '\n')
                except OSError as e:
                    # Fallback to stderr if file logging fails
                    print(f"Log write failed: {e}", file=sys.stderr)
                    print(log_line, file=sys.stderr)
            else:
                print(log_line, file=sys.stderr)

        except (TypeError, ValueError) as e:
            print(f"Logging error: {e}", file=sys.stderr)
