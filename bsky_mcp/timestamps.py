"""Convert the timestamps in tool results to the server's local timezone."""

from datetime import datetime
from typing import Any, Optional


def to_local_time(value: str) -> Optional[str]:
    """Return `value` re-expressed in local time, or None if it is not an aware ISO datetime."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone().isoformat()


def localize_timestamps(value: Any) -> Any:
    """Recursively convert string fields whose key ends with "At" (createdAt, indexedAt, ...)."""
    if isinstance(value, dict):
        converted = {}
        for key, item in value.items():
            if isinstance(key, str) and key.endswith("At") and isinstance(item, str):
                local = to_local_time(item)
                if local is not None:
                    converted[key] = local
                    continue
            converted[key] = localize_timestamps(item)
        return converted
    if isinstance(value, list):
        return [localize_timestamps(item) for item in value]
    return value
