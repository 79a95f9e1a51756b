"""
Small shared helpers.
"""

import json
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def encode_payload(data: Any) -> bytes | None:
    """
    Serialize a job payload to JSON bytes.

    Raises:
        TypeError, ValueError: If the value is not JSON serializable.
    """
    if data is None:
        return None
    return json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")
