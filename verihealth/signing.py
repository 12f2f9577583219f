"""HMAC-SHA256 request signing shared by the device agent and the server.

The signed message is ``"<timestamp>.<canonical-json-body>"`` keyed by the
device secret.  The agent sends exactly the canonical body it signed, so the
server verifies against the raw request bytes without re-serializing.

Signing is deterministic (no nonce): the same secret, payload and timestamp
always give the same hex digest.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Any

TIMESTAMP_HEADER = "x-veri-timestamp"
SIGNATURE_HEADER = "x-veri-signature"


def utc_timestamp() -> str:
    """Current instant as an ISO-8601 string with millisecond precision."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def canonical_json(payload: Any) -> str:
    """Serialize a payload the one way both ends agree on.

    Strings are assumed to be already-serialized JSON and pass through.
    """
    if isinstance(payload, str):
        return payload
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def sign_payload_hex(
    device_secret: str, payload: Any, timestamp: str | None = None
) -> str:
    """Return the hex HMAC-SHA256 signature for a payload.

    Args:
        device_secret: Provisioned device secret (HMAC key).
        payload:       Dict/list to canonicalize, or an already-serialized string.
        timestamp:     ISO-8601 instant; defaults to now.

    Returns:
        Lowercase hex digest.
    """
    ts = timestamp if timestamp is not None else utc_timestamp()
    message = f"{ts}.{canonical_json(payload)}".encode("utf-8")
    return hmac.new(device_secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(
    device_secret: str, body: bytes | str, timestamp: str, signature: str
) -> bool:
    """Check a received signature against the raw request body."""
    text = body.decode("utf-8") if isinstance(body, bytes) else body
    expected = sign_payload_hex(device_secret, text, timestamp)
    return hmac.compare_digest(expected, signature.strip().lower())
