"""Slack request signature verification (signing secret, v0 scheme).

Slack signs every webhook with ``v0=`` + hex HMAC-SHA256 over
``v0:{timestamp}:{raw body}``.  Requests whose timestamp is more than five
minutes away from the local clock are rejected even when the signature
matches, which stops captured requests from being replayed later.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "v0"
TIMESTAMP_HEADER = "X-Slack-Request-Timestamp"
SIGNATURE_HEADER = "X-Slack-Signature"

# Maximum clock skew between Slack and this host (seconds)
REPLAY_WINDOW = 300


def compute_signature(secret: str, timestamp: str, raw_body: bytes | str) -> str:
    body = raw_body if isinstance(raw_body, bytes) else raw_body.encode("utf-8")
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(secret.encode("utf-8"), base, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def verify_signature(
    secret: str,
    timestamp: str | None,
    signature: str | None,
    raw_body: bytes | str,
    now: float | None = None,
) -> bool:
    """Return True if *signature* is Slack's signature of *raw_body*.

    Fails on a missing or non-numeric timestamp, a timestamp outside the
    replay window, or any signature mismatch.
    """
    if not secret or not timestamp or not signature:
        return False
    try:
        ts = int(timestamp)
    except ValueError:
        logger.warning("Non-numeric Slack timestamp: %r", timestamp[:32])
        return False

    current = time.time() if now is None else now
    if abs(current - ts) > REPLAY_WINDOW:
        logger.warning("Slack request timestamp outside replay window: %s", ts)
        return False

    expected = compute_signature(secret, timestamp, raw_body)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        logger.warning("Slack signature mismatch")
        return False
    return True
