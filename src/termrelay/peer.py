"""Peer relay reachability and request forwarding.

Two relays cooperate: one on the desktop that can focus windows, one on a
headless host that owns the tmux panes.  Each knows the other only through a
cached control URL.  Before forwarding a webhook the router probes the peer's
``/health`` endpoint with a short timeout; results are never cached.

Key functions:
  - probe_peer(): bounded GET /health, True only on 2xx.
  - forward_to_peer(): re-post the original signed body once, marked with
    ``X-Relay-Forwarded`` so the peer never proxies it back.
  - read_peer_url() / save_peer_url(): the ``peer-url`` cache file.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

import httpx

from .settings import PROBE_TIMEOUT_MAX, PROBE_TIMEOUT_MIN
from .slack_verify import SIGNATURE_HEADER, TIMESTAMP_HEADER

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"
FORWARDED_HEADER = "X-Relay-Forwarded"

# Headers the peer needs to re-verify the Slack signature
_FORWARD_HEADERS = ("Content-Type", TIMESTAMP_HEADER, SIGNATURE_HEADER)


def _join(base: str, path: str) -> str:
    return base.rstrip("/") + "/" + path.lstrip("/")


async def probe_peer(
    client: httpx.AsyncClient, peer_url: str, timeout: float = PROBE_TIMEOUT_MIN
) -> bool:
    """Return True if the peer's health endpoint answers 2xx within *timeout*."""
    if not peer_url:
        return False
    timeout = min(max(timeout, PROBE_TIMEOUT_MIN), PROBE_TIMEOUT_MAX)
    url = _join(peer_url, HEALTH_PATH)
    try:
        resp = await client.get(url, timeout=timeout)
    except httpx.HTTPError as e:
        logger.info("Peer %s unreachable: %s", peer_url, type(e).__name__)
        return False
    if not resp.is_success:
        logger.info("Peer %s health check returned %d", peer_url, resp.status_code)
        return False
    return True


async def forward_to_peer(
    client: httpx.AsyncClient,
    peer_url: str,
    path: str,
    raw_body: bytes,
    headers: Mapping[str, str],
    timeout: float = 10.0,
) -> bool:
    """POST the original webhook body to the peer; True on a 2xx answer."""
    out_headers = {name: headers[name] for name in _FORWARD_HEADERS if name in headers}
    out_headers[FORWARDED_HEADER] = "1"
    url = _join(peer_url, path)
    try:
        resp = await client.post(
            url, content=raw_body, headers=out_headers, timeout=timeout
        )
    except httpx.HTTPError as e:
        logger.warning("Forward to %s failed: %s", url, e)
        return False
    if not resp.is_success:
        logger.warning("Forward to %s returned %d", url, resp.status_code)
        return False
    logger.info("Forwarded request to %s", url)
    return True


def read_peer_url(path: Path) -> str:
    """Cached peer control URL, or "" when none is known."""
    try:
        return path.read_text(encoding="utf-8").strip().rstrip("/")
    except FileNotFoundError:
        return ""
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
        return ""


def save_peer_url(path: Path, url: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(url.strip().rstrip("/") + "\n", encoding="utf-8")
