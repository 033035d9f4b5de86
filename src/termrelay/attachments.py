"""Slack file attachments on thread replies.

Files shared in a reply are downloaded with the bot token into
``downloads/<thread>/`` so the receiving program can read them from disk;
their paths are appended to the reply text.  Without a bot token nothing is
fetched and a placeholder line names each file instead.
"""

from __future__ import annotations

import logging
import re
import time
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from .registry.store import safe_key

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"[^A-Za-z0-9._-]")
_SLACK_HOST_SUFFIXES = ("slack.com", "slack-edge.com")


@dataclass(frozen=True)
class AttachmentResult:
    name: str
    path: Path | None = None
    note: str = ""  # why the file is missing when path is None

    def render(self) -> str:
        if self.path is not None:
            return str(self.path)
        return f"[attachment: {self.name} ({self.note})]"


def _safe_name(name: str) -> str:
    cleaned = _NAME_RE.sub("_", name).lstrip(".")
    return cleaned or f"slack_{int(time.time())}"


def _is_slack_url(url: str) -> bool:
    parsed = urllib.parse.urlparse(url)
    host = (parsed.hostname or "").lower()
    return parsed.scheme == "https" and any(
        host == suffix or host.endswith("." + suffix) for suffix in _SLACK_HOST_SUFFIXES
    )


class AttachmentFetcher:
    """Downloads reply attachments with a bot token."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        bot_token: str,
        downloads_dir: Path,
        max_bytes: int = 20 * 1024 * 1024,
        timeout: float = 60.0,
    ) -> None:
        self.client = client
        self.bot_token = bot_token
        self.downloads_dir = downloads_dir
        self.max_bytes = max_bytes
        self.timeout = timeout

    async def fetch_all(
        self, thread_id: str, files: list[dict[str, Any]]
    ) -> list[AttachmentResult]:
        return [await self.fetch(thread_id, f) for f in files if isinstance(f, dict)]

    async def fetch(self, thread_id: str, file_obj: dict[str, Any]) -> AttachmentResult:
        name = str(file_obj.get("name") or file_obj.get("title") or "file")
        if not self.bot_token:
            return AttachmentResult(name, note="not downloaded: no bot token configured")

        url = file_obj.get("url_private_download") or file_obj.get("url_private")
        if not url or not _is_slack_url(str(url)):
            logger.warning("Attachment %s has no usable Slack URL", name)
            return AttachmentResult(name, note="not downloaded: no download URL")

        dest: Path | None = None
        try:
            size = int(file_obj.get("size") or 0)
            if size > self.max_bytes:
                logger.info("Skipping large attachment %s (%d bytes)", name, size)
                return AttachmentResult(name, note="not downloaded: file too large")

            dest_dir = self.downloads_dir / safe_key(thread_id)
            dest_dir.mkdir(parents=True, exist_ok=True)
            dest = dest_dir / _safe_name(name)
            await self._download(str(url), dest)
        except (httpx.HTTPError, OSError, TypeError, ValueError) as e:
            logger.warning("Failed to download attachment %s: %s", name, e)
            if dest is not None:
                dest.unlink(missing_ok=True)
            return AttachmentResult(name, note=f"download failed: {e}")

        logger.info("Downloaded attachment %s -> %s", name, dest)
        return AttachmentResult(name, path=dest)

    async def _download(self, url: str, dest: Path) -> None:
        headers = {"Authorization": f"Bearer {self.bot_token}"}
        async with self.client.stream(
            "GET", url, headers=headers, timeout=self.timeout, follow_redirects=True
        ) as resp:
            resp.raise_for_status()
            # Slack serves its HTML login page when the token lacks files:read
            if resp.headers.get("content-type", "").startswith("text/html"):
                raise ValueError("received an HTML page instead of the file")
            written = 0
            with open(dest, "wb") as f:
                async for chunk in resp.aiter_bytes():
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise ValueError(f"exceeds {self.max_bytes} bytes")
                    f.write(chunk)


def append_attachments(text: str, results: list[AttachmentResult]) -> str:
    """Append downloaded paths (and placeholders) to the reply text."""
    if not results:
        return text
    downloaded = [r for r in results if r.path is not None]
    missing = [r for r in results if r.path is None]

    parts = [text] if text else []
    if downloaded:
        parts.append("[Attached files]\n" + "\n".join(f"- {r.render()}" for r in downloaded))
    parts.extend(r.render() for r in missing)
    return "\n\n".join(parts)
