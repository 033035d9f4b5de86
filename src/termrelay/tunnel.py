"""Cloudflare quick tunnel for the relay port.

Runs ``cloudflared tunnel --url http://localhost:<port>`` so Slack (or the
peer relay) can reach this host without opening a port.  The public
``*.trycloudflare.com`` URL is written to the ``tunnel-url`` file whenever
it changes.  If cloudflared exits unexpectedly it is restarted with
increasing delays, then retried slowly forever.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

# Regex to extract the public URL from cloudflared stderr
_URL_RE = re.compile(r"https://[a-z0-9-]+\.trycloudflare\.com")

_RESTART_DELAYS = (10, 30, 60, 120, 300)
_BACKGROUND_RETRY_INTERVAL = 600  # 10 minutes
_URL_WAIT_TIMEOUT = 30


def find_cloudflared() -> str:
    path = shutil.which("cloudflared")
    if not path:
        raise RuntimeError("cloudflared not found on PATH")
    return path


class TunnelManager:
    """Manages a cloudflared quick tunnel subprocess with auto-restart."""

    def __init__(
        self,
        local_port: int,
        url_file: Path | None = None,
        on_url_change: Callable[[str], None] | None = None,
    ) -> None:
        self._local_port = local_port
        self._url_file = url_file
        self._on_url_change = on_url_change
        self._process: asyncio.subprocess.Process | None = None
        self._public_url: str | None = None
        self._monitor_task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None
        self._ready = asyncio.Event()
        self._stopping = False

    @property
    def public_url(self) -> str | None:
        return self._public_url

    async def start(self) -> str:
        """Start the tunnel and return the public URL."""
        self._stopping = False
        return await self._spawn()

    async def _spawn(self) -> str:
        cloudflared = find_cloudflared()
        logger.info("Starting cloudflared quick tunnel on port %d...", self._local_port)
        self._public_url = None
        self._ready.clear()
        self._process = await asyncio.create_subprocess_exec(
            cloudflared,
            "tunnel",
            "--url",
            f"http://localhost:{self._local_port}",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        self._monitor_task = asyncio.create_task(self._read_stderr())

        try:
            await asyncio.wait_for(self._ready.wait(), timeout=_URL_WAIT_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error("Timed out waiting for cloudflared URL")
            await self._kill_process()
            raise RuntimeError(
                f"cloudflared failed to start within {_URL_WAIT_TIMEOUT} seconds"
            ) from None

        logger.info("Tunnel active: %s", self._public_url)
        self._publish(self._public_url)  # type: ignore[arg-type]
        return self._public_url  # type: ignore[return-value]

    def _publish(self, url: str) -> None:
        if self._url_file is not None:
            try:
                self._url_file.write_text(url + "\n", encoding="utf-8")
            except OSError:
                logger.warning("Failed to write %s", self._url_file, exc_info=True)
        if self._on_url_change:
            self._on_url_change(url)

    async def _kill_process(self) -> None:
        if self._process and self._process.returncode is None:
            self._process.terminate()
            try:
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except asyncio.TimeoutError:
                self._process.kill()
        if self._monitor_task and not self._monitor_task.done():
            self._monitor_task.cancel()
        self._process = None
        self._public_url = None
        self._ready.clear()

    async def _read_stderr(self) -> None:
        """Read cloudflared stderr to extract the public URL and log output."""
        proc = self._process
        assert proc and proc.stderr
        while True:
            line_bytes = await proc.stderr.readline()
            if not line_bytes:
                break
            line = line_bytes.decode("utf-8", errors="replace").strip()
            if line:
                logger.debug("[cloudflared] %s", line)
            if not self._public_url:
                match = _URL_RE.search(line)
                if match:
                    self._public_url = match.group(0)
                    self._ready.set()

        rc = await proc.wait()
        logger.warning("cloudflared exited with code %d", rc)
        if not self._stopping and (self._restart_task is None or self._restart_task.done()):
            self._restart_task = asyncio.create_task(self._auto_restart())

    async def _auto_restart(self) -> None:
        """Restart with backoff, then retry every few minutes until stopped."""
        attempt = 0
        delays = list(_RESTART_DELAYS)
        while not self._stopping:
            delay = delays[attempt] if attempt < len(delays) else _BACKGROUND_RETRY_INTERVAL
            attempt += 1
            logger.info("Restarting cloudflared in %ds (attempt %d)...", delay, attempt)
            await asyncio.sleep(delay)
            if self._stopping:
                return
            try:
                url = await self._spawn()
            except (RuntimeError, OSError):
                logger.exception("Tunnel restart attempt %d failed", attempt)
                continue
            logger.info("Tunnel restarted: %s", url)
            return

    async def stop(self) -> None:
        """Stop the tunnel subprocess."""
        self._stopping = True
        if self._restart_task and not self._restart_task.done():
            self._restart_task.cancel()
        had_process = self._process is not None
        await self._kill_process()
        if self._url_file is not None:
            self._url_file.unlink(missing_ok=True)
        if had_process:
            logger.info("cloudflared stopped")
