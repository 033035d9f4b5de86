"""Terminal activator: brings a desktop terminal tab to the front.

Window focusing is OS automation this package does not implement; it is
delegated to an external helper command that takes a claude-focus:// URL
as its only argument (with ``?action=`` when input should follow the focus).
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass

from .focus_url import FocusAddress, encode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivationResult:
    success: bool
    message: str = ""


class TerminalActivator(ABC):
    """Focuses the terminal a Focus Address names, optionally sending an action."""

    @abstractmethod
    async def activate(
        self, address: FocusAddress, action: str | None = None
    ) -> ActivationResult: ...


class FocusHelperActivator(TerminalActivator):
    """Runs an external focus helper command per activation."""

    def __init__(self, command: str, timeout: float = 30.0) -> None:
        self.argv = shlex.split(command)
        if not self.argv:
            raise ValueError("focus helper command is empty")
        self.timeout = timeout

    async def activate(
        self, address: FocusAddress, action: str | None = None
    ) -> ActivationResult:
        url = encode(address, action)
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.argv,
                url,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Failed to start focus helper %s: %s", self.argv[0], e)
            return ActivationResult(False, f"focus helper unavailable: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Focus helper timed out after %.0fs for %s", self.timeout, url)
            return ActivationResult(False, f"focus helper timed out after {self.timeout:.0f}s")

        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            logger.warning("Focus helper exited %d for %s: %s", proc.returncode, url, err)
            return ActivationResult(False, err or f"exit code {proc.returncode}")

        logger.info("Activated %s", url)
        return ActivationResult(True, stdout.decode("utf-8", errors="replace").strip())
