"""Literal input delivery to tmux panes via libtmux.

Text is sent with ``send-keys -l`` so tmux never interprets it as key names,
then after a short settle delay Enter is sent as its own keypress.  Folding
the newline into the literal payload makes some TUIs insert a line break
instead of submitting.

All blocking libtmux calls are wrapped in asyncio.to_thread().

Key class: TmuxDispatcher.
"""

from __future__ import annotations

import asyncio
import logging

import libtmux
from libtmux.exc import LibTmuxException

logger = logging.getLogger(__name__)

_NOT_FOUND_MARKERS = ("can't find", "no server running", "no such")


class DispatchError(Exception):
    """tmux refused or failed to deliver input."""


class PaneNotFoundError(DispatchError):
    """The addressed pane (or its session/window) does not exist."""


class TmuxDispatcher:
    """Sends literal input to ``session:window.pane`` targets."""

    def __init__(self, socket_path: str = "", settle_delay: float = 0.2) -> None:
        self.socket_path = socket_path
        self.settle_delay = settle_delay
        self._server: libtmux.Server | None = None

    @property
    def server(self) -> libtmux.Server:
        """Get or create tmux server connection."""
        if self._server is None:
            if self.socket_path:
                self._server = libtmux.Server(socket_path=self.socket_path)
            else:
                self._server = libtmux.Server()
        return self._server

    def _run(self, target: str, *args: str) -> None:
        try:
            result = self.server.cmd("send-keys", "-t", target, *args)
        except LibTmuxException as e:
            raise DispatchError(f"tmux send-keys to {target} failed: {e}") from e
        if result.returncode or result.stderr:
            err = " ".join(result.stderr).strip() or f"exit {result.returncode}"
            if any(marker in err.lower() for marker in _NOT_FOUND_MARKERS):
                raise PaneNotFoundError(f"Pane {target} not found: {err}")
            raise DispatchError(f"tmux send-keys to {target} failed: {err}")

    async def send_text(self, target: str, text: str) -> None:
        """Type *text* into *target*, wait, then press Enter.

        Raises:
            PaneNotFoundError: *target* does not name an existing pane.
            DispatchError: empty text/target or any other tmux failure.
        """
        if not target:
            raise DispatchError("No tmux target")
        if not text:
            raise DispatchError("Refusing to send empty input")

        await asyncio.to_thread(self._run, target, "-l", "--", text)
        await asyncio.sleep(self.settle_delay)
        await asyncio.to_thread(self._run, target, "Enter")
        logger.info("Sent %d chars to tmux pane %s", len(text), target)

    def has_session(self, name: str) -> bool:
        """Whether a tmux session called *name* exists (blocking)."""
        try:
            return self.server.has_session(name)
        except LibTmuxException:
            logger.debug("tmux has-session %s failed", name, exc_info=True)
            return False
