"""Tests for tmux_dispatch.py — literal send, settle delay, separate Enter."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from libtmux.exc import LibTmuxException

from termrelay.tmux_dispatch import DispatchError, PaneNotFoundError, TmuxDispatcher


def _ok():
    return SimpleNamespace(returncode=0, stderr=[], stdout=[])


def _err(msg: str):
    return SimpleNamespace(returncode=1, stderr=[msg], stdout=[])


@pytest.fixture
def dispatcher():
    d = TmuxDispatcher(settle_delay=0.2)
    d._server = MagicMock()
    d._server.cmd.return_value = _ok()
    return d


class TestSendText:
    async def test_literal_then_enter(self, dispatcher):
        with patch("termrelay.tmux_dispatch.asyncio.sleep", new=AsyncMock()) as sleep:
            await dispatcher.send_text("work:1.0", "Continue")

        calls = dispatcher._server.cmd.call_args_list
        assert [c.args for c in calls] == [
            ("send-keys", "-t", "work:1.0", "-l", "--", "Continue"),
            ("send-keys", "-t", "work:1.0", "Enter"),
        ]
        sleep.assert_awaited_once_with(0.2)

    async def test_newline_stays_inside_literal(self, dispatcher):
        with patch("termrelay.tmux_dispatch.asyncio.sleep", new=AsyncMock()):
            await dispatcher.send_text("a:0.0", "line1\nline2")
        first = dispatcher._server.cmd.call_args_list[0].args
        assert first[-1] == "line1\nline2"
        assert dispatcher._server.cmd.call_count == 2

    @pytest.mark.parametrize("text", ["-v", "--help", "- fix the tests"])
    async def test_leading_dash_is_not_a_flag(self, dispatcher, text):
        with patch("termrelay.tmux_dispatch.asyncio.sleep", new=AsyncMock()):
            await dispatcher.send_text("a:0.0", text)
        first = dispatcher._server.cmd.call_args_list[0].args
        assert first == ("send-keys", "-t", "a:0.0", "-l", "--", text)

    async def test_unknown_pane(self, dispatcher):
        dispatcher._server.cmd.return_value = _err("can't find pane: nope:9.9")
        with pytest.raises(PaneNotFoundError):
            await dispatcher.send_text("nope:9.9", "1")
        # Enter is never sent after a failed literal send
        assert dispatcher._server.cmd.call_count == 1

    async def test_no_server(self, dispatcher):
        dispatcher._server.cmd.return_value = _err(
            "no server running on /tmp/tmux-1000/default"
        )
        with pytest.raises(PaneNotFoundError):
            await dispatcher.send_text("a:0.0", "1")

    async def test_other_tmux_error(self, dispatcher):
        dispatcher._server.cmd.return_value = _err("unknown flag")
        with pytest.raises(DispatchError) as exc_info:
            await dispatcher.send_text("a:0.0", "1")
        assert not isinstance(exc_info.value, PaneNotFoundError)

    async def test_libtmux_exception(self, dispatcher):
        dispatcher._server.cmd.side_effect = LibTmuxException("tmux not found")
        with pytest.raises(DispatchError):
            await dispatcher.send_text("a:0.0", "1")

    @pytest.mark.parametrize("target,text", [("", "1"), ("a:0.0", "")])
    async def test_empty_inputs(self, dispatcher, target, text):
        with pytest.raises(DispatchError):
            await dispatcher.send_text(target, text)
        dispatcher._server.cmd.assert_not_called()


class TestHasSession:
    def test_exists(self, dispatcher):
        dispatcher._server.has_session.return_value = True
        assert dispatcher.has_session("work") is True
        dispatcher._server.has_session.assert_called_once_with("work")

    def test_error_means_absent(self, dispatcher):
        dispatcher._server.has_session.side_effect = LibTmuxException("bad name")
        assert dispatcher.has_session("a:b") is False


class TestServer:
    def test_socket_path(self):
        with patch("termrelay.tmux_dispatch.libtmux.Server") as server_cls:
            TmuxDispatcher(socket_path="/tmp/sock").server
        server_cls.assert_called_once_with(socket_path="/tmp/sock")

    def test_default_socket(self):
        with patch("termrelay.tmux_dispatch.libtmux.Server") as server_cls:
            d = TmuxDispatcher()
            assert d.server is d.server
        server_cls.assert_called_once_with()
