"""Tests for tunnel.py — cloudflared URL discovery and shutdown."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from termrelay.tunnel import TunnelManager, find_cloudflared


def _fake_cloudflared(*lines: bytes) -> MagicMock:
    reader = asyncio.StreamReader()
    for line in lines:
        reader.feed_data(line)
    proc = MagicMock()
    proc.stderr = reader
    proc.returncode = None
    proc.wait = AsyncMock(return_value=0)
    return proc


class TestFindCloudflared:
    def test_missing(self):
        with patch("termrelay.tunnel.shutil.which", return_value=None):
            with pytest.raises(RuntimeError):
                find_cloudflared()

    def test_found(self):
        with patch("termrelay.tunnel.shutil.which", return_value="/usr/bin/cloudflared"):
            assert find_cloudflared() == "/usr/bin/cloudflared"


class TestTunnelManager:
    async def test_start_publishes_url(self, tmp_path: Path):
        url_file = tmp_path / "tunnel-url"
        seen = []
        proc = _fake_cloudflared(
            b"INF Requesting new quick Tunnel on trycloudflare.com...\n",
            b"INF |  https://fuzzy-cat-12.trycloudflare.com  |\n",
        )
        manager = TunnelManager(8464, url_file=url_file, on_url_change=seen.append)

        with (
            patch("termrelay.tunnel.find_cloudflared", return_value="/usr/bin/cloudflared"),
            patch(
                "termrelay.tunnel.asyncio.create_subprocess_exec",
                new=AsyncMock(return_value=proc),
            ) as spawn,
        ):
            url = await manager.start()

        assert url == "https://fuzzy-cat-12.trycloudflare.com"
        assert manager.public_url == url
        assert url_file.read_text() == url + "\n"
        assert seen == [url]
        assert spawn.await_args.args[:4] == (
            "/usr/bin/cloudflared",
            "tunnel",
            "--url",
            "http://localhost:8464",
        )

        await manager.stop()
        await asyncio.sleep(0)
        proc.terminate.assert_called_once()
        assert not url_file.exists()
        assert manager.public_url is None

    async def test_start_without_cloudflared(self):
        manager = TunnelManager(8464)
        with patch("termrelay.tunnel.shutil.which", return_value=None):
            with pytest.raises(RuntimeError):
                await manager.start()

    async def test_stop_before_start(self, tmp_path: Path):
        manager = TunnelManager(8464, url_file=tmp_path / "tunnel-url")
        await manager.stop()
