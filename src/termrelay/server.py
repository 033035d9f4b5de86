"""HTTP surface of the relay.

Routes (each webhook route is also served under a ``/slack`` prefix):
  POST /actions   — Slack interactivity (button clicks), url-encoded payload
  POST /events    — Slack Events API (thread replies, URL verification)
  GET  /health    — liveness document, also the peer probe target

Designed to sit behind a Cloudflare quick tunnel.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from aiohttp import web

from .relay import CHALLENGE, RelayRouter, RouteResult
from .settings import RelayConfig
from .utils import touch

logger = logging.getLogger(__name__)

# Slack bodies are small; attachments are fetched separately
_MAX_BODY_SIZE = 1024 * 1024


class RelayServer:
    """aiohttp application wrapping a RelayRouter."""

    def __init__(self, config: RelayConfig, router: RelayRouter) -> None:
        self._config = config
        self._router = router
        self._app = web.Application(client_max_size=_MAX_BODY_SIZE)
        self._runner: web.AppRunner | None = None
        self._setup_routes()

    @property
    def app(self) -> web.Application:
        return self._app

    def _setup_routes(self) -> None:
        for prefix in ("", "/slack"):
            self._app.router.add_post(f"{prefix}/actions", self._handle_actions)
            self._app.router.add_post(f"{prefix}/events", self._handle_events)
        self._app.router.add_get("/health", self._handle_health)

    def _touch_activity(self) -> None:
        try:
            touch(self._config.activity_file)
        except OSError as e:
            logger.debug("Failed to touch activity file: %s", e)

    async def _handle_webhook(
        self,
        request: web.Request,
        route: Callable[..., Awaitable[RouteResult]],
    ) -> web.Response:
        self._touch_activity()
        raw_body = await request.read()
        if not self._router.authenticate(raw_body, request.headers):
            logger.warning("Rejected %s: bad Slack signature", request.path)
            return web.Response(status=401, text="Invalid signature")

        result = await route(raw_body, request.headers)
        if result.outcome == CHALLENGE:
            return web.Response(text=result.detail, content_type="text/plain")
        return web.Response(status=200)

    async def _handle_actions(self, request: web.Request) -> web.Response:
        return await self._handle_webhook(request, self._router.route_action)

    async def _handle_events(self, request: web.Request) -> web.Response:
        return await self._handle_webhook(request, self._router.route_event)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "mode": self._config.role,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    # -- Server lifecycle --

    async def start(self) -> None:
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.bind_host, self._config.port)
        await site.start()
        self._config.port_file.write_text(f"{self._config.port}\n", encoding="utf-8")
        self._touch_activity()
        logger.info(
            "Relay (%s) listening on http://%s:%d",
            self._config.role,
            self._config.bind_host,
            self._config.port,
        )

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._config.port_file.unlink(missing_ok=True)
            logger.info("Relay server stopped")
