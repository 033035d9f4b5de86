"""Relay router: decides where each Slack webhook is handled.

Every request goes through the same short pipeline:

  authenticate -> parse -> classify -> (proxy to peer | handle locally) -> ack

A request is *foreign* when another host is better placed to satisfy it.
On a headless host that is always the desktop peer, which can focus the
terminal tab as well as type into it.  On the desktop it is a pane living
on a headless host, unless the action is focus.  Foreign requests are
proxied once, unchanged, when a peer URL is known and the peer answers its
health probe; every proxy failure falls back to local handling.

Every outcome after authentication is reported as a ``RouteResult`` and
acknowledged with HTTP 200, so Slack never retries because of a failure on
this side.

Key class: RelayRouter.
"""

from __future__ import annotations

import json
import logging
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .activator import TerminalActivator
from .attachments import AttachmentFetcher, append_attachments
from .button_value import (
    ACTION_FOCUS,
    get_action_input,
    is_valid_action,
    parse_button_value,
)
from .focus_url import (
    FocusAddress,
    is_linked_address,
    is_remote_address,
    link_id_of,
    split_action,
    tmux_target_of,
)
from .peer import FORWARDED_HEADER, forward_to_peer, probe_peer, read_peer_url
from .registry import Registry
from .settings import RelayConfig
from .slack_verify import SIGNATURE_HEADER, TIMESTAMP_HEADER, verify_signature
from .tmux_dispatch import DispatchError, TmuxDispatcher

logger = logging.getLogger(__name__)

ACTIONS_PATH = "/slack/actions"
EVENTS_PATH = "/slack/events"
RETRY_HEADER = "X-Slack-Retry-Num"

# RouteResult.outcome values
PROXIED = "proxied"
LOCAL = "local"
NOTICE = "notice"
IGNORED = "ignored"
FAILED = "failed"
CHALLENGE = "challenge"

FOCUS_UNAVAILABLE = (
    "Focus isn't available on this host: the desktop relay is not reachable. "
    "Reply buttons still send input to the session."
)
INPUT_UNAVAILABLE = (
    "Couldn't deliver input: the terminal for this session is not reachable "
    "from this host."
)


@dataclass(frozen=True)
class RouteResult:
    """How a webhook was handled."""

    outcome: str
    detail: str = ""


class RelayRouter:
    """Routes button clicks and thread replies to a terminal or to the peer relay."""

    def __init__(
        self,
        config: RelayConfig,
        registry: Registry,
        client: httpx.AsyncClient,
        dispatcher: TmuxDispatcher,
        activator: TerminalActivator | None = None,
        fetcher: AttachmentFetcher | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.client = client
        self.dispatcher = dispatcher
        self.activator = activator
        self.fetcher = fetcher

    # --- Authentication ---

    def authenticate(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        """Check the Slack signature; always passes when no secret is configured."""
        if not self.config.signing_secret:
            logger.warning(
                "No Slack signing secret configured, skipping signature verification"
            )
            return True
        return verify_signature(
            self.config.signing_secret,
            headers.get(TIMESTAMP_HEADER),
            headers.get(SIGNATURE_HEADER),
            raw_body,
        )

    # --- Button clicks ---

    async def route_action(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> RouteResult:
        """Handle a ``block_actions`` interaction (url-encoded ``payload=``)."""
        try:
            result = await self._route_action(raw_body, headers)
        except Exception:
            logger.exception("Unexpected error routing button action")
            result = RouteResult(FAILED, "internal error")
        logger.info("Action routed: %s %s", result.outcome, result.detail)
        return result

    async def _route_action(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> RouteResult:
        form = urllib.parse.parse_qs(raw_body.decode("utf-8", errors="replace"))
        payload_str = (form.get("payload") or [""])[0]
        if not payload_str:
            return self._ignore("missing payload")
        try:
            payload = json.loads(payload_str)
        except json.JSONDecodeError:
            return self._ignore("payload is not JSON")
        if not isinstance(payload, dict) or payload.get("type") != "block_actions":
            return self._ignore("not a block_actions payload")

        actions = payload.get("actions")
        if not isinstance(actions, list) or not actions or not isinstance(actions[0], dict):
            return self._ignore("no actions in payload")
        value = parse_button_value(actions[0].get("value"))
        if value is None:
            return self._ignore(f"malformed button value {actions[0].get('value')!r:.80}")
        if not is_valid_action(value.action):
            return self._ignore(f"unknown action {value.action!r}")

        address = self._resolve_button_address(value.focus_url, value.session_id)
        if address is None:
            return self._ignore("button value names no known terminal")

        if self._is_foreign(address, value.action):
            peer_url = self._peer_url_for(address)
            if await self._try_proxy(peer_url, ACTIONS_PATH, raw_body, headers):
                return RouteResult(PROXIED, peer_url)

        response_url = payload.get("response_url") or ""
        if value.action == ACTION_FOCUS:
            return await self._focus(address, response_url)
        text = get_action_input(value.action) or ""
        return await self._deliver(address, text, value.action, response_url)

    def _resolve_button_address(
        self, focus_url: str | None, session_id: str | None
    ) -> FocusAddress | None:
        if focus_url is not None:
            decoded = split_action(focus_url)
            return decoded[0] if decoded else None
        record = self.registry.get_session(session_id or "")
        if record is None:
            logger.info("Unknown session id %s", session_id)
            return None
        return record.address

    # --- Thread replies ---

    async def route_event(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> RouteResult:
        """Handle an Events API callback (JSON body)."""
        try:
            result = await self._route_event(raw_body, headers)
        except Exception:
            logger.exception("Unexpected error routing Slack event")
            result = RouteResult(FAILED, "internal error")
        if result.outcome != CHALLENGE:
            logger.info("Event routed: %s %s", result.outcome, result.detail)
        return result

    async def _route_event(
        self, raw_body: bytes, headers: Mapping[str, str]
    ) -> RouteResult:
        try:
            body = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self._ignore("event body is not JSON")
        if not isinstance(body, dict):
            return self._ignore("event body is not an object")

        if body.get("type") == "url_verification":
            return RouteResult(CHALLENGE, str(body.get("challenge", "")))
        if headers.get(RETRY_HEADER):
            return self._ignore(f"Slack retry #{headers.get(RETRY_HEADER)}")
        if body.get("type") != "event_callback":
            return self._ignore(f"event type {body.get('type')!r}")

        event = body.get("event")
        if not isinstance(event, dict) or event.get("type") != "message":
            return self._ignore("not a message event")
        if event.get("bot_id") or event.get("subtype") not in (None, "file_share"):
            return self._ignore("bot message or edit")
        thread_ts = event.get("thread_ts")
        if not thread_ts or thread_ts == event.get("ts"):
            return self._ignore("not a thread reply")

        record = self.registry.get_thread(str(thread_ts))
        if record is None:
            # The notification may have been sent from the peer host
            peer_url = read_peer_url(self.config.peer_url_file)
            if await self._try_proxy(peer_url, EVENTS_PATH, raw_body, headers):
                return RouteResult(PROXIED, peer_url)
            return self._ignore(f"no thread record for {thread_ts}")
        address = record.address
        if address is None:
            return self._ignore(f"thread {thread_ts} has an unreadable address")

        if self._is_foreign(address, None):
            peer_url = self._peer_url_for(address)
            if await self._try_proxy(peer_url, EVENTS_PATH, raw_body, headers):
                return RouteResult(PROXIED, peer_url)

        text = str(event.get("text") or "")
        files = event.get("files") or []
        if files and self.fetcher is not None:
            results = await self.fetcher.fetch_all(str(thread_ts), files)
            text = append_attachments(text, results)
        if not text.strip():
            return self._ignore("empty reply")
        return await self._deliver(address, text, None, "")

    # --- Classification and proxying ---

    def _is_foreign(self, address: FocusAddress, action: str | None) -> bool:
        if self.config.is_headless:
            return True
        return is_remote_address(address) and action != ACTION_FOCUS

    def _pane_is_local(self, address: FocusAddress) -> bool:
        if not tmux_target_of(address):
            return False
        return is_remote_address(address) == self.config.is_headless

    def _peer_url_for(self, address: FocusAddress) -> str:
        link_id = link_id_of(address)
        if link_id:
            link = self.registry.get_link(link_id)
            if link is not None and link.peer_control_url:
                return link.peer_control_url
        return read_peer_url(self.config.peer_url_file)

    async def _try_proxy(
        self,
        peer_url: str,
        path: str,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> bool:
        if not peer_url:
            return False
        if headers.get(FORWARDED_HEADER):
            logger.debug("Request already forwarded once, handling locally")
            return False
        if not await probe_peer(self.client, peer_url, self.config.probe_timeout):
            logger.info("Peer %s not reachable, handling locally", peer_url)
            return False
        if await forward_to_peer(
            self.client, peer_url, path, raw_body, headers, self.config.proxy_timeout
        ):
            return True
        logger.info("Proxy to %s failed, falling back to local handling", peer_url)
        return False

    # --- Local handling ---

    def _local_view(self, address: FocusAddress) -> FocusAddress:
        """Linked addresses focus through the local tab recorded in the link."""
        if is_linked_address(address):
            link = self.registry.get_link(link_id_of(address) or "")
            if link is not None and link.address is not None:
                return link.address
        return address

    async def _focus(self, address: FocusAddress, response_url: str) -> RouteResult:
        if self.activator is None:
            await self._post_notice(response_url, FOCUS_UNAVAILABLE)
            return RouteResult(NOTICE, "focus unavailable on this host")
        result = await self.activator.activate(self._local_view(address))
        if not result.success:
            return RouteResult(FAILED, f"focus failed: {result.message}")
        return RouteResult(LOCAL, "focused")

    async def _deliver(
        self,
        address: FocusAddress,
        text: str,
        action: str | None,
        response_url: str,
    ) -> RouteResult:
        target = tmux_target_of(address)
        if target and self._pane_is_local(address):
            try:
                await self.dispatcher.send_text(target, text)
            except DispatchError as e:
                logger.error("Dispatch to %s failed: %s", target, e)
                return RouteResult(FAILED, str(e))
            return RouteResult(LOCAL, f"sent to {target}")

        if self.activator is not None and action is not None:
            result = await self.activator.activate(self._local_view(address), action)
            if not result.success:
                return RouteResult(FAILED, f"activation failed: {result.message}")
            return RouteResult(LOCAL, f"activated with {action}")

        logger.warning("No local route to %s", address.variant_type)
        await self._post_notice(response_url, INPUT_UNAVAILABLE)
        return RouteResult(NOTICE, f"no local route to {address.variant_type}")

    async def _post_notice(self, response_url: str, text: str) -> None:
        """Show *text* to the clicking user only (ephemeral)."""
        if not response_url:
            return
        try:
            resp = await self.client.post(
                response_url,
                json={"response_type": "ephemeral", "replace_original": False, "text": text},
                timeout=self.config.proxy_timeout,
            )
            if not resp.is_success:
                logger.warning("Notice post returned %d", resp.status_code)
        except httpx.HTTPError as e:
            logger.warning("Failed to post notice: %s", e)

    @staticmethod
    def _ignore(reason: str) -> RouteResult:
        logger.info("Ignoring webhook: %s", reason)
        return RouteResult(IGNORED, reason)
