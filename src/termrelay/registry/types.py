"""Data models for the session, link and thread registries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..focus_url import FocusAddress, decode, from_descriptor


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _age_seconds(created_at: str, now: datetime | None) -> float | None:
    created = parse_iso(created_at)
    if created is None:
        return None
    return ((now or datetime.now(timezone.utc)) - created).total_seconds()


def _address_of(
    focus_address: str, variant_type: str, descriptor: dict[str, Any]
) -> FocusAddress | None:
    # The encoded URL is authoritative; the descriptor covers records that
    # were written without one.
    address = decode(focus_address)
    if address is None and descriptor:
        address = from_descriptor(variant_type, descriptor)
    return address


@dataclass
class SessionRecord:
    """A terminal session registered on the host that runs it."""

    id: str  # uuid4().hex
    display_name: str
    host: str
    variant_type: str
    focus_address: str  # claude-focus:// URL
    target_descriptor: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""  # ISO 8601

    @property
    def address(self) -> FocusAddress | None:
        return _address_of(self.focus_address, self.variant_type, self.target_descriptor)

    def age_seconds(self, now: datetime | None = None) -> float | None:
        return _age_seconds(self.created_at, now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "host": self.host,
            "variant_type": self.variant_type,
            "focus_address": self.focus_address,
            "target_descriptor": dict(self.target_descriptor),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionRecord:
        return cls(
            id=data.get("id", ""),
            display_name=data.get("display_name", ""),
            host=data.get("host", ""),
            variant_type=data.get("variant_type", ""),
            focus_address=data.get("focus_address", ""),
            target_descriptor=data.get("target_descriptor") or {},
            created_at=data.get("created_at", ""),
        )


@dataclass
class LinkRecord:
    """Cross-host pairing, stored only on the initiating host.

    Maps a link id to the local Focus Address of the tab that opened the
    SSH (or notebook) session, plus the cached control URL of the peer.
    """

    link_id: str
    display_name: str
    variant_type: str
    focus_address: str
    target_descriptor: dict[str, Any] = field(default_factory=dict)
    peer_control_url: str = ""
    created_at: str = ""

    @property
    def address(self) -> FocusAddress | None:
        return _address_of(self.focus_address, self.variant_type, self.target_descriptor)

    def age_seconds(self, now: datetime | None = None) -> float | None:
        return _age_seconds(self.created_at, now)

    def is_expired(self, ttl_hours: float, now: datetime | None = None) -> bool:
        age = self.age_seconds(now)
        return age is None or age > ttl_hours * 3600

    def to_dict(self) -> dict[str, Any]:
        return {
            "link_id": self.link_id,
            "display_name": self.display_name,
            "variant_type": self.variant_type,
            "target_descriptor": dict(self.target_descriptor),
            "focus_address": self.focus_address,
            "peer_control_url": self.peer_control_url,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkRecord:
        return cls(
            link_id=data.get("link_id", ""),
            display_name=data.get("display_name", ""),
            variant_type=data.get("variant_type", ""),
            focus_address=data.get("focus_address", ""),
            target_descriptor=data.get("target_descriptor") or {},
            peer_control_url=data.get("peer_control_url") or "",
            created_at=data.get("created_at", ""),
        )


@dataclass
class ThreadRecord:
    """Slack thread -> Focus Address, written when a notification is sent."""

    thread_id: str  # Slack message ts of the thread parent
    focus_address: str
    variant_type: str
    created_at: str = ""

    @property
    def address(self) -> FocusAddress | None:
        return decode(self.focus_address)

    def to_dict(self) -> dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "focus_address": self.focus_address,
            "variant_type": self.variant_type,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ThreadRecord:
        return cls(
            thread_id=data.get("thread_id", ""),
            focus_address=data.get("focus_address", ""),
            variant_type=data.get("variant_type", ""),
            created_at=data.get("created_at", ""),
        )
