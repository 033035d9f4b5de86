"""Registry accessors for sessions, cross-host links and notification threads.

Each record kind lives in its own ``DocumentStore`` (one JSON file per key
on disk).  The ``Registry`` enforces the record lifecycles:

  - Sessions: re-registering an equal Focus Address supersedes the older
    record; cleanup removes old, dead or unreadable records.
  - Links: expire a fixed number of hours after creation.
  - Threads: written once per notification, never actively deleted.
"""

from __future__ import annotations

import logging
import socket
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ..focus_url import (
    FocusAddress,
    descriptor_of,
    encode,
    tmux_target_of,
)
from .store import DocumentStore, JsonDirStore, MemoryStore
from .types import LinkRecord, SessionRecord, ThreadRecord, utc_now_iso

logger = logging.getLogger(__name__)

__all__ = [
    "CleanupStats",
    "DocumentStore",
    "JsonDirStore",
    "LinkRecord",
    "MemoryStore",
    "Registry",
    "SessionRecord",
    "ThreadRecord",
    "tmux_session_name",
]


def tmux_session_name(tmux_target: str) -> str | None:
    """``"work:1.0"`` -> ``"work"``; None when there is no session part."""
    name, sep, _ = tmux_target.partition(":")
    return name if sep and name else None


def generate_display_name(address: FocusAddress, host: str = "") -> str:
    target = tmux_target_of(address)
    if target:
        session = tmux_session_name(target) or target
        label = f"{getattr(address, 'host', '') or host}:{session}"
    else:
        label = f"{host}:{address.variant_type}" if host else address.variant_type
    return label.lstrip(":")


@dataclass
class CleanupStats:
    removed: int = 0
    kept: int = 0


class Registry:
    """Session, link and thread records for this host."""

    def __init__(
        self,
        sessions: DocumentStore,
        links: DocumentStore,
        threads: DocumentStore,
        *,
        link_ttl_hours: float = 24.0,
        session_max_age_days: float = 7.0,
    ) -> None:
        self.sessions = sessions
        self.links = links
        self.threads = threads
        self.link_ttl_hours = link_ttl_hours
        self.session_max_age_days = session_max_age_days

    @classmethod
    def from_dirs(
        cls,
        instances_dir: Path,
        links_dir: Path,
        threads_dir: Path,
        **kwargs: float,
    ) -> Registry:
        return cls(
            JsonDirStore(instances_dir),
            JsonDirStore(links_dir),
            JsonDirStore(threads_dir),
            **kwargs,
        )

    @classmethod
    def in_memory(cls, **kwargs: float) -> Registry:
        return cls(MemoryStore(), MemoryStore(), MemoryStore(), **kwargs)

    # --- Sessions ---

    def register_session(
        self,
        address: FocusAddress,
        display_name: str = "",
        host: str = "",
    ) -> SessionRecord:
        """Store a new session record, superseding any for the same address."""
        focus_url = encode(address)
        host = host or socket.gethostname()
        for key, doc in self.sessions.list():
            if doc is None:
                continue
            existing = SessionRecord.from_dict(doc)
            if existing.address == address:
                self.sessions.delete(key)
                logger.info(
                    "Superseded session %s (%s)", existing.id, existing.display_name
                )

        record = SessionRecord(
            id=uuid.uuid4().hex,
            display_name=display_name or generate_display_name(address, host),
            host=host,
            variant_type=address.variant_type,
            focus_address=focus_url,
            target_descriptor=descriptor_of(address),
            created_at=utc_now_iso(),
        )
        self.sessions.put(record.id, record.to_dict())
        logger.info("Registered session %s -> %s", record.display_name, focus_url)
        return record

    def get_session(self, session_id: str) -> SessionRecord | None:
        doc = self.sessions.get(session_id)
        return SessionRecord.from_dict(doc) if doc is not None else None

    def list_sessions(self) -> list[SessionRecord]:
        return [SessionRecord.from_dict(doc) for _, doc in self.sessions.list() if doc]

    def cleanup_sessions(
        self,
        session_alive: Callable[[str], bool] | None = None,
        now: datetime | None = None,
    ) -> CleanupStats:
        """Remove unreadable, old, or dead-tmux session records.

        Args:
            session_alive: Checks a tmux session name; when None, liveness is
                not checked.
        """
        stats = CleanupStats()
        max_age = self.session_max_age_days * 86400
        for key, doc in self.sessions.list():
            if doc is None:
                self.sessions.delete(key)
                logger.info("Removed unreadable session record %s", key)
                stats.removed += 1
                continue

            record = SessionRecord.from_dict(doc)
            address = record.address
            target = tmux_target_of(address) if address else None
            name = tmux_session_name(target) if target else None
            if name and session_alive is not None and not session_alive(name):
                self.sessions.delete(key)
                logger.info("Removed stale session %s (%s)", record.display_name, name)
                stats.removed += 1
                continue

            age = record.age_seconds(now)
            if age is None or age > max_age:
                self.sessions.delete(key)
                logger.info("Removed old session %s", record.display_name)
                stats.removed += 1
                continue

            stats.kept += 1
        return stats

    # --- Links ---

    def create_link(
        self,
        link_id: str,
        address: FocusAddress,
        peer_control_url: str = "",
        display_name: str = "",
    ) -> LinkRecord:
        """Record a cross-host pairing initiated from the local tab *address*."""
        record = LinkRecord(
            link_id=link_id,
            display_name=display_name or generate_display_name(address),
            variant_type=address.variant_type,
            focus_address=encode(address),
            target_descriptor=descriptor_of(address),
            peer_control_url=peer_control_url.rstrip("/"),
            created_at=utc_now_iso(),
        )
        self.links.put(link_id, record.to_dict())
        logger.info("Created link %s -> %s", link_id, record.focus_address)
        return record

    def get_link(self, link_id: str, now: datetime | None = None) -> LinkRecord | None:
        """Return the live link record; expired links read as absent."""
        doc = self.links.get(link_id)
        if doc is None:
            return None
        record = LinkRecord.from_dict(doc)
        if record.is_expired(self.link_ttl_hours, now):
            logger.debug("Link %s expired", link_id)
            return None
        return record

    def cleanup_links(self, now: datetime | None = None) -> CleanupStats:
        stats = CleanupStats()
        for key, doc in self.links.list():
            if doc is None or LinkRecord.from_dict(doc).is_expired(
                self.link_ttl_hours, now
            ):
                self.links.delete(key)
                logger.info("Removed expired link %s", key)
                stats.removed += 1
            else:
                stats.kept += 1
        return stats

    # --- Threads ---

    def save_thread(self, thread_id: str, address: FocusAddress) -> ThreadRecord:
        record = ThreadRecord(
            thread_id=thread_id,
            focus_address=encode(address),
            variant_type=address.variant_type,
            created_at=utc_now_iso(),
        )
        self.threads.put(thread_id, record.to_dict())
        return record

    def get_thread(self, thread_id: str) -> ThreadRecord | None:
        doc = self.threads.get(thread_id)
        return ThreadRecord.from_dict(doc) if doc is not None else None
