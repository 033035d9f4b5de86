"""Document repositories backing the registries.

A ``DocumentStore`` holds JSON objects by string key.  ``JsonDirStore``
keeps one ``<key>.json`` file per document in a directory and writes by
whole-file replacement, so concurrent readers never see a torn document and
no in-process locking is needed.  ``MemoryStore`` is the in-process
substitute used by tests.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ..utils import atomic_write_json

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"[^A-Za-z0-9._-]")


def safe_key(key: str) -> str:
    """Map *key* to a filename component that cannot escape the directory."""
    cleaned = _KEY_RE.sub("_", key).lstrip(".")
    if not cleaned:
        raise ValueError(f"Unusable document key: {key!r}")
    return cleaned


class DocumentStore(ABC):
    """Key -> JSON object repository."""

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the document for *key*, or None if absent or unreadable."""

    @abstractmethod
    def list(self) -> list[tuple[str, dict[str, Any] | None]]:
        """All ``(key, document)`` pairs; unreadable documents map to None."""

    @abstractmethod
    def put(self, key: str, document: dict[str, Any]) -> None:
        """Create or replace the document for *key*."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*; returns whether anything was removed."""


class JsonDirStore(DocumentStore):
    """One JSON file per document under *directory*."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, key: str) -> Path:
        return self.directory / f"{safe_key(key)}.json"

    def _read(self, path: Path) -> dict[str, Any] | None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning("Unreadable record %s: %s", path, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Record %s is not a JSON object", path)
            return None
        return data

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            path = self._path(key)
        except ValueError:
            return None
        return self._read(path)

    def list(self) -> list[tuple[str, dict[str, Any] | None]]:
        if not self.directory.is_dir():
            return []
        return [(p.stem, self._read(p)) for p in sorted(self.directory.glob("*.json"))]

    def put(self, key: str, document: dict[str, Any]) -> None:
        atomic_write_json(self._path(key), document)

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return False
        return True


class MemoryStore(DocumentStore):
    """Dict-backed store; documents are copied in and out."""

    def __init__(self) -> None:
        self._docs: dict[str, dict[str, Any]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        doc = self._docs.get(key)
        return copy.deepcopy(doc) if doc is not None else None

    def list(self) -> list[tuple[str, dict[str, Any] | None]]:
        return [(k, copy.deepcopy(v)) for k, v in sorted(self._docs.items())]

    def put(self, key: str, document: dict[str, Any]) -> None:
        self._docs[key] = copy.deepcopy(document)

    def delete(self, key: str) -> bool:
        return self._docs.pop(key, None) is not None
