"""Shared helpers: config directory resolution and atomic JSON writes."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

_DEFAULT_DIR_NAME = ".termrelay"


def relay_dir() -> Path:
    """Return the termrelay config directory.

    ``$TERMRELAY_DIR`` wins; otherwise ``~/.termrelay``.
    """
    env = os.environ.get("TERMRELAY_DIR", "").strip()
    if env:
        return Path(os.path.expanduser(env))
    return Path.home() / _DEFAULT_DIR_NAME


def atomic_write_json(path: Path, data: Any, indent: int = 2) -> None:
    """Write JSON to *path* by replacing the whole file in one step.

    The document is written to a temp file in the same directory and then
    moved over the target with ``os.replace`` so readers never observe a
    partially written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def touch(path: Path) -> None:
    """Create *path* or bump its mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch()
