"""Relay settings — reads .env + optional settings.toml into a RelayConfig.

Secrets (signing secret, bot token) come from the environment, which
python-dotenv populates from ``.env`` files.  Everything else lives in the
``[relay]`` table of ``settings.toml`` in the config directory; a missing
file means every default applies.

Key entities:
  - RelayConfig: frozen dataclass with all resolved config for this host.
  - load_settings(): parse .env + settings.toml → RelayConfig.
"""

from __future__ import annotations

import logging
import math
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .utils import relay_dir

logger = logging.getLogger(__name__)

ROLE_DESKTOP = "desktop"
ROLE_HEADLESS = "headless"
_ROLES = (ROLE_DESKTOP, ROLE_HEADLESS)

# Bounds for the reachability probe timeout (seconds)
PROBE_TIMEOUT_MIN = 1.0
PROBE_TIMEOUT_MAX = 3.0

_SIGNING_SECRET_FILE = "slack-signing-secret"


def _default_role() -> str:
    return ROLE_DESKTOP if sys.platform == "darwin" else ROLE_HEADLESS


# ---------------------------------------------------------------------------
# RelayConfig
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RelayConfig:
    """Resolved configuration for the relay on this host.

    All path attributes derive from ``config_dir``; no further env lookups
    are needed once constructed.
    """

    # Network
    port: int = 8464
    bind_host: str = "127.0.0.1"

    # Which side of a cross-host pairing this process runs on
    role: str = field(default_factory=_default_role)

    # Secrets
    signing_secret: str = ""
    bot_token: str = ""

    # Timeouts (seconds)
    probe_timeout: float = 1.0
    proxy_timeout: float = 10.0
    settle_delay: float = 0.2

    # Record lifetimes
    link_ttl_hours: float = 24.0
    session_max_age_days: float = 7.0

    # Local capabilities
    focus_helper: str = ""  # empty → this host cannot focus windows
    tmux_socket_path: str = ""

    # Attachments
    max_attachment_mb: int = 20

    # Cloudflare quick tunnel for the relay port
    tunnel: bool = False

    config_dir: Path = field(default_factory=lambda: relay_dir())

    # --- Derived path helpers ---

    @property
    def instances_dir(self) -> Path:
        return self.config_dir / "instances"

    @property
    def links_dir(self) -> Path:
        return self.config_dir / "links"

    @property
    def threads_dir(self) -> Path:
        return self.config_dir / "threads"

    @property
    def downloads_dir(self) -> Path:
        return self.config_dir / "downloads"

    @property
    def peer_url_file(self) -> Path:
        """Cached control URL of the cooperating host, one line."""
        return self.config_dir / "peer-url"

    @property
    def tunnel_url_file(self) -> Path:
        return self.config_dir / "tunnel-url"

    @property
    def pid_file(self) -> Path:
        return self.config_dir / "relay.pid"

    @property
    def port_file(self) -> Path:
        return self.config_dir / "relay.port"

    @property
    def activity_file(self) -> Path:
        return self.config_dir / "relay-last-activity"

    @property
    def is_headless(self) -> bool:
        return self.role == ROLE_HEADLESS

    @property
    def can_focus(self) -> bool:
        return bool(self.focus_helper)


# ---------------------------------------------------------------------------
# load_settings
# ---------------------------------------------------------------------------


def _read_secret_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return ""
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
        return ""


def load_settings(config_dir: Path | None = None) -> RelayConfig:
    """Read .env + settings.toml and return the RelayConfig.

    Args:
        config_dir: Override for the base config directory.
                    Defaults to ``relay_dir()``.

    Raises:
        ValueError: If a setting has an invalid value.
    """
    if config_dir is None:
        config_dir = relay_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    # Load .env files (local cwd first, then config_dir)
    local_env = Path(".env")
    global_env = config_dir / ".env"
    if local_env.is_file():
        load_dotenv(local_env)
    if global_env.is_file():
        load_dotenv(global_env)

    raw: dict = {}
    toml_path = config_dir / "settings.toml"
    if toml_path.is_file():
        with open(toml_path, "rb") as f:
            raw = tomllib.load(f).get("relay", {})
    else:
        logger.debug("No settings.toml at %s, using defaults", toml_path)

    return _build_config(config_dir, raw)


def _number(raw: dict, key: str, default: float) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"{key} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}") from None


def _build_config(config_dir: Path, raw: dict) -> RelayConfig:
    """Validate raw ``[relay]`` values and build a RelayConfig."""
    role = str(raw.get("role", _default_role()))
    if role not in _ROLES:
        raise ValueError(f"role must be one of {_ROLES}, got {role!r}")

    port_value = _number(raw, "port", 8464)
    if not port_value.is_integer() or not 0 < port_value < 65536:
        raise ValueError(f"port out of range: {raw.get('port')!r}")
    port = int(port_value)

    def _positive(key: str, default: float) -> float:
        value = _number(raw, key, default)
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"{key} must be positive, got {value}")
        return value

    probe_timeout = _positive("probe_timeout", 1.0)
    clamped = min(max(probe_timeout, PROBE_TIMEOUT_MIN), PROBE_TIMEOUT_MAX)
    if clamped != probe_timeout:
        logger.warning(
            "probe_timeout %.1fs outside %.0f-%.0fs, using %.1fs",
            probe_timeout,
            PROBE_TIMEOUT_MIN,
            PROBE_TIMEOUT_MAX,
            clamped,
        )

    signing_secret = os.getenv("SLACK_SIGNING_SECRET", "").strip()
    if not signing_secret:
        signing_secret = _read_secret_file(config_dir / _SIGNING_SECRET_FILE)

    return RelayConfig(
        port=port,
        bind_host=str(raw.get("bind_host", "127.0.0.1")),
        role=role,
        signing_secret=signing_secret,
        bot_token=os.getenv("SLACK_BOT_TOKEN", "").strip(),
        probe_timeout=clamped,
        proxy_timeout=_positive("proxy_timeout", 10.0),
        settle_delay=_positive("settle_delay", 0.2),
        link_ttl_hours=_positive("link_ttl_hours", 24.0),
        session_max_age_days=_positive("session_max_age_days", 7.0),
        focus_helper=str(raw.get("focus_helper", "")),
        tmux_socket_path=str(raw.get("tmux_socket_path", "")),
        max_attachment_mb=int(_positive("max_attachment_mb", 20)),
        tunnel=bool(raw.get("tunnel", False)),
        config_dir=config_dir,
    )
