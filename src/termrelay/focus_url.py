"""Focus Address codec — claude-focus:// URLs naming a terminal on any host.

A Focus Address is a tagged union: one frozen dataclass per terminal kind,
each carrying only the fields that kind needs.  Construction validates the
fields, so an instance is always encodable.

Wire format::

    claude-focus://<variant>/<segment>{/<segment>}*[?action=<token>]

Every segment is percent-encoded on its own with no safe characters, which
guarantees that ``/``, ``|``, ``?`` and ``%`` never appear unescaped inside a
value.  The button payload codec relies on the ``|`` guarantee.

Public API:
  - encode(address, action=None) -> str     (raises InvalidVariant)
  - decode(url) -> FocusAddress | None      (never raises)
  - split_action(url) -> (address, action) | None
  - descriptor_of / from_descriptor: record <-> address
  - is_remote_address / is_linked_address / is_desktop_address, tmux_target_of
"""

from __future__ import annotations

import dataclasses
import re
import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Union

SCHEME = "claude-focus://"

_PORT_RE = re.compile(r"[0-9]{1,5}")


class InvalidVariant(ValueError):
    """A Focus Address is missing required fields or is not a known variant."""


_VARIANTS: dict[str, type[_Variant]] = {}


def _register(cls: type[_Variant]) -> type[_Variant]:
    _VARIANTS[cls.variant_type] = cls
    return cls


def _quote(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def _parse_port(raw: str) -> int | None:
    if not _PORT_RE.fullmatch(raw):
        return None
    return int(raw)


class _Variant(ABC):
    """Behaviour shared by every Focus Address variant."""

    variant_type: ClassVar[str] = ""
    _required: ClassVar[tuple[str, ...]] = ()

    def __post_init__(self) -> None:
        missing = [
            name
            for name in self._required
            if not isinstance(getattr(self, name), str) or not getattr(self, name)
        ]
        if missing:
            raise InvalidVariant(
                f"{self.variant_type} requires {', '.join(missing)}"
            )
        port = getattr(self, "port", None)
        if port is not None and (
            isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536
        ):
            raise InvalidVariant(f"{self.variant_type}: invalid port {port!r}")

    @abstractmethod
    def segments(self) -> list[str]: ...

    @classmethod
    @abstractmethod
    def from_segments(cls, parts: list[str]) -> _Variant | None: ...


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@_register
@dataclass(frozen=True)
class LocalTmux(_Variant):
    """tmux pane inside a desktop terminal, optionally pinned to an iTerm2 session."""

    variant_type: ClassVar[str] = "local-tmux"
    _required: ClassVar[tuple[str, ...]] = ("tmux_target",)

    tmux_target: str
    iterm_session_id: str | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.iterm_session_id is not None and (
            not isinstance(self.iterm_session_id, str) or not self.iterm_session_id
        ):
            raise InvalidVariant("local-tmux: iterm_session_id must be non-empty")

    def segments(self) -> list[str]:
        if self.iterm_session_id:
            return [self.iterm_session_id, self.tmux_target]
        return [self.tmux_target]

    @classmethod
    def from_segments(cls, parts: list[str]) -> LocalTmux | None:
        if len(parts) == 2:
            return cls(iterm_session_id=parts[0], tmux_target=parts[1])
        if len(parts) == 1:
            return cls(tmux_target=parts[0])
        return None


@dataclass(frozen=True)
class _SshPane(_Variant):
    """Pane on an SSH-reached host, addressed through a link id."""

    _required: ClassVar[tuple[str, ...]] = ("link_id", "host", "user", "tmux_target")

    link_id: str
    host: str
    user: str
    tmux_target: str
    port: int = 22

    def segments(self) -> list[str]:
        return [self.link_id, self.host, self.user, str(self.port), self.tmux_target]

    @classmethod
    def from_segments(cls, parts: list[str]) -> _SshPane | None:
        if len(parts) != 5:
            return None
        port = _parse_port(parts[3])
        if port is None:
            return None
        return cls(
            link_id=parts[0], host=parts[1], user=parts[2], port=port, tmux_target=parts[4]
        )


@_register
@dataclass(frozen=True)
class SshLinked(_SshPane):
    """Remote tmux pane reached via SSH from a desktop tab holding a Link Record."""

    variant_type: ClassVar[str] = "ssh-linked"


@_register
@dataclass(frozen=True)
class JupyterTmux(_SshPane):
    """Remote tmux pane attached from a browser notebook terminal."""

    variant_type: ClassVar[str] = "jupyter-tmux"


@_register
@dataclass(frozen=True)
class SshTmux(_Variant):
    """Remote tmux pane reached via SSH without a link."""

    variant_type: ClassVar[str] = "ssh-tmux"
    _required: ClassVar[tuple[str, ...]] = ("host", "user", "tmux_target")

    host: str
    user: str
    tmux_target: str
    port: int = 22

    def segments(self) -> list[str]:
        return [self.host, self.user, str(self.port), self.tmux_target]

    @classmethod
    def from_segments(cls, parts: list[str]) -> SshTmux | None:
        if len(parts) != 4:
            return None
        port = _parse_port(parts[2])
        if port is None:
            return None
        return cls(host=parts[0], user=parts[1], port=port, tmux_target=parts[3])


@dataclass(frozen=True)
class _TtyTmux(_Variant):
    """tmux pane plus the controlling TTY of the terminal showing it.

    The TTY is a device path; if it arrives with unescaped slashes the
    segments between the variant tag and the tmux target are re-joined.
    """

    _required: ClassVar[tuple[str, ...]] = ("tty", "tmux_target")

    tty: str
    tmux_target: str

    def segments(self) -> list[str]:
        return [self.tty, self.tmux_target]

    @classmethod
    def from_segments(cls, parts: list[str]) -> _TtyTmux | None:
        if len(parts) < 2:
            return None
        return cls(tty="/".join(parts[:-1]), tmux_target=parts[-1])


@_register
@dataclass(frozen=True)
class LinuxTmux(_TtyTmux):
    variant_type: ClassVar[str] = "linux-tmux"


@_register
@dataclass(frozen=True)
class ItermTmux(_TtyTmux):
    variant_type: ClassVar[str] = "iterm-tmux"


@_register
@dataclass(frozen=True)
class Terminal(_Variant):
    """macOS Terminal.app tab identified by its TTY."""

    variant_type: ClassVar[str] = "terminal"
    _required: ClassVar[tuple[str, ...]] = ("tty",)

    tty: str

    def segments(self) -> list[str]:
        return [self.tty]

    @classmethod
    def from_segments(cls, parts: list[str]) -> Terminal | None:
        if not parts:
            return None
        return cls(tty="/".join(parts))


@dataclass(frozen=True)
class _TmuxOnly(_Variant):
    _required: ClassVar[tuple[str, ...]] = ("tmux_target",)

    tmux_target: str

    def segments(self) -> list[str]:
        return [self.tmux_target]

    @classmethod
    def from_segments(cls, parts: list[str]) -> _TmuxOnly | None:
        if len(parts) != 1:
            return None
        return cls(tmux_target=parts[0])


@_register
@dataclass(frozen=True)
class Tmux(_TmuxOnly):
    """Bare tmux pane on the host that receives the webhook."""

    variant_type: ClassVar[str] = "tmux"


@_register
@dataclass(frozen=True)
class GhosttyTmux(_TmuxOnly):
    variant_type: ClassVar[str] = "ghostty-tmux"


@_register
@dataclass(frozen=True)
class Ghostty(_Variant):
    """Ghostty window; no session id is available, focusing activates the app."""

    variant_type: ClassVar[str] = "ghostty"

    def segments(self) -> list[str]:
        return []

    @classmethod
    def from_segments(cls, parts: list[str]) -> Ghostty | None:
        return cls() if not parts else None


@_register
@dataclass(frozen=True)
class Iterm2(_Variant):
    variant_type: ClassVar[str] = "iterm2"
    _required: ClassVar[tuple[str, ...]] = ("session_id",)

    session_id: str

    def segments(self) -> list[str]:
        return [self.session_id]

    @classmethod
    def from_segments(cls, parts: list[str]) -> Iterm2 | None:
        return cls(session_id=parts[0]) if len(parts) == 1 else None


@_register
@dataclass(frozen=True)
class WtTmux(_Variant):
    variant_type: ClassVar[str] = "wt-tmux"
    _required: ClassVar[tuple[str, ...]] = ("wt_session", "tmux_target")

    wt_session: str
    tmux_target: str

    def segments(self) -> list[str]:
        return [self.wt_session, self.tmux_target]

    @classmethod
    def from_segments(cls, parts: list[str]) -> WtTmux | None:
        if len(parts) != 2:
            return None
        return cls(wt_session=parts[0], tmux_target=parts[1])


@_register
@dataclass(frozen=True)
class WindowsTerminal(_Variant):
    variant_type: ClassVar[str] = "windows-terminal"
    _required: ClassVar[tuple[str, ...]] = ("wt_session",)

    wt_session: str

    def segments(self) -> list[str]:
        return [self.wt_session]

    @classmethod
    def from_segments(cls, parts: list[str]) -> WindowsTerminal | None:
        return cls(wt_session=parts[0]) if len(parts) == 1 else None


@_register
@dataclass(frozen=True)
class WslTmux(_Variant):
    variant_type: ClassVar[str] = "wsl-tmux"
    _required: ClassVar[tuple[str, ...]] = ("window_id", "tmux_target")

    window_id: str
    tmux_target: str

    def segments(self) -> list[str]:
        return [self.window_id, self.tmux_target]

    @classmethod
    def from_segments(cls, parts: list[str]) -> WslTmux | None:
        if len(parts) != 2:
            return None
        return cls(window_id=parts[0], tmux_target=parts[1])


@_register
@dataclass(frozen=True)
class Wsl(_Variant):
    variant_type: ClassVar[str] = "wsl"
    _required: ClassVar[tuple[str, ...]] = ("window_id",)

    window_id: str

    def segments(self) -> list[str]:
        return [self.window_id]

    @classmethod
    def from_segments(cls, parts: list[str]) -> Wsl | None:
        return cls(window_id=parts[0]) if len(parts) == 1 else None


@dataclass(frozen=True)
class _PidTerminal(_Variant):
    """Desktop terminal identified by the process id of its window."""

    _required: ClassVar[tuple[str, ...]] = ("pid",)

    pid: str

    def segments(self) -> list[str]:
        return [self.pid]

    @classmethod
    def from_segments(cls, parts: list[str]) -> _PidTerminal | None:
        return cls(pid=parts[0]) if len(parts) == 1 else None


@_register
@dataclass(frozen=True)
class ConEmu(_PidTerminal):
    variant_type: ClassVar[str] = "conemu"


@_register
@dataclass(frozen=True)
class Mintty(_PidTerminal):
    variant_type: ClassVar[str] = "mintty"


@_register
@dataclass(frozen=True)
class GnomeTerminal(_PidTerminal):
    variant_type: ClassVar[str] = "gnome-terminal"


@_register
@dataclass(frozen=True)
class VsCode(_PidTerminal):
    variant_type: ClassVar[str] = "vscode"


@_register
@dataclass(frozen=True)
class Konsole(_Variant):
    variant_type: ClassVar[str] = "konsole"
    _required: ClassVar[tuple[str, ...]] = ("dbus_session",)

    dbus_session: str

    def segments(self) -> list[str]:
        return [self.dbus_session]

    @classmethod
    def from_segments(cls, parts: list[str]) -> Konsole | None:
        return cls(dbus_session=parts[0]) if len(parts) == 1 else None


FocusAddress = Union[
    LocalTmux,
    SshLinked,
    SshTmux,
    JupyterTmux,
    LinuxTmux,
    Tmux,
    Iterm2,
    ItermTmux,
    Terminal,
    Ghostty,
    GhosttyTmux,
    WtTmux,
    WindowsTerminal,
    WslTmux,
    Wsl,
    ConEmu,
    Mintty,
    GnomeTerminal,
    Konsole,
    VsCode,
]

VARIANT_TYPES: frozenset[str] = frozenset(_VARIANTS)

# Pane lives on a headless host (the relay there can type into it)
REMOTE_VARIANTS = frozenset(
    {"ssh-linked", "ssh-tmux", "jupyter-tmux", "linux-tmux", "tmux"}
)
# Initiating desktop holds a Link Record for these
LINKED_VARIANTS = frozenset({"ssh-linked", "jupyter-tmux"})


# ---------------------------------------------------------------------------
# Encode / decode
# ---------------------------------------------------------------------------


def encode(address: FocusAddress, action: str | None = None) -> str:
    """Build a claude-focus:// URL for *address*.

    Raises:
        InvalidVariant: *address* is not a Focus Address variant or holds a
            value that cannot be percent-encoded.
    """
    if not isinstance(address, _Variant) or address.variant_type not in _VARIANTS:
        raise InvalidVariant(f"Not a focus address: {address!r}")
    try:
        path = "/".join(
            [address.variant_type] + [_quote(seg) for seg in address.segments()]
        )
        url = f"{SCHEME}{path}"
        if action:
            url += f"?action={_quote(action)}"
    except UnicodeEncodeError as e:
        raise InvalidVariant(f"{address.variant_type}: unencodable value ({e})") from e
    return url


def split_action(url: object) -> tuple[FocusAddress, str | None] | None:
    """Decode *url* into ``(address, action)``; ``None`` when malformed."""
    if not isinstance(url, str) or not url.startswith(SCHEME):
        return None
    rest = url[len(SCHEME) :]
    action: str | None = None
    path, sep, query = rest.partition("?")
    if sep:
        values = urllib.parse.parse_qs(query).get("action")
        action = values[0] if values else None

    raw_parts = path.split("/")
    cls = _VARIANTS.get(raw_parts[0])
    if cls is None:
        return None
    parts = [urllib.parse.unquote(p) for p in raw_parts[1:]]
    try:
        address = cls.from_segments(parts)
    except InvalidVariant:
        return None
    if address is None:
        return None
    return address, action  # type: ignore[return-value]


def decode(url: object) -> FocusAddress | None:
    """Parse a claude-focus:// URL; returns ``None`` instead of raising."""
    result = split_action(url)
    return result[0] if result else None


def strip_action(url: str) -> str:
    """Drop any ``?action=`` query from *url*."""
    return url.split("?", 1)[0]


# ---------------------------------------------------------------------------
# Record descriptors
# ---------------------------------------------------------------------------


def descriptor_of(address: FocusAddress) -> dict[str, Any]:
    """Variant fields as a plain dict (the records' ``target_descriptor``)."""
    return {k: v for k, v in dataclasses.asdict(address).items() if v is not None}


def from_descriptor(variant_type: str, fields: dict[str, Any]) -> FocusAddress | None:
    """Rebuild an address from a record's variant type + descriptor."""
    cls = _VARIANTS.get(variant_type)
    if cls is None or not isinstance(fields, dict):
        return None
    try:
        return cls(**fields)  # type: ignore[return-value]
    except (TypeError, InvalidVariant):
        return None


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_remote_address(address: FocusAddress) -> bool:
    """Pane lives on a headless host rather than behind a desktop window."""
    return address.variant_type in REMOTE_VARIANTS


def is_linked_address(address: FocusAddress) -> bool:
    return address.variant_type in LINKED_VARIANTS


def is_desktop_address(address: FocusAddress) -> bool:
    return address.variant_type not in REMOTE_VARIANTS


def tmux_target_of(address: FocusAddress) -> str | None:
    return getattr(address, "tmux_target", None)


def link_id_of(address: FocusAddress) -> str | None:
    return getattr(address, "link_id", None)
