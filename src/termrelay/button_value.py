"""Button payload codec — packs a Focus Address and an action into a Slack button value.

Two wire forms are accepted:

  url:<claude-focus URL>|<action>   direct form, carries the address itself
  <session id>|<action>             legacy form, resolved through the Registry

Parsing always splits on the *last* ``|``.  The Focus Address encoder
percent-escapes ``|`` inside every segment, and ``build_button_value``
refuses an address that still contains one, so the last separator is
always the one this module wrote.

Slack caps button values at 2000 characters; building a longer value raises
``ButtonValueTooLong`` instead of truncating.
"""

from __future__ import annotations

from dataclasses import dataclass

from .focus_url import FocusAddress, encode

MAX_BUTTON_VALUE_LENGTH = 2000

DIRECT_PREFIX = "url:"
SEPARATOR = "|"

ACTION_FOCUS = "focus"

# Action token -> literal text typed into the pane (None: no input)
ACTION_INPUTS: dict[str, str | None] = {
    ACTION_FOCUS: None,
    "1": "1",
    "2": "2",
    "continue": "Continue",
    "push": "/push",
}


class InvalidButtonValue(ValueError):
    """Address or action cannot be packed into a button value."""


class ButtonValueTooLong(ValueError):
    """Encoded button value exceeds the Slack limit."""

    def __init__(self, length: int) -> None:
        super().__init__(
            f"Button value exceeds Slack limit: {length} > {MAX_BUTTON_VALUE_LENGTH}"
        )
        self.length = length


@dataclass(frozen=True)
class ButtonValue:
    """Parsed button value.  Exactly one of focus_url / session_id is set."""

    action: str
    focus_url: str | None = None
    session_id: str | None = None

    @property
    def is_direct(self) -> bool:
        return self.focus_url is not None


def is_valid_action(action: str | None) -> bool:
    return action in ACTION_INPUTS


def get_action_input(action: str) -> str | None:
    """Literal input for *action*; ``None`` for focus or an unknown token."""
    return ACTION_INPUTS.get(action)


def build_button_value(address: FocusAddress | str, action: str) -> str:
    """Build ``url:<focus url>|<action>``.

    *address* may be a Focus Address or an already-encoded claude-focus URL.

    Raises:
        InvalidButtonValue: unknown action, or the URL contains an unescaped
            separator.
        ButtonValueTooLong: result is longer than MAX_BUTTON_VALUE_LENGTH.
        InvalidVariant: *address* is a Focus Address that cannot be encoded.
    """
    if not is_valid_action(action):
        raise InvalidButtonValue(f"Unknown button action: {action!r}")
    focus_url = address if isinstance(address, str) else encode(address)
    if not focus_url:
        raise InvalidButtonValue("Empty focus URL")
    if SEPARATOR in focus_url:
        raise InvalidButtonValue(
            f"Focus URL contains an unescaped {SEPARATOR!r}: {focus_url[:80]}"
        )

    value = f"{DIRECT_PREFIX}{focus_url}{SEPARATOR}{action}"
    if len(value) > MAX_BUTTON_VALUE_LENGTH:
        raise ButtonValueTooLong(len(value))
    return value


def parse_button_value(value: object) -> ButtonValue | None:
    """Parse a button value in either form; ``None`` if malformed.

    The action is returned as written; callers check it with
    ``is_valid_action``.
    """
    if not isinstance(value, str):
        return None
    head, sep, action = value.rpartition(SEPARATOR)
    if not sep or not action:
        return None

    if head.startswith(DIRECT_PREFIX):
        focus_url = head[len(DIRECT_PREFIX) :]
        if not focus_url:
            return None
        return ButtonValue(action=action, focus_url=focus_url)

    if not head:
        return None
    return ButtonValue(action=action, session_id=head)


def has_direct_url(value: str) -> bool:
    return value.startswith(DIRECT_PREFIX)


def extract_action(value: str) -> str | None:
    _, sep, action = value.rpartition(SEPARATOR)
    return action if sep and action else None


def extract_session_id(value: str) -> str | None:
    """Session id of a legacy value; ``None`` for the direct form."""
    if has_direct_url(value):
        return None
    head, sep, _ = value.rpartition(SEPARATOR)
    return head if sep and head else None
