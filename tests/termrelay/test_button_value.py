"""Tests for button_value.py — Slack button payload codec."""

import pytest

from termrelay.button_value import (
    MAX_BUTTON_VALUE_LENGTH,
    ButtonValue,
    ButtonValueTooLong,
    InvalidButtonValue,
    build_button_value,
    extract_action,
    extract_session_id,
    get_action_input,
    has_direct_url,
    is_valid_action,
    parse_button_value,
)
from termrelay.focus_url import SshLinked, Tmux, encode

# "url:" + "claude-focus://tmux/" + target + "|focus"
_OVERHEAD = len("url:claude-focus://tmux/|focus")


class TestBuild:
    def test_direct_form(self):
        value = build_button_value(Tmux(tmux_target="main:0.1"), "1")
        assert value == "url:claude-focus://tmux/main%3A0.1|1"

    def test_accepts_encoded_url(self):
        url = encode(Tmux(tmux_target="a"))
        assert build_button_value(url, "push") == f"url:{url}|push"

    def test_exactly_at_limit(self):
        address = Tmux(tmux_target="a" * (MAX_BUTTON_VALUE_LENGTH - _OVERHEAD))
        value = build_button_value(address, "focus")
        assert len(value) == MAX_BUTTON_VALUE_LENGTH

    def test_one_over_limit(self):
        address = Tmux(tmux_target="a" * (MAX_BUTTON_VALUE_LENGTH - _OVERHEAD + 1))
        with pytest.raises(ButtonValueTooLong) as exc_info:
            build_button_value(address, "focus")
        assert exc_info.value.length == MAX_BUTTON_VALUE_LENGTH + 1

    def test_escaped_characters_count_toward_limit(self):
        # Each ":" expands to "%3A"
        address = Tmux(tmux_target=":" * 700)
        with pytest.raises(ButtonValueTooLong):
            build_button_value(address, "1")

    def test_unknown_action(self):
        with pytest.raises(InvalidButtonValue):
            build_button_value(Tmux(tmux_target="a"), "reboot")

    def test_unescaped_separator_rejected(self):
        with pytest.raises(InvalidButtonValue):
            build_button_value("claude-focus://tmux/a|b", "1")

    def test_errors_are_value_errors(self):
        assert issubclass(ButtonValueTooLong, ValueError)
        assert issubclass(InvalidButtonValue, ValueError)


class TestParse:
    @pytest.mark.parametrize("action", ["focus", "1", "2", "continue", "push"])
    def test_parse_build_identity(self, action):
        address = SshLinked(
            link_id="l|x", host="h", user="u", port=2200, tmux_target="s:1.0"
        )
        parsed = parse_button_value(build_button_value(address, action))
        assert parsed == ButtonValue(action=action, focus_url=encode(address))
        assert parsed.is_direct

    def test_last_separator_rule(self):
        parsed = parse_button_value("url:claude-focus://tmux/a|b|c|focus")
        assert parsed is not None
        assert parsed.action == "focus"
        assert parsed.focus_url == "claude-focus://tmux/a|b|c"

    def test_legacy_form(self):
        parsed = parse_button_value("abc123|continue")
        assert parsed == ButtonValue(action="continue", session_id="abc123")
        assert not parsed.is_direct

    def test_unknown_action_still_parses(self):
        parsed = parse_button_value("url:claude-focus://tmux/a|bogus")
        assert parsed is not None
        assert not is_valid_action(parsed.action)

    @pytest.mark.parametrize(
        "value",
        [None, 5, "", "nopipe", "url:|focus", "url:claude-focus://tmux/a|", "|1", "|"],
    )
    def test_malformed(self, value):
        assert parse_button_value(value) is None


class TestHelpers:
    def test_extract_action_matches_parse(self):
        for value in ("url:claude-focus://tmux/a|b|push", "sid|2", "x|y|z|1"):
            assert extract_action(value) == parse_button_value(value).action

    def test_extract_action_missing(self):
        assert extract_action("nopipe") is None
        assert extract_action("sid|") is None

    def test_extract_session_id(self):
        assert extract_session_id("sid|2") == "sid"
        assert extract_session_id("a|b|2") == "a|b"
        assert extract_session_id("url:claude-focus://tmux/a|1") is None
        assert extract_session_id("|2") is None

    def test_has_direct_url(self):
        assert has_direct_url("url:claude-focus://ghostty|focus")
        assert not has_direct_url("sid|focus")

    def test_action_inputs(self):
        assert get_action_input("1") == "1"
        assert get_action_input("2") == "2"
        assert get_action_input("continue") == "Continue"
        assert get_action_input("push") == "/push"
        assert get_action_input("focus") is None
        assert get_action_input("bogus") is None
