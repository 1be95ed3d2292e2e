"""Credential redaction in the log processor chain."""

import pytest

from vidgen.core.logging import redact_secrets

pytestmark = pytest.mark.unit


def test_long_secret_is_masked():
    event = redact_secrets(None, "info", {"event": "key_added", "secret": "zsk-abcdefghijklmnop"})
    assert event["secret"] == "zsk-...mnop"
    assert event["event"] == "key_added"


def test_short_and_non_string_values_fully_hidden():
    event = redact_secrets(None, "info", {"token": "abc", "cookies": [{"name": "SID"}]})
    assert event == {"token": "****", "cookies": "****"}


def test_other_fields_untouched():
    event = {"event": "key_reserved", "key_id": "k1", "label": "Token 3", "secret": None}
    assert redact_secrets(None, "info", dict(event)) == event
