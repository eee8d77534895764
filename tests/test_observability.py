import logging
from unittest.mock import patch

import pytest

from infrastructure import observability


def test_scrub_redacts_candidate_passwords_and_phone_numbers():
    event = {
        "exception": {
            "values": [
                {
                    "stacktrace": {
                        "frames": [
                            {"vars": {"password": "12345678", "username": "alice", "candidate": "123456"}},
                            {"vars": {"note": "call +1 555 010 9999", "items": ["password"]}},
                        ]
                    }
                }
            ]
        },
        "request": {"data": {"username": "amy", "phno": "5550109999"}},
    }

    scrubbed = observability.scrub_sensitive_data(event, {})

    frames = scrubbed["exception"]["values"][0]["stacktrace"]["frames"]
    assert frames[0]["vars"] == {"password": "[REDACTED]", "username": "alice", "candidate": "[REDACTED]"}
    assert "555" not in frames[1]["vars"]["note"]
    assert frames[1]["vars"]["items"] == ["[REDACTED]"]
    assert scrubbed["request"]["data"] == {"username": "amy", "phno": "[REDACTED]"}


def test_scrub_tolerates_malformed_events():
    event = {"exception": {"values": None}}
    assert observability.scrub_sensitive_data(event, {}) is event


def test_setup_without_dsn_skips_sentry(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "debug")

    with patch("sentry_sdk.init") as mock_init, patch("logging.basicConfig") as mock_basic:
        observability.setup_observability()

    mock_init.assert_not_called()
    assert mock_basic.call_args.kwargs["level"] == logging.DEBUG
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_setup_with_dsn_installs_scrubber(monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "https://key@sentry.example.test/1")
    monkeypatch.setenv("SENTRY_ENV", "staging")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.25")

    with patch("sentry_sdk.init") as mock_init, patch("logging.basicConfig"):
        observability.setup_observability()

    kwargs = mock_init.call_args.kwargs
    assert kwargs["environment"] == "staging"
    assert kwargs["traces_sample_rate"] == pytest.approx(0.25)
    assert kwargs["send_default_pii"] is False
    assert kwargs["before_send"] is observability.scrub_sensitive_data
