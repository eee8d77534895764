import pytest
from unittest.mock import patch

import auth
from conftest import ScriptedAuthService
from infrastructure.api.checkin_api_client import CheckInApiClient
from use_cases.events import EventBus


@pytest.fixture(autouse=True)
def reset_store():
    auth._store = None
    yield
    auth._store = None


@patch('auth.get_secret', return_value=None)
def test_get_setting_falls_back_to_env_then_default(_mock_secret, monkeypatch):
    monkeypatch.setenv("CHECKIN_API_BASE_URL", "https://env.example.test")
    monkeypatch.delenv("CHECKIN_STORE_DB", raising=False)

    assert auth.get_setting("CHECKIN_API_BASE_URL") == "https://env.example.test"
    assert auth.get_setting("CHECKIN_STORE_DB", auth.STORE_DB) == "checkin_session.db"


@patch('auth.get_secret', return_value="https://secret.example.test")
def test_secret_wins_over_env(_mock_secret, monkeypatch):
    monkeypatch.setenv("CHECKIN_API_BASE_URL", "https://env.example.test")

    assert auth.get_setting("CHECKIN_API_BASE_URL") == "https://secret.example.test"


@patch('auth.get_secret', return_value=None)
def test_request_timeout(_mock_secret, monkeypatch):
    monkeypatch.delenv("CHECKIN_REQUEST_TIMEOUT", raising=False)
    assert auth.get_request_timeout() == 30

    monkeypatch.setenv("CHECKIN_REQUEST_TIMEOUT", "12.5")
    assert auth.get_request_timeout() == 12.5

    monkeypatch.setenv("CHECKIN_REQUEST_TIMEOUT", "soon")
    assert auth.get_request_timeout() == 30


@patch('auth.get_secret', return_value=None)
def test_api_client_uses_configured_base_url(_mock_secret, monkeypatch):
    monkeypatch.delenv("CHECKIN_API_BASE_URL", raising=False)
    monkeypatch.delenv("CHECKIN_REQUEST_TIMEOUT", raising=False)

    client = auth.get_api_client()

    assert isinstance(client, CheckInApiClient)
    assert client.base_url == auth.DEFAULT_API_BASE_URL
    assert client.timeout == 30


@patch('auth.get_secret', return_value=None)
def test_store_follows_configured_path(_mock_secret, monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKIN_STORE_DB", str(tmp_path / "a.db"))
    first = auth.get_store()
    assert auth.get_store() is first

    monkeypatch.setenv("CHECKIN_STORE_DB", str(tmp_path / "b.db"))
    second = auth.get_store()

    assert second is not first
    assert second.db_path == str(tmp_path / "b.db")


@patch('auth.get_secret', return_value=None)
def test_build_auth_controller_restores_persisted_session(_mock_secret, monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKIN_STORE_DB", str(tmp_path / "session.db"))
    auth.init_store()
    auth.get_store().set("LoggedInUsername", "alice")
    auth.get_store().set("LoggedInName", "Alice")
    service = ScriptedAuthService()
    bus = EventBus()

    controller = auth.build_auth_controller(auth_service=service, events=bus)

    assert controller.state.is_authenticated is True
    assert controller.state.username == "alice"
    controller.logout()
    assert auth.get_store().get("LoggedInUsername") is None
