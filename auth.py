from infrastructure.api.checkin_api_client import CheckInApiClient, DEFAULT_TIMEOUT
from infrastructure.cache.user_cache import UserCache
from infrastructure.repositories.sqlite_key_value_store import SQLiteKeyValueStore
from use_cases.auth_flow import AuthController
from use_cases.events import EventBus
from use_cases.ports import SocialIdentityProvider
import logging
import os
import streamlit as st
from streamlit.errors import StreamlitAPIException

log = logging.getLogger(__name__)

STORE_DB = "checkin_session.db"
DEFAULT_API_BASE_URL = "https://django-api-test-rubo.onrender.com"


def get_secret(key):
    try:
        return st.secrets.get(key)
    except (FileNotFoundError, StreamlitAPIException):
        # No secrets.toml; settings then come from the environment only.
        return None


def get_setting(key, default=None):
    value = get_secret(key) or os.getenv(key)
    return value if value else default


def get_request_timeout() -> float:
    raw = get_setting("CHECKIN_REQUEST_TIMEOUT")
    if raw is None:
        return DEFAULT_TIMEOUT
    try:
        return float(raw)
    except (TypeError, ValueError):
        log.warning(f"Invalid CHECKIN_REQUEST_TIMEOUT={raw!r}, using {DEFAULT_TIMEOUT}s")
        return DEFAULT_TIMEOUT


_store = None


def get_store() -> SQLiteKeyValueStore:
    global _store
    db_path = get_setting("CHECKIN_STORE_DB", STORE_DB)
    if _store is None or _store.db_path != db_path:
        _store = SQLiteKeyValueStore(db_path)
    return _store


def init_store():
    get_store().init_store()


def get_api_client() -> CheckInApiClient:
    return CheckInApiClient(
        get_setting("CHECKIN_API_BASE_URL", DEFAULT_API_BASE_URL),
        timeout=get_request_timeout(),
    )


@st.cache_resource
def get_event_bus() -> EventBus:
    # One bus per process so subscribers registered by other subsystems see every event.
    return EventBus()


def build_auth_controller(social_provider: SocialIdentityProvider = None, **overrides) -> AuthController:
    store = get_store()
    return AuthController(
        auth_service=overrides.pop("auth_service", None) or get_api_client(),
        store=store,
        events=overrides.pop("events", None) or get_event_bus(),
        cache=UserCache(store),
        social_provider=social_provider,
        **overrides,
    )
