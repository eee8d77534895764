import random
from datetime import datetime, timedelta, timezone

import pytest

from infrastructure.cache.user_cache import UserCache
from infrastructure.repositories.sqlite_key_value_store import SQLiteKeyValueStore
from use_cases.auth_flow import AuthController
from use_cases.events import EventBus, HeaderStatsReady, UserAuthenticated
from use_cases.session_models import AuthResponse, PhoneCheckResponse

REJECTED = AuthResponse(success=False, message="Invalid credentials")


class ScriptedAuthService:
    """AuthService double: each method replays queued outcomes, then a default one."""

    def __init__(self, **scripts):
        self.scripts = {name: list(outcomes) for name, outcomes in scripts.items()}
        self.calls = []

    def _next(self, method, default, *args):
        self.calls.append((method,) + args)
        queue = self.scripts.get(method)
        outcome = queue.pop(0) if queue else default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def calls_to(self, method):
        return [c[1:] for c in self.calls if c[0] == method]

    def login(self, username, password):
        return self._next("login", REJECTED, username, password)

    def register(self, username, password):
        return self._next("register", REJECTED, username, password)

    def social_auth(self, username):
        return self._next("social_auth", REJECTED, username)

    def social_register(self, username):
        return self._next("social_register", REJECTED, username)

    def check_phone(self, username):
        return self._next("check_phone", PhoneCheckResponse(exists=False), username)

    def update_phone(self, username, phone):
        return self._next("update_phone", AuthResponse(success=True, message="Phone updated"), username, phone)


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


def run_inline(fn, *args):
    fn(*args)


@pytest.fixture
def store(tmp_path):
    kv = SQLiteKeyValueStore(str(tmp_path / "session.db"))
    kv.init_store()
    return kv


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def published(bus):
    events = []
    bus.subscribe(UserAuthenticated, events.append)
    bus.subscribe(HeaderStatsReady, events.append)
    return events


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service():
    return ScriptedAuthService()


@pytest.fixture
def make_controller(store, bus, clock):
    def factory(auth_service=None, social_provider=None, **kwargs):
        kwargs.setdefault("dispatch", run_inline)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("rng", random.Random(7))
        kwargs.setdefault("cache", UserCache(store))
        return AuthController(
            auth_service=auth_service or ScriptedAuthService(),
            store=store,
            events=bus,
            social_provider=social_provider,
            **kwargs,
        )

    return factory
