"""Session DTOs shared across application layers."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Literal, Optional

AuthFlowStatus = Literal["AUTHENTICATED", "PHONE_REQUIRED", "UPDATED", "FAILED", "LOGGED_OUT"]
SocialProvider = Literal["apple", "google", "spotify"]

LOGGED_OUT_STATUS = "Not logged in"


@dataclass(frozen=True)
class SessionState:
    """Who is using the app right now. Replaced as a whole, never mutated."""

    is_authenticated: bool = False
    username: str = ""
    display_name: str = ""
    status_message: str = LOGGED_OUT_STATUS
    is_loading: bool = False
    is_first_time_user: bool = True
    is_guest_mode: bool = False
    last_username_change_at: Optional[datetime] = None
    has_phone_number: bool = False

    def evolve(self, **changes) -> "SessionState":
        return replace(self, **changes)


@dataclass(frozen=True)
class Identity:
    username: str
    display_name: str


@dataclass(frozen=True)
class SocialIdentity:
    email: str
    display_name: str
    provider: Optional[SocialProvider] = None

    def as_identity(self) -> Identity:
        return Identity(username=self.email, display_name=self.display_name)


@dataclass(frozen=True)
class AuthResponse:
    success: bool
    message: Optional[str] = None


@dataclass(frozen=True)
class PhoneCheckResponse:
    exists: bool
    phone: Optional[str] = None


@dataclass(frozen=True)
class AuthFlowResult:
    """Result contract for every public AuthController operation."""

    status: AuthFlowStatus
    message: str
    username: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.status != "FAILED"


def logged_out_state(is_first_time_user: bool = True, last_username_change_at: Optional[datetime] = None) -> SessionState:
    return SessionState(
        is_first_time_user=is_first_time_user,
        last_username_change_at=last_username_change_at,
    )


def is_guest(state: SessionState) -> bool:
    return state.is_authenticated and state.is_guest_mode


def has_real_account(state: SessionState) -> bool:
    return state.is_authenticated and not state.is_guest_mode


# Durable store keys. Each SessionState field is mirrored under its own key.
KEY_LOGGED_IN_USERNAME = "LoggedInUsername"
KEY_LOGGED_IN_NAME = "LoggedInName"
KEY_HAS_USED_APP_BEFORE = "HasUsedAppBefore"
KEY_IS_GUEST_MODE = "IsGuestMode"
KEY_GUEST_USERNAME = "GuestUsername"
KEY_GUEST_NAME = "GuestName"
KEY_LAST_USERNAME_CHANGE = "LastUsernameChange"

REAL_ACCOUNT_KEYS = (KEY_LOGGED_IN_USERNAME, KEY_LOGGED_IN_NAME)
