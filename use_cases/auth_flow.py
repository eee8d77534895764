"""Authentication flow orchestration (application layer).

AuthController owns the single SessionState snapshot and is its only writer.
Every public operation resolves to an AuthFlowResult; remote and store
failures are folded into that result instead of escaping to the caller.

Login cascade for ``login_user``:

    login(candidate 1..n) -> social_auth -> register(candidate 1..n) -> fail

Each step advances on a negative response *or* a transport failure. Calls
are sequential, so the remote service sees them in candidate order.
"""

import logging
import random
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from use_cases import profile_policy
from use_cases.auth_errors import (
    AuthError,
    CascadeExhaustedError,
    ProviderError,
    RateLimitError,
    StoreError,
    TransportError,
    ValidationError,
)
from use_cases.events import EventBus, HeaderStatsReady, UserAuthenticated
from use_cases.ports import AuthService, CacheInvalidator, DurableStore, SocialIdentityProvider
from use_cases.session_models import (
    KEY_GUEST_NAME,
    KEY_GUEST_USERNAME,
    KEY_HAS_USED_APP_BEFORE,
    KEY_IS_GUEST_MODE,
    KEY_LAST_USERNAME_CHANGE,
    KEY_LOGGED_IN_NAME,
    KEY_LOGGED_IN_USERNAME,
    REAL_ACCOUNT_KEYS,
    AuthFlowResult,
    AuthResponse,
    Identity,
    SessionState,
    SocialIdentity,
    SocialProvider,
    is_guest,
    logged_out_state,
)

log = logging.getLogger(__name__)

# Legacy backend accounts were created with one of these fixed passwords.
# Kept verbatim for compatibility; "" marks the end of the real candidates
# and is never sent.
CREDENTIAL_CANDIDATES: Tuple[str, ...] = ("12345678", "123456", "password", "12345", "")
BACKGROUND_SYNC_PASSWORD = CREDENTIAL_CANDIDATES[0]

CHECKING_IN_STATUS = "Checking in..."
CREATING_ACCOUNT_STATUS = "Creating your account..."
REGISTRATION_FAILED_STATUS = "Registration failed - unable to create account"
GUEST_MODE_STATUS = "Guest mode - no account needed"
PHONE_REQUIRED_STATUS = "Phone number required"
USER_NOT_FOUND_MARKER = "user not found"

StateListener = Callable[[SessionState], None]
PhoneNeededCallback = Callable[[SocialIdentity], None]
Dispatcher = Callable[..., None]


def run_in_background(fn: Callable[..., None], *args: Any) -> None:
    t = threading.Thread(target=fn, args=args, daemon=True)
    t.start()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class _CascadeCancelled(Exception):
    pass


def _parse_timestamp(raw: Any) -> Optional[datetime]:
    if raw is None:
        return None
    try:
        parsed = datetime.fromisoformat(str(raw))
    except ValueError:
        log.warning(f"Ignoring unparsable {KEY_LAST_USERNAME_CHANGE} value: {raw!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def restore_session_state(store: DurableStore, rng: Optional[random.Random] = None) -> SessionState:
    """
    Rebuilds SessionState from the durable store.
    Precedence: real account > guest session > logged out.
    Keys are stored separately, so a half-written account (e.g. username
    without name) falls through to the next branch.
    """
    last_change = _parse_timestamp(store.get(KEY_LAST_USERNAME_CHANGE))

    saved_username = store.get(KEY_LOGGED_IN_USERNAME)
    saved_name = store.get(KEY_LOGGED_IN_NAME)
    if saved_username and saved_name:
        log.info(f"Restored session for @{saved_username}")
        return SessionState(
            is_authenticated=True,
            username=saved_username,
            display_name=saved_name,
            status_message=f"Logged in as {saved_name}",
            is_first_time_user=False,
            last_username_change_at=last_change,
        )

    if store.get(KEY_IS_GUEST_MODE):
        guest_username = store.get(KEY_GUEST_USERNAME)
        if not guest_username:
            guest_username = profile_policy.generate_guest_username(rng)
            store.set(KEY_GUEST_USERNAME, guest_username)
            log.info(f"Guest flag set without a username, generated {guest_username}")
        return SessionState(
            is_authenticated=True,
            username=guest_username,
            display_name=store.get(KEY_GUEST_NAME) or profile_policy.GUEST_DISPLAY_NAME,
            status_message="Guest mode",
            is_first_time_user=False,
            is_guest_mode=True,
            last_username_change_at=last_change,
        )

    return logged_out_state(
        is_first_time_user=not store.get(KEY_HAS_USED_APP_BEFORE),
        last_username_change_at=last_change,
    )


class AuthController:
    def __init__(
        self,
        auth_service: AuthService,
        store: DurableStore,
        events: EventBus,
        cache: CacheInvalidator,
        social_provider: Optional[SocialIdentityProvider] = None,
        *,
        dispatch: Dispatcher = run_in_background,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
    ):
        self._auth_service = auth_service
        self._store = store
        self._events = events
        self._cache = cache
        self._social_provider = social_provider
        self._dispatch = dispatch
        self._clock = clock
        self._rng = rng or random.Random()
        self._listeners: List[StateListener] = []
        self._closed = threading.Event()
        self.on_phone_number_needed: Optional[PhoneNeededCallback] = None
        self._phone_saved_for: Optional[str] = None
        self._state = restore_session_state(store, self._rng)

    # ------------------------------------------------------------------
    # Observation and lifecycle

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        """
        In-flight cascades and background completions stop at their next step.
        A cancelled operation leaves the last snapshot as it was, including
        is_loading=True; a closed controller is meant to be discarded, not read.
        """
        self._closed.set()

    def _set_state(self, new_state: SessionState) -> None:
        self._state = new_state
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                log.error(f"Session state listener failed: {e}", exc_info=True)

    def _update(self, **changes: Any) -> None:
        self._set_state(self._state.evolve(**changes))

    def _ensure_open(self) -> None:
        if self._closed.is_set():
            raise _CascadeCancelled()

    def _persist(self, values: Dict[str, Any], remove: Iterable[str] = ()) -> None:
        for key, value in values.items():
            self._store.set(key, value)
        for key in remove:
            self._store.remove(key)

    def _reject(self, error: ValidationError) -> AuthFlowResult:
        self._update(status_message=str(error))
        return AuthFlowResult(status="FAILED", message=str(error), error=error)

    def _fail(self, error: Optional[AuthError], status_message: Optional[str] = None) -> AuthFlowResult:
        """Surfaces a failure; clears the loading flag and optionally sets the status line."""
        changes: Dict[str, Any] = {"is_loading": False}
        if status_message is not None:
            changes["status_message"] = status_message
        self._update(**changes)
        return AuthFlowResult(status="FAILED", message=status_message or str(error), error=error)

    # ------------------------------------------------------------------
    # Commit

    def _commit(
        self,
        identity: Identity,
        message: str,
        *,
        publish_header_stats: bool = True,
        has_phone_number: Optional[bool] = None,
    ) -> AuthFlowResult:
        try:
            self._persist(
                {
                    KEY_LOGGED_IN_USERNAME: identity.username,
                    KEY_LOGGED_IN_NAME: identity.display_name,
                    KEY_HAS_USED_APP_BEFORE: True,
                    KEY_IS_GUEST_MODE: False,
                }
            )
        except StoreError as e:
            log.error(f"Could not persist session for @{identity.username}: {e}")
            return self._fail(e, f"Could not save session: {e}")

        changes: Dict[str, Any] = {
            "is_authenticated": True,
            "username": identity.username,
            "display_name": identity.display_name,
            "status_message": message,
            "is_first_time_user": False,
            "is_guest_mode": False,
            "is_loading": False,
        }
        if has_phone_number is None:
            # Only a phone saved for this identity counts.
            has_phone_number = identity.username == self._phone_saved_for
        changes["has_phone_number"] = has_phone_number
        self._update(**changes)
        log.info(f"User authenticated: {identity.display_name} (@{identity.username})")

        self._events.publish(UserAuthenticated(username=identity.username))
        if publish_header_stats:
            self._dispatch(self._publish_header_stats, identity.username)
        return AuthFlowResult(status="AUTHENTICATED", message=message, username=identity.username)

    def _publish_header_stats(self, username: str) -> None:
        if self._closed.is_set():
            return
        self._events.publish(HeaderStatsReady(username=username))

    def handle_successful_login(self, username: str, display_name: str) -> AuthFlowResult:
        """Commit entry point for auth views that verified the user themselves."""
        try:
            profile_policy.validate_login_input(username, display_name)
        except ValidationError as e:
            return self._reject(e)
        return self._commit(Identity(username, display_name), f"Welcome back, {display_name}!")

    # ------------------------------------------------------------------
    # Instant login

    def login_user_instantly(self, username: str, display_name: str) -> AuthFlowResult:
        try:
            profile_policy.validate_login_input(username, display_name)
        except ValidationError as e:
            return self._reject(e)

        log.info(f"Instant login for: {display_name} (@{username})")
        result = self._commit(Identity(username, display_name), f"Welcome to CheckIn, {display_name}!")
        if result.ok:
            self._dispatch(self._sync_user_in_background, username)
        return result

    def _sync_user_in_background(self, username: str) -> None:
        log.info(f"Background sync: registering @{username} with API")
        try:
            response = self._auth_service.register(username, BACKGROUND_SYNC_PASSWORD)
        except Exception as e:
            # Best effort: the user is already in; nothing is surfaced or retried.
            log.warning(f"Background sync for @{username} failed: {e}")
            return
        if response.success:
            log.info(f"Background sync: @{username} registered with API")
        else:
            log.warning(f"Background sync: API registration failed - {response.message or 'Unknown error'}")

    # ------------------------------------------------------------------
    # Cascade

    def _attempt_candidates(
        self,
        operation: str,
        call: Callable[[str, str], AuthResponse],
        username: str,
    ) -> Tuple[Optional[AuthResponse], Optional[str]]:
        """
        Tries every non-empty candidate in order.
        Returns (successful_response, None) or (None, last_failure_detail).
        """
        last_error: Optional[str] = None
        for position, password in enumerate(CREDENTIAL_CANDIDATES, start=1):
            if not password:
                continue
            self._ensure_open()
            try:
                response = call(username, password)
            except TransportError as e:
                last_error = str(e)
                log.info(f"{operation} failed with password approach #{position}: {e}")
                continue
            self._ensure_open()
            if response.success:
                log.info(f"{operation} successful with password approach #{position}")
                return response, None
            last_error = response.message or "Unknown error"
            log.info(f"{operation} failed with password approach #{position}: {last_error}")
        return None, last_error

    def login_user(self, username: str, display_name: str) -> AuthFlowResult:
        try:
            profile_policy.validate_login_input(username, display_name)
        except ValidationError as e:
            return self._reject(e)

        self._update(is_loading=True, status_message=CHECKING_IN_STATUS)
        identity = Identity(username, display_name)
        try:
            response, _ = self._attempt_candidates("Login", self._auth_service.login, username)
            if response is not None:
                return self._commit(identity, response.message or "Login successful")
            return self._try_social_auth(identity)
        except _CascadeCancelled:
            log.info(f"Login cascade for @{username} cancelled")
            return AuthFlowResult(status="FAILED", message="Cancelled", username=username)

    def _try_social_auth(self, identity: Identity) -> AuthFlowResult:
        self._ensure_open()
        log.info(f"Trying social auth for @{identity.username}")
        try:
            response = self._auth_service.social_auth(identity.username)
        except TransportError as e:
            log.info(f"Social auth failed: {e}")
            return self._register_cascade(identity)
        self._ensure_open()
        if response.success:
            return self._commit(identity, response.message or "Login successful")
        log.info(f"Social auth failed: {response.message or 'Unknown error'}")
        return self._register_cascade(identity)

    def _register_cascade(self, identity: Identity) -> AuthFlowResult:
        self._ensure_open()
        self._update(is_loading=True, status_message=CREATING_ACCOUNT_STATUS)
        response, last_error = self._attempt_candidates("Registration", self._auth_service.register, identity.username)
        if response is not None:
            return self._commit(identity, f"Welcome to CheckIn, {identity.display_name}!")

        self._ensure_open()
        log.warning(f"Registration cascade exhausted for @{identity.username}: {last_error}")
        return self._fail(CascadeExhaustedError(REGISTRATION_FAILED_STATUS, last_error), REGISTRATION_FAILED_STATUS)

    def skip_onboarding_with_random_user(self) -> AuthFlowResult:
        """Registers a freshly generated account. Unlike guest mode this is a real account."""
        username, display_name = profile_policy.generate_random_user(self._clock(), self._rng)
        log.info(f"Generating random user: {display_name} (@{username})")
        self._update(is_loading=True, status_message=f"Creating {display_name} (@{username})...")
        try:
            return self._register_cascade(Identity(username, display_name))
        except _CascadeCancelled:
            return AuthFlowResult(status="FAILED", message="Cancelled", username=username)

    # ------------------------------------------------------------------
    # Social sign-in and phone gating

    def sign_in_with_provider(self, provider: SocialProvider, require_phone: bool = True) -> AuthFlowResult:
        if self._social_provider is None:
            return AuthFlowResult(
                status="FAILED",
                message="Social sign-in is not available",
                error=ProviderError("No social identity provider configured"),
            )
        try:
            social_identity = self._social_provider.sign_in(provider)
        except ProviderError as e:
            log.warning(f"{provider} sign-in failed: {e}")
            return AuthFlowResult(status="FAILED", message=str(e), error=e)
        return self.try_social_login(
            social_identity.email,
            social_identity.display_name,
            require_phone=require_phone,
            provider=social_identity.provider or provider,
        )

    def try_social_login(
        self,
        email: str,
        display_name: str,
        require_phone: bool = True,
        provider: Optional[SocialProvider] = None,
    ) -> AuthFlowResult:
        try:
            profile_policy.validate_login_input(email, display_name)
        except ValidationError as e:
            return self._reject(e)

        self._update(is_loading=True, status_message=CHECKING_IN_STATUS)
        failure, error = self._social_call(self._auth_service.social_auth, email)
        if failure is not None:
            if USER_NOT_FOUND_MARKER not in failure.lower():
                return self._fail(error, f"Social sign-in failed: {failure}")
            log.info(f"No account for {email}, registering via social register")
            failure, error = self._social_call(self._auth_service.social_register, email)
            if failure is not None:
                return self._fail(error, f"Social sign-up failed: {failure}")

        if self._closed.is_set():
            return AuthFlowResult(status="FAILED", message="Cancelled", username=email)
        if require_phone:
            return self.complete_social_login_with_phone_check(email, display_name, provider=provider)
        return self.complete_social_login(email, display_name)

    def _social_call(self, call: Callable[[str], AuthResponse], email: str) -> Tuple[Optional[str], Optional[AuthError]]:
        """Returns (None, None) on success, else (failure_detail, error)."""
        try:
            response = call(email)
        except TransportError as e:
            return str(e), e
        if response.success:
            return None, None
        message = response.message or "Unknown error"
        return message, AuthError(message)

    def complete_social_login(self, email: str, display_name: str) -> AuthFlowResult:
        """Commits a social identity without checking for a phone number."""
        # TODO: confirm with product whether non-gated social commits should stay once phone capture ships everywhere.
        return self._commit(SocialIdentity(email, display_name).as_identity(), f"Welcome back, {email}!")

    def complete_social_login_with_phone_check(
        self,
        email: str,
        display_name: str,
        provider: Optional[SocialProvider] = None,
    ) -> AuthFlowResult:
        """
        Commits only if the account already has a phone number. Otherwise the
        session stays unauthenticated and on_phone_number_needed fires once, so
        the host can collect a number and then call complete_social_login.
        """
        social_identity = SocialIdentity(email=email, display_name=display_name, provider=provider)
        if self._lookup_phone(email):
            return self._commit(
                social_identity.as_identity(),
                f"Welcome back, {email}!",
                publish_header_stats=False,
                has_phone_number=True,
            )

        self._update(is_loading=False, has_phone_number=False, status_message=PHONE_REQUIRED_STATUS)
        callback = self.on_phone_number_needed
        if callback is not None:
            try:
                callback(social_identity)
            except Exception as e:
                log.error(f"Phone-number-needed callback failed: {e}", exc_info=True)
        return AuthFlowResult(status="PHONE_REQUIRED", message=PHONE_REQUIRED_STATUS, username=email)

    def _lookup_phone(self, username: str) -> bool:
        try:
            return self._auth_service.check_phone(username).exists
        except TransportError as e:
            log.warning(f"Phone number check for @{username} failed: {e}")
            return False

    def _resolve_username(self, username: Optional[str]) -> Optional[str]:
        return username or self._store.get(KEY_LOGGED_IN_USERNAME)

    def check_phone_number_exists(self, username: Optional[str] = None) -> AuthFlowResult:
        target = self._resolve_username(username)
        if not target:
            return AuthFlowResult(status="FAILED", message="No logged in user", error=ValidationError("No logged in user"))
        exists = self._lookup_phone(target)
        self._update(has_phone_number=exists)
        message = "Phone number exists" if exists else "Phone number not found"
        return AuthFlowResult(status="UPDATED", message=message, username=target)

    def save_phone_number(self, phone: str, username: Optional[str] = None) -> AuthFlowResult:
        target = self._resolve_username(username)
        if not target:
            return AuthFlowResult(status="FAILED", message="No logged in user", error=ValidationError("No logged in user"))
        cleaned = profile_policy.clean_phone_number(phone)
        if not cleaned:
            error = ValidationError("Phone number must contain digits")
            return AuthFlowResult(status="FAILED", message=str(error), username=target, error=error)

        try:
            response = self._auth_service.update_phone(target, cleaned)
        except TransportError as e:
            log.warning(f"Phone update for @{target} failed: {e}")
            return AuthFlowResult(status="FAILED", message=str(e), username=target, error=e)
        if not response.success:
            message = response.message or "Phone update failed"
            log.warning(f"Phone update failed: {message}")
            return AuthFlowResult(status="FAILED", message=message, username=target, error=AuthError(message))

        self._phone_saved_for = target
        self._update(has_phone_number=True)
        return AuthFlowResult(status="UPDATED", message="Phone number saved", username=target)

    # ------------------------------------------------------------------
    # Guest mode

    def enter_guest_mode(self) -> AuthFlowResult:
        guest_username = profile_policy.generate_guest_username(self._rng)
        guest_name = profile_policy.GUEST_DISPLAY_NAME
        try:
            self._persist(
                {
                    KEY_IS_GUEST_MODE: True,
                    KEY_GUEST_USERNAME: guest_username,
                    KEY_GUEST_NAME: guest_name,
                    KEY_HAS_USED_APP_BEFORE: True,
                },
                remove=REAL_ACCOUNT_KEYS,
            )
        except StoreError as e:
            log.error(f"Could not enter guest mode: {e}")
            return AuthFlowResult(status="FAILED", message=f"Could not enter guest mode: {e}", error=e)

        self._update(
            is_authenticated=True,
            is_guest_mode=True,
            username=guest_username,
            display_name=guest_name,
            status_message=GUEST_MODE_STATUS,
            is_first_time_user=False,
            is_loading=False,
            has_phone_number=False,
        )
        log.info(f"Guest mode activated with username: {guest_username}")
        return AuthFlowResult(status="AUTHENTICATED", message=GUEST_MODE_STATUS, username=guest_username)

    # ------------------------------------------------------------------
    # Profile

    def can_change_username(self) -> bool:
        return profile_policy.can_change_username(self._state.last_username_change_at, self._clock())

    def days_until_username_change(self) -> int:
        return profile_policy.days_until_username_change(self._state.last_username_change_at, self._clock())

    def update_username(self, new_username: str) -> AuthFlowResult:
        now = self._clock()
        last_change = self._state.last_username_change_at
        try:
            profile_policy.validate_new_username(new_username, last_change, now)
        except (RateLimitError, ValidationError) as e:
            return AuthFlowResult(status="FAILED", message=str(e), error=e)

        changed_at = max(now, last_change) if last_change else now
        # Real accounts are renamed locally only; the backend has no rename endpoint yet.
        key = KEY_GUEST_USERNAME if is_guest(self._state) else KEY_LOGGED_IN_USERNAME
        try:
            self._persist({key: new_username, KEY_LAST_USERNAME_CHANGE: changed_at.isoformat()})
        except StoreError as e:
            return AuthFlowResult(status="FAILED", message=f"Could not save username: {e}", error=e)

        self._update(username=new_username, last_username_change_at=changed_at)
        return AuthFlowResult(status="UPDATED", message="Username updated successfully!", username=new_username)

    def update_name(self, new_name: str) -> AuthFlowResult:
        try:
            profile_policy.validate_display_name(new_name)
        except ValidationError as e:
            return AuthFlowResult(status="FAILED", message=str(e), error=e)

        key = KEY_GUEST_NAME if is_guest(self._state) else KEY_LOGGED_IN_NAME
        try:
            self._persist({key: new_name})
        except StoreError as e:
            return AuthFlowResult(status="FAILED", message=f"Could not save name: {e}", error=e)

        self._update(display_name=new_name)
        return AuthFlowResult(status="UPDATED", message="Name updated successfully!", username=self._state.username)

    # ------------------------------------------------------------------
    # Logout

    def logout(self) -> AuthFlowResult:
        username = self._state.username
        store_error: Optional[StoreError] = None
        if username:
            try:
                self._cache.clear_user_cache(username)
            except StoreError as e:
                log.error(f"Logout could not clear cached data for @{username}: {e}")
                store_error = e
        try:
            # Guest identity keys survive logout so a returning guest keeps the handle.
            self._persist({}, remove=(KEY_LOGGED_IN_USERNAME, KEY_LOGGED_IN_NAME, KEY_IS_GUEST_MODE))
        except StoreError as e:
            log.error(f"Logout could not clear stored session: {e}")
            store_error = e

        self._set_state(
            logged_out_state(
                is_first_time_user=self._state.is_first_time_user,
                last_username_change_at=self._state.last_username_change_at,
            )
        )
        if username:
            log.info(f"User @{username} logged out")
        if store_error is not None:
            return AuthFlowResult(status="FAILED", message=str(store_error), error=store_error)
        return AuthFlowResult(status="LOGGED_OUT", message="Logged out")
