"""Collaborator contracts consumed by the account session layer.

Remote calls return a response DTO or raise ``TransportError``; providers
raise ``ProviderError``. Implementations live under ``infrastructure``.
"""

from typing import Any, Optional, Protocol

from use_cases.session_models import AuthResponse, PhoneCheckResponse, SocialIdentity, SocialProvider


class AuthService(Protocol):
    def login(self, username: str, password: str) -> AuthResponse: ...

    def register(self, username: str, password: str) -> AuthResponse: ...

    def social_auth(self, username: str) -> AuthResponse: ...

    def social_register(self, username: str) -> AuthResponse: ...

    def check_phone(self, username: str) -> PhoneCheckResponse: ...

    def update_phone(self, username: str, phone: str) -> AuthResponse: ...


class SocialIdentityProvider(Protocol):
    def sign_in(self, provider: SocialProvider) -> SocialIdentity: ...


class DurableStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class CacheInvalidator(Protocol):
    def clear_user_cache(self, username: str) -> None: ...
