from typing import Optional


class AuthError(Exception):
    pass


class ValidationError(AuthError):
    pass


class TransportError(AuthError):
    """Network, timeout, HTTP status or decoding failure from a remote call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(AuthError):
    def __init__(self, message: str, days_remaining: int):
        super().__init__(message)
        self.days_remaining = days_remaining


class CascadeExhaustedError(AuthError):
    def __init__(self, message: str, last_error: Optional[str] = None):
        super().__init__(message)
        self.last_error = last_error


class ProviderError(AuthError):
    pass


class StoreError(AuthError):
    pass
