"""Application layer contracts for orchestrating account session flows.

use_cases.bootstrap is not re-exported here: it imports the composition root.
"""

from .auth_errors import (
    AuthError,
    CascadeExhaustedError,
    ProviderError,
    RateLimitError,
    StoreError,
    TransportError,
    ValidationError,
)
from .auth_flow import CREDENTIAL_CANDIDATES, AuthController, restore_session_state
from .events import EventBus, HeaderStatsReady, UserAuthenticated
from .session_models import (
    AuthFlowResult,
    AuthFlowStatus,
    AuthResponse,
    Identity,
    PhoneCheckResponse,
    SessionState,
    SocialIdentity,
    has_real_account,
    is_guest,
)

__all__ = [
    "AuthController",
    "AuthError",
    "AuthFlowResult",
    "AuthFlowStatus",
    "AuthResponse",
    "CREDENTIAL_CANDIDATES",
    "CascadeExhaustedError",
    "EventBus",
    "HeaderStatsReady",
    "Identity",
    "PhoneCheckResponse",
    "ProviderError",
    "RateLimitError",
    "SessionState",
    "SocialIdentity",
    "StoreError",
    "TransportError",
    "UserAuthenticated",
    "ValidationError",
    "has_real_account",
    "is_guest",
    "restore_session_state",
]
