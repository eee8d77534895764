"""Startup orchestration for the account session layer."""

from dataclasses import dataclass
from typing import Literal, Optional, Tuple

import auth
from infrastructure import observability
from use_cases.auth_flow import AuthController
from use_cases.ports import SocialIdentityProvider
from use_cases.session_models import has_real_account
from utils import session_manager

StartupStatus = Literal["CONTINUE", "STOP"]


@dataclass(frozen=True)
class StartupResult:
    """Result contract for startup/bootstrap orchestration."""

    status: StartupStatus
    planned_steps: Tuple[str, ...]
    controller: Optional[AuthController] = None


def run_startup(social_provider: Optional[SocialIdentityProvider] = None) -> StartupResult:
    """Run startup bootstrap: logging, store schema, controller and UI binding."""
    executed_steps = []

    observability.setup_observability()
    executed_steps.append("setup_observability")

    # Schema must exist before the controller reads the persisted session.
    auth.init_store()
    executed_steps.append("init_store")

    controller = auth.build_auth_controller(social_provider)
    executed_steps.append("build_auth_controller")

    session_manager.init_session_state()
    executed_steps.append("init_session_state")
    session_manager.bind_controller(controller)
    executed_steps.append("bind_controller")

    if has_real_account(controller.state) and not session_manager.st.session_state.phone_checked:
        controller.check_phone_number_exists(controller.state.username)
        executed_steps.append("check_phone_number")
        session_manager.st.session_state.phone_checked = True
        executed_steps.append("set_phone_checked_true")

    return StartupResult(status="CONTINUE", planned_steps=tuple(executed_steps), controller=controller)
