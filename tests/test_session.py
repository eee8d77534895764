from unittest.mock import patch

import streamlit as st

from use_cases.session_models import logged_out_state
from utils import session_manager


def test_init_session_state():
    st.session_state.clear()
    session_manager.init_session_state()
    assert st.session_state.auth_controller is None
    assert st.session_state.account == logged_out_state()
    assert st.session_state.account_unsubscribe is None
    assert st.session_state.phone_checked is False


def test_init_session_state_keeps_existing_values():
    st.session_state.clear()
    st.session_state.phone_checked = True
    session_manager.init_session_state()
    assert st.session_state.phone_checked is True


def test_bind_controller_mirrors_updates(make_controller):
    st.session_state.clear()
    controller = make_controller()

    session_manager.bind_controller(controller)
    controller.enter_guest_mode()

    assert session_manager.get_controller() is controller
    assert session_manager.current_account() is controller.state
    assert session_manager.current_account().is_guest_mode is True


def test_rebinding_detaches_previous_controller(make_controller):
    st.session_state.clear()
    old = make_controller()
    new = make_controller()

    session_manager.bind_controller(old)
    session_manager.bind_controller(new)
    old.handle_successful_login("alice", "Alice")

    assert session_manager.current_account() is new.state
    assert session_manager.current_account().is_authenticated is False


@patch('streamlit.rerun')
def test_logout(mock_rerun, make_controller):
    st.session_state.clear()
    controller = make_controller()
    controller.handle_successful_login("alice", "Alice")
    session_manager.bind_controller(controller)
    st.session_state.phone_checked = True

    session_manager.logout()

    mock_rerun.assert_called_once()
    assert st.session_state.phone_checked is False
    assert st.session_state.account.is_authenticated is False
    assert controller.state.status_message == "Not logged in"


@patch('streamlit.rerun')
def test_logout_without_controller(mock_rerun):
    st.session_state.clear()

    session_manager.logout()

    mock_rerun.assert_called_once()
    assert st.session_state.phone_checked is False
