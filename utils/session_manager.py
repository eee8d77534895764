import streamlit as st
from use_cases.session_models import SessionState, logged_out_state

"""
SESSION STATE CONTRACT

This module mirrors the account session into Streamlit's session state for
a host UI. AuthController stays the only writer of SessionState; the keys
below are read-only copies refreshed after every controller update.

Keys in st.session_state:

auth_controller: AuthController | None
    controller bound to this browser session
    default: None
    owner: session_manager

account: SessionState
    latest snapshot published by the controller
    default: logged-out SessionState
    owner: session_manager

account_unsubscribe: callable | None
    detaches the mirror from the previously bound controller
    default: None
    owner: session_manager

phone_checked: bool
    prevents re-checking the phone number on every rerun
    default: False
    owner: bootstrap
"""


def init_session_state():
    if 'auth_controller' not in st.session_state:
        st.session_state.auth_controller = None
    if 'account' not in st.session_state:
        st.session_state.account = logged_out_state()
    if 'account_unsubscribe' not in st.session_state:
        st.session_state.account_unsubscribe = None
    if 'phone_checked' not in st.session_state:
        st.session_state.phone_checked = False


def _mirror(snapshot: SessionState):
    st.session_state.account = snapshot


def bind_controller(controller):
    init_session_state()
    if st.session_state.account_unsubscribe is not None:
        st.session_state.account_unsubscribe()
    st.session_state.auth_controller = controller
    st.session_state.account = controller.state
    st.session_state.account_unsubscribe = controller.subscribe(_mirror)


def get_controller():
    init_session_state()
    return st.session_state.auth_controller


def current_account() -> SessionState:
    init_session_state()
    return st.session_state.account


def logout():
    controller = get_controller()
    if controller is not None:
        controller.logout()
    st.session_state.phone_checked = False
    st.rerun()
