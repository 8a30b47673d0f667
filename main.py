"""
This is the main entry point for the MedAccess Streamlit application.

This script handles the following key responsibilities:
- Sets the overall page configuration for the Streamlit app.
- Creates the shared services (records store, SMS simulator, code issuer and
  authorization workflow) once per server process.
- Gives every browser session its own `LoginFlow`.
- Routes the user to the login page or to their role dashboard.
"""
# main.py

import logging

import streamlit as st

import gui
from medaccess.auth import LoginFlow
from medaccess.authorization import AuthorizationService
from medaccess.codes import SmsSimulator, VerificationCodeIssuer
from medaccess.config import SEED_DEMO_DATA
from medaccess.records import MedicalRecords, seed_demo_data
from medaccess.session_store import SessionStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

st.set_page_config(
    page_title="MedAccess",
    layout="wide"
)


@st.cache_resource
def get_services():
    """
    Creates the services shared by every session.

    Decorated with `@st.cache_resource` so that the records store and the
    authorization log are built once and survive app reruns.

    Returns:
        tuple: (records, notifier, issuer, authorizations)
    """
    records = MedicalRecords()
    if SEED_DEMO_DATA:
        seed_demo_data(records)
    notifier = SmsSimulator()
    issuer = VerificationCodeIssuer(notifier)
    authorizations = AuthorizationService(records, issuer)
    return records, notifier, issuer, authorizations


records, notifier, issuer, authorizations = get_services()

# One login flow per browser session, restoring only this browser's saved login.
if 'login_flow' not in st.session_state:
    session_store = SessionStore(gui.get_client_token())
    st.session_state.login_flow = LoginFlow(records, issuer, session_store)
flow = st.session_state.login_flow

if flow.is_authenticated:
    gui.show_main_app(flow, records, authorizations, notifier)
else:
    gui.show_login_page(flow, notifier)
