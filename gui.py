"""
This module defines the graphical user interface (GUI) for MedAccess using Streamlit.

It includes the two-step phone login (number, then SMS code with a live
countdown) and the role dashboards:
- Doctors request access to a patient's record and browse the patients who
  approved them.
- Patients review their record and the access requests addressed to them.
- Administrators browse users and the authorization log.

The entry points are `show_login_page` and `show_main_app`.
"""
# gui.py

import pandas as pd
import streamlit as st
from streamlit_autorefresh import st_autorefresh

from medaccess import config
from medaccess.models import AuthStep, AuthorizationStatus
from medaccess.permissions import get_permissions
from medaccess.phone import format_phone_number, is_valid_phone_number, standardize_phone_number
from medaccess.session_store import new_client_token

COUNTDOWN_REFRESH_INTERVAL_MS = 1000
CLIENT_TOKEN_PARAM = "client"
INVALID_PHONE_MESSAGE = "Invalid phone number. Use a French format (06 12 34 56 78) or an international one (+33 6 12 34 56 78)."


def _format_countdown(seconds):
    """Formats a number of seconds as m:ss."""
    if seconds is None:
        return "-"
    minutes, remaining = divmod(int(seconds), 60)
    return f"{minutes}:{remaining:02d}"


def _format_timestamp(value):
    """Converts a datetime into a short local time string."""
    if value is None:
        return "Unknown time"
    return value.astimezone().strftime("%b %d, %Y • %H:%M")


def _drive_countdown(flow):
    """Advances the login countdown once per auto-refresh.

    `st_autorefresh` returns how many times it has fired; reruns triggered by
    the user leave that count unchanged and therefore do not tick.
    """
    if not flow.countdown.running:
        st.session_state.pop('countdown_refresh_count', None)
        return
    count = st_autorefresh(interval=COUNTDOWN_REFRESH_INTERVAL_MS, key="login_countdown")
    last = st.session_state.get('countdown_refresh_count')
    if last is not None and count != last:
        flow.countdown.tick()
    st.session_state.countdown_refresh_count = count


def get_client_token():
    """Returns this browser's client token, creating one on the first visit.

    The token is kept in the page URL so that the persisted session survives
    reloads and restarts for this browser only.
    """
    if 'client_token' not in st.session_state:
        token = st.query_params.get(CLIENT_TOKEN_PARAM)
        if not token:
            token = new_client_token()
            st.query_params[CLIENT_TOKEN_PARAM] = token
        st.session_state.client_token = token
    return st.session_state.client_token


def _render_sms_inbox(notifier, phone_number, title="Simulated SMS inbox"):
    """Shows the last code sent to `phone_number` by the SMS simulator.

    Rendered only when `SHOW_SMS_INBOX` is enabled for demos.
    """
    if not config.SHOW_SMS_INBOX:
        return
    with st.expander(title):
        code = notifier.last_code_for(phone_number)
        if code:
            st.code(code)
        else:
            st.caption("No message received yet.")


# Authentication pages

def show_login_page(flow, notifier):
    """Displays the phone number step or the code step of the login flow.

    Args:
        flow: The session's LoginFlow.
        notifier: The SMS simulator, used to display demo codes.
    """
    col1, col2, col3 = st.columns([1, 2, 1])
    with col2:
        st.markdown("<h1 style='text-align: center;'>MedAccess</h1>", unsafe_allow_html=True)
        if flow.state.current_step == AuthStep.CODE_VERIFICATION:
            _render_code_step(flow, notifier)
        else:
            _render_phone_step(flow)


def _render_phone_step(flow):
    st.markdown("<h3 style='text-align: center;'>Sign in with your phone</h3>", unsafe_allow_html=True)
    if flow.state.error:
        st.error(flow.state.error)
    with st.form("phone_form"):
        phone_number = st.text_input("Phone number", placeholder="06 12 34 56 78")
        submitted = st.form_submit_button("Send code", use_container_width=True)

        if submitted:
            if not phone_number.strip():
                st.error("Please enter your phone number.")
            elif not is_valid_phone_number(phone_number):
                st.error(INVALID_PHONE_MESSAGE)
            else:
                with st.spinner("Sending code..."):
                    sent = flow.initiate_login(standardize_phone_number(phone_number))
                if sent:
                    st.rerun()
                else:
                    st.error(flow.state.error)


def _render_code_step(flow, notifier):
    phone_number = flow.state.phone_number
    st.markdown("<h3 style='text-align: center;'>Enter your verification code</h3>", unsafe_allow_html=True)
    st.caption(f"A code was sent to {format_phone_number(phone_number)}.")

    _drive_countdown(flow)
    if flow.is_code_expired:
        st.warning("The code has expired. Request a new one.")
    else:
        st.info(f"Code expires in {_format_countdown(flow.code_expires_in)}")

    with st.form("code_form"):
        code = st.text_input("Verification code", max_chars=6)
        submitted = st.form_submit_button("Verify", use_container_width=True)

        if submitted:
            if not code.strip():
                st.error("Please enter the verification code.")
            elif flow.verify_code(code.strip()):
                st.session_state.pop('countdown_refresh_count', None)
                st.rerun()
            else:
                st.error(flow.state.error)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Resend code", use_container_width=True):
            st.session_state.pop('countdown_refresh_count', None)
            flow.initiate_login(phone_number)
            st.rerun()
    with col2:
        if st.button("Change number", use_container_width=True):
            st.session_state.pop('countdown_refresh_count', None)
            flow.logout()
            st.rerun()

    _render_sms_inbox(notifier, phone_number)


# Main Application UI

def show_main_app(flow, records, authorizations, notifier):
    """
    The main application router that displays the dashboard for the user's role.

    Args:
        flow: The session's LoginFlow (authenticated).
        records: The MedicalRecords store.
        authorizations: The AuthorizationService.
        notifier: The SMS simulator.
    """
    user = flow.user
    permissions = get_permissions(user)

    if 'page' not in st.session_state:
        st.session_state.page = None
    # Reset the page when another role signs in on this browser.
    if st.session_state.get('current_role') != user.role:
        st.session_state.page = None
        st.session_state.current_role = user.role

    def _show_main_menu(options, title):
        """Renders the menu buttons for the user's role and the logout button."""
        st.markdown(f"## {title}: {user.display_name}")
        st.caption(f"Signed in as {format_phone_number(user.phone_number)}")
        st.divider()
        for idx, (label, value, description) in enumerate(options):
            if st.button(label, key=f"{user.role.value}_menu_btn_{idx}", use_container_width=True):
                st.session_state.page = value
                st.rerun()
            st.caption(description)
            st.divider()
        if st.button("Log Out", key=f"{user.role.value}_logout_btn", use_container_width=True):
            flow.logout()
            st.session_state.page = None
            st.rerun()

    def _show_back_button():
        if st.button("← Back to Main Menu"):
            st.session_state.page = None
            st.rerun()

    menu_items = []
    if permissions['can_request_patient_access']:
        menu_items += [
            ("Request Access", "doctor_request_access", "Ask a patient for access to their record with an SMS code."),
            ("My Patients", "doctor_patients", "Browse the records of patients who approved your access."),
            ("My Requests", "doctor_requests", "Follow the status of your access requests."),
        ]
    if permissions['can_review_access_requests']:
        menu_items += [
            ("My Record", "patient_record", "Review your personal information."),
            ("Access Requests", "patient_requests", "See which doctors asked to access your record."),
        ]
    if permissions['can_view_all_patient_data']:
        menu_items.append(("Users", "admin_users", "Browse every registered admin, doctor and patient."))
    if permissions['can_view_authorization_log']:
        menu_items.append(("Authorization Log", "admin_authorizations", "Audit every doctor -> patient access request."))

    titles = {"admin": "Admin Dashboard", "doctor": "Doctor Dashboard", "patient": "Patient Dashboard"}
    if st.session_state.page is None:
        _show_main_menu(menu_items, titles[user.role.value])
        return

    _show_back_button()
    page = st.session_state.page
    if page == "doctor_request_access":
        _render_request_access_page(user, authorizations)
    elif page == "doctor_patients":
        _render_doctor_patients_page(user, authorizations)
    elif page == "doctor_requests":
        _render_doctor_requests_page(user, records, authorizations)
    elif page == "patient_record":
        _render_patient_record_page(user, records)
    elif page == "patient_requests":
        _render_patient_requests_page(user, records, authorizations, notifier)
    elif page == "admin_users":
        _render_admin_users_page(records)
    elif page == "admin_authorizations":
        _render_admin_authorizations_page(records, authorizations)
    else:
        st.session_state.page = None
        st.rerun()


def _reset_access_request():
    for key in ('access_step', 'authorization_id', 'access_message', 'access_granted'):
        st.session_state.pop(key, None)


def _render_request_access_page(user, authorizations):
    """Renders the two-step access request: patient phone number, then the patient's code."""
    st.subheader("Request access to a patient record")
    st.caption("Patient data is confidential: the patient must give you the code they receive by SMS.")
    step = st.session_state.get('access_step', 'request')

    if st.session_state.get('access_message'):
        st.info(st.session_state.access_message)

    if st.session_state.get('access_granted'):
        st.success("Access granted. You can now open this patient's record from My Patients.")
        st.button("New request", on_click=_reset_access_request)
        return

    if step == 'request':
        with st.form("access_request_form"):
            phone_number = st.text_input("Patient phone number", placeholder="07 00 00 00 00")
            submitted = st.form_submit_button("Request access", use_container_width=True)
            if submitted:
                if not is_valid_phone_number(phone_number):
                    st.error(INVALID_PHONE_MESSAGE)
                else:
                    result = authorizations.request_authorization(user.user_id, standardize_phone_number(phone_number))
                    if result['success']:
                        st.session_state.access_message = result['message']
                        st.session_state.authorization_id = result['authorization_id']
                        st.session_state.access_step = 'verify'
                        st.rerun()
                    else:
                        st.error(result['message'])
    else:
        with st.form("access_verify_form"):
            code = st.text_input("Verification code", max_chars=4, placeholder="1234")
            submitted = st.form_submit_button("Verify code", use_container_width=True)
            if submitted:
                result = authorizations.verify_authorization_code(st.session_state.authorization_id, code.strip())
                if result['success']:
                    st.session_state.access_message = result['message']
                    st.session_state.access_granted = True
                    st.rerun()
                else:
                    st.error(result['message'])
        st.button("Back", on_click=_reset_access_request)


def _render_doctor_patients_page(user, authorizations):
    st.subheader("My patients")
    patients = authorizations.get_authorized_patients(user.user_id)
    if not patients:
        st.info("No patient has approved your access yet.")
        return

    df = pd.DataFrame([
        {"ID": p.patient_id, "Name": p.full_name, "Phone": format_phone_number(p.phone_number), "Date of birth": p.date_of_birth}
        for p in patients
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)

    by_id = {p.patient_id: p for p in patients}
    selected = st.selectbox("Open record", list(by_id), format_func=lambda pid: by_id[pid].full_name)
    if selected:
        if authorizations.check_authorization(user.user_id, selected):
            _display_patient_record(by_id[selected])
        else:
            st.error("You are not authorized to view this record.")


def _display_patient_record(patient):
    st.write(f"**Name:** {patient.full_name}")
    st.write(f"**Phone:** {format_phone_number(patient.phone_number)}")
    st.write(f"**Date of Birth:** {patient.date_of_birth or 'N/A'}")
    st.write(f"**Sex:** {patient.sex or 'N/A'}")
    st.write(f"**Blood group:** {patient.blood_group or 'N/A'}")
    st.write(f"**Address:** {patient.address or 'N/A'}")


def _render_doctor_requests_page(user, records, authorizations):
    st.subheader("My access requests")
    requests = authorizations.get_requests_for_doctor(user.user_id)
    if not requests:
        st.info("You have not requested access to any patient yet.")
        return
    rows = []
    for r in requests:
        patient = records.find_patient_by_id(r.patient_id)
        rows.append({
            "Patient": patient.full_name if patient else r.patient_id,
            "Requested": _format_timestamp(r.request_date),
            "Status": r.status.value.capitalize(),
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def _render_patient_record_page(user, records):
    st.subheader("My record")
    patient = records.find_patient_by_id(user.user_id)
    if patient is None:
        st.warning("No patient record is linked to this account.")
        return
    _display_patient_record(patient)


def _render_patient_requests_page(user, records, authorizations, notifier):
    st.subheader("Access requests")
    st.caption("Give the code you received by SMS to your doctor to approve a request.")
    _render_sms_inbox(notifier, user.phone_number, title="My SMS messages")

    pending = authorizations.get_pending_requests_for_patient(user.user_id)
    if not pending:
        st.info("No pending access request.")
        return
    for request in pending:
        doctor = records.get_user(request.doctor_id)
        doctor_name = f"Dr. {doctor.get('first_name', '')} {doctor.get('last_name', '')}".strip() if doctor else request.doctor_id
        with st.container(border=True):
            st.write(f"**{doctor_name}** asked for access on {_format_timestamp(request.request_date)}.")
            if st.button("Decline", key=f"decline_{request.id}"):
                result = authorizations.reject_authorization(request.id, user.user_id)
                if result['success']:
                    st.success(result['message'])
                    st.rerun()
                else:
                    st.error(result['message'])


def _render_admin_users_page(records):
    st.subheader("Users")
    users = list(records.get_all_users().values())
    if not users:
        st.info("No users registered.")
        return
    df = pd.DataFrame([
        {
            "ID": u['user_id'],
            "Name": f"{u.get('first_name', '')} {u.get('last_name', '')}".strip(),
            "Role": u['role'],
            "Phone": format_phone_number(u['phone_number']),
        }
        for u in users
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)


def _render_admin_authorizations_page(records, authorizations):
    st.subheader("Authorization log")
    if st.button("Expire lapsed requests"):
        expired = authorizations.expire_stale_requests()
        st.success(f"{expired} request(s) marked as expired.")

    requests = records.get_authorization_requests()
    if not requests:
        st.info("No authorization request yet.")
        return
    df = pd.DataFrame([
        {
            "ID": r.id,
            "Doctor": r.doctor_id,
            "Patient": r.patient_id,
            "Requested": _format_timestamp(r.request_date),
            "Code expiry": _format_timestamp(r.code_expiry_date),
            "Status": r.status.value.capitalize(),
        }
        for r in requests
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)
    counts = df["Status"].value_counts()
    st.caption(" · ".join(f"{status}: {count}" for status, count in counts.items()))
    st.caption(f"{sum(1 for r in requests if r.status == AuthorizationStatus.APPROVED)} standing authorization(s).")
