"""
Configuration constants for the MedAccess application.

Every value has a sensible default and can be overridden through an
environment variable, which keeps the Streamlit app and the test suite
pointing at different files without code changes.
"""
# medaccess/config.py

import os


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# Storage
DATA_FILE = os.getenv("MEDACCESS_DATA_FILE", "records.json")
# One encrypted session file per browser client lives in this directory.
SESSION_DIR = os.getenv("MEDACCESS_SESSION_DIR", "sessions")
KEY_FILE = os.getenv("MEDACCESS_KEY_FILE", "secret.key")

# Login codes
LOGIN_CODE_LENGTH = _env_int("MEDACCESS_LOGIN_CODE_LENGTH", 6)
LOGIN_CODE_TTL_SECONDS = _env_int("MEDACCESS_LOGIN_CODE_TTL_SECONDS", 5 * 60)
# Development shortcut: when set, every login attempt receives this code.
DEMO_LOGIN_CODE = os.getenv("MEDACCESS_DEMO_LOGIN_CODE") or None

# Doctor -> patient authorization codes
AUTHORIZATION_CODE_LENGTH = 4
AUTHORIZATION_CODE_TTL_MINUTES = _env_int("MEDACCESS_AUTHORIZATION_CODE_TTL_MINUTES", 15)

# Countdown
COUNTDOWN_TICK_SECONDS = 1

# Demo dataset
SEED_DEMO_DATA = _env_flag("MEDACCESS_SEED_DEMO_DATA", True)

# SMS simulation
SMS_OUTBOX_SIZE = _env_int("MEDACCESS_SMS_OUTBOX_SIZE", 100)
# Shows simulated SMS codes in the interface. Anyone can read them, so demos only.
SHOW_SMS_INBOX = _env_flag("MEDACCESS_SHOW_SMS_INBOX", False)
