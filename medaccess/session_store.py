"""
Durable storage for the signed-in principal.

A completed login is written as a single encrypted JSON record per browser
client, so that reloading the page or restarting the application brings that
client straight back to their dashboard. Clients are told apart by a random
token the interface keeps on the browser side; the record file is named after
a hash of that token, so one client can never load another client's session.
Anything unreadable in a record is treated as "not signed in".
"""
# medaccess/session_store.py

import hashlib
import json
import logging
import os
import secrets

from cryptography.fernet import InvalidToken

from medaccess.config import SESSION_DIR
from medaccess.encryption import get_encryptor
from medaccess.models import AuthState, AuthStep, User

logger = logging.getLogger(__name__)


def new_client_token() -> str:
    """Returns a fresh, unguessable browser client token."""
    return secrets.token_urlsafe(32)


class SessionStore:
    """Persists the session of one browser client.

    Args:
        client_token (str): Identifies the browser client owning the session.
        session_dir (str): Directory holding one file per client.
        encryptor: Object with `encrypt`/`decrypt` (a Fernet instance).
    """

    def __init__(self, client_token: str, session_dir: str = SESSION_DIR, encryptor=None):
        if not client_token:
            raise ValueError("A client token is required.")
        self.client_token = client_token
        self.session_dir = session_dir
        digest = hashlib.sha256(client_token.encode()).hexdigest()
        self.session_file = os.path.join(session_dir, f"{digest}.json")
        self._encryptor = encryptor or get_encryptor()

    def load(self) -> AuthState:
        """Restores this client's completed session, or returns the initial logged-out state.

        Never raises: a missing, undecryptable or malformed record is discarded.
        """
        try:
            with open(self.session_file, 'r') as f:
                encrypted = f.read()
        except FileNotFoundError:
            return AuthState()
        except OSError as e:
            logger.warning(f"Could not read session file ({e!r}).")
            return AuthState()

        try:
            data = json.loads(self._encryptor.decrypt(encrypted.encode()).decode())
            user = User.from_session(data['user'])
        except (InvalidToken, json.JSONDecodeError, UnicodeDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding invalid persisted session ({e!r}).")
            self.clear()
            return AuthState()

        return AuthState(
            user=user,
            current_step=AuthStep.COMPLETED,
            phone_number=user.phone_number,
        )

    def save(self, user: User):
        """Persists the minimal principal needed to restore the session."""
        os.makedirs(self.session_dir, exist_ok=True)
        payload = json.dumps({'user': user.to_session()})
        with open(self.session_file, 'w') as f:
            f.write(self._encryptor.encrypt(payload.encode()).decode())

    def clear(self):
        """Removes this client's persisted session entirely."""
        try:
            os.remove(self.session_file)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove session file ({e!r}).")
