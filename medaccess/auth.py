"""
This module implements the phone-number + SMS-code login flow.

It defines:
- `transition`, the single function that applies a login event to an
  `AuthState` and enforces the PHONE_INPUT -> CODE_VERIFICATION -> COMPLETED
  state machine.
- `LoginFlow`, the per-session object the interface talks to. It looks
  principals up by phone, issues codes, checks them against an absolute
  deadline, persists completed sessions and keeps the advisory countdown in
  step with the state.
"""
# medaccess/auth.py

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from medaccess.codes import VerificationCodeIssuer, utc_now
from medaccess.countdown import Countdown
from medaccess.models import (
    AuthState,
    AuthStep,
    CodeVerified,
    LoggedOut,
    LoginInitiated,
    LoginRejected,
    LoginStarted,
    SessionRestored,
    User,
    VerificationFailed,
)
from medaccess.session_store import SessionStore

logger = logging.getLogger(__name__)

ERROR_UNKNOWN_PHONE = "Phone number not recognised."
ERROR_SEND_FAILED = "An error occurred while sending the code."
ERROR_NO_PENDING_CODE = "No verification code has been requested."
ERROR_CODE_EXPIRED = "The code has expired. Please request a new code."
ERROR_INCORRECT_CODE = "Incorrect verification code."
ERROR_USER_NOT_FOUND = "User not found."
ERROR_VERIFY_FAILED = "An error occurred while verifying the code."


class InvalidTransition(Exception):
    """Raised when an event is not allowed in the current login step."""


def transition(state: AuthState, event) -> AuthState:
    """Applies a login event to `state` and returns the new state.

    Raises:
        InvalidTransition: If the event is not allowed from the current step.
    """
    step = state.current_step

    if isinstance(event, LoginStarted):
        if step == AuthStep.COMPLETED:
            raise InvalidTransition("Cannot start a login while signed in.")
        return replace(state, phone_number=event.phone_number, error=None, is_loading=True)

    if isinstance(event, LoginInitiated):
        if step == AuthStep.COMPLETED:
            raise InvalidTransition("Cannot issue a login code while signed in.")
        return replace(
            state,
            current_step=AuthStep.CODE_VERIFICATION,
            phone_number=event.phone_number,
            verification_code=event.verification_code,
            code_expires_at=event.code_expires_at,
            error=None,
            is_loading=False,
        )

    if isinstance(event, LoginRejected):
        if step == AuthStep.COMPLETED:
            raise InvalidTransition("Cannot reject a login while signed in.")
        return replace(
            state,
            current_step=AuthStep.PHONE_INPUT,
            verification_code=None,
            code_expires_at=None,
            error=event.error,
            is_loading=False,
        )

    if isinstance(event, VerificationFailed):
        if step == AuthStep.COMPLETED:
            raise InvalidTransition("Cannot fail a verification while signed in.")
        return replace(state, error=event.error, is_loading=False)

    if isinstance(event, CodeVerified):
        if step != AuthStep.CODE_VERIFICATION:
            raise InvalidTransition(f"Cannot complete a login from {step.value}.")
        return AuthState(
            user=event.user,
            current_step=AuthStep.COMPLETED,
            phone_number=state.phone_number,
        )

    if isinstance(event, SessionRestored):
        if event.user is None:
            return AuthState()
        return AuthState(
            user=event.user,
            current_step=AuthStep.COMPLETED,
            phone_number=event.user.phone_number,
        )

    if isinstance(event, LoggedOut):
        return AuthState()

    raise InvalidTransition(f"Unknown login event: {event!r}")


class LoginFlow:
    """Drives one browser session through the login state machine.

    Args:
        directory: Provides `find_principal_by_phone(phone)`.
        issuer (VerificationCodeIssuer): Issues and sends login codes.
        session_store (SessionStore): Persists completed sessions.
        clock: Callable returning the current aware datetime.
        countdown (Countdown, optional): Advisory countdown; one is created if omitted.
    """

    def __init__(
        self,
        directory,
        issuer: VerificationCodeIssuer,
        session_store: SessionStore,
        clock: Callable[[], datetime] = utc_now,
        countdown: Optional[Countdown] = None,
    ) -> None:
        self._directory = directory
        self._issuer = issuer
        self._session_store = session_store
        self._clock = clock
        self._lock = threading.RLock()
        self.countdown = countdown or Countdown()
        self.code_window_seconds = int(issuer.login_code_ttl.total_seconds())
        self._state = AuthState(is_loading=True)
        self._dispatch(SessionRestored(session_store.load().user))

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._state.user

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def code_expires_in(self) -> Optional[int]:
        return self.countdown.remaining

    @property
    def is_code_expired(self) -> bool:
        return self.countdown.expired

    def snapshot(self) -> dict:
        """Returns the values the interface renders from."""
        state = self._state
        return {
            'user': state.user,
            'is_authenticated': state.is_authenticated,
            'is_loading': state.is_loading,
            'error': state.error,
            'current_step': state.current_step,
            'phone_number': state.phone_number,
            'code_expires_in': self.code_expires_in,
            'is_code_expired': self.is_code_expired,
        }

    def _dispatch(self, event) -> AuthState:
        previous = self._state
        new_state = transition(previous, event)
        code_changed = (
            previous.current_step != new_state.current_step
            or previous.verification_code != new_state.verification_code
            or previous.code_expires_at != new_state.code_expires_at
        )
        if code_changed:
            # The old countdown must be gone before the new state is visible.
            self.countdown.cancel()
            if new_state.current_step == AuthStep.CODE_VERIFICATION and new_state.verification_code:
                self.countdown.start(self.code_window_seconds)
        self._state = new_state
        return new_state

    def initiate_login(self, phone_number: str) -> bool:
        """Sends a login code to `phone_number` if it belongs to a known principal.

        Calling it again while a code is pending resends a fresh code (or
        switches to another number) and restarts the countdown.

        Returns:
            bool: True if a code was issued.
        """
        with self._lock:
            if self._state.current_step == AuthStep.COMPLETED:
                logger.warning("initiate_login called on a completed session")
                return False

            self._dispatch(LoginStarted(phone_number))
            try:
                principal = self._directory.find_principal_by_phone(phone_number)
                if principal is None:
                    self._dispatch(LoginRejected(ERROR_UNKNOWN_PHONE))
                    return False
                code, expires_at = self._issuer.issue_login_code(phone_number)
            except Exception:
                logger.exception(f"Login initiation failed for {phone_number}")
                self._dispatch(LoginRejected(ERROR_SEND_FAILED))
                return False

            self._dispatch(LoginInitiated(phone_number, code, expires_at))
            logger.info(f"Login code issued for {phone_number}")
            return True

    def verify_code(self, code: str) -> bool:
        """Checks `code` against the pending login code.

        Returns:
            bool: True if the session is now authenticated.
        """
        with self._lock:
            state = self._state
            if state.current_step == AuthStep.COMPLETED:
                return False
            if state.current_step != AuthStep.CODE_VERIFICATION or not state.verification_code:
                self._dispatch(VerificationFailed(ERROR_NO_PENDING_CODE))
                return False

            if self.countdown.expired or self._clock() >= state.code_expires_at:
                self._dispatch(VerificationFailed(ERROR_CODE_EXPIRED))
                return False

            if not secrets.compare_digest(code.encode(), state.verification_code.encode()):
                self._dispatch(VerificationFailed(ERROR_INCORRECT_CODE))
                return False

            try:
                user = self._directory.find_principal_by_phone(state.phone_number)
                if user is None:
                    self._dispatch(VerificationFailed(ERROR_USER_NOT_FOUND))
                    return False
                self._session_store.save(user)
            except Exception:
                logger.exception(f"Code verification failed for {state.phone_number}")
                self._dispatch(VerificationFailed(ERROR_VERIFY_FAILED))
                return False

            self._dispatch(CodeVerified(user))
            logger.info(f"User {user.user_id} signed in")
            return True

    def logout(self):
        """Signs the session out and forgets the persisted login. Idempotent."""
        with self._lock:
            self.countdown.cancel()
            self._session_store.clear()
            if self._state.user is not None:
                logger.info(f"User {self._state.user.user_id} signed out")
            self._dispatch(LoggedOut())

    def close(self):
        """Tears down the countdown when the owning session goes away."""
        self.countdown.cancel()
