"""
One-time verification codes and their delivery.

`VerificationCodeIssuer` produces short numeric codes with an absolute expiry
and hands them to a notification gateway. The only gateway shipped here is
`SmsSimulator`: real SMS delivery is outside the application, so codes are
logged and the most recent ones kept in a bounded in-memory outbox.
"""
# medaccess/codes.py

from __future__ import annotations

import logging
import secrets
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, List, Optional, Tuple

from medaccess.config import (
    AUTHORIZATION_CODE_LENGTH,
    AUTHORIZATION_CODE_TTL_MINUTES,
    DEMO_LOGIN_CODE,
    LOGIN_CODE_LENGTH,
    LOGIN_CODE_TTL_SECONDS,
    SMS_OUTBOX_SIZE,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_numeric_code(length: int) -> str:
    """Returns a random `length`-digit code that never starts with 0."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


class SmsSimulator:
    """Notification gateway that pretends to send SMS messages.

    Only the most recent `max_messages` messages are kept.
    """

    def __init__(self, max_messages: int = SMS_OUTBOX_SIZE) -> None:
        self.outbox: Deque[Dict[str, str]] = deque(maxlen=max_messages)

    def send_code(self, destination_phone: str, code: str) -> None:
        logger.info(f"[SMS SIMULATION] Sending code {code} to {destination_phone}")
        self.outbox.append({
            "phone_number": destination_phone,
            "code": code,
            "sent_at": utc_now().isoformat(),
        })

    def messages_for(self, phone_number: str) -> List[Dict[str, str]]:
        return [m for m in list(self.outbox) if m["phone_number"] == phone_number]

    def last_code_for(self, phone_number: str) -> Optional[str]:
        messages = self.messages_for(phone_number)
        return messages[-1]["code"] if messages else None


class VerificationCodeIssuer:
    """Issues login and authorization codes and dispatches them.

    Args:
        notifier: Any object with a `send_code(destination_phone, code)` method.
        clock: Callable returning the current aware datetime.
        login_code_length: Number of digits in a login code.
        login_code_ttl: Lifetime of a login code.
        authorization_code_ttl: Lifetime of an authorization code.
        demo_login_code: If set, returned for every login attempt instead of a
            random code. Development shortcut only.
    """

    def __init__(
        self,
        notifier,
        clock: Callable[[], datetime] = utc_now,
        login_code_length: int = LOGIN_CODE_LENGTH,
        login_code_ttl: timedelta = timedelta(seconds=LOGIN_CODE_TTL_SECONDS),
        authorization_code_ttl: timedelta = timedelta(minutes=AUTHORIZATION_CODE_TTL_MINUTES),
        demo_login_code: Optional[str] = DEMO_LOGIN_CODE,
    ) -> None:
        self._notifier = notifier
        self._clock = clock
        self.login_code_length = login_code_length
        self.login_code_ttl = login_code_ttl
        self.authorization_code_ttl = authorization_code_ttl
        self.demo_login_code = demo_login_code

    def issue_login_code(self, phone_number: str) -> Tuple[str, datetime]:
        """Issues a login code for `phone_number` and sends it.

        Returns:
            A `(code, expires_at)` tuple.
        """
        code = self.demo_login_code or generate_numeric_code(self.login_code_length)
        expires_at = self._clock() + self.login_code_ttl
        self._dispatch(phone_number, code)
        return code, expires_at

    def issue_authorization_code(self, doctor_id: str, patient_phone: str) -> Tuple[str, datetime]:
        """Issues a 4-digit consent code for a doctor/patient pair.

        The code goes to the patient's phone; the doctor must obtain it from
        the patient to complete the request.
        """
        code = generate_numeric_code(AUTHORIZATION_CODE_LENGTH)
        expires_at = self._clock() + self.authorization_code_ttl
        logger.info(f"Authorization code issued for doctor {doctor_id}")
        self._dispatch(patient_phone, code)
        return code, expires_at

    def _dispatch(self, phone_number: str, code: str) -> None:
        # Delivery is fire-and-forget: the code stays valid even if sending fails.
        try:
            self._notifier.send_code(phone_number, code)
        except Exception:
            logger.exception(f"Failed to send verification code to {phone_number}")
