"""
This module defines the data models for the MedAccess application.

These classes structure the data managed by the login flow, the
authorization workflow and the records store:
- `User` and `Patient` are the principals found by phone number.
- `AuthState` is the immutable snapshot driven by the login state machine.
- `AuthorizationRequest` is one entry in the doctor -> patient consent log.
- The event classes are the only inputs the login state machine accepts.
"""
# medaccess/models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


class AuthStep(str, Enum):
    PHONE_INPUT = "PHONE_INPUT"
    CODE_VERIFICATION = "CODE_VERIFICATION"
    COMPLETED = "COMPLETED"


class AuthorizationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class User:
    """Represents a signed-in principal: an admin, a doctor or a patient.

    Only the fields needed to restore a session are kept here; the full
    profile lives in the records store.

    Attributes:
        user_id (str): Unique identifier. For doctors this is also the doctor ID.
        display_name (str): Name shown in the interface.
        role (UserRole): The principal's role.
        phone_number (str): Phone number used to sign in.
    """
    def __init__(self, user_id, display_name, role, phone_number):
        self.user_id = user_id
        self.display_name = display_name
        self.role = UserRole(role)
        self.phone_number = phone_number

    @classmethod
    def from_record(cls, record: dict) -> User:
        """Builds a User from a records-store entry."""
        display_name = f"{record.get('first_name', '')} {record.get('last_name', '')}".strip()
        return cls(
            user_id=record['user_id'],
            display_name=display_name or record['user_id'],
            role=record['role'],
            phone_number=record['phone_number'],
        )

    @classmethod
    def from_session(cls, data: dict) -> User:
        """Builds a User from a persisted session record.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If the stored role is unknown.
        """
        return cls(
            user_id=data['id'],
            display_name=data['display_name'],
            role=data['role'],
            phone_number=data['phone_number'],
        )

    def to_session(self) -> dict:
        return {
            'id': self.user_id,
            'display_name': self.display_name,
            'role': self.role.value,
            'phone_number': self.phone_number,
        }

    def __eq__(self, other):
        if not isinstance(other, User):
            return NotImplemented
        return self.to_session() == other.to_session()

    def __repr__(self):
        return f"<User {self.user_id} ({self.role.value})>"


class Patient:
    """Represents a patient record as returned by the records store.

    Attributes:
        patient_id (str): Unique identifier of the patient.
        first_name (str): Given name.
        last_name (str): Family name.
        phone_number (str): Phone number the consent codes are sent to.
        date_of_birth (str): ISO date of birth.
        sex (str): The patient's sex.
        blood_group (str): ABO/Rh blood group.
        address (str): Home address.
    """
    def __init__(self, patient_id, first_name, last_name, phone_number, date_of_birth=None, sex=None, blood_group=None, address=None):
        self.patient_id = patient_id
        self.first_name = first_name
        self.last_name = last_name
        self.phone_number = phone_number
        self.date_of_birth = date_of_birth
        self.sex = sex
        self.blood_group = blood_group
        self.address = address

    @classmethod
    def from_record(cls, record: dict) -> Patient:
        return cls(
            patient_id=record['user_id'],
            first_name=record.get('first_name', ''),
            last_name=record.get('last_name', ''),
            phone_number=record['phone_number'],
            date_of_birth=record.get('date_of_birth'),
            sex=record.get('sex'),
            blood_group=record.get('blood_group'),
            address=record.get('address'),
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return dict(self.__dict__)

    def __repr__(self):
        return f"<Patient {self.patient_id}>"


class AuthorizationRequest:
    """A doctor's request to access one patient's record.

    Attributes:
        id (str): Unique identifier, generated at creation.
        doctor_id (str): The requesting doctor.
        patient_id (str): The patient whose record is requested.
        request_date (datetime): When the request was created.
        status (AuthorizationStatus): Current status. APPROVED, REJECTED and
            EXPIRED are terminal.
        verification_code (str): One-time code sent to the patient.
        code_expiry_date (datetime): Instant after which the code is refused.
    """
    def __init__(self, doctor_id, patient_id, verification_code, request_date, code_expiry_date, status=AuthorizationStatus.PENDING, id=None):
        self.id = id or str(uuid.uuid4())
        self.doctor_id = doctor_id
        self.patient_id = patient_id
        self.request_date = request_date
        self.status = AuthorizationStatus(status)
        self.verification_code = verification_code
        self.code_expiry_date = code_expiry_date

    def is_code_expired(self, now: datetime) -> bool:
        return now > self.code_expiry_date

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'doctor_id': self.doctor_id,
            'patient_id': self.patient_id,
            'request_date': self.request_date.isoformat(),
            'status': self.status.value,
            'verification_code': self.verification_code,
            'code_expiry_date': self.code_expiry_date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> AuthorizationRequest:
        return cls(
            id=data['id'],
            doctor_id=data['doctor_id'],
            patient_id=data['patient_id'],
            request_date=datetime.fromisoformat(data['request_date']),
            status=data['status'],
            verification_code=data['verification_code'],
            code_expiry_date=datetime.fromisoformat(data['code_expiry_date']),
        )

    def __repr__(self):
        return f"<AuthorizationRequest {self.id} {self.doctor_id}->{self.patient_id} {self.status.value}>"


@dataclass(frozen=True)
class AuthState:
    """Snapshot of one browser session's login state."""
    user: Optional[User] = None
    current_step: AuthStep = AuthStep.PHONE_INPUT
    phone_number: Optional[str] = None
    verification_code: Optional[str] = None
    code_expires_at: Optional[datetime] = None
    error: Optional[str] = None
    is_loading: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.current_step == AuthStep.COMPLETED


# Login state machine events

@dataclass(frozen=True)
class LoginStarted:
    phone_number: str


@dataclass(frozen=True)
class LoginInitiated:
    phone_number: str
    verification_code: str
    code_expires_at: datetime


@dataclass(frozen=True)
class LoginRejected:
    error: str


@dataclass(frozen=True)
class VerificationFailed:
    error: str


@dataclass(frozen=True)
class CodeVerified:
    user: User


@dataclass(frozen=True)
class SessionRestored:
    user: Optional[User] = None


@dataclass(frozen=True)
class LoggedOut:
    pass
