"""
This module provides the records store for the MedAccess application.

It defines the `MedicalRecords` class, which is responsible for:
- Loading and saving the application data as an encrypted JSON file (`records.json`).
- Registering principals (admins, doctors, patients) keyed by a unique phone number.
- Answering the lookups the login flow and the authorization workflow depend on:
  principal by phone, patient by phone and patient by ID.
- Keeping the append-only log of doctor -> patient authorization requests.
"""
# medaccess/records.py

from __future__ import annotations

import json
import logging
import uuid
from typing import Dict, List, Optional

from cryptography.fernet import InvalidToken

from medaccess.config import DATA_FILE
from medaccess.encryption import get_encryptor
from medaccess.models import AuthorizationRequest, Patient, User, UserRole

logger = logging.getLogger(__name__)

PATIENT_PROFILE_FIELDS = ('date_of_birth', 'sex', 'blood_group', 'address')


class MedicalRecords:
    """Manages principals and authorization requests persisted to disk."""

    def __init__(self, data_file: str = DATA_FILE, encryptor=None):
        """Loads the data file, creating a fresh dataset if it cannot be read.

        Args:
            data_file (str): Path of the encrypted JSON data file.
            encryptor: Object with `encrypt`/`decrypt` (a Fernet instance).
                Defaults to the application key.
        """
        self.data_file = data_file
        self._encryptor = encryptor or get_encryptor()
        self._data = self._load_data()

    def _load_data(self) -> dict:
        """Loads and decrypts data from the JSON file.

        Returns:
            dict: The loaded data, or a new dataset if the file doesn't exist or is corrupt.
        """
        try:
            with open(self.data_file, 'r') as f:
                encrypted_data = f.read()
            if not encrypted_data:
                return self._empty_dataset()
            data = json.loads(self._encryptor.decrypt(encrypted_data.encode()).decode())
        except FileNotFoundError:
            return self._empty_dataset()
        except (InvalidToken, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Could not load data file {self.data_file} ({e!r}). Starting with a new dataset.")
            return self._empty_dataset()
        if not isinstance(data, dict):
            logger.warning(f"Data file {self.data_file} has an unexpected layout. Starting with a new dataset.")
            return self._empty_dataset()
        data.setdefault('users', {})
        data.setdefault('authorization_requests', [])
        return data

    @staticmethod
    def _empty_dataset() -> dict:
        return {"users": {}, "authorization_requests": []}

    def save(self):
        """Encrypts and saves the current data to the JSON file."""
        with open(self.data_file, 'w') as f:
            encrypted_data = self._encryptor.encrypt(json.dumps(self._data, indent=4).encode())
            f.write(encrypted_data.decode())

    # Principals

    def add_user(self, first_name: str, last_name: str, role: str, phone_number: str, user_id: Optional[str] = None, **profile) -> Optional[str]:
        """Registers a new principal.

        Args:
            first_name (str): Given name.
            last_name (str): Family name.
            role (str): 'admin', 'doctor' or 'patient'.
            phone_number (str): Standardized phone number; must be unique.
            user_id (str, optional): Identifier to use. Generated if omitted.
            **profile: Patient profile fields (date_of_birth, sex, blood_group, address).

        Returns:
            str or None: The new user's ID, or None if the phone number or ID is already taken.

        Raises:
            ValueError: If `role` is not a known role.
        """
        role = UserRole(role).value
        users = self._data['users']
        user_id = user_id or str(uuid.uuid4())
        if user_id in users or self._find_record_by_phone(phone_number):
            return None

        record = {
            'user_id': user_id,
            'first_name': first_name,
            'last_name': last_name,
            'role': role,
            'phone_number': phone_number,
        }
        if role == UserRole.PATIENT.value:
            for key in PATIENT_PROFILE_FIELDS:
                record[key] = profile.get(key)
        users[user_id] = record
        self.save()
        return user_id

    def get_user(self, user_id: str) -> dict:
        """Returns a principal's record, or an empty dictionary if not found."""
        return self._data['users'].get(user_id, {})

    def get_all_users(self) -> Dict[str, dict]:
        return self._data['users']

    def get_users_by_role(self, role: str) -> List[dict]:
        role = UserRole(role).value
        return [record for record in self._data['users'].values() if record.get('role') == role]

    def _find_record_by_phone(self, phone_number: str) -> Optional[dict]:
        for record in self._data['users'].values():
            if record.get('phone_number') == phone_number:
                return record
        return None

    def find_principal_by_phone(self, phone_number: str) -> Optional[User]:
        record = self._find_record_by_phone(phone_number)
        return User.from_record(record) if record else None

    def find_patient_by_phone(self, phone_number: str) -> Optional[Patient]:
        record = self._find_record_by_phone(phone_number)
        if record and record.get('role') == UserRole.PATIENT.value:
            return Patient.from_record(record)
        return None

    def find_patient_by_id(self, patient_id: str) -> Optional[Patient]:
        record = self._data['users'].get(patient_id)
        if record and record.get('role') == UserRole.PATIENT.value:
            return Patient.from_record(record)
        return None

    # Authorization requests

    def get_authorization_requests(self) -> List[AuthorizationRequest]:
        """Returns every authorization request in insertion order.

        Entries that cannot be parsed are skipped with a warning.
        """
        requests = []
        for entry in self._data['authorization_requests']:
            try:
                requests.append(AuthorizationRequest.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed authorization request ({e!r}).")
        return requests

    def get_authorization_request(self, authorization_id: str) -> Optional[AuthorizationRequest]:
        for request in self.get_authorization_requests():
            if request.id == authorization_id:
                return request
        return None

    def save_authorization_request(self, request: AuthorizationRequest):
        """Appends a new request or updates the stored copy of an existing one."""
        entries = self._data['authorization_requests']
        for index, entry in enumerate(entries):
            if entry.get('id') == request.id:
                entries[index] = request.to_dict()
                break
        else:
            entries.append(request.to_dict())
        self.save()


DEMO_USERS = [
    dict(user_id="admin-1", first_name="Youssouf", last_name="Bamba", role="admin", phone_number="0600000000"),
    dict(user_id="D1", first_name="Jean", last_name="Dupont", role="doctor", phone_number="0612345678"),
    dict(user_id="D2", first_name="Marie", last_name="Laurent", role="doctor", phone_number="0123456790"),
    dict(
        user_id="P1", first_name="Joel", last_name="N'Djabo", role="patient", phone_number="0700000000",
        date_of_birth="2001-06-01", sex="M", blood_group="O+", address="Yopougon Azito",
    ),
    dict(
        user_id="P2", first_name="Donatien", last_name="Assemien", role="patient", phone_number="0700000001",
        date_of_birth="1999-06-01", sex="M", blood_group="A-", address="Kouamissi",
    ),
]


def seed_demo_data(records: MedicalRecords) -> int:
    """Registers the demo principals that are not present yet.

    Returns:
        int: The number of users added.
    """
    added = 0
    for user in DEMO_USERS:
        if records.get_user(user['user_id']):
            continue
        if records.add_user(**user):
            added += 1
    if added:
        logger.info(f"Seeded {added} demo users")
    return added
