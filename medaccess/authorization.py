"""
This module implements the doctor -> patient access authorization workflow.

A doctor asks for access to a patient's record by entering the patient's
phone number. The patient receives a 4-digit code by SMS and reads it back to
the doctor, who submits it. A verified request is APPROVED for good; codes
that are not confirmed within 15 minutes close the request as EXPIRED.

`AuthorizationService.check_authorization` is the predicate every
patient-detail view must call before showing a record to a doctor.
"""
# medaccess/authorization.py

from __future__ import annotations

import logging
import secrets
import threading
from datetime import datetime
from typing import Callable, List, Optional

from medaccess.codes import VerificationCodeIssuer, utc_now
from medaccess.models import AuthorizationRequest, AuthorizationStatus, Patient
from medaccess.records import MedicalRecords

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (AuthorizationStatus.PENDING, AuthorizationStatus.APPROVED)


def _result(success: bool, message: str, **extra) -> dict:
    result = {"success": success, "message": message}
    result.update(extra)
    return result


class AuthorizationService:
    """Manages authorization requests stored in the records file.

    One instance is shared by every interface session, so the
    check-then-act sections run under a lock.
    """

    def __init__(self, records: MedicalRecords, issuer: VerificationCodeIssuer, clock: Callable[[], datetime] = utc_now) -> None:
        self._records = records
        self._issuer = issuer
        self._clock = clock
        self._lock = threading.Lock()

    def request_authorization(self, doctor_id: str, patient_phone_number: str) -> dict:
        """Asks for access to the patient with `patient_phone_number`.

        Returns:
            dict: `success`, `message` and, on success, `authorization_id`.
        """
        try:
            with self._lock:
                patient = self._records.find_patient_by_phone(patient_phone_number)
                if patient is None:
                    return _result(False, "No patient found with this phone number.")

                self._expire_stale(doctor_id=doctor_id, patient_id=patient.patient_id)
                existing = self._find_active(doctor_id, patient.patient_id)
                if existing is not None:
                    if existing.status == AuthorizationStatus.APPROVED:
                        return _result(
                            True,
                            "You already have a valid authorization for this patient.",
                            authorization_id=existing.id,
                        )
                    return _result(False, "An authorization request is already pending for this patient.")

                code, expires_at = self._issuer.issue_authorization_code(doctor_id, patient.phone_number)
                request = AuthorizationRequest(
                    doctor_id=doctor_id,
                    patient_id=patient.patient_id,
                    verification_code=code,
                    request_date=self._clock(),
                    code_expiry_date=expires_at,
                )
                self._records.save_authorization_request(request)
        except Exception:
            logger.exception(f"Authorization request failed for doctor {doctor_id}")
            return _result(False, "An error occurred while requesting authorization.")

        logger.info(f"Authorization request {request.id} created for doctor {doctor_id} and patient {request.patient_id}")
        return _result(
            True,
            f"An authorization request was sent to the patient. A verification code was sent to {patient_phone_number}.",
            authorization_id=request.id,
        )

    def verify_authorization_code(self, authorization_id: str, code: str) -> dict:
        """Confirms a request with the code the patient received.

        Returns:
            dict: `success`, `message` and, on success, `patient_id`.
        """
        try:
            with self._lock:
                request = self._records.get_authorization_request(authorization_id)
                if request is None:
                    return _result(False, "Authorization request not found.")

                if request.status == AuthorizationStatus.EXPIRED:
                    return _result(False, "The code has expired. Please submit a new request.")
                if request.status != AuthorizationStatus.PENDING:
                    return _result(False, f"This authorization request is already {request.status.value}.")

                if request.is_code_expired(self._clock()):
                    request.status = AuthorizationStatus.EXPIRED
                    self._records.save_authorization_request(request)
                    logger.info(f"Authorization request {request.id} expired")
                    return _result(False, "The code has expired. Please submit a new request.")

                if not secrets.compare_digest(code.encode(), request.verification_code.encode()):
                    return _result(False, "Incorrect verification code.")

                request.status = AuthorizationStatus.APPROVED
                self._records.save_authorization_request(request)
        except Exception:
            logger.exception(f"Verification failed for authorization request {authorization_id}")
            return _result(False, "An error occurred while verifying the code.")

        logger.info(f"Authorization request {request.id} approved")
        return _result(
            True,
            "Code verified. You now have access to the patient's record.",
            patient_id=request.patient_id,
        )

    def reject_authorization(self, authorization_id: str, patient_id: str) -> dict:
        """Lets a patient decline a pending request addressed to them."""
        try:
            with self._lock:
                request = self._records.get_authorization_request(authorization_id)
                if request is None or request.patient_id != patient_id:
                    return _result(False, "Authorization request not found.")
                if request.status != AuthorizationStatus.PENDING:
                    return _result(False, f"This authorization request is already {request.status.value}.")
                request.status = AuthorizationStatus.REJECTED
                self._records.save_authorization_request(request)
        except Exception:
            logger.exception(f"Rejection failed for authorization request {authorization_id}")
            return _result(False, "An error occurred while declining the request.")

        logger.info(f"Authorization request {authorization_id} rejected by patient {patient_id}")
        return _result(True, "The request has been declined.")

    def get_authorized_patients(self, doctor_id: str) -> List[Patient]:
        """Returns the patients the doctor holds an approved authorization for."""
        try:
            patients = []
            for request in self._records.get_authorization_requests():
                if request.doctor_id == doctor_id and request.status == AuthorizationStatus.APPROVED:
                    patient = self._records.find_patient_by_id(request.patient_id)
                    if patient is not None:
                        patients.append(patient)
            return patients
        except Exception:
            logger.exception(f"Could not list authorized patients for doctor {doctor_id}")
            return []

    def check_authorization(self, doctor_id: str, patient_id: str) -> bool:
        """True iff the doctor holds an approved authorization for the patient."""
        try:
            return any(
                request.doctor_id == doctor_id
                and request.patient_id == patient_id
                and request.status == AuthorizationStatus.APPROVED
                for request in self._records.get_authorization_requests()
            )
        except Exception:
            logger.exception(f"Authorization check failed for doctor {doctor_id}")
            return False

    def get_requests_for_doctor(self, doctor_id: str) -> List[AuthorizationRequest]:
        return [r for r in self._records.get_authorization_requests() if r.doctor_id == doctor_id]

    def get_pending_requests_for_patient(self, patient_id: str) -> List[AuthorizationRequest]:
        now = self._clock()
        return [
            r for r in self._records.get_authorization_requests()
            if r.patient_id == patient_id
            and r.status == AuthorizationStatus.PENDING
            and not r.is_code_expired(now)
        ]

    def expire_stale_requests(self) -> int:
        """Marks every pending request whose code has lapsed as EXPIRED.

        Returns:
            int: The number of requests expired.
        """
        with self._lock:
            return self._expire_stale()

    def _expire_stale(self, doctor_id: Optional[str] = None, patient_id: Optional[str] = None) -> int:
        now = self._clock()
        expired = 0
        for request in self._records.get_authorization_requests():
            if doctor_id is not None and request.doctor_id != doctor_id:
                continue
            if patient_id is not None and request.patient_id != patient_id:
                continue
            if request.status == AuthorizationStatus.PENDING and request.is_code_expired(now):
                request.status = AuthorizationStatus.EXPIRED
                self._records.save_authorization_request(request)
                expired += 1
        if expired:
            logger.info(f"Expired {expired} stale authorization request(s)")
        return expired

    def _find_active(self, doctor_id: str, patient_id: str) -> Optional[AuthorizationRequest]:
        for request in self._records.get_authorization_requests():
            if (
                request.doctor_id == doctor_id
                and request.patient_id == patient_id
                and request.status in ACTIVE_STATUSES
            ):
                return request
        return None
