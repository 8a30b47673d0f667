"""
Phone number helpers used by the login and access-request forms.

Accepted formats are French numbers, either national (06 12 34 56 78) or
international (+33 6 12 34 56 78). Numbers are stored in the national form.
"""
# medaccess/phone.py

import re

FRENCH_NUMBER = re.compile(r"^0[1-9][0-9]{8}$")
INTERNATIONAL_NUMBER = re.compile(r"^\+33[1-9][0-9]{8}$")


def is_valid_phone_number(phone_number: str) -> bool:
    cleaned = re.sub(r"\s", "", phone_number or "")
    return bool(FRENCH_NUMBER.match(cleaned) or INTERNATIONAL_NUMBER.match(cleaned))


def standardize_phone_number(phone_number: str) -> str:
    """Strips spaces and converts a +33 prefix to the national leading 0."""
    cleaned = re.sub(r"\s", "", phone_number or "")
    if cleaned.startswith("+33"):
        return "0" + cleaned[3:]
    return cleaned


def format_phone_number(phone_number: str) -> str:
    """Groups the digits in pairs for display, e.g. '06 12 34 56 78'."""
    digits = re.sub(r"\D", "", phone_number or "")
    return " ".join(digits[i:i + 2] for i in range(0, len(digits), 2))
