import hashlib
import re
from typing import Optional

import phonenumbers

from .exceptions import BadRequestError

DEFAULT_REGION = "ID"


class InvalidPhoneError(BadRequestError):
    def __init__(self, message: str = "invalid phone number"):
        super().__init__(message)


# =========================
# Phone normalization
# =========================
def normalize_phone(raw: Optional[str], default_region: Optional[str] = None) -> str:
    """Normalize a user-supplied phone number to E.164.

    Local numbers (e.g. ``0812-3456-7890``) are parsed in ``default_region``;
    numbers with a country prefix (``+62...`` or ``62...``) are kept in their
    own region. Raises ``InvalidPhoneError`` for anything that does not parse
    into a valid number.
    """
    if not raw:
        raise InvalidPhoneError()
    cleaned = re.sub(r"[^\d+]", "", raw)
    if not cleaned:
        raise InvalidPhoneError()
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]

    region = default_region or DEFAULT_REGION
    try:
        num = phonenumbers.parse(cleaned, region)
        if not phonenumbers.is_valid_number(num) and not cleaned.startswith("+"):
            # "6281..." style input carries its own country code
            num = phonenumbers.parse("+" + cleaned, None)
    except phonenumbers.NumberParseException:
        raise InvalidPhoneError()

    if not phonenumbers.is_valid_number(num):
        raise InvalidPhoneError()
    return phonenumbers.format_number(num, phonenumbers.PhoneNumberFormat.E164)


def is_e164(phone: str) -> bool:
    if not phone or not phone.startswith("+"):
        return False
    try:
        return phonenumbers.is_valid_number(phonenumbers.parse(phone, None))
    except phonenumbers.NumberParseException:
        return False


def hash_phone_number(phone: str) -> str:
    """Hash phone number for security (one-way hash)"""
    return hashlib.sha256(phone.encode()).hexdigest()


def mask_phone(phone: str, visible_digits: int = 4) -> str:
    if not phone:
        return ""
    if len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]
