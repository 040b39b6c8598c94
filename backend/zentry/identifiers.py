# Overview: Pure generation and format validation of human-readable identifiers.

"""
Identifier Generator

WHY: Staff sign in with their staff ID and owners with their business ID, so
identifiers must be short, typeable and recognisable at a glance. They are
derived from a human seed (company name, staff name, property name) plus a
little time or randomness.

FORMATS:
- Business code:   ABC1234          3 name letters + last 4 timestamp digits
- Business ID:     BIZABC1234K9QZ567 "BIZ" + code + 4 base36 + last 3 timestamp digits
- Staff ID:        AMMG0042         2 initials + 2-letter position code + 4 digits
- Property code:   DOWCAF123        3 name letters + 3-letter type code + 3 timestamp digits
- Connection code: 9F03AC           6 hex digits from a CSPRNG

None of these are unique on their own. Uniqueness is the registry's job
(see services/registry_service.py). Everything here is pure: no storage,
no side effects.
"""

from __future__ import annotations

import random
import re
import secrets
import string
import time


POSITION_CODES = {
    "server": "SV",
    "cashier": "CS",
    "kitchen": "KC",
    "manager": "MG",
    "host": "HS",
    "bartender": "BT",
    "chef": "CH",
    "admin": "AD",
    "owner": "OW",
}
DEFAULT_POSITION_CODE = "ST"

BUSINESS_TYPE_CODES = {
    "restaurant": "RST",
    "cafe": "CAF",
    "bar": "BAR",
    "hotel": "HTL",
    "retail": "RTL",
    "food-truck": "FTK",
    "catering": "CTR",
}
DEFAULT_BUSINESS_TYPE_CODE = "GEN"

BUSINESS_TYPES = tuple(BUSINESS_TYPE_CODES)

PAD_CHAR = "X"

BUSINESS_CODE_RE = re.compile(r"^[A-Z]{3}[0-9]{4}$")
BUSINESS_ID_RE = re.compile(r"^BIZ[A-Z0-9]+$")
STAFF_ID_RE = re.compile(r"^[A-Z]{2}[A-Z]{2}[0-9]{4}$")
PROPERTY_CODE_RE = re.compile(r"^[A-Z]{3}[A-Z]{3}[0-9]{3}$")
CONNECTION_CODE_RE = re.compile(r"^[0-9A-F]{6}$")

_BASE36 = string.digits + string.ascii_uppercase
_rng = random.SystemRandom()


def normalize_identifier(value: str | None) -> str:
    """Normalize to uppercase, no spaces."""
    return (value or "").upper().strip().replace(" ", "")


def _timestamp_digits(count: int) -> str:
    return str(time.time_ns() // 1_000_000)[-count:]


def _letters(value: str | None) -> str:
    # ASCII letters only: a digit or accented letter in the prefix would break the [A-Z]{3} formats
    return re.sub(r"[^A-Z]", "", (value or "").upper())


def _name_prefix(name: str | None, length: int = 3) -> str:
    return _letters(name)[:length].ljust(length, PAD_CHAR)


def position_code(position: str | None) -> str:
    return POSITION_CODES.get((position or "").strip().lower(), DEFAULT_POSITION_CODE)


def business_type_code(business_type: str | None) -> str:
    return BUSINESS_TYPE_CODES.get((business_type or "").strip().lower(), DEFAULT_BUSINESS_TYPE_CODE)


def generate_business_code(business_name: str) -> str:
    return f"{_name_prefix(business_name)}{_timestamp_digits(4)}"


def generate_business_id(business_code: str) -> str:
    random_part = "".join(_rng.choice(_BASE36) for _ in range(4))
    return f"BIZ{business_code}{random_part}{_timestamp_digits(3)}"


def staff_initials(full_name: str | None) -> str:
    """
    First letter of the first and last name parts.

    A single-word name uses its own initial twice ("Cher" -> "CC").
    Missing initials are padded with X.
    """
    parts = (full_name or "").split()
    if not parts:
        return PAD_CHAR * 2
    first = _letters(parts[0])[:1] or PAD_CHAR
    last = _letters(parts[-1])[:1] or PAD_CHAR
    return first + last


def generate_staff_id(full_name: str, position: str | None) -> str:
    random_num = f"{_rng.randint(0, 9999):04d}"
    return f"{staff_initials(full_name)}{position_code(position)}{random_num}"


def generate_property_code(property_name: str, business_type: str | None) -> str:
    return f"{_name_prefix(property_name)}{business_type_code(business_type)}{_timestamp_digits(3)}"


def generate_connection_code() -> str:
    return secrets.token_hex(3).upper()


def mutate_suffix(value: str) -> str:
    """Replace the last two characters with a fresh random 2-digit suffix."""
    return f"{value[:-2]}{_rng.randint(0, 99):02d}"


def validate_business_code(code: str | None) -> bool:
    return bool(code) and BUSINESS_CODE_RE.match(code) is not None


def validate_business_id(business_id: str | None) -> bool:
    return bool(business_id) and BUSINESS_ID_RE.match(business_id) is not None


def validate_staff_id(staff_id: str | None) -> bool:
    return bool(staff_id) and STAFF_ID_RE.match(staff_id) is not None


def validate_property_code(code: str | None) -> bool:
    return bool(code) and PROPERTY_CODE_RE.match(code) is not None


def validate_connection_code(code: str | None) -> bool:
    return bool(code) and CONNECTION_CODE_RE.match(code) is not None
