"""Phone number canonicalization for outbound dialing.

Pure functions, no I/O. An invalid number is reported as ``""`` so callers
treat it as a validation failure instead of catching an exception.
"""

import re

DEFAULT_COUNTRY_CODE = "380"
NATIONAL_LENGTH = 9
INVALID = ""


def normalize_phone(raw: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Return the 9-digit national number, or ``INVALID``.

    "+380 (50) 123-4567" → "501234567"
    "380380501234567"    → "501234567"  (doubled country code)
    "050 123 45 67"      → ""           (10 digits, no country code)
    """
    if not raw:
        return INVALID

    digits = re.sub(r"\D", "", raw)

    if digits.startswith(country_code * 2):
        digits = digits[len(country_code):]
    if digits.startswith(country_code):
        digits = digits[len(country_code):]

    if len(digits) != NATIONAL_LENGTH:
        return INVALID
    return digits


def to_e164(national: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Build the dialable "+<cc><national>" form of a normalized number."""
    return f"+{country_code}{national}"
