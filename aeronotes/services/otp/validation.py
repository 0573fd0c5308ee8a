"""Phone number and OTP code formats accepted everywhere in the OTP flow."""

import re
from typing import Optional

PHONE_E164_PATTERN = re.compile(r"\+[1-9]\d{1,14}", re.ASCII)
OTP_CODE_PATTERN = re.compile(r"\d{4,8}", re.ASCII)

MIN_OTP_LENGTH = 4
MAX_OTP_LENGTH = 8


def is_valid_phone(phone_number: Optional[str]) -> bool:
    return bool(phone_number) and PHONE_E164_PATTERN.fullmatch(phone_number) is not None


def is_valid_code(code: Optional[str]) -> bool:
    return bool(code) and OTP_CODE_PATTERN.fullmatch(code) is not None


def mask_phone(phone_number: Optional[str], visible_digits: int = 4) -> str:
    """Mask all but the last digits, keeping the leading '+'."""
    if not phone_number:
        return ""
    if len(phone_number) <= visible_digits:
        return phone_number
    prefix = "+" if phone_number.startswith("+") else ""
    hidden = len(phone_number) - len(prefix) - visible_digits
    return prefix + "*" * max(hidden, 0) + phone_number[-visible_digits:]
