import math
import re
from typing import Any

from registration_api.utils.objects import (
    CAPTCHA_TOKEN_FIELD,
    OPTIONAL_TEXT_FIELDS,
    ValidationResult,
)


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# BSON stores integers as signed 64-bit
INT64_MIN = -2 ** 63
INT64_MAX = 2 ** 63 - 1


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and EMAIL_PATTERN.match(value) is not None


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _is_roll_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return INT64_MIN <= value <= INT64_MAX
    return isinstance(value, float) and math.isfinite(value)


def validate_registration(record: Any) -> ValidationResult:
    """
    Check a raw registration body field by field.

    Rules run in a fixed order and the first failing rule decides the reason,
    so the caller always gets exactly one message.

    Args:
        record (Any): The decoded JSON body of the request.

    Returns:
        ValidationResult: valid=True, or valid=False with the reason.
    """
    if not isinstance(record, dict):
        return ValidationResult.reject("Request body must be an object")

    if not _is_text(record.get(CAPTCHA_TOKEN_FIELD)):
        return ValidationResult.reject("CAPTCHA token is required")

    if not _is_text(record.get("name")):
        return ValidationResult.reject("Name is required and must be a string")

    if not _is_roll_number(record.get("roll_number")):
        return ValidationResult.reject("Roll number is required and must be a number")

    if record.get("gender") not in ("M", "F"):
        return ValidationResult.reject("Gender is required and must be 'M' or 'F'")

    email = record.get("email")
    if not _is_text(email):
        return ValidationResult.reject("Email is required and must be a string")
    if not is_valid_email(email):
        return ValidationResult.reject("Invalid email format")

    if not _is_text(record.get("about")):
        return ValidationResult.reject("About is required and must be a string")

    for field in OPTIONAL_TEXT_FIELDS:
        if field in record and not isinstance(record[field], str):
            return ValidationResult.reject(f"{field} must be a string if provided")

    # Empty string means the optional field was left blank on the form
    referrer_email = record.get("referrer_email")
    if referrer_email and not is_valid_email(referrer_email):
        return ValidationResult.reject("Invalid referrer email format")

    return ValidationResult.ok()
