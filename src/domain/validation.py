"""
Input validation rules for the registration and login flows.

Each validator returns the normalized value or raises ValidationFailed.
Password strength is advisory only and never affects pass/fail.
"""

import re
from enum import Enum

from .exceptions import NationalIdMissing, ValidationFailed

MIN_PASSWORD_LENGTH = 8
STRONG_PASSWORD_LENGTH = 12
PASSCODE_LENGTH = 6


class PasswordStrength(str, Enum):
    WEAK = "weak"
    FAIR = "fair"
    GOOD = "good"
    STRONG = "strong"


def validate_phone_number(phone_number: str | None) -> str:
    """Phone number is required; no format beyond presence is enforced."""
    value = (phone_number or "").strip()
    if not value:
        raise ValidationFailed("phone_number", "Phone number is required")
    return value


def validate_email(email: str | None) -> str | None:
    """Email is optional; when given it must contain '@'."""
    value = (email or "").strip()
    if not value:
        return None
    if "@" not in value:
        raise ValidationFailed("email", "Please enter a valid email address")
    return value


def validate_password(password: str | None, confirmation: str | None) -> str:
    if not (password or "").strip():
        raise ValidationFailed("password", "Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    if password != confirmation:
        raise ValidationFailed("confirmation", "Passwords do not match")
    return password


def require_national_id(national_id: str | None) -> str:
    """
    National id / document number must be present before provisioning.

    Its absence is fatal to the verification session, not a field error.
    """
    value = (national_id or "").strip()
    if not value:
        raise NationalIdMissing(
            "national_id (document number) is required. Please restart verification."
        )
    return value


def validate_passcode(code: str | None) -> str:
    value = (code or "").strip()
    if len(value) != PASSCODE_LENGTH or not value.isdigit():
        raise ValidationFailed("code", f"Enter the {PASSCODE_LENGTH}-digit code")
    return value


def password_strength(password: str) -> PasswordStrength:
    """
    Rate a password for display.

    One point each for: length >= 12, mixed case, a digit, a symbol.
    """
    score = 0
    if len(password) >= STRONG_PASSWORD_LENGTH:
        score += 1
    if re.search(r"[a-z]", password) and re.search(r"[A-Z]", password):
        score += 1
    if re.search(r"\d", password):
        score += 1
    if re.search(r"[^A-Za-z0-9]", password):
        score += 1

    if score <= 1:
        return PasswordStrength.WEAK
    if score == 2:
        return PasswordStrength.FAIR
    if score == 3:
        return PasswordStrength.GOOD
    return PasswordStrength.STRONG
