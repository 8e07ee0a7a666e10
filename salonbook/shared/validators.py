"""Shared validation utilities"""

import re
from typing import Optional


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize an international phone number to E.164 format.

    Args:
        phone: Phone number string in various formats ("+380 67 123-45-67", "(067) ...")

    Returns:
        Normalized phone number (+XXXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    has_plus = phone.strip().startswith("+")
    digits = re.sub(r"\D", "", phone)

    # Local Ukrainian format 0XXXXXXXXX
    if not has_plus and len(digits) == 10 and digits.startswith("0"):
        digits = "38" + digits

    if not 8 <= len(digits) <= 15:
        raise ValueError("Phone number must have between 8 and 15 digits")

    return f"+{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def sanitize_string(value: Optional[str], max_length: int = 255) -> Optional[str]:
    """Trim whitespace and cap length; empty strings become None"""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    return value[:max_length]
