"""Shared validation utilities"""

import re
from typing import Optional


def validate_ar_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize an Argentine phone number.

    Accepts local (11 5555 0000) and international (+54 9 11 5555 0000) forms.
    Separators are dropped; a leading "+" is kept.

    Raises:
        ValueError: If the number has fewer than 8 or more than 15 digits
    """
    if not phone:
        return phone

    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)

    if not 8 <= len(digits) <= 15:
        raise ValueError("Phone number must have between 8 and 15 digits")

    return f"+{digits}" if phone.startswith("+") else digits
