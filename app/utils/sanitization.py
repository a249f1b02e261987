import html
import re
from typing import Optional


def validate_and_sanitize_input(value: str, max_length: int = 500) -> str:
    """
    Validate and sanitize user input by removing potentially harmful content.

    Raises:
        ValueError: If input exceeds max_length
    """
    if not value:
        return ""

    value = str(value).strip()

    if len(value) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")

    value = html.escape(value, quote=True)

    value = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", value)

    return value


def mask_name(name: Optional[str]) -> str:
    """Mask a name for log lines, e.g. Juan Perez -> J*** P***"""
    if not name:
        return "-"
    return " ".join(f"{part[0]}***" for part in name.split() if part)


def mask_phone(phone: Optional[str]) -> str:
    """Keep only the last four digits"""
    if not phone:
        return "-"
    digits = re.sub(r"\D", "", phone)
    if len(digits) <= 4:
        return "****"
    return f"****{digits[-4:]}"
