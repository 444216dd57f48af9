# app/utils/text_processing.py
"""Small text helpers for request payloads"""
import re
from typing import Optional

_PHONE_NOISE = re.compile(r"[\s\-().]")


def normalize_phone(phone: Optional[str]) -> str:
    """Strip formatting so '+995 (555) 12-34-56' and '+995555123456' compare equal"""
    if not phone:
        return ""
    cleaned = _PHONE_NOISE.sub("", phone.strip())
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    return cleaned


def clean_note(text: Optional[str]) -> Optional[str]:
    """Trim free text; blank becomes None"""
    if text is None:
        return None
    text = text.strip()
    return text or None
