# formrelay/domain/phone.py
from __future__ import annotations

import re

_NON_PHONE_CHARS = re.compile(r"[^\d+]")
_E164 = re.compile(r"^\+[0-9]{10,15}$")


def normalize_phone(raw: object) -> str | None:
    """
    Bring whatever the form / bot sent into +<digits>.
    Russian local formats (8XXXXXXXXXX, 7XXXXXXXXXX, 10 bare digits) become +7...
    """
    if raw is None:
        return None

    s = _NON_PHONE_CHARS.sub("", str(raw))
    if not s:
        return None

    if s.startswith("+"):
        return s
    if s.startswith("8") and len(s) == 11:
        return "+7" + s[1:]
    if s.startswith("7") and len(s) == 11:
        return "+" + s
    if len(s) == 10:
        return "+7" + s

    return "+" + s


def is_valid_phone(phone: str | None) -> bool:
    if not phone:
        return False
    return bool(_E164.match(phone))
