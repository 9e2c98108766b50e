from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D")

PHONE_DIGITS = 11
CPF_DIGITS = 11
CNPJ_DIGITS = 14


def digits_only(raw: object, limit: int | None = None) -> str:
    digits = _NON_DIGITS.sub("", "" if raw is None else str(raw))
    return digits[:limit] if limit is not None else digits


def accepts_keystroke(char: str) -> bool:
    return len(char) == 1 and char.isascii() and char.isdigit()


def mask_phone(raw: object) -> str:
    """Format a Brazilian phone number while it is being typed."""
    d = digits_only(raw, PHONE_DIGITS)
    if not d:
        return ""
    if len(d) <= 2:
        return f"({d}"
    if len(d) <= 6:
        return f"({d[:2]}) {d[2:]}"
    if len(d) <= 10:
        return f"({d[:2]}) {d[2:6]}-{d[6:]}"
    return f"({d[:2]}) {d[2:7]}-{d[7:]}"


def mask_document(raw: object) -> str:
    """Format a CPF (up to 11 digits) or a CNPJ (12 to 14 digits)."""
    d = digits_only(raw, CNPJ_DIGITS)
    if len(d) <= CPF_DIGITS:
        if len(d) <= 3:
            return d
        if len(d) <= 6:
            return f"{d[:3]}.{d[3:]}"
        if len(d) <= 9:
            return f"{d[:3]}.{d[3:6]}.{d[6:]}"
        return f"{d[:3]}.{d[3:6]}.{d[6:9]}-{d[9:]}"
    if len(d) <= 12:
        return f"{d[:2]}.{d[2:5]}.{d[5:8]}/{d[8:]}"
    return f"{d[:2]}.{d[2:5]}.{d[5:8]}/{d[8:12]}-{d[12:]}"


__all__ = ["accepts_keystroke", "digits_only", "mask_document", "mask_phone"]
