"""Customer contact helpers."""

from __future__ import annotations

import re

_NON_DIGITS = re.compile(r"\D")

DEFAULT_COUNTRY_CODE = "62"


def format_whatsapp_number(raw: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str | None:
    """Normalise a phone number to the international digits wa.me expects.

    Non-digits are dropped, a single trunk ``0`` is removed and the country
    code is prepended when it is not already there.
    """

    if not raw:
        return None
    cleaned = _NON_DIGITS.sub("", raw)
    if not cleaned:
        return None
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    if not cleaned.startswith(country_code):
        cleaned = f"{country_code}{cleaned}"
    return cleaned


def whatsapp_link(raw: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> str | None:
    number = format_whatsapp_number(raw, country_code)
    if number is None:
        return None
    return f"https://wa.me/{number}"
