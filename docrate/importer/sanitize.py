"""
Sanitizers for externally sourced text.

Every value read from an insurer file is untrusted input and passes through
one of these functions before it reaches the database. Each function is pure
and total: it never raises, and anything that is not a string becomes ``""``.
Callers treat ``""`` as "absent".
"""

from __future__ import annotations

import html
import re
import unicodedata
from typing import Callable, Mapping

from email_validator import EmailNotValidError, validate_email

Sanitizer = Callable[[object], str]

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_ASCII_DIGIT_RE = re.compile(r"[0-9]")
_HYPHEN_RUN_RE = re.compile(r"-{2,}")
_PHONE_DISALLOWED_RE = re.compile(r"[^0-9+\-\s()]")
_LICENSE_DISALLOWED_RE = re.compile(r"[^a-zA-Z0-9\-/]")
_NON_DIGIT_RE = re.compile(r"[^0-9]")
# Hebrew block and presentation forms, Latin letters (basic, Latin-1, extended A/B, additional).
_SPECIALTY_DISALLOWED_RE = re.compile(
    "[^"
    "\u0590-\u05ff\ufb1d-\ufb4f"
    "A-Za-z\u00aa\u00ba\u00c0-\u00d6\u00d8-\u00f6\u00f8-\u024f\u1e00-\u1eff"
    r"\s\-()/,"
    "]"
)

NAME_PUNCTUATION = frozenset("-'")
PHONE_MASK = "***"


def text(value: object) -> str:
    """Strip markup, decode entities, collapse whitespace and trim."""
    if not isinstance(value, str):
        return ""
    value = _SCRIPT_STYLE_RE.sub("", value)
    value = _TAG_RE.sub("", value)
    value = html.unescape(value)
    value = _WHITESPACE_RE.sub(" ", value)
    return value.strip()


def _is_letter(char: str) -> bool:
    return unicodedata.category(char).startswith("L")


def name(value: object) -> str:
    """
    Clean a person's name.

    Digits and punctuation are dropped; letters from any script survive along
    with hyphens and apostrophes (``O'Brien-Smith``).
    """
    value = text(value)
    value = _ASCII_DIGIT_RE.sub("", value)
    value = "".join(ch for ch in value if _is_letter(ch) or ch.isspace() or ch in NAME_PUNCTUATION)
    value = _WHITESPACE_RE.sub(" ", value)
    value = _HYPHEN_RUN_RE.sub("-", value)
    return value.strip()


def phone(value: object) -> str:
    """Keep digits and common phone formatting characters only."""
    if not isinstance(value, str):
        return ""
    value = _PHONE_DISALLOWED_RE.sub("", value)
    value = _WHITESPACE_RE.sub(" ", value)
    return value.strip()


def email(value: object) -> str:
    """Return the lower-cased address, or ``""`` when the syntax is invalid."""
    value = text(value).lower()
    if not value:
        return ""
    try:
        result = validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return ""
    return result.normalized


def license(value: object) -> str:  # noqa: A001 - field type name
    """Keep ASCII alphanumerics, hyphens and slashes."""
    if not isinstance(value, str):
        return ""
    value = _LICENSE_DISALLOWED_RE.sub("", value)
    return value.strip()


def specialty(value: object) -> str:
    """Clean a specialty label, keeping Hebrew and Latin script text."""
    value = text(value)
    # Entity-encoded markup survives ``text`` as literal tags.
    value = _TAG_RE.sub("", value)
    value = _SPECIALTY_DISALLOWED_RE.sub("", value)
    return value.strip()


SANITIZERS: Mapping[str, Sanitizer] = {
    "text": text,
    "name": name,
    "phone": phone,
    "email": email,
    "license": license,
    "specialty": specialty,
}


def row(fields: Mapping[str, object], field_types: Mapping[str, str] | None = None) -> dict[str, str]:
    """Sanitize every field of a row; undeclared fields are treated as ``text``."""
    field_types = field_types or {}
    sanitized: dict[str, str] = {}
    for field_name, value in fields.items():
        sanitizer = SANITIZERS.get(field_types.get(field_name, "text"), text)
        sanitized[field_name] = sanitizer(value)
    return sanitized


def mask_phone(value: object) -> str:
    """
    Mask a phone number for log output (``050-***-4567``).

    The result drops digits; never store it.
    """
    digits = _NON_DIGIT_RE.sub("", value) if isinstance(value, str) else ""
    if len(digits) < 7:
        return PHONE_MASK
    return f"{digits[:3]}-***-{digits[-4:]}"
