"""Redaction of sensitive values in audit copies of payloads.

Only copies are sanitized: the bytes delivered to an endpoint are never
passed through here.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "[REDACTED]"

# Matched case-insensitively after stripping "-" and "_".
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "cardnumber",
        "card",
        "pan",
        "cvv",
        "cvc",
        "cvv2",
        "pin",
        "secret",
        "signingsecret",
        "password",
        "passwd",
        "token",
        "accesstoken",
        "refreshtoken",
        "apikey",
        "authorization",
        "accountnumber",
        "iban",
        "ssn",
    }
)

# 13-19 digits, optionally grouped by spaces or dashes.
_CARD_PATTERN = re.compile(r"\b(?:\d[ -]?){12,18}\d\b")


def _normalize_key(key: str) -> str:
    return key.replace("-", "").replace("_", "").lower()


def is_sensitive_key(key: str) -> bool:
    """Check whether a mapping key names a sensitive field."""
    return _normalize_key(key) in SENSITIVE_KEYS


def mask_card_numbers(text: str) -> str:
    """Replace card-number-like digit runs, keeping the last four digits."""

    def _mask(match: re.Match[str]) -> str:
        digits = re.sub(r"\D", "", match.group(0))
        return f"****{digits[-4:]}"

    return _CARD_PATTERN.sub(_mask, text)


def sanitize(value: Any) -> Any:
    """Return a redacted deep copy of a JSON-like value.

    Mapping values under sensitive keys are replaced wholesale; strings
    anywhere in the structure have card-like numbers masked.

    Example:
        >>> sanitize({"id": "pay_1", "card_number": "4111111111111111"})
        {'id': 'pay_1', 'card_number': '[REDACTED]'}
    """
    if isinstance(value, Mapping):
        return {
            key: REDACTED if isinstance(key, str) and is_sensitive_key(key) else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        return [sanitize(item) for item in value]
    if isinstance(value, str):
        return mask_card_numbers(value)
    return value


def sanitize_text(text: str | None) -> str | None:
    """Mask card-like numbers in free text such as a response body."""
    if text is None:
        return None
    return mask_card_numbers(text)
