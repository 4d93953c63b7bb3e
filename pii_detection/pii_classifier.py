"""
Heuristic PII classifier for single payload fields.

Given a field name and its string value, returns a best-guess PII type using:
- key-name hints (case-insensitive substring checks on the field name)
- value-shape heuristics (anchored regexes on the value)
- a Luhn checksum for card-like numbers

Rules are evaluated in a fixed order and the first match wins. The result is
advisory: masking treats every non-"custom" type the same way (see
`pii_masking.policy.MASKING_POLICY`).
"""

from __future__ import annotations

from typing import Literal, Optional, get_args
import re


PiiType = Literal[
    "pan_card",
    "credit_card",
    "cvv",
    "password",
    "email",
    "phone",
    "aadhar",
    "custom",
]

PII_TYPES: tuple[PiiType, ...] = get_args(PiiType)


# Indian PAN: five capitals, four digits, one capital. Case-sensitive.
PAN_CARD_RE = re.compile(r"[A-Z]{5}[0-9]{4}[A-Z]")

# Anchored at the start only: "9876543210 ext 4" still counts as a phone.
PHONE_PREFIX_RE = re.compile(r"^[0-9]{10}")
AADHAR_PREFIX_RE = re.compile(r"^[0-9]{12}")

# Any 2-4 digit run anywhere in the value. Broad: most strings carrying a
# number land here.
SHORT_DIGIT_RUN_RE = re.compile(r"[0-9]{2,4}")

# Single-label domain only ("user@example.com", not "user@mail.example.com").
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9]+\.[a-zA-Z]{2,}")

CARD_NUMBER_RE = re.compile(r"[0-9]{14,18}")

_PAN_KEY_RE = re.compile(r"pan")
_PHONE_KEY_RE = re.compile(r"mobile|phone")
_CVV_KEY_RE = re.compile(r"cvv|cvc|cvn|cid")
_PASSWORD_KEY_RE = re.compile(r"password|pwd|passphrase")
_CARD_KEY_RE = re.compile(r"credit|debit")


def luhn_valid(number: str) -> bool:
    """
    Luhn checksum over a string of ASCII digits.

    Walks right to left, doubling every second digit (minus 9 when the double
    exceeds 9). Any non-digit character makes the number invalid.
    """
    total = 0
    double = False
    for ch in reversed(number):
        if ch not in "0123456789":
            return False
        n = int(ch)
        if double:
            n *= 2
            if n > 9:
                n -= 9
        total += n
        double = not double
    return total % 10 == 0


def looks_like_card_number(value: str) -> bool:
    return CARD_NUMBER_RE.fullmatch(value) is not None and luhn_valid(value)


def classify(field_name: Optional[str], value: str) -> PiiType:
    """
    Return the PII type for one field, first matching rule wins.

    A missing field name (a bare string at the payload root) is treated as "".
    """
    key = (field_name or "").lower()

    if PAN_CARD_RE.fullmatch(value) or _PAN_KEY_RE.search(key):
        return "pan_card"
    if _PHONE_KEY_RE.search(key):
        return "phone"
    # Card numbers are checked before the digit-prefix rules, otherwise every
    # 16-digit card would be reported as a phone number.
    if looks_like_card_number(value):
        return "credit_card"
    if PHONE_PREFIX_RE.match(value):
        return "phone"
    if AADHAR_PREFIX_RE.match(value):
        return "aadhar"
    if _CVV_KEY_RE.search(key) or SHORT_DIGIT_RUN_RE.search(value):
        return "cvv"
    if EMAIL_RE.fullmatch(value):
        return "email"
    if _PASSWORD_KEY_RE.search(key):
        return "password"
    if _CARD_KEY_RE.search(key):
        return "credit_card"
    return "custom"


def is_pii_type(name: str) -> bool:
    return name in PII_TYPES
