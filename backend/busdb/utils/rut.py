# backend/busdb/utils/rut.py

"""
Chilean RUT (national identity key) validation and formatting.

A RUT is a numeric body followed by a single check character (0-9 or K),
displayed as `12345678-5`. The check character is the weighted modulo-11
checksum of the body, weights 2..7 applied from the least-significant digit.

Pure functions only: nothing here touches storage or the actor's scope, so
the module is safe to import from anywhere (schemas, services, scripts).
"""

from __future__ import annotations

import re

from busdb.errors import CheckDigitMismatch, KeyTooShort, MalformedKey

MIN_BODY_LENGTH = 7

_NOT_RUT_CHARS = re.compile(r"[^0-9kK]")
_WEIGHTS = (2, 3, 4, 5, 6, 7)


def _clean(raw: str) -> str:
    """
    Keep only digits and K, and make sure K can only be the last character.

    An interior K is not dropped on its own: every K is removed and a single
    one is appended, mirroring what the admin forms did while typing.
    """
    value = _NOT_RUT_CHARS.sub("", raw or "").upper()
    k_pos = value.find("K")
    if k_pos != -1 and k_pos != len(value) - 1:
        value = value.replace("K", "") + "K"
    return value


def compute_check_digit(body: str) -> str:
    """Return the expected check character ('0'-'9' or 'K') for a numeric body."""
    if not body or not body.isdigit():
        raise MalformedKey("RUT body must contain only digits.")

    total = 0
    for i, digit in enumerate(reversed(body)):
        total += int(digit) * _WEIGHTS[i % len(_WEIGHTS)]

    expected = 11 - (total % 11)
    if expected == 11:
        return "0"
    if expected == 10:
        return "K"
    return str(expected)


def format(raw: str) -> str:  # noqa: A001 - public name mirrors normalize/format pair
    """
    Display form without validation: `body-check`.

    Inputs with a single character (or none) are returned as cleaned.
    """
    value = _clean(raw)
    if len(value) > 1:
        return f"{value[:-1]}-{value[-1]}"
    return value


def normalize(raw: str) -> str:
    """
    Validate a RUT and return its canonical form (`12345678-5`).

    Raises:
        MalformedKey: empty input or non-numeric body.
        KeyTooShort: body shorter than MIN_BODY_LENGTH digits.
        CheckDigitMismatch: checksum does not match the check character.
    """
    value = _clean(raw)
    if not value:
        raise MalformedKey("RUT is empty.")

    body, check = value[:-1], value[-1]
    if not body or not body.isdigit():
        raise MalformedKey("RUT must contain only digits and optionally a trailing K.")
    if len(body) < MIN_BODY_LENGTH:
        raise KeyTooShort(f"RUT body must have at least {MIN_BODY_LENGTH} digits.")

    if compute_check_digit(body) != check:
        raise CheckDigitMismatch(f"Invalid check digit for RUT {body}-{check}.")

    return f"{body}-{check}"


def is_valid(raw: str) -> bool:
    try:
        normalize(raw)
    except (MalformedKey, KeyTooShort, CheckDigitMismatch):
        return False
    return True
