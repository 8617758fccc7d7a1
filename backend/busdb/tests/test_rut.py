from __future__ import annotations

import pytest

from busdb.errors import CheckDigitMismatch, KeyTooShort, MalformedKey, ValidationError
from busdb.utils import rut


def test_normalize_accepts_known_rut_in_any_display_form():
    assert rut.normalize("12345678-5") == "12345678-5"
    assert rut.normalize("12.345.678-5") == "12345678-5"
    assert rut.normalize(" 123456785 ") == "12345678-5"


def test_seven_digit_body_with_wrong_check_digit_is_rejected():
    assert rut.normalize("7777777-6") == "7777777-6"
    with pytest.raises(CheckDigitMismatch):
        rut.normalize("7777777-7")


def test_check_digit_special_values():
    assert rut.compute_check_digit("10000030") == "K"
    assert rut.compute_check_digit("10000004") == "0"
    assert rut.normalize("10000030-k") == "10000030-K"
    assert rut.normalize("10000004-0") == "10000004-0"


def test_interior_k_is_collapsed_to_a_trailing_k():
    assert rut.format("12k34") == "1234-K"
    assert rut.format("1k2k3") == "123-K"


def test_format_does_not_validate():
    assert rut.format("12.345.678-9") == "12345678-9"
    assert rut.format("x") == ""
    assert rut.format("5") == "5"


def test_normalize_is_idempotent_through_format():
    for raw in ("12.345.678-5", "10000030k", "7777777-6", "11111111-1"):
        canonical = rut.normalize(raw)
        assert rut.normalize(rut.format(canonical)) == canonical


@pytest.mark.parametrize("raw", ["", "   ", "---", "K"])
def test_empty_or_non_numeric_body_is_malformed(raw):
    with pytest.raises(MalformedKey):
        rut.normalize(raw)


def test_short_body_is_rejected():
    with pytest.raises(KeyTooShort):
        rut.normalize("123456-0")


def test_validation_errors_share_a_category():
    for raw in ("", "123456-0", "7777777-7"):
        with pytest.raises(ValidationError):
            rut.normalize(raw)
    assert rut.is_valid("12345678-5") is True
    assert rut.is_valid("12345678-4") is False
