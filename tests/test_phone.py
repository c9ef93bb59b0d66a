"""
test_phone.py — Contact phone normalization.

Run with:
    pytest tests/test_phone.py -v
"""

from __future__ import annotations

import pytest

from backend.app.emergency.phone import (
    InvalidPhoneNumber,
    normalize_phone,
    try_normalize_phone,
    whatsapp_address,
)


class TestNormalizePhone:

    def test_ten_digits_get_default_country_code(self):
        assert normalize_phone("9876543210") == "+919876543210"

    def test_explicit_country_code_argument(self):
        assert normalize_phone("5550109999", "1") == "+15550109999"

    def test_plus_prefixed_kept(self):
        assert normalize_phone("+1 (555) 010-9999") == "+15550109999"

    def test_separators_stripped(self):
        assert normalize_phone("98765 43210") == "+919876543210"
        assert normalize_phone("98765-43210") == "+919876543210"

    def test_country_code_without_plus(self):
        assert normalize_phone("919876543210") == "+919876543210"

    def test_other_lengths_prefixed_with_plus(self):
        assert normalize_phone("123456789") == "+123456789"
        assert normalize_phone("00441234567890") == "+00441234567890"

    def test_idempotent(self):
        once = normalize_phone("98765 43210")
        assert normalize_phone(once) == once

    def test_empty_raises(self):
        with pytest.raises(InvalidPhoneNumber):
            normalize_phone("")

    def test_none_raises(self):
        with pytest.raises(InvalidPhoneNumber):
            normalize_phone(None)

    def test_letters_only_raises(self):
        with pytest.raises(InvalidPhoneNumber):
            normalize_phone("call mom")

    def test_short_international_raises(self):
        with pytest.raises(InvalidPhoneNumber):
            normalize_phone("+123")

    def test_invalid_is_value_error(self):
        assert issubclass(InvalidPhoneNumber, ValueError)


class TestTryNormalizePhone:

    def test_returns_none_for_garbage(self):
        assert try_normalize_phone("n/a") is None

    def test_returns_normalized(self):
        assert try_normalize_phone("9876543210") == "+919876543210"


class TestWhatsappAddress:

    def test_prefix_added(self):
        assert whatsapp_address("+919876543210") == "whatsapp:+919876543210"

    def test_prefix_not_doubled(self):
        assert whatsapp_address("whatsapp:+919876543210") == "whatsapp:+919876543210"
