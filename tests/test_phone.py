import pytest

from app.utils import InvalidPhoneError, is_e164, mask_phone, normalize_phone


def test_local_number_uses_default_region():
    assert normalize_phone("0812-3456-7890", "ID") == "+6281234567890"


def test_country_code_without_plus_is_kept():
    assert normalize_phone("6281234567890", "ID") == "+6281234567890"


def test_international_formats():
    assert normalize_phone("+1 (650) 253-0000", "ID") == "+16502530000"
    assert normalize_phone("0016502530000", "ID") == "+16502530000"


@pytest.mark.parametrize("raw", ["", None, "abc", "12345", "+999"])
def test_invalid_numbers_raise(raw):
    with pytest.raises(InvalidPhoneError):
        normalize_phone(raw, "ID")


def test_invalid_phone_is_a_bad_request():
    assert InvalidPhoneError.status_code == 400


def test_is_e164():
    assert is_e164("+6281234567890")
    assert not is_e164("081234567890")


def test_mask_phone_keeps_last_digits():
    masked = mask_phone("+6281234567890")
    assert masked.endswith("7890")
    assert "3456" not in masked
