from decimal import Decimal

import pytest

from app.core.exceptions import ValidationError
from app.services.validators import (
    BarcodeValidator,
    LocationValidator,
    normalize_stock,
    detect_critical_changes,
)


@pytest.mark.parametrize("raw,expected", [
    ("1234567890123\n", "1234567890123"),
    ("\t12345678901234 ", "12345678901234"),
    ("123 456 789 0123", "1234567890123"),
    (None, ""),
])
def test_barcode_clean(raw, expected):
    assert BarcodeValidator.clean(raw) == expected


def test_barcode_validate():
    assert BarcodeValidator.validate("1234567890123")
    assert BarcodeValidator.validate("12345678901234")
    assert not BarcodeValidator.validate("123456789012")
    assert not BarcodeValidator.validate("12345678901A3")
    assert not BarcodeValidator.validate("")


def test_barcode_validate_and_clean_rejects_garbage():
    assert BarcodeValidator.validate_and_clean("1234567890123\r\n") == "1234567890123"
    with pytest.raises(ValidationError):
        BarcodeValidator.validate_and_clean("ABC")


def test_barcode_detect_type():
    assert BarcodeValidator.detect_type("1234567890123") == "EAN13"
    assert BarcodeValidator.detect_type("12345678901234") == "DUN14"
    assert BarcodeValidator.detect_type("1234") == "INVALID"


def test_ean13_check_digit():
    assert BarcodeValidator.ean13_check_digit("400638133393") == 1
    assert BarcodeValidator.has_valid_ean13_check_digit("4006381333931")
    assert not BarcodeValidator.has_valid_ean13_check_digit("4006381333932")
    with pytest.raises(ValidationError):
        BarcodeValidator.ean13_check_digit("123")


@pytest.mark.parametrize("location", ["A010", "a213", " Z995 ", "B000"])
def test_location_valid(location):
    assert LocationValidator.validate(location)


@pytest.mark.parametrize("location", ["A016", "AA10", "A10", "A0100", "1010", ""])
def test_location_invalid(location):
    assert not LocationValidator.validate(location)
    with pytest.raises(ValidationError):
        LocationValidator.validate_and_clean(location)


def test_location_parse_and_build():
    assert LocationValidator.parse("c213") == {"aisle": "C", "block": "21", "level": 3}
    assert LocationValidator.build("C", "21", 3) == "C213"
    with pytest.raises(ValidationError):
        LocationValidator.build("C", "21", 6)
    with pytest.raises(ValidationError):
        LocationValidator.build("CC", "21", 1)


def test_location_adjacent_levels():
    assert LocationValidator.adjacent("A010") == ["A011"]
    assert LocationValidator.adjacent("A013") == ["A012", "A014"]
    assert LocationValidator.adjacent("A015") == ["A014"]


def test_normalize_stock():
    assert normalize_stock("12.3456") == Decimal("12.346")
    assert normalize_stock(5) == Decimal("5.000")
    with pytest.raises(ValidationError):
        normalize_stock("-1")
    with pytest.raises(ValidationError):
        normalize_stock("lots")
    with pytest.raises(ValidationError):
        normalize_stock("NaN")


def test_stock_to_zero_is_critical():
    warnings = detect_critical_changes("A010", "A010", False, Decimal("10"), Decimal("0"))
    assert len(warnings) == 1
    assert warnings[0]["field"] == "stock"
    assert warnings[0]["severity"] == "critical"


def test_large_stock_swing_is_a_warning():
    warnings = detect_critical_changes(None, None, False, Decimal("10"), Decimal("16"))
    assert [w["severity"] for w in warnings] == ["warning"]
    assert detect_critical_changes(None, None, False, Decimal("10"), Decimal("14")) == []


def test_unusually_high_stock():
    warnings = detect_critical_changes(None, None, False, Decimal("500"), Decimal("20000"))
    assert len(warnings) == 2


def test_clearing_location_is_a_warning():
    warnings = detect_critical_changes("A010", None, True, None, None)
    assert warnings[0]["field"] == "location"
    assert warnings[0]["old_value"] == "A010"
    assert detect_critical_changes("A010", None, False, None, None) == []
