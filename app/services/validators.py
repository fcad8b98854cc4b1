"""
Validators - Barcode, location and stock input rules
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Union

from app.core.exceptions import ValidationError

EAN13_REGEX = re.compile(r"^[0-9]{13}$")
DUN14_REGEX = re.compile(r"^[0-9]{14}$")
LOCATION_REGEX = re.compile(r"^[A-Z]\d{2}[0-5]$")
STOCK_QUANTUM = Decimal("0.001")


class BarcodeValidator:
    """EAN13 (13 digits) and DUN14 (14 digits)"""

    @staticmethod
    def clean(barcode: Optional[str]) -> str:
        """Remove scanner suffixes such as \\n, \\t and stray spaces"""
        if not barcode or not isinstance(barcode, str):
            return ""
        return re.sub(r"[\n\t\r\s]", "", barcode)

    @staticmethod
    def validate(barcode: Optional[str]) -> bool:
        if not barcode or not isinstance(barcode, str):
            return False
        barcode = barcode.strip()
        return bool(EAN13_REGEX.match(barcode) or DUN14_REGEX.match(barcode))

    @classmethod
    def validate_and_clean(cls, barcode: Optional[str]) -> str:
        cleaned = cls.clean(barcode)
        if not cls.validate(cleaned):
            raise ValidationError("Invalid barcode: must be EAN13 (13 digits) or DUN14 (14 digits)")
        return cleaned

    @classmethod
    def detect_type(cls, barcode: Optional[str]) -> str:
        cleaned = cls.clean(barcode)
        if EAN13_REGEX.match(cleaned):
            return "EAN13"
        if DUN14_REGEX.match(cleaned):
            return "DUN14"
        return "INVALID"

    @staticmethod
    def ean13_check_digit(first_twelve: str) -> int:
        if len(first_twelve) != 12 or not first_twelve.isdigit():
            raise ValidationError("EAN13 check digit needs exactly 12 digits")
        total = sum(
            int(digit) if i % 2 == 0 else int(digit) * 3
            for i, digit in enumerate(first_twelve)
        )
        remainder = total % 10
        return 0 if remainder == 0 else 10 - remainder

    @classmethod
    def has_valid_ean13_check_digit(cls, barcode: str) -> bool:
        if len(barcode) != 13 or not barcode.isdigit():
            return False
        return int(barcode[12]) == cls.ean13_check_digit(barcode[:12])


class LocationValidator:
    """Aisle letter + two digit block + level 0-5, e.g. A213"""

    @staticmethod
    def clean(location: Optional[str]) -> str:
        if not location or not isinstance(location, str):
            return ""
        return location.strip().upper()

    @classmethod
    def validate(cls, location: Optional[str]) -> bool:
        return bool(LOCATION_REGEX.match(cls.clean(location)))

    @classmethod
    def validate_and_clean(cls, location: Optional[str]) -> str:
        cleaned = cls.clean(location)
        if not LOCATION_REGEX.match(cleaned):
            raise ValidationError(
                "Invalid location: must be letter + 2 digits + level (0-5), e.g. A213"
            )
        return cleaned

    @classmethod
    def parse(cls, location: str) -> Dict[str, Union[str, int]]:
        cleaned = cls.validate_and_clean(location)
        return {
            "aisle": cleaned[0],
            "block": cleaned[1:3],
            "level": int(cleaned[3]),
        }

    @classmethod
    def build(cls, aisle: str, block: str, level: int) -> str:
        if not re.match(r"^[A-Z]$", aisle or ""):
            raise ValidationError("Aisle must be one uppercase letter (A-Z)")
        if not re.match(r"^\d{2}$", block or ""):
            raise ValidationError("Block must be two digits (00-99)")
        if level < 0 or level > 5:
            raise ValidationError("Level must be between 0 and 5")
        return cls.validate_and_clean(f"{aisle}{block}{level}")

    @classmethod
    def adjacent(cls, location: str) -> List[str]:
        """Levels directly above and below in the same block"""
        parts = cls.parse(location)
        level = parts["level"]
        adjacent = []
        if level > 0:
            adjacent.append(f"{parts['aisle']}{parts['block']}{level - 1}")
        if level < 5:
            adjacent.append(f"{parts['aisle']}{parts['block']}{level + 1}")
        return adjacent


def normalize_stock(value) -> Decimal:
    """Stock is a non-negative decimal with 3 decimal places"""
    try:
        stock = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError("Stock must be a number")
    if not stock.is_finite():
        raise ValidationError("Stock must be a number")
    if stock < 0:
        raise ValidationError("Stock cannot be negative")
    return stock.quantize(STOCK_QUANTUM)


# ========== Critical changes ==========

def detect_critical_changes(
    old_location: Optional[str],
    new_location: Optional[str],
    location_given: bool,
    old_stock: Optional[Decimal],
    new_stock: Optional[Decimal],
) -> List[Dict]:
    """
    Changes an operator must confirm before they are applied.
    Returns a list of {field, message, severity, old_value, new_value}.
    """
    warnings = []

    if new_stock is not None and old_stock is not None:
        old_value = Decimal(old_stock)
        new_value = Decimal(new_stock)
        if new_value == 0 and old_value > 0:
            warnings.append({
                "field": "stock",
                "message": "Stock is being set to 0; the product will show as unavailable.",
                "severity": "critical",
                "old_value": str(old_value),
                "new_value": str(new_value),
            })
        elif old_value > 0 and abs(new_value - old_value) > old_value * Decimal("0.5"):
            warnings.append({
                "field": "stock",
                "message": "Stock change larger than 50%.",
                "severity": "warning",
                "old_value": str(old_value),
                "new_value": str(new_value),
            })
        if new_value > 10000 and old_value < 1000:
            warnings.append({
                "field": "stock",
                "message": "Unusually high stock value; check the quantity.",
                "severity": "warning",
                "old_value": str(old_value),
                "new_value": str(new_value),
            })

    if location_given and old_location is not None and new_location is None:
        warnings.append({
            "field": "location",
            "message": "The location is being removed; the product will be left unplaced.",
            "severity": "warning",
            "old_value": old_location,
            "new_value": None,
        })

    return warnings
