from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_date


MONEY_QUANT = Decimal("0.01")
QTY_QUANT = Decimal("0.001")

# Maximum amount accepted for any single money field: 9,999,999,999.99
MAX_AMOUNT = Decimal("9999999999.99")


def to_decimal(value: Any, field: str) -> Decimal:
    """
    Coerce API/service input into a Decimal.

    Rejects bools, NaN/Infinity and scientific notation strings; floats go
    through str() so 0.1 stays 0.1.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain decimal number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def money(value: Any, field: str, *, allow_negative: bool = False) -> Decimal:
    amount = to_decimal(value, field).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    if amount < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative", {"field": field, "value": str(amount)})
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large", {"field": field})
    return amount


def quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> Decimal:
    qty = to_decimal(value, field).quantize(QTY_QUANT, rounding=ROUND_HALF_UP)
    if qty < 0 or (qty == 0 and not allow_zero):
        raise ValidationError(
            f"{field} must be {'zero or ' if allow_zero else ''}positive",
            {"field": field, "value": str(qty)},
        )
    return qty


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def require_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return require_int(value, field)


def require_items(items: Any, field: str = "items") -> list[dict]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError(f"{field} must be a non-empty list")
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError(f"each entry in {field} must be an object")
    return list(items)


def pick(data: dict, snake: str, camel: str | None = None, default: Any = None) -> Any:
    """Read a key accepting either snake_case or camelCase spelling."""
    if snake in data:
        return data[snake]
    if camel and camel in data:
        return data[camel]
    return default


def optional_date(value: Any, field: str) -> date | None:
    """ISO date (or datetime) string -> date; None/"" -> None."""
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", {"field": field, "value": str(value)})
