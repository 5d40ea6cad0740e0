"""Integer minor-unit arithmetic and percentage / basis-point conversions"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union
from lending_engine.domain.exceptions import ValidationError

Number = Union[int, float, str, Decimal]

BPS_PER_PERCENT = 100
BPS_SCALE = 10_000  # 100% == 10,000 bps


def to_decimal(value: Number, field_name: str = "value") -> Decimal:
    """Convert input to Decimal without inheriting binary float error"""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        result = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be a number") from e
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    return result


def round_half_up(value: Decimal) -> int:
    """Round to the nearest integer, halves away from zero"""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_to_bps(percent: Number, field_name: str = "rate") -> int:
    """
    Convert a percentage to integer basis points.

    Rates finer than 0.01% cannot be represented and are rejected rather
    than silently rounded.
    """
    value = to_decimal(percent, field_name)
    if value < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    bps = value * BPS_PER_PERCENT
    if bps != bps.to_integral_value():
        raise ValidationError(f"{field_name} supports at most two decimal places")
    return int(bps)


def bps_to_percent(bps: int) -> Decimal:
    return Decimal(bps) / BPS_PER_PERCENT


def apply_rate(amount_minor: int, bps: int) -> int:
    """Interest on amount_minor at bps, rounded to a whole minor unit"""
    return round_half_up(Decimal(amount_minor) * bps / BPS_SCALE)


def require_positive_minor(amount: object, field_name: str = "amount_minor") -> int:
    """Validate an integer minor-unit amount greater than zero"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field_name} must be an integer number of minor units")
    if amount <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return amount
