"""Interest model: offer terms to total owed and per-installment amounts"""

from decimal import Decimal
from lending_engine.domain.models import LoanTerms, PaymentType
from lending_engine.domain.money import (
    Number,
    apply_rate,
    bps_to_percent,
    percent_to_bps,
    require_positive_minor,
    round_half_up,
)
from lending_engine.domain.exceptions import ValidationError

MAX_INSTALLMENTS = 60


def _validate_payment_type(payment_type: str) -> str:
    try:
        return PaymentType(payment_type).value
    except ValueError as e:
        raise ValidationError(f"Unknown payment type: {payment_type!r}") from e


def total_rate_bps(base_rate_bps: int, extra_rate_bps: int, payment_type: str, installment_count: int) -> int:
    """
    Total simple interest rate for the whole loan.

    once_off pays the base rate only. installments adds the extra rate once
    for every installment beyond the first (linear, not compounding).
    """
    if payment_type == PaymentType.ONCE_OFF.value:
        return base_rate_bps
    return base_rate_bps + extra_rate_bps * (installment_count - 1)


def compute_terms_bps(
    principal_minor: int,
    base_rate_bps: int,
    extra_rate_bps: int,
    payment_type: str,
    installment_count: int,
) -> LoanTerms:
    """
    Convert offer terms expressed in basis points into a LoanTerms.

    Requirements:
    - interest = round(principal x total_rate / 100%)
    - per installment = round(total_owed / count)
    - Final installment absorbs the rounding remainder so the installments
      sum to total_owed exactly

    Raises:
        ValidationError: On non-positive principal, negative rates, an
            installment count outside 1..60, once_off with more than one
            installment, or a principal too small to split into count parts
    """
    require_positive_minor(principal_minor, "principal_minor")
    payment_type = _validate_payment_type(payment_type)

    if isinstance(installment_count, bool) or not isinstance(installment_count, int):
        raise ValidationError("installment_count must be an integer")
    if installment_count < 1:
        raise ValidationError("installment_count must be at least 1")
    if installment_count > MAX_INSTALLMENTS:
        raise ValidationError(f"installment_count cannot exceed {MAX_INSTALLMENTS}")
    if payment_type == PaymentType.ONCE_OFF.value and installment_count != 1:
        raise ValidationError("once_off loans have exactly one installment")
    if base_rate_bps < 0 or extra_rate_bps < 0:
        raise ValidationError("Interest rates cannot be negative")

    rate_bps = total_rate_bps(base_rate_bps, extra_rate_bps, payment_type, installment_count)
    interest = apply_rate(principal_minor, rate_bps)
    total_owed = principal_minor + interest

    per_installment = round_half_up(Decimal(total_owed) / installment_count)
    final_installment = total_owed - per_installment * (installment_count - 1)

    if per_installment <= 0 or final_installment <= 0:
        raise ValidationError(
            f"Principal of {principal_minor} is too small to split into {installment_count} installments"
        )

    return LoanTerms(
        payment_type=payment_type,
        installment_count=installment_count,
        principal_minor=principal_minor,
        total_rate_percent=bps_to_percent(rate_bps),
        interest_minor=interest,
        total_owed_minor=total_owed,
        per_installment_minor=per_installment,
        final_installment_minor=final_installment,
    )


def compute_terms(
    principal_minor: int,
    base_rate_pct: Number,
    extra_rate_pct: Number,
    payment_type: str,
    installment_count: int,
) -> LoanTerms:
    """
    Compute total owed and installment amounts from percentage rates.

    Example:
        10,000 at 20% base + 2% per extra installment, 4 installments
        total rate = 20 + 2 x 3 = 26% -> interest 2,600 -> owed 12,600
        -> 4 x 3,150
    """
    return compute_terms_bps(
        principal_minor,
        percent_to_bps(base_rate_pct, "base_rate_pct"),
        percent_to_bps(extra_rate_pct, "extra_rate_pct"),
        payment_type,
        installment_count,
    )
