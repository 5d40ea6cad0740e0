"""Repayment schedule generation for accepted loan terms"""

from datetime import date
from typing import List
from lending_engine.domain.models import Installment, LoanTerms
from lending_engine.domain.exceptions import InvariantViolation
from lending_engine.utils.date_utils import add_months


def generate_schedule(terms: LoanTerms, start_date: date) -> List[Installment]:
    """
    Generate monthly installments for a loan.

    Requirements:
    - Exactly installment_count records numbered 1..N
    - Installment n falls due n calendar months after start_date
    - All installments equal per_installment_minor except the last, which
      absorbs the rounding remainder (sum == total_owed_minor exactly)

    Args:
        terms: Output of compute_terms / compute_terms_bps
        start_date: Disbursement date the schedule counts from

    Returns:
        List of pending Installment objects ordered by installment_no

    Example:
        total_owed 12,601 over 4 -> per 3,150 -> [3150, 3150, 3150, 3151]
    """
    count = terms.installment_count
    installments = []
    for n in range(1, count + 1):
        amount = terms.final_installment_minor if n == count else terms.per_installment_minor
        installments.append(
            Installment(
                installment_no=n,
                due_date=add_months(start_date, n),
                amount_due_minor=amount,
            )
        )

    verify_schedule(installments, terms.total_owed_minor)
    return installments


def verify_schedule(installments: List[Installment], total_owed_minor: int) -> None:
    """Check the exact-sum and ordering invariants of a schedule"""
    scheduled = sum(inst.amount_due_minor for inst in installments)
    if scheduled != total_owed_minor:
        raise InvariantViolation(
            f"Schedule sums to {scheduled}, expected {total_owed_minor}"
        )

    for prev, nxt in zip(installments, installments[1:]):
        if nxt.installment_no != prev.installment_no + 1 or nxt.due_date <= prev.due_date:
            raise InvariantViolation(
                f"Installment {nxt.installment_no} out of order after {prev.installment_no}"
            )

    if any(inst.amount_due_minor <= 0 for inst in installments):
        raise InvariantViolation("Installment with non-positive amount due")
