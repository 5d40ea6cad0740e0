"""Delinquency taxonomy and per-borrower risk aggregation"""

import re
from collections import Counter
from typing import Iterable, Optional
from lending_engine.domain.models import RiskOrigin, RiskSummary, RiskType
from lending_engine.domain.exceptions import NotAuthorizedError, ValidationError

SHA256_HEX = re.compile(r"^[a-f0-9]{64}$")

# Upper bound (inclusive) of days overdue for each late bucket
LATE_BUCKETS = (
    (7, RiskType.LATE_1_7),
    (30, RiskType.LATE_8_30),
    (60, RiskType.LATE_31_60),
)

# Severity order used when escalating system flags
SEVERITY = {
    RiskType.LATE_1_7.value: 1,
    RiskType.LATE_8_30.value: 2,
    RiskType.LATE_31_60.value: 3,
    RiskType.DEFAULT.value: 4,
}


def classify_days_overdue(days_overdue: int) -> Optional[RiskType]:
    """
    Map days past due to a delinquency bucket.

    - 0 or fewer: not delinquent (None)
    - 1-7:   LATE_1_7
    - 8-30:  LATE_8_30
    - 31-60: LATE_31_60
    - 61+:   DEFAULT
    """
    if days_overdue <= 0:
        return None
    for upper, risk_type in LATE_BUCKETS:
        if days_overdue <= upper:
            return risk_type
    return RiskType.DEFAULT


def validate_report(risk_type: str, reason: str, proof_hash: str, amount_minor: Optional[int]) -> RiskType:
    """Validate a lender-filed risk report before anything is written"""
    try:
        parsed = RiskType(risk_type)
    except ValueError as e:
        raise ValidationError(f"Unknown risk type: {risk_type!r}") from e
    if parsed == RiskType.CLEARED:
        raise ValidationError("CLEARED cannot be reported; resolve the open flag instead")

    if not reason or not reason.strip():
        raise ValidationError("A reason is required to list a borrower as risky")
    if not proof_hash or not SHA256_HEX.match(proof_hash):
        raise ValidationError("proof_hash must be a lowercase hex SHA-256 digest")
    if amount_minor is not None and (isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor <= 0):
        raise ValidationError("amount_minor must be a positive integer when given")
    return parsed


def summarize_flags(borrower_id: str, flags: Iterable) -> RiskSummary:
    """
    Aggregate a borrower's flags at read time.

    distinct_reporters counts lenders behind unresolved LENDER_REPORTED flags;
    flags from the same lender count once. System flags never add reporters.
    """
    reporters = set()
    open_by_type: Counter = Counter()
    resolved = 0

    for flag in flags:
        if flag.resolved_at is not None:
            resolved += 1
            continue
        open_by_type[flag.type] += 1
        if flag.origin == RiskOrigin.LENDER_REPORTED.value and flag.created_by:
            reporters.add(flag.created_by)

    return RiskSummary(
        borrower_id=borrower_id,
        distinct_reporters=len(reporters),
        open_flag_count=sum(open_by_type.values()),
        open_by_type=dict(open_by_type),
        has_defaults=open_by_type.get(RiskType.DEFAULT.value, 0) > 0,
        resolved_flag_count=resolved,
    )


def check_resolver(flag, resolved_by: str, system_actor_id: str, admin_actor_id: str) -> None:
    """
    Only the flag's author, or the risk admin, may resolve it.

    - The flagged borrower: never
    - LENDER_REPORTED: the reporting lender
    - SYSTEM_AUTO: the sweep's system actor
    """
    if resolved_by == flag.borrower_id:
        raise NotAuthorizedError("A borrower cannot resolve flags filed against them")
    if resolved_by == admin_actor_id:
        return

    if flag.origin == RiskOrigin.SYSTEM_AUTO.value:
        allowed = system_actor_id
    else:
        allowed = flag.created_by
    if resolved_by != allowed:
        raise NotAuthorizedError(f"{resolved_by} may not resolve risk flag {flag.id}")
