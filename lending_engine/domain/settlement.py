"""Settlement engine - FIFO allocation of a payment across outstanding installments"""

from datetime import datetime
from typing import Sequence
from lending_engine.domain.models import (
    Application,
    OUTSTANDING_SCHEDULE_STATUSES,
    ScheduleStatus,
    SettlementOutcome,
)
from lending_engine.domain.money import require_positive_minor
from lending_engine.domain.exceptions import InvariantViolation, StateConflictError
from lending_engine.utils.date_utils import as_date


def allocate_payment(installments: Sequence, amount_minor: int, paid_at: datetime) -> SettlementOutcome:
    """
    Apply a payment to installments oldest obligation first.

    Works on anything exposing the schedule attributes (domain Installment or
    RepaymentSchedule rows) and mutates them in place.

    Requirements:
    - Outstanding (pending/partial) installments only, by installment_no
    - A later installment is never touched while an earlier one has a deficit
    - Fully covered installments become paid with paid_at and is_early_payment
    - A partially covered installment becomes partial; paid_at stays unset
    - Money left after every installment is paid is returned, not discarded

    Raises:
        ValidationError: amount_minor is not a positive integer
        StateConflictError: nothing outstanding to apply against
        InvariantViolation: an installment already holds more than it is due
    """
    require_positive_minor(amount_minor)

    outstanding = sorted(
        (inst for inst in installments if inst.status in OUTSTANDING_SCHEDULE_STATUSES),
        key=lambda inst: inst.installment_no,
    )
    if not outstanding:
        raise StateConflictError("No outstanding installments to apply payment against")

    outcome = SettlementOutcome()
    remaining = amount_minor
    paid_on = as_date(paid_at)

    for inst in outstanding:
        if remaining <= 0:
            break

        deficit = inst.amount_due_minor - inst.paid_amount_minor
        if deficit <= 0:
            raise InvariantViolation(
                f"Installment {inst.installment_no} is {inst.status} with no remaining deficit"
            )

        applied = min(remaining, deficit)
        inst.paid_amount_minor += applied
        remaining -= applied

        settled = inst.paid_amount_minor == inst.amount_due_minor
        if settled:
            inst.status = ScheduleStatus.PAID.value
            inst.paid_at = paid_at
            inst.is_early_payment = paid_on < inst.due_date
        else:
            inst.status = ScheduleStatus.PARTIAL.value

        outcome.applications.append(Application(installment=inst, applied_minor=applied, settled=settled))

    outcome.remaining_overpayment_minor = remaining

    if outcome.amount_applied_minor + remaining != amount_minor:
        raise InvariantViolation(
            f"Applied {outcome.amount_applied_minor} + overpayment {remaining} != payment {amount_minor}"
        )
    return outcome


def is_fully_paid(installments: Sequence) -> bool:
    return all(inst.status == ScheduleStatus.PAID.value for inst in installments)


def is_late(installment) -> bool:
    """Paid after its due date. Derived from paid_at vs due_date, never stored."""
    return (
        installment.status == ScheduleStatus.PAID.value
        and installment.paid_at is not None
        and as_date(installment.paid_at) > installment.due_date
    )
