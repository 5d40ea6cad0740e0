"""Transactional settlement: lock a loan, allocate a payment FIFO, write the ledger"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from lending_engine.domain.models import (
    LoanStatus,
    PaymentMethod,
    REPAYABLE_LOAN_STATUSES,
    SettlementResult,
)
from lending_engine.domain.money import require_positive_minor
from lending_engine.domain.settlement import allocate_payment, is_fully_paid, is_late
from lending_engine.domain.exceptions import (
    InvariantViolation,
    NotAuthorizedError,
    StateConflictError,
    ValidationError,
)
from lending_engine.infrastructure.database.models import Loan
from lending_engine.infrastructure.database.repositories import (
    EventRepository,
    LoanRepository,
    RepaymentEventRepository,
    ScheduleRepository,
)
from lending_engine.utils.date_utils import as_date, start_of_day, utcnow


def validate_method(method: str) -> str:
    try:
        return PaymentMethod(method).value
    except ValueError as e:
        raise ValidationError(f"Unknown payment method: {method!r}") from e


class SettlementService:
    """
    Applies payments to a loan's schedule.

    Flushes but never commits; the caller's unit of work makes the schedule
    mutations, ledger entries and loan update one atomic transaction.
    """

    def __init__(self, db: Session, events: Optional[List[Dict[str, Any]]] = None):
        self.db = db
        self.events = events if events is not None else []
        self.loans = LoanRepository(db)
        self.schedules = ScheduleRepository(db)
        self.ledger = RepaymentEventRepository(db)
        self.outbox = EventRepository(db)

    def apply_payment(
        self,
        loan_id: uuid.UUID | str,
        amount_minor: int,
        paid_at: datetime,
        method: str = PaymentMethod.OTHER.value,
        reference: Optional[str] = None,
        recorded_by: Optional[str] = None,
        today: Optional[date] = None,
    ) -> SettlementResult:
        """
        Record a lender-confirmed payment against a loan.

        Args:
            loan_id: Loan to settle
            amount_minor: Payment in minor units, any size
            paid_at: When the money was received
            method: PaymentMethod value
            reference: Free-form transaction reference
            recorded_by: Acting lender; None for internal callers
            today: Defaults to the current UTC date

        Raises:
            ValidationError: Non-positive amount, unknown method or paid_at in
                the future (nothing read or written)
            NotAuthorizedError: recorded_by is not the loan's lender
            StateConflictError: Loan not repayable or nothing outstanding
            InvariantViolation: Ledger arithmetic inconsistent
        """
        require_positive_minor(amount_minor)
        method = validate_method(method)
        today = today or utcnow().date()
        if as_date(paid_at) > today:
            raise ValidationError("paid_at cannot be in the future")

        loan = self.loans.get_for_update(loan_id)
        if recorded_by is not None and recorded_by != loan.lender_id:
            raise NotAuthorizedError("Only the loan's lender can record payments")

        return self.settle_locked(
            loan,
            amount_minor,
            paid_at,
            method=method,
            reference=reference,
            recorded_by=recorded_by,
            source="direct",
        )

    def settle_locked(
        self,
        loan: Loan,
        amount_minor: int,
        paid_at: datetime,
        method: str,
        reference: Optional[str] = None,
        recorded_by: Optional[str] = None,
        proof_id: Optional[uuid.UUID] = None,
        source: str = "direct",
    ) -> SettlementResult:
        """Settle against a loan row the caller already holds locked"""
        require_positive_minor(amount_minor)
        if not isinstance(paid_at, datetime):
            paid_at = start_of_day(paid_at)
        if loan.status not in REPAYABLE_LOAN_STATUSES:
            raise StateConflictError(f"Loan {loan.id} is {loan.status} and cannot accept payments")

        schedules = self.schedules.list_for_loan(loan.id, for_update=True)
        if not schedules:
            raise InvariantViolation(f"Loan {loan.id} is {loan.status} but has no repayment schedule")

        outcome = allocate_payment(schedules, amount_minor, paid_at)

        timings = []
        for application in outcome.applications:
            schedule = application.installment
            self.ledger.record(
                loan_id=loan.id,
                schedule_id=schedule.id,
                amount_applied_minor=application.applied_minor,
                method=method,
                reference=reference,
                recorded_by=recorded_by,
                proof_id=proof_id,
            )
            if application.settled:
                if schedule.is_early_payment:
                    timings.append("early")
                elif is_late(schedule):
                    timings.append("late")
                else:
                    timings.append("on_time")

        applied = outcome.amount_applied_minor
        loan.total_repaid_minor += applied
        if loan.total_repaid_minor > loan.total_owed_minor:
            raise InvariantViolation(
                f"Loan {loan.id} repaid {loan.total_repaid_minor} exceeds owed {loan.total_owed_minor}"
            )

        now = utcnow()
        parties = {"loan_id": str(loan.id), "borrower_id": loan.borrower_id, "lender_id": loan.lender_id}
        self.events.append(
            self.outbox.record(
                "payment.applied",
                loan.id,
                {
                    **parties,
                    "amount_applied_minor": applied,
                    "schedules_paid": outcome.schedules_paid,
                    "total_repaid_minor": loan.total_repaid_minor,
                    "proof_id": str(proof_id) if proof_id else None,
                },
                now,
            )
        )
        if outcome.remaining_overpayment_minor > 0:
            self.events.append(
                self.outbox.record(
                    "payment.overpaid",
                    loan.id,
                    {**parties, "remaining_overpayment_minor": outcome.remaining_overpayment_minor},
                    now,
                )
            )

        completed = is_fully_paid(schedules)
        if completed:
            if loan.total_repaid_minor != loan.total_owed_minor:
                raise InvariantViolation(
                    f"Loan {loan.id} fully paid but repaid {loan.total_repaid_minor} != owed {loan.total_owed_minor}"
                )
            loan.status = LoanStatus.COMPLETED.value
            loan.completed_at = now
            self.events.append(
                self.outbox.record("loan.completed", loan.id, {**parties, "total_repaid_minor": loan.total_repaid_minor}, now)
            )

        self.db.flush()

        return SettlementResult(
            loan_id=str(loan.id),
            schedules_paid=outcome.schedules_paid,
            amount_applied_minor=applied,
            remaining_overpayment_minor=outcome.remaining_overpayment_minor,
            loan_completed=completed,
            total_repaid_minor=loan.total_repaid_minor,
            source=source,
            timings=timings,
        )
