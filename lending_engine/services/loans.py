"""Offer acceptance, signatures, disbursement and loan read projections"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from lending_engine.domain.models import (
    LoanParty,
    LoanStatus,
    LoanTerms,
    OfferStatus,
    PaymentAnalytics,
)
from lending_engine.domain.interest import compute_terms, compute_terms_bps
from lending_engine.domain.installments import generate_schedule
from lending_engine.domain.money import Number, percent_to_bps
from lending_engine.domain.scoring import payment_analytics
from lending_engine.domain.exceptions import (
    InvariantViolation,
    NotAuthorizedError,
    StateConflictError,
    ValidationError,
)
from lending_engine.infrastructure.database.models import Loan, LoanOffer, RepaymentEvent
from lending_engine.infrastructure.database.repositories import (
    EventRepository,
    LoanRepository,
    OfferRepository,
    RepaymentEventRepository,
    ScheduleRepository,
)
from lending_engine.utils.date_utils import utcnow


def party_of(loan: Loan, actor_id: str) -> LoanParty:
    """Which side of the loan the actor is on"""
    if actor_id == loan.borrower_id:
        return LoanParty.BORROWER
    if actor_id == loan.lender_id:
        return LoanParty.LENDER
    raise NotAuthorizedError(f"{actor_id} is not a party to loan {loan.id}")


def loan_terms(loan: Loan) -> LoanTerms:
    """Recompute a loan's terms from its stored offer parameters"""
    return compute_terms_bps(
        loan.principal_minor,
        loan.base_rate_bps,
        loan.extra_rate_bps,
        loan.payment_type,
        loan.installment_count,
    )


class LoanService:
    """Loan lifecycle from offer to active schedule. Flushes, never commits."""

    def __init__(self, db: Session, events: Optional[List[Dict[str, Any]]] = None):
        self.db = db
        self.events = events if events is not None else []
        self.offers = OfferRepository(db)
        self.loans = LoanRepository(db)
        self.schedules = ScheduleRepository(db)
        self.ledger = RepaymentEventRepository(db)
        self.outbox = EventRepository(db)

    # Offers

    def create_offer(
        self,
        lender_id: str,
        borrower_id: str,
        principal_minor: int,
        base_rate_pct: Number,
        extra_rate_pct: Number,
        payment_type: str,
        installment_count: int,
        currency: str,
        country_code: Optional[str] = None,
    ) -> LoanOffer:
        """Validate terms and record a pending offer"""
        if not borrower_id or borrower_id == lender_id:
            raise ValidationError("An offer needs a borrower other than the lender")

        terms = compute_terms(principal_minor, base_rate_pct, extra_rate_pct, payment_type, installment_count)
        return self.offers.create_offer(
            borrower_id=borrower_id,
            lender_id=lender_id,
            principal_minor=principal_minor,
            base_rate_bps=percent_to_bps(base_rate_pct, "base_rate_pct"),
            extra_rate_bps=percent_to_bps(extra_rate_pct, "extra_rate_pct"),
            payment_type=terms.payment_type,
            installment_count=installment_count,
            currency=currency.upper(),
            country_code=country_code.upper() if country_code else None,
        )

    def _pending_offer(self, offer_id: uuid.UUID | str) -> LoanOffer:
        offer = self.offers.get_for_update(offer_id)
        if offer.status != OfferStatus.PENDING.value:
            raise StateConflictError(f"Offer {offer.id} is already {offer.status}")
        return offer

    def accept_offer(self, offer_id: uuid.UUID | str, borrower_id: str) -> Loan:
        """
        Borrower accepts an offer; the loan starts awaiting both signatures.

        Terms are recomputed from the stored offer, never taken from the client.
        """
        offer = self._pending_offer(offer_id)
        if offer.borrower_id != borrower_id:
            raise NotAuthorizedError("Only the addressed borrower can accept this offer")

        terms = compute_terms_bps(
            offer.principal_minor,
            offer.base_rate_bps,
            offer.extra_rate_bps,
            offer.payment_type,
            offer.installment_count,
        )
        offer.status = OfferStatus.ACCEPTED.value
        return self.loans.create_from_offer(offer, terms)

    def decline_offer(self, offer_id: uuid.UUID | str, borrower_id: str) -> LoanOffer:
        offer = self._pending_offer(offer_id)
        if offer.borrower_id != borrower_id:
            raise NotAuthorizedError("Only the addressed borrower can decline this offer")
        offer.status = OfferStatus.DECLINED.value
        self.db.flush()
        return offer

    def withdraw_offer(self, offer_id: uuid.UUID | str, lender_id: str) -> LoanOffer:
        offer = self._pending_offer(offer_id)
        if offer.lender_id != lender_id:
            raise NotAuthorizedError("Only the offering lender can withdraw this offer")
        offer.status = OfferStatus.WITHDRAWN.value
        self.db.flush()
        return offer

    # Lifecycle

    def sign(self, loan_id: uuid.UUID | str, actor_id: str, signed_at: Optional[datetime] = None) -> Loan:
        """Record one party's signature; the second signature moves the loan to pending_disbursement"""
        loan = self.loans.get_for_update(loan_id)
        party = party_of(loan, actor_id)
        if loan.status != LoanStatus.PENDING_SIGNATURES.value:
            raise StateConflictError(f"Loan {loan.id} is {loan.status}; signatures are closed")

        signed_at = signed_at or utcnow()
        if party == LoanParty.BORROWER:
            if loan.borrower_signed_at is not None:
                raise StateConflictError("Borrower has already signed")
            loan.borrower_signed_at = signed_at
        else:
            if loan.lender_signed_at is not None:
                raise StateConflictError("Lender has already signed")
            loan.lender_signed_at = signed_at

        if loan.borrower_signed_at is not None and loan.lender_signed_at is not None:
            loan.status = LoanStatus.PENDING_DISBURSEMENT.value

        self.db.flush()
        return loan

    def cancel(self, loan_id: uuid.UUID | str, actor_id: str) -> Loan:
        """Either party may cancel until both signatures are in"""
        loan = self.loans.get_for_update(loan_id)
        party_of(loan, actor_id)
        if loan.status != LoanStatus.PENDING_SIGNATURES.value:
            raise StateConflictError(f"Loan {loan.id} is {loan.status} and can no longer be cancelled")
        loan.status = LoanStatus.CANCELLED.value
        self.db.flush()
        return loan

    def disburse(
        self,
        loan_id: uuid.UUID | str,
        lender_id: str,
        start_date: date,
        disbursed_at: Optional[datetime] = None,
    ) -> Loan:
        """
        Lender confirms disbursement; the loan becomes active and its schedule is generated.

        The schedule is written exactly once, in the same transaction as the
        status change.

        Raises:
            StateConflictError: Loan not awaiting disbursement, or a schedule already exists
            InvariantViolation: Recomputed terms disagree with the stored loan
        """
        loan = self.loans.get_for_update(loan_id)
        if loan.lender_id != lender_id:
            raise NotAuthorizedError("Only the loan's lender can confirm disbursement")
        if loan.status != LoanStatus.PENDING_DISBURSEMENT.value:
            raise StateConflictError(f"Loan {loan.id} is {loan.status}, not pending_disbursement")
        if self.schedules.exists_for_loan(loan.id):
            raise StateConflictError(f"Loan {loan.id} already has a repayment schedule")

        terms = loan_terms(loan)
        if terms.total_owed_minor != loan.total_owed_minor:
            raise InvariantViolation(
                f"Loan {loan.id} owes {loan.total_owed_minor} but terms compute {terms.total_owed_minor}"
            )

        self.schedules.create_schedule(loan.id, generate_schedule(terms, start_date))

        now = disbursed_at or utcnow()
        loan.status = LoanStatus.ACTIVE.value
        loan.start_date = start_date
        loan.disbursed_at = now
        self.events.append(
            self.outbox.record(
                "loan.activated",
                loan.id,
                {
                    "loan_id": str(loan.id),
                    "borrower_id": loan.borrower_id,
                    "lender_id": loan.lender_id,
                    "total_owed_minor": loan.total_owed_minor,
                    "installment_count": loan.installment_count,
                },
                now,
            )
        )
        self.db.flush()
        return loan

    # Read projections

    def get_loan(self, loan_id: uuid.UUID | str, actor_id: Optional[str] = None) -> Loan:
        loan = self.loans.get(loan_id)
        if actor_id is not None:
            party_of(loan, actor_id)
        return loan

    def list_loans(
        self,
        borrower_id: Optional[str] = None,
        lender_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Loan]:
        if not borrower_id and not lender_id:
            raise ValidationError("Filter by borrower_id or lender_id")
        return self.loans.list_by_party(borrower_id=borrower_id, lender_id=lender_id, status=status)

    def list_events(self, loan_id: uuid.UUID | str, actor_id: Optional[str] = None) -> List[RepaymentEvent]:
        loan = self.get_loan(loan_id, actor_id)
        return self.ledger.list_for_loan(loan.id)

    def analytics(self, loan_id: uuid.UUID | str, as_of: date, actor_id: Optional[str] = None) -> PaymentAnalytics:
        loan = self.get_loan(loan_id, actor_id)
        return payment_analytics(self.schedules.list_for_loan(loan.id), as_of)

    def lender_portfolio(self, lender_id: str) -> Dict[str, Any]:
        """Dashboard totals recomputed from the loan table on every call"""
        by_status = self.loans.portfolio_totals(lender_id)
        disbursed_statuses = (
            LoanStatus.ACTIVE.value,
            LoanStatus.COMPLETED.value,
            LoanStatus.DEFAULTED.value,
        )
        disbursed = [by_status[s] for s in disbursed_statuses if s in by_status]

        return {
            "lender_id": lender_id,
            "loan_count": sum(v["count"] for v in by_status.values()),
            "by_status": {status: v["count"] for status, v in by_status.items()},
            "principal_disbursed_minor": sum(v["principal_minor"] for v in disbursed),
            "total_repaid_minor": sum(v["repaid_minor"] for v in disbursed),
            "outstanding_minor": sum(v["owed_minor"] - v["repaid_minor"] for v in disbursed),
        }
