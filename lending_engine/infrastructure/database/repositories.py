"""Data access layer for lending entities"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from lending_engine.infrastructure.database.models import (
    DomainEvent,
    Loan,
    LoanOffer,
    PaymentProof,
    RepaymentEvent,
    RepaymentSchedule,
    RiskFlag,
)
from lending_engine.domain.models import Installment, LoanTerms, RiskOrigin
from lending_engine.domain.exceptions import NotFoundError


def as_uuid(value: uuid.UUID | str, label: str = "Entity") -> uuid.UUID:
    """Parse an identifier; a malformed ID cannot exist, so it is reported as not found"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise NotFoundError(f"{label} {value} not found") from e


class OfferRepository:
    """Repository for loan offers"""

    def __init__(self, db: Session):
        self.db = db

    def create_offer(
        self,
        borrower_id: str,
        lender_id: str,
        principal_minor: int,
        base_rate_bps: int,
        extra_rate_bps: int,
        payment_type: str,
        installment_count: int,
        currency: str,
        country_code: Optional[str] = None,
    ) -> LoanOffer:
        offer = LoanOffer(
            borrower_id=borrower_id,
            lender_id=lender_id,
            principal_minor=principal_minor,
            base_rate_bps=base_rate_bps,
            extra_rate_bps=extra_rate_bps,
            payment_type=payment_type,
            installment_count=installment_count,
            currency=currency,
            country_code=country_code,
            status="pending",
        )
        self.db.add(offer)
        self.db.flush()
        return offer

    def get_for_update(self, offer_id: uuid.UUID | str) -> LoanOffer:
        offer = (
            self.db.query(LoanOffer)
            .filter(LoanOffer.id == as_uuid(offer_id, "Offer"))
            .with_for_update()
            .first()
        )
        if offer is None:
            raise NotFoundError(f"Offer {offer_id} not found")
        return offer


class LoanRepository:
    """Repository for loans"""

    def __init__(self, db: Session):
        self.db = db

    def create_from_offer(self, offer: LoanOffer, terms: LoanTerms) -> Loan:
        """Persist a loan awaiting both signatures"""
        loan = Loan(
            offer_id=offer.id,
            borrower_id=offer.borrower_id,
            lender_id=offer.lender_id,
            country_code=offer.country_code,
            currency=offer.currency,
            principal_minor=offer.principal_minor,
            base_rate_bps=offer.base_rate_bps,
            extra_rate_bps=offer.extra_rate_bps,
            payment_type=terms.payment_type,
            installment_count=terms.installment_count,
            total_rate_bps=terms.total_rate_bps,
            interest_minor=terms.interest_minor,
            total_owed_minor=terms.total_owed_minor,
            total_repaid_minor=0,
            status="pending_signatures",
        )
        self.db.add(loan)
        self.db.flush()
        return loan

    def get(self, loan_id: uuid.UUID | str) -> Loan:
        loan = self.db.query(Loan).filter(Loan.id == as_uuid(loan_id, "Loan")).first()
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def get_for_update(self, loan_id: uuid.UUID | str) -> Loan:
        """Lock the loan row; every settlement of this loan serializes on it"""
        loan = (
            self.db.query(Loan)
            .filter(Loan.id == as_uuid(loan_id, "Loan"))
            .with_for_update()
            .populate_existing()
            .first()
        )
        if loan is None:
            raise NotFoundError(f"Loan {loan_id} not found")
        return loan

    def list_by_party(
        self,
        borrower_id: Optional[str] = None,
        lender_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[Loan]:
        query = self.db.query(Loan)
        if borrower_id:
            query = query.filter(Loan.borrower_id == borrower_id)
        if lender_id:
            query = query.filter(Loan.lender_id == lender_id)
        if status:
            query = query.filter(Loan.status == status)
        return query.order_by(Loan.created_at.desc()).limit(limit).all()

    def list_by_status(self, statuses: tuple) -> List[Loan]:
        return self.db.query(Loan).filter(Loan.status.in_(statuses)).all()

    def portfolio_totals(self, lender_id: str) -> Dict[str, Dict[str, int]]:
        """Per-status loan count, principal and repaid totals for a lender"""
        rows = (
            self.db.query(
                Loan.status,
                func.count(Loan.id),
                func.coalesce(func.sum(Loan.principal_minor), 0),
                func.coalesce(func.sum(Loan.total_owed_minor), 0),
                func.coalesce(func.sum(Loan.total_repaid_minor), 0),
            )
            .filter(Loan.lender_id == lender_id)
            .group_by(Loan.status)
            .all()
        )
        return {
            status: {
                "count": count,
                "principal_minor": int(principal),
                "owed_minor": int(owed),
                "repaid_minor": int(repaid),
            }
            for status, count, principal, owed, repaid in rows
        }


class ScheduleRepository:
    """Repository for repayment schedules"""

    def __init__(self, db: Session):
        self.db = db

    def create_schedule(self, loan_id: uuid.UUID, installments: List[Installment]) -> List[RepaymentSchedule]:
        rows = []
        for inst in installments:
            row = RepaymentSchedule(
                loan_id=loan_id,
                installment_no=inst.installment_no,
                due_date=inst.due_date,
                amount_due_minor=inst.amount_due_minor,
                paid_amount_minor=0,
                status="pending",
                is_early_payment=False,
            )
            self.db.add(row)
            rows.append(row)
        self.db.flush()
        return rows

    def exists_for_loan(self, loan_id: uuid.UUID) -> bool:
        return (
            self.db.query(RepaymentSchedule.id)
            .filter(RepaymentSchedule.loan_id == loan_id)
            .first()
            is not None
        )

    def list_for_loan(self, loan_id: uuid.UUID, for_update: bool = False) -> List[RepaymentSchedule]:
        query = (
            self.db.query(RepaymentSchedule)
            .filter(RepaymentSchedule.loan_id == loan_id)
            .order_by(RepaymentSchedule.installment_no)
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.all()

    def list_for_borrower(self, borrower_id: str) -> List[RepaymentSchedule]:
        return (
            self.db.query(RepaymentSchedule)
            .join(Loan, Loan.id == RepaymentSchedule.loan_id)
            .filter(Loan.borrower_id == borrower_id)
            .order_by(RepaymentSchedule.due_date)
            .all()
        )


class RepaymentEventRepository:
    """Append-only repayment ledger"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        loan_id: uuid.UUID,
        schedule_id: uuid.UUID,
        amount_applied_minor: int,
        method: str,
        reference: Optional[str] = None,
        recorded_by: Optional[str] = None,
        proof_id: Optional[uuid.UUID] = None,
    ) -> RepaymentEvent:
        event = RepaymentEvent(
            loan_id=loan_id,
            schedule_id=schedule_id,
            amount_applied_minor=amount_applied_minor,
            method=method,
            reference=reference,
            recorded_by=recorded_by,
            proof_id=proof_id,
        )
        self.db.add(event)
        return event

    def list_for_loan(self, loan_id: uuid.UUID) -> List[RepaymentEvent]:
        return (
            self.db.query(RepaymentEvent)
            .join(RepaymentSchedule, RepaymentSchedule.id == RepaymentEvent.schedule_id)
            .filter(RepaymentEvent.loan_id == loan_id)
            .order_by(RepaymentEvent.created_at, RepaymentSchedule.installment_no)
            .all()
        )


class ProofRepository:
    """Repository for payment proofs"""

    def __init__(self, db: Session):
        self.db = db

    def create_proof(self, **fields: Any) -> PaymentProof:
        proof = PaymentProof(status="pending", **fields)
        self.db.add(proof)
        self.db.flush()
        return proof

    def get(self, proof_id: uuid.UUID | str) -> PaymentProof:
        proof = self.db.query(PaymentProof).filter(PaymentProof.id == as_uuid(proof_id, "Proof")).first()
        if proof is None:
            raise NotFoundError(f"Proof {proof_id} not found")
        return proof

    def get_for_update(self, proof_id: uuid.UUID) -> PaymentProof:
        proof = (
            self.db.query(PaymentProof)
            .filter(PaymentProof.id == proof_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if proof is None:
            raise NotFoundError(f"Proof {proof_id} not found")
        return proof

    def list_for_loan(self, loan_id: uuid.UUID) -> List[PaymentProof]:
        return (
            self.db.query(PaymentProof)
            .filter(PaymentProof.loan_id == loan_id)
            .order_by(PaymentProof.created_at.desc())
            .all()
        )


class RiskFlagRepository:
    """Repository for risk flags"""

    def __init__(self, db: Session):
        self.db = db

    def create_flag(self, **fields: Any) -> RiskFlag:
        flag = RiskFlag(**fields)
        self.db.add(flag)
        self.db.flush()
        return flag

    def get_for_update(self, flag_id: uuid.UUID | str) -> RiskFlag:
        flag = (
            self.db.query(RiskFlag)
            .filter(RiskFlag.id == as_uuid(flag_id, "Risk flag"))
            .with_for_update()
            .populate_existing()
            .first()
        )
        if flag is None:
            raise NotFoundError(f"Risk flag {flag_id} not found")
        return flag

    def list_for_borrower(self, borrower_id: str, include_resolved: bool = True) -> List[RiskFlag]:
        query = self.db.query(RiskFlag).filter(RiskFlag.borrower_id == borrower_id)
        if not include_resolved:
            query = query.filter(RiskFlag.resolved_at.is_(None))
        return query.order_by(RiskFlag.created_at.desc()).all()

    def open_system_flags_for_loan(self, loan_id: uuid.UUID) -> List[RiskFlag]:
        return (
            self.db.query(RiskFlag)
            .filter(
                RiskFlag.loan_id == loan_id,
                RiskFlag.origin == RiskOrigin.SYSTEM_AUTO.value,
                RiskFlag.resolved_at.is_(None),
            )
            .all()
        )

    def loans_with_open_system_flags(self) -> List[uuid.UUID]:
        rows = (
            self.db.query(RiskFlag.loan_id)
            .filter(
                RiskFlag.origin == RiskOrigin.SYSTEM_AUTO.value,
                RiskFlag.resolved_at.is_(None),
                RiskFlag.loan_id.is_not(None),
            )
            .distinct()
            .all()
        )
        return [row[0] for row in rows]


class EventRepository:
    """Outbox writer; payloads are returned so callers can publish after commit"""

    def __init__(self, db: Session):
        self.db = db

    def record(self, event_type: str, aggregate_id: uuid.UUID | str, data: Dict[str, Any], occurred_at: datetime) -> Dict[str, Any]:
        payload = {
            "event": event_type,
            "aggregate_id": str(aggregate_id),
            "occurred_at": occurred_at.isoformat(),
            **data,
        }
        self.db.add(DomainEvent(event_type=event_type, aggregate_id=str(aggregate_id), payload=payload))
        return payload
