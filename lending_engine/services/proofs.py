"""Payment-proof workflow: borrower submits, lender approves (settles) or rejects"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
from lending_engine.domain.models import ProofStatus, REPAYABLE_LOAN_STATUSES, SettlementResult
from lending_engine.domain.money import require_positive_minor
from lending_engine.domain.exceptions import NotAuthorizedError, StateConflictError, ValidationError
from lending_engine.infrastructure.database.models import PaymentProof
from lending_engine.infrastructure.database.repositories import (
    EventRepository,
    LoanRepository,
    ProofRepository,
    as_uuid,
)
from lending_engine.services.settlement import SettlementService, validate_method
from lending_engine.utils.date_utils import start_of_day, utcnow


class ProofService:
    """
    Reviewable claims of out-of-band payments.

    pending -> approved | rejected, both terminal. A rejected proof is kept as
    history; the borrower files a new proof instead of editing it.
    """

    def __init__(self, db: Session, events: Optional[List[Dict[str, Any]]] = None):
        self.db = db
        self.events = events if events is not None else []
        self.loans = LoanRepository(db)
        self.proofs = ProofRepository(db)
        self.outbox = EventRepository(db)
        self.settlement = SettlementService(db, self.events)

    def submit_proof(
        self,
        loan_id: uuid.UUID | str,
        borrower_id: str,
        amount_minor: int,
        payment_date: date,
        method: str,
        reference: Optional[str] = None,
        proof_attachment_ref: Optional[str] = None,
        notes: Optional[str] = None,
        today: Optional[date] = None,
    ) -> PaymentProof:
        """
        Record a pending proof. Has no effect on the schedule until approved.

        Raises:
            ValidationError: Non-positive amount, future payment date, unknown method
            NotAuthorizedError: Submitter is not the loan's borrower
            StateConflictError: Loan is not accepting repayments
        """
        require_positive_minor(amount_minor)
        method = validate_method(method)
        today = today or utcnow().date()
        if payment_date > today:
            raise ValidationError("payment_date cannot be in the future")

        loan = self.loans.get(loan_id)
        if loan.borrower_id != borrower_id:
            raise NotAuthorizedError("Only the loan's borrower can submit payment proof")
        if loan.status not in REPAYABLE_LOAN_STATUSES:
            raise StateConflictError(f"Loan {loan.id} is {loan.status} and cannot accept payments")

        proof = self.proofs.create_proof(
            loan_id=loan.id,
            submitted_by=borrower_id,
            amount_minor=amount_minor,
            payment_date=payment_date,
            method=method,
            reference=reference,
            proof_attachment_ref=proof_attachment_ref,
            notes=notes,
        )
        self.events.append(
            self.outbox.record(
                "proof.submitted",
                proof.id,
                {
                    "proof_id": str(proof.id),
                    "loan_id": str(loan.id),
                    "lender_id": loan.lender_id,
                    "amount_minor": amount_minor,
                },
                utcnow(),
            )
        )
        return proof

    def _lock_pending(self, proof_id: uuid.UUID | str, lender_id: str):
        """Lock loan then proof (same order as direct settlement) and check review rights"""
        unlocked = self.proofs.get(proof_id)
        loan = self.loans.get_for_update(unlocked.loan_id)
        proof = self.proofs.get_for_update(as_uuid(proof_id))

        if loan.lender_id != lender_id:
            raise NotAuthorizedError("Only the loan's lender can review payment proof")
        if proof.status != ProofStatus.PENDING.value:
            raise StateConflictError(f"Proof {proof.id} is already {proof.status}")
        return loan, proof

    def approve_proof(
        self,
        proof_id: uuid.UUID | str,
        lender_id: str,
        approved_at: Optional[datetime] = None,
    ) -> Tuple[PaymentProof, SettlementResult]:
        """
        Approve a pending proof and settle its amount exactly once.

        The status flip and the settlement share one transaction under the
        loan lock, so a second approval sees approved and is refused.
        """
        loan, proof = self._lock_pending(proof_id, lender_id)
        now = approved_at or utcnow()

        proof.status = ProofStatus.APPROVED.value
        proof.reviewed_by = lender_id
        proof.reviewed_at = now

        result = self.settlement.settle_locked(
            loan,
            proof.amount_minor,
            start_of_day(proof.payment_date),
            method=proof.method,
            reference=proof.reference,
            recorded_by=lender_id,
            proof_id=proof.id,
            source="proof",
        )
        self.events.append(
            self.outbox.record(
                "proof.approved",
                proof.id,
                {
                    "proof_id": str(proof.id),
                    "loan_id": str(loan.id),
                    "borrower_id": loan.borrower_id,
                    "amount_minor": proof.amount_minor,
                },
                now,
            )
        )
        self.db.flush()
        return proof, result

    def reject_proof(
        self,
        proof_id: uuid.UUID | str,
        lender_id: str,
        reason: str,
        rejected_at: Optional[datetime] = None,
    ) -> PaymentProof:
        """Reject a pending proof; requires a reason and never touches the schedule"""
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        loan, proof = self._lock_pending(proof_id, lender_id)
        now = rejected_at or utcnow()

        proof.status = ProofStatus.REJECTED.value
        proof.rejection_reason = reason.strip()
        proof.reviewed_by = lender_id
        proof.reviewed_at = now
        self.events.append(
            self.outbox.record(
                "proof.rejected",
                proof.id,
                {
                    "proof_id": str(proof.id),
                    "loan_id": str(loan.id),
                    "borrower_id": loan.borrower_id,
                    "reason": proof.rejection_reason,
                },
                now,
            )
        )
        self.db.flush()
        return proof

    def list_proofs(self, loan_id: uuid.UUID | str, actor_id: Optional[str] = None) -> List[PaymentProof]:
        loan = self.loans.get(loan_id)
        if actor_id is not None and actor_id not in (loan.borrower_id, loan.lender_id):
            raise NotAuthorizedError(f"{actor_id} is not a party to loan {loan.id}")
        return self.proofs.list_for_loan(loan.id)
