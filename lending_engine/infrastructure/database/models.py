"""SQLAlchemy ORM models for offers, loans, schedules, proofs, risk flags and the event outbox"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    JSON,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class LoanOffer(Base):
    """Lender's interest-bearing offer to a borrower; terms immutable once created"""

    __tablename__ = "loan_offer"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Text, nullable=False, index=True)
    lender_id = Column(Text, nullable=False, index=True)
    principal_minor = Column(BigInteger, nullable=False)
    base_rate_bps = Column(Integer, nullable=False)
    extra_rate_bps = Column(Integer, nullable=False, default=0)
    payment_type = Column(Text, nullable=False)  # once_off | installments
    installment_count = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    country_code = Column(String(2), nullable=True)
    status = Column(Text, nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Loan(Base):
    """Loan created from an accepted offer"""

    __tablename__ = "loan"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    offer_id = Column(Uuid, ForeignKey("loan_offer.id"), nullable=True, unique=True)
    borrower_id = Column(Text, nullable=False, index=True)
    lender_id = Column(Text, nullable=False, index=True)
    country_code = Column(String(2), nullable=True)
    currency = Column(String(3), nullable=False)
    principal_minor = Column(BigInteger, nullable=False)
    base_rate_bps = Column(Integer, nullable=False)
    extra_rate_bps = Column(Integer, nullable=False)
    payment_type = Column(Text, nullable=False)
    installment_count = Column(Integer, nullable=False)
    total_rate_bps = Column(Integer, nullable=False)
    interest_minor = Column(BigInteger, nullable=False)
    total_owed_minor = Column(BigInteger, nullable=False)
    total_repaid_minor = Column(BigInteger, nullable=False, default=0)
    status = Column(Text, nullable=False, default="pending_signatures")
    borrower_signed_at = Column(DateTime(timezone=True), nullable=True)
    lender_signed_at = Column(DateTime(timezone=True), nullable=True)
    start_date = Column(Date, nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    schedules = relationship(
        "RepaymentSchedule",
        back_populates="loan",
        order_by="RepaymentSchedule.installment_no",
    )


class RepaymentSchedule(Base):
    """One installment; only paid_amount_minor, status, paid_at and is_early_payment ever change"""

    __tablename__ = "repayment_schedule"
    __table_args__ = (UniqueConstraint("loan_id", "installment_no", name="uq_schedule_loan_installment"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=False, index=True)
    installment_no = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount_due_minor = Column(BigInteger, nullable=False)
    paid_amount_minor = Column(BigInteger, nullable=False, default=0)
    status = Column(Text, nullable=False, default="pending")
    paid_at = Column(DateTime(timezone=True), nullable=True)
    is_early_payment = Column(Boolean, nullable=False, default=False)

    loan = relationship("Loan", back_populates="schedules")


class RepaymentEvent(Base):
    """Immutable audit entry for one settlement application"""

    __tablename__ = "repayment_event"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=False, index=True)
    schedule_id = Column(Uuid, ForeignKey("repayment_schedule.id"), nullable=False, index=True)
    proof_id = Column(Uuid, ForeignKey("payment_proof.id"), nullable=True)
    amount_applied_minor = Column(BigInteger, nullable=False)
    method = Column(Text, nullable=False)
    reference = Column(Text, nullable=True)
    recorded_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PaymentProof(Base):
    """Borrower claim of an out-of-band payment awaiting lender review"""

    __tablename__ = "payment_proof"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=False, index=True)
    submitted_by = Column(Text, nullable=False)
    amount_minor = Column(BigInteger, nullable=False)
    payment_date = Column(Date, nullable=False)
    method = Column(Text, nullable=False)
    reference = Column(Text, nullable=True)
    proof_attachment_ref = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending")
    rejection_reason = Column(Text, nullable=True)
    reviewed_by = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class RiskFlag(Base):
    """Append-only delinquency report; resolution only sets the resolved_* columns"""

    __tablename__ = "risk_flag"
    __table_args__ = (Index("ix_risk_flag_borrower_resolved", "borrower_id", "resolved_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Text, nullable=False)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=True, index=True)
    country_code = Column(String(2), nullable=True)
    type = Column(Text, nullable=False)
    origin = Column(Text, nullable=False)
    reason = Column(Text, nullable=False)
    amount_at_issue_minor = Column(BigInteger, nullable=True)
    proof_hash = Column(String(64), nullable=True)
    created_by = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(Text, nullable=True)
    resolution_reason = Column(Text, nullable=True)


class DomainEvent(Base):
    """Outbox of notifications, written in the same transaction as the change"""

    __tablename__ = "domain_event"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type = Column(Text, nullable=False, index=True)
    aggregate_id = Column(Text, nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
