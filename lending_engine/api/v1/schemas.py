"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional


class TermsRequest(BaseModel):
    """Offer terms; rates are percentages with at most two decimals"""

    principal_minor: int = Field(..., gt=0, description="Principal in minor units")
    base_rate_percent: Decimal = Field(..., ge=0, le=360)
    extra_rate_per_installment_percent: Decimal = Field(Decimal("0"), ge=0, le=360)
    payment_type: str = Field(..., description="once_off | installments")
    installment_count: int = Field(1, ge=1, le=60)


class TermsResponse(BaseModel):
    """Response for POST /v1/terms/preview (advisory; recomputed on acceptance)"""

    total_rate_percent: Decimal
    interest_minor: int
    total_owed_minor: int
    per_installment_minor: int
    final_installment_minor: int
    installment_count: int


class OfferRequest(TermsRequest):
    """Request body for POST /v1/offers"""

    borrower_id: str = Field(..., min_length=1)
    currency: str = Field(..., min_length=3, max_length=3)
    country_code: Optional[str] = Field(None, min_length=2, max_length=2)


class OfferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    borrower_id: str
    lender_id: str
    principal_minor: int
    base_rate_bps: int
    extra_rate_bps: int
    payment_type: str
    installment_count: int
    currency: str
    status: str


class ScheduleSchema(BaseModel):
    """Single installment in a repayment schedule"""

    model_config = ConfigDict(from_attributes=True)

    installment_no: int
    due_date: date
    amount_due_minor: int
    paid_amount_minor: int
    status: str
    paid_at: Optional[datetime] = None
    is_early_payment: bool


class LoanResponse(BaseModel):
    """Loan with its schedule"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    borrower_id: str
    lender_id: str
    currency: str
    country_code: Optional[str] = None
    principal_minor: int
    payment_type: str
    installment_count: int
    total_rate_bps: int
    interest_minor: int
    total_owed_minor: int
    total_repaid_minor: int
    status: str
    start_date: Optional[date] = None
    schedules: List[ScheduleSchema] = []


class LoanListResponse(BaseModel):
    loans: List[LoanResponse]


class DisburseRequest(BaseModel):
    start_date: date


class PaymentRequest(BaseModel):
    """Request body for POST /v1/loans/{loan_id}/payments"""

    amount_minor: int = Field(..., description="Payment in minor units")
    paid_at: datetime
    method: str = "other"
    reference: Optional[str] = None


class SettlementResponse(BaseModel):
    loan_id: str
    schedules_paid: int
    amount_applied_minor: int
    remaining_overpayment_minor: int
    loan_completed: bool
    total_repaid_minor: int


class RepaymentEventSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    schedule_id: str
    proof_id: Optional[str] = None
    amount_applied_minor: int
    method: str
    reference: Optional[str] = None
    created_at: datetime


class RepaymentEventList(BaseModel):
    loan_id: str
    events: List[RepaymentEventSchema]


class PaymentHistorySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    early: int
    on_time: int
    late: int
    overdue: int
    upcoming: int
    partial: int


class AnalyticsResponse(BaseModel):
    loan_id: str
    history: PaymentHistorySchema
    total_installments: int
    progress_percent: int
    health_score: int
    outstanding_minor: int


class ProofRequest(BaseModel):
    """Request body for POST /v1/loans/{loan_id}/proofs"""

    amount_minor: int
    payment_date: date
    method: str
    reference: Optional[str] = None
    proof_attachment_ref: Optional[str] = None
    notes: Optional[str] = None


class ProofResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    loan_id: str
    amount_minor: int
    payment_date: date
    method: str
    reference: Optional[str] = None
    status: str
    rejection_reason: Optional[str] = None


class ProofApprovalResponse(BaseModel):
    proof: ProofResponse
    settlement: SettlementResponse


class ProofListResponse(BaseModel):
    loan_id: str
    proofs: List[ProofResponse]


class RejectRequest(BaseModel):
    reason: str


class RiskFlagRequest(BaseModel):
    """Request body for POST /v1/risk-flags"""

    borrower_id: str
    type: str
    reason: str
    proof_hash: str
    amount_minor: Optional[int] = None
    country_code: Optional[str] = None


class ResolveRequest(BaseModel):
    resolution_reason: str


class RiskFlagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    borrower_id: str
    type: str
    origin: str
    reason: str
    created_by: str
    created_at: datetime
    resolved_at: Optional[datetime] = None
    resolution_reason: Optional[str] = None


class RiskSummaryResponse(BaseModel):
    borrower_id: str
    distinct_reporters: int
    open_flag_count: int
    open_by_type: Dict[str, int]
    has_defaults: bool
    resolved_flag_count: int
    flags: List[RiskFlagResponse]


class SweepRequest(BaseModel):
    as_of: Optional[date] = None


class SweepResponse(BaseModel):
    loans_checked: int
    flags_created: int
    flags_escalated: int
    flags_cleared: int
    loans_defaulted: int


class CreditScoreResponse(BaseModel):
    borrower_id: str
    score: int
    score_band: str
    open_flag_count: int
    history: PaymentHistorySchema


class PortfolioResponse(BaseModel):
    lender_id: str
    loan_count: int
    by_status: Dict[str, int]
    principal_disbursed_minor: int
    total_repaid_minor: int
    outstanding_minor: int
