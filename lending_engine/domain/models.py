"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class PaymentType(str, Enum):
    ONCE_OFF = "once_off"
    INSTALLMENTS = "installments"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    WITHDRAWN = "withdrawn"


class LoanStatus(str, Enum):
    PENDING_SIGNATURES = "pending_signatures"
    PENDING_DISBURSEMENT = "pending_disbursement"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


# Loans that still accept repayments
REPAYABLE_LOAN_STATUSES = (LoanStatus.ACTIVE.value, LoanStatus.DEFAULTED.value)


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


OUTSTANDING_SCHEDULE_STATUSES = (ScheduleStatus.PENDING.value, ScheduleStatus.PARTIAL.value)


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    OTHER = "other"


class ProofStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RiskType(str, Enum):
    LATE_1_7 = "LATE_1_7"
    LATE_8_30 = "LATE_8_30"
    LATE_31_60 = "LATE_31_60"
    DEFAULT = "DEFAULT"
    CLEARED = "CLEARED"


class RiskOrigin(str, Enum):
    LENDER_REPORTED = "LENDER_REPORTED"
    SYSTEM_AUTO = "SYSTEM_AUTO"


class LoanParty(str, Enum):
    BORROWER = "borrower"
    LENDER = "lender"


@dataclass(frozen=True)
class LoanTerms:
    """Interest terms derived from an offer"""

    payment_type: str
    installment_count: int
    principal_minor: int
    total_rate_percent: Decimal
    interest_minor: int
    total_owed_minor: int
    per_installment_minor: int
    final_installment_minor: int

    @property
    def total_rate_bps(self) -> int:
        return int(self.total_rate_percent * 100)


@dataclass
class Installment:
    """Single payment obligation in a repayment schedule"""

    installment_no: int
    due_date: date
    amount_due_minor: int
    paid_amount_minor: int = 0
    status: str = ScheduleStatus.PENDING.value
    paid_at: Optional[datetime] = None
    is_early_payment: bool = False


@dataclass
class Application:
    """Portion of a payment applied to one installment"""

    installment: object  # Installment or RepaymentSchedule row
    applied_minor: int
    settled: bool


@dataclass
class SettlementOutcome:
    """Result of allocating one payment across outstanding installments"""

    applications: List[Application] = field(default_factory=list)
    remaining_overpayment_minor: int = 0

    @property
    def amount_applied_minor(self) -> int:
        return sum(a.applied_minor for a in self.applications)

    @property
    def schedules_paid(self) -> int:
        return sum(1 for a in self.applications if a.settled)


@dataclass
class SettlementResult:
    """Outcome of apply_payment returned to callers"""

    loan_id: str
    schedules_paid: int
    amount_applied_minor: int
    remaining_overpayment_minor: int
    loan_completed: bool
    total_repaid_minor: int
    source: str = "direct"  # direct | proof
    timings: List[str] = field(default_factory=list)  # early | on_time | late per settled installment


@dataclass
class RiskSummary:
    """Aggregate delinquency picture for one borrower"""

    borrower_id: str
    distinct_reporters: int
    open_flag_count: int
    open_by_type: Dict[str, int]
    has_defaults: bool
    resolved_flag_count: int


@dataclass
class PaymentHistory:
    """Timeliness counts over a set of installments"""

    early: int = 0
    on_time: int = 0
    late: int = 0
    overdue: int = 0
    upcoming: int = 0
    partial: int = 0

    @property
    def paid(self) -> int:
        return self.early + self.on_time + self.late


@dataclass
class PaymentAnalytics:
    """Per-loan repayment progress"""

    history: PaymentHistory
    total_installments: int
    progress_percent: int
    health_score: int
    outstanding_minor: int


@dataclass
class CreditScore:
    """Output of the scoring strategy"""

    score: int
    score_band: str
    history: PaymentHistory
    open_flag_count: int
