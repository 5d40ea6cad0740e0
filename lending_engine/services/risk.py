"""Risk/delinquency ledger: lender reports, resolutions, aggregation and the overdue sweep"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from lending_engine.domain.models import (
    LoanStatus,
    REPAYABLE_LOAN_STATUSES,
    RiskOrigin,
    RiskSummary,
    RiskType,
    ScheduleStatus,
)
from lending_engine.config import settings
from lending_engine.domain.risk import SEVERITY, check_resolver, classify_days_overdue, summarize_flags, validate_report
from lending_engine.domain.exceptions import StateConflictError, ValidationError
from lending_engine.infrastructure.database.models import Loan, RiskFlag
from lending_engine.infrastructure.database.repositories import (
    EventRepository,
    LoanRepository,
    RiskFlagRepository,
    ScheduleRepository,
)
from lending_engine.utils.date_utils import days_between, utcnow


@dataclass
class SweepReport:
    """Outcome of one overdue sweep"""

    loans_checked: int = 0
    flags_created: int = 0
    flags_escalated: int = 0
    flags_cleared: int = 0
    loans_defaulted: int = 0


class RiskLedger:
    """Append-only delinquency flags. Flushes, never commits."""

    def __init__(
        self,
        db: Session,
        events: Optional[List[Dict[str, Any]]] = None,
        system_actor_id: Optional[str] = None,
        admin_actor_id: Optional[str] = None,
    ):
        self.db = db
        self.events = events if events is not None else []
        self.system_actor_id = system_actor_id or settings.system_actor_id
        self.admin_actor_id = admin_actor_id or settings.admin_actor_id
        self.flags = RiskFlagRepository(db)
        self.loans = LoanRepository(db)
        self.schedules = ScheduleRepository(db)
        self.outbox = EventRepository(db)

    def _flagged(self, flag: RiskFlag, now: datetime) -> RiskFlag:
        self.events.append(
            self.outbox.record(
                "risk.flagged",
                flag.id,
                {
                    "flag_id": str(flag.id),
                    "borrower_id": flag.borrower_id,
                    "type": flag.type,
                    "origin": flag.origin,
                    "created_by": flag.created_by,
                },
                now,
            )
        )
        return flag

    def list_as_risky(
        self,
        borrower_id: str,
        risk_type: str,
        reason: str,
        proof_hash: str,
        reporter_id: str,
        amount_minor: Optional[int] = None,
        country_code: Optional[str] = None,
    ) -> RiskFlag:
        """
        File a lender report against a borrower.

        Reports from different lenders are never merged; they are only
        aggregated when read.

        Raises:
            ValidationError: Missing reason, malformed proof hash, bad type or amount
        """
        if not borrower_id:
            raise ValidationError("borrower_id is required")
        parsed = validate_report(risk_type, reason, proof_hash, amount_minor)
        if reporter_id == borrower_id:
            raise ValidationError("Borrowers cannot report themselves")

        now = utcnow()
        flag = self.flags.create_flag(
            borrower_id=borrower_id,
            country_code=country_code.upper() if country_code else None,
            type=parsed.value,
            origin=RiskOrigin.LENDER_REPORTED.value,
            reason=reason.strip(),
            amount_at_issue_minor=amount_minor,
            proof_hash=proof_hash,
            created_by=reporter_id,
            created_at=now,
        )
        return self._flagged(flag, now)

    def resolve(
        self,
        flag_id: uuid.UUID | str,
        resolution_reason: str,
        resolved_by: str,
    ) -> RiskFlag:
        """
        Resolve an open flag.

        Lender reports are resolved by the reporting lender, system flags by
        the sweep actor. The risk admin may resolve either; the flagged
        borrower never can.

        Raises:
            ValidationError: Empty resolution reason
            NotAuthorizedError: resolved_by may not resolve this flag
            StateConflictError: Flag already resolved (not a silent no-op)
        """
        if not resolution_reason or not resolution_reason.strip():
            raise ValidationError("A resolution reason is required")

        flag = self.flags.get_for_update(flag_id)
        check_resolver(flag, resolved_by, self.system_actor_id, self.admin_actor_id)
        return self._resolve_locked(flag, resolution_reason.strip(), resolved_by, utcnow())

    def _resolve_locked(self, flag: RiskFlag, reason: str, resolved_by: str, now: datetime) -> RiskFlag:
        if flag.resolved_at is not None:
            raise StateConflictError(f"Risk flag {flag.id} is already resolved")

        flag.resolved_at = now
        flag.resolved_by = resolved_by
        flag.resolution_reason = reason
        self.events.append(
            self.outbox.record(
                "risk.resolved",
                flag.id,
                {
                    "flag_id": str(flag.id),
                    "borrower_id": flag.borrower_id,
                    "type": flag.type,
                    "resolution_reason": reason,
                },
                now,
            )
        )
        self.db.flush()
        return flag

    def summarize(self, borrower_id: str) -> RiskSummary:
        """Read-time aggregate over the borrower's flags"""
        return summarize_flags(borrower_id, self.flags.list_for_borrower(borrower_id))

    def list_flags(self, borrower_id: str, include_resolved: bool = True) -> List[RiskFlag]:
        return self.flags.list_for_borrower(borrower_id, include_resolved=include_resolved)

    def sweep_overdue(self, as_of: date, system_actor_id: str) -> SweepReport:
        """
        File, escalate and clear SYSTEM_AUTO flags from schedule state.

        For each repayable loan the oldest unpaid installment decides the
        bucket. A loan holds at most one open system flag; moving to a more
        severe bucket resolves the old flag and files a new one. Reaching
        DEFAULT moves the loan to defaulted. Loans that are current again, or
        completed, have their open system flags resolved.
        """
        report = SweepReport()
        now = utcnow()

        candidate_ids = {loan.id for loan in self.loans.list_by_status(REPAYABLE_LOAN_STATUSES)}
        candidate_ids.update(self.flags.loans_with_open_system_flags())

        for loan_id in sorted(candidate_ids, key=str):
            loan = self.loans.get_for_update(loan_id)
            report.loans_checked += 1
            self._sweep_loan(loan, as_of, now, system_actor_id, report)

        self.db.flush()
        return report

    def _sweep_loan(self, loan: Loan, as_of: date, now: datetime, actor: str, report: SweepReport) -> None:
        open_flags = self.flags.open_system_flags_for_loan(loan.id)

        bucket = None
        if loan.status in REPAYABLE_LOAN_STATUSES:
            unpaid = [
                s for s in self.schedules.list_for_loan(loan.id)
                if s.status != ScheduleStatus.PAID.value
            ]
            if unpaid:
                bucket = classify_days_overdue(days_between(unpaid[0].due_date, as_of))

        if bucket is None:
            for flag in open_flags:
                self._resolve_locked(flag, "installments brought current", actor, now)
                report.flags_cleared += 1
            return

        current = max(open_flags, key=lambda f: SEVERITY.get(f.type, 0), default=None)
        if current is not None and SEVERITY.get(current.type, 0) >= SEVERITY[bucket.value]:
            return

        for flag in open_flags:
            self._resolve_locked(flag, f"escalated to {bucket.value}", actor, now)
            report.flags_escalated += 1

        overdue_minor = sum(
            s.amount_due_minor - s.paid_amount_minor
            for s in self.schedules.list_for_loan(loan.id)
            if s.status != ScheduleStatus.PAID.value and s.due_date < as_of
        )
        flag = self.flags.create_flag(
            borrower_id=loan.borrower_id,
            loan_id=loan.id,
            country_code=loan.country_code,
            type=bucket.value,
            origin=RiskOrigin.SYSTEM_AUTO.value,
            reason=f"Installment overdue as of {as_of.isoformat()}",
            amount_at_issue_minor=overdue_minor or None,
            created_by=actor,
            created_at=now,
        )
        self._flagged(flag, now)
        report.flags_created += 1

        if bucket == RiskType.DEFAULT and loan.status == LoanStatus.ACTIVE.value:
            loan.status = LoanStatus.DEFAULTED.value
            report.loans_defaulted += 1
            self.events.append(
                self.outbox.record(
                    "loan.defaulted",
                    loan.id,
                    {"loan_id": str(loan.id), "borrower_id": loan.borrower_id, "lender_id": loan.lender_id},
                    now,
                )
            )
