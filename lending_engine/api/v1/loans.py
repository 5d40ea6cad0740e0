"""Loan lifecycle, direct payments and loan read endpoints"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import (
    AnalyticsResponse,
    DisburseRequest,
    LoanListResponse,
    LoanResponse,
    PaymentHistorySchema,
    PaymentRequest,
    RepaymentEventList,
    RepaymentEventSchema,
    ScheduleSchema,
    SettlementResponse,
)
from lending_engine.api.dependencies import get_actor_id, get_notifier_client, get_request_id
from lending_engine.domain.models import SettlementResult
from lending_engine.infrastructure.database.models import Loan
from lending_engine.infrastructure.database.session import get_db, unit_of_work
from lending_engine.infrastructure.clients.notifier import NotifierClient
from lending_engine.infrastructure.observability.logging import log_settlement
from lending_engine.infrastructure.observability.metrics import loan_transition_counter, record_settlement
from lending_engine.services.loans import LoanService
from lending_engine.services.settlement import SettlementService

router = APIRouter()


def loan_response(loan: Loan) -> LoanResponse:
    return LoanResponse(
        id=str(loan.id),
        borrower_id=loan.borrower_id,
        lender_id=loan.lender_id,
        currency=loan.currency,
        country_code=loan.country_code,
        principal_minor=loan.principal_minor,
        payment_type=loan.payment_type,
        installment_count=loan.installment_count,
        total_rate_bps=loan.total_rate_bps,
        interest_minor=loan.interest_minor,
        total_owed_minor=loan.total_owed_minor,
        total_repaid_minor=loan.total_repaid_minor,
        status=loan.status,
        start_date=loan.start_date,
        schedules=[ScheduleSchema.model_validate(s) for s in loan.schedules],
    )


def settlement_response(result: SettlementResult) -> SettlementResponse:
    return SettlementResponse(
        loan_id=result.loan_id,
        schedules_paid=result.schedules_paid,
        amount_applied_minor=result.amount_applied_minor,
        remaining_overpayment_minor=result.remaining_overpayment_minor,
        loan_completed=result.loan_completed,
        total_repaid_minor=result.total_repaid_minor,
    )


def report_settlement(result: SettlementResult, request_id: str) -> None:
    """Metrics and structured log for a committed settlement"""
    record_settlement(result.source, result.amount_applied_minor, result.remaining_overpayment_minor, result.timings)
    if result.loan_completed:
        loan_transition_counter.labels(status="completed").inc()
    log_settlement(
        result.loan_id,
        result.amount_applied_minor,
        result.schedules_paid,
        result.remaining_overpayment_minor,
        result.loan_completed,
        result.source,
        request_id,
    )


@router.get("/loans", response_model=LoanListResponse)
def list_loans(
    borrower_id: Optional[str] = Query(None),
    lender_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """List a party's loans, newest first"""
    loans = LoanService(db).list_loans(borrower_id=borrower_id, lender_id=lender_id, status=status)
    return LoanListResponse(loans=[loan_response(loan) for loan in loans])


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Loan with its repayment schedule; visible to the borrower and lender only"""
    return loan_response(LoanService(db).get_loan(loan_id, actor_id))


@router.post("/loans/{loan_id}/sign", response_model=LoanResponse)
def sign_loan(loan_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    with unit_of_work(db):
        loan = LoanService(db).sign(loan_id, actor_id)
    if loan.status == "pending_disbursement":
        loan_transition_counter.labels(status=loan.status).inc()
    return loan_response(loan)


@router.post("/loans/{loan_id}/cancel", response_model=LoanResponse)
def cancel_loan(loan_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    with unit_of_work(db):
        loan = LoanService(db).cancel(loan_id, actor_id)
    loan_transition_counter.labels(status=loan.status).inc()
    return loan_response(loan)


@router.post("/loans/{loan_id}/disburse", response_model=LoanResponse)
def disburse_loan(
    loan_id: str,
    body: DisburseRequest,
    background_tasks: BackgroundTasks,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    """
    Confirm disbursement: activates the loan and generates its schedule.

    Installment n falls due n months after start_date.
    """
    service = LoanService(db)
    with unit_of_work(db):
        loan = service.disburse(loan_id, actor_id, body.start_date)

    loan_transition_counter.labels(status=loan.status).inc()
    background_tasks.add_task(notifier.publish_all, service.events)
    return loan_response(loan)


@router.post("/loans/{loan_id}/payments", response_model=SettlementResponse)
def record_payment(
    loan_id: str,
    body: PaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    """
    Lender records a payment of any size.

    Flow:
    1. Lock the loan and its schedule
    2. Apply oldest installment first, rolling any excess forward
    3. Return leftover beyond the whole obligation as remaining_overpayment_minor
    """
    service = SettlementService(db)
    with unit_of_work(db):
        result = service.apply_payment(
            loan_id,
            body.amount_minor,
            body.paid_at,
            method=body.method,
            reference=body.reference,
            recorded_by=actor_id,
        )

    report_settlement(result, get_request_id(request))
    background_tasks.add_task(notifier.publish_all, service.events)
    return settlement_response(result)


@router.get("/loans/{loan_id}/events", response_model=RepaymentEventList)
def list_repayment_events(loan_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Audit trail of settlement applications"""
    events = LoanService(db).list_events(loan_id, actor_id)
    return RepaymentEventList(
        loan_id=loan_id,
        events=[
            RepaymentEventSchema(
                id=str(e.id),
                schedule_id=str(e.schedule_id),
                proof_id=str(e.proof_id) if e.proof_id else None,
                amount_applied_minor=e.amount_applied_minor,
                method=e.method,
                reference=e.reference,
                created_at=e.created_at,
            )
            for e in events
        ],
    )


@router.get("/loans/{loan_id}/analytics", response_model=AnalyticsResponse)
def get_loan_analytics(
    loan_id: str,
    as_of: Optional[date] = Query(None),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """On-time/late/overdue breakdown, progress and health score"""
    analytics = LoanService(db).analytics(loan_id, as_of or date.today(), actor_id)
    return AnalyticsResponse(
        loan_id=loan_id,
        history=PaymentHistorySchema.model_validate(analytics.history),
        total_installments=analytics.total_installments,
        progress_percent=analytics.progress_percent,
        health_score=analytics.health_score,
        outstanding_minor=analytics.outstanding_minor,
    )
