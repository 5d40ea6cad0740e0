"""Risk flag endpoints and borrower risk aggregate"""

from datetime import date
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import (
    ResolveRequest,
    RiskFlagRequest,
    RiskFlagResponse,
    RiskSummaryResponse,
    SweepRequest,
    SweepResponse,
)
from lending_engine.api.dependencies import get_actor_id, get_notifier_client, get_request_id
from lending_engine.config import settings
from lending_engine.infrastructure.database.models import RiskFlag
from lending_engine.infrastructure.database.session import get_db, unit_of_work
from lending_engine.infrastructure.clients.notifier import NotifierClient
from lending_engine.infrastructure.observability.logging import log_risk_flag
from lending_engine.infrastructure.observability.metrics import risk_flag_counter
from lending_engine.services.risk import RiskLedger

router = APIRouter()


def flag_response(flag: RiskFlag) -> RiskFlagResponse:
    return RiskFlagResponse(
        id=str(flag.id),
        borrower_id=flag.borrower_id,
        type=flag.type,
        origin=flag.origin,
        reason=flag.reason,
        created_by=flag.created_by,
        created_at=flag.created_at,
        resolved_at=flag.resolved_at,
        resolution_reason=flag.resolution_reason,
    )


@router.post("/risk-flags", response_model=RiskFlagResponse, status_code=201)
def list_borrower_as_risky(
    body: RiskFlagRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    """Lender files a delinquency report backed by a SHA-256 proof document hash"""
    ledger = RiskLedger(db)
    with unit_of_work(db):
        flag = ledger.list_as_risky(
            borrower_id=body.borrower_id,
            risk_type=body.type,
            reason=body.reason,
            proof_hash=body.proof_hash,
            reporter_id=actor_id,
            amount_minor=body.amount_minor,
            country_code=body.country_code,
        )

    risk_flag_counter.labels(type=flag.type, origin=flag.origin).inc()
    log_risk_flag(str(flag.id), flag.borrower_id, flag.type, flag.origin, get_request_id(request))
    background_tasks.add_task(notifier.publish_all, ledger.events)
    return flag_response(flag)


@router.post("/risk-flags/{flag_id}/resolve", response_model=RiskFlagResponse)
def resolve_risk_flag(
    flag_id: str,
    body: ResolveRequest,
    background_tasks: BackgroundTasks,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    """Resolving an already resolved flag returns 409"""
    ledger = RiskLedger(db)
    with unit_of_work(db):
        flag = ledger.resolve(flag_id, body.resolution_reason, actor_id)
    background_tasks.add_task(notifier.publish_all, ledger.events)
    return flag_response(flag)


@router.get("/borrowers/{borrower_id}/risk", response_model=RiskSummaryResponse)
def get_borrower_risk(borrower_id: str, db: Session = Depends(get_db)):
    """
    Aggregate risk picture for a borrower.

    Returns:
        Distinct reporting lenders, open flags by type, default indicator and
        the underlying flags newest first
    """
    ledger = RiskLedger(db)
    flags = ledger.list_flags(borrower_id)
    summary = ledger.summarize(borrower_id)
    return RiskSummaryResponse(
        borrower_id=borrower_id,
        distinct_reporters=summary.distinct_reporters,
        open_flag_count=summary.open_flag_count,
        open_by_type=summary.open_by_type,
        has_defaults=summary.has_defaults,
        resolved_flag_count=summary.resolved_flag_count,
        flags=[flag_response(f) for f in flags],
    )


@router.post("/risk-flags/sweep", response_model=SweepResponse)
def sweep_overdue(
    body: SweepRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    """File, escalate and clear system delinquency flags from current schedule state"""
    ledger = RiskLedger(db)
    with unit_of_work(db):
        report = ledger.sweep_overdue(body.as_of or date.today(), settings.system_actor_id)

    for event in ledger.events:
        if event["event"] == "risk.flagged":
            risk_flag_counter.labels(type=event["type"], origin=event["origin"]).inc()
    background_tasks.add_task(notifier.publish_all, ledger.events)
    return SweepResponse(
        loans_checked=report.loans_checked,
        flags_created=report.flags_created,
        flags_escalated=report.flags_escalated,
        flags_cleared=report.flags_cleared,
        loans_defaulted=report.loans_defaulted,
    )
