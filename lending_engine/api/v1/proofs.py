"""Payment-proof endpoints"""

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import (
    ProofApprovalResponse,
    ProofListResponse,
    ProofRequest,
    ProofResponse,
    RejectRequest,
)
from lending_engine.api.v1.loans import report_settlement, settlement_response
from lending_engine.api.dependencies import get_actor_id, get_notifier_client, get_request_id
from lending_engine.infrastructure.database.models import PaymentProof
from lending_engine.infrastructure.database.session import get_db, unit_of_work
from lending_engine.infrastructure.clients.notifier import NotifierClient
from lending_engine.infrastructure.observability.logging import log_proof_review
from lending_engine.infrastructure.observability.metrics import proof_review_counter
from lending_engine.services.proofs import ProofService

router = APIRouter()


def proof_response(proof: PaymentProof) -> ProofResponse:
    return ProofResponse(
        id=str(proof.id),
        loan_id=str(proof.loan_id),
        amount_minor=proof.amount_minor,
        payment_date=proof.payment_date,
        method=proof.method,
        reference=proof.reference,
        status=proof.status,
        rejection_reason=proof.rejection_reason,
    )


@router.post("/loans/{loan_id}/proofs", response_model=ProofResponse, status_code=201)
def submit_proof(
    loan_id: str,
    body: ProofRequest,
    background_tasks: BackgroundTasks,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    """Borrower claims an out-of-band payment; the schedule is untouched until review"""
    service = ProofService(db)
    with unit_of_work(db):
        proof = service.submit_proof(
            loan_id,
            actor_id,
            body.amount_minor,
            body.payment_date,
            body.method,
            reference=body.reference,
            proof_attachment_ref=body.proof_attachment_ref,
            notes=body.notes,
        )
    background_tasks.add_task(notifier.publish_all, service.events)
    return proof_response(proof)


@router.get("/loans/{loan_id}/proofs", response_model=ProofListResponse)
def list_proofs(loan_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    proofs = ProofService(db).list_proofs(loan_id, actor_id)
    return ProofListResponse(loan_id=loan_id, proofs=[proof_response(p) for p in proofs])


@router.post("/proofs/{proof_id}/approve", response_model=ProofApprovalResponse)
def approve_proof(
    proof_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    """
    Lender approves a pending proof, settling its amount exactly once.

    Approving an already reviewed proof returns 409.
    """
    request_id = get_request_id(request)
    service = ProofService(db)
    with unit_of_work(db):
        proof, result = service.approve_proof(proof_id, actor_id)

    proof_review_counter.labels(outcome="approved").inc()
    log_proof_review(proof_id, result.loan_id, "approved", actor_id, request_id)
    report_settlement(result, request_id)
    background_tasks.add_task(notifier.publish_all, service.events)
    return ProofApprovalResponse(proof=proof_response(proof), settlement=settlement_response(result))


@router.post("/proofs/{proof_id}/reject", response_model=ProofResponse)
def reject_proof(
    proof_id: str,
    body: RejectRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    notifier: NotifierClient = Depends(get_notifier_client),
):
    service = ProofService(db)
    with unit_of_work(db):
        proof = service.reject_proof(proof_id, actor_id, body.reason)

    proof_review_counter.labels(outcome="rejected").inc()
    log_proof_review(proof_id, str(proof.loan_id), "rejected", actor_id, get_request_id(request))
    background_tasks.add_task(notifier.publish_all, service.events)
    return proof_response(proof)
