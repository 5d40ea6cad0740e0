"""Offer endpoints and advisory terms preview"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import LoanResponse, OfferRequest, OfferResponse, TermsRequest, TermsResponse
from lending_engine.api.v1.loans import loan_response
from lending_engine.api.dependencies import get_actor_id
from lending_engine.domain.interest import compute_terms
from lending_engine.infrastructure.database.models import LoanOffer
from lending_engine.infrastructure.database.session import get_db, unit_of_work
from lending_engine.infrastructure.observability.metrics import loan_transition_counter
from lending_engine.services.loans import LoanService

router = APIRouter()


def offer_response(offer: LoanOffer) -> OfferResponse:
    return OfferResponse(
        id=str(offer.id),
        borrower_id=offer.borrower_id,
        lender_id=offer.lender_id,
        principal_minor=offer.principal_minor,
        base_rate_bps=offer.base_rate_bps,
        extra_rate_bps=offer.extra_rate_bps,
        payment_type=offer.payment_type,
        installment_count=offer.installment_count,
        currency=offer.currency,
        status=offer.status,
    )


@router.post("/terms/preview", response_model=TermsResponse)
def preview_terms(body: TermsRequest):
    """
    Compute total owed and installment amounts for display.

    Advisory only: the same computation is repeated from the stored offer
    when it is accepted.
    """
    terms = compute_terms(
        body.principal_minor,
        body.base_rate_percent,
        body.extra_rate_per_installment_percent,
        body.payment_type,
        body.installment_count,
    )
    return TermsResponse(
        total_rate_percent=terms.total_rate_percent,
        interest_minor=terms.interest_minor,
        total_owed_minor=terms.total_owed_minor,
        per_installment_minor=terms.per_installment_minor,
        final_installment_minor=terms.final_installment_minor,
        installment_count=terms.installment_count,
    )


@router.post("/offers", response_model=OfferResponse, status_code=201)
def create_offer(body: OfferRequest, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    with unit_of_work(db):
        offer = LoanService(db).create_offer(
            lender_id=actor_id,
            borrower_id=body.borrower_id,
            principal_minor=body.principal_minor,
            base_rate_pct=body.base_rate_percent,
            extra_rate_pct=body.extra_rate_per_installment_percent,
            payment_type=body.payment_type,
            installment_count=body.installment_count,
            currency=body.currency,
            country_code=body.country_code,
        )
    return offer_response(offer)


@router.post("/offers/{offer_id}/accept", response_model=LoanResponse, status_code=201)
def accept_offer(offer_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    """Borrower accepts; returns the new loan awaiting signatures"""
    with unit_of_work(db):
        loan = LoanService(db).accept_offer(offer_id, actor_id)
    loan_transition_counter.labels(status=loan.status).inc()
    return loan_response(loan)


@router.post("/offers/{offer_id}/decline", response_model=OfferResponse)
def decline_offer(offer_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    with unit_of_work(db):
        offer = LoanService(db).decline_offer(offer_id, actor_id)
    return offer_response(offer)


@router.post("/offers/{offer_id}/withdraw", response_model=OfferResponse)
def withdraw_offer(offer_id: str, actor_id: str = Depends(get_actor_id), db: Session = Depends(get_db)):
    with unit_of_work(db):
        offer = LoanService(db).withdraw_offer(offer_id, actor_id)
    return offer_response(offer)
