"""GET credit score and lender portfolio read projections"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import CreditScoreResponse, PaymentHistorySchema, PortfolioResponse
from lending_engine.infrastructure.database.session import get_db
from lending_engine.services.loans import LoanService
from lending_engine.services.scoring import CreditScoreService

router = APIRouter()


@router.get("/borrowers/{borrower_id}/credit-score", response_model=CreditScoreResponse)
def get_credit_score(
    borrower_id: str,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Current credit score for a borrower.

    Recomputed from every installment across the borrower's loans and their
    risk flags on each call.
    """
    score = CreditScoreService(db).score_borrower(borrower_id, as_of or date.today())
    return CreditScoreResponse(
        borrower_id=borrower_id,
        score=score.score,
        score_band=score.score_band,
        open_flag_count=score.open_flag_count,
        history=PaymentHistorySchema.model_validate(score.history),
    )


@router.get("/lenders/{lender_id}/portfolio", response_model=PortfolioResponse)
def get_portfolio(lender_id: str, db: Session = Depends(get_db)):
    return PortfolioResponse(**LoanService(db).lender_portfolio(lender_id))
