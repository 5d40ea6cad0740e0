"""Borrower credit score from repayment history and open risk flags"""

from datetime import date
from sqlalchemy.orm import Session
from lending_engine.domain.models import CreditScore
from lending_engine.domain.scoring import ScoringStrategy, make_credit_score
from lending_engine.infrastructure.database.repositories import RiskFlagRepository, ScheduleRepository


class CreditScoreService:
    """Computes scores on read; nothing is cached or stored"""

    def __init__(self, db: Session, strategy: ScoringStrategy | None = None):
        self.schedules = ScheduleRepository(db)
        self.flags = RiskFlagRepository(db)
        self.strategy = strategy

    def score_borrower(self, borrower_id: str, as_of: date) -> CreditScore:
        return make_credit_score(
            self.schedules.list_for_borrower(borrower_id),
            self.flags.list_for_borrower(borrower_id),
            as_of,
            self.strategy,
        )
