"""Credit score signal - payment timeliness and open risk flags to a numeric score"""

from datetime import date
from typing import Iterable, List, Sequence
from lending_engine.domain.models import (
    CreditScore,
    PaymentAnalytics,
    PaymentHistory,
    RiskType,
    ScheduleStatus,
)
from lending_engine.domain.settlement import is_late

MIN_SCORE = 300
MAX_SCORE = 850


def summarize_payment_history(installments: Iterable, as_of: date) -> PaymentHistory:
    """
    Classify installments by timeliness as of a given date.

    - early:    paid before the due date
    - on_time:  paid on the due date
    - late:     paid after the due date
    - overdue:  not fully paid and due date has passed
    - upcoming: not fully paid and not yet due
    - partial:  subset of overdue/upcoming holding some money
    """
    history = PaymentHistory()
    for inst in installments:
        if inst.status == ScheduleStatus.PAID.value:
            if inst.is_early_payment:
                history.early += 1
            elif is_late(inst):
                history.late += 1
            else:
                history.on_time += 1
            continue

        if inst.status == ScheduleStatus.PARTIAL.value:
            history.partial += 1
        if inst.due_date < as_of:
            history.overdue += 1
        else:
            history.upcoming += 1
    return history


def payment_analytics(installments: Sequence, as_of: date) -> PaymentAnalytics:
    """
    Repayment progress for one loan.

    Health score: 100 x on-time share of paid installments (100 when nothing
    is paid yet), minus 10 per overdue installment, floored at 0.
    """
    history = summarize_payment_history(installments, as_of)
    total = len(installments)

    progress = round(history.paid / total * 100) if total else 0

    health = 100
    if history.paid:
        health = round((history.early + history.on_time) / history.paid * 100)
    health = max(0, health - history.overdue * 10)

    outstanding = sum(inst.amount_due_minor - inst.paid_amount_minor for inst in installments)

    return PaymentAnalytics(
        history=history,
        total_installments=total,
        progress_percent=progress,
        health_score=health,
        outstanding_minor=outstanding,
    )


def score_band(score: int) -> str:
    """
    Map score to a band shown to lenders.

    - 700+:    good
    - 600-699: fair
    - 500-599: poor
    - <500:    very_poor
    """
    if score >= 700:
        return "good"
    elif score >= 600:
        return "fair"
    elif score >= 500:
        return "poor"
    else:
        return "very_poor"


class ScoringStrategy:
    """Pluggable credit scoring. Subclasses implement compute_score."""

    def compute_score(self, payment_history: PaymentHistory, risk_flags: List) -> int:
        raise NotImplementedError


class PlaceholderScoringStrategy(ScoringStrategy):
    """
    Provisional weighting until the production formula is specified.

    Starts every borrower at 650 and moves by fixed steps:
    - +5 per installment paid early or on time
    - -20 per installment paid late
    - -50 per overdue installment
    - -20 per open LATE_* flag, -50 per open DEFAULT flag
    Result is clamped to 300..850.
    """

    base_score = 650
    on_time_points = 5
    late_penalty = 20
    overdue_penalty = 50
    late_flag_penalty = 20
    default_flag_penalty = 50

    def compute_score(self, payment_history: PaymentHistory, risk_flags: List) -> int:
        score = self.base_score
        score += (payment_history.early + payment_history.on_time) * self.on_time_points
        score -= payment_history.late * self.late_penalty
        score -= payment_history.overdue * self.overdue_penalty

        for flag in risk_flags:
            if flag.resolved_at is not None:
                continue
            if flag.type == RiskType.DEFAULT.value:
                score -= self.default_flag_penalty
            elif flag.type != RiskType.CLEARED.value:
                score -= self.late_flag_penalty

        return max(MIN_SCORE, min(MAX_SCORE, score))


def make_credit_score(
    installments: Iterable,
    risk_flags: List,
    as_of: date,
    strategy: ScoringStrategy | None = None,
) -> CreditScore:
    """
    Main entry point: summarize history, apply strategy, band the result.
    """
    strategy = strategy or PlaceholderScoringStrategy()
    history = summarize_payment_history(installments, as_of)
    score = strategy.compute_score(history, risk_flags)
    open_flags = sum(1 for f in risk_flags if f.resolved_at is None)

    return CreditScore(
        score=score,
        score_band=score_band(score),
        history=history,
        open_flag_count=open_flags,
    )
