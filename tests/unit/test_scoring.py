"""Unit tests for payment history, analytics and credit scoring"""

import pytest
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional
from lending_engine.domain.installments import generate_schedule
from lending_engine.domain.interest import compute_terms
from lending_engine.domain.models import PaymentHistory
from lending_engine.domain.scoring import (
    PlaceholderScoringStrategy,
    ScoringStrategy,
    make_credit_score,
    payment_analytics,
    score_band,
    summarize_payment_history,
)
from lending_engine.domain.settlement import allocate_payment


@dataclass
class Flag:
    type: str
    resolved_at: Optional[datetime] = None


def paid_on(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def schedule():
    """4 x 3,150 due 2024-02-15, 03-15, 04-15, 05-15"""
    return generate_schedule(compute_terms(10000, 20, 2, "installments", 4), date(2024, 1, 15))


def test_summarize_payment_history(schedule):
    allocate_payment(schedule, 3150, paid_on(date(2024, 2, 1)))   # early
    allocate_payment(schedule, 3150, paid_on(date(2024, 3, 15)))  # on time
    allocate_payment(schedule, 1000, paid_on(date(2024, 4, 1)))   # #3 partial

    history = summarize_payment_history(schedule, as_of=date(2024, 4, 20))

    assert history.early == 1
    assert history.on_time == 1
    assert history.late == 0
    assert history.overdue == 1  # #3 past due and not fully paid
    assert history.upcoming == 1  # #4
    assert history.partial == 1
    assert history.paid == 2


def test_late_payment_counted_as_late(schedule):
    allocate_payment(schedule, 3150, paid_on(date(2024, 2, 20)))
    history = summarize_payment_history(schedule, as_of=date(2024, 2, 20))
    assert history.late == 1


def test_installment_due_today_is_not_overdue(schedule):
    history = summarize_payment_history(schedule, as_of=date(2024, 2, 15))
    assert history.overdue == 0
    assert history.upcoming == 4


def test_payment_analytics(schedule):
    allocate_payment(schedule, 3150, paid_on(date(2024, 2, 1)))
    allocate_payment(schedule, 3150, paid_on(date(2024, 3, 20)))  # late

    analytics = payment_analytics(schedule, as_of=date(2024, 4, 20))

    assert analytics.total_installments == 4
    assert analytics.progress_percent == 50
    # 1 of 2 paid on time -> 50, minus 10 for overdue #3
    assert analytics.health_score == 40
    assert analytics.outstanding_minor == 6300


def test_payment_analytics_nothing_paid_yet(schedule):
    analytics = payment_analytics(schedule, as_of=date(2024, 1, 20))

    assert analytics.progress_percent == 0
    assert analytics.health_score == 100
    assert analytics.outstanding_minor == 12600


def test_health_score_floors_at_zero(schedule):
    analytics = payment_analytics(schedule, as_of=date(2025, 1, 1))
    assert analytics.health_score == 60  # nothing paid, 4 overdue

    allocate_payment(schedule, 3150, paid_on(date(2024, 12, 1)))
    analytics = payment_analytics(schedule, as_of=date(2025, 1, 1))
    assert analytics.health_score == 0  # 0% on time, 3 overdue


def test_score_band_thresholds():
    assert score_band(850) == "good"
    assert score_band(700) == "good"
    assert score_band(699) == "fair"
    assert score_band(600) == "fair"
    assert score_band(599) == "poor"
    assert score_band(500) == "poor"
    assert score_band(499) == "very_poor"


def test_placeholder_strategy_new_borrower():
    assert PlaceholderScoringStrategy().compute_score(PaymentHistory(), []) == 650


def test_placeholder_strategy_weights():
    history = PaymentHistory(early=2, on_time=4, late=1, overdue=1)
    flags = [Flag(type="LATE_8_30"), Flag(type="DEFAULT"), Flag(type="DEFAULT", resolved_at=datetime(2024, 1, 1))]

    # 650 + 6*5 - 20 - 50 - 20 - 50
    assert PlaceholderScoringStrategy().compute_score(history, flags) == 540


def test_placeholder_strategy_clamps():
    strategy = PlaceholderScoringStrategy()
    assert strategy.compute_score(PaymentHistory(on_time=100), []) == 850
    assert strategy.compute_score(PaymentHistory(overdue=20), []) == 300


def test_make_credit_score_uses_custom_strategy(schedule):
    class FixedStrategy(ScoringStrategy):
        def compute_score(self, payment_history, risk_flags):
            return 555

    score = make_credit_score(schedule, [Flag(type="LATE_1_7")], date(2024, 1, 20), FixedStrategy())

    assert score.score == 555
    assert score.score_band == "poor"
    assert score.open_flag_count == 1
    assert score.history.upcoming == 4


def test_base_strategy_is_abstract():
    with pytest.raises(NotImplementedError):
        ScoringStrategy().compute_score(PaymentHistory(), [])
