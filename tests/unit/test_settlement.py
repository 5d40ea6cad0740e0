"""Unit tests for FIFO payment allocation"""

import pytest
from datetime import date, datetime, timezone
from typing import List
from lending_engine.domain.exceptions import InvariantViolation, StateConflictError, ValidationError
from lending_engine.domain.installments import generate_schedule
from lending_engine.domain.interest import compute_terms
from lending_engine.domain.models import Installment
from lending_engine.domain.settlement import allocate_payment, is_fully_paid, is_late


@pytest.fixture
def schedule() -> List[Installment]:
    """4 x 3,150 due on the 15th of Feb..May 2024"""
    terms = compute_terms(10000, 20, 2, "installments", 4)
    return generate_schedule(terms, date(2024, 1, 15))


def at(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, 10, 30, tzinfo=timezone.utc)


def test_exact_first_installment(schedule):
    outcome = allocate_payment(schedule, 3150, at(date(2024, 2, 10)))

    assert [inst.status for inst in schedule] == ["paid", "pending", "pending", "pending"]
    assert schedule[0].paid_amount_minor == 3150
    assert schedule[0].paid_at == at(date(2024, 2, 10))
    assert outcome.schedules_paid == 1
    assert outcome.amount_applied_minor == 3150
    assert outcome.remaining_overpayment_minor == 0


def test_double_payment_settles_two_installments(schedule):
    outcome = allocate_payment(schedule, 6300, at(date(2024, 2, 10)))

    assert [inst.status for inst in schedule] == ["paid", "paid", "pending", "pending"]
    assert outcome.schedules_paid == 2
    assert schedule[2].paid_amount_minor == 0


def test_partial_payment_keeps_paid_at_unset(schedule):
    outcome = allocate_payment(schedule, 1000, at(date(2024, 2, 10)))

    assert schedule[0].status == "partial"
    assert schedule[0].paid_amount_minor == 1000
    assert schedule[0].paid_at is None
    assert outcome.schedules_paid == 0
    assert outcome.amount_applied_minor == 1000


def test_partial_then_remainder_rolls_forward(schedule):
    allocate_payment(schedule, 1000, at(date(2024, 2, 10)))
    outcome = allocate_payment(schedule, 3000, at(date(2024, 2, 12)))

    assert schedule[0].status == "paid"
    assert schedule[1].status == "partial"
    assert schedule[1].paid_amount_minor == 850
    assert [a.applied_minor for a in outcome.applications] == [2150, 850]


def test_later_installment_untouched_while_earlier_has_deficit(schedule):
    allocate_payment(schedule, 500, at(date(2024, 2, 10)))
    allocate_payment(schedule, 500, at(date(2024, 2, 11)))

    assert schedule[0].paid_amount_minor == 1000
    assert all(inst.paid_amount_minor == 0 for inst in schedule[1:])


def test_overpayment_beyond_total_is_returned(schedule):
    outcome = allocate_payment(schedule, 13000, at(date(2024, 2, 10)))

    assert is_fully_paid(schedule)
    assert outcome.amount_applied_minor == 12600
    assert outcome.remaining_overpayment_minor == 400


def test_nothing_outstanding_is_a_conflict(schedule):
    allocate_payment(schedule, 12600, at(date(2024, 2, 10)))
    with pytest.raises(StateConflictError):
        allocate_payment(schedule, 1, at(date(2024, 2, 11)))


def test_non_positive_amount_rejected_without_mutation(schedule):
    with pytest.raises(ValidationError):
        allocate_payment(schedule, 0, at(date(2024, 2, 10)))
    with pytest.raises(ValidationError):
        allocate_payment(schedule, -100, at(date(2024, 2, 10)))
    assert all(inst.paid_amount_minor == 0 for inst in schedule)


def test_early_on_time_and_late_timing(schedule):
    allocate_payment(schedule, 3150, at(date(2024, 2, 14)))  # due 2024-02-15
    allocate_payment(schedule, 3150, at(date(2024, 3, 15)))  # due 2024-03-15
    allocate_payment(schedule, 3150, at(date(2024, 4, 20)))  # due 2024-04-15

    assert schedule[0].is_early_payment is True
    assert not is_late(schedule[0])

    assert schedule[1].is_early_payment is False
    assert not is_late(schedule[1])

    assert schedule[2].is_early_payment is False
    assert is_late(schedule[2])


def test_unpaid_installment_is_never_late(schedule):
    assert not is_late(schedule[0])


def test_overfilled_installment_is_an_invariant_violation(schedule):
    schedule[0].paid_amount_minor = 3150
    schedule[0].status = "partial"
    with pytest.raises(InvariantViolation):
        allocate_payment(schedule, 100, at(date(2024, 2, 10)))
