"""Prometheus metrics for settlement volume, proof reviews, risk flags and notifier performance"""

from prometheus_client import Counter, Histogram

# Settlement metrics
payments_settled_counter = Counter(
    "lending_payments_settled_total",
    "Payments applied to loan schedules",
    ["source"],  # direct | proof
)

amount_applied_counter = Counter(
    "lending_amount_applied_minor_total",
    "Minor units applied to installments",
)

overpayment_counter = Counter(
    "lending_overpayments_total",
    "Payments that exceeded the loan's remaining obligation",
)

installments_settled_counter = Counter(
    "lending_installments_settled_total",
    "Installments fully paid",
    ["timing"],  # early | on_time | late
)

loan_transition_counter = Counter(
    "lending_loan_transitions_total",
    "Loan status transitions",
    ["status"],
)

# Proof workflow
proof_review_counter = Counter(
    "lending_proof_reviews_total",
    "Payment proof reviews",
    ["outcome"],  # approved | rejected
)

# Risk ledger
risk_flag_counter = Counter(
    "lending_risk_flags_total",
    "Risk flags filed",
    ["type", "origin"],
)

invariant_violation_counter = Counter(
    "lending_invariant_violations_total",
    "Internal consistency checks that failed",
)

# Notifier metrics
webhook_latency_histogram = Histogram(
    "notifier_webhook_latency_seconds",
    "Notifier webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "notifier_webhook_failures_total",
    "Failed notifier webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(source: str, amount_applied_minor: int, overpayment_minor: int, timings: list) -> None:
    """Record settlement volume and per-installment timing"""
    payments_settled_counter.labels(source=source).inc()
    amount_applied_counter.inc(amount_applied_minor)
    if overpayment_minor > 0:
        overpayment_counter.inc()
    for timing in timings:
        installments_settled_counter.labels(timing=timing).inc()
