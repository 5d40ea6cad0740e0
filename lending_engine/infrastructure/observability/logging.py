"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger.json import JsonFormatter


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "lending-engine"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_settlement(
    loan_id: str,
    amount_minor: int,
    schedules_paid: int,
    overpayment_minor: int,
    loan_completed: bool,
    source: str,
    request_id: Optional[str] = None,
) -> None:
    """Log structured settlement outcome for reconciliation"""
    logging.info(
        "Payment settled",
        extra={
            "request_id": request_id,
            "loan_id": loan_id,
            "step": "settlement_complete",
            "source": source,
            "amount_minor": amount_minor,
            "schedules_paid": schedules_paid,
            "overpayment_minor": overpayment_minor,
            "loan_completed": loan_completed,
        },
    )


def log_proof_review(proof_id: str, loan_id: str, outcome: str, reviewer_id: str, request_id: Optional[str] = None) -> None:
    logging.info(
        "Payment proof reviewed",
        extra={
            "request_id": request_id,
            "proof_id": proof_id,
            "loan_id": loan_id,
            "step": "proof_review",
            "outcome": outcome,
            "reviewer_id": reviewer_id,
        },
    )


def log_risk_flag(flag_id: str, borrower_id: str, risk_type: str, origin: str, request_id: Optional[str] = None) -> None:
    logging.info(
        "Risk flag filed",
        extra={
            "request_id": request_id,
            "flag_id": flag_id,
            "borrower_id": borrower_id,
            "step": "risk_flag",
            "risk_type": risk_type,
            "origin": origin,
        },
    )
