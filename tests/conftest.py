"""Pytest fixtures for testing"""

import pytest
from datetime import date
from typing import Any, Dict, Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from lending_engine.api.main import create_app
from lending_engine.api.dependencies import get_notifier_client
from lending_engine.infrastructure.database.models import Base, Loan
from lending_engine.infrastructure.database.session import get_db
from lending_engine.services.loans import LoanService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

LENDER = "lender_x"
BORROWER = "borrower_b"


class RecordingNotifier:
    """Stands in for the webhook client; keeps every published payload"""

    def __init__(self):
        self.published: List[Dict[str, Any]] = []

    async def publish_all(self, payloads: List[Dict[str, Any]]) -> None:
        self.published.extend(payloads)

    def event_types(self) -> List[str]:
        return [p["event"] for p in self.published]


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def client(db: Session, notifier: RecordingNotifier) -> TestClient:
    """Create FastAPI test client with test database and recording notifier"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier_client] = lambda: notifier
    return TestClient(app)


@pytest.fixture
def make_active_loan(db: Session):
    """
    Factory for a disbursed loan with its schedule.

    Defaults reproduce the 4-installment example: 10,000 at 20% + 2% per
    extra installment -> 12,600 owed as 4 x 3,150, first due 2024-02-15.
    """

    def _make(
        principal_minor: int = 10000,
        base_rate_pct: str = "20",
        extra_rate_pct: str = "2",
        payment_type: str = "installments",
        installment_count: int = 4,
        start_date: date = date(2024, 1, 15),
        borrower_id: str = BORROWER,
        lender_id: str = LENDER,
    ) -> Loan:
        service = LoanService(db)
        offer = service.create_offer(
            lender_id=lender_id,
            borrower_id=borrower_id,
            principal_minor=principal_minor,
            base_rate_pct=base_rate_pct,
            extra_rate_pct=extra_rate_pct,
            payment_type=payment_type,
            installment_count=installment_count,
            currency="ZAR",
            country_code="ZA",
        )
        loan = service.accept_offer(offer.id, borrower_id)
        service.sign(loan.id, borrower_id)
        service.sign(loan.id, lender_id)
        service.disburse(loan.id, lender_id, start_date)
        db.commit()
        return loan

    return _make
