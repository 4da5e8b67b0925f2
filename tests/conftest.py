"""Pytest fixtures for testing"""

import pytest
from datetime import date
from decimal import Decimal
from typing import Callable, Generator, Iterable, Optional, Tuple
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from placement_lifecycle.api.main import create_app
from placement_lifecycle.domain.models import (
    ApplicationStatus,
    CandidateStatus,
    LedgerPayment,
    PaymentType,
)
from placement_lifecycle.infrastructure.database.models import (
    Application,
    Base,
    CancellationSetting,
    Candidate,
    Client,
    DocumentTemplate,
    Payment,
)
from placement_lifecycle.infrastructure.database.session import get_db

COMPANY_ID = "company-1"
OTHER_COMPANY_ID = "company-2"
ACTOR = "office-user-1"

# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


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
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def headers() -> dict:
    """Tenant and actor headers set by the auth gateway"""
    return {"X-Company-ID": COMPANY_ID, "X-User-ID": ACTOR}


@pytest.fixture
def clients(db: Session) -> Tuple[Client, Client]:
    """Two clients of the same company"""
    first = Client(company_id=COMPANY_ID, name="Client A")
    second = Client(company_id=COMPANY_ID, name="Client B")
    db.add_all([first, second])
    db.commit()
    return first, second


@pytest.fixture
def make_application(db: Session, clients: Tuple[Client, Client]) -> Callable[..., Application]:
    """Factory for an application with its candidate and payment ledger"""

    def _make(
        status: ApplicationStatus = ApplicationStatus.PENDING_MOL,
        exact_arrival_date: Optional[date] = None,
        payments: Iterable[Tuple[str, str]] = (("1000.00", PaymentType.FEE.value), ("200.00", PaymentType.VISA.value)),
        currency: str = "USD",
        candidate_status: CandidateStatus = CandidateStatus.RESERVED,
    ) -> Application:
        candidate = Candidate(company_id=COMPANY_ID, name="Candidate", nationality="ET", status=candidate_status.value)
        db.add(candidate)
        db.flush()

        application = Application(
            company_id=COMPANY_ID,
            client_id=clients[0].id,
            candidate_id=candidate.id,
            status=status.value,
            currency=currency,
            exact_arrival_date=exact_arrival_date,
        )
        db.add(application)
        db.flush()

        for amount, payment_type in payments:
            db.add(
                Payment(
                    application_id=application.id,
                    client_id=clients[0].id,
                    company_id=COMPANY_ID,
                    amount=Decimal(amount),
                    currency=currency,
                    payment_type=payment_type,
                    payment_date=date(2024, 1, 1),
                )
            )
        db.commit()
        return application

    return _make


@pytest.fixture
def make_setting(db: Session) -> Callable[..., CancellationSetting]:
    """Factory for an active cancellation policy"""

    def _make(cancellation_type: str, **fields) -> CancellationSetting:
        values = {
            "penalty_fee": Decimal("100"),
            "refund_percentage": Decimal("50"),
            "non_refundable_fees": [],
            "monthly_service_fee": Decimal("0"),
            "max_refund_amount": None,
            "active": True,
        }
        values.update(fields)
        setting = CancellationSetting(company_id=COMPANY_ID, cancellation_type=cancellation_type, **values)
        db.add(setting)
        db.commit()
        return setting

    return _make


@pytest.fixture
def pending_mol_templates(db: Session) -> list[DocumentTemplate]:
    """Standard checklist template of the first workflow stage"""
    templates = [
        DocumentTemplate(company_id=COMPANY_ID, name="Passport Copy", stage=ApplicationStatus.PENDING_MOL.value, order=1),
        DocumentTemplate(company_id=COMPANY_ID, name="Client ID", stage=ApplicationStatus.PENDING_MOL.value, order=2),
    ]
    db.add_all(templates)
    db.commit()
    return templates


@pytest.fixture
def sample_payments() -> list[LedgerPayment]:
    """One refundable placement fee and one non-refundable visa payment"""
    return [
        LedgerPayment(amount=Decimal("1000"), currency="USD", payment_type=PaymentType.FEE.value, is_refundable=True),
        LedgerPayment(amount=Decimal("200"), currency="USD", payment_type=PaymentType.VISA.value, is_refundable=False),
    ]
