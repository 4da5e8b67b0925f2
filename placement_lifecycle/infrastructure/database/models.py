"""SQLAlchemy ORM models for the placement lifecycle tables"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from placement_lifecycle.domain.models import ApplicationStatus, ApplicationType, CandidateStatus, DocumentStatus

Base = declarative_base()

Money = Numeric(12, 2)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    """Sponsoring client (guarantor)"""

    __tablename__ = "client"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Candidate(Base):
    """Worker being placed"""

    __tablename__ = "candidate"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    nationality = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=CandidateStatus.AVAILABLE_ABROAD.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Application(Base):
    """One candidate-to-client placement lifecycle"""

    __tablename__ = "application"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False, index=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("client.id"), nullable=False, index=True)
    candidate_id = Column(UUID(as_uuid=True), ForeignKey("candidate.id"), nullable=False, index=True)
    from_client_id = Column(UUID(as_uuid=True), ForeignKey("client.id"), nullable=True)
    status = Column(Text, nullable=False, default=ApplicationStatus.PENDING_MOL.value)
    type = Column(Text, nullable=False, default=ApplicationType.NEW_CANDIDATE.value)
    final_fee_amount = Column(Money, nullable=True)
    currency = Column(Text, nullable=False, default="USD")
    exact_arrival_date = Column(Date, nullable=True)
    labor_permit_date = Column(Date, nullable=True)
    residency_permit_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    candidate = relationship("Candidate")
    payments = relationship("Payment", back_populates="application", cascade="all, delete-orphan")
    costs = relationship("Cost", back_populates="application", cascade="all, delete-orphan")
    document_items = relationship(
        "DocumentChecklistItem",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="DocumentChecklistItem.order",
    )


class Payment(Base):
    """Payment recorded by office staff; never mutated by this service"""

    __tablename__ = "payment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("application.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("client.id"), nullable=False)
    company_id = Column(Text, nullable=False, index=True)
    amount = Column(Money, nullable=False)
    currency = Column(Text, nullable=False, default="USD")
    payment_type = Column(Text, nullable=False)
    payment_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("Application", back_populates="payments")


class PaymentTypeSetting(Base):
    """Company-scoped refundability override for a payment type"""

    __tablename__ = "payment_type_setting"
    __table_args__ = (UniqueConstraint("company_id", "payment_type"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False)
    payment_type = Column(Text, nullable=False)
    is_refundable = Column(Boolean, nullable=False, default=True)


class Cost(Base):
    """Office cost absorbed on an application"""

    __tablename__ = "cost"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("application.id", ondelete="CASCADE"), nullable=False)
    company_id = Column(Text, nullable=False, index=True)
    amount = Column(Money, nullable=False)
    currency = Column(Text, nullable=False, default="USD")
    cost_type = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("Application", back_populates="costs")


class CancellationSetting(Base):
    """Refund policy per cancellation type (or deportation template)"""

    __tablename__ = "cancellation_setting"
    __table_args__ = (
        Index(
            "uq_cancellation_setting_active",
            "company_id",
            "cancellation_type",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False)
    cancellation_type = Column(Text, nullable=False)
    penalty_fee = Column(Money, nullable=False, default=0)
    refund_percentage = Column(Numeric(5, 2), nullable=False, default=100)
    non_refundable_fees = Column(JSON, nullable=False, default=list)
    monthly_service_fee = Column(Money, nullable=False, default=0)
    max_refund_amount = Column(Money, nullable=True)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class LawyerServiceSetting(Base):
    """Lawyer service cost to the office and charge to the client"""

    __tablename__ = "lawyer_service_setting"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False, unique=True)
    lawyer_fee_cost = Column(Money, nullable=False)
    lawyer_fee_charge = Column(Money, nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)


class DocumentTemplate(Base):
    """Document required at a workflow stage"""

    __tablename__ = "document_template"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(Text, nullable=False, index=True)
    name = Column(Text, nullable=False)
    stage = Column(Text, nullable=False)
    required = Column(Boolean, nullable=False, default=True)
    required_from = Column(Text, nullable=False, default="office")
    order = Column(Integer, nullable=False, default=0)


class DocumentChecklistItem(Base):
    """Tracked document on one application"""

    __tablename__ = "document_checklist_item"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("application.id", ondelete="CASCADE"), nullable=False)
    document_name = Column(Text, nullable=False)
    stage = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=DocumentStatus.PENDING.value)
    required = Column(Boolean, nullable=False, default=True)
    required_from = Column(Text, nullable=False, default="office")
    order = Column(Integer, nullable=False, default=0)

    application = relationship("Application", back_populates="document_items")


class LedgerAdjustment(Base):
    """Financial adjustment produced by a cancellation (refund or transfer credit)"""

    __tablename__ = "ledger_adjustment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(UUID(as_uuid=True), ForeignKey("application.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("client.id"), nullable=False)
    company_id = Column(Text, nullable=False, index=True)
    kind = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    currency = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class LifecycleEvent(Base):
    """Append-only audit record; references applications by id only"""

    __tablename__ = "lifecycle_event"

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Text, nullable=False, index=True)
    application_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    action = Column(Text, nullable=False)
    from_status = Column(Text, nullable=True)
    to_status = Column(Text, nullable=True)
    from_client_id = Column(UUID(as_uuid=True), nullable=True)
    to_client_id = Column(UUID(as_uuid=True), nullable=True)
    candidate_status_before = Column(Text, nullable=True)
    candidate_status_after = Column(Text, nullable=True)
    financial_impact = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    performed_by = Column(Text, nullable=False)
    performed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
