"""Data access layer for placement entities"""

import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from placement_lifecycle.domain.exceptions import DuplicateActiveSetting
from placement_lifecycle.domain.models import (
    ApplicationSnapshot,
    ApplicationStatus,
    LedgerPayment,
    LifecycleAction,
    RefundRules,
    resolve_payment_refundability,
)
from placement_lifecycle.infrastructure.database.models import (
    Application,
    CancellationSetting,
    Candidate,
    Client,
    Cost,
    DocumentChecklistItem,
    DocumentTemplate,
    LawyerServiceSetting,
    LedgerAdjustment,
    LifecycleEvent,
    Payment,
    PaymentTypeSetting,
)


class ApplicationRepository:
    """Repository for applications, their clients and candidates"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, company_id: str, application_id: uuid.UUID, for_update: bool = False) -> Optional[Application]:
        """Fetch an application within a company, optionally row-locked"""
        query = self.db.query(Application).filter(
            Application.id == application_id,
            Application.company_id == company_id,
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_client(self, company_id: str, client_id: uuid.UUID) -> Optional[Client]:
        return (
            self.db.query(Client)
            .filter(Client.id == client_id, Client.company_id == company_id)
            .first()
        )

    def get_candidate(self, company_id: str, candidate_id: uuid.UUID, for_update: bool = False) -> Optional[Candidate]:
        query = self.db.query(Candidate).filter(
            Candidate.id == candidate_id,
            Candidate.company_id == company_id,
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def create(self, **fields: Any) -> Application:
        """Persist a new application and assign its id without committing"""
        db_application = Application(**fields)
        self.db.add(db_application)
        self.db.flush()
        return db_application

    @staticmethod
    def snapshot(application: Application) -> ApplicationSnapshot:
        return ApplicationSnapshot(
            status=ApplicationStatus(application.status),
            exact_arrival_date=application.exact_arrival_date,
        )


class LedgerRepository:
    """Read-only payment ledger plus cancellation adjustments"""

    def __init__(self, db: Session):
        self.db = db

    def refundability_overrides(self, company_id: str) -> Dict[str, bool]:
        rows = self.db.query(PaymentTypeSetting).filter(PaymentTypeSetting.company_id == company_id).all()
        return {row.payment_type: row.is_refundable for row in rows}

    def payments(self, company_id: str, application_id: uuid.UUID) -> List[LedgerPayment]:
        """Payments of an application with refundability resolved per payment type"""
        overrides = self.refundability_overrides(company_id)
        rows = (
            self.db.query(Payment)
            .filter(Payment.application_id == application_id, Payment.company_id == company_id)
            .order_by(Payment.payment_date.asc(), Payment.created_at.asc())
            .all()
        )
        return [
            LedgerPayment(
                amount=Decimal(row.amount),
                currency=row.currency,
                payment_type=row.payment_type,
                is_refundable=resolve_payment_refundability(row.payment_type, overrides),
            )
            for row in rows
        ]

    def total_costs(self, company_id: str, application_id: uuid.UUID) -> Decimal:
        total = (
            self.db.query(func.coalesce(func.sum(Cost.amount), 0))
            .filter(Cost.application_id == application_id, Cost.company_id == company_id)
            .scalar()
        )
        return Decimal(str(total))

    def add_adjustment(
        self,
        company_id: str,
        application: Application,
        kind: str,
        amount: Decimal,
        currency: str,
        notes: Optional[str] = None,
    ) -> LedgerAdjustment:
        adjustment = LedgerAdjustment(
            company_id=company_id,
            application_id=application.id,
            client_id=application.client_id,
            kind=kind,
            amount=amount,
            currency=currency,
            notes=notes,
        )
        self.db.add(adjustment)
        self.db.flush()
        return adjustment

    def add_cost(
        self,
        company_id: str,
        application_id: uuid.UUID,
        cost_type: str,
        amount: Decimal,
        currency: str,
        description: Optional[str] = None,
    ) -> Cost:
        cost = Cost(
            company_id=company_id,
            application_id=application_id,
            cost_type=cost_type,
            amount=amount,
            currency=currency,
            description=description,
        )
        self.db.add(cost)
        self.db.flush()
        return cost


class CancellationSettingRepository:
    """Versioned cancellation fee configuration, one active row per key"""

    def __init__(self, db: Session):
        self.db = db

    def list(self, company_id: str) -> List[CancellationSetting]:
        return (
            self.db.query(CancellationSetting)
            .filter(CancellationSetting.company_id == company_id)
            .order_by(CancellationSetting.cancellation_type.asc())
            .all()
        )

    def get(self, company_id: str, setting_id: uuid.UUID) -> Optional[CancellationSetting]:
        return (
            self.db.query(CancellationSetting)
            .filter(CancellationSetting.id == setting_id, CancellationSetting.company_id == company_id)
            .first()
        )

    def get_active(self, company_id: str, setting_type: str) -> Optional[CancellationSetting]:
        return (
            self.db.query(CancellationSetting)
            .filter(
                CancellationSetting.company_id == company_id,
                CancellationSetting.cancellation_type == setting_type,
                CancellationSetting.active.is_(True),
            )
            .first()
        )

    def active_rules(self, company_id: str) -> Dict[str, RefundRules]:
        """All active policies of a company keyed by setting type"""
        rows = (
            self.db.query(CancellationSetting)
            .filter(CancellationSetting.company_id == company_id, CancellationSetting.active.is_(True))
            .all()
        )
        return {row.cancellation_type: to_rules(row) for row in rows}

    def _ensure_single_active(self, company_id: str, setting_type: str, exclude_id: Optional[uuid.UUID] = None) -> None:
        existing = self.get_active(company_id, setting_type)
        if existing is not None and existing.id != exclude_id:
            raise DuplicateActiveSetting(
                f"An active {setting_type} setting already exists",
                "Deactivate the existing setting for this cancellation type first.",
            )

    def create(self, company_id: str, **fields: Any) -> CancellationSetting:
        if fields.get("active", True):
            self._ensure_single_active(company_id, fields["cancellation_type"])
        setting = CancellationSetting(company_id=company_id, **fields)
        self.db.add(setting)
        self.db.flush()
        return setting

    def update(self, setting: CancellationSetting, **fields: Any) -> CancellationSetting:
        """Apply changes and bump the setting's version"""
        setting_type = fields.get("cancellation_type", setting.cancellation_type)
        if fields.get("active", setting.active):
            self._ensure_single_active(setting.company_id, setting_type, exclude_id=setting.id)
        for name, value in fields.items():
            setattr(setting, name, value)
        setting.version = (setting.version or 1) + 1
        self.db.flush()
        return setting


def to_rules(setting: CancellationSetting) -> RefundRules:
    return RefundRules(
        setting_type=setting.cancellation_type,
        penalty_fee=Decimal(setting.penalty_fee),
        refund_percentage=Decimal(setting.refund_percentage),
        non_refundable_fees=list(setting.non_refundable_fees or []),
        monthly_service_fee=Decimal(setting.monthly_service_fee),
        max_refund_amount=Decimal(setting.max_refund_amount) if setting.max_refund_amount is not None else None,
    )


class LawyerServiceRepository:
    """Lawyer service fee/charge pair, one per company"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, company_id: str) -> Optional[LawyerServiceSetting]:
        return self.db.query(LawyerServiceSetting).filter(LawyerServiceSetting.company_id == company_id).first()

    def upsert(self, company_id: str, **fields: Any) -> LawyerServiceSetting:
        setting = self.get(company_id)
        if setting is None:
            setting = LawyerServiceSetting(company_id=company_id, **fields)
            self.db.add(setting)
        else:
            for name, value in fields.items():
                setattr(setting, name, value)
        self.db.flush()
        return setting


class DocumentRepository:
    """Document templates and per-application checklists"""

    def __init__(self, db: Session):
        self.db = db

    def seed_checklist(
        self,
        company_id: str,
        application: Application,
        stage: ApplicationStatus,
        extra_documents: Iterable[str] = (),
    ) -> List[DocumentChecklistItem]:
        """Create a fresh checklist from the stage's templates plus extra required documents"""
        templates = (
            self.db.query(DocumentTemplate)
            .filter(DocumentTemplate.company_id == company_id, DocumentTemplate.stage == stage.value)
            .order_by(DocumentTemplate.order.asc())
            .all()
        )
        items = [
            DocumentChecklistItem(
                application_id=application.id,
                document_name=template.name,
                stage=template.stage,
                required=template.required,
                required_from=template.required_from,
                order=template.order,
            )
            for template in templates
        ]
        for index, name in enumerate(extra_documents, start=len(templates) + 1):
            items.append(
                DocumentChecklistItem(
                    application_id=application.id,
                    document_name=name,
                    stage=stage.value,
                    required=True,
                    required_from="office",
                    order=index,
                )
            )
        self.db.add_all(items)
        self.db.flush()
        return items

    def items(self, application_id: uuid.UUID) -> List[DocumentChecklistItem]:
        return (
            self.db.query(DocumentChecklistItem)
            .filter(DocumentChecklistItem.application_id == application_id)
            .order_by(DocumentChecklistItem.order.asc())
            .all()
        )


class LifecycleRepository:
    """Append-only lifecycle event store"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, **fields: Any) -> LifecycleEvent:
        event = LifecycleEvent(**fields)
        self.db.add(event)
        self.db.flush()
        return event

    def history(self, company_id: str, application_id: uuid.UUID, limit: Optional[int] = None) -> List[LifecycleEvent]:
        """Events of an application ordered by performed_at, then insertion order"""
        query = (
            self.db.query(LifecycleEvent)
            .filter(LifecycleEvent.application_id == application_id, LifecycleEvent.company_id == company_id)
            .order_by(LifecycleEvent.performed_at.asc(), LifecycleEvent.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def counts_by_action(self, company_id: str, application_id: uuid.UUID) -> Dict[str, int]:
        rows = (
            self.db.query(LifecycleEvent.action, func.count(LifecycleEvent.id))
            .filter(LifecycleEvent.application_id == application_id, LifecycleEvent.company_id == company_id)
            .group_by(LifecycleEvent.action)
            .all()
        )
        return {action: count for action, count in rows}

    def candidate_history(self, company_id: str, candidate_id: uuid.UUID, limit: int = 100) -> List[LifecycleEvent]:
        """Events of every application the candidate was placed through, newest first"""
        application_ids = select(Application.id).where(
            Application.company_id == company_id,
            Application.candidate_id == candidate_id,
        )
        return self._across_applications(company_id, application_ids, limit)

    def client_history(self, company_id: str, client_id: uuid.UUID, limit: int = 100) -> List[LifecycleEvent]:
        """Events of applications the client owns or handed over, newest first"""
        application_ids = select(Application.id).where(
            Application.company_id == company_id,
            or_(Application.client_id == client_id, Application.from_client_id == client_id),
        )
        return self._across_applications(company_id, application_ids, limit)

    def _across_applications(self, company_id: str, application_ids, limit: int) -> List[LifecycleEvent]:
        return (
            self.db.query(LifecycleEvent)
            .filter(LifecycleEvent.company_id == company_id, LifecycleEvent.application_id.in_(application_ids))
            .order_by(LifecycleEvent.performed_at.desc(), LifecycleEvent.id.desc())
            .limit(limit)
            .all()
        )

    def client_changes(
        self,
        company_id: str,
        candidate_id: Optional[uuid.UUID] = None,
        client_id: Optional[uuid.UUID] = None,
    ) -> List[Tuple[LifecycleEvent, Application]]:
        """Client change events paired with the guarantor change application they opened, newest first"""
        query = (
            self.db.query(LifecycleEvent, Application)
            .join(Application, Application.id == LifecycleEvent.application_id)
            .filter(
                LifecycleEvent.company_id == company_id,
                LifecycleEvent.action == LifecycleAction.CLIENT_CHANGE.value,
            )
        )
        if candidate_id is not None:
            query = query.filter(Application.candidate_id == candidate_id)
        if client_id is not None:
            query = query.filter(
                or_(LifecycleEvent.from_client_id == client_id, LifecycleEvent.to_client_id == client_id)
            )
        return query.order_by(LifecycleEvent.performed_at.desc(), LifecycleEvent.id.desc()).all()
