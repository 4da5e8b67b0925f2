"""Guarantor change - move a placed candidate from one client to another"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session

from placement_lifecycle.config import settings
from placement_lifecycle.domain.cancellation_options import available_cancellation_types
from placement_lifecycle.domain.exceptions import ApplicationNotFoundError, IllegalCancellation, SameClientTransfer
from placement_lifecycle.domain.models import (
    CancellationType,
    CandidateFlags,
    NextAction,
    RefundCalculation,
    RefundOverrides,
)
from placement_lifecycle.infrastructure.database.locks import ApplicationLocks, application_locks
from placement_lifecycle.infrastructure.database.models import Application, LifecycleEvent
from placement_lifecycle.infrastructure.database.repositories import ApplicationRepository, LifecycleRepository
from placement_lifecycle.services.cancellation import CancellationProcessor, CancellationResult
from placement_lifecycle.services.transactions import locked_transaction


@dataclass
class GuarantorChangeResult:
    cancelled_application_id: uuid.UUID
    new_application_id: uuid.UUID
    refund: RefundCalculation
    cancellation: CancellationResult


class GuarantorChangeProcessor:
    """
    Cancels the current placement and opens a GUARANTOR_CHANGE application
    for the same candidate under the new client, in one transaction.
    """

    def __init__(self, db: Session, locks: ApplicationLocks = application_locks):
        self.db = db
        self.locks = locks
        self.applications = ApplicationRepository(db)
        self.cancellations = CancellationProcessor(db, locks)

    def process(
        self,
        company_id: str,
        original_application_id: uuid.UUID,
        to_client_id: uuid.UUID,
        reason: Optional[str],
        flags: CandidateFlags,
        overrides: Optional[RefundOverrides],
        notes: Optional[str],
        performed_by: str,
        as_of: Optional[date] = None,
    ) -> GuarantorChangeResult:
        """
        Raises:
            ApplicationNotFoundError, ClientNotFoundError, SameClientTransfer,
            IllegalCancellation, MixedCurrencyUnsupported, PersistenceFailure
        """
        as_of = as_of or date.today()

        with locked_transaction(self.db, original_application_id, self.locks):
            application = self.applications.get(company_id, original_application_id, for_update=True)
            if application is None:
                raise ApplicationNotFoundError(f"Application {original_application_id} not found")
            if application.client_id == to_client_id:
                raise SameClientTransfer(
                    f"Application {original_application_id} already belongs to client {to_client_id}"
                )

            cancellation = self.cancellations.apply(
                company_id,
                application,
                self._inferred_type(application, as_of),
                reason,
                flags,
                NextAction.MOVE_TO_CLIENT,
                overrides,
                notes,
                performed_by,
                to_client_id=to_client_id,
                as_of=as_of,
            )

        return GuarantorChangeResult(
            cancelled_application_id=cancellation.application_id,
            new_application_id=cancellation.new_application_id,
            refund=cancellation.refund,
            cancellation=cancellation,
        )

    def estimate(
        self,
        company_id: str,
        original_application_id: uuid.UUID,
        flags: CandidateFlags,
        overrides: Optional[RefundOverrides] = None,
        as_of: Optional[date] = None,
    ) -> RefundCalculation:
        as_of = as_of or date.today()
        application = self.applications.get(company_id, original_application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Application {original_application_id} not found")
        return self.cancellations.estimate(
            company_id,
            original_application_id,
            self._inferred_type(application, as_of),
            flags,
            next_action=NextAction.MOVE_TO_CLIENT,
            overrides=overrides,
            as_of=as_of,
        )

    @staticmethod
    def _inferred_type(application: Application, as_of: date) -> CancellationType:
        """First cancellation type the current status allows"""
        available = available_cancellation_types(
            ApplicationRepository.snapshot(application), as_of, settings.probation_months
        )
        if not available:
            raise IllegalCancellation(
                f"Application {application.id} in status {application.status} cannot change guarantor"
            )
        return available[0]


@dataclass
class GuarantorChangeRecord:
    new_application_id: uuid.UUID
    original_application_id: Optional[uuid.UUID]
    candidate_id: uuid.UUID
    from_client_id: Optional[uuid.UUID]
    to_client_id: Optional[uuid.UUID]
    credit_amount: Decimal
    currency: Optional[str]
    new_application_status: str
    changed_at: datetime
    performed_by: str
    notes: Optional[str]


def to_record(event: LifecycleEvent, application: Application) -> GuarantorChangeRecord:
    impact = event.financial_impact or {}
    original_id = impact.get("original_application_id")
    return GuarantorChangeRecord(
        new_application_id=application.id,
        original_application_id=uuid.UUID(original_id) if original_id else None,
        candidate_id=application.candidate_id,
        from_client_id=event.from_client_id,
        to_client_id=event.to_client_id,
        credit_amount=Decimal(impact.get("amount", "0")),
        currency=impact.get("currency"),
        new_application_status=application.status,
        changed_at=event.performed_at,
        performed_by=event.performed_by,
        notes=event.notes,
    )


class GuarantorChangeHistory:
    """Past client changes read back from the client change events, newest first"""

    def __init__(self, db: Session):
        self.repository = LifecycleRepository(db)

    def for_candidate(self, company_id: str, candidate_id: uuid.UUID) -> List[GuarantorChangeRecord]:
        rows = self.repository.client_changes(company_id, candidate_id=candidate_id)
        return [to_record(event, application) for event, application in rows]

    def for_client(self, company_id: str, client_id: uuid.UUID) -> List[GuarantorChangeRecord]:
        """Changes where the client either gave up or received the candidate"""
        rows = self.repository.client_changes(company_id, client_id=client_id)
        return [to_record(event, application) for event, application in rows]
