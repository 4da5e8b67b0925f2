"""Guarantor change applications spawned from a cancelled placement"""

from typing import Optional, Tuple
from sqlalchemy.orm import Session

from placement_lifecycle.domain.models import (
    AdjustmentKind,
    ApplicationStatus,
    ApplicationType,
    LifecycleAction,
    RefundCalculation,
)
from placement_lifecycle.domain.status_machine import is_post_arrival
from placement_lifecycle.infrastructure.database.models import Application, Client, LifecycleEvent
from placement_lifecycle.infrastructure.database.repositories import ApplicationRepository, DocumentRepository
from placement_lifecycle.services.lifecycle import LifecycleHistory

# Sponsorship paperwork needed when a worker already in the country changes client
TRANSFER_DOCUMENTS = [
    "Transfer of Sponsorship",
    "Relinquish Letter from Previous Client",
    "Commitment Letter from New Client",
    "Certificate of Deposit from New Client",
]


def open_transfer_application(
    db: Session,
    company_id: str,
    original: Application,
    original_status: ApplicationStatus,
    to_client: Client,
    credit: RefundCalculation,
    performed_by: str,
    notes: Optional[str] = None,
) -> Tuple[Application, LifecycleEvent]:
    """
    Bind the original candidate to a new client in a fresh application.

    Runs inside the cancelling transaction. The refund already finalized on
    the original application is carried over as a credit, not recomputed.
    """
    applications = ApplicationRepository(db)
    new_application = applications.create(
        company_id=company_id,
        client_id=to_client.id,
        candidate_id=original.candidate_id,
        from_client_id=original.client_id,
        type=ApplicationType.GUARANTOR_CHANGE.value,
        status=ApplicationStatus.PENDING_MOL.value,
        currency=original.currency,
    )

    extra_documents = TRANSFER_DOCUMENTS if is_post_arrival(original_status) else []
    DocumentRepository(db).seed_checklist(company_id, new_application, ApplicationStatus.PENDING_MOL, extra_documents)

    event = LifecycleHistory(db).record(
        company_id=company_id,
        application_id=new_application.id,
        action=LifecycleAction.CLIENT_CHANGE,
        performed_by=performed_by,
        to_status=ApplicationStatus.PENDING_MOL.value,
        from_client_id=original.client_id,
        to_client_id=to_client.id,
        financial_impact={
            "type": AdjustmentKind.CREDIT,
            "amount": credit.final_refund,
            "currency": credit.currency or original.currency,
            "description": f"Credit carried over from cancelled application {original.id}",
            "original_application_id": original.id,
        },
        notes=notes or f"Guarantor change application created from cancelled application {original.id}",
    )
    return new_application, event
