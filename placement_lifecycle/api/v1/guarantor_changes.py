"""/v1/guarantor-changes - move a candidate to a new client"""

import time
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from placement_lifecycle.api.dependencies import get_actor, get_company_id, get_ledger_client, get_request_id
from placement_lifecycle.api.v1.applications import publish_cancellation
from placement_lifecycle.api.v1.schemas import (
    GuarantorChangeRefundRequest,
    GuarantorChangeRequest,
    GuarantorChangeResponse,
    RefundCalculationSchema,
)
from placement_lifecycle.infrastructure.clients.ledger import LedgerClient
from placement_lifecycle.infrastructure.database.session import get_db
from placement_lifecycle.services.guarantor_change import GuarantorChangeProcessor

router = APIRouter()


@router.post("/guarantor-changes/calculate-refund", response_model=RefundCalculationSchema)
def calculate_transfer_refund(
    request_body: GuarantorChangeRefundRequest,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Preview the credit carried to the new client's application"""
    refund = GuarantorChangeProcessor(db).estimate(
        company_id,
        request_body.application_id,
        request_body.flags(),
        overrides=request_body.overrides(),
    )
    return RefundCalculationSchema.model_validate(refund)


@router.post("/guarantor-changes/process", response_model=GuarantorChangeResponse)
def process_guarantor_change(
    request_body: GuarantorChangeRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    company_id: str = Depends(get_company_id),
    performed_by: str = Depends(get_actor),
    db: Session = Depends(get_db),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    """
    Cancel the current placement and open a GUARANTOR_CHANGE application
    for the same candidate under the new client.
    """
    started = time.time()
    result = GuarantorChangeProcessor(db).process(
        company_id,
        request_body.application_id,
        request_body.new_client_id,
        request_body.reason,
        request_body.flags(),
        request_body.overrides(),
        request_body.notes,
        performed_by,
    )
    publish_cancellation(
        get_request_id(request), company_id, result.cancellation, started, background_tasks, ledger_client
    )

    return GuarantorChangeResponse(
        message="Guarantor change processed successfully",
        cancelled_application_id=result.cancelled_application_id,
        new_application_id=result.new_application_id,
        refund=RefundCalculationSchema.model_validate(result.refund),
        lifecycle_event_id=result.cancellation.lifecycle_event_id,
    )
