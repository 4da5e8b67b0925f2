"""/v1/applications - status workflow, cancellation and lifecycle history endpoints"""

import time
import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from placement_lifecycle.api.dependencies import get_actor, get_company_id, get_ledger_client, get_request_id
from placement_lifecycle.api.v1.schemas import (
    CalculateRefundRequest,
    CancellationOptionsResponse,
    CancelRequest,
    CancelResponse,
    LifecycleEventSchema,
    LifecycleHistoryResponse,
    LifecycleSummaryResponse,
    RefundCalculationSchema,
    StatusUpdateRequest,
    StatusUpdateResponse,
    ValidNextStatesResponse,
)
from placement_lifecycle.domain.exceptions import ApplicationNotFoundError
from placement_lifecycle.domain.models import ApplicationStatus, CandidateFlags
from placement_lifecycle.domain.status_machine import valid_next_states
from placement_lifecycle.infrastructure.clients.ledger import LedgerClient
from placement_lifecycle.infrastructure.database.repositories import ApplicationRepository
from placement_lifecycle.infrastructure.database.session import get_db
from placement_lifecycle.infrastructure.observability.logging import log_cancellation, log_transition
from placement_lifecycle.infrastructure.observability.metrics import record_cancellation, transition_counter
from placement_lifecycle.services.cancellation import (
    CancellationOptionsResolver,
    CancellationProcessor,
    CancellationResult,
)
from placement_lifecycle.services.lifecycle import LifecycleHistory
from placement_lifecycle.services.status import StatusService

router = APIRouter()


def adjustment_event(company_id: str, result: CancellationResult) -> dict:
    """Ledger webhook payload for a committed refund or transfer credit"""
    return {
        "event": "PLACEMENT_CREDIT" if result.new_application_id else "PLACEMENT_REFUND",
        "company_id": company_id,
        "application_id": str(result.application_id),
        "new_application_id": str(result.new_application_id) if result.new_application_id else None,
        "cancellation_type": result.refund.cancellation_type,
        "amount": str(result.refund.final_refund),
        "currency": result.refund.currency,
        "lifecycle_event_id": result.lifecycle_event_id,
    }


def publish_cancellation(
    request_id: str,
    company_id: str,
    result: CancellationResult,
    started: float,
    background_tasks: BackgroundTasks,
    ledger_client: LedgerClient,
) -> None:
    """Post-commit side effects: metrics, audit log line and the ledger webhook"""
    next_action = result.next_action.value if result.next_action else None
    record_cancellation(result.refund.cancellation_type, next_action, result.refund.final_refund)
    log_cancellation(
        request_id,
        str(result.application_id),
        result.refund.cancellation_type,
        result.new_status.value,
        str(result.refund.final_refund),
        next_action,
        str(result.new_application_id) if result.new_application_id else None,
        (time.time() - started) * 1000,
    )
    if ledger_client.enabled and result.refund.final_refund > 0:
        background_tasks.add_task(ledger_client.send_adjustment_event, adjustment_event(company_id, result))


@router.get("/applications/{application_id}/cancellation-options", response_model=CancellationOptionsResponse)
def get_cancellation_options(
    application_id: uuid.UUID,
    candidate_in_lebanon: bool = Query(False),
    candidate_departed: bool = Query(False),
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """
    Cancellation types available for the application's current status.

    Returns:
        Types, non-blocking warnings and a refund estimate for the first type
    """
    options = CancellationOptionsResolver(db).resolve(
        company_id,
        application_id,
        CandidateFlags(candidate_in_lebanon=candidate_in_lebanon, candidate_departed=candidate_departed),
    )
    return CancellationOptionsResponse.model_validate(options)


@router.post("/applications/calculate-refund", response_model=RefundCalculationSchema)
def calculate_refund(
    request_body: CalculateRefundRequest,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Preview the refund of a cancellation without writing anything"""
    refund = CancellationProcessor(db).estimate(
        company_id,
        request_body.application_id,
        request_body.cancellation_type,
        request_body.flags(),
        next_action=request_body.next_action,
        overrides=request_body.overrides(),
    )
    return RefundCalculationSchema.model_validate(refund)


@router.post("/applications/{application_id}/cancel", response_model=CancelResponse)
def cancel_application(
    application_id: uuid.UUID,
    request_body: CancelRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    company_id: str = Depends(get_company_id),
    performed_by: str = Depends(get_actor),
    db: Session = Depends(get_db),
    ledger_client: LedgerClient = Depends(get_ledger_client),
):
    """
    Cancel an application.

    Flow:
    1. Re-validate the cancellation type on the locked application
    2. Finalize the refund (policy or deportation template, plus overrides)
    3. Move application and candidate to their post-cancellation states
    4. Open a guarantor change application when moving to another client
    5. Commit the ledger adjustment and one lifecycle event
    6. Send async webhook to ledger
    """
    started = time.time()
    result = CancellationProcessor(db).process(
        company_id,
        application_id,
        request_body.cancellation_type,
        request_body.reason,
        request_body.flags(),
        request_body.next_action,
        request_body.overrides(),
        request_body.notes,
        performed_by,
        to_client_id=request_body.to_client_id,
    )
    publish_cancellation(get_request_id(request), company_id, result, started, background_tasks, ledger_client)

    return CancelResponse(
        message="Application cancelled successfully",
        application_id=result.application_id,
        previous_status=result.previous_status,
        new_status=result.new_status,
        candidate_status=result.candidate_status,
        refund=RefundCalculationSchema.model_validate(result.refund),
        lifecycle_event_id=result.lifecycle_event_id,
        new_application_id=result.new_application_id,
    )


@router.patch("/applications/{application_id}/status", response_model=StatusUpdateResponse)
def update_status(
    application_id: uuid.UUID,
    request_body: StatusUpdateRequest,
    request: Request,
    company_id: str = Depends(get_company_id),
    performed_by: str = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """Advance the application one step; cancelled states are only reachable through /cancel"""
    result = StatusService(db).advance(
        company_id,
        application_id,
        request_body.status,
        request_body.context_dates(),
        performed_by,
        notes=request_body.notes,
    )

    transition_counter.labels(to_status=result.to_status.value).inc()
    log_transition(
        get_request_id(request),
        str(application_id),
        result.from_status.value,
        result.to_status.value,
        performed_by,
    )

    return StatusUpdateResponse(
        application_id=application_id,
        from_status=result.from_status,
        to_status=result.to_status,
        lifecycle_event_id=result.lifecycle_event_id,
        valid_next_states=valid_next_states(result.to_status),
    )


@router.get("/applications/{application_id}/valid-next-states", response_model=ValidNextStatesResponse)
def get_valid_next_states(
    application_id: uuid.UUID,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    application = ApplicationRepository(db).get(company_id, application_id)
    if application is None:
        raise ApplicationNotFoundError(f"Application {application_id} not found")

    current = ApplicationStatus(application.status)
    return ValidNextStatesResponse(
        application_id=application_id,
        current_status=current,
        valid_next_states=valid_next_states(current),
    )


@router.get("/applications/{application_id}/lifecycle-history", response_model=LifecycleHistoryResponse)
def get_lifecycle_history(
    application_id: uuid.UUID,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """
    Audit trail of an application, oldest first.

    Returns:
        Every status change, cancellation and client change with its financial impact
    """
    if ApplicationRepository(db).get(company_id, application_id) is None:
        raise ApplicationNotFoundError(f"Application {application_id} not found")

    events = LifecycleHistory(db).history(company_id, application_id)
    return LifecycleHistoryResponse(
        application_id=application_id,
        entries=[LifecycleEventSchema.model_validate(event) for event in events],
    )


@router.get("/applications/{application_id}/lifecycle-summary", response_model=LifecycleSummaryResponse)
def get_lifecycle_summary(
    application_id: uuid.UUID,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    if ApplicationRepository(db).get(company_id, application_id) is None:
        raise ApplicationNotFoundError(f"Application {application_id} not found")

    summary = LifecycleHistory(db).summary(company_id, application_id)
    return LifecycleSummaryResponse(
        application_id=application_id,
        total_entries=summary.total_entries,
        status_changes=summary.status_changes,
        cancellations=summary.cancellations,
        client_changes=summary.client_changes,
        recent_activity=[LifecycleEventSchema.model_validate(event) for event in summary.recent_activity],
    )
