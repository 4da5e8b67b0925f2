"""/v1/candidates and /v1/clients - audit trails across applications"""

import uuid
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from placement_lifecycle.api.dependencies import get_company_id
from placement_lifecycle.api.v1.schemas import (
    CandidateHistoryResponse,
    ClientHistoryResponse,
    GuarantorChangeRecordSchema,
    LifecycleEventSchema,
)
from placement_lifecycle.domain.exceptions import CandidateNotFoundError, ClientNotFoundError
from placement_lifecycle.infrastructure.database.repositories import ApplicationRepository
from placement_lifecycle.infrastructure.database.session import get_db
from placement_lifecycle.services.guarantor_change import GuarantorChangeHistory
from placement_lifecycle.services.lifecycle import LifecycleHistory

router = APIRouter()


def ensure_candidate(db: Session, company_id: str, candidate_id: uuid.UUID) -> None:
    if ApplicationRepository(db).get_candidate(company_id, candidate_id) is None:
        raise CandidateNotFoundError(f"Candidate {candidate_id} not found")


def ensure_client(db: Session, company_id: str, client_id: uuid.UUID) -> None:
    if ApplicationRepository(db).get_client(company_id, client_id) is None:
        raise ClientNotFoundError(f"Client {client_id} not found")


@router.get("/candidates/{candidate_id}/lifecycle-history", response_model=CandidateHistoryResponse)
def get_candidate_history(
    candidate_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """
    Audit trail of every application the candidate went through, newest first.

    Spans guarantor changes, so the cancelled placement and the application
    that replaced it appear together.
    """
    ensure_candidate(db, company_id, candidate_id)
    events = LifecycleHistory(db).candidate_history(company_id, candidate_id, limit)
    return CandidateHistoryResponse(
        candidate_id=candidate_id,
        entries=[LifecycleEventSchema.model_validate(event) for event in events],
    )


@router.get("/clients/{client_id}/lifecycle-history", response_model=ClientHistoryResponse)
def get_client_history(
    client_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Audit trail of the client's applications, including ones it handed to another client"""
    ensure_client(db, company_id, client_id)
    events = LifecycleHistory(db).client_history(company_id, client_id, limit)
    return ClientHistoryResponse(
        client_id=client_id,
        entries=[LifecycleEventSchema.model_validate(event) for event in events],
    )


@router.get("/candidates/{candidate_id}/guarantor-changes", response_model=List[GuarantorChangeRecordSchema])
def get_candidate_guarantor_changes(
    candidate_id: uuid.UUID,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    ensure_candidate(db, company_id, candidate_id)
    records = GuarantorChangeHistory(db).for_candidate(company_id, candidate_id)
    return [GuarantorChangeRecordSchema.model_validate(record) for record in records]


@router.get("/clients/{client_id}/guarantor-changes", response_model=List[GuarantorChangeRecordSchema])
def get_client_guarantor_changes(
    client_id: uuid.UUID,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    ensure_client(db, company_id, client_id)
    records = GuarantorChangeHistory(db).for_client(company_id, client_id)
    return [GuarantorChangeRecordSchema.model_validate(record) for record in records]
