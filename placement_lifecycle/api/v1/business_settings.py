"""/v1/business-settings - cancellation fee policies and lawyer service pricing"""

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, List
from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from placement_lifecycle.api.dependencies import get_company_id
from placement_lifecycle.api.v1.schemas import (
    CancellationSettingCreate,
    CancellationSettingResponse,
    CancellationSettingUpdate,
    LawyerServiceRequest,
    LawyerServiceResponse,
)
from placement_lifecycle.domain.exceptions import DuplicateActiveSetting, PersistenceFailure, SettingNotFoundError
from placement_lifecycle.infrastructure.database.repositories import (
    CancellationSettingRepository,
    LawyerServiceRepository,
)
from placement_lifecycle.infrastructure.database.session import get_db

router = APIRouter()


def is_unique_violation(error: IntegrityError) -> bool:
    """PostgreSQL reports SQLSTATE 23505; SQLite only names the constraint kind"""
    if getattr(error.orig, "pgcode", None) == "23505":
        return True
    return "UNIQUE constraint failed" in str(error.orig)


@contextmanager
def settings_transaction(db: Session) -> Iterator[None]:
    """Commit a settings write; the partial unique index backs the single-active rule"""
    try:
        yield
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if is_unique_violation(e):
            raise DuplicateActiveSetting(f"Conflicting active setting: {e.orig}") from e
        raise PersistenceFailure(f"Integrity error: {e.orig}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailure(f"Transaction aborted: {e}") from e
    except Exception:
        db.rollback()
        raise


@router.get("/business-settings/cancellation", response_model=List[CancellationSettingResponse])
def list_cancellation_settings(
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    return CancellationSettingRepository(db).list(company_id)


@router.post("/business-settings/cancellation", response_model=CancellationSettingResponse, status_code=201)
def create_cancellation_setting(
    request_body: CancellationSettingCreate,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """
    Add a fee policy for one cancellation type or the deportation template.

    Only one active policy may exist per type; deactivate the old one first.
    """
    fields = request_body.model_dump()
    fields["cancellation_type"] = request_body.cancellation_type.value

    with settings_transaction(db):
        setting = CancellationSettingRepository(db).create(company_id, **fields)
    db.refresh(setting)

    logging.info(
        "Cancellation setting created",
        extra={"company_id": company_id, "setting_id": str(setting.id), "cancellation_type": setting.cancellation_type},
    )
    return setting


@router.put("/business-settings/cancellation/{setting_id}", response_model=CancellationSettingResponse)
def update_cancellation_setting(
    setting_id: uuid.UUID,
    request_body: CancellationSettingUpdate,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Partial update; every change bumps the policy version"""
    repo = CancellationSettingRepository(db)
    setting = repo.get(company_id, setting_id)
    if setting is None:
        raise SettingNotFoundError(f"Cancellation setting {setting_id} not found")

    with settings_transaction(db):
        repo.update(setting, **request_body.model_dump(exclude_unset=True))
    db.refresh(setting)

    logging.info(
        "Cancellation setting updated",
        extra={"company_id": company_id, "setting_id": str(setting.id), "version": setting.version},
    )
    return setting


@router.get("/business-settings/lawyer-service", response_model=LawyerServiceResponse)
def get_lawyer_service(
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    setting = LawyerServiceRepository(db).get(company_id)
    if setting is None:
        raise SettingNotFoundError("Lawyer service setting not configured")
    return setting


@router.put("/business-settings/lawyer-service", response_model=LawyerServiceResponse)
def put_lawyer_service(
    request_body: LawyerServiceRequest,
    company_id: str = Depends(get_company_id),
    db: Session = Depends(get_db),
):
    """Create or replace the lawyer fee cost/charge pair"""
    with settings_transaction(db):
        setting = LawyerServiceRepository(db).upsert(company_id, **request_body.model_dump())
    db.refresh(setting)
    return setting
