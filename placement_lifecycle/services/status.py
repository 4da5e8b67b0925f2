"""Forward status transitions of an application"""

import uuid
from dataclasses import dataclass
from datetime import date
from typing import Dict, Optional
from sqlalchemy.orm import Session

from placement_lifecycle.domain.exceptions import ApplicationNotFoundError
from placement_lifecycle.domain.models import ApplicationStatus, LifecycleAction
from placement_lifecycle.domain.status_machine import REQUIRED_DATES, outstanding_documents, validate_transition
from placement_lifecycle.infrastructure.database.locks import ApplicationLocks, application_locks
from placement_lifecycle.infrastructure.database.models import Application
from placement_lifecycle.infrastructure.database.repositories import ApplicationRepository, DocumentRepository
from placement_lifecycle.services.lifecycle import LifecycleHistory
from placement_lifecycle.services.transactions import locked_transaction


@dataclass
class TransitionResult:
    application: Application
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    lifecycle_event_id: int


class StatusService:
    """Advances applications one step along the workflow graph"""

    def __init__(self, db: Session, locks: ApplicationLocks = application_locks):
        self.db = db
        self.locks = locks
        self.applications = ApplicationRepository(db)
        self.documents = DocumentRepository(db)
        self.history = LifecycleHistory(db)

    def advance(
        self,
        company_id: str,
        application_id: uuid.UUID,
        target_status: ApplicationStatus,
        context_dates: Optional[Dict[str, Optional[date]]],
        performed_by: str,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Move an application to the next workflow state.

        Only the document date the target status requires is stored; dates
        recorded by earlier transitions are never overwritten. The candidate
        status follows the transition where the workflow says so. The status
        write, candidate write and lifecycle event commit together.

        Raises:
            ApplicationNotFoundError, InvalidTransition, MissingRequiredDate,
            DocumentsIncomplete, PersistenceFailure
        """
        context_dates = context_dates or {}

        with locked_transaction(self.db, application_id, self.locks):
            application = self.applications.get(company_id, application_id, for_update=True)
            if application is None:
                raise ApplicationNotFoundError(f"Application {application_id} not found")

            current = ApplicationStatus(application.status)
            missing = outstanding_documents(self.documents.items(application.id), current)
            candidate_change = validate_transition(current, target_status, context_dates, missing)

            date_field = REQUIRED_DATES.get(target_status)
            if date_field is not None:
                setattr(application, date_field, context_dates[date_field])
            application.status = target_status.value

            candidate_before = candidate_after = None
            if candidate_change is not None:
                candidate = self.applications.get_candidate(company_id, application.candidate_id, for_update=True)
                candidate_before = candidate.status
                candidate.status = candidate_change.value
                candidate_after = candidate.status

            event = self.history.record(
                company_id=company_id,
                application_id=application.id,
                action=LifecycleAction.STATUS_CHANGE,
                performed_by=performed_by,
                from_status=current.value,
                to_status=target_status.value,
                candidate_status_before=candidate_before,
                candidate_status_after=candidate_after,
                notes=notes,
            )

        return TransitionResult(
            application=application,
            from_status=current,
            to_status=target_status,
            lifecycle_event_id=event.id,
        )
