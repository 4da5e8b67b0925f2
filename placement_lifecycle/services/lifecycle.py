"""Lifecycle history - append-only audit trail of application state changes"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from placement_lifecycle.domain.models import LifecycleAction
from placement_lifecycle.infrastructure.database.models import LifecycleEvent
from placement_lifecycle.infrastructure.database.repositories import LifecycleRepository


@dataclass
class LifecycleSummary:
    total_entries: int
    status_changes: int
    cancellations: int
    client_changes: int
    recent_activity: List[LifecycleEvent]


def to_json_value(value: Any) -> Any:
    """Make a financial impact payload JSON-safe; Decimals keep their exact text"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, dict):
        return {key: to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    return value


class LifecycleHistory:
    """Writes and reads lifecycle events; every mutation appends exactly one per application"""

    def __init__(self, db: Session):
        self.repository = LifecycleRepository(db)

    def record(
        self,
        company_id: str,
        application_id: uuid.UUID,
        action: LifecycleAction,
        performed_by: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        from_client_id: Optional[uuid.UUID] = None,
        to_client_id: Optional[uuid.UUID] = None,
        candidate_status_before: Optional[str] = None,
        candidate_status_after: Optional[str] = None,
        financial_impact: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> LifecycleEvent:
        """Append an event inside the caller's transaction"""
        return self.repository.append(
            company_id=company_id,
            application_id=application_id,
            action=action.value,
            from_status=from_status,
            to_status=to_status,
            from_client_id=from_client_id,
            to_client_id=to_client_id,
            candidate_status_before=candidate_status_before,
            candidate_status_after=candidate_status_after,
            financial_impact=to_json_value(financial_impact) if financial_impact is not None else None,
            notes=notes,
            performed_by=performed_by,
        )

    def history(self, company_id: str, application_id: uuid.UUID) -> List[LifecycleEvent]:
        return self.repository.history(company_id, application_id)

    def summary(self, company_id: str, application_id: uuid.UUID, recent: int = 10) -> LifecycleSummary:
        counts = self.repository.counts_by_action(company_id, application_id)
        events = self.repository.history(company_id, application_id)
        return LifecycleSummary(
            total_entries=sum(counts.values()),
            status_changes=counts.get(LifecycleAction.STATUS_CHANGE.value, 0),
            cancellations=counts.get(LifecycleAction.CANCELLATION.value, 0),
            client_changes=counts.get(LifecycleAction.CLIENT_CHANGE.value, 0),
            recent_activity=list(reversed(events))[:recent],
        )

    def candidate_history(self, company_id: str, candidate_id: uuid.UUID, limit: int = 100) -> List[LifecycleEvent]:
        return self.repository.candidate_history(company_id, candidate_id, limit)

    def client_history(self, company_id: str, client_id: uuid.UUID, limit: int = 100) -> List[LifecycleEvent]:
        return self.repository.client_history(company_id, client_id, limit)
