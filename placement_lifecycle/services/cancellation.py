"""Cancellation workflow - options, refund finalization and side-effect fan-out"""

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session

from placement_lifecycle.config import settings
from placement_lifecycle.domain.cancellation_options import (
    available_cancellation_types,
    normalize_flags,
    resolve_cancellation_options,
)
from placement_lifecycle.domain.exceptions import (
    ApplicationNotFoundError,
    ClientNotFoundError,
    IllegalCancellation,
    MissingDeportationTemplate,
    SameClientTransfer,
)
from placement_lifecycle.domain.models import (
    AdjustmentKind,
    ApplicationStatus,
    CancellationOptions,
    CancellationType,
    CandidateFlags,
    LifecycleAction,
    NextAction,
    RefundCalculation,
    RefundOverrides,
    RefundRules,
    SettingType,
)
from placement_lifecycle.domain.refunds import compute_refund
from placement_lifecycle.domain.status_machine import (
    cancellation_target,
    candidate_status_after_cancellation,
    is_post_arrival,
)
from placement_lifecycle.infrastructure.database.locks import ApplicationLocks, application_locks
from placement_lifecycle.infrastructure.database.models import Application
from placement_lifecycle.infrastructure.database.repositories import (
    ApplicationRepository,
    CancellationSettingRepository,
    LedgerRepository,
    to_rules,
)
from placement_lifecycle.services.lifecycle import LifecycleHistory
from placement_lifecycle.services.transactions import locked_transaction
from placement_lifecycle.services.transfers import open_transfer_application

ZERO = Decimal("0")
DEPORTATION_COST_TYPE = "DEPORTATION"


@dataclass
class CancellationResult:
    application_id: uuid.UUID
    previous_status: ApplicationStatus
    new_status: ApplicationStatus
    candidate_status: str
    refund: RefundCalculation
    lifecycle_event_id: int
    next_action: Optional[NextAction] = None
    new_application_id: Optional[uuid.UUID] = None


class CancellationOptionsResolver:
    """Loads an application's ledger and policies and resolves its cancellation options"""

    def __init__(self, db: Session):
        self.applications = ApplicationRepository(db)
        self.ledger = LedgerRepository(db)
        self.settings = CancellationSettingRepository(db)

    def resolve(
        self,
        company_id: str,
        application_id: uuid.UUID,
        flags: CandidateFlags,
        as_of: Optional[date] = None,
    ) -> CancellationOptions:
        application = self.applications.get(company_id, application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")

        return resolve_cancellation_options(
            ApplicationRepository.snapshot(application),
            flags,
            self.ledger.payments(company_id, application.id),
            self.settings.active_rules(company_id),
            as_of=as_of,
            probation_months=settings.probation_months,
        )


class CancellationProcessor:
    """
    Orchestrates an application cancellation.

    One call re-validates the requested type against the locked row, finalizes
    the refund, moves the application to its cancelled state, updates the
    candidate, optionally opens a guarantor change application, records the
    ledger adjustment and appends a single cancellation event, all in one
    transaction.
    """

    def __init__(self, db: Session, locks: ApplicationLocks = application_locks):
        self.db = db
        self.locks = locks
        self.applications = ApplicationRepository(db)
        self.ledger = LedgerRepository(db)
        self.settings = CancellationSettingRepository(db)
        self.history = LifecycleHistory(db)

    def process(
        self,
        company_id: str,
        application_id: uuid.UUID,
        cancellation_type: CancellationType,
        reason: Optional[str],
        flags: CandidateFlags,
        next_action: Optional[NextAction],
        overrides: Optional[RefundOverrides],
        notes: Optional[str],
        performed_by: str,
        to_client_id: Optional[uuid.UUID] = None,
        as_of: Optional[date] = None,
    ) -> CancellationResult:
        """
        Cancel an application atomically.

        Raises:
            ApplicationNotFoundError, IllegalCancellation, MissingDeportationTemplate,
            SameClientTransfer, MixedCurrencyUnsupported, PersistenceFailure
        """
        with locked_transaction(self.db, application_id, self.locks):
            application = self.applications.get(company_id, application_id, for_update=True)
            if application is None:
                raise ApplicationNotFoundError(f"Application {application_id} not found")
            result = self.apply(
                company_id,
                application,
                cancellation_type,
                reason,
                flags,
                next_action,
                overrides,
                notes,
                performed_by,
                to_client_id=to_client_id,
                as_of=as_of,
            )
        return result

    def estimate(
        self,
        company_id: str,
        application_id: uuid.UUID,
        cancellation_type: CancellationType,
        flags: CandidateFlags,
        next_action: Optional[NextAction] = None,
        overrides: Optional[RefundOverrides] = None,
        as_of: Optional[date] = None,
    ) -> RefundCalculation:
        """Refund a cancellation would produce right now; reads only, no lock"""
        application = self.applications.get(company_id, application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")
        as_of = as_of or date.today()
        status = ApplicationStatus(application.status)
        self._ensure_available(application, cancellation_type, as_of)
        rules = self._rules_for(company_id, status, cancellation_type, next_action)
        return self._compute(company_id, application, cancellation_type, flags, rules, overrides, as_of)

    def apply(
        self,
        company_id: str,
        application: Application,
        cancellation_type: CancellationType,
        reason: Optional[str],
        flags: CandidateFlags,
        next_action: Optional[NextAction],
        overrides: Optional[RefundOverrides],
        notes: Optional[str],
        performed_by: str,
        to_client_id: Optional[uuid.UUID] = None,
        as_of: Optional[date] = None,
    ) -> CancellationResult:
        """Cancellation steps on an already locked application; the caller owns the transaction"""
        as_of = as_of or date.today()
        previous_status = ApplicationStatus(application.status)

        # Validation and lookups happen before the first write
        self._ensure_available(application, cancellation_type, as_of)
        rules = self._rules_for(company_id, previous_status, cancellation_type, next_action)

        to_client = None
        if next_action == NextAction.MOVE_TO_CLIENT and to_client_id is not None:
            if to_client_id == application.client_id:
                raise SameClientTransfer(f"Application {application.id} already belongs to client {to_client_id}")
            to_client = self.applications.get_client(company_id, to_client_id)
            if to_client is None:
                raise ClientNotFoundError(f"Client {to_client_id} not found")

        refund = self._compute(company_id, application, cancellation_type, flags, rules, overrides, as_of)

        new_status = cancellation_target(cancellation_type)
        candidate = self.applications.get_candidate(company_id, application.candidate_id, for_update=True)
        candidate_before = candidate.status
        candidate.status = candidate_status_after_cancellation(previous_status, next_action).value
        application.status = new_status.value

        adjustment_kind = AdjustmentKind.CREDIT if to_client is not None else AdjustmentKind.REFUND
        currency = refund.currency or application.currency
        if refund.final_refund > ZERO:
            self.ledger.add_adjustment(
                company_id,
                application,
                kind=adjustment_kind.value,
                amount=refund.final_refund,
                currency=currency,
                notes=f"{cancellation_type.value} cancellation {adjustment_kind.value} - {reason or 'No reason provided'}",
            )

        deportation_cost = None
        if next_action == NextAction.DEPORT and is_post_arrival(previous_status) and rules.penalty_fee > ZERO:
            # Return ticket and removal are booked at the template's fee
            deportation_cost = self.ledger.add_cost(
                company_id,
                application.id,
                cost_type=DEPORTATION_COST_TYPE,
                amount=rules.penalty_fee,
                currency=currency,
                description="Return ticket and deportation costs",
            )
        costs_absorbed = self.ledger.total_costs(company_id, application.id)

        new_application = None
        if to_client is not None:
            new_application, _ = open_transfer_application(
                self.db,
                company_id,
                application,
                previous_status,
                to_client,
                refund,
                performed_by,
                notes=notes,
            )

        event = self.history.record(
            company_id=company_id,
            application_id=application.id,
            action=LifecycleAction.CANCELLATION,
            performed_by=performed_by,
            from_status=previous_status.value,
            to_status=new_status.value,
            from_client_id=application.client_id if to_client is not None else None,
            to_client_id=to_client.id if to_client is not None else None,
            candidate_status_before=candidate_before,
            candidate_status_after=candidate.status,
            financial_impact={
                "type": adjustment_kind,
                "amount": refund.final_refund,
                "currency": currency,
                "description": self._describe(cancellation_type, refund, adjustment_kind),
                "cancellation_type": cancellation_type,
                "policy": refund.policy_key,
                "total_paid": refund.total_paid,
                "refundable_amount": refund.refundable_amount,
                "non_refundable_amount": refund.non_refundable_amount,
                "penalty_fee": refund.penalty_fee,
                "months_elapsed": refund.months_elapsed,
                "calculated_refund": refund.calculated_refund,
                "is_override": refund.is_override,
                "costs_absorbed": costs_absorbed,
                "deportation_cost": deportation_cost.amount if deportation_cost is not None else None,
                "candidate_in_lebanon": refund.candidate_in_lebanon,
                "candidate_departed": refund.candidate_departed,
                "next_action": next_action,
                "new_application_id": new_application.id if new_application is not None else None,
            },
            notes=self._event_notes(cancellation_type, reason, notes),
        )

        return CancellationResult(
            application_id=application.id,
            previous_status=previous_status,
            new_status=new_status,
            candidate_status=candidate.status,
            refund=refund,
            lifecycle_event_id=event.id,
            next_action=next_action,
            new_application_id=new_application.id if new_application is not None else None,
        )

    def _ensure_available(self, application: Application, cancellation_type: CancellationType, as_of: date) -> None:
        snapshot = ApplicationRepository.snapshot(application)
        available = available_cancellation_types(snapshot, as_of, settings.probation_months)
        if cancellation_type not in available:
            raise IllegalCancellation(
                f"Cancellation type {cancellation_type.value} is not available for application "
                f"{application.id} in status {application.status}"
            )

    def _rules_for(
        self,
        company_id: str,
        status: ApplicationStatus,
        cancellation_type: CancellationType,
        next_action: Optional[NextAction],
    ) -> RefundRules:
        """Deportations use their own fee template; a missing standard policy refunds nothing"""
        if next_action == NextAction.DEPORT and is_post_arrival(status):
            template = self.settings.get_active(company_id, SettingType.DEPORTATION.value)
            if template is None:
                raise MissingDeportationTemplate("No active deportation fee template configured")
            return to_rules(template)

        setting = self.settings.get_active(company_id, cancellation_type.value)
        if setting is None:
            return RefundRules(setting_type=cancellation_type.value)
        return to_rules(setting)

    def _compute(
        self,
        company_id: str,
        application: Application,
        cancellation_type: CancellationType,
        flags: CandidateFlags,
        rules: RefundRules,
        overrides: Optional[RefundOverrides],
        as_of: date,
    ) -> RefundCalculation:
        snapshot = ApplicationRepository.snapshot(application)
        return compute_refund(
            self.ledger.payments(company_id, application.id),
            cancellation_type,
            normalize_flags(snapshot, flags),
            rules,
            overrides,
            arrival_date=application.exact_arrival_date,
            as_of=as_of,
        )

    @staticmethod
    def _describe(cancellation_type: CancellationType, refund: RefundCalculation, kind: AdjustmentKind) -> str:
        if refund.final_refund <= ZERO:
            return f"{cancellation_type.value} cancellation without refund"
        source = "custom amount" if refund.is_override else f"policy {refund.policy_key}"
        return f"{cancellation_type.value} cancellation {kind.value} of {refund.final_refund} ({source})"

    @staticmethod
    def _event_notes(cancellation_type: CancellationType, reason: Optional[str], notes: Optional[str]) -> str:
        text = f"Cancellation ({cancellation_type.value}): {reason or 'No reason provided'}"
        if notes:
            text = f"{text}. {notes}"
        return text
