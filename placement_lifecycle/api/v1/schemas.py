"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from placement_lifecycle.domain.models import (
    ApplicationStatus,
    CancellationType,
    CandidateFlags,
    NextAction,
    RefundOverrides,
    SettingType,
)


class CandidateFlagsMixin(BaseModel):
    candidate_in_lebanon: bool = False
    candidate_departed: bool = False

    def flags(self) -> CandidateFlags:
        return CandidateFlags(
            candidate_in_lebanon=self.candidate_in_lebanon,
            candidate_departed=self.candidate_departed,
        )


class RefundOverridesMixin(BaseModel):
    custom_refund_amount: Optional[Decimal] = Field(None, ge=0, description="Replaces the computed refund verbatim")
    override_fee: Optional[Decimal] = Field(None, ge=0, description="Replaces the policy penalty fee")

    def overrides(self) -> RefundOverrides:
        return RefundOverrides(
            custom_refund_amount=self.custom_refund_amount,
            override_fee=self.override_fee,
        )


class RefundLineSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_type: str
    amount: Decimal
    is_refundable: bool
    refund_amount: Decimal


class RefundCalculationSchema(BaseModel):
    """Full refund computation, including the inputs it was derived from"""

    model_config = ConfigDict(from_attributes=True)

    cancellation_type: str
    policy_key: str
    currency: Optional[str]
    total_paid: Decimal
    refundable_amount: Decimal
    non_refundable_amount: Decimal
    penalty_fee: Decimal
    months_elapsed: int
    calculated_refund: Decimal
    final_refund: Decimal
    is_override: bool
    refund_breakdown: List[RefundLineSchema]
    candidate_in_lebanon: bool
    candidate_departed: bool


class CancellationOptionsResponse(BaseModel):
    """Response for GET /v1/applications/{id}/cancellation-options"""

    model_config = ConfigDict(from_attributes=True)

    can_cancel: bool
    available_types: List[CancellationType]
    warnings: List[str]
    refund_estimate: Optional[RefundCalculationSchema] = None


class CalculateRefundRequest(CandidateFlagsMixin, RefundOverridesMixin):
    """Request body for POST /v1/applications/calculate-refund"""

    application_id: UUID
    cancellation_type: CancellationType
    next_action: Optional[NextAction] = None


class CancelRequest(CandidateFlagsMixin, RefundOverridesMixin):
    """Request body for POST /v1/applications/{id}/cancel"""

    cancellation_type: CancellationType
    reason: Optional[str] = None
    next_action: Optional[NextAction] = None
    to_client_id: Optional[UUID] = Field(None, description="Target client when next_action is move_to_client")
    notes: Optional[str] = None


class CancelResponse(BaseModel):
    """Response for POST /v1/applications/{id}/cancel"""

    message: str
    application_id: UUID
    previous_status: ApplicationStatus
    new_status: ApplicationStatus
    candidate_status: str
    refund: RefundCalculationSchema
    lifecycle_event_id: int
    new_application_id: Optional[UUID] = None


class StatusUpdateRequest(BaseModel):
    """Request body for PATCH /v1/applications/{id}/status"""

    status: ApplicationStatus
    exact_arrival_date: Optional[date] = None
    labor_permit_date: Optional[date] = None
    residency_permit_date: Optional[date] = None
    notes: Optional[str] = None

    def context_dates(self) -> Dict[str, Optional[date]]:
        return {
            "exact_arrival_date": self.exact_arrival_date,
            "labor_permit_date": self.labor_permit_date,
            "residency_permit_date": self.residency_permit_date,
        }


class StatusUpdateResponse(BaseModel):
    application_id: UUID
    from_status: ApplicationStatus
    to_status: ApplicationStatus
    lifecycle_event_id: int
    valid_next_states: List[ApplicationStatus]


class ValidNextStatesResponse(BaseModel):
    application_id: UUID
    current_status: ApplicationStatus
    valid_next_states: List[ApplicationStatus]


class LifecycleEventSchema(BaseModel):
    """Single entry of an application's audit trail"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    from_client_id: Optional[UUID] = None
    to_client_id: Optional[UUID] = None
    candidate_status_before: Optional[str] = None
    candidate_status_after: Optional[str] = None
    financial_impact: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
    performed_by: str
    performed_at: datetime


class LifecycleHistoryResponse(BaseModel):
    application_id: UUID
    entries: List[LifecycleEventSchema]


class LifecycleSummaryResponse(BaseModel):
    application_id: UUID
    total_entries: int
    status_changes: int
    cancellations: int
    client_changes: int
    recent_activity: List[LifecycleEventSchema]


class CandidateHistoryResponse(BaseModel):
    candidate_id: UUID
    entries: List[LifecycleEventSchema]


class ClientHistoryResponse(BaseModel):
    client_id: UUID
    entries: List[LifecycleEventSchema]


class GuarantorChangeRecordSchema(BaseModel):
    """One past client change and the application it opened"""

    model_config = ConfigDict(from_attributes=True)

    new_application_id: UUID
    original_application_id: Optional[UUID] = None
    candidate_id: UUID
    from_client_id: Optional[UUID] = None
    to_client_id: Optional[UUID] = None
    credit_amount: Decimal
    currency: Optional[str] = None
    new_application_status: str
    changed_at: datetime
    performed_by: str
    notes: Optional[str] = None


class GuarantorChangeRefundRequest(CandidateFlagsMixin, RefundOverridesMixin):
    """Request body for POST /v1/guarantor-changes/calculate-refund"""

    application_id: UUID


class GuarantorChangeRequest(CandidateFlagsMixin, RefundOverridesMixin):
    """Request body for POST /v1/guarantor-changes/process"""

    application_id: UUID
    new_client_id: UUID
    reason: Optional[str] = None
    notes: Optional[str] = None


class GuarantorChangeResponse(BaseModel):
    message: str
    cancelled_application_id: UUID
    new_application_id: UUID
    refund: RefundCalculationSchema
    lifecycle_event_id: int


class CancellationSettingCreate(BaseModel):
    """Request body for POST /v1/business-settings/cancellation"""

    cancellation_type: SettingType
    penalty_fee: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    refund_percentage: Decimal = Field(
        Decimal("100"), ge=0, le=100, decimal_places=2, description="Percent of refundable amount returned"
    )
    non_refundable_fees: List[str] = Field(default_factory=list)
    monthly_service_fee: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    max_refund_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    description: Optional[str] = None
    active: bool = True


class CancellationSettingUpdate(BaseModel):
    """Request body for PUT /v1/business-settings/cancellation/{id}; omitted fields are kept"""

    penalty_fee: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    refund_percentage: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)
    non_refundable_fees: Optional[List[str]] = None
    monthly_service_fee: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    max_refund_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    description: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("penalty_fee", "refund_percentage", "non_refundable_fees", "monthly_service_fee", "active")
    @classmethod
    def reject_null(cls, value):
        # Explicit nulls only; omitted fields never reach validation
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class CancellationSettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    cancellation_type: str
    penalty_fee: Decimal
    refund_percentage: Decimal
    non_refundable_fees: List[str]
    monthly_service_fee: Decimal
    max_refund_amount: Optional[Decimal] = None
    description: Optional[str] = None
    active: bool
    version: int


class LawyerServiceRequest(BaseModel):
    """Request body for PUT /v1/business-settings/lawyer-service"""

    lawyer_fee_cost: Decimal = Field(..., ge=0)
    lawyer_fee_charge: Decimal = Field(..., ge=0)
    description: Optional[str] = None
    active: bool = True


class LawyerServiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    lawyer_fee_cost: Decimal
    lawyer_fee_charge: Decimal
    description: Optional[str] = None
    active: bool
