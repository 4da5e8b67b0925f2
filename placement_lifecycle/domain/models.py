"""Domain models - pure Python enums and dataclasses representing placement entities"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class ApplicationStatus(str, Enum):
    """Workflow states of a candidate-to-client placement"""

    PENDING_MOL = "PENDING_MOL"
    MOL_AUTH_RECEIVED = "MOL_AUTH_RECEIVED"
    VISA_PROCESSING = "VISA_PROCESSING"
    VISA_RECEIVED = "VISA_RECEIVED"
    WORKER_ARRIVED = "WORKER_ARRIVED"
    LABOUR_PERMIT_PROCESSING = "LABOUR_PERMIT_PROCESSING"
    RESIDENCY_PERMIT_PROCESSING = "RESIDENCY_PERMIT_PROCESSING"
    ACTIVE_EMPLOYMENT = "ACTIVE_EMPLOYMENT"
    RENEWAL_PENDING = "RENEWAL_PENDING"
    CONTRACT_ENDED = "CONTRACT_ENDED"
    CANCELLED_PRE_ARRIVAL = "CANCELLED_PRE_ARRIVAL"
    CANCELLED_POST_ARRIVAL = "CANCELLED_POST_ARRIVAL"
    CANCELLED_CANDIDATE = "CANCELLED_CANDIDATE"


class ApplicationType(str, Enum):
    NEW_CANDIDATE = "NEW_CANDIDATE"
    GUARANTOR_CHANGE = "GUARANTOR_CHANGE"


class CandidateStatus(str, Enum):
    """Candidate availability; DEPORTED is a terminal marker"""

    AVAILABLE_ABROAD = "AVAILABLE_ABROAD"
    AVAILABLE_IN_LEBANON = "AVAILABLE_IN_LEBANON"
    RESERVED = "RESERVED"
    IN_PROCESS = "IN_PROCESS"
    PLACED = "PLACED"
    DEPORTED = "DEPORTED"


class CancellationType(str, Enum):
    PRE_ARRIVAL = "pre_arrival"
    POST_ARRIVAL_WITHIN_3_MONTHS = "post_arrival_within_3_months"
    POST_ARRIVAL_AFTER_3_MONTHS = "post_arrival_after_3_months"
    CANDIDATE_CANCELLATION = "candidate_cancellation"


class SettingType(str, Enum):
    """Keys of the cancellation fee configuration table"""

    PRE_ARRIVAL = "pre_arrival"
    POST_ARRIVAL_WITHIN_3_MONTHS = "post_arrival_within_3_months"
    POST_ARRIVAL_AFTER_3_MONTHS = "post_arrival_after_3_months"
    CANDIDATE_CANCELLATION = "candidate_cancellation"
    DEPORTATION = "deportation"


class NextAction(str, Enum):
    """Disposition of the candidate after a cancellation"""

    MOVE_TO_CLIENT = "move_to_client"
    DEPORT = "deport"
    KEEP_WAITING = "keep_waiting"


class PaymentType(str, Enum):
    FEE = "FEE"
    DEPOSIT = "DEPOSIT"
    AGENT_FEE = "AGENT_FEE"
    BROKER_FEE = "BROKER_FEE"
    ATTORNEY_FEE = "ATTORNEY_FEE"
    GOV_FEE = "GOV_FEE"
    VISA = "VISA"
    INSURANCE = "INSURANCE"
    TICKET = "TICKET"
    EXPEDITED_FEE = "EXPEDITED_FEE"
    OTHER = "OTHER"


# Built-in refundability per payment type, overridable per company
DEFAULT_PAYMENT_REFUNDABILITY: Dict[PaymentType, bool] = {
    PaymentType.FEE: True,
    PaymentType.DEPOSIT: True,
    PaymentType.AGENT_FEE: True,
    PaymentType.BROKER_FEE: True,
    PaymentType.ATTORNEY_FEE: True,
    PaymentType.GOV_FEE: False,
    PaymentType.VISA: False,
    PaymentType.INSURANCE: False,
    PaymentType.TICKET: False,
    PaymentType.EXPEDITED_FEE: False,
    PaymentType.OTHER: True,
}


def resolve_payment_refundability(
    payment_type: str,
    company_overrides: Optional[Dict[str, bool]] = None,
) -> bool:
    """
    Resolve whether a payment type is refundable by default.

    Lookup order: company-scoped override, then the built-in table.
    Types missing from both are treated as refundable.
    """
    if company_overrides and payment_type in company_overrides:
        return company_overrides[payment_type]
    try:
        return DEFAULT_PAYMENT_REFUNDABILITY[PaymentType(payment_type)]
    except ValueError:
        return True


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    SUBMITTED = "SUBMITTED"


class LifecycleAction(str, Enum):
    STATUS_CHANGE = "status_change"
    CANCELLATION = "cancellation"
    CLIENT_CHANGE = "client_change"


class AdjustmentKind(str, Enum):
    REFUND = "refund"
    CREDIT = "credit"


@dataclass
class LedgerPayment:
    """Recorded payment as seen by the refund calculator"""

    amount: Decimal
    currency: str
    payment_type: str
    is_refundable: bool = True


@dataclass
class CandidateFlags:
    """Caller-supplied hints about the candidate's whereabouts"""

    candidate_in_lebanon: bool = False
    candidate_departed: bool = False


@dataclass
class RefundRules:
    """Refund policy for one cancellation setting key"""

    setting_type: str
    penalty_fee: Decimal = Decimal("0")
    refund_percentage: Decimal = Decimal("0")
    non_refundable_fees: List[str] = field(default_factory=list)
    monthly_service_fee: Decimal = Decimal("0")
    max_refund_amount: Optional[Decimal] = None


@dataclass
class RefundOverrides:
    """Admin overrides applied when a refund is finalized"""

    custom_refund_amount: Optional[Decimal] = None
    override_fee: Optional[Decimal] = None


@dataclass
class RefundLine:
    """Per-payment itemization of a refund, for display"""

    payment_type: str
    amount: Decimal
    is_refundable: bool
    refund_amount: Decimal


@dataclass
class RefundCalculation:
    """Itemized outcome of replaying a payment ledger against refund rules"""

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
    refund_breakdown: List[RefundLine]
    candidate_in_lebanon: bool = False
    candidate_departed: bool = False


@dataclass
class CancellationOptions:
    can_cancel: bool
    available_types: List[CancellationType]
    warnings: List[str]
    refund_estimate: Optional[RefundCalculation] = None


@dataclass
class ApplicationSnapshot:
    """Fields of an application needed by the pure cancellation rules"""

    status: ApplicationStatus
    exact_arrival_date: Optional[date] = None
