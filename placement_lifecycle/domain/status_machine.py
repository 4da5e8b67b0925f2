"""Application status workflow - the legal graph of placement states"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from placement_lifecycle.domain.exceptions import DocumentsIncomplete, InvalidTransition, MissingRequiredDate
from placement_lifecycle.domain.models import (
    ApplicationStatus,
    CancellationType,
    CandidateStatus,
    DocumentStatus,
    NextAction,
)

S = ApplicationStatus

FORWARD_CHAIN: List[ApplicationStatus] = [
    S.PENDING_MOL,
    S.MOL_AUTH_RECEIVED,
    S.VISA_PROCESSING,
    S.VISA_RECEIVED,
    S.WORKER_ARRIVED,
    S.LABOUR_PERMIT_PROCESSING,
    S.RESIDENCY_PERMIT_PROCESSING,
    S.ACTIVE_EMPLOYMENT,
]

# Forward edges only; cancellations are not part of the advance graph
TRANSITIONS: Dict[ApplicationStatus, List[ApplicationStatus]] = {
    S.PENDING_MOL: [S.MOL_AUTH_RECEIVED],
    S.MOL_AUTH_RECEIVED: [S.VISA_PROCESSING],
    S.VISA_PROCESSING: [S.VISA_RECEIVED],
    S.VISA_RECEIVED: [S.WORKER_ARRIVED],
    S.WORKER_ARRIVED: [S.LABOUR_PERMIT_PROCESSING],
    S.LABOUR_PERMIT_PROCESSING: [S.RESIDENCY_PERMIT_PROCESSING],
    S.RESIDENCY_PERMIT_PROCESSING: [S.ACTIVE_EMPLOYMENT],
    S.ACTIVE_EMPLOYMENT: [S.RENEWAL_PENDING, S.CONTRACT_ENDED],
    S.RENEWAL_PENDING: [S.ACTIVE_EMPLOYMENT],
    S.CONTRACT_ENDED: [],
    S.CANCELLED_PRE_ARRIVAL: [],
    S.CANCELLED_POST_ARRIVAL: [],
    S.CANCELLED_CANDIDATE: [],
}

CANCELLED_STATES = frozenset({S.CANCELLED_PRE_ARRIVAL, S.CANCELLED_POST_ARRIVAL, S.CANCELLED_CANDIDATE})
TERMINAL_STATES = CANCELLED_STATES | {S.CONTRACT_ENDED}

PRE_ARRIVAL_STATES = frozenset(FORWARD_CHAIN[: FORWARD_CHAIN.index(S.WORKER_ARRIVED)])
POST_ARRIVAL_STATES = frozenset(FORWARD_CHAIN[FORWARD_CHAIN.index(S.WORKER_ARRIVED):]) | {S.RENEWAL_PENDING}

# Target status -> context date field captured from a physical document
REQUIRED_DATES: Dict[ApplicationStatus, str] = {
    S.WORKER_ARRIVED: "exact_arrival_date",
    S.LABOUR_PERMIT_PROCESSING: "labor_permit_date",
    S.RESIDENCY_PERMIT_PROCESSING: "residency_permit_date",
}

# (from, to) -> candidate status applied alongside the transition
CANDIDATE_STATUS_CHANGES: Dict[Tuple[ApplicationStatus, ApplicationStatus], CandidateStatus] = {
    (S.VISA_RECEIVED, S.WORKER_ARRIVED): CandidateStatus.IN_PROCESS,
    (S.RESIDENCY_PERMIT_PROCESSING, S.ACTIVE_EMPLOYMENT): CandidateStatus.PLACED,
    (S.ACTIVE_EMPLOYMENT, S.CONTRACT_ENDED): CandidateStatus.AVAILABLE_IN_LEBANON,
}

CANCELLATION_TARGETS: Dict[CancellationType, ApplicationStatus] = {
    CancellationType.PRE_ARRIVAL: S.CANCELLED_PRE_ARRIVAL,
    CancellationType.POST_ARRIVAL_WITHIN_3_MONTHS: S.CANCELLED_POST_ARRIVAL,
    CancellationType.POST_ARRIVAL_AFTER_3_MONTHS: S.CANCELLED_POST_ARRIVAL,
    CancellationType.CANDIDATE_CANCELLATION: S.CANCELLED_CANDIDATE,
}

DOCUMENT_COMPLETE_STATUSES = frozenset({DocumentStatus.SUBMITTED.value, DocumentStatus.RECEIVED.value})


def is_terminal(status: ApplicationStatus) -> bool:
    return status in TERMINAL_STATES


def is_pre_arrival(status: ApplicationStatus) -> bool:
    return status in PRE_ARRIVAL_STATES


def is_post_arrival(status: ApplicationStatus) -> bool:
    return status in POST_ARRIVAL_STATES


def valid_next_states(status: ApplicationStatus) -> List[ApplicationStatus]:
    return list(TRANSITIONS.get(status, []))


def requires_document_gate(target: ApplicationStatus) -> bool:
    """Moves into WORKER_ARRIVED or any later stage need the current stage's documents"""
    return target in POST_ARRIVAL_STATES or target == S.CONTRACT_ENDED


def cancellation_target(cancellation_type: CancellationType) -> ApplicationStatus:
    return CANCELLATION_TARGETS[cancellation_type]


def validate_transition(
    current: ApplicationStatus,
    target: ApplicationStatus,
    context_dates: Optional[Dict[str, Optional[date]]] = None,
    missing_documents: Iterable[str] = (),
) -> Optional[CandidateStatus]:
    """
    Validate a forward move and return the candidate status it implies.

    Checks, in order:
    - target is an outgoing edge of current (no skips, no cancellations)
    - the document date required by the target is present
    - no required document of the current stage is outstanding

    Raises:
        InvalidTransition, MissingRequiredDate, DocumentsIncomplete
    """
    allowed = valid_next_states(current)
    if target not in allowed:
        if current in TERMINAL_STATES:
            reason = f"{current.value} is terminal; no further transitions are accepted"
        elif target in CANCELLED_STATES:
            reason = f"{target.value} can only be reached through a cancellation"
        else:
            reason = f"Invalid transition from {current.value} to {target.value}"
        raise InvalidTransition(reason, [s.value for s in allowed])

    date_field = REQUIRED_DATES.get(target)
    if date_field and not (context_dates or {}).get(date_field):
        raise MissingRequiredDate(date_field)

    if requires_document_gate(target):
        missing = list(missing_documents)
        if missing:
            raise DocumentsIncomplete(missing)

    return CANDIDATE_STATUS_CHANGES.get((current, target))


def outstanding_documents(items: Iterable, stage: ApplicationStatus) -> List[str]:
    """Names of required checklist items of a stage not yet SUBMITTED or RECEIVED"""
    return [
        item.document_name
        for item in items
        if item.stage == stage.value and item.required and item.status not in DOCUMENT_COMPLETE_STATUSES
    ]


def candidate_status_after_cancellation(
    current: ApplicationStatus,
    next_action: Optional[NextAction],
) -> CandidateStatus:
    """
    Candidate availability once an application is cancelled.

    A client transfer keeps the candidate committed to the new application.
    Deport and keep-waiting only apply once the worker has arrived; every
    other case returns the candidate to the abroad pool.
    """
    if next_action == NextAction.MOVE_TO_CLIENT:
        return CandidateStatus.IN_PROCESS if is_post_arrival(current) else CandidateStatus.RESERVED
    if is_post_arrival(current):
        if next_action == NextAction.DEPORT:
            return CandidateStatus.DEPORTED
        if next_action == NextAction.KEEP_WAITING:
            return CandidateStatus.AVAILABLE_IN_LEBANON
    return CandidateStatus.AVAILABLE_ABROAD
