"""Cancellation options - which cancellation paths are legal from a given state"""

from datetime import date
from typing import Dict, List, Optional

from placement_lifecycle.domain.exceptions import MixedCurrencyUnsupported
from placement_lifecycle.domain.models import (
    ApplicationSnapshot,
    ApplicationStatus,
    CancellationOptions,
    CancellationType,
    CandidateFlags,
    LedgerPayment,
    RefundRules,
)
from placement_lifecycle.domain.refunds import compute_refund
from placement_lifecycle.domain.status_machine import is_post_arrival, is_pre_arrival, is_terminal
from placement_lifecycle.utils.date_utils import is_within_months


def post_arrival_type(
    arrival_date: Optional[date],
    as_of: date,
    probation_months: int = 3,
) -> CancellationType:
    """Within/after probation split; a missing arrival date counts as within"""
    if arrival_date is None or is_within_months(arrival_date, as_of, probation_months):
        return CancellationType.POST_ARRIVAL_WITHIN_3_MONTHS
    return CancellationType.POST_ARRIVAL_AFTER_3_MONTHS


def available_cancellation_types(
    application: ApplicationSnapshot,
    as_of: date,
    probation_months: int = 3,
) -> List[CancellationType]:
    if is_terminal(application.status):
        return []
    if is_pre_arrival(application.status):
        return [CancellationType.PRE_ARRIVAL, CancellationType.CANDIDATE_CANCELLATION]
    if is_post_arrival(application.status):
        return [
            post_arrival_type(application.exact_arrival_date, as_of, probation_months),
            CancellationType.CANDIDATE_CANCELLATION,
        ]
    return []


def normalize_flags(
    application: ApplicationSnapshot,
    flags: CandidateFlags,
    warnings: Optional[List[str]] = None,
) -> CandidateFlags:
    """
    Re-derive candidate flags server side; caller-supplied flags are hints.

    - before arrival the candidate cannot be in Lebanon
    - departed and in-Lebanon are exclusive; departed wins
    """
    in_lebanon = flags.candidate_in_lebanon
    departed = flags.candidate_departed

    if is_pre_arrival(application.status):
        in_lebanon = False
    if in_lebanon and departed:
        if warnings is not None:
            warnings.append("Candidate was flagged both in Lebanon and departed; treating the candidate as departed")
        in_lebanon = False

    return CandidateFlags(candidate_in_lebanon=in_lebanon, candidate_departed=departed)


def resolve_cancellation_options(
    application: ApplicationSnapshot,
    flags: CandidateFlags,
    payments: List[LedgerPayment],
    rules_by_type: Dict[str, RefundRules],
    as_of: Optional[date] = None,
    probation_months: int = 3,
) -> CancellationOptions:
    """
    Decide which cancellation types are legal and estimate the refund.

    The estimate uses the first available type and is informational only;
    the binding calculation is repeated when the cancellation is committed.
    Warnings are advisory and never block a cancellation.
    """
    as_of = as_of or date.today()

    if is_terminal(application.status):
        return CancellationOptions(
            can_cancel=False,
            available_types=[],
            warnings=["Application cannot be cancelled in current state"],
        )

    warnings: List[str] = []
    available = available_cancellation_types(application, as_of, probation_months)
    normalized = normalize_flags(application, flags, warnings)

    if application.status == ApplicationStatus.ACTIVE_EMPLOYMENT:
        warnings.append("This will end an active employment contract")

    if is_post_arrival(application.status):
        if application.exact_arrival_date is None:
            warnings.append("No arrival date recorded; assuming the candidate is within the probation period")
        elif available[0] == CancellationType.POST_ARRIVAL_AFTER_3_MONTHS:
            warnings.append("Application is outside probation period - limited refund may apply")

    for cancellation_type in available:
        if cancellation_type.value not in rules_by_type:
            warnings.append(f"No active refund policy configured for {cancellation_type.value}")

    refund_estimate = None
    default_type = available[0]
    rules = rules_by_type.get(default_type.value)
    if rules is not None:
        try:
            refund_estimate = compute_refund(
                payments,
                default_type,
                normalized,
                rules,
                arrival_date=application.exact_arrival_date,
                as_of=as_of,
            )
        except MixedCurrencyUnsupported as e:
            warnings.append(f"Refund estimate unavailable: {e}")

    return CancellationOptions(
        can_cancel=True,
        available_types=available,
        warnings=warnings,
        refund_estimate=refund_estimate,
    )
