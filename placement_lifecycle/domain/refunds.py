"""Refund engine - replays a payment ledger against cancellation rules"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from placement_lifecycle.domain.exceptions import MixedCurrencyUnsupported
from placement_lifecycle.domain.models import (
    CancellationType,
    CandidateFlags,
    LedgerPayment,
    RefundCalculation,
    RefundLine,
    RefundOverrides,
    RefundRules,
)
from placement_lifecycle.utils.date_utils import whole_months_between

ZERO = Decimal("0")
HUNDRED = Decimal("100")

POST_ARRIVAL_TYPES = frozenset({
    CancellationType.POST_ARRIVAL_WITHIN_3_MONTHS,
    CancellationType.POST_ARRIVAL_AFTER_3_MONTHS,
})


def quantize_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half up."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def summarize_ledger(payments: List[LedgerPayment]) -> Dict[str, Decimal]:
    """Total paid per currency bucket; buckets are never collapsed"""
    totals: Dict[str, Decimal] = {}
    for payment in payments:
        totals[payment.currency] = totals.get(payment.currency, ZERO) + payment.amount
    return totals


def blended_total(payments: List[LedgerPayment]) -> tuple[Optional[str], Decimal]:
    """
    Single total over the ledger.

    Raises:
        MixedCurrencyUnsupported: ledger spans more than one currency
    """
    totals = summarize_ledger(payments)
    if len(totals) > 1:
        raise MixedCurrencyUnsupported(list(totals))
    if not totals:
        return None, ZERO
    currency, total = next(iter(totals.items()))
    return currency, total


def months_elapsed(
    cancellation_type: CancellationType,
    arrival_date: Optional[date],
    as_of: Optional[date] = None,
) -> int:
    """Whole months of service charged; only post-arrival cancellations accrue them"""
    if cancellation_type not in POST_ARRIVAL_TYPES or arrival_date is None:
        return 0
    return whole_months_between(arrival_date, as_of or date.today())


def is_payment_refundable(payment: LedgerPayment, rules: RefundRules) -> bool:
    """Policy's non-refundable fee list wins over the payment type's own default"""
    if payment.payment_type in rules.non_refundable_fees:
        return False
    return payment.is_refundable


def compute_refund(
    payments: List[LedgerPayment],
    cancellation_type: CancellationType,
    flags: CandidateFlags,
    rules: RefundRules,
    overrides: Optional[RefundOverrides] = None,
    *,
    arrival_date: Optional[date] = None,
    as_of: Optional[date] = None,
) -> RefundCalculation:
    """
    Compute an itemized refund for a cancellation.

    Steps:
    1. Blend the ledger into one total (single currency only)
    2. Classify each payment as refundable or not
    3. Apply refund percentage, penalty fee and monthly service fees
    4. Clamp to the policy's maximum refund, if any
    5. An explicit custom refund amount replaces the result verbatim
    6. Allocate the calculated refund across refundable payments for display

    The final refund is authoritative; breakdown lines are rounded per line
    and may not add up to it exactly.

    Flags are recorded on the result as calculation inputs and are not
    validated here.
    """
    overrides = overrides or RefundOverrides()
    currency, total_paid = blended_total(payments)

    refundable_flags = [is_payment_refundable(p, rules) for p in payments]
    refundable_amount = sum(
        (p.amount for p, refundable in zip(payments, refundable_flags) if refundable),
        ZERO,
    )
    non_refundable_amount = total_paid - refundable_amount

    penalty_fee = overrides.override_fee if overrides.override_fee is not None else rules.penalty_fee
    months = months_elapsed(cancellation_type, arrival_date, as_of)

    calculated = (
        refundable_amount * rules.refund_percentage / HUNDRED
        - penalty_fee
        - months * rules.monthly_service_fee
    )
    calculated_refund = quantize_money(max(ZERO, calculated))

    if rules.max_refund_amount is not None and calculated_refund > rules.max_refund_amount:
        calculated_refund = quantize_money(rules.max_refund_amount)

    is_override = overrides.custom_refund_amount is not None
    final_refund = overrides.custom_refund_amount if is_override else calculated_refund

    breakdown = []
    for payment, refundable in zip(payments, refundable_flags):
        if refundable and refundable_amount > ZERO:
            line_refund = quantize_money(payment.amount * calculated_refund / refundable_amount)
        else:
            line_refund = ZERO
        breakdown.append(
            RefundLine(
                payment_type=payment.payment_type,
                amount=payment.amount,
                is_refundable=refundable,
                refund_amount=line_refund,
            )
        )

    return RefundCalculation(
        cancellation_type=CancellationType(cancellation_type).value,
        policy_key=rules.setting_type,
        currency=currency,
        total_paid=total_paid,
        refundable_amount=refundable_amount,
        non_refundable_amount=non_refundable_amount,
        penalty_fee=penalty_fee,
        months_elapsed=months,
        calculated_refund=calculated_refund,
        final_refund=final_refund,
        is_override=is_override,
        refund_breakdown=breakdown,
        candidate_in_lebanon=flags.candidate_in_lebanon,
        candidate_departed=flags.candidate_departed,
    )
