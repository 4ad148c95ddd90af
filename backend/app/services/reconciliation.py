"""Reconcile tendered payment instruments against an amount owed.

All amounts are integer cents. A payer may tender more than is owed; only the
owed amount is ever counted as applied revenue and the excess is change.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from app.services.errors import InvalidInputError


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    credit_card = "credit_card"
    debit_card = "debit_card"
    pix = "pix"
    check = "check"
    wire_transfer = "wire_transfer"


class PaymentStatus(str, enum.Enum):
    unpaid = "unpaid"
    partial = "partial"
    paid = "paid"


@dataclass(frozen=True)
class PaymentTender:
    method: PaymentMethod
    amount: int
    reference: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class ReconciliationResult:
    applied_amount: int
    change_amount: int
    remaining_amount: int
    status: PaymentStatus
    adjusted_tenders: tuple[PaymentTender, ...]
    total_tendered: int


def _round_half_up_ratio(numerator: int, denominator: int) -> int:
    # Integer round-half-up of numerator / denominator for non-negative inputs.
    return (2 * numerator + denominator) // (2 * denominator)


def payment_status(applied_amount: int, target_amount: int) -> PaymentStatus:
    if applied_amount >= target_amount:
        return PaymentStatus.paid
    if applied_amount > 0:
        return PaymentStatus.partial
    return PaymentStatus.unpaid


def rescale_tenders(
    tenders: Sequence[PaymentTender], target_amount: int, total_tendered: int
) -> tuple[PaymentTender, ...]:
    """Scale tenders down to the target, keeping each instrument's share.

    Each tender is rounded on its own, so the adjusted sum may differ from the
    target by at most one cent per tender.
    """
    if total_tendered <= target_amount:
        return tuple(tenders)
    return tuple(
        replace(tender, amount=_round_half_up_ratio(target_amount * tender.amount, total_tendered))
        for tender in tenders
    )


def reconcile(target_amount: int, tenders: Iterable[PaymentTender]) -> ReconciliationResult:
    tenders = tuple(tenders)
    if isinstance(target_amount, bool) or not isinstance(target_amount, int):
        raise InvalidInputError("Target amount must be an integer number of cents")
    if target_amount <= 0:
        raise InvalidInputError("Target amount must be greater than zero")
    if not tenders:
        raise InvalidInputError("At least one payment method must be provided")
    for tender in tenders:
        if isinstance(tender.amount, bool) or not isinstance(tender.amount, int):
            raise InvalidInputError("Tender amounts must be integer numbers of cents")
        if tender.amount < 0:
            raise InvalidInputError("Tender amounts cannot be negative")

    total_tendered = sum(tender.amount for tender in tenders)
    if total_tendered <= 0:
        raise InvalidInputError("The sum of tendered amounts must be greater than zero")

    applied_amount = min(total_tendered, target_amount)
    remaining_amount = max(0, target_amount - applied_amount)
    change_amount = max(0, total_tendered - target_amount)

    return ReconciliationResult(
        applied_amount=applied_amount,
        change_amount=change_amount,
        remaining_amount=remaining_amount,
        status=payment_status(applied_amount, target_amount),
        adjusted_tenders=rescale_tenders(tenders, target_amount, total_tendered),
        total_tendered=total_tendered,
    )
