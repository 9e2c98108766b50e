from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel

from .ledger import SelectionLedger
from .models.proposal import ProposalLineItem
from .payment import PaymentSelection, PaymentType

DISCOUNT_RATE = 0.06


class AcceptanceTerms(BaseModel):
    base_total: float
    discount_rate: float
    discount_eligible: bool
    discount_amount: float
    final_total: float
    installments: int
    installment_value: float
    selected_count: int
    is_counterproposal: bool


def base_total(items: Sequence[ProposalLineItem], ledger: SelectionLedger) -> float:
    return round(sum(item.total for item in items if ledger.is_selected(item.key)), 2)


def discount_eligible(
    items: Sequence[ProposalLineItem], ledger: SelectionLedger, payment: PaymentSelection
) -> bool:
    # Partial acceptance forfeits the discount even for immediate payment
    if payment.payment_type is not PaymentType.immediate or not items:
        return False
    return all(ledger.is_selected(item.key) for item in items)


def is_counterproposal(items: Sequence[ProposalLineItem], ledger: SelectionLedger) -> bool:
    return any(not ledger.is_selected(item.key) for item in items)


def calculate_terms(
    items: Sequence[ProposalLineItem],
    ledger: SelectionLedger,
    payment: PaymentSelection,
    *,
    discount_rate: float = DISCOUNT_RATE,
) -> AcceptanceTerms:
    base = base_total(items, ledger)
    eligible = discount_eligible(items, ledger, payment)
    discount = round(base * discount_rate, 2) if eligible else 0.0
    final = round(base - discount, 2)

    installments = payment.installments_for_submission()
    if payment.payment_type is PaymentType.deferred and installments > 1:
        installment_value = round(final / installments, 2)
    else:
        installment_value = final

    return AcceptanceTerms(
        base_total=base,
        discount_rate=discount_rate,
        discount_eligible=eligible,
        discount_amount=discount,
        final_total=final,
        installments=installments,
        installment_value=installment_value,
        selected_count=sum(1 for item in items if ledger.is_selected(item.key)),
        is_counterproposal=is_counterproposal(items, ledger),
    )


__all__ = ["AcceptanceTerms", "DISCOUNT_RATE", "calculate_terms", "base_total", "discount_eligible"]
