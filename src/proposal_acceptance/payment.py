from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Sequence

from pydantic import BaseModel

from .errors import ProposalValidationError


class PaymentType(str, Enum):
    immediate = "vista"
    deferred = "prazo"


@dataclass(frozen=True)
class PaymentMethodOption:
    value: str
    label: str
    installable: bool = False


PAYMENT_METHODS: Mapping[PaymentType, Sequence[PaymentMethodOption]] = {
    PaymentType.immediate: (
        PaymentMethodOption("PIX", "PIX"),
        PaymentMethodOption("Cartão de Débito", "Cartão de Débito"),
        PaymentMethodOption("Transferência", "Transferência Bancária"),
    ),
    PaymentType.deferred: (
        PaymentMethodOption("Boleto", "Boleto Bancário", installable=True),
        PaymentMethodOption("Cartão de Crédito", "Cartão de Crédito", installable=True),
        PaymentMethodOption("Cheque", "Cheque"),
    ),
}

INSTALLABLE_METHODS = frozenset(
    option.value for options in PAYMENT_METHODS.values() for option in options if option.installable
)


def available_methods(payment_type: PaymentType) -> Sequence[PaymentMethodOption]:
    return PAYMENT_METHODS.get(payment_type, ())


def is_installable(method: str) -> bool:
    return method in INSTALLABLE_METHODS


def installment_options(max_installments: int) -> list[int]:
    return list(range(1, max(max_installments, 1) + 1))


class PaymentSelection(BaseModel):
    payment_type: PaymentType = PaymentType.deferred
    payment_method: str = ""
    installments: int | None = None

    def switch_type(self, payment_type: PaymentType) -> None:
        self.payment_type = payment_type
        # Immediate payment is always a single installment
        self.installments = 1 if payment_type is PaymentType.immediate else None
        allowed = {option.value for option in available_methods(payment_type)}
        if self.payment_method and self.payment_method not in allowed:
            self.payment_method = ""

    def switch_method(self, method: str) -> None:
        allowed = {option.value for option in available_methods(self.payment_type)}
        if method not in allowed:
            raise ProposalValidationError(f"Payment method '{method}' is not available for this payment type")
        self.payment_method = method
        if not is_installable(method) and self.installments and self.installments > 1:
            self.installments = 1

    def request_installments(self, value: object, max_installments: int) -> int | None:
        """Store a requested installment count.

        Unparseable or non-positive input is dropped quietly. Counts the
        proposal or the payment method cannot honour are dropped as well and
        reported through ``ProposalValidationError``.
        """
        try:
            count = int(str(value).strip())
        except (TypeError, ValueError):
            self.installments = None
            return None
        if count <= 0:
            self.installments = None
            return None
        if count > max_installments:
            self.installments = None
            raise ProposalValidationError(
                f"The maximum number of installments for this proposal is {max_installments}"
            )
        if count > 1 and self.payment_type is PaymentType.immediate:
            self.installments = None
            raise ProposalValidationError("Immediate payment cannot be split into installments")
        if count > 1 and self.payment_method and not is_installable(self.payment_method):
            self.installments = None
            raise ProposalValidationError(f"{self.payment_method} cannot be split into installments")
        self.installments = count
        return count

    def installments_for_submission(self) -> int:
        return self.installments if self.installments and self.installments >= 1 else 1


__all__ = [
    "INSTALLABLE_METHODS",
    "PAYMENT_METHODS",
    "PaymentMethodOption",
    "PaymentSelection",
    "PaymentType",
    "available_methods",
    "installment_options",
    "is_installable",
]
