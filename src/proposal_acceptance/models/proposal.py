from __future__ import annotations

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Literal, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MAX_INSTALLMENTS = 12
MAX_INSTALLMENTS_CEILING = 18
RECRUITMENT_TYPE = "Recrutamento & Seleção"

RecruitmentCategory = Literal["administrativo_gestao", "comercial", "operacional", "estagio_jovem"]

DEFAULT_RECRUITMENT_PERCENTAGES: Mapping[str, float] = {
    "administrativo_gestao": 80,
    "comercial": 80,
    "operacional": 70,
    "estagio_jovem": 100,
}


class ProposalStatus(str, Enum):
    draft = "draft"
    sent = "sent"
    signed = "signed"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"
    converted = "converted"
    contraproposta = "contraproposta"


STATUS_LABELS: Mapping[ProposalStatus, str] = {
    ProposalStatus.draft: "Rascunho",
    ProposalStatus.sent: "Enviada",
    ProposalStatus.signed: "Assinada",
    ProposalStatus.accepted: "Aceita",
    ProposalStatus.rejected: "Rejeitada",
    ProposalStatus.expired: "Expirada",
    ProposalStatus.converted: "Convertida",
    ProposalStatus.contraproposta: "Contraproposta",
}


def _coerce_instant(value: Any) -> Any:
    # Date-only values mean midnight UTC
    if value in (None, ""):
        return None
    if isinstance(value, str) and len(value) == 10:
        return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


class CatalogService(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    name: str = ""
    value: float | None = None
    category: str | None = None
    description: str | None = None
    duration_amount: float | None = None
    duration_unit: str | None = None


class ProposalLineItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    service_id: int
    quantity: float = 1
    custom_value: float | None = None
    proposal_unit_value: float | None = Field(default=None, alias="unit_value")
    server_total: float | None = Field(default=None, alias="total_value")
    client_notes: str | None = None
    selected_by_client: bool | None = None
    recruitment_percentages: Mapping[str, float] | None = Field(
        default=None, alias="recruitmentPercentages"
    )
    service: CatalogService = Field(default_factory=CatalogService)

    @field_validator("service", mode="before")
    @classmethod
    def _missing_service(cls, value: Any) -> Any:
        # A null catalog service reads as an empty one
        return {} if value is None else value

    @property
    def key(self) -> int:
        return self.service_id

    @property
    def name(self) -> str:
        return self.service.name

    @property
    def unit_value(self) -> float:
        return self.custom_value or self.proposal_unit_value or self.service.value or 0.0

    @property
    def total(self) -> float:
        if self.server_total:
            return self.server_total
        return round(self.unit_value * self.quantity, 2)


class ProposalCompany(BaseModel):
    trade_name: str | None = None
    company_name: str | None = None
    cnpj: str | None = None


class ProposalPerson(BaseModel):
    full_name: str | None = None
    cpf: str | None = None


class ProposalClient(BaseModel):
    type: str | None = None
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    headquarters: str | None = None
    market_sector: str | None = None
    company: ProposalCompany | None = None
    person: ProposalPerson | None = None


class Proposal(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    title: str = ""
    description: str | None = None
    type: str | None = None
    status: ProposalStatus
    total_value: float = 0.0
    valid_until: datetime | None = None
    end_date: datetime | None = None
    max_installments: int = DEFAULT_MAX_INSTALLMENTS
    observations: str | None = None
    sent_at: datetime | None = None
    signed_at: datetime | None = None
    accepted_value: float | None = None
    client_name: str | None = None
    client_email: str | None = None
    client: ProposalClient | None = None
    services: Sequence[ProposalLineItem] = Field(default_factory=list)

    @field_validator("valid_until", "end_date", "sent_at", "signed_at", mode="before")
    @classmethod
    def _instants(cls, value: Any) -> Any:
        return _coerce_instant(value)

    @field_validator("valid_until", "end_date", "sent_at", "signed_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("max_installments", mode="before")
    @classmethod
    def _clamp_installments(cls, value: Any) -> int:
        try:
            count = int(value)
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_MAX_INSTALLMENTS
        if count != value and not isinstance(value, str):
            # Fractional counts are not a valid installment limit
            return DEFAULT_MAX_INSTALLMENTS
        if count == 0:
            return DEFAULT_MAX_INSTALLMENTS
        return max(1, min(count, MAX_INSTALLMENTS_CEILING))

    @property
    def expires_at(self) -> datetime | None:
        return self.end_date or self.valid_until

    def is_expired(self, now: datetime) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and expires_at < now

    def days_until_expiration(self, now: datetime) -> int | None:
        expires_at = self.expires_at
        if expires_at is None:
            return None
        days = math.ceil((expires_at - now).total_seconds() / 86400)
        return max(days, 0)

    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status, self.status.value)

    @property
    def is_recruitment(self) -> bool:
        return self.type == RECRUITMENT_TYPE

    def line_item(self, service_id: int) -> ProposalLineItem:
        for item in self.services:
            if item.service_id == service_id:
                return item
        raise KeyError(service_id)

    def recruitment_percentage(self, category: RecruitmentCategory) -> float:
        for item in self.services:
            if item.recruitment_percentages:
                return item.recruitment_percentages.get(category, 0)
        return DEFAULT_RECRUITMENT_PERCENTAGES[category]


__all__ = [
    "CatalogService",
    "Proposal",
    "ProposalClient",
    "ProposalCompany",
    "ProposalLineItem",
    "ProposalPerson",
    "ProposalStatus",
    "DEFAULT_MAX_INSTALLMENTS",
    "MAX_INSTALLMENTS_CEILING",
    "RECRUITMENT_TYPE",
]
