from __future__ import annotations

from typing import Sequence

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class ContactDetails(BaseModel):
    client_name: str = Field(min_length=2)
    client_email: EmailStr
    client_phone: str = ""
    client_document: str = ""
    client_observations: str = ""

    @field_validator("client_name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


class SelectedService(BaseModel):
    service_id: int
    selected: bool
    client_notes: str = ""


class SelectionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    selected_services: Sequence[SelectedService] = Field(alias="selectedServices")
    client_observations: str = ""


class SignaturePayload(BaseModel):
    signature_data: str
    client_name: str
    client_email: str
    client_phone: str = ""
    client_document: str = ""
    client_observations: str = ""
    final_value: float
    payment_type: str
    payment_method: str
    installments: int = Field(default=1, ge=1)
    discount_applied: float = 0.0
    is_counterproposal: bool = False
    selected_services: Sequence[SelectedService] | None = None


class ConfirmationPayload(BaseModel):
    client_observations: str = ""


class RejectionPayload(BaseModel):
    rejection_reason: str = ""


__all__ = [
    "ConfirmationPayload",
    "ContactDetails",
    "RejectionPayload",
    "SelectedService",
    "SelectionPayload",
    "SignaturePayload",
]
