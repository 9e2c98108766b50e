from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from proposal_acceptance.config import Settings
from proposal_acceptance.gateway import InMemoryProposalGateway
from proposal_acceptance.models.proposal import Proposal
from proposal_acceptance.signature import GestureEvent, StaticSurface
from proposal_acceptance.workflow import ProposalWorkflow

FIXTURES_DIR = Path(__file__).resolve().parents[1] / "data" / "proposals"
TOKEN = "tok-3f9a2c71"
NOW = datetime(2025, 11, 1, 12, 0, tzinfo=timezone.utc)


def load_fixture(name: str) -> dict[str, Any]:
    return json.loads((FIXTURES_DIR / f"{name}.json").read_text(encoding="utf-8"))


def make_proposal(**overrides: Any) -> Proposal:
    data: dict[str, Any] = {
        "id": 1,
        "title": "Consultoria",
        "status": "sent",
        "total_value": 1000.0,
        "valid_until": "2099-12-31",
        "max_installments": 6,
        "client": {
            "type": "PF",
            "email": "cliente@example.com",
            "person": {"full_name": "Maria Lima", "cpf": "12345678901"},
        },
        "services": [
            {"service_id": 1, "quantity": 1, "total_value": 500.0, "service": {"name": "Diagnóstico", "value": 500.0}},
            {"service_id": 2, "quantity": 2, "unit_value": 150.0, "service": {"name": "Workshop", "value": 100.0}},
            {"service_id": 3, "quantity": 1, "custom_value": 200.0, "service": {"name": "Mentoria", "value": 250.0}},
        ],
    }
    data.update(overrides)
    return Proposal.model_validate(data)


def draw_stroke(workflow: ProposalWorkflow) -> None:
    for event in (
        GestureEvent(type="mousedown", client_x=10, client_y=10),
        GestureEvent(type="mousemove", client_x=40, client_y=30),
        GestureEvent(type="mousemove", client_x=80, client_y=20),
        GestureEvent(type="mouseup"),
    ):
        workflow.gesture(event)


@pytest.fixture
def settings() -> Settings:
    return Settings(signature_init_attempts=2, signature_init_delay=0)


@pytest.fixture
def gateway() -> InMemoryProposalGateway:
    return InMemoryProposalGateway({TOKEN: make_proposal()})


@pytest.fixture
def surface() -> StaticSurface:
    return StaticSurface(width=300, height=250, device_pixel_ratio=2.0)


@pytest.fixture
def workflow_factory(gateway, settings, surface) -> Callable[..., ProposalWorkflow]:
    def factory(token: str = TOKEN, **kwargs: Any) -> ProposalWorkflow:
        kwargs.setdefault("settings", settings)
        kwargs.setdefault("clock", lambda: NOW)
        kwargs.setdefault("surface", surface)
        return ProposalWorkflow(token, kwargs.pop("gateway", gateway), **kwargs)

    return factory
