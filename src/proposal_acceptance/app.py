from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, Field

from .calculator import AcceptanceTerms
from .config import Settings
from .gateway import ProposalGateway
from .logging_config import set_request_id
from .notices import Notice
from .payment import PaymentType
from .session_store import WorkflowSessionStore
from .signature import GestureEvent, StaticSurface
from .workflow import ContactForm, ProposalKind, ProposalWorkflow, WorkflowStep

logger = logging.getLogger(__name__)


class OpenSessionRequest(BaseModel):
    token: str = ""
    kind: ProposalKind | None = None


class LedgerUpdate(BaseModel):
    included: bool | None = None
    toggle: bool = False
    note: str | None = None


class SetAllRequest(BaseModel):
    included: bool


class ObservationsRequest(BaseModel):
    observations: str | None = None


class SurfaceGeometry(BaseModel):
    width: float = Field(ge=0)
    height: float = Field(default=0, ge=0)
    device_pixel_ratio: float = Field(default=1.0, gt=0)
    left: float = 0.0
    top: float = 0.0


class GestureBatch(BaseModel):
    events: Sequence[GestureEvent] = Field(default_factory=list)


class ContactUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    document: str | None = None
    observations: str | None = None


class PaymentUpdate(BaseModel):
    payment_type: PaymentType | None = None
    payment_method: str | None = None
    installments: int | str | None = None


class RejectRequest(BaseModel):
    reason: str | None = None
    confirmed: bool = False


class LedgerRow(BaseModel):
    service_id: int
    name: str
    category: str | None = None
    quantity: float
    unit_value: float
    total: float
    included: bool
    note: str


class ProposalSummary(BaseModel):
    id: int
    title: str
    description: str | None = None
    status: str
    status_label: str
    total_value: float
    expires_at: datetime | None = None
    max_installments: int


class PaymentMethodView(BaseModel):
    value: str
    label: str
    installable: bool


class PaymentView(BaseModel):
    payment_type: PaymentType
    payment_method: str
    installments: int | None = None
    methods: list[PaymentMethodView]
    installment_options: list[int]


class SessionView(BaseModel):
    session_id: str
    step: WorkflowStep
    kind: ProposalKind | None = None
    available: bool
    expired: bool
    not_found: bool
    days_until_expiration: int | None = None
    is_submitting: bool
    proposal: ProposalSummary | None = None
    ledger: list[LedgerRow] = Field(default_factory=list)
    all_selected: bool
    some_selected: bool
    selected_count: int
    terms: AcceptanceTerms | None = None
    payment: PaymentView
    contact: ContactForm
    has_ink: bool
    signature_ready: bool
    notices: list[Notice] = Field(default_factory=list)


class ActionResponse(BaseModel):
    accepted: bool
    session: SessionView


def describe_session(session_id: str, workflow: ProposalWorkflow) -> SessionView:
    proposal = workflow.proposal
    summary = None
    rows: list[LedgerRow] = []
    if proposal is not None:
        summary = ProposalSummary(
            id=proposal.id,
            title=proposal.title,
            description=proposal.description,
            status=proposal.status.value,
            status_label=proposal.status_label,
            total_value=proposal.total_value,
            expires_at=proposal.expires_at,
            max_installments=proposal.max_installments,
        )
        rows = [
            LedgerRow(
                service_id=item.service_id,
                name=item.name,
                category=item.service.category,
                quantity=item.quantity,
                unit_value=item.unit_value,
                total=item.total,
                included=workflow.ledger.is_selected(item.key),
                note=workflow.ledger.note(item.key),
            )
            for item in proposal.services
        ]

    payment = workflow.payment
    return SessionView(
        session_id=session_id,
        step=workflow.step,
        kind=workflow.kind,
        available=workflow.available,
        expired=workflow.expired,
        not_found=workflow.not_found,
        days_until_expiration=workflow.days_until_expiration,
        is_submitting=workflow.is_submitting,
        proposal=summary,
        ledger=rows,
        all_selected=workflow.ledger.all_selected(),
        some_selected=workflow.ledger.some_selected(),
        selected_count=workflow.ledger.selected_count(),
        terms=workflow.terms if proposal is not None else None,
        payment=PaymentView(
            payment_type=payment.payment_type,
            payment_method=payment.payment_method,
            installments=payment.installments,
            methods=[
                PaymentMethodView(value=option.value, label=option.label, installable=option.installable)
                for option in workflow.available_payment_methods()
            ],
            installment_options=workflow.installment_options(),
        ),
        contact=workflow.contact,
        has_ink=workflow.pad.has_ink,
        signature_ready=workflow.pad.initialized,
        notices=workflow.notices.drain(),
    )


def create_app(
    *,
    settings: Settings,
    gateway: ProposalGateway,
    store: WorkflowSessionStore | None = None,
) -> FastAPI:
    """Build the HTTP surface of the public acceptance flow."""
    sessions = store or WorkflowSessionStore(ttl=settings.session_ttl)
    app = FastAPI(title="Proposal Acceptance API", version="0.1.0")
    app.state.sessions = sessions

    @app.middleware("http")
    async def assign_request_id(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        set_request_id(request_id)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    def _workflow(session_id: str) -> ProposalWorkflow:
        workflow = sessions.get_session(session_id)
        if workflow is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return workflow

    def _respond(session_id: str, workflow: ProposalWorkflow, accepted: bool) -> ActionResponse:
        return ActionResponse(accepted=accepted, session=describe_session(session_id, workflow))

    @app.post("/v1/sessions", response_model=ActionResponse)
    async def open_session(request: OpenSessionRequest) -> Any:
        session_id, workflow = sessions.create_session(
            lambda: ProposalWorkflow(request.token, gateway, kind=request.kind, settings=settings)
        )
        loaded = await workflow.load()
        if workflow.redirect_to:
            sessions.discard_session(session_id)
            return RedirectResponse(workflow.redirect_to, status_code=303)
        if workflow.proposal is None:
            # Nothing to act on; the client has to open the link again
            response = _respond(session_id, workflow, loaded)
            sessions.discard_session(session_id)
            logger.info("Dropped session without a proposal", extra={"not_found": workflow.not_found})
            return response
        logger.info("Opened acceptance session", extra={"session_id": session_id, "loaded": loaded})
        return _respond(session_id, workflow, loaded)

    @app.get("/v1/sessions/{session_id}", response_model=ActionResponse)
    async def get_session(session_id: str) -> ActionResponse:
        return _respond(session_id, _workflow(session_id), True)

    @app.delete("/v1/sessions/{session_id}", status_code=204)
    async def close_session(session_id: str) -> Response:
        if not sessions.discard_session(session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        return Response(status_code=204)

    @app.post("/v1/sessions/{session_id}/selection:start", response_model=ActionResponse)
    async def start_selection(session_id: str) -> ActionResponse:
        workflow = _workflow(session_id)
        return _respond(session_id, workflow, workflow.start_selection())

    @app.put("/v1/sessions/{session_id}/ledger/{service_id}", response_model=ActionResponse)
    async def update_ledger(session_id: str, service_id: int, update: LedgerUpdate) -> ActionResponse:
        workflow = _workflow(session_id)
        try:
            accepted = workflow.edit_line_item(
                service_id, included=update.included, toggle=update.toggle, note=update.note
            )
        except KeyError:
            raise HTTPException(status_code=404, detail="Line item not found")
        return _respond(session_id, workflow, accepted)

    @app.post("/v1/sessions/{session_id}/ledger:set-all", response_model=ActionResponse)
    async def set_all(session_id: str, request: SetAllRequest) -> ActionResponse:
        workflow = _workflow(session_id)
        return _respond(session_id, workflow, workflow.select_all(request.included))

    @app.post("/v1/sessions/{session_id}/selection:save", response_model=ActionResponse)
    async def save_selection(session_id: str, request: ObservationsRequest) -> ActionResponse:
        workflow = _workflow(session_id)
        accepted = await workflow.save_selection(request.observations)
        return _respond(session_id, workflow, accepted)

    @app.put("/v1/sessions/{session_id}/contact", response_model=ActionResponse)
    async def update_contact(session_id: str, update: ContactUpdate) -> ActionResponse:
        workflow = _workflow(session_id)
        workflow.update_contact(**update.model_dump())
        return _respond(session_id, workflow, True)

    @app.put("/v1/sessions/{session_id}/payment", response_model=ActionResponse)
    async def update_payment(session_id: str, update: PaymentUpdate) -> ActionResponse:
        workflow = _workflow(session_id)
        accepted = True
        if update.payment_type is not None:
            accepted = workflow.choose_payment_type(update.payment_type) and accepted
        if update.payment_method is not None:
            accepted = workflow.choose_payment_method(update.payment_method) and accepted
        if update.installments is not None:
            accepted = workflow.choose_installments(update.installments) and accepted
        return _respond(session_id, workflow, accepted)

    @app.post("/v1/sessions/{session_id}/signing:start", response_model=ActionResponse)
    async def start_signing(session_id: str, geometry: SurfaceGeometry | None = None) -> ActionResponse:
        workflow = _workflow(session_id)
        surface = StaticSurface(**geometry.model_dump()) if geometry is not None else None
        return _respond(session_id, workflow, workflow.start_signing(surface))

    @app.put("/v1/sessions/{session_id}/signature/surface", response_model=ActionResponse)
    async def attach_surface(session_id: str, geometry: SurfaceGeometry) -> ActionResponse:
        workflow = _workflow(session_id)
        workflow.attach_surface(StaticSurface(**geometry.model_dump()))
        return _respond(session_id, workflow, workflow.pad.initialized)

    @app.post("/v1/sessions/{session_id}/signature/gestures", response_model=ActionResponse)
    async def record_gestures(session_id: str, batch: GestureBatch) -> ActionResponse:
        workflow = _workflow(session_id)
        handled = [workflow.gesture(event) for event in batch.events]
        return _respond(session_id, workflow, bool(handled) and all(handled))

    @app.post("/v1/sessions/{session_id}/signature:clear", response_model=ActionResponse)
    async def clear_signature(session_id: str) -> ActionResponse:
        workflow = _workflow(session_id)
        workflow.clear_signature()
        return _respond(session_id, workflow, True)

    @app.post("/v1/sessions/{session_id}/signature:submit", response_model=ActionResponse)
    async def submit_signature(session_id: str) -> ActionResponse:
        workflow = _workflow(session_id)
        return _respond(session_id, workflow, await workflow.sign())

    @app.post("/v1/sessions/{session_id}/confirm", response_model=ActionResponse)
    async def confirm(session_id: str, request: ObservationsRequest) -> ActionResponse:
        workflow = _workflow(session_id)
        return _respond(session_id, workflow, await workflow.confirm(request.observations))

    @app.post("/v1/sessions/{session_id}/reject", response_model=ActionResponse)
    async def reject(session_id: str, request: RejectRequest) -> ActionResponse:
        workflow = _workflow(session_id)
        accepted = await workflow.reject(request.reason, confirmed=request.confirmed)
        return _respond(session_id, workflow, accepted)

    @app.get("/health")
    async def healthcheck() -> JSONResponse:
        return JSONResponse({"status": "ok", "sessions": len(sessions)})

    return app


__all__ = ["create_app", "describe_session", "SessionView", "ActionResponse"]
