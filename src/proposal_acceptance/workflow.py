from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Sequence

from pydantic import BaseModel, ValidationError

from .calculator import AcceptanceTerms, calculate_terms
from .config import Settings
from .errors import (
    ProposalError,
    ProposalExpiredError,
    ProposalNotFoundError,
    ProposalValidationError,
)
from .gateway import ProposalGateway
from .ledger import SelectionLedger
from .logging_config import redact_token
from .masks import mask_document, mask_phone
from .models.proposal import DEFAULT_MAX_INSTALLMENTS, Proposal, ProposalLineItem, ProposalStatus
from .models.submission import (
    ConfirmationPayload,
    ContactDetails,
    RejectionPayload,
    SelectionPayload,
    SignaturePayload,
)
from .notices import NoticeBoard
from .payment import (
    PaymentMethodOption,
    PaymentSelection,
    PaymentType,
    available_methods,
    installment_options,
)
from .signature import DrawingSurface, GestureAdapter, GestureEvent, SignaturePad

logger = logging.getLogger(__name__)

SIMPLE_PAYMENT_TYPE = PaymentType.immediate
SIMPLE_PAYMENT_METHOD = "Boleto"


class WorkflowStep(str, Enum):
    view = "view"
    selecting = "selecting"
    signing = "signing"
    confirming = "confirming"
    completed = "completed"
    rejected = "rejected"


TERMINAL_STEPS = frozenset({WorkflowStep.completed, WorkflowStep.rejected})
LEDGER_EDIT_STEPS = frozenset({WorkflowStep.view, WorkflowStep.selecting, WorkflowStep.signing})


class ProposalKind(str, Enum):
    full = "full"
    simple = "simple"

    @classmethod
    def for_proposal(cls, proposal: Proposal) -> "ProposalKind":
        return cls.simple if proposal.is_recruitment else cls.full


class ContactForm(BaseModel):
    """Contact fields as typed so far; validated into ContactDetails on signing."""

    client_name: str = ""
    client_email: str = ""
    client_phone: str = ""
    client_document: str = ""
    client_observations: str = ""

    @classmethod
    def prefill(cls, proposal: Proposal) -> "ContactForm":
        client = proposal.client
        name = proposal.client_name or ""
        email = proposal.client_email or ""
        phone = ""
        document = ""
        if client is not None:
            email = client.email or email
            phone = client.phone or ""
            if client.type == "PJ" and client.company is not None:
                name = client.company.trade_name or client.company.company_name or name
                document = client.company.cnpj or ""
            elif client.type == "PF" and client.person is not None:
                name = client.person.full_name or name
                document = client.person.cpf or ""
        return cls(
            client_name=name,
            client_email=email,
            client_phone=mask_phone(phone),
            client_document=mask_document(document),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProposalWorkflow:
    """Drives one client through reviewing and deciding on a proposal.

    Every public action returns ``True`` when it moved the workflow and
    ``False`` otherwise; failures never raise; they are logged and posted to
    ``notices`` and the step stays where it was so the client can retry.
    """

    def __init__(
        self,
        token: str | None,
        gateway: ProposalGateway,
        *,
        kind: ProposalKind | None = None,
        settings: Settings | None = None,
        notices: NoticeBoard | None = None,
        clock: Callable[[], datetime] = _utcnow,
        surface: DrawingSurface | None = None,
    ) -> None:
        self.token = (token or "").strip()
        self.kind = kind
        self.notices = notices or NoticeBoard()
        self.surface = surface
        self._gateway = gateway
        self._settings = settings or Settings()
        self._clock = clock

        self.step = WorkflowStep.view
        self.proposal: Proposal | None = None
        self.ledger = SelectionLedger()
        self.payment = PaymentSelection()
        self.contact = ContactForm()
        self.client_observations = ""
        self.pad = self._new_pad()

        self.expired = False
        self.days_until_expiration: int | None = None
        self.loading = False
        self.not_found = False
        self.is_submitting = False
        self.redirect_to: str | None = None

        self._generation = 0
        self._closed = False
        self._surface_task: asyncio.Task[bool] | None = None

    # -- derived state -----------------------------------------------------

    @property
    def items(self) -> Sequence[ProposalLineItem]:
        return self.proposal.services if self.proposal is not None else ()

    @property
    def is_terminal(self) -> bool:
        return self.step in TERMINAL_STEPS

    @property
    def available(self) -> bool:
        """Whether the proposal is open: sent and not past its expiry."""
        return (
            self.proposal is not None
            and self.proposal.status is ProposalStatus.sent
            and not self.expired
        )

    @property
    def can_advance(self) -> bool:
        return self.available and not self.is_terminal

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def terms(self) -> AcceptanceTerms:
        # Recomputed on every read so payment changes are reflected at once
        return calculate_terms(self.items, self.ledger, self.payment)

    @property
    def max_installments(self) -> int:
        return self.proposal.max_installments if self.proposal is not None else DEFAULT_MAX_INSTALLMENTS

    # -- loading -----------------------------------------------------------

    async def load(self) -> bool:
        if not self.token:
            logger.warning("Missing proposal token, leaving acceptance flow")
            self.redirect_to = self._settings.exit_url
            self.notices.error("Invalid proposal link")
            return False
        if self._closed:
            return False

        self._generation += 1
        generation = self._generation
        self.loading = True
        try:
            proposal = await asyncio.to_thread(self._gateway.fetch_proposal, self.token)
        except ProposalError as exc:
            if self._owns(generation):
                self.loading = False
                self.not_found = isinstance(exc, ProposalNotFoundError)
                if self.not_found:
                    # Terminal for this link, not a failure to retry
                    logger.warning("Proposal not found", extra=self._log_context())
                    self.notices.info(exc.message)
                else:
                    self._report("load", exc)
            return False

        if not self._owns(generation):
            logger.info("Discarding proposal load for a closed session", extra=self._log_context())
            return False

        self.loading = False
        self.not_found = False
        self._adopt(proposal)
        if self.kind is None:
            self.kind = ProposalKind.for_proposal(proposal)
        self.ledger = SelectionLedger.seed(proposal.services)
        self.payment = PaymentSelection()
        self.contact = ContactForm.prefill(proposal) if self.kind is ProposalKind.full else ContactForm()
        self.client_observations = ""
        self.pad = self._new_pad()
        self._enter_initial_step()

        logger.info(
            "Loaded proposal",
            extra={**self._log_context(), "proposal_id": proposal.id, "status": proposal.status.value,
                   "expired": self.expired, "line_items": len(proposal.services)},
        )

        if self.kind is ProposalKind.simple and self.can_advance:
            self._prepare_surface()
        return True

    def close(self) -> None:
        """Leave the flow; results of calls still in flight are dropped."""
        self._closed = True
        self._generation += 1
        if self._surface_task is not None and not self._surface_task.done():
            self._surface_task.cancel()

    # -- transitions -------------------------------------------------------

    def start_selection(self) -> bool:
        try:
            self._require_kind(ProposalKind.full)
            self._require_step(WorkflowStep.view)
            self._require_forward()
        except ProposalError as exc:
            self._report("start_selection", exc)
            return False
        self.step = WorkflowStep.selecting
        return True

    async def save_selection(self, observations: str | None = None) -> bool:
        if self._busy("save_selection"):
            return False
        try:
            self._require_kind(ProposalKind.full)
            self._require_step(WorkflowStep.selecting)
            self._require_forward()
            self._require_selection()
        except ProposalError as exc:
            self._report("save_selection", exc)
            return False

        if observations is not None:
            self.client_observations = observations
        payload = SelectionPayload(
            selected_services=self.ledger.entries(),
            client_observations=self.client_observations,
        )
        return await self._submit(
            "save_selection",
            self._gateway.submit_selection,
            payload,
            success="Selection saved",
            next_step=WorkflowStep.signing,
        )

    def start_signing(self, surface: DrawingSurface | None = None) -> bool:
        try:
            if self.step not in (WorkflowStep.view, WorkflowStep.selecting):
                raise ProposalValidationError("Signing is not available at this step")
            self._require_forward()
        except ProposalError as exc:
            self._report("start_signing", exc)
            return False
        if surface is not None:
            self.surface = surface
        self._enter(WorkflowStep.signing)
        return True

    async def sign(self) -> bool:
        if self._busy("sign"):
            return False
        try:
            self._require_step(WorkflowStep.signing)
            self._require_forward()
            if not self.pad.has_ink:
                raise ProposalValidationError("A signature is required")
            payload = self._signature_payload(self._validated_contact())
        except ProposalError as exc:
            self._report("sign", exc)
            return False

        if self.kind is ProposalKind.full:
            next_step = WorkflowStep.confirming
            if payload.is_counterproposal:
                message = "Counter-proposal signed. The company will get back to you shortly."
            else:
                message = "Proposal signed"
        else:
            next_step = WorkflowStep.completed
            message = "Proposal signed"
        return await self._submit(
            "sign", self._gateway.submit_signature, payload, success=message, next_step=next_step
        )

    async def confirm(self, observations: str | None = None) -> bool:
        if self._busy("confirm"):
            return False
        try:
            self._require_loaded()
            self._require_step(WorkflowStep.confirming)
            if self.expired:
                raise ProposalExpiredError()
        except ProposalError as exc:
            self._report("confirm", exc)
            return False

        payload = ConfirmationPayload(client_observations=observations or "")
        return await self._submit(
            "confirm",
            self._gateway.confirm_acceptance,
            payload,
            success="Proposal confirmed",
            next_step=WorkflowStep.completed,
        )

    async def reject(self, reason: str | None = None, *, confirmed: bool = True) -> bool:
        if self._busy("reject"):
            return False
        if not confirmed:
            logger.info("Rejection cancelled by client", extra=self._log_context())
            return False
        try:
            self._require_loaded()
            if self.is_terminal:
                raise ProposalValidationError("This proposal has already been decided")
        except ProposalError as exc:
            self._report("reject", exc)
            return False

        payload = RejectionPayload(rejection_reason=(reason or "").strip())
        return await self._submit(
            "reject",
            self._gateway.submit_rejection,
            payload,
            success="Proposal rejected",
            next_step=WorkflowStep.rejected,
        )

    # -- local edits -------------------------------------------------------

    @property
    def ledger_editable(self) -> bool:
        return self.proposal is not None and self.step in LEDGER_EDIT_STEPS

    def edit_line_item(
        self,
        service_id: int,
        *,
        included: bool | None = None,
        toggle: bool = False,
        note: str | None = None,
    ) -> bool:
        """Change one line item. Unknown ids raise ``KeyError``."""
        if not self._ledger_open("edit_line_item"):
            return False
        if service_id not in self.ledger:
            raise KeyError(service_id)
        if toggle:
            self.ledger.toggle(service_id)
        elif included is not None:
            self.ledger.set_selected(service_id, included)
        if note is not None:
            self.ledger.set_note(service_id, note)
        return True

    def select_all(self, included: bool) -> bool:
        if not self._ledger_open("select_all"):
            return False
        self.ledger.set_all(included)
        return True

    def update_contact(
        self,
        *,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        document: str | None = None,
        observations: str | None = None,
    ) -> ContactForm:
        changes: dict[str, str] = {}
        if name is not None:
            changes["client_name"] = name
        if email is not None:
            changes["client_email"] = email.strip()
        if phone is not None:
            changes["client_phone"] = mask_phone(phone)
        if document is not None:
            changes["client_document"] = mask_document(document)
        if observations is not None:
            changes["client_observations"] = observations
        self.contact = self.contact.model_copy(update=changes)
        return self.contact

    def choose_payment_type(self, payment_type: PaymentType | str) -> bool:
        try:
            self.payment.switch_type(PaymentType(payment_type))
        except ValueError:
            self._report("payment_type", ProposalValidationError(f"Unknown payment type '{payment_type}'"))
            return False
        return True

    def choose_payment_method(self, method: str) -> bool:
        try:
            self.payment.switch_method(method)
        except ProposalError as exc:
            self._report("payment_method", exc)
            return False
        return True

    def choose_installments(self, value: object) -> bool:
        try:
            return self.payment.request_installments(value, self.max_installments) is not None
        except ProposalError as exc:
            self._report("installments", exc)
            return False

    def available_payment_methods(self) -> Sequence[PaymentMethodOption]:
        return available_methods(self.payment.payment_type)

    def installment_options(self) -> list[int]:
        return installment_options(self.max_installments)

    # -- signature ---------------------------------------------------------

    def attach_surface(self, surface: DrawingSurface) -> None:
        self.surface = surface
        if self.step is WorkflowStep.signing or (self.kind is ProposalKind.simple and self.can_advance):
            self._prepare_surface()

    async def wait_for_surface(self) -> bool:
        if self._surface_task is not None:
            return await self._surface_task
        return self.pad.initialized

    def gesture(self, event: GestureEvent) -> bool:
        if self.step is not WorkflowStep.signing:
            return False
        return GestureAdapter(self.pad).dispatch(event)

    def clear_signature(self) -> None:
        self.pad.clear()

    # -- internals ---------------------------------------------------------

    async def _submit(
        self,
        action: str,
        send: Callable[[str, BaseModel], None],
        payload: BaseModel,
        *,
        success: str,
        next_step: WorkflowStep,
    ) -> bool:
        generation = self._generation
        self.is_submitting = True
        try:
            try:
                await asyncio.to_thread(send, self.token, payload)
            except ProposalError as exc:
                if self._owns(generation):
                    self._report(action, exc)
                return False

            if not self._owns(generation):
                logger.info("Discarding %s result for a closed session", action, extra=self._log_context())
                return False

            logger.info("Proposal %s accepted", action, extra=self._log_context())
            self.notices.success(success)
            await self._refresh(generation)
            if not self._owns(generation):
                return False
            self._enter(next_step)
            return True
        finally:
            self.is_submitting = False

    async def _refresh(self, generation: int) -> None:
        try:
            proposal = await asyncio.to_thread(self._gateway.fetch_proposal, self.token)
        except ProposalError as exc:
            # The commit went through; keep the last known proposal
            logger.warning(
                "Could not reload proposal after commit",
                extra={**self._log_context(), "error": str(exc)},
            )
            return
        if self._owns(generation):
            self._adopt(proposal)

    def _adopt(self, proposal: Proposal) -> None:
        now = self._clock()
        self.proposal = proposal
        self.expired = proposal.is_expired(now)
        self.days_until_expiration = proposal.days_until_expiration(now)

    def _enter_initial_step(self) -> None:
        assert self.proposal is not None
        status = self.proposal.status
        if status is ProposalStatus.accepted:
            self.step = WorkflowStep.completed
            self.notices.info("This proposal has already been accepted")
        elif status is ProposalStatus.rejected:
            self.step = WorkflowStep.rejected
            self.notices.info("This proposal was rejected")
        else:
            self.step = WorkflowStep.view
            if status is not ProposalStatus.sent:
                self.notices.warning("This proposal is not available")
            elif self.expired:
                self.notices.info(ProposalExpiredError.notice)

    def _enter(self, step: WorkflowStep) -> None:
        self.step = step
        if step is WorkflowStep.signing and not self.pad.initialized:
            self._prepare_surface()

    def _prepare_surface(self) -> None:
        if self.surface is None or self.pad.initialized:
            return
        if self.pad.try_initialize(self.surface):
            return
        if self._surface_task is not None and not self._surface_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, signature surface will initialise on next attach")
            return
        self._surface_task = loop.create_task(
            self.pad.initialize(
                self.surface,
                attempts=self._settings.signature_init_attempts,
                delay=self._settings.signature_init_delay,
            )
        )

    def _new_pad(self) -> SignaturePad:
        return SignaturePad(height=self._settings.signature_height)

    def _validated_contact(self) -> ContactDetails:
        try:
            return ContactDetails.model_validate(self.contact.model_dump())
        except ValidationError as exc:
            fields = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
            raise ProposalValidationError(
                f"Please fill in the required fields: {', '.join(fields)}"
            ) from exc

    def _signature_payload(self, contact: ContactDetails) -> SignaturePayload:
        assert self.proposal is not None
        if self.kind is ProposalKind.simple:
            final_value = max(self.proposal.total_value or 0.0, 0.0)
            if final_value <= 0 and not self.proposal.is_recruitment:
                raise ProposalValidationError("Invalid proposal value, please reload the page")
            return SignaturePayload(
                signature_data=self.pad.export().image,
                **contact.model_dump(),
                final_value=final_value,
                payment_type=SIMPLE_PAYMENT_TYPE.value,
                payment_method=SIMPLE_PAYMENT_METHOD,
                installments=1,
            )

        self._require_selection()
        if not self.payment.payment_method:
            raise ProposalValidationError("Choose a payment method")
        installments = self.payment.installments_for_submission()
        if installments > self.proposal.max_installments:
            raise ProposalValidationError(
                f"The maximum number of installments for this proposal is {self.proposal.max_installments}"
            )
        terms = self.terms
        return SignaturePayload(
            signature_data=self.pad.export().image,
            **contact.model_dump(),
            final_value=terms.final_total,
            payment_type=self.payment.payment_type.value,
            payment_method=self.payment.payment_method,
            installments=installments,
            discount_applied=terms.discount_amount,
            is_counterproposal=terms.is_counterproposal,
            selected_services=self.ledger.entries(),
        )

    def _require_loaded(self) -> None:
        if self.proposal is None:
            raise ProposalNotFoundError()

    def _require_kind(self, kind: ProposalKind) -> None:
        if self.kind is not kind:
            raise ProposalValidationError("This step is not part of this proposal's flow")

    def _require_step(self, step: WorkflowStep) -> None:
        if self.step is not step:
            raise ProposalValidationError(f"Action not available while {self.step.value}")

    def _require_forward(self) -> None:
        self._require_loaded()
        if self.is_terminal:
            raise ProposalValidationError("This proposal has already been decided")
        if self.expired:
            raise ProposalExpiredError()
        if self.proposal.status is not ProposalStatus.sent:
            raise ProposalValidationError("This proposal is not available")

    def _ledger_open(self, action: str) -> bool:
        if self.ledger_editable:
            return True
        self._report(action, ProposalValidationError("The selection can no longer be changed"))
        return False

    def _require_selection(self) -> None:
        if not self.ledger.has_selection():
            raise ProposalValidationError("Select at least one service")

    def _busy(self, action: str) -> bool:
        if self.is_submitting:
            logger.info("Ignoring %s while a submission is in flight", action, extra=self._log_context())
            return True
        return False

    def _owns(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _report(self, action: str, exc: ProposalError) -> None:
        level = logging.WARNING if isinstance(exc, (ProposalValidationError, ProposalExpiredError)) else logging.ERROR
        logger.log(
            level,
            "Proposal %s failed: %s",
            action,
            exc,
            extra={**self._log_context(), "error_type": type(exc).__name__},
        )
        self.notices.error(exc.message)

    def _log_context(self) -> dict[str, object]:
        return {"token": redact_token(self.token), "step": self.step.value}


__all__ = ["ContactForm", "ProposalKind", "ProposalWorkflow", "WorkflowStep"]
