from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol, Tuple

import requests
from pydantic import BaseModel, ValidationError

from .errors import GatewayTransportError, ProposalNotFoundError, ProposalValidationError
from .logging_config import redact_token
from .models.proposal import Proposal, ProposalStatus
from .models.submission import (
    ConfirmationPayload,
    RejectionPayload,
    SelectionPayload,
    SignaturePayload,
)

logger = logging.getLogger(__name__)


class ProposalGateway(Protocol):
    def fetch_proposal(self, token: str) -> Proposal:
        ...

    def submit_selection(self, token: str, payload: SelectionPayload) -> None:
        ...

    def submit_signature(self, token: str, payload: SignaturePayload) -> None:
        ...

    def confirm_acceptance(self, token: str, payload: ConfirmationPayload) -> None:
        ...

    def submit_rejection(self, token: str, payload: RejectionPayload) -> None:
        ...


def _wire(payload: BaseModel) -> dict[str, Any]:
    return payload.model_dump(mode="json", by_alias=True, exclude_none=True)


class HttpProposalGateway:
    """Client for the public proposal endpoints of the portal backend."""

    VALIDATION_STATUSES = frozenset({400, 409, 422})

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the gateway client.

        Args:
            base_url: API root, e.g. ``https://portal.example.com/api``
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self._base_url = f"{base_url.rstrip('/')}/public/proposals"
        self._timeout = timeout
        self._session = session or requests.Session()

    def fetch_proposal(self, token: str) -> Proposal:
        body = self._request("GET", token)
        try:
            return Proposal.model_validate(body.get("data") or {})
        except ValidationError as exc:
            logger.error(
                "Malformed proposal payload",
                extra={"token": redact_token(token), "errors": exc.errors(include_url=False)},
            )
            raise GatewayTransportError("The proposal service returned an unreadable proposal") from exc

    def submit_selection(self, token: str, payload: SelectionPayload) -> None:
        self._request("POST", f"select-services/{token}", _wire(payload))

    def submit_signature(self, token: str, payload: SignaturePayload) -> None:
        self._request("POST", f"sign/{token}", _wire(payload))

    def confirm_acceptance(self, token: str, payload: ConfirmationPayload) -> None:
        self._request("POST", f"confirm/{token}", _wire(payload))

    def submit_rejection(self, token: str, payload: RejectionPayload) -> None:
        self._request("POST", f"reject/{token}", _wire(payload))

    def _request(self, method: str, path: str, payload: Mapping[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self._base_url}/{path}"
        try:
            response = self._session.request(method, url, json=payload, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.warning("Proposal service unreachable", extra={"method": method, "error": str(exc)})
            raise GatewayTransportError() from exc

        body = self._decode(response)
        message = body.get("message") if isinstance(body, dict) else None

        if response.status_code == 404:
            raise ProposalNotFoundError(message or None)
        if response.status_code in self.VALIDATION_STATUSES:
            raise ProposalValidationError(message or None)
        if not response.ok:
            logger.warning(
                "Proposal service error",
                extra={"method": method, "status_code": response.status_code, "detail": message},
            )
            raise GatewayTransportError()
        if not isinstance(body, dict):
            raise GatewayTransportError("The proposal service returned an unexpected response")
        if not body.get("success", False):
            raise ProposalValidationError(message or None)
        return body

    def _decode(self, response: requests.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            if response.ok:
                raise GatewayTransportError("The proposal service returned an unexpected response")
            return {}


class InMemoryProposalGateway:
    """In-process stand-in for the backend, used in development and tests."""

    def __init__(self, proposals: Mapping[str, Proposal] | None = None) -> None:
        self._proposals: Dict[str, Proposal] = dict(proposals or {})
        self._lock = threading.Lock()
        self.calls: List[Tuple[str, str]] = []
        self.payloads: List[Tuple[str, BaseModel]] = []

    @classmethod
    def from_directory(cls, base_path: Path) -> "InMemoryProposalGateway":
        proposals: Dict[str, Proposal] = {}
        if base_path.is_dir():
            for file_path in sorted(base_path.glob("*.json")):
                with file_path.open("r", encoding="utf-8") as fp:
                    data = json.load(fp)
                proposals[file_path.stem] = Proposal.model_validate(data)
        logger.info("Loaded proposal fixtures", extra={"count": len(proposals), "path": str(base_path)})
        return cls(proposals)

    def add(self, token: str, proposal: Proposal) -> None:
        with self._lock:
            self._proposals[token] = proposal

    def fetch_proposal(self, token: str) -> Proposal:
        with self._lock:
            self.calls.append(("fetch", token))
            return self._get(token).model_copy(deep=True)

    def submit_selection(self, token: str, payload: SelectionPayload) -> None:
        with self._lock:
            self._record("select", token, payload)
            proposal = self._get(token)
            choices = {entry.service_id: entry for entry in payload.selected_services}
            services = []
            for item in proposal.services:
                entry = choices.get(item.service_id)
                if entry is not None:
                    item = item.model_copy(
                        update={"selected_by_client": entry.selected, "client_notes": entry.client_notes}
                    )
                services.append(item)
            self._proposals[token] = proposal.model_copy(update={"services": services})

    def submit_signature(self, token: str, payload: SignaturePayload) -> None:
        with self._lock:
            self._record("sign", token, payload)
            self._require_open(token)
            status = ProposalStatus.contraproposta if payload.is_counterproposal else ProposalStatus.signed
            self._update(token, status=status, accepted_value=payload.final_value, client_name=payload.client_name,
                         client_email=payload.client_email)

    def confirm_acceptance(self, token: str, payload: ConfirmationPayload) -> None:
        with self._lock:
            self._record("confirm", token, payload)
            proposal = self._get(token)
            if proposal.status not in (ProposalStatus.signed, ProposalStatus.contraproposta):
                raise ProposalValidationError("Only signed proposals can be confirmed")
            status = ProposalStatus.accepted if proposal.status is ProposalStatus.signed else proposal.status
            self._update(token, status=status)

    def submit_rejection(self, token: str, payload: RejectionPayload) -> None:
        with self._lock:
            self._record("reject", token, payload)
            proposal = self._get(token)
            if proposal.status in (ProposalStatus.accepted, ProposalStatus.rejected):
                raise ProposalValidationError("This proposal can no longer be rejected")
            self._update(token, status=ProposalStatus.rejected)

    def _get(self, token: str) -> Proposal:
        proposal = self._proposals.get(token)
        if proposal is None:
            raise ProposalNotFoundError()
        return proposal

    def _require_open(self, token: str) -> None:
        if self._get(token).status is not ProposalStatus.sent:
            raise ProposalValidationError("This proposal is not open for signature")

    def _record(self, action: str, token: str, payload: BaseModel) -> None:
        self.calls.append((action, token))
        self.payloads.append((action, payload))

    def _update(self, token: str, **changes: Any) -> None:
        self._proposals[token] = self._get(token).model_copy(update=changes)


__all__ = ["HttpProposalGateway", "InMemoryProposalGateway", "ProposalGateway"]
