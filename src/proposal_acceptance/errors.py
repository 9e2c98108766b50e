from __future__ import annotations


class ProposalError(Exception):
    """Base class for every failure surfaced by the acceptance flow."""

    notice = "Something went wrong while processing the proposal"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.notice)

    @property
    def message(self) -> str:
        return str(self)


class ProposalNotFoundError(ProposalError):
    notice = "Proposal not found or link expired"


class ProposalExpiredError(ProposalError):
    notice = "This proposal has expired"


class ProposalValidationError(ProposalError):
    notice = "Please review the highlighted fields"


class GatewayTransportError(ProposalError):
    notice = "Could not reach the proposal service, please try again"


__all__ = [
    "ProposalError",
    "ProposalNotFoundError",
    "ProposalExpiredError",
    "ProposalValidationError",
    "GatewayTransportError",
]
