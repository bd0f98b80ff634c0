"""Error taxonomy shared by the settlement engine."""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for payment gateway errors."""


class UpstreamUnavailable(GatewayError):
    """An external service (chain explorer, price API) could not be reached.

    Callers recover locally: skip the payment or cycle and try again on the
    next poll.
    """


class NotFound(GatewayError):
    """A payment, merchant or on-chain object does not exist."""


class DeliveryFailed(GatewayError):
    """A webhook delivery attempt did not get a success response."""

    def __init__(self, message: str, http_status: int | None = None):
        super().__init__(message)
        self.http_status = http_status


class InvariantViolation(GatewayError):
    """Stored ledger state contradicts what the chain reports."""


class PaymentStateError(GatewayError):
    """The requested operation is not valid for the payment's current status."""
