"""Payment schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from paygate.models.payment import PaymentCurrency, PaymentNetwork, PaymentStatus


class PaymentCreate(BaseModel):
    """Schema for creating a payment.

    ``amount`` is in the crypto's smallest unit, or in the smallest fiat unit
    (cents) when ``fiat_currency`` is set.
    """

    amount: int = Field(gt=0)
    network: PaymentNetwork = PaymentNetwork.TXC
    currency: PaymentCurrency = PaymentCurrency.TXC
    fiat_currency: str | None = Field(default=None, min_length=3, max_length=3)
    external_id: str | None = Field(default=None, max_length=255)
    expiration_minutes: int | None = Field(default=None, gt=0)
    customer_email: str | None = Field(default=None, max_length=255)
    customer_name: str | None = Field(default=None, max_length=255)
    success_url: str | None = None
    cancel_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentFilter(BaseModel):
    """Typed filter for listing payments."""

    model_config = ConfigDict(extra="forbid")

    merchant_id: UUID | None = None
    status: PaymentStatus | None = None
    statuses: list[PaymentStatus] | None = None
    network: PaymentNetwork | None = None
    currency: PaymentCurrency | None = None
    external_id: str | None = None
    payment_address: str | None = None
    customer_email: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    expires_after: datetime | None = None
    include_deleted: bool = False

    @model_validator(mode="after")
    def validate_ranges(self) -> "PaymentFilter":
        if self.status is not None and self.statuses is not None:
            raise ValueError("status and statuses are mutually exclusive")
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValueError("from_date must not be after to_date")
        return self


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    merchant_id: UUID
    external_id: str | None = None
    network: str
    currency: str
    payment_address: str
    amount_requested: int
    amount_paid: int
    fiat_amount: int | None = None
    fiat_currency: str | None = None
    exchange_rate: int | None = None
    required_confirmations: int
    current_confirmations: int
    status: str
    expires_at: datetime
    detected_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class IncomingTransaction(BaseModel):
    """A transaction paying a payment address, as seen on chain right now."""

    txid: str
    amount: int
    confirmations: int
    confirmed: bool


class PaymentAddressCheck(BaseModel):
    """Live explorer view of a payment address."""

    payment_id: UUID
    payment_address: str
    confirmed_balance: int
    unconfirmed_balance: int
    transactions: list[IncomingTransaction]
