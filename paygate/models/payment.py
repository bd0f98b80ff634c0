"""Payment model - one expected on-chain payment to a generated address."""

from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from paygate.core.database import Base
from paygate.models.shared import UUIDType, generate_uuid


class PaymentStatus(str, Enum):
    """Payment status enum."""

    PENDING = "pending"
    DETECTED = "detected"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    UNDERPAID = "underpaid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PaymentNetwork(str, Enum):
    """Blockchains a payment can be settled on."""

    TXC = "txc"
    ETH = "eth"
    BASE = "base"
    BSC = "bsc"
    POLYGON = "polygon"


class PaymentCurrency(str, Enum):
    """Crypto currencies a payment can be requested in."""

    TXC = "TXC"
    ETH = "ETH"
    USDC = "USDC"
    USDT = "USDT"


ACTIVE_PAYMENT_STATUSES = (
    PaymentStatus.PENDING,
    PaymentStatus.DETECTED,
    PaymentStatus.CONFIRMING,
)


class Payment(Base):
    """Payment model - the unit of settlement.

    ``version`` is managed by the mapper; every flush checks it, so a loop
    update against a row changed concurrently raises ``StaleDataError``.
    """

    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("merchant_id", "external_id", name="uq_payments_merchant_external_id"),
        Index("ix_payments_status_expires_at", "status", "expires_at"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_id = Column(
        UUIDType, ForeignKey("merchants.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    external_id = Column(String(255), nullable=True)

    network = Column(String(20), nullable=False, default=PaymentNetwork.TXC.value)
    currency = Column(String(10), nullable=False, default=PaymentCurrency.TXC.value)
    payment_address = Column(String(255), nullable=False, index=True)

    # Amounts in the currency's smallest unit
    amount_requested = Column(BigInteger, nullable=False)
    amount_paid = Column(BigInteger, nullable=False, default=0)

    # Fiat reference captured at creation (smallest fiat unit, rate x 10^8)
    fiat_amount = Column(BigInteger, nullable=True)
    fiat_currency = Column(String(3), nullable=True)
    exchange_rate = Column(BigInteger, nullable=True)

    required_confirmations = Column(Integer, nullable=False)
    current_confirmations = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    customer_email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    success_url = Column(Text, nullable=True)
    cancel_url = Column(Text, nullable=True)
    payment_metadata = Column(JSON, nullable=True, default=dict)

    version = Column(Integer, nullable=False)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    detected_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    merchant = relationship("Merchant")
    transactions = relationship(
        "LedgerTransaction", back_populates="payment", order_by="LedgerTransaction.created_at"
    )

    __mapper_args__ = {"version_id_col": version}
