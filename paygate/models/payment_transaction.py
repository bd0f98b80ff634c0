"""LedgerTransaction model - an observed on-chain transaction credited to a payment."""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from paygate.core.database import Base
from paygate.models.shared import UUIDType, generate_uuid


class LedgerTransaction(Base):
    """One chain transaction paying into a payment's address.

    ``amount`` is the sum of outputs paying the payment address and is fixed
    per transaction hash. ``is_dropped`` marks rows that vanished from the
    explorer's view of the address; dropped rows are excluded from totals.
    """

    __tablename__ = "payment_transactions"
    __table_args__ = (
        UniqueConstraint("tx_hash", "network", name="uq_payment_transactions_tx_hash_network"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    payment_id = Column(
        UUIDType, ForeignKey("payments.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    tx_hash = Column(String(128), nullable=False)
    network = Column(String(20), nullable=False)
    to_address = Column(String(255), nullable=False)

    amount = Column(BigInteger, nullable=False)
    confirmations = Column(Integer, nullable=False, default=0)
    block_number = Column(BigInteger, nullable=True)
    block_hash = Column(String(128), nullable=True)

    is_confirmed = Column(Boolean, nullable=False, default=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    is_dropped = Column(Boolean, nullable=False, default=False)
    dropped_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    payment = relationship("Payment", back_populates="transactions")
