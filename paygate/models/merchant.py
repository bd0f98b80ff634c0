"""Merchant and MerchantNetwork models."""

from sqlalchemy import (
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


class Merchant(Base):
    """A merchant receiving payments and webhook notifications."""

    __tablename__ = "merchants"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)

    # Webhook configuration
    webhook_url = Column(String(2048), nullable=True)
    webhook_secret = Column(String(255), nullable=True)

    # Overrides for per-chain defaults
    default_expiration_minutes = Column(Integer, nullable=True)
    auto_confirmations = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    supported_networks = relationship(
        "MerchantNetwork", back_populates="merchant", cascade="all, delete-orphan"
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class MerchantNetwork(Base):
    """A network/currency pair a merchant accepts."""

    __tablename__ = "merchant_networks"
    __table_args__ = (
        UniqueConstraint("merchant_id", "network", "currency", name="uq_merchant_networks_pair"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_id = Column(
        UUIDType, ForeignKey("merchants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    network = Column(String(20), nullable=False)
    currency = Column(String(10), nullable=False)
    wallet_address = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    merchant = relationship("Merchant", back_populates="supported_networks")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
