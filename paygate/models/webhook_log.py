"""WebhookLog model for tracking merchant notifications."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.types import JSON

from paygate.core.database import Base
from paygate.models.shared import UUIDType, generate_uuid

MAX_WEBHOOK_ATTEMPTS = 5


class WebhookLog(Base):
    """One notification lineage for one event.

    ``payload`` is written once and replayed verbatim by retries.
    ``next_retry_at`` is null once delivered or when attempts are exhausted.
    """

    __tablename__ = "webhook_logs"
    __table_args__ = (
        Index("ix_webhook_logs_retry", "is_delivered", "next_retry_at"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_id = Column(
        UUIDType, ForeignKey("merchants.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    payment_id = Column(
        UUIDType, ForeignKey("payments.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    event = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)
    url = Column(String(2048), nullable=False)

    attempts = Column(Integer, nullable=False, default=0)
    is_delivered = Column(Boolean, nullable=False, default=False)
    http_status = Column(Integer, nullable=True)
    response = Column(Text, nullable=True)
    next_retry_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
