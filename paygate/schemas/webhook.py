"""Webhook log schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class WebhookLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    merchant_id: UUID
    payment_id: UUID | None = None
    event: str
    payload: dict[str, Any]
    url: str
    attempts: int
    is_delivered: bool
    http_status: int | None = None
    response: str | None = None
    next_retry_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class WebhookLogPage(BaseModel):
    logs: list[WebhookLogResponse]
    total: int
