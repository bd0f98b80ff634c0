"""Webhook log repository for data access."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from paygate.models.webhook_delivery_attempt import WebhookDeliveryAttempt
from paygate.models.webhook_log import MAX_WEBHOOK_ATTEMPTS, WebhookLog

RESPONSE_MAX_LENGTH = 1000


class WebhookLogRepository:
    """Repository for WebhookLog model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        merchant_id: UUID,
        event: str,
        payload: dict[str, Any],
        url: str,
        payment_id: UUID | None = None,
    ) -> WebhookLog:
        """Create a new webhook log before the first delivery attempt."""
        log = WebhookLog(
            merchant_id=merchant_id,
            payment_id=payment_id,
            event=event,
            payload=payload,
            url=url,
            attempts=0,
            is_delivered=False,
        )
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def get_by_id(self, log_id: UUID) -> WebhookLog | None:
        """Get a webhook log by ID."""
        return self.db.query(WebhookLog).filter(WebhookLog.id == log_id).first()

    def get_by_payment(self, payment_id: UUID) -> list[WebhookLog]:
        """Get all webhook logs for a payment, newest first."""
        return (
            self.db.query(WebhookLog)
            .filter(WebhookLog.payment_id == payment_id)
            .order_by(WebhookLog.created_at.desc())
            .all()
        )

    def get_by_merchant(
        self, merchant_id: UUID, skip: int = 0, limit: int = 20
    ) -> list[WebhookLog]:
        """Get a page of webhook logs for a merchant, newest first."""
        return (
            self.db.query(WebhookLog)
            .filter(WebhookLog.merchant_id == merchant_id)
            .order_by(WebhookLog.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_by_merchant(self, merchant_id: UUID) -> int:
        """Count webhook logs for a merchant."""
        return self.db.query(WebhookLog).filter(WebhookLog.merchant_id == merchant_id).count()

    def get_due_for_retry(self, now: datetime, limit: int = 100) -> list[WebhookLog]:
        """Get undelivered logs whose next retry time has come."""
        return (
            self.db.query(WebhookLog)
            .filter(
                WebhookLog.is_delivered.is_(False),
                WebhookLog.attempts < MAX_WEBHOOK_ATTEMPTS,
                WebhookLog.next_retry_at.isnot(None),
                WebhookLog.next_retry_at <= now,
            )
            .order_by(WebhookLog.next_retry_at.asc())
            .limit(limit)
            .all()
        )

    def mark_delivered(
        self,
        log: WebhookLog,
        http_status: int,
        response: str | None,
        now: datetime,
    ) -> WebhookLog:
        """Record a successful attempt; no further retries are scheduled."""
        log.attempts = log.attempts + 1  # type: ignore[assignment]
        log.is_delivered = True  # type: ignore[assignment]
        log.http_status = http_status  # type: ignore[assignment]
        log.response = _truncate(response)  # type: ignore[assignment]
        log.next_retry_at = None  # type: ignore[assignment]
        log.delivered_at = now  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(log)
        return log

    def mark_failed(
        self,
        log: WebhookLog,
        next_retry_at: datetime | None,
        http_status: int | None = None,
        response: str | None = None,
    ) -> WebhookLog:
        """Record a failed attempt and the next retry time, if any."""
        log.attempts = log.attempts + 1  # type: ignore[assignment]
        log.http_status = http_status  # type: ignore[assignment]
        log.response = _truncate(response)  # type: ignore[assignment]
        log.next_retry_at = next_retry_at  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(log)
        return log

    def create_delivery_attempt(
        self,
        webhook_log_id: UUID,
        attempt_number: int,
        url: str,
        success: bool,
        http_status: int | None = None,
        response_body: str | None = None,
        error_message: str | None = None,
    ) -> WebhookDeliveryAttempt:
        """Record a delivery attempt for a webhook log."""
        attempt = WebhookDeliveryAttempt(
            webhook_log_id=webhook_log_id,
            attempt_number=attempt_number,
            url=url,
            http_status=http_status,
            response_body=_truncate(response_body),
            success=success,
            error_message=_truncate(error_message),
        )
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        return attempt

    def get_delivery_attempts(self, webhook_log_id: UUID) -> list[WebhookDeliveryAttempt]:
        """Get all delivery attempts for a log, ordered by attempt number."""
        return (
            self.db.query(WebhookDeliveryAttempt)
            .filter(WebhookDeliveryAttempt.webhook_log_id == webhook_log_id)
            .order_by(WebhookDeliveryAttempt.attempt_number.asc())
            .all()
        )


def _truncate(value: str | None) -> str | None:
    if value is None:
        return None
    return value[:RESPONSE_MAX_LENGTH]
