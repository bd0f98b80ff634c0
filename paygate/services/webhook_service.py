"""Webhook delivery service for merchant payment notifications."""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from paygate.core.config import settings
from paygate.core.exceptions import DeliveryFailed
from paygate.models.payment import PaymentStatus
from paygate.models.shared import utc_now
from paygate.models.webhook_log import MAX_WEBHOOK_ATTEMPTS, WebhookLog
from paygate.repositories.merchant_repository import MerchantRepository
from paygate.repositories.webhook_log_repository import WebhookLogRepository
from paygate.schemas.webhook import WebhookLogPage, WebhookLogResponse

logger = logging.getLogger(__name__)

# Seconds to wait after the Nth failed attempt (index N - 1)
RETRY_DELAYS = [60, 300, 900, 3600, 14400]

SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"

PAYMENT_WEBHOOK_EVENTS = [
    f"payment.{status.value}" for status in PaymentStatus if status != PaymentStatus.PENDING
]


def payment_event(status: PaymentStatus) -> str:
    """Event name for a payment entering ``status``."""
    return f"payment.{status.value}"


def build_payload(event: str, data: dict[str, Any], timestamp_ms: int) -> dict[str, Any]:
    """Webhook body; key order is part of the signed representation."""
    return {"event": event, "data": data, "timestamp": timestamp_ms}


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """Canonical bytes that are both signed and sent.

    Compact separators, insertion key order, non-ASCII escaped. Amounts are
    carried as strings by callers so no number formatting is involved.
    """
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str).encode(
        "utf-8"
    )


def generate_hmac_signature(payload_bytes: bytes, secret: str) -> str:
    """Generate HMAC-SHA256 signature for a webhook payload.

    Args:
        payload_bytes: The raw payload bytes to sign.
        secret: The merchant's webhook secret.

    Returns:
        Hex-encoded HMAC-SHA256 signature.
    """
    return hmac.new(
        secret.encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).hexdigest()


def verify_signature(payload_bytes: bytes, signature: str, secret: str) -> bool:
    """Check a received signature the way a merchant endpoint would."""
    expected = generate_hmac_signature(payload_bytes, secret)
    return hmac.compare_digest(expected, signature)


def next_retry_time(attempts: int, now: datetime) -> datetime | None:
    """When to retry after ``attempts`` failed deliveries; None once exhausted."""
    if attempts >= MAX_WEBHOOK_ATTEMPTS:
        return None
    return now + timedelta(seconds=RETRY_DELAYS[attempts - 1])


class WebhookService:
    """Builds, signs, delivers and retries merchant webhooks."""

    def __init__(self, db: Session, timeout: float | None = None):
        self.db = db
        self.timeout = timeout or settings.WEBHOOK_TIMEOUT_SECONDS
        self.merchant_repo = MerchantRepository(db)
        self.log_repo = WebhookLogRepository(db)

    def send(
        self,
        merchant_id: UUID,
        payment_id: UUID | None,
        event: str,
        data: dict[str, Any],
    ) -> WebhookLog | None:
        """Log and deliver one event to the merchant's endpoint.

        Returns None without doing anything when the merchant has no webhook
        URL configured.
        """
        merchant = self.merchant_repo.get_by_id(merchant_id)
        if merchant is None:
            logger.warning("Merchant %s not found, dropping %s webhook", merchant_id, event)
            return None
        if not merchant.webhook_url:
            return None

        now = utc_now()
        payload = build_payload(event, data, int(now.timestamp() * 1000))
        log = self.log_repo.create(
            merchant_id=merchant_id,
            payment_id=payment_id,
            event=event,
            payload=payload,
            url=str(merchant.webhook_url),
        )
        self.deliver(log, str(merchant.webhook_url), merchant.webhook_secret or "")
        return log

    def _post(self, url: str, body: bytes, signature: str, timestamp: str) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature,
            TIMESTAMP_HEADER: timestamp,
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise DeliveryFailed(str(exc) or exc.__class__.__name__) from exc

        if not 200 <= resp.status_code < 400:
            raise DeliveryFailed(resp.text or f"HTTP {resp.status_code}", resp.status_code)
        return resp

    def deliver(self, log: WebhookLog, url: str, secret: str) -> bool:
        """Attempt one delivery of a log's stored payload.

        The payload is signed at send time with ``secret``, so retries pick up
        a rotated secret. Failures are recorded and scheduled, never raised.
        """
        payload: dict[str, Any] = dict(log.payload)
        body = serialize_payload(payload)
        signature = generate_hmac_signature(body, secret)
        attempt_number = int(log.attempts) + 1
        now = utc_now()

        try:
            resp = self._post(url, body, signature, str(payload.get("timestamp", "")))
        except DeliveryFailed as exc:
            retry_at = next_retry_time(attempt_number, now)
            self.log_repo.mark_failed(
                log,
                next_retry_at=retry_at,
                http_status=exc.http_status,
                response=str(exc),
            )
            self.log_repo.create_delivery_attempt(
                webhook_log_id=log.id,  # type: ignore[arg-type]
                attempt_number=attempt_number,
                url=url,
                success=False,
                http_status=exc.http_status,
                error_message=str(exc),
            )
            if retry_at is None:
                logger.error(
                    "Webhook %s (%s) permanently failed after %d attempts",
                    log.id,
                    log.event,
                    attempt_number,
                )
            else:
                logger.warning(
                    "Webhook %s (%s) attempt %d failed: %s; retry at %s",
                    log.id,
                    log.event,
                    attempt_number,
                    exc,
                    retry_at.isoformat(),
                )
            return False

        self.log_repo.mark_delivered(log, resp.status_code, resp.text, now)
        self.log_repo.create_delivery_attempt(
            webhook_log_id=log.id,  # type: ignore[arg-type]
            attempt_number=attempt_number,
            url=url,
            success=True,
            http_status=resp.status_code,
            response_body=resp.text,
        )
        return True

    def retry_pending_webhooks(self, now: datetime | None = None, limit: int | None = None) -> int:
        """Re-deliver undelivered logs whose retry time has come.

        Uses the merchant's current URL and secret. Returns the number of
        logs re-attempted.
        """
        now = now or utc_now()
        due = self.log_repo.get_due_for_retry(now, limit or settings.WEBHOOK_RETRY_BATCH_SIZE)
        retried = 0

        for log in due:
            merchant = self.merchant_repo.get_by_id(log.merchant_id)  # type: ignore[arg-type]
            if merchant is None or not merchant.webhook_url:
                logger.info("Skipping retry of webhook %s: merchant endpoint removed", log.id)
                continue
            self.deliver(log, str(merchant.webhook_url), merchant.webhook_secret or "")
            retried += 1

        return retried

    def get_logs_by_payment(self, payment_id: UUID) -> list[WebhookLog]:
        return self.log_repo.get_by_payment(payment_id)

    def get_logs_by_merchant(
        self, merchant_id: UUID, skip: int = 0, limit: int = 20
    ) -> WebhookLogPage:
        logs = self.log_repo.get_by_merchant(merchant_id, skip=skip, limit=limit)
        return WebhookLogPage(
            logs=[WebhookLogResponse.model_validate(log) for log in logs],
            total=self.log_repo.count_by_merchant(merchant_id),
        )
