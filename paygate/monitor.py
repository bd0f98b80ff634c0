"""Payment monitor: polls the chain and settles payments.

Each cycle expires overdue payments, reconciles every active payment against
the explorer, then retries due webhooks. Every payment is reconciled in its
own session and transaction, so one failure never holds up the rest.
"""

import logging
import signal
import sys
import threading
import time
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from paygate.core.config import settings
from paygate.core.database import init_db, session_scope
from paygate.core.exceptions import GatewayError, InvariantViolation, UpstreamUnavailable
from paygate.models.payment import ACTIVE_PAYMENT_STATUSES, Payment, PaymentStatus
from paygate.models.shared import utc_now
from paygate.repositories.payment_repository import PaymentRepository
from paygate.services.ledger_service import LedgerService
from paygate.services.mempool_client import MempoolClient
from paygate.services.payment_service import PaymentService, payment_webhook_data
from paygate.services.reconciliation import ReconciliationDecision, decide
from paygate.services.webhook_service import WebhookService, payment_event

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class PaymentMonitor:
    """Single-threaded scheduler for the reconciliation loop."""

    def __init__(
        self,
        chain_client: MempoolClient,
        session_factory: SessionFactory = session_scope,
        webhook_service_factory: Callable[[Session], WebhookService] = WebhookService,
        network: str | None = None,
        poll_interval: float | None = None,
        retry_interval: float | None = None,
        in_flight_grace_minutes: int | None = None,
    ):
        self.chain_client = chain_client
        self.session_factory = session_factory
        self.webhook_service_factory = webhook_service_factory
        self.network = network or settings.MONITOR_NETWORK
        self.poll_interval = (
            settings.MONITOR_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        )
        self.retry_interval = (
            settings.WEBHOOK_RETRY_INTERVAL_SECONDS if retry_interval is None else retry_interval
        )
        self.in_flight_grace_minutes = (
            settings.IN_FLIGHT_EXPIRY_GRACE_MINUTES
            if in_flight_grace_minutes is None
            else in_flight_grace_minutes
        )
        self._stop_event = threading.Event()
        self._last_webhook_retry: float | None = None

    @property
    def running(self) -> bool:
        return not self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the loop to exit once the current cycle finishes."""
        self._stop_event.set()

    def run(self) -> None:
        logger.info(
            "Payment monitor started for %s (poll every %ss)", self.network, self.poll_interval
        )
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
            except Exception:
                logger.exception("Monitor cycle failed")
            self._stop_event.wait(self.poll_interval)
        logger.info("Payment monitor stopped")

    def run_cycle(self, now: datetime | None = None) -> None:
        now = now or utc_now()
        for stage in ("expire_old_payments", "check_payments", "retry_webhooks"):
            try:
                getattr(self, stage)(now)
            except Exception:
                logger.exception("Monitor stage %s failed", stage)

    # ==================== Expiry ====================

    def expire_old_payments(self, now: datetime | None = None) -> int:
        """Expire overdue payments and notify their merchants.

        Detected and confirming payments past their grace period are
        reconciled one last time first; only those still in flight expire.
        """
        now = now or utc_now()
        rechecked = self._recheck_in_flight(now)
        with self.session_factory() as db:
            service = PaymentService(db, webhook_service=self.webhook_service_factory(db))
            try:
                expired = service.expire_pending_payments(now)
                if rechecked:
                    expired += service.expire_in_flight_payments(
                        now,
                        grace_minutes=self.in_flight_grace_minutes,
                        network=self.network,
                        payment_ids=rechecked,
                    )
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Expiry sweep failed")
                return 0
            service.notify_expired(expired)
        return len(expired)

    def _recheck_in_flight(self, now: datetime) -> set[UUID]:
        """Reconcile in-flight payments due for expiry; returns those checked cleanly."""
        cutoff = now - timedelta(minutes=self.in_flight_grace_minutes)
        with self.session_factory() as db:
            due = PaymentRepository(db).get_in_flight_expired_ids(cutoff, network=self.network)
        if not due:
            return set()

        try:
            tip_height = self.chain_client.get_block_height()
        except GatewayError as exc:
            logger.warning("Chain tip unavailable, postponing in-flight expiry: %s", exc)
            return set()

        return {
            payment_id
            for payment_id, _ in due
            if self.check_payment(payment_id, tip_height, now) is not None
        }

    # ==================== Reconciliation ====================

    def check_payments(self, now: datetime | None = None) -> int:
        """Reconcile every active payment; returns how many were checked."""
        now = now or utc_now()
        with self.session_factory() as db:
            active = PaymentRepository(db).get_active(
                self.network, now, in_flight_grace_minutes=self.in_flight_grace_minutes
            )
            payment_ids = [p.id for p in active]
        if not payment_ids:
            return 0

        try:
            tip_height = self.chain_client.get_block_height()
        except GatewayError as exc:
            logger.warning("Chain tip unavailable, skipping reconciliation: %s", exc)
            return 0

        for payment_id in payment_ids:
            self.check_payment(payment_id, tip_height, now)
        return len(payment_ids)

    def check_payment(
        self, payment_id: UUID, tip_height: int, now: datetime | None = None
    ) -> ReconciliationDecision | None:
        """Reconcile one payment in its own transaction.

        Errors are logged and rolled back; the payment is retried next cycle.
        """
        now = now or utc_now()
        with self.session_factory() as db:
            try:
                decision = self._reconcile(db, payment_id, tip_height, now)
            except StaleDataError:
                db.rollback()
                logger.warning("Payment %s changed concurrently, retrying next cycle", payment_id)
                return None
            except UpstreamUnavailable as exc:
                db.rollback()
                logger.warning("Payment %s: explorer unavailable: %s", payment_id, exc)
                return None
            except Exception:
                db.rollback()
                logger.exception("Error checking payment %s", payment_id)
                return None

            if decision is not None and decision.steps:
                payment = PaymentRepository(db).get_by_id(payment_id)
                if payment is not None:
                    self._notify(db, payment, decision)
            return decision

    def _reconcile(
        self, db: Session, payment_id: UUID, tip_height: int, now: datetime
    ) -> ReconciliationDecision | None:
        repo = PaymentRepository(db)
        payment = repo.get_by_id(payment_id)
        if payment is None or payment.status not in {s.value for s in ACTIVE_PAYMENT_STATUSES}:
            return None

        address = str(payment.payment_address)
        activity = self.chain_client.get_address_activity(address)
        ledger = LedgerService(db)

        visible: set[str] = set()
        for tx in activity.transactions:
            visible.add(tx.txid)
            if tx.amount_to(address) <= 0:
                continue
            try:
                ledger.record_or_update(payment, tx, tip_height, now)
            except InvariantViolation as exc:
                logger.error("Payment %s: skipping tx %s: %s", payment.id, tx.txid, exc)

        if activity.complete:
            ledger.mark_missing_as_dropped(payment, visible, now)

        decision = decide(
            previous_status=PaymentStatus(payment.status),
            total_received=ledger.total_received(payment.id),  # type: ignore[arg-type]
            min_confirmations=ledger.min_confirmations(payment.id),  # type: ignore[arg-type]
            required_confirmations=int(payment.required_confirmations),
            amount_requested=int(payment.amount_requested),
            now=now,
        )
        if decision.blocked_target is not None:
            logger.warning(
                "Payment %s: no transition from %s to %s, keeping status",
                payment.id,
                decision.previous_status.value,
                decision.blocked_target.value,
            )

        repo.apply_reconciliation(
            payment,
            status=decision.status,
            amount_paid=decision.amount_paid,
            current_confirmations=decision.current_confirmations,
            milestones=decision.milestones,
        )
        db.commit()

        if decision.status_changed:
            logger.info(
                "Payment %s: %s -> %s (paid %d of %d, %d confirmations)",
                payment.id,
                decision.previous_status.value,
                decision.status.value,
                decision.amount_paid,
                payment.amount_requested,
                decision.current_confirmations,
            )
        return decision

    def _notify(self, db: Session, payment: Payment, decision: ReconciliationDecision) -> None:
        webhook_service = self.webhook_service_factory(db)
        for step in decision.steps:
            try:
                webhook_service.send(
                    payment.merchant_id,  # type: ignore[arg-type]
                    payment.id,  # type: ignore[arg-type]
                    payment_event(step),
                    payment_webhook_data(payment, step),
                )
            except Exception:
                db.rollback()
                logger.exception("Failed to send %s webhook for payment %s", step.value, payment.id)

    # ==================== Webhook retries ====================

    def retry_webhooks(self, now: datetime | None = None, force: bool = False) -> int:
        """Run the retry sweep at most once per retry interval."""
        tick = time.monotonic()
        if (
            not force
            and self._last_webhook_retry is not None
            and tick - self._last_webhook_retry < self.retry_interval
        ):
            return 0
        self._last_webhook_retry = tick

        with self.session_factory() as db:
            try:
                count = self.webhook_service_factory(db).retry_pending_webhooks(now)
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Webhook retry sweep failed")
                return 0
        if count > 0:
            logger.info("Retried %d failed webhooks", count)
        return count


def main() -> int:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        init_db()
    except SQLAlchemyError:
        logger.critical("Cannot reach the database at startup", exc_info=True)
        return 1

    with MempoolClient() as chain_client:
        monitor = PaymentMonitor(chain_client)

        def handle_signal(signum: int, frame: Any) -> None:
            logger.info("Received signal %d, stopping after the current cycle", signum)
            monitor.stop()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)
        monitor.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
