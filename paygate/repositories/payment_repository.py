"""Payment repository for data access."""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Query, Session

from paygate.models.payment import ACTIVE_PAYMENT_STATUSES, Payment, PaymentStatus
from paygate.schemas.payment import PaymentFilter


class PaymentRepository:
    """Repository for Payment model."""

    def __init__(self, db: Session):
        self.db = db

    def _filtered(self, filters: PaymentFilter) -> Query:  # type: ignore[type-arg]
        query = self.db.query(Payment)

        if not filters.include_deleted:
            query = query.filter(Payment.deleted_at.is_(None))
        if filters.merchant_id is not None:
            query = query.filter(Payment.merchant_id == filters.merchant_id)
        if filters.status is not None:
            query = query.filter(Payment.status == filters.status.value)
        if filters.statuses is not None:
            query = query.filter(Payment.status.in_([s.value for s in filters.statuses]))
        if filters.network is not None:
            query = query.filter(Payment.network == filters.network.value)
        if filters.currency is not None:
            query = query.filter(Payment.currency == filters.currency.value)
        if filters.external_id is not None:
            query = query.filter(Payment.external_id == filters.external_id)
        if filters.payment_address is not None:
            query = query.filter(Payment.payment_address == filters.payment_address)
        if filters.customer_email:
            query = query.filter(
                func.lower(Payment.customer_email).contains(filters.customer_email.lower())
            )
        if filters.from_date is not None:
            query = query.filter(Payment.created_at >= filters.from_date)
        if filters.to_date is not None:
            query = query.filter(Payment.created_at <= filters.to_date)
        if filters.expires_after is not None:
            query = query.filter(Payment.expires_at > filters.expires_after)

        return query

    def find_all(
        self,
        filters: PaymentFilter | None = None,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Payment]:
        """Get payments matching a filter, newest first."""
        query = self._filtered(filters or PaymentFilter())
        return query.order_by(Payment.created_at.desc()).offset(skip).limit(limit).all()

    def count(self, filters: PaymentFilter | None = None) -> int:
        """Count payments matching a filter."""
        return self._filtered(filters or PaymentFilter()).count()

    def get_active(
        self, network: str, now: datetime, in_flight_grace_minutes: int = 0
    ) -> list[Payment]:
        """Get payments still awaiting settlement on a network.

        Pending payments are returned until ``expires_at``; detected and
        confirming ones until ``expires_at`` plus the in-flight grace period.
        """
        grace_cutoff = now - timedelta(minutes=in_flight_grace_minutes)
        in_flight = [PaymentStatus.DETECTED.value, PaymentStatus.CONFIRMING.value]
        return (
            self._filtered(PaymentFilter(statuses=list(ACTIVE_PAYMENT_STATUSES), network=network))
            .filter(
                or_(
                    and_(Payment.status == PaymentStatus.PENDING.value, Payment.expires_at > now),
                    and_(Payment.status.in_(in_flight), Payment.expires_at > grace_cutoff),
                )
            )
            .order_by(Payment.created_at.asc())
            .all()
        )

    def get_by_id(self, payment_id: UUID, merchant_id: UUID | None = None) -> Payment | None:
        """Get a payment by ID."""
        query = self.db.query(Payment).filter(Payment.id == payment_id)
        if merchant_id is not None:
            query = query.filter(Payment.merchant_id == merchant_id)
        return query.first()

    def get_by_address(self, payment_address: str) -> Payment | None:
        """Get a payment by its receive address."""
        return self.db.query(Payment).filter(Payment.payment_address == payment_address).first()

    def get_by_external_id(self, external_id: str, merchant_id: UUID) -> Payment | None:
        """Get a payment by the merchant-supplied external ID."""
        return (
            self.db.query(Payment)
            .filter(Payment.external_id == external_id, Payment.merchant_id == merchant_id)
            .first()
        )

    def create(self, **fields: Any) -> Payment:
        """Create a new pending payment."""
        payment = Payment(
            status=PaymentStatus.PENDING.value,
            amount_paid=0,
            current_confirmations=0,
            **fields,
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def apply_reconciliation(
        self,
        payment: Payment,
        status: PaymentStatus,
        amount_paid: int,
        current_confirmations: int,
        milestones: dict[str, datetime] | None = None,
    ) -> bool:
        """Stage reconciled fields on a payment in the caller's transaction.

        Milestone timestamps already set are never overwritten. Flushes so a
        concurrent change surfaces here as ``StaleDataError``; the caller owns
        the commit. Returns whether anything changed.
        """
        changes: dict[str, Any] = {}
        if payment.status != status.value:
            changes["status"] = status.value
        if payment.amount_paid != amount_paid:
            changes["amount_paid"] = amount_paid
        if payment.current_confirmations != current_confirmations:
            changes["current_confirmations"] = current_confirmations
        for field, value in (milestones or {}).items():
            if getattr(payment, field) is None:
                changes[field] = value

        if not changes:
            return False

        for key, value in changes.items():
            setattr(payment, key, value)
        self.db.flush()
        return True

    def transition_if_status(
        self,
        payment_id: UUID,
        expected: PaymentStatus,
        new_status: PaymentStatus,
        merchant_id: UUID | None = None,
    ) -> bool:
        """Atomically move a payment from ``expected`` to ``new_status``.

        A single conditional UPDATE that also bumps ``version``; returns
        False when the row is missing or no longer in ``expected``.
        """
        query = self.db.query(Payment).filter(
            Payment.id == payment_id,
            Payment.status == expected.value,
        )
        if merchant_id is not None:
            query = query.filter(Payment.merchant_id == merchant_id)
        updated = query.update(
            {Payment.status: new_status.value, Payment.version: Payment.version + 1},
            synchronize_session=False,
        )
        self.db.commit()
        return bool(updated)

    def get_pending_expired_ids(self, now: datetime) -> list[UUID]:
        """IDs of pending payments whose deadline has passed."""
        rows = (
            self.db.query(Payment.id)
            .filter(
                Payment.status == PaymentStatus.PENDING.value,
                Payment.expires_at < now,
            )
            .all()
        )
        return [row.id for row in rows]

    def get_in_flight_expired_ids(
        self, cutoff: datetime, network: str | None = None
    ) -> list[tuple[UUID, PaymentStatus]]:
        """IDs and statuses of detected/confirming payments that expired before ``cutoff``."""
        query = self.db.query(Payment.id, Payment.status).filter(
            Payment.status.in_([PaymentStatus.DETECTED.value, PaymentStatus.CONFIRMING.value]),
            Payment.expires_at < cutoff,
        )
        if network is not None:
            query = query.filter(Payment.network == network)
        rows = query.all()
        return [(row.id, PaymentStatus(row.status)) for row in rows]

    def soft_delete(self, payment_id: UUID, now: datetime) -> bool:
        """Retire a payment from listings; rows are never physically deleted."""
        payment = self.get_by_id(payment_id)
        if not payment:
            return False
        if payment.status in {s.value for s in ACTIVE_PAYMENT_STATUSES}:
            raise ValueError("Active payments cannot be retired")

        payment.deleted_at = now  # type: ignore[assignment]
        self.db.commit()
        return True
