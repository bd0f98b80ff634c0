"""Ledger transaction repository for data access.

Writes only flush; the reconciliation loop commits ledger rows together with
the payment update they feed.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from paygate.models.payment_transaction import LedgerTransaction


class PaymentTransactionRepository:
    """Repository for LedgerTransaction model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_tx_hash(self, tx_hash: str, network: str) -> LedgerTransaction | None:
        """Get a ledger row by its (tx_hash, network) identity."""
        return (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.tx_hash == tx_hash, LedgerTransaction.network == network)
            .first()
        )

    def get_by_payment(
        self, payment_id: UUID, include_dropped: bool = True
    ) -> list[LedgerTransaction]:
        """Get all ledger rows for a payment, oldest first."""
        query = self.db.query(LedgerTransaction).filter(LedgerTransaction.payment_id == payment_id)
        if not include_dropped:
            query = query.filter(LedgerTransaction.is_dropped.is_(False))
        return query.order_by(LedgerTransaction.created_at.asc()).all()

    def create(
        self,
        payment_id: UUID,
        tx_hash: str,
        network: str,
        to_address: str,
        amount: int,
        confirmations: int,
        block_number: int | None = None,
        block_hash: str | None = None,
        confirmed_at: datetime | None = None,
    ) -> LedgerTransaction:
        """Stage a new ledger row."""
        row = LedgerTransaction(
            payment_id=payment_id,
            tx_hash=tx_hash,
            network=network,
            to_address=to_address,
            amount=amount,
            confirmations=confirmations,
            block_number=block_number,
            block_hash=block_hash,
            is_confirmed=confirmations > 0,
            confirmed_at=confirmed_at if confirmations > 0 else None,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def flush(self) -> None:
        self.db.flush()

    def sum_amount(self, payment_id: UUID, min_confirmations: int | None = None) -> int:
        """Sum of credited amounts over live rows, optionally confirmation-gated."""
        query = self.db.query(func.coalesce(func.sum(LedgerTransaction.amount), 0)).filter(
            LedgerTransaction.payment_id == payment_id,
            LedgerTransaction.is_dropped.is_(False),
        )
        if min_confirmations is not None:
            query = query.filter(LedgerTransaction.confirmations >= min_confirmations)
        return int(query.scalar() or 0)

    def min_confirmations(self, payment_id: UUID) -> int | None:
        """Lowest confirmation count over live rows with a nonzero amount."""
        result = (
            self.db.query(func.min(LedgerTransaction.confirmations))
            .filter(
                LedgerTransaction.payment_id == payment_id,
                LedgerTransaction.is_dropped.is_(False),
                LedgerTransaction.amount > 0,
            )
            .scalar()
        )
        return None if result is None else int(result)
