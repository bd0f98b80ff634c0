"""Transaction ledger: the recorded on-chain transactions behind each payment."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from paygate.core.exceptions import InvariantViolation
from paygate.models.payment import Payment
from paygate.models.payment_transaction import LedgerTransaction
from paygate.models.shared import utc_now
from paygate.repositories.payment_transaction_repository import PaymentTransactionRepository
from paygate.schemas.chain import ChainTransaction

logger = logging.getLogger(__name__)


class LedgerService:
    """Idempotent upserts and aggregates over a payment's ledger rows.

    Rows are staged in the caller's session; nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = PaymentTransactionRepository(db)

    def record_or_update(
        self,
        payment: Payment,
        observed: ChainTransaction,
        tip_height: int,
        now: datetime | None = None,
    ) -> LedgerTransaction:
        """Upsert an observed transaction keyed by (tx_hash, network).

        Raises:
            InvariantViolation: the hash is recorded against another payment,
                or with a different credited amount.
        """
        now = now or utc_now()
        address = str(payment.payment_address)
        network = str(payment.network)
        amount = observed.amount_to(address)
        confirmations = observed.confirmations(tip_height)

        row = self.repo.get_by_tx_hash(observed.txid, network)
        if row is None:
            row = self.repo.create(
                payment_id=payment.id,  # type: ignore[arg-type]
                tx_hash=observed.txid,
                network=network,
                to_address=address,
                amount=amount,
                confirmations=confirmations,
                block_number=observed.status.block_height,
                block_hash=observed.status.block_hash,
                confirmed_at=now,
            )
            logger.info(
                "Payment %s: new tx %s amount=%d confirmations=%d",
                payment.id,
                observed.txid,
                amount,
                confirmations,
            )
            return row

        if row.payment_id != payment.id:
            raise InvariantViolation(
                f"Transaction {observed.txid} already credited to payment {row.payment_id}"
            )
        if row.amount != amount:
            raise InvariantViolation(
                f"Transaction {observed.txid} amount changed from {row.amount} to {amount}"
            )

        changed = False
        if row.is_dropped:
            logger.warning("Payment %s: tx %s visible again", payment.id, observed.txid)
            row.is_dropped = False  # type: ignore[assignment]
            row.dropped_at = None  # type: ignore[assignment]
            changed = True

        if confirmations != row.confirmations:
            if confirmations < row.confirmations and not self._chain_moved(row, observed):
                # Explorer tip lagging behind what we already recorded
                logger.debug(
                    "Payment %s: ignoring stale confirmations %d < %d for tx %s",
                    payment.id,
                    confirmations,
                    row.confirmations,
                    observed.txid,
                )
            else:
                if confirmations < row.confirmations:
                    logger.warning(
                        "Payment %s: tx %s reorganized, confirmations %d -> %d",
                        payment.id,
                        observed.txid,
                        row.confirmations,
                        confirmations,
                    )
                row.confirmations = confirmations  # type: ignore[assignment]
                row.block_number = observed.status.block_height  # type: ignore[assignment]
                row.block_hash = observed.status.block_hash  # type: ignore[assignment]
                row.is_confirmed = confirmations > 0  # type: ignore[assignment]
                if row.is_confirmed and row.confirmed_at is None:
                    row.confirmed_at = now  # type: ignore[assignment]
                changed = True

        if changed:
            self.repo.flush()
        return row

    @staticmethod
    def _chain_moved(row: LedgerTransaction, observed: ChainTransaction) -> bool:
        """True when the tx left its recorded block (reorg or back to mempool)."""
        if not observed.status.confirmed:
            return True
        return (
            observed.status.block_height != row.block_number
            or observed.status.block_hash != row.block_hash
        )

    def mark_missing_as_dropped(
        self,
        payment: Payment,
        visible_tx_hashes: set[str],
        now: datetime | None = None,
    ) -> list[LedgerTransaction]:
        """Flag live rows absent from the explorer's complete view of the address.

        Only call with a complete history; a truncated one would drop rows
        that are merely beyond the page ceiling.
        """
        now = now or utc_now()
        dropped: list[LedgerTransaction] = []
        for row in self.repo.get_by_payment(payment.id, include_dropped=False):  # type: ignore[arg-type]
            if row.tx_hash in visible_tx_hashes:
                continue
            row.is_dropped = True  # type: ignore[assignment]
            row.dropped_at = now  # type: ignore[assignment]
            dropped.append(row)
            logger.warning(
                "Payment %s: tx %s no longer visible on chain, excluded from totals",
                payment.id,
                row.tx_hash,
            )
        if dropped:
            self.repo.flush()
        return dropped

    def total_received(self, payment_id: UUID) -> int:
        """Detected received amount, unconfirmed transactions included."""
        return self.repo.sum_amount(payment_id)

    def confirmed_received(self, payment_id: UUID, required_confirmations: int) -> int:
        """Received amount over transactions meeting ``required_confirmations``."""
        return self.repo.sum_amount(payment_id, min_confirmations=required_confirmations)

    def min_confirmations(self, payment_id: UUID) -> int | None:
        """Lowest confirmation count across contributing transactions.

        None means no transactions have been recorded yet.
        """
        return self.repo.min_confirmations(payment_id)

    def list_for_payment(self, payment_id: UUID) -> list[LedgerTransaction]:
        return self.repo.get_by_payment(payment_id)
