"""Tests for the transaction ledger."""

from datetime import UTC, datetime, timedelta

import pytest

from paygate.core.exceptions import InvariantViolation
from paygate.models.payment_transaction import LedgerTransaction
from paygate.repositories.payment_repository import PaymentRepository
from paygate.schemas.chain import ChainTransaction, TxOutput, TxStatus
from paygate.services.ledger_service import LedgerService
from tests.conftest import DEFAULT_MERCHANT_ID

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
ONE_TXC = 100_000_000


def _make_payment(db, address="txc1qledger", amount=ONE_TXC):
    return PaymentRepository(db).create(
        merchant_id=DEFAULT_MERCHANT_ID,
        network="txc",
        currency="TXC",
        payment_address=address,
        amount_requested=amount,
        required_confirmations=6,
        expires_at=NOW + timedelta(hours=1),
    )


def _observed(txid, address, value=ONE_TXC, height=None, block_hash=None):
    status = (
        TxStatus(confirmed=True, block_height=height, block_hash=block_hash or f"hash{height}")
        if height is not None
        else TxStatus(confirmed=False)
    )
    return ChainTransaction(
        txid=txid,
        vout=[TxOutput(scriptpubkey_address=address, value=value)],
        status=status,
    )


@pytest.fixture
def payment(db_session):
    return _make_payment(db_session)


@pytest.fixture
def ledger(db_session):
    return LedgerService(db_session)


class TestRecordOrUpdate:
    def test_records_mempool_transaction(self, ledger, payment):
        row = ledger.record_or_update(payment, _observed("tx1", payment.payment_address), 100, NOW)

        assert row.payment_id == payment.id
        assert row.amount == ONE_TXC
        assert row.confirmations == 0
        assert row.is_confirmed is False
        assert row.confirmed_at is None
        assert row.block_number is None

    def test_records_confirmed_transaction(self, ledger, payment):
        observed = _observed("tx1", payment.payment_address, height=100)
        row = ledger.record_or_update(payment, observed, 102, NOW)

        assert row.confirmations == 3
        assert row.is_confirmed is True
        assert row.block_number == 100
        assert row.block_hash == "hash100"
        assert row.confirmed_at is not None

    def test_only_outputs_to_payment_address_count(self, ledger, payment):
        observed = ChainTransaction(
            txid="tx1",
            vout=[
                TxOutput(scriptpubkey_address=payment.payment_address, value=70_000_000),
                TxOutput(scriptpubkey_address="change-address", value=900_000_000),
            ],
        )
        row = ledger.record_or_update(payment, observed, 100, NOW)
        assert row.amount == 70_000_000

    def test_repeated_observation_is_idempotent(self, db_session, ledger, payment):
        observed = _observed("tx1", payment.payment_address, height=100)
        first = ledger.record_or_update(payment, observed, 100, NOW)
        second = ledger.record_or_update(payment, observed, 100, NOW)

        assert first.id == second.id
        assert db_session.query(LedgerTransaction).count() == 1
        assert second.confirmations == 1

    def test_confirmations_increase(self, ledger, payment):
        observed = _observed("tx1", payment.payment_address, height=100)
        ledger.record_or_update(payment, observed, 100, NOW)
        row = ledger.record_or_update(payment, observed, 105, NOW)
        assert row.confirmations == 6

    def test_mempool_to_block(self, ledger, payment):
        ledger.record_or_update(payment, _observed("tx1", payment.payment_address), 99, NOW)
        row = ledger.record_or_update(
            payment, _observed("tx1", payment.payment_address, height=100), 100, NOW
        )
        assert row.confirmations == 1
        assert row.is_confirmed is True
        assert row.block_number == 100

    def test_lagging_tip_does_not_lower_confirmations(self, ledger, payment):
        observed = _observed("tx1", payment.payment_address, height=100)
        ledger.record_or_update(payment, observed, 105, NOW)
        row = ledger.record_or_update(payment, observed, 102, NOW)
        assert row.confirmations == 6

    def test_return_to_mempool_lowers_confirmations(self, ledger, payment):
        ledger.record_or_update(
            payment, _observed("tx1", payment.payment_address, height=100), 105, NOW
        )
        row = ledger.record_or_update(payment, _observed("tx1", payment.payment_address), 105, NOW)

        assert row.confirmations == 0
        assert row.is_confirmed is False
        assert row.block_number is None

    def test_reorg_into_new_block_is_accepted(self, ledger, payment):
        ledger.record_or_update(
            payment, _observed("tx1", payment.payment_address, height=100), 105, NOW
        )
        row = ledger.record_or_update(
            payment,
            _observed("tx1", payment.payment_address, height=104, block_hash="other"),
            105,
            NOW,
        )
        assert row.confirmations == 2
        assert row.block_number == 104
        assert row.block_hash == "other"

    def test_changed_amount_raises(self, ledger, payment):
        ledger.record_or_update(payment, _observed("tx1", payment.payment_address), 100, NOW)
        with pytest.raises(InvariantViolation, match="amount changed"):
            ledger.record_or_update(
                payment, _observed("tx1", payment.payment_address, value=5), 100, NOW
            )

    def test_hash_bound_to_other_payment_raises(self, db_session, ledger, payment):
        other = _make_payment(db_session, address="txc1qother")
        ledger.record_or_update(payment, _observed("tx1", payment.payment_address), 100, NOW)
        with pytest.raises(InvariantViolation, match="already credited"):
            ledger.record_or_update(other, _observed("tx1", payment.payment_address), 100, NOW)


class TestAggregates:
    def test_no_transactions(self, ledger, payment):
        assert ledger.total_received(payment.id) == 0
        assert ledger.confirmed_received(payment.id, 6) == 0
        assert ledger.min_confirmations(payment.id) is None

    def test_totals_include_unconfirmed(self, ledger, payment):
        address = payment.payment_address
        ledger.record_or_update(payment, _observed("tx1", address, 60_000_000, height=100), 105, NOW)
        ledger.record_or_update(payment, _observed("tx2", address, 40_000_000), 105, NOW)

        assert ledger.total_received(payment.id) == ONE_TXC
        assert ledger.confirmed_received(payment.id, 6) == 60_000_000
        assert ledger.min_confirmations(payment.id) == 0

    def test_min_confirmations_is_lowest(self, ledger, payment):
        address = payment.payment_address
        ledger.record_or_update(payment, _observed("tx1", address, height=100), 110, NOW)
        ledger.record_or_update(payment, _observed("tx2", address, height=108), 110, NOW)
        assert ledger.min_confirmations(payment.id) == 3

    def test_list_for_payment(self, ledger, payment):
        ledger.record_or_update(payment, _observed("tx1", payment.payment_address), 100, NOW)
        assert [row.tx_hash for row in ledger.list_for_payment(payment.id)] == ["tx1"]


class TestDroppedTransactions:
    def test_missing_rows_are_dropped_and_excluded(self, ledger, payment):
        address = payment.payment_address
        ledger.record_or_update(payment, _observed("tx1", address, 60_000_000), 100, NOW)
        ledger.record_or_update(payment, _observed("tx2", address, 40_000_000), 100, NOW)

        dropped = ledger.mark_missing_as_dropped(payment, {"tx2"}, NOW)

        assert [row.tx_hash for row in dropped] == ["tx1"]
        assert dropped[0].is_dropped is True
        assert dropped[0].dropped_at is not None
        assert ledger.total_received(payment.id) == 40_000_000

    def test_all_visible_drops_nothing(self, ledger, payment):
        ledger.record_or_update(payment, _observed("tx1", payment.payment_address), 100, NOW)
        assert ledger.mark_missing_as_dropped(payment, {"tx1"}, NOW) == []

    def test_reappearing_transaction_is_restored(self, ledger, payment):
        observed = _observed("tx1", payment.payment_address)
        ledger.record_or_update(payment, observed, 100, NOW)
        ledger.mark_missing_as_dropped(payment, set(), NOW)
        assert ledger.total_received(payment.id) == 0
        assert ledger.min_confirmations(payment.id) is None

        row = ledger.record_or_update(payment, observed, 100, NOW)

        assert row.is_dropped is False
        assert row.dropped_at is None
        assert ledger.total_received(payment.id) == ONE_TXC
