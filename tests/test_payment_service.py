"""Tests for PaymentService: creation, cancellation, expiry and lookups."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from paygate.core.exceptions import NotFound, PaymentStateError
from paygate.models.payment import PaymentCurrency, PaymentNetwork, PaymentStatus
from paygate.models.shared import as_utc, utc_now
from paygate.repositories.merchant_repository import MerchantRepository
from paygate.schemas.chain import (
    AddressActivity,
    AddressBalance,
    ChainTransaction,
    TxOutput,
    TxStatus,
)
from paygate.schemas.payment import PaymentCreate, PaymentFilter, PaymentResponse
from paygate.services.payment_service import PaymentService, payment_webhook_data
from tests.conftest import DEFAULT_MERCHANT_ID

ONE_TXC = 100_000_000


@pytest.fixture
def price_oracle():
    oracle = MagicMock()
    oracle.get_exchange_rate.return_value = Decimal("2.88")
    return oracle


@pytest.fixture
def webhook_service():
    return MagicMock()


@pytest.fixture
def service(db_session, price_oracle, webhook_service):
    return PaymentService(db_session, price_oracle=price_oracle, webhook_service=webhook_service)


def _create(service, address="txc1qservice", **kwargs):
    data = PaymentCreate(amount=kwargs.pop("amount", ONE_TXC), **kwargs)
    return service.create(DEFAULT_MERCHANT_ID, data, address)


class TestCreate:
    def test_crypto_amount(self, service):
        before = utc_now()
        payment = _create(service, external_id="order-1", customer_email="a@example.com")

        assert payment.status == PaymentStatus.PENDING.value
        assert payment.amount_requested == ONE_TXC
        assert payment.amount_paid == 0
        assert payment.network == "txc"
        assert payment.currency == "TXC"
        assert payment.payment_address == "txc1qservice"
        assert payment.required_confirmations == 6
        assert payment.fiat_amount is None
        assert payment.exchange_rate is None
        assert payment.customer_email == "a@example.com"
        expires_at = as_utc(payment.expires_at)
        assert before + timedelta(minutes=60) <= expires_at <= utc_now() + timedelta(minutes=60)

    def test_fiat_amount_is_converted(self, service, price_oracle):
        payment = _create(service, amount=1000, fiat_currency="usd")

        price_oracle.get_exchange_rate.assert_called_once_with("TXC")
        assert payment.fiat_amount == 1000
        assert payment.fiat_currency == "USD"
        assert payment.exchange_rate == 288_000_000
        assert payment.amount_requested == 347_222_222

    def test_explicit_expiration(self, service):
        before = utc_now()
        payment = _create(service, expiration_minutes=15)
        assert as_utc(payment.expires_at) <= before + timedelta(minutes=15, seconds=5)

    def test_merchant_overrides(self, db_session, price_oracle, webhook_service):
        repo = MerchantRepository(db_session)
        merchant = repo.create(name="Fast", default_expiration_minutes=10, auto_confirmations=2)
        repo.add_network(merchant.id, "txc", "TXC")
        service = PaymentService(db_session, price_oracle, webhook_service)

        before = utc_now()
        payment = service.create(merchant.id, PaymentCreate(amount=ONE_TXC), "txc1qfast")

        assert payment.required_confirmations == 2
        assert as_utc(payment.expires_at) <= before + timedelta(minutes=10, seconds=5)

    def test_unknown_merchant(self, service):
        with pytest.raises(NotFound):
            service.create(uuid4(), PaymentCreate(amount=ONE_TXC), "txc1q")

    def test_unsupported_network(self, service):
        data = PaymentCreate(amount=ONE_TXC, network=PaymentNetwork.ETH, currency=PaymentCurrency.ETH)
        with pytest.raises(ValueError, match="not supported"):
            service.create(DEFAULT_MERCHANT_ID, data, "0xabc")

    def test_duplicate_external_id(self, service):
        _create(service, address="addr1", external_id="order-1")
        with pytest.raises(ValueError, match="already exists"):
            _create(service, address="addr2", external_id="order-1")

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError):
            PaymentCreate(amount=0)


class TestQueries:
    def test_get(self, service):
        payment = _create(service)
        assert service.get(payment.id).id == payment.id
        with pytest.raises(NotFound):
            service.get(payment.id, merchant_id=uuid4())

    def test_find_all_returns_total(self, service):
        for i in range(3):
            _create(service, address=f"addr{i}")

        payments, total = service.find_all(
            PaymentFilter(merchant_id=DEFAULT_MERCHANT_ID), skip=0, limit=2
        )
        assert len(payments) == 2
        assert total == 3

    def test_find_by_address_and_external_id(self, service):
        payment = _create(service, external_id="order-7")

        assert service.find_by_address("txc1qservice").id == payment.id
        assert service.find_by_address("unknown") is None
        assert service.find_by_external_id("order-7", DEFAULT_MERCHANT_ID).id == payment.id

    def test_response_schema(self, service):
        payment = _create(service)
        response = PaymentResponse.model_validate(payment)

        assert response.id == payment.id
        assert response.status == "pending"
        assert response.amount_paid == 0

    def test_retire_settled_payment(self, db_session, service):
        payment = _create(service)
        payment.status = PaymentStatus.COMPLETED.value
        db_session.commit()

        retired = service.retire(payment.id, DEFAULT_MERCHANT_ID)

        assert retired.deleted_at is not None
        _, total = service.find_all(PaymentFilter(merchant_id=DEFAULT_MERCHANT_ID))
        assert total == 0

    def test_retire_active_payment_fails(self, service):
        payment = _create(service)
        with pytest.raises(PaymentStateError):
            service.retire(payment.id, DEFAULT_MERCHANT_ID)

    def test_supported_methods_for_merchant(self, service):
        assert service.get_supported_payment_methods(DEFAULT_MERCHANT_ID) == [
            {"network": "txc", "currencies": ["TXC"], "enabled": True}
        ]

    def test_supported_methods_platform_wide(self, service):
        methods = service.get_supported_payment_methods()
        enabled = [m["network"] for m in methods if m["enabled"]]
        assert enabled == ["txc"]

    def test_webhook_data(self, service):
        payment = _create(service, external_id="order-9")
        data = payment_webhook_data(payment, PaymentStatus.DETECTED)

        assert data == {
            "payment_id": str(payment.id),
            "external_id": "order-9",
            "status": "detected",
            "amount_requested": str(ONE_TXC),
            "amount_paid": "0",
            "confirmations": 0,
            "currency": "TXC",
            "network": "txc",
            "payment_address": "txc1qservice",
        }


class TestCancel:
    def test_cancel_pending(self, service, webhook_service):
        payment = _create(service)

        result = service.cancel(payment.id, DEFAULT_MERCHANT_ID)

        assert result.status == PaymentStatus.CANCELLED.value
        assert result.version == 2
        webhook_service.send.assert_called_once()
        args = webhook_service.send.call_args.args
        assert args[2] == "payment.cancelled"
        assert args[3]["status"] == "cancelled"

    def test_cancel_detected_fails(self, db_session, service, webhook_service):
        payment = _create(service)
        payment.status = PaymentStatus.DETECTED.value
        db_session.commit()

        with pytest.raises(PaymentStateError):
            service.cancel(payment.id, DEFAULT_MERCHANT_ID)
        webhook_service.send.assert_not_called()

    def test_cancel_other_merchants_payment(self, service):
        payment = _create(service)
        with pytest.raises(NotFound):
            service.cancel(payment.id, uuid4())

    def test_webhook_failure_does_not_undo_cancel(self, service, webhook_service):
        webhook_service.send.side_effect = RuntimeError("boom")
        payment = _create(service)

        result = service.cancel(payment.id, DEFAULT_MERCHANT_ID)
        assert result.status == PaymentStatus.CANCELLED.value


class TestExpiry:
    def test_expire_pending(self, service, webhook_service):
        overdue = _create(service, address="addr1")
        fresh = _create(service, address="addr2")

        expired = service.expire_pending_payments(utc_now() + timedelta(minutes=61))

        assert {p.id for p in expired} == {overdue.id, fresh.id}
        assert all(p.status == PaymentStatus.EXPIRED.value for p in expired)
        webhook_service.send.assert_not_called()

    def test_expire_pending_before_deadline(self, service):
        _create(service)
        assert service.expire_pending_payments(utc_now()) == []

    def test_expire_skips_detected(self, db_session, service):
        payment = _create(service)
        payment.status = PaymentStatus.DETECTED.value
        db_session.commit()

        assert service.expire_pending_payments(utc_now() + timedelta(hours=2)) == []

    def test_in_flight_grace(self, db_session, service):
        payment = _create(service)
        payment.status = PaymentStatus.CONFIRMING.value
        db_session.commit()
        after_deadline = utc_now() + timedelta(minutes=61)

        assert service.expire_in_flight_payments(after_deadline, grace_minutes=60) == []

        expired = service.expire_in_flight_payments(
            after_deadline + timedelta(minutes=60), grace_minutes=60
        )
        assert [p.id for p in expired] == [payment.id]
        assert expired[0].status == PaymentStatus.EXPIRED.value

    def test_in_flight_expiry_limited_to_rechecked_ids(self, db_session, service):
        rechecked = _create(service, address="addr1")
        unchecked = _create(service, address="addr2")
        for payment in (rechecked, unchecked):
            payment.status = PaymentStatus.DETECTED.value
        db_session.commit()

        expired = service.expire_in_flight_payments(
            utc_now() + timedelta(minutes=180),
            grace_minutes=60,
            network="txc",
            payment_ids={rechecked.id},
        )

        assert [p.id for p in expired] == [rechecked.id]
        db_session.refresh(unchecked)
        assert unchecked.status == PaymentStatus.DETECTED.value

    def test_notify_expired(self, service, webhook_service):
        _create(service)
        expired = service.expire_pending_payments(utc_now() + timedelta(minutes=61))

        service.notify_expired(expired)

        assert webhook_service.send.call_args.args[2] == "payment.expired"


class TestCheckPaymentAddress:
    def test_reports_incoming_transactions(self, service):
        payment = _create(service)
        address = payment.payment_address
        chain_client = MagicMock()
        chain_client.get_address_balance.return_value = AddressBalance(
            confirmed=ONE_TXC, unconfirmed=5, total=ONE_TXC + 5
        )
        chain_client.get_block_height.return_value = 102
        chain_client.get_address_activity.return_value = AddressActivity(
            address=address,
            confirmed=[
                ChainTransaction(
                    txid="c1",
                    vout=[TxOutput(scriptpubkey_address=address, value=ONE_TXC)],
                    status=TxStatus(confirmed=True, block_height=100),
                ),
                ChainTransaction(
                    txid="spend",
                    vout=[TxOutput(scriptpubkey_address="elsewhere", value=ONE_TXC)],
                    status=TxStatus(confirmed=True, block_height=101),
                ),
            ],
            mempool=[
                ChainTransaction(txid="m1", vout=[TxOutput(scriptpubkey_address=address, value=5)])
            ],
        )

        check = service.check_payment_address(payment, chain_client)

        assert check.payment_id == payment.id
        assert check.confirmed_balance == ONE_TXC
        assert check.unconfirmed_balance == 5
        assert [(t.txid, t.confirmations, t.confirmed) for t in check.transactions] == [
            ("c1", 3, True),
            ("m1", 0, False),
        ]

    def test_only_txc_supported(self, db_session, service):
        payment = _create(service)
        payment.network = "eth"
        db_session.commit()

        with pytest.raises(ValueError):
            service.check_payment_address(payment, MagicMock())
