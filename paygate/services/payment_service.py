"""Payment lifecycle operations outside the reconciliation loop."""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from paygate.core.config import Settings, settings
from paygate.core.exceptions import NotFound, PaymentStateError
from paygate.models.payment import Payment, PaymentCurrency, PaymentNetwork, PaymentStatus
from paygate.models.shared import utc_now
from paygate.repositories.merchant_repository import MerchantRepository
from paygate.repositories.payment_repository import PaymentRepository
from paygate.schemas.payment import (
    IncomingTransaction,
    PaymentAddressCheck,
    PaymentCreate,
    PaymentFilter,
)
from paygate.services.currency import fiat_to_crypto, rate_to_stored_rate
from paygate.services.mempool_client import MempoolClient
from paygate.services.price_oracle import CoinMarketCapPriceOracle
from paygate.services.webhook_service import WebhookService, payment_event

logger = logging.getLogger(__name__)


def payment_webhook_data(payment: Payment, status: PaymentStatus | None = None) -> dict[str, Any]:
    """Event data sent to merchants; amounts are smallest-unit strings."""
    return {
        "payment_id": str(payment.id),
        "external_id": payment.external_id,
        "status": (status.value if status else str(payment.status)),
        "amount_requested": str(payment.amount_requested),
        "amount_paid": str(payment.amount_paid or 0),
        "confirmations": int(payment.current_confirmations or 0),
        "currency": payment.currency,
        "network": payment.network,
        "payment_address": payment.payment_address,
    }


class PaymentService:
    """Creation, cancellation, expiry and lookups for payments."""

    def __init__(
        self,
        db: Session,
        price_oracle: CoinMarketCapPriceOracle | None = None,
        webhook_service: WebhookService | None = None,
        config: Settings | None = None,
    ):
        self.db = db
        self.repo = PaymentRepository(db)
        self.merchant_repo = MerchantRepository(db)
        self.price_oracle = price_oracle or CoinMarketCapPriceOracle()
        self.webhook_service = webhook_service or WebhookService(db)
        self.config = config or settings

    def create(self, merchant_id: UUID, data: PaymentCreate, payment_address: str) -> Payment:
        """Create a pending payment for a freshly generated receive address.

        Raises:
            NotFound: unknown merchant.
            ValueError: the merchant does not accept the network/currency pair,
                or the external ID is already used by this merchant.
        """
        merchant = self.merchant_repo.get_by_id(merchant_id)
        if merchant is None:
            raise NotFound(f"Merchant {merchant_id} not found")

        if not self.merchant_repo.supports(merchant_id, data.network.value, data.currency.value):
            raise ValueError(
                f"Network {data.network.value} with currency {data.currency.value} "
                "is not supported"
            )
        if data.external_id and self.repo.get_by_external_id(data.external_id, merchant_id):
            raise ValueError(f"External ID {data.external_id} already exists")

        amount_requested = data.amount
        fiat_amount: int | None = None
        exchange_rate: int | None = None
        if data.fiat_currency and data.fiat_currency.upper() != data.currency.value:
            fiat_currency = data.fiat_currency.upper()
            rate = self.price_oracle.get_exchange_rate(data.currency.value)
            exchange_rate = rate_to_stored_rate(rate)
            fiat_amount = data.amount
            amount_requested = fiat_to_crypto(
                fiat_amount, exchange_rate, data.currency.value, fiat_currency
            )
            if amount_requested <= 0:
                raise ValueError("Fiat amount converts to zero crypto units")

        chain = self.config.chain_settings(data.network.value)
        expiration_minutes = (
            data.expiration_minutes
            or merchant.default_expiration_minutes
            or chain.expiration_minutes
        )
        required_confirmations = merchant.auto_confirmations or chain.confirmations_required

        payment = self.repo.create(
            merchant_id=merchant_id,
            external_id=data.external_id,
            network=data.network.value,
            currency=data.currency.value,
            payment_address=payment_address,
            amount_requested=amount_requested,
            fiat_amount=fiat_amount,
            fiat_currency=data.fiat_currency.upper() if data.fiat_currency else None,
            exchange_rate=exchange_rate,
            required_confirmations=required_confirmations,
            expires_at=utc_now() + timedelta(minutes=expiration_minutes),
            customer_email=data.customer_email,
            customer_name=data.customer_name,
            success_url=data.success_url,
            cancel_url=data.cancel_url,
            payment_metadata=data.metadata,
        )
        logger.info(
            "Created payment %s for merchant %s: %d %s on %s",
            payment.id,
            merchant_id,
            amount_requested,
            data.currency.value,
            data.network.value,
        )
        return payment

    def get(self, payment_id: UUID, merchant_id: UUID | None = None) -> Payment:
        payment = self.repo.get_by_id(payment_id, merchant_id=merchant_id)
        if payment is None:
            raise NotFound(f"Payment {payment_id} not found")
        return payment

    def find_all(
        self, filters: PaymentFilter | None = None, skip: int = 0, limit: int = 20
    ) -> tuple[list[Payment], int]:
        return self.repo.find_all(filters, skip=skip, limit=limit), self.repo.count(filters)

    def find_by_address(self, payment_address: str) -> Payment | None:
        return self.repo.get_by_address(payment_address)

    def find_by_external_id(self, external_id: str, merchant_id: UUID) -> Payment | None:
        return self.repo.get_by_external_id(external_id, merchant_id)

    def retire(self, payment_id: UUID, merchant_id: UUID) -> Payment:
        """Hide a settled payment from listings; the row itself is kept."""
        payment = self.get(payment_id, merchant_id=merchant_id)
        try:
            self.repo.soft_delete(payment_id, utc_now())
        except ValueError as exc:
            raise PaymentStateError(
                f"Payment {payment_id} is still {payment.status} and cannot be retired"
            ) from exc
        self.db.refresh(payment)
        return payment

    def cancel(self, payment_id: UUID, merchant_id: UUID) -> Payment:
        """Cancel a pending payment on the merchant's behalf.

        Raises:
            NotFound: no such payment for this merchant.
            PaymentStateError: the payment has left ``pending``.
        """
        payment = self.get(payment_id, merchant_id=merchant_id)
        if not self.repo.transition_if_status(
            payment_id, PaymentStatus.PENDING, PaymentStatus.CANCELLED, merchant_id=merchant_id
        ):
            self.db.refresh(payment)
            raise PaymentStateError(
                f"Only pending payments can be cancelled (payment {payment_id} "
                f"is {payment.status})"
            )

        self.db.refresh(payment)
        self._notify(payment, PaymentStatus.CANCELLED)
        return payment

    def expire_pending_payments(self, now: datetime | None = None) -> list[Payment]:
        """Expire pending payments past their deadline.

        Each row is expired with a conditional update, so a payment detected
        or cancelled in the meantime is left alone.
        """
        now = now or utc_now()
        expired: list[Payment] = []
        for payment_id in self.repo.get_pending_expired_ids(now):
            if self.repo.transition_if_status(
                payment_id, PaymentStatus.PENDING, PaymentStatus.EXPIRED
            ):
                payment = self.repo.get_by_id(payment_id)
                if payment is not None:
                    expired.append(payment)

        if expired:
            logger.info("Expired %d pending payments", len(expired))
        return expired

    def expire_in_flight_payments(
        self,
        now: datetime | None = None,
        grace_minutes: int | None = None,
        network: str | None = None,
        payment_ids: set[UUID] | None = None,
    ) -> list[Payment]:
        """Expire detected/confirming payments stuck past deadline plus grace.

        ``payment_ids`` limits the sweep to payments whose chain state was
        just re-checked; anything else is left for a later cycle.
        """
        now = now or utc_now()
        grace = (
            self.config.IN_FLIGHT_EXPIRY_GRACE_MINUTES if grace_minutes is None else grace_minutes
        )
        cutoff = now - timedelta(minutes=grace)
        expired: list[Payment] = []
        for payment_id, status in self.repo.get_in_flight_expired_ids(cutoff, network=network):
            if payment_ids is not None and payment_id not in payment_ids:
                continue
            if self.repo.transition_if_status(payment_id, status, PaymentStatus.EXPIRED):
                payment = self.repo.get_by_id(payment_id)
                if payment is not None:
                    logger.warning(
                        "Payment %s expired from %s with %s received",
                        payment_id,
                        status.value,
                        payment.amount_paid,
                    )
                    expired.append(payment)
        return expired

    def notify_expired(self, payments: list[Payment]) -> None:
        for payment in payments:
            self._notify(payment, PaymentStatus.EXPIRED)

    def _notify(self, payment: Payment, status: PaymentStatus) -> None:
        try:
            self.webhook_service.send(
                payment.merchant_id,  # type: ignore[arg-type]
                payment.id,  # type: ignore[arg-type]
                payment_event(status),
                payment_webhook_data(payment, status),
            )
        except Exception:
            logger.exception("Failed to send %s webhook for payment %s", status.value, payment.id)

    def check_payment_address(
        self, payment: Payment, chain_client: MempoolClient
    ) -> PaymentAddressCheck:
        """Live explorer view of a payment's address, without touching the ledger."""
        if payment.network != PaymentNetwork.TXC.value:
            raise ValueError("Only the TXC network is supported")

        address = str(payment.payment_address)
        balance = chain_client.get_address_balance(address)
        tip_height = chain_client.get_block_height()
        incoming = [
            IncomingTransaction(
                txid=tx.txid,
                amount=tx.amount_to(address),
                confirmations=tx.confirmations(tip_height),
                confirmed=tx.status.confirmed,
            )
            for tx in chain_client.get_address_activity(address).transactions
            if tx.amount_to(address) > 0
        ]
        return PaymentAddressCheck(
            payment_id=payment.id,
            payment_address=address,
            confirmed_balance=balance.confirmed,
            unconfirmed_balance=balance.unconfirmed,
            transactions=incoming,
        )

    def get_supported_payment_methods(
        self, merchant_id: UUID | None = None
    ) -> list[dict[str, Any]]:
        """Network/currency combinations, per merchant or platform-wide."""
        if merchant_id is not None:
            grouped: dict[str, list[str]] = {}
            for entry in self.merchant_repo.get_active_networks(merchant_id):
                grouped.setdefault(str(entry.network), []).append(str(entry.currency))
            return [
                {"network": network, "currencies": currencies, "enabled": True}
                for network, currencies in grouped.items()
            ]

        return [
            {
                "network": PaymentNetwork.TXC.value,
                "currencies": [PaymentCurrency.TXC.value],
                "enabled": True,
            },
            {
                "network": PaymentNetwork.ETH.value,
                "currencies": [
                    PaymentCurrency.ETH.value,
                    PaymentCurrency.USDC.value,
                    PaymentCurrency.USDT.value,
                ],
                "enabled": False,
            },
            {
                "network": PaymentNetwork.BASE.value,
                "currencies": [PaymentCurrency.ETH.value, PaymentCurrency.USDC.value],
                "enabled": False,
            },
        ]
