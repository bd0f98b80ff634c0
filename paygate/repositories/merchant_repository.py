"""Merchant repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from paygate.models.merchant import Merchant, MerchantNetwork


class MerchantRepository:
    """Repository for Merchant and MerchantNetwork models."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, merchant_id: UUID) -> Merchant | None:
        """Get a merchant by ID."""
        return self.db.query(Merchant).filter(Merchant.id == merchant_id).first()

    def create(
        self,
        name: str,
        email: str | None = None,
        webhook_url: str | None = None,
        webhook_secret: str | None = None,
        default_expiration_minutes: int | None = None,
        auto_confirmations: int | None = None,
    ) -> Merchant:
        """Create a new merchant."""
        merchant = Merchant(
            name=name,
            email=email,
            webhook_url=webhook_url,
            webhook_secret=webhook_secret,
            default_expiration_minutes=default_expiration_minutes,
            auto_confirmations=auto_confirmations,
        )
        self.db.add(merchant)
        self.db.commit()
        self.db.refresh(merchant)
        return merchant

    def update_webhook(
        self,
        merchant_id: UUID,
        webhook_url: str | None,
        webhook_secret: str | None,
    ) -> Merchant | None:
        """Replace a merchant's webhook endpoint and signing secret."""
        merchant = self.get_by_id(merchant_id)
        if not merchant:
            return None

        merchant.webhook_url = webhook_url  # type: ignore[assignment]
        merchant.webhook_secret = webhook_secret  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(merchant)
        return merchant

    def add_network(
        self,
        merchant_id: UUID,
        network: str,
        currency: str,
        wallet_address: str | None = None,
    ) -> MerchantNetwork:
        """Enable a network/currency pair for a merchant."""
        entry = MerchantNetwork(
            merchant_id=merchant_id,
            network=network,
            currency=currency,
            wallet_address=wallet_address,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def get_active_networks(self, merchant_id: UUID) -> list[MerchantNetwork]:
        """Get the network/currency pairs a merchant currently accepts."""
        return (
            self.db.query(MerchantNetwork)
            .filter(
                MerchantNetwork.merchant_id == merchant_id,
                MerchantNetwork.is_active.is_(True),
            )
            .order_by(MerchantNetwork.network.asc(), MerchantNetwork.currency.asc())
            .all()
        )

    def supports(self, merchant_id: UUID, network: str, currency: str) -> bool:
        """Check whether a merchant accepts a network/currency pair."""
        return (
            self.db.query(MerchantNetwork.id)
            .filter(
                MerchantNetwork.merchant_id == merchant_id,
                MerchantNetwork.network == network,
                MerchantNetwork.currency == currency,
                MerchantNetwork.is_active.is_(True),
            )
            .first()
            is not None
        )
