from paygate.models.merchant import Merchant, MerchantNetwork
from paygate.models.payment import (
    ACTIVE_PAYMENT_STATUSES,
    Payment,
    PaymentCurrency,
    PaymentNetwork,
    PaymentStatus,
)
from paygate.models.payment_transaction import LedgerTransaction
from paygate.models.webhook_delivery_attempt import WebhookDeliveryAttempt
from paygate.models.webhook_log import MAX_WEBHOOK_ATTEMPTS, WebhookLog

__all__ = [
    "ACTIVE_PAYMENT_STATUSES",
    "LedgerTransaction",
    "MAX_WEBHOOK_ATTEMPTS",
    "Merchant",
    "MerchantNetwork",
    "Payment",
    "PaymentCurrency",
    "PaymentNetwork",
    "PaymentStatus",
    "WebhookDeliveryAttempt",
    "WebhookLog",
]
