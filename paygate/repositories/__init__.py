from paygate.repositories.merchant_repository import MerchantRepository
from paygate.repositories.payment_repository import PaymentRepository
from paygate.repositories.payment_transaction_repository import PaymentTransactionRepository
from paygate.repositories.webhook_log_repository import WebhookLogRepository

__all__ = [
    "MerchantRepository",
    "PaymentRepository",
    "PaymentTransactionRepository",
    "WebhookLogRepository",
]
