from paygate.schemas.chain import (
    AddressActivity,
    AddressBalance,
    AddressInfo,
    AddressStats,
    ChainTransaction,
    TxOutput,
    TxStatus,
    Utxo,
)
from paygate.schemas.payment import (
    IncomingTransaction,
    PaymentAddressCheck,
    PaymentCreate,
    PaymentFilter,
    PaymentResponse,
)
from paygate.schemas.webhook import WebhookLogPage, WebhookLogResponse

__all__ = [
    "AddressActivity",
    "AddressBalance",
    "AddressInfo",
    "AddressStats",
    "ChainTransaction",
    "IncomingTransaction",
    "PaymentAddressCheck",
    "PaymentCreate",
    "PaymentFilter",
    "PaymentResponse",
    "TxOutput",
    "TxStatus",
    "Utxo",
    "WebhookLogPage",
    "WebhookLogResponse",
]
