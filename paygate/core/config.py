from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChainSettings(BaseModel):
    """Per-network payment defaults."""

    expiration_minutes: int
    confirmations_required: int


DEFAULT_CHAIN_CONFIG: dict[str, ChainSettings] = {
    "txc": ChainSettings(expiration_minutes=60, confirmations_required=6),
    "eth": ChainSettings(expiration_minutes=30, confirmations_required=12),
    "base": ChainSettings(expiration_minutes=30, confirmations_required=12),
    "bsc": ChainSettings(expiration_minutes=30, confirmations_required=15),
    "polygon": ChainSettings(expiration_minutes=30, confirmations_required=128),
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_DATABASE_DSN: str = "sqlite:////tmp/paygate.db"

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Chain explorer (mempool/esplora REST API)
    MEMPOOL_API_URL: str = "https://mempool.texitcoin.org/api"
    MEMPOOL_PAGE_SIZE: int = 25
    MEMPOOL_MAX_PAGES: int = 5

    # Price oracle
    COINMARKETCAP_API_URL: str = "https://pro-api.coinmarketcap.com"
    COINMARKETCAP_API_KEY: str = ""

    # Payment monitor
    MONITOR_NETWORK: str = "txc"
    MONITOR_POLL_INTERVAL_SECONDS: float = 10.0
    IN_FLIGHT_EXPIRY_GRACE_MINUTES: int = 1440

    # Webhook delivery
    WEBHOOK_TIMEOUT_SECONDS: float = 30.0
    WEBHOOK_RETRY_INTERVAL_SECONDS: float = 30.0
    WEBHOOK_RETRY_BATCH_SIZE: int = 100

    CHAIN_CONFIG: dict[str, ChainSettings] = DEFAULT_CHAIN_CONFIG

    def chain_settings(self, network: str) -> ChainSettings:
        try:
            return self.CHAIN_CONFIG[network]
        except KeyError as exc:
            raise ValueError(f"No chain configuration for network {network}") from exc


settings = Settings()
