"""CoinMarketCap price oracle.

Prices are whole-unit USD values (e.g. 2.88 USD per TXC), rounded to eight
decimals so they convert cleanly to stored rates. Lookups never raise on
upstream failure: a static fallback table stands in for the API.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from paygate.core.config import settings

logger = logging.getLogger(__name__)

CMC_IDS: dict[str, str] = {
    "TXC": "32744",
    "LTC": "2",
    "ETH": "1027",
    "USDT": "825",
    "USDC": "3408",
    "BTC": "1",
}

FALLBACK_PRICES: dict[str, Decimal] = {
    "TXC": Decimal("1.88"),
    "LTC": Decimal("100"),
    "ETH": Decimal("3500"),
    "USDT": Decimal("1"),
    "USDC": Decimal("1"),
    "BTC": Decimal("95000"),
}

PRICE_QUANTUM = Decimal("0.00000001")


def _symbol_for(coin_id: str) -> str | None:
    for symbol, cmc_id in CMC_IDS.items():
        if cmc_id == coin_id:
            return symbol
    return None


class CoinMarketCapPriceOracle:
    """Fetches USD quotes for supported currencies."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.COINMARKETCAP_API_KEY
        self.base_url = (base_url or settings.COINMARKETCAP_API_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._http_client = http_client

    def _fetch_quotes(self, coin_ids: list[str]) -> dict[str, Any]:
        params = {"id": ",".join(coin_ids), "convert": "USD"}
        headers = {"X-CMC_PRO_API_KEY": self.api_key, "Accept": "application/json"}
        url = f"{self.base_url}/v1/cryptocurrency/quotes/latest"

        if self._http_client is not None:
            response = self._http_client.get(url, params=params, headers=headers)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.get(url, params=params, headers=headers)
        response.raise_for_status()
        data: dict[str, Any] = response.json()["data"]
        return data

    @staticmethod
    def _extract_price(data: dict[str, Any], coin_id: str) -> Decimal:
        price = Decimal(str(data[coin_id]["quote"]["USD"]["price"])).quantize(PRICE_QUANTUM)
        if price <= 0:
            raise ValueError(f"Non-positive price {price} for coin {coin_id}")
        return price

    def get_latest_price(self, coin_id: str) -> Decimal:
        """USD price of one whole unit of a CoinMarketCap coin ID."""
        try:
            return self._extract_price(self._fetch_quotes([coin_id]), coin_id)
        except (httpx.HTTPError, KeyError, TypeError, ValueError, InvalidOperation) as exc:
            symbol = _symbol_for(coin_id)
            fallback = FALLBACK_PRICES.get(symbol, Decimal("1")) if symbol else Decimal("1")
            logger.warning(
                "Price lookup for coin %s failed (%s); using fallback %s", coin_id, exc, fallback
            )
            return fallback

    def get_exchange_rate(self, currency: str) -> Decimal:
        """USD price of one whole unit of ``currency``."""
        coin_id = CMC_IDS.get(currency.upper())
        if coin_id is None:
            raise ValueError(f"Unsupported currency: {currency}")
        return self.get_latest_price(coin_id)

    def get_all_prices(self) -> dict[str, Decimal]:
        """USD prices for every supported currency, falling back per currency."""
        try:
            data = self._fetch_quotes(list(CMC_IDS.values()))
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Bulk price lookup failed (%s); using fallback prices", exc)
            return dict(FALLBACK_PRICES)

        prices: dict[str, Decimal] = {}
        for symbol, coin_id in CMC_IDS.items():
            try:
                prices[symbol] = self._extract_price(data, coin_id)
            except (KeyError, TypeError, ValueError, InvalidOperation):
                prices[symbol] = FALLBACK_PRICES[symbol]
        return prices
