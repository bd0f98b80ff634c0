"""Tests for the CoinMarketCap price oracle."""

from decimal import Decimal

import httpx
import pytest

from paygate.services.price_oracle import (
    CMC_IDS,
    FALLBACK_PRICES,
    CoinMarketCapPriceOracle,
)

BASE_URL = "https://cmc.test"


def _quote(price):
    return {"quote": {"USD": {"price": price}}}


def _oracle(handler):
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return CoinMarketCapPriceOracle(api_key="test-key", base_url=BASE_URL, http_client=http_client)


class TestLatestPrice:
    def test_returns_quoted_price(self):
        def handler(request):
            assert request.url.path == "/v1/cryptocurrency/quotes/latest"
            assert request.url.params["id"] == CMC_IDS["TXC"]
            assert request.url.params["convert"] == "USD"
            assert request.headers["X-CMC_PRO_API_KEY"] == "test-key"
            return httpx.Response(200, json={"data": {CMC_IDS["TXC"]: _quote(2.881234567891)}})

        assert _oracle(handler).get_latest_price(CMC_IDS["TXC"]) == Decimal("2.88123457")

    def test_http_error_falls_back(self):
        oracle = _oracle(lambda request: httpx.Response(500, json={"status": "error"}))
        assert oracle.get_latest_price(CMC_IDS["TXC"]) == FALLBACK_PRICES["TXC"]

    def test_transport_error_falls_back(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        assert _oracle(handler).get_latest_price(CMC_IDS["ETH"]) == FALLBACK_PRICES["ETH"]

    def test_malformed_body_falls_back(self):
        oracle = _oracle(lambda request: httpx.Response(200, json={"data": {}}))
        assert oracle.get_latest_price(CMC_IDS["USDC"]) == FALLBACK_PRICES["USDC"]

    @pytest.mark.parametrize("price", [0, -1.5, 0.000000001])
    def test_non_positive_price_falls_back(self, price):
        oracle = _oracle(
            lambda request: httpx.Response(200, json={"data": {CMC_IDS["TXC"]: _quote(price)}})
        )
        assert oracle.get_latest_price(CMC_IDS["TXC"]) == FALLBACK_PRICES["TXC"]

    def test_unknown_coin_falls_back_to_one(self):
        oracle = _oracle(lambda request: httpx.Response(500))
        assert oracle.get_latest_price("999999") == Decimal("1")


class TestExchangeRate:
    def test_by_symbol(self):
        def handler(request):
            return httpx.Response(200, json={"data": {CMC_IDS["ETH"]: _quote(3456.78)}})

        assert _oracle(handler).get_exchange_rate("eth") == Decimal("3456.78")

    def test_unsupported_currency_raises(self):
        oracle = _oracle(lambda request: httpx.Response(200, json={"data": {}}))
        with pytest.raises(ValueError, match="Unsupported currency"):
            oracle.get_exchange_rate("DOGE")


class TestAllPrices:
    def test_partial_response_fills_from_fallbacks(self):
        def handler(request):
            assert set(request.url.params["id"].split(",")) == set(CMC_IDS.values())
            return httpx.Response(200, json={"data": {CMC_IDS["TXC"]: _quote(3.1)}})

        prices = _oracle(handler).get_all_prices()

        assert prices["TXC"] == Decimal("3.1")
        assert prices["BTC"] == FALLBACK_PRICES["BTC"]
        assert set(prices) == set(CMC_IDS)

    def test_total_failure_returns_fallbacks(self):
        prices = _oracle(lambda request: httpx.Response(429)).get_all_prices()
        assert prices == FALLBACK_PRICES

    def test_zero_quote_uses_fallback(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"data": {CMC_IDS["TXC"]: _quote(0), CMC_IDS["ETH"]: _quote(3600)}},
            )

        prices = _oracle(handler).get_all_prices()

        assert prices["TXC"] == FALLBACK_PRICES["TXC"]
        assert prices["ETH"] == Decimal("3600")
