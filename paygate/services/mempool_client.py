"""Chain data client for mempool/esplora-style block explorers.

The explorer serves confirmed address history in pages of 25, newest first;
the next page is requested with the last txid of the previous one.
"""

import logging
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from paygate.core.config import settings
from paygate.core.exceptions import NotFound, UpstreamUnavailable
from paygate.schemas.chain import (
    AddressActivity,
    AddressBalance,
    AddressInfo,
    ChainTransaction,
    Utxo,
)

logger = logging.getLogger(__name__)

_transactions_adapter = TypeAdapter(list[ChainTransaction])
_utxos_adapter = TypeAdapter(list[Utxo])


class MempoolClient:
    """Read-mostly client for the explorer REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.base_url = (base_url or settings.MEMPOOL_API_URL).rstrip("/")
        self.page_size = page_size or settings.MEMPOOL_PAGE_SIZE
        self.max_pages = max_pages or settings.MEMPOOL_MAX_PAGES
        self._client = http_client or httpx.Client(
            base_url=self.base_url,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "MempoolClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Explorer request {method} {path} failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFound(f"Explorer returned 404 for {path}")
        if response.status_code >= 400:
            raise UpstreamUnavailable(
                f"Explorer request {method} {path} returned HTTP {response.status_code}"
            )
        return response

    def _get_json(self, path: str) -> Any:
        response = self._request("GET", path)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"Explorer returned invalid JSON for {path}") from exc

    def _parse_transactions(self, path: str, data: Any) -> list[ChainTransaction]:
        try:
            return _transactions_adapter.validate_python(data)
        except ValidationError as exc:
            raise UpstreamUnavailable(f"Unexpected explorer payload for {path}") from exc

    # ==================== Blocks ====================

    def get_block_height(self) -> int:
        """Current best-known chain height."""
        try:
            response = self._request("GET", "/blocks/tip/height")
        except NotFound as exc:
            raise UpstreamUnavailable(f"Explorer has no chain tip: {exc}") from exc
        try:
            return int(response.text.strip())
        except ValueError as exc:
            raise UpstreamUnavailable(f"Invalid tip height: {response.text[:100]!r}") from exc

    # ==================== Transactions ====================

    def get_transaction(self, txid: str) -> ChainTransaction:
        path = f"/tx/{txid}"
        try:
            return ChainTransaction.model_validate(self._get_json(path))
        except ValidationError as exc:
            raise UpstreamUnavailable(f"Unexpected explorer payload for {path}") from exc

    def get_transaction_hex(self, txid: str) -> str:
        return self._request("GET", f"/tx/{txid}/hex").text.strip()

    def broadcast_transaction(self, tx_hex: str) -> str:
        """Submit a signed raw transaction; returns its txid."""
        response = self._request(
            "POST", "/tx", content=tx_hex, headers={"Content-Type": "text/plain"}
        )
        return response.text.strip()

    # ==================== Addresses ====================

    def get_address(self, address: str) -> AddressInfo:
        path = f"/address/{address}"
        try:
            return AddressInfo.model_validate(self._get_json(path))
        except ValidationError as exc:
            raise UpstreamUnavailable(f"Unexpected explorer payload for {path}") from exc

    def get_address_balance(self, address: str) -> AddressBalance:
        info = self.get_address(address)
        confirmed = info.chain_stats.funded_txo_sum - info.chain_stats.spent_txo_sum
        unconfirmed = info.mempool_stats.funded_txo_sum - info.mempool_stats.spent_txo_sum
        return AddressBalance(
            confirmed=confirmed,
            unconfirmed=unconfirmed,
            total=confirmed + unconfirmed,
        )

    def get_address_utxos(self, address: str) -> list[Utxo]:
        path = f"/address/{address}/utxo"
        try:
            return _utxos_adapter.validate_python(self._get_json(path))
        except ValidationError as exc:
            raise UpstreamUnavailable(f"Unexpected explorer payload for {path}") from exc

    def get_address_chain_transactions(
        self, address: str, after_txid: str | None = None
    ) -> list[ChainTransaction]:
        """One page of confirmed transactions for an address."""
        path = f"/address/{address}/txs/chain"
        if after_txid:
            path = f"{path}/{after_txid}"
        return self._parse_transactions(path, self._get_json(path))

    def _paginate_confirmed(self, address: str) -> tuple[list[ChainTransaction], bool]:
        transactions: list[ChainTransaction] = []
        after_txid: str | None = None

        for _ in range(self.max_pages):
            page = self.get_address_chain_transactions(address, after_txid)
            transactions.extend(page)
            if len(page) < self.page_size:
                return transactions, True
            after_txid = page[-1].txid

        logger.warning(
            "Address %s history truncated at %d pages (%d transactions)",
            address,
            self.max_pages,
            len(transactions),
        )
        return transactions, False

    def get_confirmed_transactions(self, address: str) -> list[ChainTransaction]:
        """All confirmed transactions for an address, up to the page ceiling."""
        transactions, _ = self._paginate_confirmed(address)
        return transactions

    def get_mempool_transactions(self, address: str) -> list[ChainTransaction]:
        """Unconfirmed transactions touching an address."""
        path = f"/address/{address}/txs/mempool"
        return self._parse_transactions(path, self._get_json(path))

    def get_address_activity(self, address: str) -> AddressActivity:
        """Confirmed and mempool transactions, flagged when history was truncated."""
        confirmed, complete = self._paginate_confirmed(address)
        mempool = self.get_mempool_transactions(address)
        return AddressActivity(
            address=address,
            confirmed=confirmed,
            mempool=mempool,
            complete=complete,
        )
