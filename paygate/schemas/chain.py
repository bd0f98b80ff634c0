"""Schemas for chain explorer (mempool/esplora) responses."""

from pydantic import BaseModel, Field


class TxOutput(BaseModel):
    scriptpubkey_address: str | None = None
    scriptpubkey_type: str | None = None
    value: int


class TxStatus(BaseModel):
    confirmed: bool = False
    block_height: int | None = None
    block_hash: str | None = None
    block_time: int | None = None


class ChainTransaction(BaseModel):
    txid: str
    vout: list[TxOutput] = Field(default_factory=list)
    status: TxStatus = Field(default_factory=TxStatus)
    fee: int | None = None

    def amount_to(self, address: str) -> int:
        """Sum of output values paying ``address``, in smallest units."""
        return sum(out.value for out in self.vout if out.scriptpubkey_address == address)

    def confirmations(self, tip_height: int) -> int:
        """Confirmation count at ``tip_height``, counting the containing block.

        A confirmed transaction whose block is above a tip fetched earlier in
        the cycle counts as one confirmation.
        """
        if not self.status.confirmed or self.status.block_height is None:
            return 0
        return max(tip_height - self.status.block_height + 1, 1)


class AddressStats(BaseModel):
    funded_txo_count: int = 0
    funded_txo_sum: int = 0
    spent_txo_count: int = 0
    spent_txo_sum: int = 0
    tx_count: int = 0


class AddressInfo(BaseModel):
    address: str
    chain_stats: AddressStats = Field(default_factory=AddressStats)
    mempool_stats: AddressStats = Field(default_factory=AddressStats)


class AddressBalance(BaseModel):
    confirmed: int
    unconfirmed: int
    total: int


class Utxo(BaseModel):
    txid: str
    vout: int
    value: int
    status: TxStatus = Field(default_factory=TxStatus)


class AddressActivity(BaseModel):
    """Confirmed and mempool transactions touching one address.

    ``complete`` is False when confirmed history pagination stopped at the
    page ceiling, so the confirmed list may be missing older transactions.
    """

    address: str
    confirmed: list[ChainTransaction] = Field(default_factory=list)
    mempool: list[ChainTransaction] = Field(default_factory=list)
    complete: bool = True

    @property
    def transactions(self) -> list[ChainTransaction]:
        # A tx can surface in both lists while the explorer indexes a new block
        seen: dict[str, ChainTransaction] = {}
        for tx in [*self.confirmed, *self.mempool]:
            seen.setdefault(tx.txid, tx)
        return list(seen.values())
