"""The transaction source capability the vote pipeline depends on."""

from __future__ import annotations

from typing import List, Protocol

from .models import BlockHeader, RawTransactionRecord, TransactionBody, VerboseTransaction


class TransactionSource(Protocol):
    """Wallet/node lookups needed to trace votes back to their tickets.

    Implementations raise :class:`~decred_vote_analyzer.errors.TransactionNotFound`
    when the node rejects a specific lookup and
    :class:`~decred_vote_analyzer.errors.SourceUnavailable` when the node
    itself cannot be reached.
    """

    async def list_transactions(self, account: str, count: int, start: int) -> List[RawTransactionRecord]:
        ...

    async def get_transaction(self, txid: str) -> TransactionBody:
        ...

    async def get_transaction_verbose(self, txid: str) -> VerboseTransaction:
        ...

    async def get_block_hash(self, height: int) -> str:
        ...

    async def get_block_header(self, block_hash: str) -> BlockHeader:
        ...
