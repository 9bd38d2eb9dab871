import struct
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from decred_vote_analyzer.errors import SourceUnavailable, TransactionNotFound
from decred_vote_analyzer.models import BlockHeader, RawTransactionRecord, VerboseTransaction
from decred_vote_analyzer.wire import decode_transaction_hex, parse_hash

TICKET_MATURITY = 256
MATURITY_BLOCK_TIME = 1_500_000_000


def tx_hash(n: int) -> str:
    return f"{n:064x}"


def _varint(value: int) -> bytes:
    if value < 0xFD:
        return struct.pack("<B", value)
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    return b"\xfe" + struct.pack("<I", value)


def serialize_transaction(
    inputs: Sequence[Tuple[str, int, int]],
    outputs: Sequence[Tuple[int, bytes]] = ((0, b"\x6a"),),
    serialize_type: int = 0,
    with_witness: bool = True,
) -> str:
    """Build a Decred-serialized transaction as hex from (prev hash, index, tree) inputs."""
    data = struct.pack("<I", 1 | (serialize_type << 16))
    data += _varint(len(inputs))
    for prev_hash, index, tree in inputs:
        data += parse_hash(prev_hash) + struct.pack("<IbI", index, tree, 0xFFFFFFFF)
    data += _varint(len(outputs))
    for value, script in outputs:
        data += struct.pack("<qH", value, 0) + _varint(len(script)) + script
    data += struct.pack("<II", 0, 0)
    if with_witness and serialize_type == 0:
        data += _varint(len(inputs))
        for _ in inputs:
            data += struct.pack("<qII", 0, 0, 0) + _varint(2) + b"\x00\x00"
    return data.hex()


def vote_transaction_hex(ticket_txid: str, output_index: int = 0) -> str:
    # Input 0 is the stakebase (null outpoint); input 1 spends the ticket.
    return serialize_transaction([(tx_hash(0), 0xFFFFFFFF, 0), (ticket_txid, output_index, 1)])


class FakeTransactionSource:
    """In-memory wallet that answers lookups like dcrwallet would."""

    def __init__(self) -> None:
        self.listing: List[RawTransactionRecord] = []
        self.raw: Dict[str, str] = {}
        self.verbose: Dict[str, VerboseTransaction] = {}
        self.block_hashes: Dict[int, str] = {}
        self.headers: Dict[str, BlockHeader] = {}
        self.unavailable_methods: set = set()
        self.calls: List[Tuple[str, object]] = []
        self._next_block = 10_000

    def _check(self, method: str, arg: object) -> None:
        self.calls.append((method, arg))
        if method in self.unavailable_methods:
            raise SourceUnavailable(f"Request error on method {method}: connection refused")

    async def list_transactions(self, account: str, count: int, start: int) -> List[RawTransactionRecord]:
        self._check("listtransactions", account)
        return list(self.listing)[start:start + count]

    async def get_transaction(self, txid: str):
        self._check("getrawtransaction", txid)
        if txid not in self.raw:
            raise TransactionNotFound("getrawtransaction", -5, "No information available about transaction")
        return decode_transaction_hex(self.raw[txid])

    async def get_transaction_verbose(self, txid: str) -> VerboseTransaction:
        self._check("getrawtransactionverbose", txid)
        if txid not in self.verbose:
            raise TransactionNotFound("getrawtransaction", -5, "No information available about transaction")
        return self.verbose[txid]

    async def get_block_hash(self, height: int) -> str:
        self._check("getblockhash", height)
        if height not in self.block_hashes:
            raise TransactionNotFound("getblockhash", -1, "Block number out of range")
        return self.block_hashes[height]

    async def get_block_header(self, block_hash: str) -> BlockHeader:
        self._check("getblockheader", block_hash)
        if block_hash not in self.headers:
            raise TransactionNotFound("getblockheader", -5, "Block not found")
        return self.headers[block_hash]

    def add_block(self, height: int, time: int) -> str:
        block_hash = tx_hash(self._next_block)
        self._next_block += 1
        self.block_hashes[height] = block_hash
        self.headers[block_hash] = BlockHeader(block_hash=block_hash, height=height, time=time)
        return block_hash

    def add_vote(
        self,
        vote_txid: str,
        ticket_txid: str,
        wait_blocks: int,
        wait_seconds: int,
        ticket_height: int = 200_000,
        price: float = 100.5,
        output_index: int = 0,
        listing_copies: int = 2,
        maturity: int = TICKET_MATURITY,
        maturity_time: int = MATURITY_BLOCK_TIME,
    ) -> None:
        maturity_height = ticket_height + maturity
        if maturity_height not in self.block_hashes:
            self.add_block(maturity_height, maturity_time)
        values = [0.0] * output_index + [price, 0.0, 1.25]
        self.verbose[ticket_txid] = VerboseTransaction(
            txid=ticket_txid,
            block_height=ticket_height,
            block_time=maturity_time - maturity * 300,
            output_values=tuple(values),
        )
        self.raw[vote_txid] = vote_transaction_hex(ticket_txid, output_index)
        self.verbose[vote_txid] = VerboseTransaction(
            txid=vote_txid,
            block_height=maturity_height + wait_blocks,
            block_time=maturity_time + wait_seconds,
            output_values=(0.5, price + 0.5),
        )
        for _ in range(listing_copies):
            self.listing.append(RawTransactionRecord(txid=vote_txid, txtype="vote", category="receive"))

    def add_listing(self, records: Iterable[Tuple[str, Optional[str]]]) -> None:
        for txid, txtype in records:
            self.listing.append(RawTransactionRecord(txid=txid, txtype=txtype))


@pytest.fixture
def source() -> FakeTransactionSource:
    return FakeTransactionSource()


@pytest.fixture
def three_vote_source(source: FakeTransactionSource) -> FakeTransactionSource:
    source.add_vote(tx_hash(1), tx_hash(101), wait_blocks=10, wait_seconds=30_000, ticket_height=200_000)
    source.add_vote(tx_hash(2), tx_hash(102), wait_blocks=5, wait_seconds=15_000, ticket_height=200_010)
    source.add_vote(tx_hash(3), tx_hash(103), wait_blocks=20, wait_seconds=60_000, ticket_height=200_020)
    source.add_listing([(tx_hash(500), "regular"), (tx_hash(101), "ticket")])
    return source
