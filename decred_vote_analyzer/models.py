"""Data model shared by the RPC client, the resolver and the reporter."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


def epoch_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass(frozen=True)
class RawTransactionRecord:
    """One entry of ``listtransactions``; the same txid can appear several times."""

    txid: str
    txtype: Optional[str]
    category: Optional[str] = None

    @property
    def is_vote(self) -> bool:
        return self.txtype == "vote"


@dataclass(frozen=True)
class OutPoint:
    tx_hash: str
    index: int
    tree: int = 0


@dataclass(frozen=True)
class TxIn:
    previous_outpoint: OutPoint
    sequence: int


@dataclass(frozen=True)
class TxOut:
    value_atoms: int
    script_version: int
    pk_script: bytes = b""


@dataclass(frozen=True)
class TransactionBody:
    version: int
    inputs: Tuple[TxIn, ...]
    outputs: Tuple[TxOut, ...]
    lock_time: int = 0
    expiry: int = 0


@dataclass(frozen=True)
class VerboseTransaction:
    """Block-annotated view of a transaction from ``getrawtransaction <txid> 1``."""

    txid: str
    block_height: int
    block_time: int
    output_values: Tuple[float, ...] = ()

    @property
    def block_datetime(self) -> datetime:
        return epoch_to_datetime(self.block_time)


@dataclass(frozen=True)
class BlockHeader:
    block_hash: str
    height: int
    time: int

    @property
    def block_datetime(self) -> datetime:
        return epoch_to_datetime(self.time)


@dataclass(frozen=True)
class TicketOutpoint:
    """Result of resolving a vote back to the ticket output it spends."""

    vote_hash: str
    ticket_hash: str
    ticket_output_index: int
    vote_height: int
    vote_time: datetime


@dataclass(frozen=True)
class TicketMaturity:
    ticket_time: datetime
    ticket_price: float
    ticket_height: int
    maturity_height: int
    maturity_time: datetime


@dataclass(frozen=True)
class VoteRecord:
    vote_hash: str
    vote_height: int
    vote_time: datetime
    ticket_price: float
    ticket_hash: str
    ticket_height: int
    ticket_time: datetime
    ticket_maturity_height: int
    ticket_maturity_time: datetime
    wait_time_blocks: int
    wait_time_seconds: int

    @property
    def wait_time_days(self) -> float:
        return self.wait_time_seconds / 86_400

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vote_hash": self.vote_hash,
            "vote_height": self.vote_height,
            "vote_time": self.vote_time.isoformat(),
            "ticket_price": self.ticket_price,
            "ticket_hash": self.ticket_hash,
            "ticket_height": self.ticket_height,
            "ticket_time": self.ticket_time.isoformat(),
            "ticket_maturity_height": self.ticket_maturity_height,
            "ticket_maturity_time": self.ticket_maturity_time.isoformat(),
            "wait_time_blocks": self.wait_time_blocks,
            "wait_time_seconds": self.wait_time_seconds,
            "wait_time_days": self.wait_time_days,
        }
