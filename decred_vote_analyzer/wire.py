"""Decoding of serialized Decred transactions.

Only the transaction prefix is decoded (inputs, outputs, lock time, expiry).
Witness data follows the prefix in a full serialization and is ignored.
"""

from __future__ import annotations

import struct
from typing import List, Tuple

from .errors import InvalidIdentity, MalformedVoteTransaction
from .models import OutPoint, TransactionBody, TxIn, TxOut

HASH_SIZE = 32

TX_SERIALIZE_FULL = 0
TX_SERIALIZE_NO_WITNESS = 1
TX_SERIALIZE_ONLY_WITNESS = 2

# Cap on decoded input and output counts.
MAX_ELEMENTS = 1 << 16


def parse_hash(value: object) -> bytes:
    """Convert a displayed (byte-reversed) hex hash into internal byte order."""
    if not isinstance(value, str):
        raise InvalidIdentity(value, "expected a string")
    if len(value) != HASH_SIZE * 2:
        raise InvalidIdentity(value, f"expected {HASH_SIZE * 2} hex characters, got {len(value)}")
    try:
        raw = bytes.fromhex(value)
    except ValueError as exc:
        raise InvalidIdentity(value, "not hexadecimal") from exc
    if len(raw) != HASH_SIZE:
        raise InvalidIdentity(value, "not hexadecimal")
    return raw[::-1]


def format_hash(raw: bytes) -> str:
    """Inverse of :func:`parse_hash`."""
    if len(raw) != HASH_SIZE:
        raise ValueError(f"hash must be {HASH_SIZE} bytes, got {len(raw)}")
    return raw[::-1].hex()


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def read(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._data):
            raise MalformedVoteTransaction(
                f"Transaction truncated: wanted {size} bytes at offset {self._offset}, "
                f"only {len(self._data) - self._offset} remain"
            )
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk

    def unpack(self, fmt: str) -> Tuple:
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))

    def read_varint(self) -> int:
        (prefix,) = self.unpack("<B")
        if prefix == 0xFD:
            return self.unpack("<H")[0]
        if prefix == 0xFE:
            return self.unpack("<I")[0]
        if prefix == 0xFF:
            return self.unpack("<Q")[0]
        return prefix

    def read_count(self, label: str) -> int:
        count = self.read_varint()
        if count > MAX_ELEMENTS:
            raise MalformedVoteTransaction(f"Implausible {label} count {count}")
        return count

    def read_var_bytes(self) -> bytes:
        return self.read(self.read_varint())


def decode_transaction(data: bytes) -> TransactionBody:
    reader = _Reader(data)
    (version_word,) = reader.unpack("<I")
    version = version_word & 0xFFFF
    serialize_type = version_word >> 16
    if serialize_type == TX_SERIALIZE_ONLY_WITNESS:
        raise MalformedVoteTransaction("Witness-only serialization carries no inputs")
    if serialize_type not in (TX_SERIALIZE_FULL, TX_SERIALIZE_NO_WITNESS):
        raise MalformedVoteTransaction(f"Unknown serialization type {serialize_type}")

    inputs: List[TxIn] = []
    for _ in range(reader.read_count("input")):
        prev_hash = reader.read(HASH_SIZE)
        index, tree, sequence = reader.unpack("<IbI")
        inputs.append(
            TxIn(
                previous_outpoint=OutPoint(tx_hash=format_hash(prev_hash), index=index, tree=tree),
                sequence=sequence,
            )
        )

    outputs: List[TxOut] = []
    for _ in range(reader.read_count("output")):
        value, script_version = reader.unpack("<qH")
        outputs.append(TxOut(value_atoms=value, script_version=script_version, pk_script=reader.read_var_bytes()))

    lock_time, expiry = reader.unpack("<II")
    return TransactionBody(
        version=version,
        inputs=tuple(inputs),
        outputs=tuple(outputs),
        lock_time=lock_time,
        expiry=expiry,
    )


def decode_transaction_hex(hex_data: str) -> TransactionBody:
    try:
        data = bytes.fromhex(hex_data)
    except (TypeError, ValueError) as exc:
        raise MalformedVoteTransaction("Serialized transaction is not valid hex") from exc
    return decode_transaction(data)
