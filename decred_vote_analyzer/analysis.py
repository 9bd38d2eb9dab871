"""Trace wallet votes back to their tickets and measure the wait after maturity."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import MalformedVoteTransaction, VoteLookupError
from .models import RawTransactionRecord, TicketMaturity, TicketOutpoint, VoteRecord
from .source import TransactionSource
from .wire import format_hash, parse_hash

# Input 1 of a vote (stakegen) spends the ticket's stake submission output;
# input 0 is the stakebase.
TICKET_INPUT_INDEX = 1
PROGRESS_INTERVAL = 50

logger = logging.getLogger(__name__)


def unique_vote_hashes(records: Iterable[RawTransactionRecord]) -> List[str]:
    """Distinct vote txids from a listing, in the order they were first seen.

    ``listtransactions`` reports a transaction once per wallet-relevant input
    or output, so a single vote typically shows up several times.
    """
    known_votes: Dict[str, None] = {}
    for record in records:
        if record.is_vote:
            known_votes.setdefault(record.txid, None)
    return list(known_votes)


async def resolve_vote_ticket(source: TransactionSource, vote_txid: str) -> TicketOutpoint:
    vote_hash = format_hash(parse_hash(vote_txid))
    body = await source.get_transaction(vote_hash)
    if len(body.inputs) <= TICKET_INPUT_INDEX:
        raise MalformedVoteTransaction(
            f"Vote {vote_hash} has {len(body.inputs)} input(s); expected the ticket spend at input {TICKET_INPUT_INDEX}"
        )
    prevout = body.inputs[TICKET_INPUT_INDEX].previous_outpoint

    verbose = await source.get_transaction_verbose(vote_hash)
    if verbose.block_height <= 0 or verbose.block_time <= 0:
        raise MalformedVoteTransaction(f"Vote {vote_hash} is not mined in a block")

    return TicketOutpoint(
        vote_hash=vote_hash,
        ticket_hash=prevout.tx_hash,
        ticket_output_index=prevout.index,
        vote_height=verbose.block_height,
        vote_time=verbose.block_datetime,
    )


def maturity_height(purchase_height: int, ticket_maturity: int) -> int:
    return purchase_height + ticket_maturity


async def compute_ticket_maturity(
    source: TransactionSource,
    ticket_hash: str,
    output_index: int,
    ticket_maturity: int,
) -> TicketMaturity:
    ticket = await source.get_transaction_verbose(ticket_hash)
    if ticket.block_height <= 0 or ticket.block_time <= 0:
        raise MalformedVoteTransaction(f"Ticket {ticket_hash} is not mined in a block")
    if not 0 <= output_index < len(ticket.output_values):
        raise MalformedVoteTransaction(
            f"Ticket {ticket_hash} has no output {output_index} ({len(ticket.output_values)} outputs)"
        )
    mature_at = maturity_height(ticket.block_height, ticket_maturity)

    block_hash = await source.get_block_hash(mature_at)
    header = await source.get_block_header(block_hash)
    if header.time <= 0:
        raise MalformedVoteTransaction(f"Block {block_hash} at maturity height {mature_at} has no timestamp")

    return TicketMaturity(
        ticket_time=ticket.block_datetime,
        ticket_price=ticket.output_values[output_index],
        ticket_height=ticket.block_height,
        maturity_height=mature_at,
        maturity_time=header.block_datetime,
    )


def compute_wait_time(
    vote_height: int,
    vote_time: datetime,
    maturity_height: int,
    maturity_time: datetime,
) -> Tuple[int, int]:
    """Blocks and whole seconds from maturity to vote.

    Negative values mean the vote precedes maturity, which the consensus rules
    forbid; they are returned as-is so bad input stays visible.
    """
    wait_blocks = vote_height - maturity_height
    wait_seconds = int((vote_time - maturity_time).total_seconds())
    return wait_blocks, wait_seconds


async def build_vote_record(source: TransactionSource, vote_txid: str, ticket_maturity: int) -> VoteRecord:
    ticket_ref = await resolve_vote_ticket(source, vote_txid)
    maturity = await compute_ticket_maturity(
        source,
        ticket_ref.ticket_hash,
        ticket_ref.ticket_output_index,
        ticket_maturity,
    )
    wait_blocks, wait_seconds = compute_wait_time(
        ticket_ref.vote_height,
        ticket_ref.vote_time,
        maturity.maturity_height,
        maturity.maturity_time,
    )
    if wait_blocks < 0:
        logger.warning(
            "Vote %s at height %d precedes ticket %s maturity height %d (%d blocks)",
            ticket_ref.vote_hash,
            ticket_ref.vote_height,
            ticket_ref.ticket_hash,
            maturity.maturity_height,
            wait_blocks,
        )
    return VoteRecord(
        vote_hash=ticket_ref.vote_hash,
        vote_height=ticket_ref.vote_height,
        vote_time=ticket_ref.vote_time,
        ticket_price=maturity.ticket_price,
        ticket_hash=ticket_ref.ticket_hash,
        ticket_height=maturity.ticket_height,
        ticket_time=maturity.ticket_time,
        ticket_maturity_height=maturity.maturity_height,
        ticket_maturity_time=maturity.maturity_time,
        wait_time_blocks=wait_blocks,
        wait_time_seconds=wait_seconds,
    )


async def collect_vote_records(
    source: TransactionSource,
    vote_hashes: Sequence[str],
    ticket_maturity: int,
    concurrency_limit: int = 1,
) -> List[VoteRecord]:
    """Resolve every vote, skipping those whose lookups fail.

    Per-vote errors (:class:`VoteLookupError`) are logged and the vote is
    dropped. Anything else, notably ``SourceUnavailable``, propagates and ends
    the run. Results keep the order of ``vote_hashes`` whatever the
    concurrency.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency_limit))
    completed = 0

    async def _resolve(vote_txid: str) -> Optional[VoteRecord]:
        nonlocal completed
        async with semaphore:
            try:
                record: Optional[VoteRecord] = await build_vote_record(source, vote_txid, ticket_maturity)
            except VoteLookupError as exc:
                logger.warning("Skipping vote %s: %s", vote_txid, exc)
                record = None
            completed += 1
            if completed % PROGRESS_INTERVAL == 0:
                logger.info("Processed %d of %d votes", completed, len(vote_hashes))
            return record

    if concurrency_limit <= 1:
        results = [await _resolve(vote_txid) for vote_txid in vote_hashes]
    else:
        tasks = [asyncio.ensure_future(_resolve(vote_txid)) for vote_txid in vote_hashes]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    records = [record for record in results if record is not None]
    skipped = len(vote_hashes) - len(records)
    if skipped:
        logger.warning("Skipped %d of %d votes", skipped, len(vote_hashes))
    return records
