from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import pandas as pd

from .errors import NoVotesFound
from .models import VoteRecord

SECONDS_PER_DAY = 86_400.0
TICKET_PREFIX_BYTES = 8


@dataclass(frozen=True)
class WaitSummary:
    vote_count: int
    mean_wait_blocks: float
    mean_wait_seconds: float

    @property
    def mean_wait_days(self) -> float:
        return self.mean_wait_seconds / SECONDS_PER_DAY


def records_to_frame(records: Sequence[VoteRecord]) -> pd.DataFrame:
    """One row per vote, in encounter order."""
    return pd.DataFrame([record.to_dict() for record in records])


def summarize_wait_times(records: Sequence[VoteRecord]) -> WaitSummary:
    if not records:
        raise NoVotesFound("No votes were resolved; mean wait time is undefined")
    frame = records_to_frame(records)
    return WaitSummary(
        vote_count=len(frame),
        mean_wait_blocks=float(frame["wait_time_blocks"].mean()),
        mean_wait_seconds=float(frame["wait_time_seconds"].mean()),
    )


def order_by_wait(records: Sequence[VoteRecord]) -> List[VoteRecord]:
    """Ascending wait seconds; votes with equal waits keep their original order."""
    if not records:
        return []
    frame = records_to_frame(records)
    ordered = frame.sort_values(by="wait_time_seconds", kind="stable")
    return [records[position] for position in ordered.index]


def abbreviate_hash(tx_hash: str) -> str:
    return tx_hash[: TICKET_PREFIX_BYTES * 2]


def format_vote_line(record: VoteRecord) -> str:
    return (
        f"Ticket {abbreviate_hash(record.ticket_hash)}... ({record.ticket_price:f} DCR) "
        f"mined in block {record.ticket_height}, voted {record.wait_time_blocks} blocks "
        f"({record.wait_time_days:.2f} days) after maturity."
    )


def format_summary_line(summary: WaitSummary) -> str:
    return (
        f"Mean wait for {summary.vote_count} votes: "
        f"{summary.mean_wait_blocks:.1f} blocks, {summary.mean_wait_days:.2f} days."
    )


def render_report(records: Sequence[VoteRecord], logger: logging.Logger) -> List[str]:
    """Log one line per vote (shortest wait first) followed by the summary line.

    The summary is computed before anything is emitted, so an empty record set
    raises :class:`NoVotesFound` without printing a partial report.
    """
    summary = summarize_wait_times(records)
    ordered = order_by_wait(records)

    if logger.isEnabledFor(logging.DEBUG):
        display_columns = [
            "vote_hash",
            "vote_height",
            "ticket_hash",
            "ticket_height",
            "ticket_maturity_height",
            "wait_time_blocks",
            "wait_time_days",
        ]
        table = records_to_frame(ordered)[display_columns]
        logger.debug("Vote Detail:\n%s", table.to_string(index=False, justify="center", float_format=lambda x: f"{x:.4f}"))

    lines = [format_vote_line(record) for record in ordered]
    lines.append(format_summary_line(summary))
    for line in lines:
        logger.info("%s", line)
    return lines
