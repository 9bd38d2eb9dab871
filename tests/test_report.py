import logging
from datetime import datetime, timedelta, timezone

import pytest

from conftest import tx_hash
from decred_vote_analyzer.errors import NoVotesFound
from decred_vote_analyzer.models import VoteRecord
from decred_vote_analyzer.report import (
    abbreviate_hash,
    format_summary_line,
    format_vote_line,
    order_by_wait,
    render_report,
    summarize_wait_times,
)

MATURED = datetime(2019, 6, 1, tzinfo=timezone.utc)


def make_record(n: int, wait_blocks: int, wait_seconds: int, price: float = 120.0, ticket_height: int = 350_000) -> VoteRecord:
    return VoteRecord(
        vote_hash=tx_hash(n),
        vote_height=ticket_height + 256 + wait_blocks,
        vote_time=MATURED + timedelta(seconds=wait_seconds),
        ticket_price=price,
        ticket_hash=tx_hash(1000 + n),
        ticket_height=ticket_height,
        ticket_time=MATURED - timedelta(hours=21),
        ticket_maturity_height=ticket_height + 256,
        ticket_maturity_time=MATURED,
        wait_time_blocks=wait_blocks,
        wait_time_seconds=wait_seconds,
    )


@pytest.fixture
def scenario_records():
    return [make_record(1, 10, 30_000), make_record(2, 5, 15_000), make_record(3, 20, 60_000)]


def test_summary_of_scenario(scenario_records):
    summary = summarize_wait_times(scenario_records)

    assert summary.vote_count == 3
    assert summary.mean_wait_blocks == pytest.approx(35 / 3)
    assert summary.mean_wait_days == pytest.approx(35_000 / 86_400, rel=1e-6)
    assert format_summary_line(summary) == "Mean wait for 3 votes: 11.7 blocks, 0.41 days."


def test_mean_days_matches_definition():
    waits = [86_399, 1, 172_800, 7, 43_210, 999_999]
    records = [make_record(i, i, seconds) for i, seconds in enumerate(waits)]

    summary = summarize_wait_times(records)

    assert summary.mean_wait_days == pytest.approx((sum(waits) / len(waits)) / 86_400, rel=1e-6)


def test_empty_records_raise_no_votes_found():
    with pytest.raises(NoVotesFound):
        summarize_wait_times([])


def test_order_is_ascending_by_wait_seconds(scenario_records):
    ordered = order_by_wait(scenario_records)

    assert [(r.wait_time_blocks, r.wait_time_seconds) for r in ordered] == [(5, 15_000), (10, 30_000), (20, 60_000)]


def test_order_is_stable_for_equal_waits():
    records = [make_record(1, 3, 500), make_record(2, 1, 100), make_record(3, 4, 500), make_record(4, 2, 500)]

    ordered = order_by_wait(records)

    assert [r.vote_hash for r in ordered] == [tx_hash(2), tx_hash(1), tx_hash(3), tx_hash(4)]


def test_negative_waits_sort_first_and_are_not_clamped():
    records = [make_record(1, 2, 600), make_record(2, -1, -300)]

    ordered = order_by_wait(records)

    assert ordered[0].wait_time_blocks == -1
    assert ordered[0].wait_time_seconds == -300


def test_vote_line_format():
    record = make_record(7, 312, 93_312, price=98.123456, ticket_height=250_100)

    line = format_vote_line(record)

    assert line == (
        f"Ticket {tx_hash(1007)[:16]}... (98.123456 DCR) mined in block 250100, "
        "voted 312 blocks (1.08 days) after maturity."
    )


def test_abbreviated_hash_is_first_eight_bytes():
    assert abbreviate_hash("ab" * 32) == "ab" * 8


def test_render_report_emits_sorted_lines_then_summary(scenario_records, caplog):
    logger = logging.getLogger("test_report")

    with caplog.at_level(logging.INFO, logger="test_report"):
        lines = render_report(scenario_records, logger)

    assert len(lines) == 4
    assert "voted 5 blocks (0.17 days)" in lines[0]
    assert "voted 10 blocks (0.35 days)" in lines[1]
    assert "voted 20 blocks (0.69 days)" in lines[2]
    assert lines[3] == "Mean wait for 3 votes: 11.7 blocks, 0.41 days."
    assert [record.getMessage() for record in caplog.records] == lines


def test_render_report_with_debug_table(scenario_records, caplog):
    logger = logging.getLogger("test_report_debug")

    with caplog.at_level(logging.DEBUG, logger="test_report_debug"):
        lines = render_report(scenario_records, logger)

    assert caplog.records[0].getMessage().startswith("Vote Detail:")
    assert [record.getMessage() for record in caplog.records[1:]] == lines


def test_render_report_emits_nothing_without_votes(caplog):
    logger = logging.getLogger("test_report_empty")

    with caplog.at_level(logging.DEBUG, logger="test_report_empty"):
        with pytest.raises(NoVotesFound):
            render_report([], logger)

    assert caplog.records == []
