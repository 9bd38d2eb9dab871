from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .analysis import collect_vote_records, unique_vote_hashes
from .config import CONFIG_FILENAME, AnalyzerConfig, load_config
from .errors import VoteAnalyzerError
from .report import render_report
from .rpc import DcrwalletRPCClient
from .source import TransactionSource

LOGGER_NAME = "decred_vote_analyzer"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Measure how long a wallet's tickets waited after maturity before voting.",
    )
    parser.add_argument("--config", type=Path, help=f"JSON configuration file (default: ./{CONFIG_FILENAME} if present)")
    parser.add_argument("--network", choices=["mainnet", "testnet", "simnet"], help="Network the wallet runs on (default: mainnet)")
    parser.add_argument("--host", dest="rpc_host", help="Wallet RPC host:port (default: 127.0.0.1:<network port>)")
    parser.add_argument("--user", dest="rpc_user", help="Wallet RPC username (default: dcrwallet)")
    parser.add_argument("--pass", dest="rpc_pass", help="Wallet RPC password (or set DCRWALLET_RPC_PASS)")
    parser.add_argument("--cert", dest="rpc_cert", help="Wallet RPC TLS certificate (default: rpc.cert)")
    parser.add_argument("--notls", action="store_true", default=None, help="Disable TLS for the wallet connection")
    parser.add_argument("--account", help="Account filter for listtransactions (default: *)")
    parser.add_argument("--ticket-maturity", dest="ticket_maturity", type=int, help="Override the network's ticket maturity in blocks")
    parser.add_argument("--concurrency", dest="concurrency_limit", type=int, help="Votes resolved in parallel (default: 1)")
    parser.add_argument("--log-level", dest="log_level", help="Logging level (default: INFO)")
    return parser


def resolve_config_path(explicit: Optional[Path]) -> Optional[Path]:
    if explicit is not None:
        return explicit
    default = Path.cwd() / CONFIG_FILENAME
    return default if default.exists() else None


async def analyze_wallet_votes(source: TransactionSource, config: AnalyzerConfig, logger: logging.Logger) -> List[str]:
    logger.info("Listing all transaction inputs and outputs...")
    listing = await source.list_transactions(config.account, config.max_transactions, 0)
    vote_hashes = unique_vote_hashes(listing)
    logger.info("Number of votes: %d", len(vote_hashes))

    records = await collect_vote_records(
        source,
        vote_hashes,
        config.ticket_maturity,
        concurrency_limit=config.concurrency_limit,
    )
    return render_report(records, logger)


async def run(
    config: AnalyzerConfig,
    logger: logging.Logger,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[str]:
    if config.notls:
        logger.info("Attempting to connect to RPC server %s as user %s (no TLS)", config.rpc_host, config.rpc_user)
    else:
        logger.info(
            "Attempting to connect to RPC server %s as user %s using certificate located in %s",
            config.rpc_host,
            config.rpc_user,
            config.rpc_cert,
        )
    async with DcrwalletRPCClient.from_config(config, transport=transport) as client:
        wallet_info = await client.wallet_info()
        logger.info("Wallet connected to node? %s", wallet_info.get("daemonconnected"))
        logger.info(
            "Using %s ticket maturity of %d blocks",
            config.network.name,
            config.ticket_maturity,
        )
        return await analyze_wallet_votes(client, config, logger)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    overrides: Dict[str, Any] = {key: value for key, value in vars(args).items() if key != "config"}

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger(LOGGER_NAME)

    try:
        config = load_config(resolve_config_path(args.config), overrides)
        logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))
        asyncio.run(run(config, logger))
    except VoteAnalyzerError as exc:
        logger.error("Fatal error: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        logger.warning("Execution interrupted by user")
        raise SystemExit(130) from None
