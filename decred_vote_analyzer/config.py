from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError

CONFIG_FILENAME = "config.cfg"
PASSWORD_ENV_VAR = "DCRWALLET_RPC_PASS"
DEFAULT_ACCOUNT = "*"
DEFAULT_MAX_TRANSACTIONS = 9_999_999
DEFAULT_RPC_USER = "dcrwallet"
DEFAULT_CERT_FILENAME = "rpc.cert"


@dataclass(frozen=True)
class NetworkParams:
    name: str
    ticket_maturity: int
    wallet_rpc_port: int


NETWORKS: Dict[str, NetworkParams] = {
    "mainnet": NetworkParams(name="mainnet", ticket_maturity=256, wallet_rpc_port=9110),
    "testnet": NetworkParams(name="testnet3", ticket_maturity=16, wallet_rpc_port=19110),
    "simnet": NetworkParams(name="simnet", ticket_maturity=16, wallet_rpc_port=19557),
}
NETWORK_ALIASES = {"testnet3": "testnet"}


@dataclass(frozen=True)
class AnalyzerConfig:
    """Everything a run needs, resolved once at startup and passed down explicitly."""

    network: NetworkParams
    ticket_maturity: int
    rpc_host: str
    rpc_user: str
    rpc_pass: str
    rpc_cert: Optional[Path]
    notls: bool = False
    account: str = DEFAULT_ACCOUNT
    max_transactions: int = DEFAULT_MAX_TRANSACTIONS
    concurrency_limit: int = 1
    timeout: float = 30.0
    max_rpc_retries: int = 5
    log_level: str = "INFO"

    @property
    def rpc_url(self) -> str:
        scheme = "http" if self.notls else "https"
        return f"{scheme}://{self.rpc_host}/"


def safe_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def resolve_network(value: Any) -> NetworkParams:
    key = str(value or "mainnet").strip().lower()
    key = NETWORK_ALIASES.get(key, key)
    if key not in NETWORKS:
        raise ConfigurationError(
            f"Unknown network {value!r}; expected one of {', '.join(sorted(NETWORKS))}"
        )
    return NETWORKS[key]


def read_config_file(config_path: Path) -> Dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as handle:
        try:
            config = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in configuration file: {exc}") from exc
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration file must contain a JSON object")
    return config


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AnalyzerConfig:
    """Merge the optional JSON config file, command line overrides and environment.

    An explicitly requested config file must exist; the default ``config.cfg``
    is only read when present.
    """
    environ = os.environ if environ is None else environ
    config: Dict[str, Any] = {}
    if config_path is not None:
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found at {config_path}")
        config = read_config_file(config_path)
    for key, value in (overrides or {}).items():
        if value is not None:
            config[key] = value

    network = resolve_network(config.get("network"))

    ticket_maturity = network.ticket_maturity
    if config.get("ticket_maturity") is not None:
        ticket_maturity = safe_int(config.get("ticket_maturity"))
        if ticket_maturity is None or ticket_maturity < 0:
            raise ConfigurationError("'ticket_maturity' must be a non-negative integer.")

    rpc_host = str(config.get("rpc_host") or "").strip() or f"127.0.0.1:{network.wallet_rpc_port}"

    rpc_pass = str(config.get("rpc_pass") or environ.get(PASSWORD_ENV_VAR) or "").strip()
    if not rpc_pass:
        raise ConfigurationError(
            f"No wallet RPC password configured; set 'rpc_pass' or the {PASSWORD_ENV_VAR} environment variable."
        )

    notls = bool(config.get("notls", False))
    rpc_cert: Optional[Path] = None
    if not notls:
        rpc_cert = Path(str(config.get("rpc_cert") or DEFAULT_CERT_FILENAME)).expanduser()
        if not rpc_cert.exists():
            raise ConfigurationError(
                f"Failed to read RPC cert file at {rpc_cert}; pass --cert or use --notls."
            )

    account = str(config.get("account") or DEFAULT_ACCOUNT)

    max_transactions = safe_int(config.get("max_transactions")) or DEFAULT_MAX_TRANSACTIONS
    concurrency_limit = max(1, safe_int(config.get("concurrency_limit")) or 1)
    max_rpc_retries = max(1, safe_int(config.get("max_rpc_retries")) or 5)
    try:
        timeout = float(config.get("timeout") or 30.0)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid timeout: {config.get('timeout')!r}") from exc

    return AnalyzerConfig(
        network=network,
        ticket_maturity=ticket_maturity,
        rpc_host=rpc_host,
        rpc_user=str(config.get("rpc_user") or DEFAULT_RPC_USER),
        rpc_pass=rpc_pass,
        rpc_cert=rpc_cert,
        notls=notls,
        account=account,
        max_transactions=max_transactions,
        concurrency_limit=concurrency_limit,
        timeout=timeout,
        max_rpc_retries=max_rpc_retries,
        log_level=str(config.get("log_level") or "INFO").upper(),
    )
