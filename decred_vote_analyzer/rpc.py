from __future__ import annotations

import asyncio
import json
import logging
import random
import ssl
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .config import AnalyzerConfig, safe_int
from .errors import ConfigurationError, MalformedVoteTransaction, SourceUnavailable, TransactionNotFound
from .models import BlockHeader, RawTransactionRecord, TransactionBody, VerboseTransaction
from .wire import decode_transaction_hex

RETRY_BACKOFF_SECONDS = 1.0
MAX_RETRY_BACKOFF_SECONDS = 12.0
RETRY_BACKOFF_JITTER = 0.25
AUTH_FAILURE_STATUS_CODES = {401, 403}


def summarize_payload(payload: Any, limit: int = 400) -> str:
    try:
        serialized = json.dumps(payload, default=str)
    except TypeError:
        serialized = str(payload)
    if len(serialized) > limit:
        return serialized[: limit - 3] + "..."
    return serialized


def require_block_field(result: Dict[str, Any], key: str, subject: str) -> int:
    """Positive integer block field; unmined transactions come back without one."""
    value = safe_int(result.get(key))
    if value is None or value <= 0:
        raise MalformedVoteTransaction(f"No {key} for {subject}; is it mined?")
    return value


def build_ssl_context(cert_path: Path) -> ssl.SSLContext:
    try:
        return ssl.create_default_context(cafile=str(cert_path))
    except (OSError, ssl.SSLError) as exc:
        raise ConfigurationError(f"Failed to read RPC cert file at {cert_path}: {exc}") from exc


class DcrwalletRPCClient:
    """JSON-RPC client for dcrwallet's legacy RPC server.

    Requests go out as HTTP POSTs with basic auth. Transport failures and 5xx
    responses are retried with backoff and end in :class:`SourceUnavailable`;
    an ``error`` object in the response is returned to the caller as
    :class:`TransactionNotFound` without retrying.
    """

    def __init__(
        self,
        url: str,
        user: str,
        password: str,
        cert_path: Optional[Path] = None,
        timeout: float = 30.0,
        max_retries: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self._auth = httpx.BasicAuth(user, password)
        self._cert_path = cert_path
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._request_id = 0
        self.logger = logging.getLogger(self.__class__.__name__)

    @classmethod
    def from_config(
        cls,
        config: AnalyzerConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DcrwalletRPCClient":
        return cls(
            config.rpc_url,
            config.rpc_user,
            config.rpc_pass,
            cert_path=config.rpc_cert,
            timeout=config.timeout,
            max_retries=config.max_rpc_retries,
            transport=transport,
        )

    async def __aenter__(self) -> "DcrwalletRPCClient":
        kwargs: Dict[str, Any] = {"timeout": self._timeout, "auth": self._auth}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif self._cert_path is not None:
            kwargs["verify"] = build_ssl_context(self._cert_path)
        self._client = httpx.AsyncClient(**kwargs)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self._client is None:
            raise RuntimeError("RPC client not initialized; use async context manager")

        payload = {
            "jsonrpc": "1.0",
            "id": self._next_id(),
            "method": method,
            "params": params or [],
        }
        payload_summary = summarize_payload(payload)

        attempt = 0
        while True:
            attempt += 1
            try:
                self.logger.debug("RPC Request -> method=%s attempt=%d payload=%s", method, attempt, payload_summary)
                response = await self._client.post(self.url, json=payload)
                if response.status_code in AUTH_FAILURE_STATUS_CODES:
                    raise SourceUnavailable(
                        f"Wallet RPC server at {self.url} rejected credentials (HTTP {response.status_code})"
                    )
                data = self._decode_body(response)
                if data is None or (not data.get("error") and response.status_code >= 400):
                    response.raise_for_status()
                    raise SourceUnavailable(f"Unreadable response to {method} from {self.url}")
                self.logger.debug(
                    "RPC Response <- method=%s attempt=%d status=%s body=%s",
                    method,
                    attempt,
                    response.status_code,
                    summarize_payload(data),
                )
            except httpx.HTTPStatusError as exc:
                self.logger.warning("HTTP error on %s attempt %d: %s", method, attempt, exc)
                if attempt >= self._max_retries:
                    raise SourceUnavailable(f"HTTP error on method {method}: {exc}") from exc
            except httpx.RequestError as exc:
                self.logger.warning("Request error on %s attempt %d: %s", method, attempt, exc)
                if attempt >= self._max_retries:
                    raise SourceUnavailable(f"Request error on method {method}: {exc}") from exc
            else:
                error = data.get("error")
                if error:
                    if isinstance(error, dict):
                        raise TransactionNotFound(method, error.get("code"), str(error.get("message", "Unknown RPC error")))
                    raise TransactionNotFound(method, None, str(error))
                return data.get("result")

            await asyncio.sleep(self._compute_retry_delay(attempt))

    def _decode_body(self, response: httpx.Response) -> Optional[Dict[str, Any]]:
        # dcrwallet answers RPC-level errors with HTTP 500 and a JSON body.
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _compute_retry_delay(self, attempt: int) -> float:
        delay = min(RETRY_BACKOFF_SECONDS * attempt, MAX_RETRY_BACKOFF_SECONDS)
        return delay + random.uniform(0.0, RETRY_BACKOFF_JITTER)

    async def wallet_info(self) -> Dict[str, Any]:
        return await self.request("walletinfo") or {}

    async def list_transactions(self, account: str, count: int, start: int) -> List[RawTransactionRecord]:
        result = await self.request("listtransactions", [account, count, start]) or []
        records: List[RawTransactionRecord] = []
        for entry in result:
            if not isinstance(entry, dict) or not entry.get("txid"):
                continue
            records.append(
                RawTransactionRecord(
                    txid=entry["txid"],
                    txtype=entry.get("txtype"),
                    category=entry.get("category"),
                )
            )
        return records

    async def get_transaction(self, txid: str) -> TransactionBody:
        hex_data = await self.request("getrawtransaction", [txid, 0])
        return decode_transaction_hex(str(hex_data or ""))

    async def get_transaction_verbose(self, txid: str) -> VerboseTransaction:
        result = await self.request("getrawtransaction", [txid, 1])
        if not isinstance(result, dict):
            raise SourceUnavailable(f"Unexpected getrawtransaction result for {txid}: {summarize_payload(result)}")
        outputs = result.get("vout") or []
        return VerboseTransaction(
            txid=result.get("txid", txid),
            block_height=require_block_field(result, "blockheight", f"transaction {txid}"),
            block_time=require_block_field(result, "blocktime", f"transaction {txid}"),
            output_values=tuple(float(output.get("value") or 0.0) for output in outputs),
        )

    async def get_block_hash(self, height: int) -> str:
        result = await self.request("getblockhash", [height])
        if not isinstance(result, str) or not result:
            raise SourceUnavailable(f"Unexpected getblockhash result for height {height}: {summarize_payload(result)}")
        return result

    async def get_block_header(self, block_hash: str) -> BlockHeader:
        result = await self.request("getblockheader", [block_hash, True])
        if not isinstance(result, dict):
            raise SourceUnavailable(f"Unexpected getblockheader result for {block_hash}: {summarize_payload(result)}")
        return BlockHeader(
            block_hash=result.get("hash", block_hash),
            height=require_block_field(result, "height", f"block {block_hash}"),
            time=require_block_field(result, "time", f"block {block_hash}"),
        )
