"""Ethereum JSON-RPC client with retries and error classification."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

import requests

from core.base_types import Address

from .errors import ChainError, ExecutionReverted, RPCError

logger = logging.getLogger(__name__)

WEI_PER_GWEI = Decimal(10**9)


@dataclass(frozen=True)
class GasPrice:
    """Current gas price information (wei)."""

    base_fee: int
    priority_fee: int

    @property
    def total_wei(self) -> int:
        return self.base_fee + self.priority_fee

    @property
    def total_gwei(self) -> Decimal:
        return Decimal(self.total_wei) / WEI_PER_GWEI


class ChainClient:
    """
    Read-only Ethereum RPC client with reliability features.

    Features:
    - Automatic retry with exponential backoff
    - Multiple RPC endpoint fallback
    - Batched requests
    - Request timing/logging
    """

    def __init__(
        self,
        rpc_urls: list[str],
        timeout: int = 30,
        max_retries: int = 3,
    ):
        if not rpc_urls:
            raise ValueError("rpc_urls must not be empty")
        self._rpc_urls = rpc_urls
        self._timeout = timeout
        self._max_retries = max_retries
        self._session = requests.Session()

    def get_block_number(self) -> int:
        return _hex_to_int(self._rpc_call("eth_blockNumber", []))

    def get_block(self, block: str, full: bool = False) -> dict:
        return self._rpc_call("eth_getBlockByNumber", [block, full])

    def get_gas_price(self) -> GasPrice:
        block = self.get_block("latest")
        base_fee = _hex_to_int(block.get("baseFeePerGas", "0x0"))
        priority_fee = _hex_to_int(self._rpc_call("eth_maxPriorityFeePerGas", []))
        return GasPrice(base_fee=base_fee, priority_fee=priority_fee)

    def gas_price_gwei(self) -> Decimal:
        return self.get_gas_price().total_gwei

    def call(self, to: Address, data: bytes, block: str = "latest") -> bytes:
        result = self._rpc_call("eth_call", [_call_object(to, data), block])
        return _hex_to_bytes(result)

    def batch_call(
        self, calls: list[tuple[Address, bytes]], block: str = "latest"
    ) -> list[bytes]:
        """Several ``eth_call``s in one HTTP round trip, results in order."""
        if not calls:
            return []
        results = self._rpc_batch(
            [("eth_call", [_call_object(to, data), block]) for to, data in calls]
        )
        return [_hex_to_bytes(result) for result in results]

    def _rpc_call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        last_error: Optional[Exception] = None
        for url in self._rpc_urls:
            for attempt in range(self._max_retries):
                start = time.perf_counter()
                try:
                    response = self._session.post(
                        url,
                        json=payload,
                        timeout=self._timeout,
                    )
                    elapsed = time.perf_counter() - start
                    logger.debug("rpc %s %s in %.3fs", method, url, elapsed)
                    if response.status_code >= 400:
                        raise RPCError(f"HTTP {response.status_code} from {url}")
                    data = response.json()
                    if "error" in data:
                        self._raise_rpc_error(data["error"])
                    return data.get("result")
                except (requests.Timeout, requests.ConnectionError) as exc:
                    last_error = exc
                    self._sleep_backoff(attempt)
                except RPCError:
                    raise
                except json.JSONDecodeError as exc:
                    last_error = exc
                    self._sleep_backoff(attempt)
            logger.warning("rpc %s: giving up on %s", method, url)
        raise ChainError("RPC request failed") from last_error

    def _rpc_batch(self, calls: list[tuple[str, list[Any]]]) -> list[Any]:
        payload = [
            {"jsonrpc": "2.0", "id": idx + 1, "method": method, "params": params}
            for idx, (method, params) in enumerate(calls)
        ]
        last_error: Optional[Exception] = None
        for url in self._rpc_urls:
            for attempt in range(self._max_retries):
                start = time.perf_counter()
                try:
                    response = self._session.post(
                        url,
                        json=payload,
                        timeout=self._timeout,
                    )
                    elapsed = time.perf_counter() - start
                    logger.debug("rpc batch(%d) %s in %.3fs", len(calls), url, elapsed)
                    if response.status_code >= 400:
                        raise RPCError(f"HTTP {response.status_code} from {url}")
                    data = response.json()
                    if not isinstance(data, list):
                        raise RPCError("Invalid batch response")
                    results: dict[int, Any] = {}
                    for entry in data:
                        if "error" in entry:
                            self._raise_rpc_error(entry["error"])
                        results[int(entry["id"])] = entry.get("result")
                    return [results[idx + 1] for idx in range(len(calls))]
                except (requests.Timeout, requests.ConnectionError) as exc:
                    last_error = exc
                    self._sleep_backoff(attempt)
                except RPCError:
                    raise
                except json.JSONDecodeError as exc:
                    last_error = exc
                    self._sleep_backoff(attempt)
            logger.warning("rpc batch: giving up on %s", url)
        raise ChainError("RPC request failed") from last_error

    def _sleep_backoff(self, attempt: int) -> None:
        delay = 0.5 * (2**attempt)
        time.sleep(delay)

    def _raise_rpc_error(self, error: dict) -> None:
        message = str(error.get("message", "RPC error"))
        code = error.get("code")
        data = error.get("data")
        if "execution reverted" in message.lower():
            raise ExecutionReverted(message, code=code, data=data)
        raise RPCError(message, code=code, data=data)


def _call_object(to: Address, data: bytes) -> dict:
    return {"to": to.checksum, "data": "0x" + data.hex()}


def _hex_to_int(value: str) -> int:
    if not isinstance(value, str):
        raise RPCError("Expected hex string result")
    return int(value, 16)


def _hex_to_bytes(value: str) -> bytes:
    if not isinstance(value, str):
        raise RPCError("Expected hex string result")
    normalized = value[2:] if value.startswith("0x") else value
    if normalized == "":
        return b""
    return bytes.fromhex(normalized)
