"""
HTTP JSON-RPC client (sync) for EVM nodes.

- Uses httpx; friendly to unit tests (pass `transport=httpx.MockTransport(...)`
  or mock the URL with respx).
- Retries calls on transient transport failures and 429/5xx HTTP statuses,
  except transaction submissions: a lost response to `eth_sendTransaction`
  may still mean the node accepted it, so a resend could apply it twice.
- Application errors (a JSON-RPC `error` object) are never retried.

Example:
    from svgnft_deploy.rpc.http import RpcClient
    with RpcClient("http://127.0.0.1:8545") as rpc:
        chain_id = rpc.chain_id()
        head = rpc.block_number()
"""

from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

import httpx

from ..errors import JsonRpcCode, RpcError
from ..version import __version__

log = logging.getLogger(__name__)

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]


# Never retried; see the module docstring.
NON_IDEMPOTENT_METHODS = frozenset({"eth_sendTransaction", "eth_sendRawTransaction"})


def _is_retriable_http(status: int) -> bool:
    # Typical transient HTTP statuses: 429/502/503/504
    return status in (429, 502, 503, 504)


def _jitter_backoff(base: float, factor: float, attempt: int, jitter: float) -> float:
    # Exponential backoff with jitter in [0, jitter]
    return base * (factor ** max(attempt - 1, 0)) + random.random() * jitter


def hex_to_int(v: Any) -> int:
    """Decode a JSON-RPC quantity ("0x1a") into an int; ints pass through."""
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        return int(v, 16) if v.startswith(("0x", "0X")) else int(v)
    raise ValueError(f"not a quantity: {v!r}")


class _Retriable(Exception):
    """Internal marker for transport-level failures worth another attempt."""


@dataclass
class RpcClient:
    """Synchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 30.0
    max_retries: int = 3
    backoff_base: float = 0.15
    backoff_factor: float = 1.8
    backoff_jitter: float = 0.2
    headers: Optional[Mapping[str, str]] = None
    transport: Optional[httpx.BaseTransport] = None
    _id_counter: Iterator[int] = field(default_factory=lambda: count(start=1))
    _client: Optional[httpx.Client] = field(init=False, default=None)

    def __post_init__(self) -> None:
        merged_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"svgnft-deploy/{__version__}",
        }
        if self.headers:
            merged_headers.update(dict(self.headers))
        self._client = httpx.Client(
            timeout=self.timeout,
            headers=merged_headers,
            transport=self.transport,
        )

    # --- context manager -------------------------------------------------

    def __enter__(self) -> "RpcClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # --- public API ------------------------------------------------------

    def request(self, method: str, params: Params = None, *, retry: Optional[bool] = None) -> JSON:
        """
        Perform a single JSON-RPC request and return `result` or raise RpcError.

        `retry` defaults to True except for NON_IDEMPOTENT_METHODS.
        """
        if retry is None:
            retry = method not in NON_IDEMPOTENT_METHODS
        payload = self._make_payload(method, params)
        return self._send_with_retries(payload, method, retry=retry)

    def call(self, method: str, params: Params = None, *, retry: Optional[bool] = None) -> JSON:
        """Alias of request(); the shape every collaborator in this package expects."""
        return self.request(method, params, retry=retry)

    # --- typed eth_* helpers --------------------------------------------

    def chain_id(self) -> int:
        return hex_to_int(self.request("eth_chainId"))

    def block_number(self) -> int:
        return hex_to_int(self.request("eth_blockNumber"))

    def accounts(self) -> List[str]:
        res = self.request("eth_accounts")
        if not isinstance(res, list):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="unexpected eth_accounts payload", data=res, method="eth_accounts")
        return [str(a) for a in res]

    def get_code(self, address: str, block: str = "latest") -> str:
        res = self.request("eth_getCode", [address, block])
        return str(res or "0x")

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params) -> Dict[str, Any]:
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            # Coerce single param into positional list
            params = [params]  # type: ignore[list-item]
        return {"jsonrpc": "2.0", "id": next(self._id_counter), "method": method, "params": params}

    def _send_with_retries(self, payload: Dict[str, Any], method: str, *, retry: bool = True) -> JSON:
        last_exc: Optional[Exception] = None
        attempts = self.max_retries + 1 if retry else 1  # N retries -> N+1 attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._send_once(payload, method)
            except _Retriable as e:
                last_exc = e
                if attempt >= attempts:
                    break
                delay = _jitter_backoff(self.backoff_base, self.backoff_factor, attempt, self.backoff_jitter)
                log.debug("rpc: %s attempt %d failed (%s); retrying in %.2fs", method, attempt, e, delay)
                time.sleep(delay)
        raise RpcError(code=JsonRpcCode.TRANSPORT_ERROR, message="RPC transport failed", data=str(last_exc), method=method)

    def _send_once(self, payload: Dict[str, Any], method: str) -> JSON:
        if self._client is None:
            raise RpcError(code=JsonRpcCode.TRANSPORT_ERROR, message="client is closed", method=method)
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        try:
            r = self._client.post(self.url, content=body)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise _Retriable(f"{type(e).__name__}: {e}") from e
        if _is_retriable_http(r.status_code):
            raise _Retriable(f"HTTP {r.status_code}")
        # Avoid raise_for_status() to keep error body visible below
        try:
            resp = r.json()
        except ValueError as e:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Non-JSON response from RPC",
                data=f"HTTP {r.status_code}: {r.text[:256]}",
                method=method,
            ) from e

        if not isinstance(resp, dict):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Invalid JSON-RPC response type", data=type(resp).__name__, method=method)
        if resp.get("error") is not None:
            err = resp["error"] or {}
            raise RpcError(
                code=int(err.get("code", JsonRpcCode.INTERNAL_ERROR)),
                message=str(err.get("message", "Unknown error")),
                data=err.get("data"),
                method=method,
            )
        if "result" not in resp:
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Malformed JSON-RPC response", data=resp, method=method)
        return resp["result"]


__all__ = ["NON_IDEMPOTENT_METHODS", "RpcClient", "hex_to_int"]
