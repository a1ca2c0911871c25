from __future__ import annotations

"""
HTTP JSON-RPC client (sync).

- httpx under the hood; tests pass an `httpx.MockTransport` via `transport=`.
- Retries on transient transport failures and 429/5xx gateway statuses with
  exponential backoff plus jitter. JSON-RPC error objects are never retried.

Example:
    from sender_sdk.rpc.http import RpcClient
    with RpcClient("http://localhost:8545") as rpc:
        chain_id = int(rpc.request("eth_chainId"), 16)
"""

import json
import logging
import random
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ..errors import JsonRpcCode, RpcError
from ..version import __version__ as SDK_VERSION

log = logging.getLogger(__name__)

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_retriable_http(status: int) -> bool:
    return status in (429, 502, 503, 504)


def jitter_backoff(base: float, factor: float, attempt: int, jitter: float) -> float:
    """Exponential backoff with jitter in [0, jitter]."""
    return base * (factor ** max(attempt - 1, 0)) + random.random() * jitter


class _Transient(Exception):
    pass


def _error_from(obj: Any, method: Optional[str]) -> RpcError:
    err = obj if isinstance(obj, dict) else {}
    return RpcError(
        code=int(err.get("code", JsonRpcCode.INTERNAL_ERROR)),
        message=str(err.get("message", "Unknown error")),
        data=err.get("data"),
        method=method,
    )


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
    _id_counter: Iterator[int] = field(default_factory=lambda: count(start=_now_ms()))
    _client: Optional[httpx.Client] = field(init=False, default=None)

    def __post_init__(self) -> None:
        merged_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"sender-sdk-python/{SDK_VERSION}",
        }
        if self.headers:
            merged_headers.update(dict(self.headers))
        self._client = httpx.Client(timeout=self.timeout, headers=merged_headers, transport=self.transport)

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

    def request(self, method: str, params: Params = None, *, id: Optional[Union[int, str]] = None) -> JSON:
        """Perform a single JSON-RPC request and return `result` or raise RpcError."""
        payload = self._make_payload(method, params, id)
        resp = self._send_with_retries(payload, method)
        if not isinstance(resp, dict):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Invalid JSON-RPC response type", data=type(resp).__name__, method=method)
        if resp.get("error") is not None:
            raise _error_from(resp["error"], method)
        if "result" not in resp:
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Malformed JSON-RPC response", data=resp, method=method)
        return resp["result"]

    def batch(self, calls: Sequence[Tuple[str, Params]]) -> List[JSON]:
        """Perform a JSON-RPC batch; results come back in the order of `calls`."""
        payloads = [self._make_payload(m, p) for m, p in calls]
        resp = self._send_with_retries(payloads, "batch")
        if not isinstance(resp, list):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Invalid batch response (not a list)", data=resp, method="batch")

        by_id: Dict[Any, JSON] = {}
        for item in resp:
            if not isinstance(item, dict) or "id" not in item:
                raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message="Malformed item in batch response", data=item, method="batch")
            if item.get("error") is not None:
                raise _error_from(item["error"], "batch")
            by_id[item["id"]] = item.get("result")

        ordered: List[JSON] = []
        for p in payloads:
            if p["id"] not in by_id:
                raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message=f"Missing result for id {p['id']}", data=resp, method="batch")
            ordered.append(by_id[p["id"]])
        return ordered

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params, id: Optional[Union[int, str]] = None) -> Dict[str, Any]:
        if id is None:
            id = next(self._id_counter)
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            params = [params]  # type: ignore[list-item]
        return {"jsonrpc": "2.0", "id": id, "method": method, "params": params}

    def _send_with_retries(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]], method: str) -> JSON:
        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 2):  # N retries -> N+1 attempts
            try:
                return self._send_once(payload, method)
            except (_Transient, httpx.TimeoutException, httpx.NetworkError) as e:
                last_exc = e
                if attempt > self.max_retries:
                    break
                delay = jitter_backoff(self.backoff_base, self.backoff_factor, attempt, self.backoff_jitter)
                log.debug("rpc retry", extra={"method": method, "attempt": attempt, "delay": round(delay, 3)})
                time.sleep(delay)
        raise RpcError(code=JsonRpcCode.TRANSPORT, message="RPC transport failed", data=str(last_exc), method=method)

    def _send_once(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]], method: str) -> JSON:
        if self._client is None:
            raise RpcError(code=JsonRpcCode.TRANSPORT, message="client is closed", method=method)
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        r = self._client.post(self.url, content=body)
        if _is_retriable_http(r.status_code):
            raise _Transient(f"HTTP {r.status_code}")
        try:
            return r.json()
        except ValueError as e:
            raise RpcError(
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Non-JSON response from RPC",
                data=f"HTTP {r.status_code}: {r.text[:256]}",
                method=method,
            ) from e


__all__ = ["RpcClient", "jitter_backoff"]
