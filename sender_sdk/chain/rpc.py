"""
RpcChain: an ExecutionContext backed by an Ethereum JSON-RPC node.

Two modes, one class:

- simulation (``impersonate=True``): meant for a local fork node (anvil).
  Each operation is sent with `eth_sendTransaction` from the sender account
  after `anvil_impersonateAccount`; no key is needed and effects stay on
  the fork.
- broadcast (default): each operation is signed by the sender's signer and
  submitted with `eth_sendRawTransaction`; node-managed accounts use
  `eth_sendTransaction`.

After submission the receipt is polled with backoff. A receipt with status 0
becomes a `Revert`. Return data is read from `debug_traceTransaction`
(callTracer ``output``), falling back to `eth_call` against the parent block
when the node has no debug namespace.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from ..address import to_checksum
from ..errors import JsonRpcCode, RpcError
from ..rpc.http import RpcClient
from ..types import Operation
from ..utils.bytes import from_hex, from_quantity, to_hex, to_quantity
from .context import Revert

log = logging.getLogger(__name__)

__all__ = ["RpcChain"]


def _revert_from_rpc(e: RpcError) -> Optional[Revert]:
    """Map an RPC error that reports a revert to Revert; None when it is something else."""
    if e.code_enum is JsonRpcCode.EXECUTION_REVERTED or "revert" in (e.message or "").lower():
        data = b""
        if isinstance(e.data, str) and e.data.startswith("0x"):
            try:
                data = from_hex(e.data)
            except ValueError:
                data = b""
        return Revert(e.message, data)
    return None


class RpcChain:
    def __init__(
        self,
        rpc: RpcClient,
        *,
        chain_id: Optional[int] = None,
        impersonate: bool = False,
        receipt_timeout: float = 120.0,
        poll_interval: float = 0.5,
        max_poll_interval: float = 5.0,
    ) -> None:
        self.rpc = rpc
        self.impersonate = impersonate
        self.receipt_timeout = float(receipt_timeout)
        self.poll_interval = float(poll_interval)
        self.max_poll_interval = float(max_poll_interval)
        self._chain_id = chain_id
        self._impersonated: set[str] = set()

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = from_quantity(self.rpc.request("eth_chainId"))
        return self._chain_id

    # --- ExecutionContext ----------------------------------------------------

    def execute(self, account: str, op: Operation, *, signer: Optional[object] = None) -> bytes:
        account = to_checksum(account)
        call = self._call_object(account, op)
        try:
            if self.impersonate:
                self._ensure_impersonated(account)
                tx_hash = self.rpc.request("eth_sendTransaction", [call])
            elif signer is None or getattr(signer, "node_managed", False):
                tx_hash = self.rpc.request("eth_sendTransaction", [call])
            else:
                tx_hash = self.rpc.request("eth_sendRawTransaction", [to_hex(self._sign(account, call, signer))])
        except RpcError as e:
            revert = _revert_from_rpc(e)
            if revert is None:
                raise
            raise revert from e

        receipt = self.wait_for_receipt(str(tx_hash))
        if from_quantity(receipt.get("status", "0x1")) == 0:
            raise Revert(f"transaction {tx_hash} reverted", self._trace_output(str(tx_hash)) or b"")
        log.info("tx mined", extra={"tx": tx_hash, "label": op.label, "block": receipt.get("blockNumber")})
        out = self._trace_output(str(tx_hash))
        if out is None:
            parent = max(from_quantity(receipt["blockNumber"]) - 1, 0)
            out = from_hex(self.rpc.request("eth_call", [call, to_quantity(parent)]))  # type: ignore[arg-type]
        return out

    def static_call(self, target: str, payload: bytes, *, account: Optional[str] = None) -> bytes:
        call: Dict[str, Any] = {"to": to_checksum(target), "data": to_hex(payload)}
        if account is not None:
            call["from"] = to_checksum(account)
        try:
            return from_hex(self.rpc.request("eth_call", [call, "latest"]))  # type: ignore[arg-type]
        except RpcError as e:
            revert = _revert_from_rpc(e)
            if revert is None:
                raise
            raise revert from e

    # --- receipts ------------------------------------------------------------

    def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """Poll until the receipt is available; TimeoutError after `receipt_timeout`."""
        deadline = time.monotonic() + self.receipt_timeout
        interval = self.poll_interval
        while True:
            receipt = self.rpc.request("eth_getTransactionReceipt", [tx_hash])
            if isinstance(receipt, dict):
                return receipt
            if time.monotonic() >= deadline:
                raise TimeoutError(f"timeout waiting for receipt (tx={tx_hash}, timeout_s={self.receipt_timeout})")
            time.sleep(interval)
            interval = min(interval * 1.25, self.max_poll_interval)

    # --- internals -----------------------------------------------------------

    def _call_object(self, account: str, op: Operation) -> Dict[str, Any]:
        return {
            "from": account,
            "to": op.target,
            "data": to_hex(op.payload),
            "value": to_quantity(op.value),
        }

    def _ensure_impersonated(self, account: str) -> None:
        if account not in self._impersonated:
            self.rpc.request("anvil_impersonateAccount", [account])
            self._impersonated.add(account)

    def _sign(self, account: str, call: Dict[str, Any], signer: Any) -> bytes:
        nonce = from_quantity(self.rpc.request("eth_getTransactionCount", [account, "pending"]))  # type: ignore[arg-type]
        gas = from_quantity(self.rpc.request("eth_estimateGas", [call]))  # type: ignore[arg-type]
        gas_price = from_quantity(self.rpc.request("eth_gasPrice"))  # type: ignore[arg-type]
        tx = {
            "to": call["to"],
            "value": from_quantity(call["value"]),
            "data": call["data"],
            "nonce": nonce,
            "gas": gas,
            "gasPrice": gas_price,
            "chainId": self.chain_id,
        }
        return signer.sign_transaction(tx)

    def _trace_output(self, tx_hash: str) -> Optional[bytes]:
        try:
            trace = self.rpc.request("debug_traceTransaction", [tx_hash, {"tracer": "callTracer"}])
        except RpcError as e:
            if e.code_enum is JsonRpcCode.TRANSPORT:
                raise
            log.debug("trace unavailable", extra={"tx": tx_hash, "code": e.code})
            return None
        if not isinstance(trace, dict):
            return None
        output = trace.get("output")
        return from_hex(output) if isinstance(output, str) else b""
