"""
Execution contexts.

A run always works with two of them, passed explicitly:

- the *simulation* context: effects are provisional (a fork, an in-memory
  copy); operations run impersonating the sender account, no signer needed.
- the *broadcast* context: effects are final; operations are signed by the
  sender's backend.

An operation never moves from one to the other on its own: the coordinator
replays it and compares the return data.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from ..types import Operation
from ..utils.bytes import to_hex

__all__ = ["Revert", "ExecutionContext"]


class Revert(Exception):
    """The call reverted. `data` holds the raw revert payload when known."""

    def __init__(self, reason: str = "", data: bytes = b"") -> None:
        super().__init__(reason or (to_hex(data) if data else "execution reverted"))
        self.reason = reason
        self.data = bytes(data)


@runtime_checkable
class ExecutionContext(Protocol):
    @property
    def chain_id(self) -> int: ...

    def execute(self, account: str, op: Operation, *, signer: Optional[object] = None) -> bytes:
        """Apply *op* from *account*; return its return data or raise Revert."""
        ...

    def static_call(self, target: str, payload: bytes, *, account: Optional[str] = None) -> bytes:
        """Evaluate a call without keeping any effect."""
        ...
