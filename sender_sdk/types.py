"""
Core records for the simulate-then-broadcast protocol.

- Operation: a single target-call request. Immutable.
- RichOperation: an Operation plus its run-unique id, owning sender, lifecycle
  status and the return data observed in each execution context.
- Batch: the operations one batch-proposing sender submitted as a single
  proposal, together with the hash the coordination service assigned to it.

Status transitions (anything else raises):

    PENDING -> SIMULATED -> EXECUTED   (immediate signers)
    PENDING -> SIMULATED -> QUEUED     (batch proposers)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .address import to_checksum
from .utils.bytes import to_hex

__all__ = [
    "Operation",
    "OperationStatus",
    "RichOperation",
    "Batch",
]


@dataclass(frozen=True)
class Operation:
    target: str
    payload: bytes = b""
    value: int = 0
    label: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "target", to_checksum(self.target))
        object.__setattr__(self, "payload", bytes(self.payload))
        if int(self.value) < 0:
            raise ValueError("value must be non-negative")
        object.__setattr__(self, "value", int(self.value))
        if not self.label:
            object.__setattr__(self, "label", f"call {self.target}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "payload": to_hex(self.payload),
            "value": self.value,
            "label": self.label,
        }


class OperationStatus(str, Enum):
    PENDING = "pending"
    SIMULATED = "simulated"
    EXECUTED = "executed"
    QUEUED = "queued"

    @property
    def terminal(self) -> bool:
        return self in (OperationStatus.EXECUTED, OperationStatus.QUEUED)


_ALLOWED = {
    OperationStatus.PENDING: {OperationStatus.SIMULATED},
    OperationStatus.SIMULATED: {OperationStatus.EXECUTED, OperationStatus.QUEUED},
    OperationStatus.EXECUTED: set(),
    OperationStatus.QUEUED: set(),
}


@dataclass(eq=False)
class RichOperation:
    operation: Operation
    id: bytes
    sender_id: bytes
    sender: str
    sequence: int
    status: OperationStatus = OperationStatus.PENDING
    simulated_return_data: Optional[bytes] = None
    executed_return_data: Optional[bytes] = None

    # Shorthands used all over the coordinator and in logs
    @property
    def target(self) -> str:
        return self.operation.target

    @property
    def label(self) -> str:
        return self.operation.label

    @property
    def value(self) -> int:
        return self.operation.value

    def _move(self, to: OperationStatus) -> None:
        if to not in _ALLOWED[self.status]:
            raise RuntimeError(
                f"operation {self.label!r} cannot move from {self.status.value} to {to.value}"
            )
        self.status = to

    def mark_simulated(self, return_data: bytes) -> None:
        self._move(OperationStatus.SIMULATED)
        self.simulated_return_data = bytes(return_data)

    def mark_executed(self, return_data: bytes) -> None:
        self._move(OperationStatus.EXECUTED)
        self.executed_return_data = bytes(return_data)

    def mark_queued(self) -> None:
        self._move(OperationStatus.QUEUED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": to_hex(self.id),
            "sender": self.sender,
            "sequence": self.sequence,
            "status": self.status.value,
            **self.operation.to_dict(),
            "simulatedReturnData": to_hex(self.simulated_return_data) if self.simulated_return_data is not None else None,
            "executedReturnData": to_hex(self.executed_return_data) if self.executed_return_data is not None else None,
        }


@dataclass(frozen=True)
class Batch:
    batch_id: bytes
    sender: str
    operations: Tuple[RichOperation, ...] = field(default_factory=tuple)
    proposal_hash: Optional[bytes] = None

    @property
    def calls(self) -> Tuple[Tuple[str, bytes], ...]:
        return tuple((r.target, r.operation.payload) for r in self.operations)
