"""
Lifecycle events emitted while a run is simulated and broadcast.

Observers are plain callables `(LifecycleEvent) -> None` registered on the
coordinator's EventBus. The bus keeps the full history for the run so tests
and post-run reports can inspect the exact order in which things happened.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .logging import get_logger
from .utils.bytes import to_hex

__all__ = [
    "EventKind",
    "LifecycleEvent",
    "Observer",
    "EventBus",
    "LoggingObserver",
]


class EventKind(str, Enum):
    SIMULATED = "simulated"
    FAILED = "failed"
    EXECUTED = "executed"
    BATCH_PROPOSED = "batch_proposed"
    SUMMARY = "summary"


@dataclass(frozen=True)
class LifecycleEvent:
    kind: EventKind
    sender: Optional[str] = None
    operation_id: Optional[bytes] = None
    target: Optional[str] = None
    label: Optional[str] = None
    return_data: Optional[bytes] = None
    batch_id: Optional[bytes] = None
    proposal_hash: Optional[bytes] = None
    operations: Tuple[bytes, ...] = ()
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"event": self.kind.value}
        if self.sender is not None:
            out["sender"] = self.sender
        if self.operation_id is not None:
            out["id"] = to_hex(self.operation_id)
        if self.target is not None:
            out["target"] = self.target
        if self.label is not None:
            out["label"] = self.label
        if self.return_data is not None:
            out["returnData"] = to_hex(self.return_data)
        if self.batch_id is not None:
            out["batchId"] = to_hex(self.batch_id)
        if self.proposal_hash is not None:
            out["proposalHash"] = to_hex(self.proposal_hash)
        if self.operations:
            out["operations"] = [to_hex(o) for o in self.operations]
        out.update(self.detail)
        return out


Observer = Callable[[LifecycleEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._observers: List[Observer] = []
        self._history: List[LifecycleEvent] = []

    def subscribe(self, observer: Observer) -> None:
        self._observers.append(observer)

    def emit(self, event: LifecycleEvent) -> None:
        self._history.append(event)
        for obs in self._observers:
            obs(event)

    @property
    def history(self) -> Tuple[LifecycleEvent, ...]:
        return tuple(self._history)

    def of_kind(self, kind: EventKind) -> List[LifecycleEvent]:
        return [e for e in self._history if e.kind is kind]


class LoggingObserver:
    """Writes each lifecycle event as one structured log line."""

    def __init__(self, name: str = "sender_sdk.lifecycle") -> None:
        self._log = get_logger(name)

    def __call__(self, event: LifecycleEvent) -> None:
        fields = event.to_dict()
        name = fields.pop("event")
        if event.kind is EventKind.FAILED:
            self._log.warning(name, **fields)
        else:
            self._log.info(name, **fields)
