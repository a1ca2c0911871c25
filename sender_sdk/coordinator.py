"""
sender_sdk.coordinator
======================

The TransactionCoordinator owns a run: the registered Senders, the global
queue of simulated operations, the harness cache, and the two execution
contexts.

Protocol
--------
1. Simulation. Every `Sender.execute` is simulated against the simulation
   context and appended to the global queue in call order. A revert aborts
   the run; nothing is broadcast.
2. Broadcast (exactly once).
   a. Walk the global queue in order; operations of synchronous Senders are
      real-executed and their return data verified.
   b. Close each synchronous Sender's batch, in registration order.
   c. Flush each asynchronous Sender once, in registration order, proposing
      its operations as one batch.
   d. Emit a summary event.

The first fatal error stops the broadcast. Operations already executed stay
executed; there is no retry and no rollback.

    coord = TransactionCoordinator(chain.fork(), chain)
    ops = coord.add_sender("ops", deployer, ImmediateSigner(signer))
    ops.harness(token, TOKEN_ABI).transfer(alice, 10)
    summary = coord.broadcast()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx

from .abi import encode
from .address import to_checksum
from .errors import BroadcastError, ConfigError, SenderSdkError
from .events import EventBus, EventKind, LifecycleEvent, LoggingObserver, Observer
from .chain.context import ExecutionContext
from .chain.rpc import RpcChain
from .config import RunConfig
from .harness import Harness
from .logging import bind_run_context, clear_run_context
from .rpc.http import RpcClient
from .sender import Sender, SenderCapability
from .types import Batch, Operation, OperationStatus, RichOperation
from .utils.bytes import to_hex
from .utils.hash import keccak256

log = logging.getLogger(__name__)

__all__ = ["RunState", "RunSummary", "TransactionCoordinator"]


class RunState(str, Enum):
    SIMULATING = "simulating"
    BROADCASTING = "broadcasting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RunSummary:
    executed: Tuple[RichOperation, ...]
    queued: Tuple[RichOperation, ...]
    batches: Tuple[Batch, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executed": len(self.executed),
            "queued": len(self.queued),
            "batches": [to_hex(b.batch_id) for b in self.batches],
            "proposals": [to_hex(b.proposal_hash) for b in self.batches if b.proposal_hash is not None],
        }


class TransactionCoordinator:
    def __init__(
        self,
        simulation: ExecutionContext,
        broadcast: ExecutionContext,
        *,
        chain_id: Optional[int] = None,
        observers: Iterable[Observer] = (),
        log_events: bool = True,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self.simulation_context = simulation
        self.broadcast_context = broadcast
        self.chain_id = int(chain_id if chain_id is not None else broadcast.chain_id)
        if simulation.chain_id != self.chain_id:
            raise ConfigError(
                f"simulation context is on chain {simulation.chain_id}, broadcast on {self.chain_id}",
                key="chain_id",
            )
        self.events = EventBus()
        if log_events:
            self.events.subscribe(LoggingObserver())
        for obs in observers:
            self.events.subscribe(obs)
        self.state = RunState.SIMULATING
        self._senders: Dict[str, Sender] = {}
        self._queue: List[RichOperation] = []
        self._harnesses: Dict[Tuple[str, str], Harness] = {}
        self._marker = int(clock())
        self._counter = 0
        self.run_id = keccak256(encode(["uint256", "uint256"], [self.chain_id, self._marker]))

    @classmethod
    def from_config(cls, cfg: RunConfig, *, transport: Optional[httpx.BaseTransport] = None, **kwargs: Any) -> "TransactionCoordinator":
        """
        Coordinator over JSON-RPC nodes: operations are simulated on the fork
        node at `cfg.fork_url` by impersonation and broadcast to `cfg.rpc_url`.
        """
        if not cfg.fork_url:
            raise ConfigError("fork_url is required to simulate against a node", key="fork_url")

        def chain(url: str, impersonate: bool) -> RpcChain:
            rpc = RpcClient(url, timeout=cfg.request_timeout, max_retries=cfg.max_retries, transport=transport)
            return RpcChain(rpc, chain_id=cfg.chain_id, impersonate=impersonate, receipt_timeout=cfg.receipt_timeout)

        return cls(chain(cfg.fork_url, True), chain(cfg.rpc_url, False), chain_id=cfg.chain_id, **kwargs)

    # --- senders & harnesses -------------------------------------------------

    def add_sender(self, name: str, account: str, capability: SenderCapability) -> Sender:
        if name in self._senders:
            raise ConfigError(f"sender {name!r} is already registered", key="name")
        sender = Sender(self, name, account, capability)
        self._senders[name] = sender
        return sender

    def sender(self, name: str) -> Sender:
        try:
            return self._senders[name]
        except KeyError:
            raise ConfigError(f"unknown sender {name!r}", key="name") from None

    @property
    def senders(self) -> Tuple[Sender, ...]:
        """Registered senders, in registration order."""
        return tuple(self._senders.values())

    def harness(self, sender: Sender, target: str, abi: Optional[Any] = None) -> Harness:
        """The cached call harness for (sender, target); created on first use."""
        key = (sender.name, to_checksum(target))
        h = self._harnesses.get(key)
        if h is None:
            proxy = keccak256(encode(["bytes32", "address"], [sender.id, key[1]]))[12:]
            h = Harness(sender, key[1], abi, address=to_checksum(proxy))
            self._harnesses[key] = h
        elif abi is not None:
            h.add_abi(abi)
        return h

    # --- queue -----------------------------------------------------------------

    @property
    def queue(self) -> Tuple[RichOperation, ...]:
        return tuple(self._queue)

    def next_operation_id(self) -> bytes:
        self._counter += 1
        return keccak256(encode(["uint256", "uint256", "uint256"], [self.chain_id, self._marker, self._counter]))

    def ensure_accepting(self) -> None:
        if self.state is not RunState.SIMULATING:
            raise BroadcastError("run no longer accepts operations", state=self.state.value)

    def ensure_broadcasting(self) -> None:
        if self.state is not RunState.BROADCASTING:
            raise BroadcastError("senders can only be flushed during broadcast", state=self.state.value)

    def enqueue(self, sender: Sender, op: Operation, return_data: bytes) -> RichOperation:
        rich = RichOperation(
            operation=op,
            id=self.next_operation_id(),
            sender_id=sender.id,
            sender=sender.name,
            sequence=len(self._queue),
        )
        rich.mark_simulated(return_data)
        self._queue.append(rich)
        self.events.emit(
            LifecycleEvent(
                kind=EventKind.SIMULATED,
                sender=sender.name,
                operation_id=rich.id,
                target=rich.target,
                label=rich.label,
                return_data=rich.simulated_return_data,
            )
        )
        return rich

    # --- event hooks used by Sender ------------------------------------------

    def record_failure(self, sender: Sender, op: Operation, reason: str, *, rich: Optional[RichOperation] = None) -> None:
        if self.state is RunState.SIMULATING:
            self.state = RunState.FAILED
        self.events.emit(
            LifecycleEvent(
                kind=EventKind.FAILED,
                sender=sender.name,
                operation_id=rich.id if rich is not None else None,
                target=op.target,
                label=op.label,
                detail={"reason": reason},
            )
        )

    def abort(self, sender: Sender, rich: RichOperation, error: SenderSdkError) -> None:
        """Fail the run over an already queued operation; nothing queued is broadcast."""
        log.error("run aborted", extra={"label": rich.label, "reason": error.reason})
        self.state = RunState.FAILED
        self.record_failure(sender, rich.operation, error.message, rich=rich)

    def record_executed(self, sender: Sender, rich: RichOperation) -> None:
        self.events.emit(
            LifecycleEvent(
                kind=EventKind.EXECUTED,
                sender=sender.name,
                operation_id=rich.id,
                target=rich.target,
                label=rich.label,
                return_data=rich.executed_return_data,
            )
        )

    def record_proposal(self, sender: Sender, batch: Batch) -> None:
        self.events.emit(
            LifecycleEvent(
                kind=EventKind.BATCH_PROPOSED,
                sender=sender.name,
                batch_id=batch.batch_id,
                proposal_hash=batch.proposal_hash,
                operations=tuple(r.id for r in batch.operations),
            )
        )

    # --- broadcast -------------------------------------------------------------

    def broadcast(self) -> RunSummary:
        if self.state is not RunState.SIMULATING:
            raise BroadcastError("run cannot be broadcast", state=self.state.value)
        self.state = RunState.BROADCASTING
        synchronous = [s for s in self.senders if s.is_synchronous]
        asynchronous = [s for s in self.senders if not s.is_synchronous]
        log.info(
            "broadcast started",
            extra={"operations": len(self._queue), "senders": len(self._senders), "batchers": len(asynchronous)},
        )
        try:
            for rich in self._queue:
                sender = self._senders[rich.sender]
                if sender.is_synchronous:
                    sender.broadcast_operation(rich)
            for sender in synchronous:
                sender.flush()
            for sender in asynchronous:
                sender.flush()
        except Exception:
            self.state = RunState.FAILED
            log.error("broadcast aborted", extra={"executed": len(self._with_status(OperationStatus.EXECUTED))})
            raise
        self.state = RunState.COMPLETED

        summary = RunSummary(
            executed=self._with_status(OperationStatus.EXECUTED),
            queued=self._with_status(OperationStatus.QUEUED),
            batches=tuple(b for s in self.senders for b in s.batches),
        )
        self.events.emit(LifecycleEvent(kind=EventKind.SUMMARY, detail=summary.to_dict()))
        return summary

    def run(self, script: Callable[["TransactionCoordinator"], Any]) -> RunSummary:
        """Simulate `script(self)`, then broadcast. A failing script broadcasts nothing."""
        bind_run_context(run_id=to_hex(self.run_id)[:18], chain_id=self.chain_id)
        try:
            try:
                script(self)
            except Exception:
                if self.state is RunState.SIMULATING:
                    self.state = RunState.FAILED
                raise
            return self.broadcast()
        finally:
            clear_run_context("run_id", "chain_id")

    def _with_status(self, status: OperationStatus) -> Tuple[RichOperation, ...]:
        return tuple(r for r in self._queue if r.status is status)

    def __repr__(self) -> str:
        return f"TransactionCoordinator(chain_id={self.chain_id}, state={self.state.value}, queued={len(self._queue)})"
