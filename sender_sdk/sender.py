"""
sender_sdk.sender
=================

A Sender is one account plus the way its operations reach the chain.

Capabilities form a tagged union; everything outside this module only asks
`sender.is_synchronous`:

- ImmediateSigner(signer): operations are replayed one by one against the
  broadcast context, signed by `signer`, and their return data is checked
  against what simulation predicted.
- BatchProposer(proposer, service): operations are collected and, on flush,
  proposed to the multisig coordination service as one batch. The batch
  digest is signed by `proposer`, itself an ImmediateSigner Sender.

Lifecycle
---------

    IDLE -> SIMULATING -> IDLE            (each execute)
    IDLE -> BROADCASTING -> FLUSHED       (once, during the coordinator's broadcast)

Simulation always goes through the coordinator, which owns the simulation
context and the global queue; a Sender never keeps operations that are not
also in that queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Set, Union, cast, overload

from .abi import encode
from .address import to_checksum
from .chain.context import Revert
from .config import HardwareConfig, LocalKeyConfig, MultisigConfig, SenderInitConfig, SenderKind
from .errors import ConfigError, ExecutionMismatch, ProposerNotSupported, SimulationFailure, ValueNotZero
from .multisig.service import ProposalRequest, ProposalService, batch_digest
from .types import Batch, Operation, OperationStatus, RichOperation
from .utils.hash import keccak256
from .wallet.signer import ExternalSigner, LocalKeySigner, Signer, UnlockedSigner

if TYPE_CHECKING:  # pragma: no cover
    from .coordinator import TransactionCoordinator
    from .harness import Harness

log = logging.getLogger(__name__)

__all__ = [
    "Capability",
    "ImmediateSigner",
    "BatchProposer",
    "SenderCapability",
    "SenderState",
    "Sender",
    "build_sender",
]


class Capability(str, Enum):
    IMMEDIATE = "immediate"
    BATCH = "batch"


@dataclass(frozen=True)
class ImmediateSigner:
    signer: Signer

    @property
    def kind(self) -> Capability:
        return Capability.IMMEDIATE


@dataclass(frozen=True)
class BatchProposer:
    proposer: "Sender"
    service: ProposalService

    @property
    def kind(self) -> Capability:
        return Capability.BATCH


SenderCapability = Union[ImmediateSigner, BatchProposer]


class SenderState(str, Enum):
    IDLE = "idle"
    SIMULATING = "simulating"
    BROADCASTING = "broadcasting"
    FLUSHED = "flushed"


class Sender:
    def __init__(
        self,
        coordinator: "TransactionCoordinator",
        name: str,
        account: str,
        capability: SenderCapability,
    ) -> None:
        self.coordinator = coordinator
        self.name = name
        self.account = to_checksum(account)
        self.capability = capability
        self.id = keccak256(name.encode("utf-8"))
        self.state = SenderState.IDLE
        self.batch_sequence = 0
        self.batches: List[Batch] = []
        self._pending: List[RichOperation] = []
        self._pending_ids: Set[bytes] = set()
        if isinstance(capability, BatchProposer):
            self._check_proposer(capability.proposer)

    def _check_proposer(self, proposer: "Sender") -> None:
        if proposer is self:
            raise ProposerNotSupported(self.name, detail="a batch sender cannot propose for itself")
        if proposer.coordinator is not self.coordinator:
            raise ProposerNotSupported(proposer.name, detail="proposer belongs to another run")
        if not isinstance(proposer.capability, ImmediateSigner):
            raise ProposerNotSupported(proposer.name, detail="proposer must sign immediately, not batch")
        if not proposer.capability.signer.supports_hash_signing:
            raise ProposerNotSupported(
                proposer.name,
                detail=f"{type(proposer.capability.signer).__name__} cannot sign a batch digest",
            )

    # --- introspection -------------------------------------------------------

    @property
    def is_synchronous(self) -> bool:
        return isinstance(self.capability, ImmediateSigner)

    @property
    def signer(self) -> Signer:
        if not isinstance(self.capability, ImmediateSigner):
            raise AttributeError(f"sender {self.name!r} proposes batches and has no signer")
        return self.capability.signer

    @property
    def pending(self) -> tuple[RichOperation, ...]:
        return tuple(self._pending)

    # --- simulation ------------------------------------------------------------

    @overload
    def execute(self, op: Operation) -> RichOperation: ...

    @overload
    def execute(self, op: Sequence[Operation]) -> List[RichOperation]: ...

    def execute(self, op: Any) -> Any:
        """
        Simulate *op* (or each op of a list, in order) as this sender and queue it.

        Raises SimulationFailure on the first revert; the run is then aborted
        and nothing that was queued will be broadcast.
        """
        if isinstance(op, Operation):
            return self._execute_one(op)
        return [self._execute_one(o) for o in op]

    def _execute_one(self, op: Operation) -> RichOperation:
        coord = self.coordinator
        coord.ensure_accepting()
        self.state = SenderState.SIMULATING
        try:
            try:
                out = coord.simulation_context.execute(self.account, op)
            except Revert as e:
                coord.record_failure(self, op, str(e))
                raise SimulationFailure(
                    op.label, sender=self.name, target=op.target, revert_reason=str(e)
                ) from e
            rich = coord.enqueue(self, op, out)
        finally:
            self.state = SenderState.IDLE
        self._pending.append(rich)
        self._pending_ids.add(rich.id)
        return rich

    def harness(self, target: str, abi: Optional[Any] = None) -> "Harness":
        return self.coordinator.harness(self, target, abi)

    # --- broadcast -------------------------------------------------------------

    def broadcast_operation(self, rich: RichOperation) -> bytes:
        """Real-execute one queued operation and verify it against the simulation."""
        coord = self.coordinator
        coord.ensure_broadcasting()
        if rich.sender != self.name or rich.id not in self._pending_ids:
            raise ValueError(f"operation {rich.label!r} is not pending for sender {self.name!r}")
        self.state = SenderState.BROADCASTING
        try:
            out = coord.broadcast_context.execute(self.account, rich.operation, signer=self.signer)
        except Revert as e:
            coord.record_failure(self, rich.operation, str(e), rich=rich)
            raise ExecutionMismatch(
                rich.label, expected=rich.simulated_return_data, got=None, sender=self.name
            ) from e
        rich.mark_executed(out)
        if out != rich.simulated_return_data:
            coord.record_failure(self, rich.operation, "return data differs from simulation", rich=rich)
            raise ExecutionMismatch(
                rich.label, expected=rich.simulated_return_data, got=out, sender=self.name
            )
        coord.record_executed(self, rich)
        return out

    def flush(self) -> Optional[bytes]:
        """
        Close this sender's pending batch; return its batch id, or None when
        nothing was pending.
        """
        self.coordinator.ensure_broadcasting()
        if not self._pending:
            self.state = SenderState.FLUSHED
            return None
        if isinstance(self.capability, BatchProposer):
            batch = self._propose(self.capability)
        else:
            for rich in list(self._pending):
                if rich.status is OperationStatus.SIMULATED:
                    self.broadcast_operation(rich)
            batch = Batch(
                batch_id=keccak256(encode(["bytes32", "uint256"], [self.id, self.batch_sequence])),
                sender=self.name,
                operations=tuple(self._pending),
            )
        self._pending.clear()
        self._pending_ids.clear()
        self.batches.append(batch)
        self.batch_sequence += 1
        self.state = SenderState.FLUSHED
        return batch.batch_id

    def _propose(self, capability: BatchProposer) -> Batch:
        for rich in self._pending:
            if rich.value:
                raise ValueNotZero(rich.label, value=rich.value, sender=self.name)
        ops = tuple(self._pending)
        calls = tuple((r.target, r.operation.payload) for r in ops)
        chain_id = self.coordinator.chain_id
        digest = batch_digest(self.account, chain_id, self.batch_sequence, calls)
        proposer = capability.proposer
        signature = proposer.signer.sign_hash(digest)
        request = ProposalRequest(
            account=self.account,
            chain_id=chain_id,
            nonce=self.batch_sequence,
            calls=calls,
            digest=digest,
            proposer=proposer.account,
            signature=signature,
        )
        self.state = SenderState.BROADCASTING
        proposal_hash = capability.service.propose(request)
        for rich in ops:
            rich.mark_queued()
        batch = Batch(batch_id=digest, sender=self.name, operations=ops, proposal_hash=proposal_hash)
        self.coordinator.record_proposal(self, batch)
        return batch

    def __repr__(self) -> str:
        return f"Sender({self.name!r}, {self.account}, {self.capability.kind.value})"


def build_sender(
    coordinator: "TransactionCoordinator",
    config: SenderInitConfig,
    *,
    proposal_service: Optional[ProposalService] = None,
) -> Sender:
    """Create the signing backend described by *config* and register the Sender."""
    backend = config.backend
    capability: SenderCapability
    if config.kind is SenderKind.MULTISIG:
        if proposal_service is None:
            raise ConfigError(f"sender {config.name!r} needs a proposal service", key="proposal_service")
        proposer = coordinator.sender(cast(MultisigConfig, backend).proposer)
        capability = BatchProposer(proposer=proposer, service=proposal_service)
    else:
        signer: Signer
        if config.kind is SenderKind.LOCAL_KEY:
            signer = LocalKeySigner(cast(LocalKeyConfig, backend).private_key)
        elif config.kind is SenderKind.HARDWARE:
            signer = ExternalSigner.connect(config.account, cast(HardwareConfig, backend).signer_url)
        else:
            signer = UnlockedSigner(config.account)
        if signer.address != config.account:
            raise ConfigError(
                f"sender {config.name!r}: key controls {signer.address}, not {config.account}",
                key="account",
            )
        capability = ImmediateSigner(signer)
    sender = coordinator.add_sender(config.name, config.account, capability)
    log.debug("sender registered", extra={"sender": config.name, "kind": config.kind.value})
    return sender
