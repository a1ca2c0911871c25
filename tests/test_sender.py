import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from sender_sdk.abi import decode, encode_call
from sender_sdk.chain.memory import MemoryChain
from sender_sdk.config import HardwareConfig, LocalKeyConfig, MultisigConfig, SenderInitConfig, SenderKind
from sender_sdk.coordinator import RunState, TransactionCoordinator
from sender_sdk.errors import (
    BroadcastError,
    ConfigError,
    ExecutionMismatch,
    ProposerNotSupported,
    SimulationFailure,
    ValueNotZero,
)
from sender_sdk.multisig.service import batch_digest
from sender_sdk.sender import BatchProposer, Capability, ImmediateSigner, SenderState, build_sender
from sender_sdk.types import Operation, OperationStatus
from sender_sdk.utils.hash import keccak256
from sender_sdk.wallet.signer import ExternalSigner, LocalKeySigner, UnlockedSigner, recover_hash

from .conftest import ALICE, BOB, CHAIN_ID, COUNTER, JOURNAL, PROPOSER_KEY, SAFE, VAULT, Counter


def _inc(by: int) -> Operation:
    return Operation(COUNTER, encode_call("increment(uint256)", [by]), label=f"inc {by}")


def test_execute_simulates_and_queues(coordinator, alice, chain):
    rich = alice.execute(_inc(4))
    assert rich.status is OperationStatus.SIMULATED
    assert decode(["uint256"], rich.simulated_return_data) == (4,)
    assert alice.pending == (rich,)
    assert coordinator.queue == (rich,)
    assert alice.state is SenderState.IDLE
    assert rich.sender_id == keccak256(b"alice") == alice.id
    # nothing reached the real chain
    assert chain.height == 0


def test_execute_list_is_in_order(alice):
    rich = alice.execute([_inc(1), _inc(2), _inc(3)])
    assert [decode(["uint256"], r.simulated_return_data)[0] for r in rich] == [1, 3, 6]
    assert [r.sequence for r in rich] == [0, 1, 2]


def test_execute_list_stops_at_first_failure(coordinator, alice):
    boom = Operation(COUNTER, encode_call("boom()"), label="boom")
    with pytest.raises(SimulationFailure) as ei:
        alice.execute([_inc(1), boom, _inc(2)])
    assert ei.value.label == "boom"
    assert len(coordinator.queue) == 1


@settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(amounts=st.lists(st.integers(min_value=0, max_value=2**32), min_size=1, max_size=8))
def test_single_sync_sender_executes_in_issuance_order(amounts):
    chain = MemoryChain(chain_id=CHAIN_ID)
    chain.install(COUNTER, Counter())
    coord = TransactionCoordinator(chain.fork(), chain, log_events=False)
    sender = coord.add_sender("alice", ALICE, ImmediateSigner(UnlockedSigner(ALICE)))
    issued = sender.execute([_inc(a) for a in amounts])

    coord.broadcast()

    assert [op for _, op in chain.transactions] == [r.operation for r in issued]
    for r in issued:
        assert r.status is OperationStatus.EXECUTED
        assert r.executed_return_data == r.simulated_return_data
    assert chain.contract_at(COUNTER).count == sum(amounts)


def test_immediate_flush_closes_a_batch(coordinator, alice):
    alice.execute([_inc(1), _inc(2)])
    summary = coordinator.broadcast()
    assert len(alice.batches) == 1
    batch = alice.batches[0]
    assert batch.proposal_hash is None
    assert [r.label for r in batch.operations] == ["inc 1", "inc 2"]
    assert alice.pending == ()
    assert alice.batch_sequence == 1
    assert alice.state is SenderState.FLUSHED
    assert summary.batches == (batch,)


def test_flush_outside_broadcast_is_rejected(alice):
    alice.execute(_inc(1))
    with pytest.raises(BroadcastError):
        alice.flush()


def test_state_drift_is_an_execution_mismatch(coordinator, alice, chain):
    alice.execute(_inc(1))
    chain.contract_at(COUNTER).count = 100
    with pytest.raises(ExecutionMismatch) as ei:
        coordinator.broadcast()
    assert ei.value.expected == (1).to_bytes(32, "big")
    assert ei.value.got == (101).to_bytes(32, "big")


def test_batch_proposer_collects_and_proposes(coordinator, safe, ops, proposals, proposer_signer):
    r1 = safe.execute(Operation(JOURNAL, encode_call("record(string)", ["a"])))
    r2 = safe.execute(Operation(COUNTER, encode_call("increment(uint256)", [1])))
    assert not safe.is_synchronous and ops.is_synchronous

    coordinator.broadcast()

    (request,) = proposals.proposals
    assert request.account == SAFE
    assert request.chain_id == CHAIN_ID
    assert request.nonce == 0
    assert request.calls == ((JOURNAL, r1.operation.payload), (COUNTER, r2.operation.payload))
    assert request.digest == batch_digest(SAFE, CHAIN_ID, 0, request.calls)
    assert request.proposer == proposer_signer.address
    assert recover_hash(request.digest, request.signature) == proposer_signer.address

    (batch,) = safe.batches
    assert batch.batch_id == request.digest
    assert batch.proposal_hash == request.digest
    assert batch.operations == (r1, r2)
    assert r1.status is r2.status is OperationStatus.QUEUED
    assert r1.executed_return_data is None
    assert safe.pending == ()


def test_batch_rejects_value(coordinator, safe, proposals):
    safe.execute(Operation(VAULT, encode_call("deposit()"), value=0))
    coordinator.simulation_context.fund(SAFE, 5)
    safe.execute(Operation(VAULT, encode_call("deposit()"), value=5, label="deposit 5"))
    with pytest.raises(ValueNotZero) as ei:
        coordinator.broadcast()
    assert ei.value.label == "deposit 5"
    assert proposals.proposals == []
    assert len(safe.pending) == 2


def test_empty_batch_is_not_proposed(coordinator, safe, proposals):
    summary = coordinator.broadcast()
    assert proposals.proposals == []
    assert summary.batches == ()


def test_proposer_must_sign_digests(coordinator, alice, proposals):
    with pytest.raises(ProposerNotSupported, match="cannot sign a batch digest"):
        coordinator.add_sender("safe", SAFE, BatchProposer(proposer=alice, service=proposals))


def test_hardware_proposer_is_rejected(coordinator, proposals):
    hw = coordinator.add_sender("ledger", BOB, ImmediateSigner(ExternalSigner(BOB, rpc=None)))
    with pytest.raises(ProposerNotSupported) as ei:
        coordinator.add_sender("safe", SAFE, BatchProposer(proposer=hw, service=proposals))
    assert ei.value.code == 2006


def test_batch_sender_cannot_propose_for_another(coordinator, safe, proposals):
    with pytest.raises(ProposerNotSupported, match="must sign immediately"):
        coordinator.add_sender("safe2", BOB, BatchProposer(proposer=safe, service=proposals))


def test_proposer_from_another_run_is_rejected(chain, ops, proposals):
    other = TransactionCoordinator(chain.fork(), chain, log_events=False)
    with pytest.raises(ProposerNotSupported, match="another run"):
        other.add_sender("safe", SAFE, BatchProposer(proposer=ops, service=proposals))


def test_capability_kinds(alice, safe):
    assert alice.capability.kind is Capability.IMMEDIATE
    assert safe.capability.kind is Capability.BATCH
    with pytest.raises(AttributeError):
        safe.signer


def test_build_sender_from_config(coordinator, proposals):
    key_account = LocalKeySigner(PROPOSER_KEY).address
    ops = build_sender(
        coordinator,
        SenderInitConfig(name="ops", account=key_account, kind=SenderKind.LOCAL_KEY, backend=LocalKeyConfig(PROPOSER_KEY)),
    )
    assert ops.is_synchronous and ops.signer.address == key_account

    dev = build_sender(coordinator, SenderInitConfig.from_mapping({"name": "dev", "account": ALICE, "kind": "unlocked"}))
    assert isinstance(dev.signer, UnlockedSigner)

    hw = build_sender(
        coordinator,
        SenderInitConfig(name="hw", account=BOB, kind=SenderKind.HARDWARE, backend=HardwareConfig("http://127.0.0.1:8550")),
    )
    assert isinstance(hw.signer, ExternalSigner)

    safe = build_sender(
        coordinator,
        SenderInitConfig(name="safe", account=SAFE, kind=SenderKind.MULTISIG, backend=MultisigConfig(proposer="ops")),
        proposal_service=proposals,
    )
    assert safe.capability.proposer is ops
    assert [s.name for s in coordinator.senders] == ["ops", "dev", "hw", "safe"]


def test_build_sender_config_errors(coordinator):
    with pytest.raises(ConfigError, match="key controls"):
        build_sender(
            coordinator,
            SenderInitConfig(name="ops", account=ALICE, kind=SenderKind.LOCAL_KEY, backend=LocalKeyConfig(PROPOSER_KEY)),
        )
    with pytest.raises(ConfigError, match="proposal service"):
        build_sender(
            coordinator,
            SenderInitConfig(name="safe", account=SAFE, kind=SenderKind.MULTISIG, backend=MultisigConfig(proposer="x")),
        )
    with pytest.raises(ConfigError, match="unknown sender"):
        build_sender(
            coordinator,
            SenderInitConfig(name="safe", account=SAFE, kind=SenderKind.MULTISIG, backend=MultisigConfig(proposer="x")),
            proposal_service=object(),
        )
    build_sender(coordinator, SenderInitConfig(name="dup", account=ALICE, kind=SenderKind.UNLOCKED))
    with pytest.raises(ConfigError, match="already registered"):
        build_sender(coordinator, SenderInitConfig(name="dup", account=BOB, kind=SenderKind.UNLOCKED))


def test_only_pending_operations_are_broadcast(coordinator, alice, ops):
    rich = alice.execute(_inc(1))
    coordinator.state = RunState.BROADCASTING
    with pytest.raises(ValueError, match="not pending"):
        ops.broadcast_operation(rich)
    assert alice.broadcast_operation(rich) == rich.simulated_return_data
    assert rich.status is OperationStatus.EXECUTED
