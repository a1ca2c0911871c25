import pytest

from sender_sdk.abi import encode_call
from sender_sdk.chain.context import ExecutionContext, Revert
from sender_sdk.chain.rpc import RpcChain
from sender_sdk.errors import JsonRpcCode, RpcError
from sender_sdk.types import Operation
from sender_sdk.wallet.signer import LocalKeySigner, UnlockedSigner

from .conftest import ALICE, COUNTER, PROPOSER_KEY, recover_transaction

TX = "0x" + "ab" * 32
OUT = "0x" + "00" * 31 + "07"


class FakeRpc:
    """Answers JSON-RPC methods from a table of values or callables."""

    def __init__(self, **answers):
        self.answers = {
            "eth_chainId": "0x7a69",
            "eth_getTransactionReceipt": {"status": "0x1", "blockNumber": "0x10"},
            "debug_traceTransaction": {"output": OUT},
            **answers,
        }
        self.calls = []

    def request(self, method, params=None):
        self.calls.append((method, params))
        answer = self.answers[method]
        if isinstance(answer, Exception):
            raise answer
        return answer(params) if callable(answer) else answer

    def methods(self):
        return [m for m, _ in self.calls]


OP = Operation(COUNTER, encode_call("increment(uint256)", [7]), label="inc")


def test_chain_id_is_fetched_once():
    rpc = FakeRpc()
    chain = RpcChain(rpc)
    assert isinstance(chain, ExecutionContext)
    assert chain.chain_id == 31337
    assert chain.chain_id == 31337
    assert rpc.methods() == ["eth_chainId"]
    assert RpcChain(FakeRpc(), chain_id=5).chain_id == 5


def test_impersonated_simulation():
    rpc = FakeRpc(anvil_impersonateAccount=None, eth_sendTransaction=TX)
    chain = RpcChain(rpc, chain_id=31337, impersonate=True)
    assert chain.execute(ALICE, OP) == bytes.fromhex(OUT[2:])
    chain.execute(ALICE, OP)
    assert rpc.methods().count("anvil_impersonateAccount") == 1
    (_, (call,)) = next(c for c in rpc.calls if c[0] == "eth_sendTransaction")
    assert call == {"from": ALICE, "to": COUNTER, "data": "0x" + OP.payload.hex(), "value": "0x0"}


def test_node_managed_signer_uses_send_transaction():
    rpc = FakeRpc(eth_sendTransaction=TX)
    RpcChain(rpc, chain_id=1).execute(ALICE, OP, signer=UnlockedSigner(ALICE))
    assert "eth_sendRawTransaction" not in rpc.methods()


def test_local_key_signs_raw_transaction():
    signer = LocalKeySigner(PROPOSER_KEY)
    sent = []

    def send_raw(params):
        sent.append(params[0])
        return TX

    rpc = FakeRpc(
        eth_getTransactionCount="0x4",
        eth_estimateGas="0x5208",
        eth_gasPrice="0x3b9aca00",
        eth_sendRawTransaction=send_raw,
    )
    RpcChain(rpc, chain_id=31337).execute(signer.address, OP, signer=signer)
    (raw,) = sent
    assert recover_transaction(bytes.fromhex(raw[2:])) == signer.address
    assert rpc.calls[0] == ("eth_getTransactionCount", [signer.address, "pending"])


def test_revert_error_becomes_revert():
    err = RpcError(code=3, message="execution reverted: boom", data="0x08c379a0", method="eth_sendTransaction")
    rpc = FakeRpc(eth_sendTransaction=err)
    with pytest.raises(Revert) as ei:
        RpcChain(rpc, chain_id=1).execute(ALICE, OP)
    assert ei.value.data == bytes.fromhex("08c379a0")


def test_other_rpc_errors_propagate():
    rpc = FakeRpc(eth_sendTransaction=RpcError(code=-32000, message="nonce too low"))
    with pytest.raises(RpcError):
        RpcChain(rpc, chain_id=1).execute(ALICE, OP)


def test_failed_receipt_is_a_revert():
    rpc = FakeRpc(eth_sendTransaction=TX, eth_getTransactionReceipt={"status": "0x0", "blockNumber": "0x2"})
    with pytest.raises(Revert, match="reverted"):
        RpcChain(rpc, chain_id=1).execute(ALICE, OP)


def test_return_data_falls_back_to_eth_call():
    calls = []

    def eth_call(params):
        calls.append(params)
        return OUT

    rpc = FakeRpc(
        eth_sendTransaction=TX,
        debug_traceTransaction=RpcError(code=JsonRpcCode.METHOD_NOT_FOUND, message="method not found"),
        eth_call=eth_call,
    )
    assert RpcChain(rpc, chain_id=1).execute(ALICE, OP) == bytes.fromhex(OUT[2:])
    ((_, block),) = calls
    assert block == "0xf"


def test_trace_transport_failure_propagates():
    rpc = FakeRpc(
        eth_sendTransaction=TX,
        debug_traceTransaction=RpcError(code=JsonRpcCode.TRANSPORT, message="RPC transport failed"),
    )
    with pytest.raises(RpcError):
        RpcChain(rpc, chain_id=1).execute(ALICE, OP)


def test_receipt_is_polled():
    receipts = iter([None, None, {"status": "0x1", "blockNumber": "0x1"}])
    rpc = FakeRpc(eth_getTransactionReceipt=lambda params: next(receipts))
    chain = RpcChain(rpc, chain_id=1, poll_interval=0.0)
    assert chain.wait_for_receipt(TX)["blockNumber"] == "0x1"
    assert rpc.methods().count("eth_getTransactionReceipt") == 3


def test_receipt_timeout():
    rpc = FakeRpc(eth_getTransactionReceipt=None)
    chain = RpcChain(rpc, chain_id=1, receipt_timeout=0.0, poll_interval=0.0)
    with pytest.raises(TimeoutError):
        chain.wait_for_receipt(TX)


def test_static_call():
    rpc = FakeRpc(eth_call=OUT)
    assert RpcChain(rpc, chain_id=1).static_call(COUNTER, b"\x01", account=ALICE) == bytes.fromhex(OUT[2:])
    (_, (call, tag)) = rpc.calls[-1]
    assert call == {"to": COUNTER, "data": "0x01", "from": ALICE}
    assert tag == "latest"
