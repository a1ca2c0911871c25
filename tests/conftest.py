import pytest

from sender_sdk.address import to_checksum
from sender_sdk.chain.context import Revert
from sender_sdk.chain.factory import install_factory
from sender_sdk.chain.memory import Contract, MemoryChain, external
from sender_sdk.coordinator import TransactionCoordinator
from sender_sdk.multisig.service import InMemoryProposalService
from sender_sdk.sender import BatchProposer, ImmediateSigner
from sender_sdk.utils import rlp
from sender_sdk.utils.hash import keccak256
from sender_sdk.wallet.signer import LocalKeySigner, UnlockedSigner, recover_hash

CHAIN_ID = 31337

ALICE = to_checksum("0x" + "a1" * 20)
BOB = to_checksum("0x" + "b0" * 20)
SAFE = to_checksum("0x" + "5a" * 20)
COUNTER = to_checksum("0x" + "c0" * 20)
JOURNAL = to_checksum("0x" + "10" * 20)
VAULT = to_checksum("0x" + "7a" * 20)

PROPOSER_KEY = "0x" + "11" * 32

# Creation bytecode stand-ins; constructor arguments are appended ABI-encoded
TOKEN_CODE = bytes.fromhex("60806040aa01")
COUNTER_CODE = bytes.fromhex("60806040cc02")


class Counter(Contract):
    def setup(self, msg):
        self.count = 0

    @external("increment(uint256)", returns=("uint256",))
    def increment(self, msg, by):
        self.count += by
        return self.count

    @external("count()", returns=("uint256",))
    def get_count(self, msg):
        return self.count

    @external("boom()")
    def boom(self, msg):
        raise Revert("boom")


class Journal(Contract):
    def setup(self, msg):
        self.entries = []

    @external("record(string)", returns=("uint256",))
    def record(self, msg, text):
        self.entries.append((msg.sender, text))
        return len(self.entries)


class Vault(Contract):
    def setup(self, msg):
        self.deposits = {}

    @external("deposit()", returns=("uint256",), payable=True)
    def deposit(self, msg):
        self.deposits[msg.sender] = self.deposits.get(msg.sender, 0) + msg.value
        return self.deposits[msg.sender]


class Token(Contract):
    constructor_types = ("address", "uint256")

    def setup(self, msg, owner, supply):
        self.balances = {owner: supply}

    @external("balanceOf(address)", returns=("uint256",))
    def balance_of(self, msg, who):
        return self.balances.get(who, 0)

    @external("transfer(address,uint256)", returns=("bool",))
    def transfer(self, msg, to, amount):
        have = self.balances.get(msg.sender, 0)
        if have < amount:
            raise Revert("insufficient balance")
        self.balances[msg.sender] = have - amount
        self.balances[to] = self.balances.get(to, 0) + amount
        return True


TOKEN_ABI = [
    {
        "type": "function",
        "name": "balanceOf",
        "inputs": [{"name": "who", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "transfer",
        "inputs": [{"name": "to", "type": "address"}, {"name": "amount", "type": "uint256"}],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {"type": "event", "name": "Transfer", "inputs": []},
]

COUNTER_ABI = [
    "function increment(uint256 by) returns (uint256)",
    "function count() view returns (uint256)",
    "function boom()",
]


@pytest.fixture
def chain():
    c = MemoryChain(chain_id=CHAIN_ID)
    install_factory(c)
    c.register_artifact(TOKEN_CODE, Token)
    c.register_artifact(COUNTER_CODE, Counter)
    c.install(COUNTER, Counter())
    c.install(JOURNAL, Journal())
    c.install(VAULT, Vault())
    c.fund(ALICE, 10**18)
    return c


@pytest.fixture
def coordinator(chain):
    return TransactionCoordinator(chain.fork(), chain)


@pytest.fixture
def proposer_signer():
    return LocalKeySigner(PROPOSER_KEY)


@pytest.fixture
def proposals():
    return InMemoryProposalService()


@pytest.fixture
def alice(coordinator):
    return coordinator.add_sender("alice", ALICE, ImmediateSigner(UnlockedSigner(ALICE)))


@pytest.fixture
def ops(coordinator, proposer_signer):
    return coordinator.add_sender("ops", proposer_signer.address, ImmediateSigner(proposer_signer))


@pytest.fixture
def safe(coordinator, ops, proposals):
    return coordinator.add_sender("safe", SAFE, BatchProposer(proposer=ops, service=proposals))


def rlp_decode(data: bytes):
    """Decode one RLP item; lists come back as Python lists of bytes/lists."""

    def item(pos):
        b = data[pos]
        if b < 0x80:
            return data[pos : pos + 1], pos + 1
        if b < 0xB8:
            n = b - 0x80
            return data[pos + 1 : pos + 1 + n], pos + 1 + n
        if b < 0xC0:
            ll = b - 0xB7
            n = int.from_bytes(data[pos + 1 : pos + 1 + ll], "big")
            start = pos + 1 + ll
            return data[start : start + n], start + n
        if b < 0xF8:
            n, start = b - 0xC0, pos + 1
        else:
            ll = b - 0xF7
            n, start = int.from_bytes(data[pos + 1 : pos + 1 + ll], "big"), pos + 1 + ll
        out, p = [], start
        while p < start + n:
            x, p = item(p)
            out.append(x)
        return out, start + n

    decoded, end = item(0)
    assert end == len(data)
    return decoded


def recover_transaction(raw: bytes) -> str:
    """Sender of an EIP-155 legacy transaction."""
    fields = rlp_decode(bytes(raw))
    v, r, s = (int.from_bytes(x, "big") for x in fields[6:])
    chain_id = (v - 35) // 2
    unsigned = fields[:6] + [chain_id, 0, 0]
    sig = r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v - 35 - 2 * chain_id + 27])
    return recover_hash(keccak256(rlp.encode(unsigned)), sig)
