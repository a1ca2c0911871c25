import pytest

from sender_sdk.utils import rlp
from sender_sdk.utils.hash import keccak256
from sender_sdk.wallet.signer import ExternalSigner, LocalKeySigner, Signer, UnlockedSigner, recover_hash

from .conftest import ALICE, BOB, PROPOSER_KEY, recover_transaction, rlp_decode


class FakeRpc:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def request(self, method, params=None):
        self.calls.append((method, params))
        return self.result


def test_backends_satisfy_protocol():
    for s in (UnlockedSigner(ALICE), LocalKeySigner(PROPOSER_KEY), ExternalSigner(BOB, FakeRpc({}))):
        assert isinstance(s, Signer)


EIP155_KEY = "0x" + "46" * 32


def test_local_key_address():
    assert LocalKeySigner(EIP155_KEY).address.lower() == "0x9d8a62f656a8d1615c1294fd71e9cfb3e4855a4f"


def test_local_key_signs_digests():
    signer = LocalKeySigner(PROPOSER_KEY)
    digest = keccak256(b"batch")
    sig = signer.sign_hash(digest)
    assert len(sig) == 65 and sig[64] in (27, 28)
    assert recover_hash(digest, sig) == signer.address
    assert recover_hash(keccak256(b"other"), sig) != signer.address
    with pytest.raises(ValueError):
        signer.sign_hash(b"short")
    assert "11" * 32 not in repr(signer)


def test_local_key_signs_eip155_transactions():
    signer = LocalKeySigner(bytes.fromhex("46" * 32))
    tx = {
        "nonce": 9,
        "gasPrice": 20 * 10**9,
        "gas": 21000,
        "to": "0x" + "35" * 20,
        "value": 10**18,
        "data": b"",
        "chainId": 1,
    }
    raw = signer.sign_transaction(tx)
    fields = rlp_decode(raw)
    assert rlp.encode(fields[:6] + [1, 0, 0]) == bytes.fromhex(
        "ec098504a817c800825208943535353535353535353535353535353535353535880de0b6b3a764000080018080"
    )
    assert int.from_bytes(fields[6], "big") in (37, 38)
    assert recover_transaction(raw) == signer.address


def test_bad_keys():
    with pytest.raises(ValueError):
        LocalKeySigner(b"\x01" * 31)
    with pytest.raises(ValueError):
        LocalKeySigner(b"\x00" * 32)


def test_unlocked_signs_nothing():
    s = UnlockedSigner(ALICE.lower())
    assert s.address == ALICE
    assert s.node_managed and not s.supports_hash_signing
    with pytest.raises(NotImplementedError):
        s.sign_transaction({})
    with pytest.raises(NotImplementedError):
        s.sign_hash(b"\x00" * 32)


def test_external_signer_forwards_transaction():
    rpc = FakeRpc({"raw": "0xf86c01", "tx": {}})
    s = ExternalSigner(BOB, rpc)
    raw = s.sign_transaction({"to": ALICE.lower(), "nonce": 3, "gas": 50000, "data": b"\xab\xcd", "value": 0})
    assert raw == bytes.fromhex("f86c01")
    ((method, (args,)),) = rpc.calls
    assert method == "account_signTransaction"
    assert args == {"from": BOB, "to": ALICE, "nonce": "0x3", "gas": "0xc350", "value": "0x0", "input": "0xabcd"}
    assert not s.supports_hash_signing
    with pytest.raises(NotImplementedError):
        s.sign_hash(b"\x00" * 32)


def test_external_signer_without_raw():
    with pytest.raises(ValueError, match="no raw transaction"):
        ExternalSigner(BOB, FakeRpc({"tx": {}})).sign_transaction({"to": ALICE})
