"""
sender_sdk.wallet.signer
========================

Signing backends for Senders.

Every backend controls exactly one account and exposes the same small
surface, so the coordinator never needs to know which kind it holds:

- `address`                 the controlled account (checksummed)
- `node_managed`            True when the node holds the key and signs on
                            `eth_sendTransaction` (nothing is signed locally)
- `supports_hash_signing`   True when the backend can sign a raw 32-byte
                            digest (required to act as a batch proposer)
- `sign_transaction(tx)`    -> raw signed transaction bytes
- `sign_hash(digest)`       -> 65-byte r ‖ s ‖ v signature

Backends
--------
- UnlockedSigner: account unlocked on the node (dev nodes, impersonation).
- LocalKeySigner: private key held in memory; secp256k1 signatures via
  `py_ecc`, transactions RLP-encoded as EIP-155 legacy transactions.
- ExternalSigner: hardware wallet behind an external signer that speaks
  JSON-RPC (`account_signTransaction`). Hardware devices refuse blind
  digest signing, so it cannot propose batches.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from py_ecc.secp256k1 import secp256k1

from ..address import AddressLike, to_bytes as address_bytes, to_checksum
from ..rpc.http import RpcClient
from ..utils import rlp
from ..utils.bytes import ensure_bytes, from_hex, to_hex, to_quantity
from ..utils.hash import keccak256

__all__ = [
    "Signer",
    "UnlockedSigner",
    "LocalKeySigner",
    "ExternalSigner",
    "recover_hash",
]


@runtime_checkable
class Signer(Protocol):
    @property
    def address(self) -> str: ...

    @property
    def node_managed(self) -> bool: ...

    @property
    def supports_hash_signing(self) -> bool: ...

    def sign_transaction(self, tx: Mapping[str, Any]) -> bytes: ...

    def sign_hash(self, digest: bytes) -> bytes: ...


def _check_digest(digest: bytes) -> bytes:
    raw = bytes(digest)
    if len(raw) != 32:
        raise ValueError(f"digest must be 32 bytes, got {len(raw)}")
    return raw


_SECP256K1_N = secp256k1.N


def _pubkey_address(pub: Tuple[int, int]) -> str:
    x, y = pub
    return to_checksum(keccak256(x.to_bytes(32, "big") + y.to_bytes(32, "big"))[12:])


def _legacy_fields(tx: Mapping[str, Any]) -> List[Any]:
    to = tx.get("to")
    return [
        int(tx.get("nonce", 0)),
        int(tx.get("gasPrice", 0)),
        int(tx.get("gas", 0)),
        address_bytes(to) if to else b"",
        int(tx.get("value", 0)),
        ensure_bytes(tx.get("data") or b""),
    ]


def recover_hash(digest: bytes, signature: bytes) -> str:
    """Address that produced the 65-byte r ‖ s ‖ v *signature* over *digest*."""
    sig = bytes(signature)
    if len(sig) != 65:
        raise ValueError(f"signature must be 65 bytes, got {len(sig)}")
    v = sig[64] + 27 if sig[64] < 27 else sig[64]
    r, s = int.from_bytes(sig[:32], "big"), int.from_bytes(sig[32:64], "big")
    pub = secp256k1.ecdsa_raw_recover(_check_digest(digest), (v, r, s))
    if not pub:
        raise ValueError("signature does not recover to a public key")
    return _pubkey_address(pub)


class UnlockedSigner:
    """The node signs on our behalf; nothing is signed locally."""

    node_managed = True
    supports_hash_signing = False

    def __init__(self, address: AddressLike) -> None:
        self._address = to_checksum(address)

    @property
    def address(self) -> str:
        return self._address

    def sign_transaction(self, tx: Mapping[str, Any]) -> bytes:
        raise NotImplementedError("unlocked accounts are signed by the node (eth_sendTransaction)")

    def sign_hash(self, digest: bytes) -> bytes:
        raise NotImplementedError("unlocked accounts cannot sign raw digests")

    def __repr__(self) -> str:
        return f"UnlockedSigner({self._address})"


class LocalKeySigner:
    """
    In-memory secp256k1 key.

    Transactions are signed as EIP-155 legacy transactions; digests are
    signed raw (no message prefix) with v in {27, 28}.
    """

    node_managed = False
    supports_hash_signing = True

    def __init__(self, private_key: str | bytes) -> None:
        key = from_hex(private_key) if isinstance(private_key, str) else bytes(private_key)
        if len(key) != 32:
            raise ValueError("private key must be 32 bytes")
        if not 0 < int.from_bytes(key, "big") < _SECP256K1_N:
            raise ValueError("private key is outside the secp256k1 group order")
        self._key = key
        self._address = _pubkey_address(secp256k1.privtopub(key))

    @property
    def address(self) -> str:
        return self._address

    def sign_transaction(self, tx: Mapping[str, Any]) -> bytes:
        chain_id = int(tx["chainId"])
        fields = _legacy_fields(tx)
        v, r, s = secp256k1.ecdsa_raw_sign(keccak256(rlp.encode(fields + [chain_id, 0, 0])), self._key)
        return rlp.encode(fields + [v - 27 + 35 + 2 * chain_id, r, s])

    def sign_hash(self, digest: bytes) -> bytes:
        v, r, s = secp256k1.ecdsa_raw_sign(_check_digest(digest), self._key)
        return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([v])

    def __repr__(self) -> str:
        # never render the key
        return f"LocalKeySigner({self.address})"


class ExternalSigner:
    """Hardware-backed account reached through an external signer's JSON-RPC API."""

    node_managed = False
    supports_hash_signing = False

    def __init__(self, address: AddressLike, rpc: RpcClient) -> None:
        self._address = to_checksum(address)
        self._rpc = rpc

    @classmethod
    def connect(cls, address: AddressLike, url: str, *, timeout: float = 120.0) -> "ExternalSigner":
        # Confirming on a device takes a while
        return cls(address, RpcClient(url, timeout=timeout, max_retries=0))

    @property
    def address(self) -> str:
        return self._address

    def sign_transaction(self, tx: Mapping[str, Any]) -> bytes:
        args: Dict[str, Any] = {"from": self._address}
        for key in ("to", "nonce", "gas", "gasPrice", "value", "chainId", "data"):
            if key not in tx or tx[key] is None:
                continue
            v = tx[key]
            if key == "to":
                args[key] = to_checksum(v)
            elif key == "data":
                args["input"] = to_hex(ensure_bytes(v))
            else:
                args[key] = to_quantity(int(v))
        result = self._rpc.request("account_signTransaction", [args])
        raw: Optional[str] = result.get("raw") if isinstance(result, dict) else result  # type: ignore[assignment]
        if not isinstance(raw, str):
            raise ValueError(f"external signer returned no raw transaction: {result!r}")
        return from_hex(raw)

    def sign_hash(self, digest: bytes) -> bytes:
        raise NotImplementedError("hardware signers do not sign raw digests")

    def __repr__(self) -> str:
        return f"ExternalSigner({self._address})"
