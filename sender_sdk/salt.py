"""
sender_sdk.salt
===============

Deterministic deployment addresses, computed off-chain exactly the way the
deployment factory computes them on-chain.

Salt layout (32 bytes)
----------------------

    salt = sender (20) ‖ flag (1) ‖ entropy[-11:] (11)

- `sender` permissions the salt: only that account may deploy with it.
- `flag` 0x00 binds the salt to the sender only; 0x01 additionally binds it
  to the chain id (cross-chain redeploy protection).

Guard
-----
The factory never uses the raw salt. It first applies a guard:

    (a) salt[:20] == sender and flag == 0x00 -> keccak256(abi.encode(sender, salt))
    (b) salt[:20] == sender and flag == 0x01 -> keccak256(abi.encode(sender, chainid, salt))
    (c) otherwise                            -> keccak256(abi.encode(salt))

Strategies
----------
- CREATE2 (one-step): keccak256(0xff ‖ deployer ‖ salt ‖ init_code_hash)[12:]
- CREATE3 (two-step): a fixed proxy is CREATE2-deployed with the salt, then the
  proxy CREATEs the contract at nonce 1:
      proxy = create2(deployer, salt, keccak256(PROXY_CHILD_BYTECODE))
      addr  = keccak256(0xd6 ‖ 0x94 ‖ proxy ‖ 0x01)[12:]
  The result does not depend on the init code.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from .address import AddressLike, to_bytes as address_bytes, to_checksum
from .errors import AddressError, AddressPredictionFailure, InvalidStrategy
from .utils import rlp
from .utils.bytes import pad32
from .utils.hash import keccak256

__all__ = [
    "SALT_SEPARATOR",
    "FLAG_DEFAULT",
    "FLAG_CROSS_CHAIN",
    "FACTORY_ADDRESS",
    "PROXY_CHILD_BYTECODE",
    "PROXY_CHILD_CODEHASH",
    "Strategy",
    "FactoryClient",
    "build_entropy",
    "base_salt",
    "derive_salt",
    "parse_salt",
    "guarded_salt",
    "create2_address",
    "create3_address",
    "predict_address",
]

SALT_SEPARATOR = "/"

FLAG_DEFAULT = 0x00
FLAG_CROSS_CHAIN = 0x01

# Canonical deployment of the factory (same address on every supported chain).
FACTORY_ADDRESS = to_checksum("0xba5ed099633d3b313e4d5f7bdc1305d3c28ba5ed")

# Minimal proxy used by CREATE3: deploys whatever init code it is called with.
PROXY_CHILD_BYTECODE = bytes.fromhex("67363d3d37363d34f03d5260086018f3")
PROXY_CHILD_CODEHASH = keccak256(PROXY_CHILD_BYTECODE)

_ENTROPY_BYTES = 11


class Strategy(str, Enum):
    CREATE2 = "create2"
    CREATE3 = "create3"

    @classmethod
    def parse(cls, value: Union["Strategy", str]) -> "Strategy":
        if isinstance(value, Strategy):
            return value
        aliases = {
            "create2": cls.CREATE2,
            "one-step": cls.CREATE2,
            "create3": cls.CREATE3,
            "two-step": cls.CREATE3,
        }
        key = str(value).strip().lower() if isinstance(value, str) else None
        if key not in aliases:
            raise InvalidStrategy(value)
        return aliases[key]

    @property
    def uses_init_code(self) -> bool:
        return self is Strategy.CREATE2


@runtime_checkable
class FactoryClient(Protocol):
    """Pure address-computation endpoints of the deployment factory."""

    def compute_create2_address(self, salt: bytes, init_code_hash: bytes) -> str: ...

    def compute_create3_address(self, salt: bytes) -> str: ...


def _salt_bytes(salt: bytes) -> bytes:
    raw = bytes(salt)
    if len(raw) != 32:
        raise AddressPredictionFailure(f"salt must be 32 bytes, got {len(raw)}")
    return raw


def build_entropy(components: Sequence[str]) -> bytes:
    """Join the non-empty components with SALT_SEPARATOR and hash the UTF-8 bytes."""
    joined = SALT_SEPARATOR.join(str(c) for c in components if c)
    return keccak256(joined.encode("utf-8"))


def base_salt(sender: AddressLike, entropy: bytes, *, cross_chain: bool = False) -> bytes:
    """sender (20) ‖ flag (1) ‖ low 11 bytes of entropy."""
    ent = bytes(entropy)
    if len(ent) < _ENTROPY_BYTES:
        raise AddressPredictionFailure("entropy must be at least 11 bytes")
    flag = FLAG_CROSS_CHAIN if cross_chain else FLAG_DEFAULT
    return address_bytes(sender) + bytes([flag]) + ent[-_ENTROPY_BYTES:]


def derive_salt(sender: AddressLike, components: Sequence[str], *, cross_chain: bool = False) -> bytes:
    return base_salt(sender, build_entropy(components), cross_chain=cross_chain)


def parse_salt(salt: bytes) -> Tuple[bytes, int]:
    """Return (leading 20 sender bytes, flag byte)."""
    raw = _salt_bytes(salt)
    return raw[:20], raw[20]


def guarded_salt(salt: bytes, sender: AddressLike, chain_id: int) -> bytes:
    """Apply the factory's front-running guard to *salt* for *sender* on *chain_id*."""
    raw = _salt_bytes(salt)
    who = address_bytes(sender)
    salt_sender, flag = parse_salt(raw)
    if salt_sender == who and flag == FLAG_DEFAULT:
        return keccak256(pad32(who) + raw)
    if salt_sender == who and flag == FLAG_CROSS_CHAIN:
        return keccak256(pad32(who) + int(chain_id).to_bytes(32, "big") + raw)
    return keccak256(raw)


def create2_address(deployer: AddressLike, salt: bytes, init_code_hash: bytes) -> str:
    ich = bytes(init_code_hash)
    if len(ich) != 32:
        raise AddressPredictionFailure("init code hash must be 32 bytes")
    digest = keccak256(b"\xff" + address_bytes(deployer) + _salt_bytes(salt) + ich)
    return to_checksum(digest[12:])


def create3_address(deployer: AddressLike, salt: bytes) -> str:
    proxy = address_bytes(create2_address(deployer, salt, PROXY_CHILD_CODEHASH))
    # address of the proxy's first CREATE (nonce 1)
    digest = keccak256(rlp.encode([proxy, 1]))
    return to_checksum(digest[12:])


def predict_address(
    guarded: bytes,
    init_code_hash: Optional[bytes],
    strategy: Union[Strategy, str],
    *,
    deployer: AddressLike = FACTORY_ADDRESS,
    factory: Optional[FactoryClient] = None,
) -> str:
    """
    Predict where the factory places a contract for a guarded salt.

    When a `factory` client is given its pure computation endpoints are
    authoritative; otherwise the standard formula for the strategy is used.
    """
    strat = Strategy.parse(strategy)
    salt = _salt_bytes(guarded)
    if strat is Strategy.CREATE2 and init_code_hash is None:
        raise AddressPredictionFailure("one-step strategy requires the init code hash")

    if factory is None:
        if strat is Strategy.CREATE2:
            return create2_address(deployer, salt, init_code_hash)  # type: ignore[arg-type]
        return create3_address(deployer, salt)

    try:
        if strat is Strategy.CREATE2:
            out = factory.compute_create2_address(salt, bytes(init_code_hash))  # type: ignore[arg-type]
        else:
            out = factory.compute_create3_address(salt)
        return to_checksum(out)
    except AddressError as e:
        raise AddressPredictionFailure(
            f"factory returned a malformed address: {e}", context={"strategy": strat.value}
        ) from e
