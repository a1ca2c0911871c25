"""
The deterministic-deployment factory, as seen from the orchestration layer.

- MemoryFactory: an in-memory contract with the factory's entry points. It
  applies `guarded_salt` to the caller's salt before deriving addresses,
  exactly like the deployed factory, so predictions made with
  `sender_sdk.salt` can be checked end to end without a node.
- ContextFactoryClient: the `FactoryClient` used by `predict_address`; it
  calls the factory's pure computation endpoints through any
  ExecutionContext (eth_call on a node, `static_call` in memory).
"""

from __future__ import annotations

from ..abi import decode, encode_call
from ..address import AddressLike, to_checksum
from ..errors import AbiError, AddressPredictionFailure, RpcError
from ..salt import FACTORY_ADDRESS, create2_address, create3_address, guarded_salt
from ..utils.hash import keccak256
from .context import ExecutionContext, Revert
from .memory import Contract, Msg, external

__all__ = ["MemoryFactory", "ContextFactoryClient", "install_factory"]


class MemoryFactory(Contract):
    @external("deployCreate2(bytes32,bytes)", returns=("address",), payable=True)
    def deploy_create2(self, msg: Msg, salt: bytes, init_code: bytes) -> str:
        guarded = guarded_salt(salt, msg.sender, msg.chain.chain_id)
        addr = create2_address(self.address, guarded, keccak256(init_code))
        msg.chain.create(addr, init_code, sender=self.address, value=msg.value)
        return addr

    @external("deployCreate3(bytes32,bytes)", returns=("address",), payable=True)
    def deploy_create3(self, msg: Msg, salt: bytes, init_code: bytes) -> str:
        guarded = guarded_salt(salt, msg.sender, msg.chain.chain_id)
        addr = create3_address(self.address, guarded)
        msg.chain.create(addr, init_code, sender=self.address, value=msg.value)
        return addr

    @external("computeCreate2Address(bytes32,bytes32)", returns=("address",))
    def compute_create2(self, msg: Msg, salt: bytes, init_code_hash: bytes) -> str:
        return create2_address(self.address, salt, init_code_hash)

    @external("computeCreate3Address(bytes32)", returns=("address",))
    def compute_create3(self, msg: Msg, salt: bytes) -> str:
        return create3_address(self.address, salt)


def install_factory(chain, address: AddressLike = FACTORY_ADDRESS) -> MemoryFactory:
    """Place a MemoryFactory at its canonical address on a MemoryChain."""
    factory = MemoryFactory()
    chain.install(to_checksum(address), factory)
    return factory


class ContextFactoryClient:
    """Pure address computation through the factory deployed on *context*."""

    def __init__(self, context: ExecutionContext, address: AddressLike = FACTORY_ADDRESS) -> None:
        self.context = context
        self.address = to_checksum(address)

    def compute_create2_address(self, salt: bytes, init_code_hash: bytes) -> str:
        return self._call("computeCreate2Address(bytes32,bytes32)", (bytes(salt), bytes(init_code_hash)))

    def compute_create3_address(self, salt: bytes) -> str:
        return self._call("computeCreate3Address(bytes32)", (bytes(salt),))

    def _call(self, signature: str, args: tuple) -> str:
        try:
            out = self.context.static_call(self.address, encode_call(signature, args))
            (addr,) = decode(["address"], out)
        except (Revert, RpcError, AbiError) as e:
            raise AddressPredictionFailure(
                f"factory call {signature} failed: {e}",
                context={"factory": self.address},
            ) from e
        return addr

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"ContextFactoryClient(address={self.address!r})"

