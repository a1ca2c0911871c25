"""
sender_sdk.chain.memory — a deterministic in-process execution environment.

Contracts are Python classes. Callable entry points are declared with
`@external`, which records the canonical signature and output types; calls are
dispatched by 4-byte selector and arguments/results go through the ABI codec,
so payloads built for a real chain work unchanged here.

    class Counter(Contract):
        def setup(self, msg):
            self.count = 0

        @external("increment(uint256)", returns=("uint256",))
        def increment(self, msg, by):
            self.count += by
            return self.count

    chain = MemoryChain(chain_id=31337)
    chain.install("0x…", Counter())
    sim = chain.fork()      # simulation context: isolated copy of all state

Key properties
--------------
- Each `execute` is atomic: a Revert restores the pre-call snapshot.
- Each successful `execute` mines one block (`height += 1`) and is appended to
  `transactions`, so tests can assert the real execution order.
- `fork()` deep-copies balances and contract state; the copy never writes back.
- Value transfers move balances; a call to an address without a contract
  behaves like a call to an externally owned account (empty return data).
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple, Type

from ..abi import AbiFunction, canonical_type, decode, encode, parse_signature
from ..address import ZERO_ADDRESS, to_checksum
from ..errors import AbiError
from ..types import Operation
from .context import Revert

log = logging.getLogger(__name__)

__all__ = ["external", "Msg", "Contract", "MemoryChain"]


def external(signature: str, *, returns: Sequence[str] = (), payable: bool = False) -> Callable:
    """Mark a Contract method as callable through its ABI selector."""
    name, inputs = parse_signature(signature)
    fn_abi = AbiFunction(
        name=name,
        inputs=inputs,
        outputs=tuple(canonical_type(t) for t in returns),
        payable=payable,
    )

    def deco(fn: Callable) -> Callable:
        fn.__abi__ = fn_abi  # type: ignore[attr-defined]
        return fn

    return deco


@dataclass(frozen=True)
class Msg:
    sender: str
    value: int
    chain: "MemoryChain"


class Contract:
    """Base class for in-memory contracts."""

    constructor_types: ClassVar[Tuple[str, ...]] = ()
    _dispatch: ClassVar[Dict[bytes, str]] = {}

    address: str = ZERO_ADDRESS

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        table: Dict[bytes, str] = {}
        for klass in reversed(cls.__mro__):
            for attr, member in vars(klass).items():
                fn_abi = getattr(member, "__abi__", None)
                if isinstance(fn_abi, AbiFunction):
                    table[fn_abi.selector] = attr
        cls._dispatch = table

    def setup(self, msg: Msg, *args: Any) -> None:
        """Constructor hook; receives the decoded `constructor_types` arguments."""

    def receive(self, msg: Msg) -> None:
        """Plain value transfer with empty calldata. Accepts by default."""

    def handle(self, msg: Msg, payload: bytes) -> bytes:
        if not payload:
            self.receive(msg)
            return b""
        name = self._dispatch.get(bytes(payload[:4]))
        if name is None:
            raise Revert(f"unknown selector 0x{bytes(payload[:4]).hex()}")
        method = getattr(self, name)
        fn_abi: AbiFunction = method.__abi__
        if msg.value and not fn_abi.payable:
            raise Revert(f"{fn_abi.name} is not payable")
        try:
            args = decode(fn_abi.inputs, payload[4:])
        except AbiError as e:
            raise Revert(f"bad calldata for {fn_abi.signature}: {e.message}") from e
        result = method(msg, *args)
        if not fn_abi.outputs:
            return b""
        values = result if len(fn_abi.outputs) > 1 else (result,)
        return encode(fn_abi.outputs, values)


class MemoryChain:
    def __init__(self, chain_id: int = 31337, *, balances: Optional[Dict[str, int]] = None) -> None:
        self._chain_id = int(chain_id)
        self.height = 0
        self.balances: Dict[str, int] = {to_checksum(a): int(v) for a, v in (balances or {}).items()}
        self.contracts: Dict[str, Contract] = {}
        self.transactions: List[Tuple[str, Operation]] = []
        self.forked_from: Optional[MemoryChain] = None
        self._artifacts: List[Tuple[bytes, Type[Contract]]] = []

    # --- ExecutionContext ----------------------------------------------------

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def execute(self, account: str, op: Operation, *, signer: Optional[object] = None) -> bytes:
        account = to_checksum(account)
        if signer is not None and to_checksum(getattr(signer, "address")) != account:
            raise Revert(f"signer {getattr(signer, 'address')} does not control {account}")
        snap = self._snapshot()
        try:
            out = self._call(account, op.target, op.payload, op.value)
        except Revert:
            self._restore(snap)
            raise
        self.height += 1
        self.transactions.append((account, op))
        log.debug("memory tx applied", extra={"height": self.height, "label": op.label})
        return out

    def static_call(self, target: str, payload: bytes, *, account: Optional[str] = None) -> bytes:
        scratch = self.fork()
        return scratch._call(to_checksum(account or ZERO_ADDRESS), target, payload, 0)

    # --- state helpers -------------------------------------------------------

    def fund(self, address: str, amount: int) -> None:
        addr = to_checksum(address)
        self.balances[addr] = self.balances.get(addr, 0) + int(amount)

    def balance_of(self, address: str) -> int:
        return self.balances.get(to_checksum(address), 0)

    def install(self, address: str, contract: Contract, *args: Any) -> Contract:
        """Place *contract* at *address* directly (genesis-style), running its setup."""
        addr = to_checksum(address)
        contract.address = addr
        contract.setup(Msg(sender=ZERO_ADDRESS, value=0, chain=self), *args)
        self.contracts[addr] = contract
        return contract

    def contract_at(self, address: str) -> Optional[Contract]:
        return self.contracts.get(to_checksum(address))

    def has_code(self, address: str) -> bool:
        return to_checksum(address) in self.contracts

    def register_artifact(self, bytecode: bytes, cls: Type[Contract]) -> None:
        """Map creation bytecode to a contract class; constructor args follow the bytecode."""
        self._artifacts.append((bytes(bytecode), cls))
        self._artifacts.sort(key=lambda item: len(item[0]), reverse=True)

    def create(self, address: str, init_code: bytes, *, sender: str, value: int = 0) -> Contract:
        """Deploy init code at *address* (called by factory contracts)."""
        addr = to_checksum(address)
        if addr in self.contracts:
            raise Revert(f"contract already deployed at {addr}")
        for bytecode, cls in self._artifacts:
            if bytes(init_code).startswith(bytecode):
                break
        else:
            raise Revert("unknown init code")
        try:
            args = decode(cls.constructor_types, bytes(init_code)[len(bytecode):])
        except AbiError as e:
            raise Revert(f"bad constructor arguments: {e.message}") from e
        if value:
            self._transfer(sender, addr, value)
        contract = cls()
        contract.address = addr
        contract.setup(Msg(sender=to_checksum(sender), value=int(value), chain=self), *args)
        self.contracts[addr] = contract
        return contract

    def call(self, caller: str, target: str, payload: bytes, value: int = 0) -> bytes:
        """Nested call from inside a contract."""
        return self._call(to_checksum(caller), target, payload, value)

    def fork(self) -> "MemoryChain":
        clone = MemoryChain(self._chain_id)
        clone.height = self.height
        clone.balances = dict(self.balances)
        clone.contracts = copy.deepcopy(self.contracts)
        clone._artifacts = list(self._artifacts)
        clone.forked_from = self
        return clone

    # --- internals -----------------------------------------------------------

    def _transfer(self, src: str, dst: str, value: int) -> None:
        src, dst = to_checksum(src), to_checksum(dst)
        have = self.balances.get(src, 0)
        if have < value:
            raise Revert(f"insufficient balance: {src} has {have}, needs {value}")
        self.balances[src] = have - value
        self.balances[dst] = self.balances.get(dst, 0) + value

    def _call(self, caller: str, target: str, payload: bytes, value: int) -> bytes:
        target = to_checksum(target)
        if value:
            self._transfer(caller, target, int(value))
        contract = self.contracts.get(target)
        if contract is None:
            return b""
        return contract.handle(Msg(sender=caller, value=int(value), chain=self), bytes(payload))

    def _snapshot(self) -> Tuple[Dict[str, int], Dict[str, Contract]]:
        return dict(self.balances), copy.deepcopy(self.contracts)

    def _restore(self, snap: Tuple[Dict[str, int], Dict[str, Contract]]) -> None:
        balances, contracts = snap
        self.balances = balances
        # Write state back into the live objects so outside references stay valid
        for addr in list(self.contracts):
            if addr not in contracts:
                del self.contracts[addr]
        for addr, saved in contracts.items():
            live = self.contracts.get(addr)
            if live is None:
                self.contracts[addr] = saved
            else:
                live.__dict__.clear()
                live.__dict__.update(saved.__dict__)
