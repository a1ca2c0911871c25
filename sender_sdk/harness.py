"""
Call harness: a per-(sender, target) proxy that turns function calls into
queued operations.

    token = ops.harness(token_address, TOKEN_ABI)
    ok = token.transfer(alice, 100)            # simulated now, broadcast later
    raw = token.call("mint(address,uint256)", alice, 5)

Each call builds Operation(target, selector ‖ args, value, label=signature),
sends it through `sender.execute`, and hands back the *simulated* return
data, decoded when the output types are known and raw bytes otherwise.
The harness holds no state of the target; it is only a lookup table.

ABI functions whose names collide with harness attributes (`call`, `target`,
`sender`, `address`, `functions`, `add_abi`, `last_operation`) are reached by
subscription instead: `token["call"](x)`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from .abi import AbiFunction, canonical_type, normalize_abi, parse_signature
from .errors import AbiError
from .types import Operation, RichOperation

if TYPE_CHECKING:  # pragma: no cover
    from .sender import Sender

__all__ = ["Harness"]


class Harness:
    def __init__(self, sender: "Sender", target: str, abi: Optional[Any] = None, *, address: str) -> None:
        self.sender = sender
        self.target = target
        self.address = address
        self.last_operation: Optional[RichOperation] = None
        self._functions: Dict[str, List[AbiFunction]] = {}
        if abi is not None:
            self.add_abi(abi)

    def add_abi(self, abi: Any) -> None:
        """Merge more functions (JSON ABI fragments or declarations) into the lookup table."""
        for name, fns in normalize_abi(abi).items():
            known = self._functions.setdefault(name, [])
            for fn in fns:
                if fn not in known:
                    known.append(fn)

    @property
    def functions(self) -> Dict[str, List[AbiFunction]]:
        return {k: list(v) for k, v in self._functions.items()}

    def call(self, signature: str, *args: Any, value: int = 0, returns: Optional[Sequence[str]] = None) -> Any:
        """Call by explicit signature, e.g. call("approve(address,uint256)", spender, 1, returns=["bool"])."""
        name, inputs = parse_signature(signature)
        outputs = tuple(canonical_type(t) for t in returns) if returns else ()
        return self._invoke(AbiFunction(name=name, inputs=inputs, outputs=outputs), args, value)

    def _invoke(self, fn: AbiFunction, args: Sequence[Any], value: int) -> Any:
        op = Operation(target=self.target, payload=fn.encode_call(args), value=value, label=fn.signature)
        rich = self.sender.execute(op)
        self.last_operation = rich
        data = rich.simulated_return_data or b""
        return fn.decode_output(data) if fn.outputs else data

    def _resolve(self, name: str, argc: int) -> AbiFunction:
        candidates = [f for f in self._functions[name] if len(f.inputs) == argc]
        if len(candidates) != 1:
            sigs = ", ".join(f.signature for f in self._functions[name])
            raise AbiError(
                f"{len(candidates) or 'no'} overloads of {name} take {argc} arguments (known: {sigs}); use call()",
                function=name,
            )
        return candidates[0]

    def __getitem__(self, name: str) -> Callable[..., Any]:
        if name not in self._functions:
            raise KeyError(name)
        return self._bound(name)

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name.startswith("_") or name not in self.__dict__.get("_functions", {}):
            raise AttributeError(f"{type(self).__name__} for {self.__dict__.get('target')} has no function {name!r}")
        return self._bound(name)

    def _bound(self, name: str) -> Callable[..., Any]:
        def bound(*args: Any, value: int = 0) -> Any:
            return self._invoke(self._resolve(name, len(args)), args, value)

        bound.__name__ = name
        return bound

    def __repr__(self) -> str:
        return f"Harness(sender={self.sender.name!r}, target={self.target}, proxy={self.address})"
