"""
sender_sdk.errors
-----------------

Typed exceptions for simulation, broadcast and address derivation. They are:
- Richly structured (carry machine-parsable context via `.to_dict()`).
- Stable (integer `code` values that do not change between releases).
- Easy to log (clean __str__ plus a compact `reason`).

Hierarchy:

    SenderSdkError (base)
    ├── SimulationFailure  (alias: OperationFailed)
    ├── ExecutionMismatch
    ├── ValueNotZero
    ├── InvalidStrategy
    ├── AddressPredictionFailure
    ├── ProposerNotSupported
    ├── BroadcastError
    ├── ConfigError
    ├── RegistryError
    └── ServiceError

Transport and codec failures are reported separately by `RpcError`,
`AbiError` and `AddressError`.

Every SenderSdkError is fatal for the current run: nothing in this package
retries or suppresses them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

__all__ = [
    "SenderSdkError",
    "ErrorCode",
    "SimulationFailure",
    "OperationFailed",
    "ExecutionMismatch",
    "ValueNotZero",
    "InvalidStrategy",
    "AddressPredictionFailure",
    "ProposerNotSupported",
    "BroadcastError",
    "ConfigError",
    "RegistryError",
    "ServiceError",
    "RpcError",
    "AbiError",
    "AddressError",
    "JsonRpcCode",
]


class ErrorCode(IntEnum):
    """
    Stable numeric error codes.

    Range 2000–2099 is reserved for orchestration errors.
    """

    SIMULATION_FAILURE = 2001
    EXECUTION_MISMATCH = 2002
    VALUE_NOT_ZERO = 2003
    INVALID_STRATEGY = 2004
    ADDRESS_PREDICTION = 2005
    PROPOSER_NOT_SUPPORTED = 2006
    BROADCAST = 2007
    CONFIG = 2008
    REGISTRY = 2009
    SERVICE = 2010


def _short(b: Optional[bytes]) -> Optional[str]:
    if b is None:
        return None
    h = "0x" + bytes(b).hex()
    return h if len(h) <= 66 else h[:63] + "..."


@dataclass(eq=False)
class SenderSdkError(Exception):
    """
    Base class for orchestration errors.

    Attributes
    ----------
    code : int
        Stable integer code (see ErrorCode).
    reason : str
        Short, machine-friendly reason (snake_case).
    message : str
        Human-readable message.
    context : Dict[str, Any]
        Structured details safe for logs.
    """

    code: int
    reason: str
    message: str
    context: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        ctx = ""
        if self.context:
            parts = []
            for k, v in self.context.items():
                if v is None:
                    continue
                s = str(v)
                if len(s) > 72:
                    s = s[:69] + "..."
                parts.append(f"{k}={s}")
            if parts:
                ctx = " [" + ", ".join(parts) + "]"
        return f"{self.reason}: {self.message}{ctx}"

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable error object."""
        return {
            "code": int(self.code),
            "reason": self.reason,
            "message": self.message,
            "context": dict(self.context) if self.context else {},
        }


class SimulationFailure(SenderSdkError):
    """An operation reverted in the simulation context. Aborts the run before any broadcast."""

    def __init__(
        self,
        label: str,
        *,
        sender: Optional[str] = None,
        target: Optional[str] = None,
        revert_reason: Optional[str] = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.SIMULATION_FAILURE,
            reason="operation_failed",
            message=f"operation {label!r} reverted during simulation",
            context={"sender": sender, "target": target, "revert": revert_reason},
        )
        self.label = label
        self.revert_reason = revert_reason


OperationFailed = SimulationFailure


class ExecutionMismatch(SenderSdkError):
    """Real execution returned data different from the simulated prediction."""

    def __init__(
        self,
        label: str,
        *,
        expected: Optional[bytes],
        got: Optional[bytes],
        sender: Optional[str] = None,
    ) -> None:
        super().__init__(
            code=ErrorCode.EXECUTION_MISMATCH,
            reason="execution_mismatch",
            message=f"operation {label!r} returned different data on broadcast",
            context={"sender": sender, "expected": _short(expected), "got": _short(got)},
        )
        self.label = label
        self.expected = expected
        self.got = got


class ValueNotZero(SenderSdkError):
    """A value-bearing operation reached a batch proposer."""

    def __init__(self, label: str, *, value: int, sender: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.VALUE_NOT_ZERO,
            reason="value_not_zero",
            message=f"operation {label!r} carries value {value}; batches cannot transfer value",
            context={"sender": sender, "value": int(value)},
        )
        self.label = label
        self.value = int(value)


class InvalidStrategy(SenderSdkError):
    def __init__(self, strategy: Any) -> None:
        super().__init__(
            code=ErrorCode.INVALID_STRATEGY,
            reason="invalid_strategy",
            message=f"unknown address derivation strategy {strategy!r}",
        )
        self.strategy = strategy


class AddressPredictionFailure(SenderSdkError):
    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            code=ErrorCode.ADDRESS_PREDICTION,
            reason="address_prediction_failed",
            message=message,
            context=context or {},
        )


class ProposerNotSupported(SenderSdkError):
    """The designated proposer cannot produce a signature the coordination service accepts."""

    def __init__(self, proposer: str, *, detail: str) -> None:
        super().__init__(
            code=ErrorCode.PROPOSER_NOT_SUPPORTED,
            reason="proposer_not_supported",
            message=f"sender {proposer!r} cannot act as batch proposer: {detail}",
            context={"proposer": proposer},
        )
        self.proposer = proposer


class BroadcastError(SenderSdkError):
    """Protocol misuse: the run is closed, aborted, or already broadcast."""

    def __init__(self, message: str, *, state: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.BROADCAST,
            reason="broadcast_error",
            message=message,
            context={"state": state},
        )


class ConfigError(SenderSdkError):
    def __init__(self, message: str, *, key: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.CONFIG,
            reason="invalid_config",
            message=message,
            context={"key": key},
        )


class RegistryError(SenderSdkError):
    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            code=ErrorCode.REGISTRY,
            reason="registry_error",
            message=message,
            context=context or {},
        )


class ServiceError(SenderSdkError):
    """The multisig coordination service rejected or failed a proposal."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.SERVICE,
            reason="service_error",
            message=message,
            context={"status": status, "body": body},
        )
        self.status = status


# --- Transport / codec errors -------------------------------------------------


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 standard codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (implementation-defined range: -32099 to -32000)
    SERVER_ERROR = -32000
    EXECUTION_REVERTED = 3

    # Client-side transport failure
    TRANSPORT = -32098


@dataclass(eq=False)
class RpcError(Exception):
    """Raised when a JSON-RPC call returns an error object or the transport fails."""

    code: int
    message: str
    data: Optional[Any] = None
    method: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


@dataclass(eq=False)
class AbiError(Exception):
    """
    Raised when ABI encoding/decoding or validation fails.

    Typical causes: wrong arg types/lengths, out-of-range integers, truncated data.
    """

    message: str
    function: Optional[str] = None
    parameter: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = []
        if self.function:
            where.append(f"fn={self.function}")
        if self.parameter:
            where.append(f"param={self.parameter}")
        where_s = (" [" + ", ".join(where) + "]") if where else ""
        return f"AbiError{where_s}: {self.message}"


class AddressError(ValueError):
    """Raised for malformed or invalid addresses."""
