from __future__ import annotations

"""
Solidity ABI codec (head/tail layout), signatures and selectors.

This module covers what the orchestration layer needs to talk to contracts:
- Canonical type strings ("uint" -> "uint256", tuples, nested arrays)
- `encode(types, values)` / `decode(types, data)` for the standard ABI layout
- Function signatures: parsing, canonicalisation, 4-byte selectors
- `encode_call(signature, args)` -> selector ‖ encoded args
- Normalisation of JSON ABI fragments into `AbiFunction` records

Supported types: uint<M>, int<M>, address, bool, bytes<M>, bytes, string,
T[], T[k] and tuples "(T1,T2,...)". Fixed-point types are not supported.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .address import from_word, to_bytes as _address_bytes
from .errors import AbiError, AddressError
from .utils.hash import keccak256

__all__ = [
    "canonical_type",
    "is_dynamic",
    "encode",
    "decode",
    "parse_signature",
    "canonical_signature",
    "function_selector",
    "encode_call",
    "AbiFunction",
    "normalize_abi",
    "parse_human_signature",
]

WORD = 32

_INT_RE = re.compile(r"^(u?int)(\d*)$")
_BYTES_RE = re.compile(r"^bytes(\d+)$")
_SIG_RE = re.compile(r"^\s*([A-Za-z_$][A-Za-z0-9_$]*)\s*\((.*)\)\s*$")
_HUMAN_RE = re.compile(
    r"^\s*(?:function\s+)?([A-Za-z_$][A-Za-z0-9_$]*)\s*\((.*?)\)"
    r"(?:[^()]*?returns\s*\((.*)\))?[^()]*$"
)


# --- Type-string parsing -----------------------------------------------------


def _split_top_level_commas(s: str) -> List[str]:
    """Split on commas but ignore commas inside nested tuples."""
    out: List[str] = []
    depth = 0
    buf: List[str] = []
    for ch in s:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise AbiError("unbalanced parentheses in type list")
        if ch == "," and depth == 0:
            out.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
    if depth != 0:
        raise AbiError("unbalanced parentheses in type list")
    tail = "".join(buf).strip()
    if tail or out:
        out.append(tail)
    return out


def _array_split(t: str) -> Optional[Tuple[str, Optional[int]]]:
    """For "T[k]" / "T[]" return (T, k|None); the outermost dimension is the last suffix."""
    if not t.endswith("]"):
        return None
    i = t.rfind("[")
    if i <= 0:
        raise AbiError(f"malformed array type {t!r}")
    size_s = t[i + 1 : -1]
    if size_s == "":
        return t[:i], None
    if not size_s.isdigit() or int(size_s) <= 0:
        raise AbiError(f"bad fixed array dimension in {t!r}")
    return t[:i], int(size_s)


def _tuple_components(t: str) -> Optional[List[str]]:
    if t.startswith("(") and t.endswith(")"):
        inner = t[1:-1]
        return [] if inner.strip() == "" else _split_top_level_commas(inner)
    return None


def canonical_type(type_str: str) -> str:
    """Normalize an ABI type string: strip spaces, expand int/uint aliases, validate."""
    s = re.sub(r"\s+", "", type_str)
    arr = _array_split(s)
    if arr is not None:
        inner, size = arr
        return f"{canonical_type(inner)}[{'' if size is None else size}]"
    comps = _tuple_components(s)
    if comps is not None:
        return "(" + ",".join(canonical_type(c) for c in comps) + ")"
    if s in ("address", "bool", "bytes", "string"):
        return s
    m = _INT_RE.match(s)
    if m:
        bits = int(m.group(2) or 256)
        if bits % 8 != 0 or not 8 <= bits <= 256:
            raise AbiError(f"invalid integer width in {type_str!r}")
        return f"{m.group(1)}{bits}"
    m = _BYTES_RE.match(s)
    if m:
        n = int(m.group(1))
        if not 1 <= n <= 32:
            raise AbiError(f"invalid fixed bytes width in {type_str!r}")
        return s
    raise AbiError(f"unsupported ABI type {type_str!r}")


def is_dynamic(t: str) -> bool:
    if t in ("bytes", "string"):
        return True
    arr = _array_split(t)
    if arr is not None:
        inner, size = arr
        return size is None or is_dynamic(inner)
    comps = _tuple_components(t)
    if comps is not None:
        return any(is_dynamic(c) for c in comps)
    return False


def _static_size(t: str) -> int:
    arr = _array_split(t)
    if arr is not None:
        inner, size = arr
        assert size is not None
        return size * _static_size(inner)
    comps = _tuple_components(t)
    if comps is not None:
        return sum(_static_size(c) for c in comps)
    return WORD


def _head_size(t: str) -> int:
    return WORD if is_dynamic(t) else _static_size(t)


# --- Encoding ----------------------------------------------------------------


def _uint_word(n: int) -> bytes:
    return int(n).to_bytes(WORD, "big")


def _encode_int(t: str, v: Any) -> bytes:
    if isinstance(v, bool) or not isinstance(v, int):
        raise AbiError(f"expected int for {t}, got {type(v).__name__}")
    signed = t.startswith("int")
    bits = int(t[3:] if signed else t[4:])
    if signed:
        lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        lo, hi = 0, (1 << bits) - 1
    if not lo <= v <= hi:
        raise AbiError(f"value {v} out of range for {t}")
    return int(v).to_bytes(WORD, "big", signed=signed) if signed else _uint_word(v)


def _as_bytes(t: str, v: Any) -> bytes:
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v)
    if isinstance(v, str) and v.startswith(("0x", "0X")):
        try:
            return bytes.fromhex(v[2:])
        except ValueError as e:
            raise AbiError(f"invalid hex for {t}: {e}") from e
    raise AbiError(f"expected bytes for {t}, got {type(v).__name__}")


def _encode_bytes_dynamic(raw: bytes) -> bytes:
    pad = (-len(raw)) % WORD
    return _uint_word(len(raw)) + raw + b"\x00" * pad


def _encode_seq(types: Sequence[str], values: Sequence[Any]) -> bytes:
    if len(types) != len(values):
        raise AbiError(f"expected {len(types)} values, got {len(values)}")
    head_len = sum(_head_size(t) for t in types)
    heads: List[bytes] = []
    tails: List[bytes] = []
    tail_len = 0
    for t, v in zip(types, values):
        if is_dynamic(t):
            heads.append(_uint_word(head_len + tail_len))
            enc = _encode_one(t, v)
            tails.append(enc)
            tail_len += len(enc)
        else:
            heads.append(_encode_one(t, v))
    return b"".join(heads) + b"".join(tails)


def _encode_one(t: str, v: Any) -> bytes:
    arr = _array_split(t)
    if arr is not None:
        inner, size = arr
        if isinstance(v, (str, bytes, bytearray)) or not isinstance(v, Iterable):
            raise AbiError(f"expected a sequence for {t}")
        items = list(v)
        if size is None:
            return _uint_word(len(items)) + _encode_seq([inner] * len(items), items)
        if len(items) != size:
            raise AbiError(f"{t} expects {size} items, got {len(items)}")
        return _encode_seq([inner] * size, items)
    comps = _tuple_components(t)
    if comps is not None:
        if isinstance(v, Mapping) or not isinstance(v, (list, tuple)):
            raise AbiError(f"expected a tuple/list for {t}")
        return _encode_seq(comps, list(v))
    if t == "address":
        try:
            return b"\x00" * 12 + _address_bytes(v)
        except AddressError as e:
            raise AbiError(str(e)) from e
    if t == "bool":
        if not isinstance(v, bool):
            raise AbiError(f"expected bool, got {type(v).__name__}")
        return _uint_word(1 if v else 0)
    if t == "bytes":
        return _encode_bytes_dynamic(_as_bytes(t, v))
    if t == "string":
        if not isinstance(v, str):
            raise AbiError(f"expected str, got {type(v).__name__}")
        return _encode_bytes_dynamic(v.encode("utf-8"))
    if t.startswith(("uint", "int")):
        return _encode_int(t, v)
    if t.startswith("bytes"):
        n = int(t[5:])
        raw = _as_bytes(t, v)
        if len(raw) > n:
            raise AbiError(f"{t} value is {len(raw)} bytes")
        return raw + b"\x00" * (WORD - len(raw))
    raise AbiError(f"unsupported ABI type {t!r}")  # pragma: no cover - canonical_type guards


def encode(types: Sequence[str], values: Sequence[Any]) -> bytes:
    """ABI-encode *values* as the tuple of *types* (abi.encode semantics)."""
    canon = [canonical_type(t) for t in types]
    return _encode_seq(canon, list(values))


# --- Decoding ----------------------------------------------------------------


def _read_word(data: bytes, pos: int) -> bytes:
    if pos < 0 or pos + WORD > len(data):
        raise AbiError(f"data too short: need word at {pos}, have {len(data)} bytes")
    return data[pos : pos + WORD]


def _read_uint(data: bytes, pos: int) -> int:
    return int.from_bytes(_read_word(data, pos), "big")


def _decode_seq(types: Sequence[str], data: bytes, base: int) -> List[Any]:
    out: List[Any] = []
    pos = base
    for t in types:
        if is_dynamic(t):
            rel = _read_uint(data, pos)
            out.append(_decode_one(t, data, base + rel))
            pos += WORD
        else:
            out.append(_decode_one(t, data, pos))
            pos += _static_size(t)
    return out


def _decode_one(t: str, data: bytes, pos: int) -> Any:
    arr = _array_split(t)
    if arr is not None:
        inner, size = arr
        if size is None:
            n = _read_uint(data, pos)
            if n > len(data):
                raise AbiError(f"array length {n} exceeds data size")
            return _decode_seq([inner] * n, data, pos + WORD)
        return _decode_seq([inner] * size, data, pos)
    comps = _tuple_components(t)
    if comps is not None:
        return tuple(_decode_seq(comps, data, pos))
    if t in ("bytes", "string"):
        n = _read_uint(data, pos)
        start = pos + WORD
        if start + n > len(data):
            raise AbiError(f"{t} length {n} exceeds data size")
        raw = data[start : start + n]
        if t == "bytes":
            return raw
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise AbiError(f"invalid utf-8 in string: {e}") from e
    word = _read_word(data, pos)
    if t == "address":
        try:
            return from_word(word)
        except AddressError as e:
            raise AbiError(str(e)) from e
    if t == "bool":
        v = int.from_bytes(word, "big")
        if v not in (0, 1):
            raise AbiError(f"invalid bool word {v}")
        return bool(v)
    if t.startswith("uint"):
        return int.from_bytes(word, "big")
    if t.startswith("int"):
        return int.from_bytes(word, "big", signed=True)
    if t.startswith("bytes"):
        return word[: int(t[5:])]
    raise AbiError(f"unsupported ABI type {t!r}")  # pragma: no cover


def decode(types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    """Decode ABI *data* laid out as the tuple of *types*."""
    canon = [canonical_type(t) for t in types]
    return tuple(_decode_seq(canon, bytes(data), 0))


# --- Signatures & selectors ---------------------------------------------------


def parse_signature(signature: str) -> Tuple[str, Tuple[str, ...]]:
    """"transfer(address, uint)" -> ("transfer", ("address", "uint256"))."""
    m = _SIG_RE.match(signature)
    if not m:
        raise AbiError(f"malformed function signature {signature!r}")
    name, args = m.group(1), m.group(2)
    types = tuple(canonical_type(a) for a in _split_top_level_commas(args)) if args.strip() else ()
    return name, types


def canonical_signature(signature: str) -> str:
    name, types = parse_signature(signature)
    return f"{name}({','.join(types)})"


def function_selector(signature: str) -> bytes:
    """First four bytes of keccak256(canonical signature)."""
    return keccak256(canonical_signature(signature).encode("ascii"))[:4]


def encode_call(signature: str, args: Sequence[Any] = ()) -> bytes:
    """selector ‖ abi.encode(args)."""
    _, types = parse_signature(signature)
    try:
        return function_selector(signature) + _encode_seq(list(types), list(args))
    except AbiError as e:
        raise AbiError(e.message, function=canonical_signature(signature)) from e


# --- JSON ABI fragments -------------------------------------------------------


@dataclass(frozen=True)
class AbiFunction:
    """A callable contract function: name, canonical input and output types."""

    name: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...] = ()
    payable: bool = False

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return function_selector(self.signature)

    def encode_call(self, args: Sequence[Any]) -> bytes:
        return encode_call(self.signature, args)

    def decode_output(self, data: bytes) -> Any:
        """Single output -> value, several -> tuple, none -> None."""
        if not self.outputs:
            return None
        values = decode(self.outputs, data)
        return values[0] if len(values) == 1 else values


def _param_type(p: Mapping[str, Any]) -> str:
    t = str(p.get("type", ""))
    if t.startswith("tuple"):
        comps = p.get("components") or []
        return canonical_type("(" + ",".join(_param_type(c) for c in comps) + ")" + t[len("tuple") :])
    return canonical_type(t)


def parse_human_signature(text: str) -> AbiFunction:
    """
    Parse "function balanceOf(address) view returns (uint256)" or
    "transfer(address,uint256) returns (bool)". Parameter names are ignored.
    """
    m = _HUMAN_RE.match(text)
    if not m:
        raise AbiError(f"cannot parse function declaration {text!r}")

    def _types(s: Optional[str]) -> Tuple[str, ...]:
        if not s or not s.strip():
            return ()
        return tuple(canonical_type(part.strip().split(" ")[0]) for part in _split_top_level_commas(s))

    return AbiFunction(
        name=m.group(1),
        inputs=_types(m.group(2)),
        outputs=_types(m.group(3)),
        payable=" payable" in f" {text} ",
    )


def normalize_abi(abi: Union[Sequence[Any], Mapping[str, Any]]) -> Dict[str, List[AbiFunction]]:
    """
    Accept a JSON ABI (list of fragments, or {"abi": [...]}) and/or human
    readable declarations; return functions grouped by name (overloads kept).
    """
    if isinstance(abi, Mapping):
        abi = abi.get("abi", [])
    grouped: Dict[str, List[AbiFunction]] = {}
    for frag in abi:
        if isinstance(frag, str):
            fn = parse_human_signature(frag)
        elif isinstance(frag, Mapping):
            if frag.get("type", "function") != "function":
                continue
            fn = AbiFunction(
                name=str(frag["name"]),
                inputs=tuple(_param_type(p) for p in frag.get("inputs", [])),
                outputs=tuple(_param_type(p) for p in frag.get("outputs", [])),
                payable=frag.get("stateMutability") == "payable" or bool(frag.get("payable", False)),
            )
        else:
            raise AbiError(f"unsupported ABI fragment {frag!r}")
        grouped.setdefault(fn.name, []).append(fn)
    return grouped
