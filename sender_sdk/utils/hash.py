from __future__ import annotations

from typing import Iterable

from Crypto.Hash import keccak as _keccak

from .bytes import BytesLike, ensure_bytes, to_hex


# --- Keccak-256 (Ethereum-style) ----------------------------------------------
# hashlib exposes NIST SHA3 but not the original Keccak padding the EVM uses,
# so we go through pycryptodome.


def keccak256(data: BytesLike) -> bytes:
    """Return Keccak-256 digest of *data* (bytes)."""
    h = _keccak.new(digest_bits=256)
    h.update(ensure_bytes(data))
    return h.digest()


def keccak256_hex(data: BytesLike, *, prefix: bool = True) -> str:
    """Return hex string of Keccak-256 digest (0x-prefixed by default)."""
    return to_hex(keccak256(data), prefix=prefix)


def keccak256_concat(parts: Iterable[BytesLike]) -> bytes:
    """Keccak-256 over the concatenation of *parts* (abi.encodePacked style)."""
    h = _keccak.new(digest_bits=256)
    for p in parts:
        h.update(ensure_bytes(p))
    return h.digest()


__all__ = [
    "keccak256",
    "keccak256_hex",
    "keccak256_concat",
]
