"""
sender_sdk.address
==================

Account and contract address helpers.

Format
------
Addresses are 20-byte values rendered as 0x-prefixed hex with the EIP-55
mixed-case checksum:

    checksum[i] = upper(hex[i]) if nibble_i(keccak256(lower_hex)) >= 8 else hex[i]

This module provides:
- to_bytes(address) -> 20 bytes
- to_checksum(address | bytes) -> str
- normalize(address | bytes) -> str (alias of to_checksum, accepts any case)
- validate(address, strict=False) -> bool
- is_valid(address) -> bool (alias)
- from_word(word32) -> str  (decode an ABI-encoded address word)

Mixed-case input is verified against its checksum; all-lower and all-upper
input is accepted as-is.
"""

from __future__ import annotations

from typing import Union

from .errors import AddressError
from .utils.bytes import BytesLike
from .utils.hash import keccak256

ADDRESS_LENGTH = 20
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

AddressLike = Union[str, bytes, bytearray, memoryview]

__all__ = [
    "ADDRESS_LENGTH",
    "ZERO_ADDRESS",
    "AddressLike",
    "to_bytes",
    "to_checksum",
    "normalize",
    "validate",
    "is_valid",
    "from_word",
]


def _hex_body(address: str) -> str:
    if not isinstance(address, str):
        raise AddressError(f"address must be a string, got {type(address).__name__}")
    s = address.strip()
    if not s.startswith(("0x", "0X")):
        raise AddressError(f"address must be 0x-prefixed: {address!r}")
    body = s[2:]
    if len(body) != ADDRESS_LENGTH * 2:
        raise AddressError(f"address must be {ADDRESS_LENGTH} bytes: {address!r}")
    try:
        bytes.fromhex(body)
    except ValueError as e:
        raise AddressError(f"address is not hex: {address!r}") from e
    return body


def _checksum_body(lower_body: str) -> str:
    digest = keccak256(lower_body.encode("ascii")).hex()
    out = []
    for ch, nib in zip(lower_body, digest):
        if ch.isalpha() and int(nib, 16) >= 8:
            out.append(ch.upper())
        else:
            out.append(ch)
    return "".join(out)


def to_bytes(address: AddressLike) -> bytes:
    """Return the raw 20 bytes of *address* (hex string or bytes)."""
    if isinstance(address, (bytes, bytearray, memoryview)):
        raw = bytes(address)
        if len(raw) != ADDRESS_LENGTH:
            raise AddressError(f"address must be {ADDRESS_LENGTH} bytes, got {len(raw)}")
        return raw
    body = _hex_body(address)
    if body != body.lower() and body != body.upper():
        if _checksum_body(body.lower()) != body:
            raise AddressError(f"bad EIP-55 checksum: {address!r}")
    return bytes.fromhex(body)


def to_checksum(address: AddressLike) -> str:
    """Render *address* in EIP-55 checksum form."""
    return "0x" + _checksum_body(to_bytes(address).hex())


normalize = to_checksum


def validate(address: object, *, strict: bool = False) -> bool:
    """
    Validate an address string. With strict=True the input must already be
    in checksum form.
    """
    if not isinstance(address, str):
        return False
    try:
        canonical = to_checksum(address)
    except AddressError:
        return False
    return canonical == address if strict else True


is_valid = validate


def from_word(word: BytesLike) -> str:
    """Decode a left-padded 32-byte ABI word holding an address."""
    raw = bytes(word)
    if len(raw) != 32:
        raise AddressError("address word must be 32 bytes")
    if any(raw[:12]):
        raise AddressError("address word has dirty high bytes")
    return to_checksum(raw[12:])
