"""
Recursive Length Prefix encoding (encode side only).

Items are bytes, non-negative ints (big-endian, minimal, 0 -> empty string)
or lists/tuples of items.
"""

from __future__ import annotations

from typing import Sequence, Union

Item = Union[bytes, bytearray, int, Sequence["Item"]]


def int_to_min_bytes(n: int) -> bytes:
    if n < 0:
        raise ValueError("RLP cannot encode negative integers")
    return n.to_bytes((n.bit_length() + 7) // 8, "big") if n else b""


def _length_prefix(length: int, offset: int) -> bytes:
    if length <= 55:
        return bytes([offset + length])
    encoded = int_to_min_bytes(length)
    return bytes([offset + 55 + len(encoded)]) + encoded


def encode(item: Item) -> bytes:
    if isinstance(item, bool):
        raise TypeError("RLP has no boolean type")
    if isinstance(item, int):
        item = int_to_min_bytes(item)
    if isinstance(item, (bytes, bytearray)):
        raw = bytes(item)
        if len(raw) == 1 and raw[0] < 0x80:
            return raw
        return _length_prefix(len(raw), 0x80) + raw
    if isinstance(item, (list, tuple)):
        payload = b"".join(encode(x) for x in item)
        return _length_prefix(len(payload), 0xC0) + payload
    raise TypeError(f"cannot RLP-encode {type(item).__name__}")


__all__ = ["encode", "int_to_min_bytes"]
