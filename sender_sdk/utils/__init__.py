from .bytes import BytesLike, ensure_bytes, from_hex, to_hex  # noqa: F401
from .hash import keccak256, keccak256_hex  # noqa: F401

__all__ = ["BytesLike", "ensure_bytes", "from_hex", "to_hex", "keccak256", "keccak256_hex"]
