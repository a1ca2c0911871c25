"""
Version helpers for sender_sdk.
We keep a static __version__ (PEP 440) and expose a structured view of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Bump this when publishing
__version__ = "0.1.0"


@dataclass(frozen=True)
class VersionInfo:
    base: str
    build: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.base if not self.build else f"{self.base}+{self.build}"


def version_info(build: Optional[str] = None) -> VersionInfo:
    """Structured version info (base PEP440 plus optional build tag)."""
    return VersionInfo(base=__version__, build=build)


__all__ = ["__version__", "VersionInfo", "version_info"]
