"""
Address registry: read-only lookup of known deployments.

File shape (JSON), keyed by chain id, then namespace, then identifier:

    {
      "1":     {"default": {"Token": "0x…", "Vault": "0x…"}},
      "31337": {"default": {"Token": "0x…"}, "staging": {...}}
    }

The file is validated once on load; addresses are normalised to EIP-55.
Lookups never write.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import RootModel, ValidationError, field_validator

from .address import to_checksum
from .errors import AddressError, RegistryError

__all__ = ["RegistryFile", "Registry"]


class RegistryFile(RootModel[Dict[str, Dict[str, Dict[str, str]]]]):
    @field_validator("root")
    @classmethod
    def _normalise(cls, v: Dict[str, Dict[str, Dict[str, str]]]) -> Dict[str, Dict[str, Dict[str, str]]]:
        out: Dict[str, Dict[str, Dict[str, str]]] = {}
        for chain, namespaces in v.items():
            try:
                chain_key = str(int(chain, 0))
            except ValueError as e:
                raise ValueError(f"chain key {chain!r} is not a chain id") from e
            for ns, entries in namespaces.items():
                for ident, addr in entries.items():
                    try:
                        out.setdefault(chain_key, {}).setdefault(ns, {})[ident] = to_checksum(addr)
                    except AddressError as e:
                        raise ValueError(f"{chain}/{ns}/{ident}: {e}") from e
        return out


class Registry:
    def __init__(
        self,
        entries: Mapping[str, Mapping[str, Mapping[str, str]]],
        *,
        chain: int,
        namespace: str = "default",
    ) -> None:
        self._entries = entries
        self.chain = int(chain)
        self.namespace = namespace

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, chain: int, namespace: str = "default") -> "Registry":
        try:
            model = RegistryFile.model_validate(dict(data))
        except ValidationError as e:
            raise RegistryError(f"invalid registry data: {e.error_count()} error(s)", context={"errors": str(e)}) from e
        return cls(model.root, chain=chain, namespace=namespace)

    @classmethod
    def from_file(cls, path: Union[str, Path], *, chain: int, namespace: str = "default") -> "Registry":
        p = Path(path)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise RegistryError(f"registry file not found: {p}") from e
        except json.JSONDecodeError as e:
            raise RegistryError(f"registry file is not JSON: {e}", context={"path": str(p)}) from e
        if not isinstance(data, dict):
            raise RegistryError("registry file must hold a JSON object", context={"path": str(p)})
        return cls.from_mapping(data, chain=chain, namespace=namespace)

    @classmethod
    def empty(cls, *, chain: int, namespace: str = "default") -> "Registry":
        return cls({}, chain=chain, namespace=namespace)

    def lookup(self, identifier: str, namespace: Optional[str] = None, chain: Optional[int] = None) -> Optional[str]:
        ns = namespace if namespace is not None else self.namespace
        chain_key = str(int(chain if chain is not None else self.chain))
        return self._entries.get(chain_key, {}).get(ns, {}).get(identifier)

    def require(self, identifier: str, namespace: Optional[str] = None, chain: Optional[int] = None) -> str:
        addr = self.lookup(identifier, namespace, chain)
        if addr is None:
            raise RegistryError(
                f"{identifier!r} is not registered",
                context={
                    "namespace": namespace if namespace is not None else self.namespace,
                    "chain": chain if chain is not None else self.chain,
                },
            )
        return addr

    def __contains__(self, identifier: object) -> bool:
        return isinstance(identifier, str) and self.lookup(identifier) is not None
