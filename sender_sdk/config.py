"""
Run configuration: endpoints, chain id, timeouts, and Sender definitions.

- RunConfig loads defaults and supports overrides via environment variables
  (SENDER_*), mirroring how deployment scripts are usually parameterised.
- SenderInitConfig describes one Sender: its name, the account it acts for,
  and the signing backend (`kind` + backend-specific settings).
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from .address import to_checksum
from .errors import AddressError, ConfigError
from .salt import FACTORY_ADDRESS

_DEFAULT_RPC = "http://127.0.0.1:8545"
_DEFAULT_NAMESPACE = "default"

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")


def _parse_chain_id(val: Any, default: Optional[int] = None) -> Optional[int]:
    """Accepts int, decimal str, or 0x-hex str. Empty means `default`."""
    if val is None or val == "":
        return default
    if isinstance(val, int):
        return val
    s = str(val).strip()
    try:
        if _HEX_RE.match(s):
            return int(s, 16)
        return int(s, 10)
    except ValueError as e:
        raise ConfigError(f"invalid chain id {val!r}", key="chain_id") from e


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None else default


def _ensure_scheme(url: Optional[str], allowed: tuple[str, ...], key: str) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ConfigError(f"URL must start with {allowed}, got: {url!r}", key=key)
    return url


def _address(value: Any, key: str) -> str:
    try:
        return to_checksum(value)
    except AddressError as e:
        raise ConfigError(str(e), key=key) from e


@dataclass(slots=True)
class RunConfig:
    # Broadcast target
    rpc_url: str = _DEFAULT_RPC
    # Fork node operations are simulated on, by impersonation
    fork_url: Optional[str] = None
    chain_id: Optional[int] = None
    # Transport behaviour
    request_timeout: float = 30.0
    max_retries: int = 3
    receipt_timeout: float = 120.0
    # Collaborators
    proposal_service_url: Optional[str] = None
    proposal_api_key: Optional[str] = None
    registry_path: Optional[str] = None
    namespace: str = _DEFAULT_NAMESPACE
    factory_address: str = FACTORY_ADDRESS

    @classmethod
    def from_env(cls, prefix: str = "SENDER_") -> "RunConfig":
        """
        Create config from environment variables:

        SENDER_RPC_URL            (http/https)
        SENDER_FORK_URL           (http/https) optional
        SENDER_CHAIN_ID           (int or 0x-hex) optional, else asked from the node
        SENDER_TIMEOUT            (float seconds)
        SENDER_MAX_RETRIES        (int)
        SENDER_RECEIPT_TIMEOUT    (float seconds)
        SENDER_PROPOSAL_URL       (http/https) optional
        SENDER_PROPOSAL_API_KEY   (str) optional
        SENDER_REGISTRY           (path) optional
        SENDER_NAMESPACE          (str)
        SENDER_FACTORY            (address)
        """
        rpc = _env(f"{prefix}RPC_URL", _DEFAULT_RPC)
        fork = _env(f"{prefix}FORK_URL") or None
        proposal = _env(f"{prefix}PROPOSAL_URL") or None
        _ensure_scheme(rpc, ("http", "https"), "rpc_url")
        _ensure_scheme(fork, ("http", "https"), "fork_url")
        _ensure_scheme(proposal, ("http", "https"), "proposal_service_url")
        try:
            timeout = float(_env(f"{prefix}TIMEOUT", "30.0"))  # type: ignore[arg-type]
            retries = int(_env(f"{prefix}MAX_RETRIES", "3"))  # type: ignore[arg-type]
            receipt_timeout = float(_env(f"{prefix}RECEIPT_TIMEOUT", "120.0"))  # type: ignore[arg-type]
        except ValueError as e:
            raise ConfigError(f"invalid numeric setting: {e}") from e

        return cls(
            rpc_url=rpc or _DEFAULT_RPC,
            fork_url=fork,
            chain_id=_parse_chain_id(_env(f"{prefix}CHAIN_ID")),
            request_timeout=timeout,
            max_retries=retries,
            receipt_timeout=receipt_timeout,
            proposal_service_url=proposal,
            proposal_api_key=_env(f"{prefix}PROPOSAL_API_KEY") or None,
            registry_path=_env(f"{prefix}REGISTRY") or None,
            namespace=_env(f"{prefix}NAMESPACE", _DEFAULT_NAMESPACE) or _DEFAULT_NAMESPACE,
            factory_address=_address(_env(f"{prefix}FACTORY", FACTORY_ADDRESS), "factory_address"),
        )

    @classmethod
    def with_overrides(cls, base: Optional["RunConfig"] = None, **overrides: Any) -> "RunConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data})
        if "chain_id" in overrides:
            data["chain_id"] = _parse_chain_id(overrides["chain_id"], base.chain_id)
        for key in ("rpc_url", "fork_url", "proposal_service_url"):
            if key in overrides:
                _ensure_scheme(data[key], ("http", "https"), key)
        if "factory_address" in overrides:
            data["factory_address"] = _address(data["factory_address"], "factory_address")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def redacted(self) -> Dict[str, Any]:
        data = self.to_dict()
        if data.get("proposal_api_key"):
            data["proposal_api_key"] = "***"
        return data


# --- Sender definitions --------------------------------------------------------


class SenderKind(str, Enum):
    UNLOCKED = "unlocked"
    LOCAL_KEY = "local-key"
    HARDWARE = "hardware"
    MULTISIG = "multisig"

    @property
    def synchronous(self) -> bool:
        return self is not SenderKind.MULTISIG


@dataclass(frozen=True)
class UnlockedConfig:
    pass


@dataclass(frozen=True)
class LocalKeyConfig:
    private_key: str = field(repr=False)


@dataclass(frozen=True)
class HardwareConfig:
    signer_url: str


@dataclass(frozen=True)
class MultisigConfig:
    proposer: str
    """Name of the (already registered) Sender that signs proposals."""


BackendConfig = Union[UnlockedConfig, LocalKeyConfig, HardwareConfig, MultisigConfig]


@dataclass(frozen=True)
class SenderInitConfig:
    name: str
    account: str
    kind: SenderKind
    backend: BackendConfig = field(default_factory=UnlockedConfig)

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigError("sender name must not be empty", key="name")
        object.__setattr__(self, "account", _address(self.account, "account"))
        expected = _BACKENDS[self.kind]
        if not isinstance(self.backend, expected):
            raise ConfigError(
                f"sender {self.name!r} of kind {self.kind.value} needs {expected.__name__}",
                key="backend",
            )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SenderInitConfig":
        """
        {"name": "ops", "account": "0x…", "kind": "local-key", "privateKey": "0x…"}
        {"name": "safe", "account": "0x…", "kind": "multisig", "proposer": "ops"}
        """
        try:
            kind = SenderKind(str(data.get("kind", "")).strip().lower())
        except ValueError as e:
            raise ConfigError(f"unknown sender kind {data.get('kind')!r}", key="kind") from e

        def need(*keys: str) -> str:
            for k in keys:
                if data.get(k):
                    return str(data[k])
            raise ConfigError(f"sender of kind {kind.value} requires {keys[0]!r}", key=keys[0])

        backend: BackendConfig
        if kind is SenderKind.LOCAL_KEY:
            backend = LocalKeyConfig(private_key=need("private_key", "privateKey"))
        elif kind is SenderKind.HARDWARE:
            url = need("signer_url", "signerUrl")
            _ensure_scheme(url, ("http", "https"), "signer_url")
            backend = HardwareConfig(signer_url=url)
        elif kind is SenderKind.MULTISIG:
            backend = MultisigConfig(proposer=need("proposer"))
        else:
            backend = UnlockedConfig()
        return cls(name=need("name"), account=need("account"), kind=kind, backend=backend)


_BACKENDS = {
    SenderKind.UNLOCKED: UnlockedConfig,
    SenderKind.LOCAL_KEY: LocalKeyConfig,
    SenderKind.HARDWARE: HardwareConfig,
    SenderKind.MULTISIG: MultisigConfig,
}


__all__ = [
    "RunConfig",
    "SenderKind",
    "UnlockedConfig",
    "LocalKeyConfig",
    "HardwareConfig",
    "MultisigConfig",
    "BackendConfig",
    "SenderInitConfig",
]
