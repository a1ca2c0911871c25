"""
Multisig coordination service: batch encoding, digest and proposal clients.

A batch proposer never executes anything itself. Its operations are packed
into one MultiSend-style payload, a digest over (account, chain id, nonce,
keccak(payload)) is signed by the designated proposer, and the service
returns a proposal hash that the account's owners later confirm.

Packed layout, one entry per call:

    operation (1, always 0x00 = CALL) ‖ to (20) ‖ value (32) ‖ len (32) ‖ data
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import httpx

from ..abi import encode
from ..address import AddressLike, to_bytes as address_bytes, to_checksum
from ..errors import ConfigError, ServiceError
from ..rpc.http import jitter_backoff
from ..utils.bytes import from_hex, to_hex
from ..utils.hash import keccak256
from ..version import __version__ as SDK_VERSION

if TYPE_CHECKING:  # pragma: no cover
    from ..config import RunConfig

log = logging.getLogger(__name__)

__all__ = [
    "Call",
    "encode_batch",
    "batch_digest",
    "ProposalRequest",
    "ProposalService",
    "HttpProposalService",
    "InMemoryProposalService",
]

Call = Tuple[str, bytes]

_OP_CALL = b"\x00"


def encode_batch(calls: Sequence[Call]) -> bytes:
    out = bytearray()
    for target, data in calls:
        payload = bytes(data)
        out += _OP_CALL
        out += address_bytes(target)
        out += (0).to_bytes(32, "big")
        out += len(payload).to_bytes(32, "big")
        out += payload
    return bytes(out)


def batch_digest(account: AddressLike, chain_id: int, nonce: int, calls: Sequence[Call]) -> bytes:
    """keccak256(abi.encode(account, chainId, nonce, keccak256(packed calls)))."""
    return keccak256(
        encode(
            ["address", "uint256", "uint256", "bytes32"],
            [to_checksum(account), int(chain_id), int(nonce), keccak256(encode_batch(calls))],
        )
    )


@dataclass(frozen=True)
class ProposalRequest:
    account: str
    chain_id: int
    nonce: int
    calls: Tuple[Call, ...]
    digest: bytes
    proposer: str
    signature: bytes

    def to_json(self) -> Dict[str, Any]:
        return {
            "account": self.account,
            "chainId": self.chain_id,
            "nonce": self.nonce,
            "calls": [{"to": to, "value": "0", "data": to_hex(data)} for to, data in self.calls],
            "batchData": to_hex(encode_batch(self.calls)),
            "digest": to_hex(self.digest),
            "proposer": self.proposer,
            "signature": to_hex(self.signature),
        }


@runtime_checkable
class ProposalService(Protocol):
    def propose(self, request: ProposalRequest) -> bytes:
        """Submit a proposal; return the proposal hash assigned by the service."""
        ...


@dataclass
class InMemoryProposalService:
    """Records proposals in order; the proposal hash is the batch digest."""

    proposals: List[ProposalRequest] = field(default_factory=list)

    def propose(self, request: ProposalRequest) -> bytes:
        self.proposals.append(request)
        return request.digest


def _parse_hash(body: Any) -> bytes:
    value = body.get("proposalHash") if isinstance(body, dict) else None
    if not isinstance(value, str):
        raise ServiceError("response has no proposalHash", body=str(body)[:256])
    try:
        raw = from_hex(value)
    except ValueError as e:
        raise ServiceError(f"malformed proposalHash: {e}", body=value) from e
    if len(raw) != 32:
        raise ServiceError("proposalHash must be 32 bytes", body=value)
    return raw


@dataclass
class HttpProposalService:
    """
    Client for a multisig coordination service.

    POST {base_url}/v1/proposals with `ProposalRequest.to_json()`; the response
    is {"proposalHash": "0x…"}. 429 and 5xx responses and network failures are
    retried with jittered backoff; other 4xx responses fail immediately.
    """

    base_url: str
    api_key: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    backoff_base: float = 0.25
    backoff_factor: float = 2.0
    backoff_jitter: float = 0.2
    transport: Optional[httpx.BaseTransport] = None
    _client: httpx.Client = field(init=False, repr=False)

    def __post_init__(self) -> None:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"sender-sdk-python/{SDK_VERSION}",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.Client(
            base_url=self.base_url.rstrip("/"),
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
        )

    @classmethod
    def from_config(cls, cfg: "RunConfig", *, transport: Optional[httpx.BaseTransport] = None) -> "HttpProposalService":
        if not cfg.proposal_service_url:
            raise ConfigError("proposal_service_url is not set", key="proposal_service_url")
        return cls(
            cfg.proposal_service_url,
            api_key=cfg.proposal_api_key,
            timeout=cfg.request_timeout,
            max_retries=cfg.max_retries,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpProposalService":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()

    def propose(self, request: ProposalRequest) -> bytes:
        body = request.to_json()
        last: Optional[str] = None
        for attempt in range(1, self.max_retries + 2):
            try:
                r = self._client.post("/v1/proposals", json=body)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                last = str(e)
            else:
                if r.status_code < 300:
                    try:
                        payload = r.json()
                    except ValueError as e:
                        raise ServiceError("non-JSON response", status=r.status_code, body=r.text[:256]) from e
                    proposal = _parse_hash(payload)
                    log.info("proposal accepted", extra={"account": request.account, "nonce": request.nonce})
                    return proposal
                if r.status_code != 429 and r.status_code < 500:
                    raise ServiceError("proposal rejected", status=r.status_code, body=r.text[:256])
                last = f"HTTP {r.status_code}"
            if attempt > self.max_retries:
                break
            time.sleep(jitter_backoff(self.backoff_base, self.backoff_factor, attempt, self.backoff_jitter))
        raise ServiceError(f"proposal service unavailable: {last}")
