import pytest

from sender_sdk.config import (
    HardwareConfig,
    LocalKeyConfig,
    MultisigConfig,
    RunConfig,
    SenderInitConfig,
    SenderKind,
    UnlockedConfig,
)
from sender_sdk.errors import ConfigError
from sender_sdk.salt import FACTORY_ADDRESS

from .conftest import ALICE, BOB, PROPOSER_KEY

_VARS = (
    "RPC_URL",
    "FORK_URL",
    "CHAIN_ID",
    "TIMEOUT",
    "MAX_RETRIES",
    "RECEIPT_TIMEOUT",
    "PROPOSAL_URL",
    "PROPOSAL_API_KEY",
    "REGISTRY",
    "NAMESPACE",
    "FACTORY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(f"SENDER_{name}", raising=False)


def test_defaults():
    cfg = RunConfig.from_env()
    assert cfg.rpc_url == "http://127.0.0.1:8545"
    assert cfg.chain_id is None
    assert cfg.namespace == "default"
    assert cfg.factory_address == FACTORY_ADDRESS


def test_from_env(monkeypatch):
    monkeypatch.setenv("SENDER_RPC_URL", "https://rpc.example")
    monkeypatch.setenv("SENDER_CHAIN_ID", "0xa")
    monkeypatch.setenv("SENDER_TIMEOUT", "5")
    monkeypatch.setenv("SENDER_PROPOSAL_URL", "https://safe.example")
    monkeypatch.setenv("SENDER_PROPOSAL_API_KEY", "secret")
    monkeypatch.setenv("SENDER_NAMESPACE", "staging")
    monkeypatch.setenv("SENDER_FACTORY", BOB.lower())
    cfg = RunConfig.from_env()
    assert cfg.chain_id == 10
    assert cfg.request_timeout == 5.0
    assert cfg.namespace == "staging"
    assert cfg.factory_address == BOB
    assert cfg.redacted()["proposal_api_key"] == "***"
    assert cfg.to_dict()["proposal_api_key"] == "secret"


@pytest.mark.parametrize(
    "name,value",
    [
        ("RPC_URL", "ws://node"),
        ("CHAIN_ID", "mainnet"),
        ("MAX_RETRIES", "many"),
        ("FACTORY", "0x1234"),
    ],
)
def test_invalid_env(monkeypatch, name, value):
    monkeypatch.setenv(f"SENDER_{name}", value)
    with pytest.raises(ConfigError):
        RunConfig.from_env()


def test_overrides():
    base = RunConfig(chain_id=1)
    cfg = RunConfig.with_overrides(base, rpc_url="https://other", chain_id="137", bogus=1)
    assert cfg.rpc_url == "https://other"
    assert cfg.chain_id == 137
    assert RunConfig.with_overrides(base, chain_id=None).chain_id == 1
    with pytest.raises(ConfigError):
        RunConfig.with_overrides(base, fork_url="ftp://x")


def test_sender_kinds():
    assert SenderKind.LOCAL_KEY.synchronous
    assert not SenderKind.MULTISIG.synchronous


def test_sender_from_mapping():
    cfg = SenderInitConfig.from_mapping({"name": "ops", "account": ALICE.lower(), "kind": "local-key", "privateKey": PROPOSER_KEY})
    assert cfg.account == ALICE
    assert cfg.backend == LocalKeyConfig(PROPOSER_KEY)
    assert PROPOSER_KEY not in repr(cfg)

    hw = SenderInitConfig.from_mapping({"name": "hw", "account": BOB, "kind": "HARDWARE", "signer_url": "http://localhost:8550"})
    assert hw.backend == HardwareConfig("http://localhost:8550")

    safe = SenderInitConfig.from_mapping({"name": "safe", "account": BOB, "kind": "multisig", "proposer": "ops"})
    assert safe.backend == MultisigConfig("ops")
    assert SenderInitConfig(name="dev", account=ALICE, kind=SenderKind.UNLOCKED).backend == UnlockedConfig()


@pytest.mark.parametrize(
    "data",
    [
        {"name": "x", "account": ALICE, "kind": "ledger"},
        {"name": "x", "account": ALICE, "kind": "local-key"},
        {"name": "x", "account": ALICE, "kind": "hardware", "signerUrl": "tcp://dev"},
        {"name": "x", "account": "nope", "kind": "unlocked"},
        {"account": ALICE, "kind": "unlocked"},
    ],
)
def test_sender_mapping_errors(data):
    with pytest.raises(ConfigError):
        SenderInitConfig.from_mapping(data)


def test_backend_must_match_kind():
    with pytest.raises(ConfigError, match="needs MultisigConfig"):
        SenderInitConfig(name="safe", account=ALICE, kind=SenderKind.MULTISIG)
