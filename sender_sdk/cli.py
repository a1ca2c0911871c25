"""
sender_sdk.cli
==============

`sender-sdk`: operator helpers around deterministic deployments.

Examples
--------
    $ sender-sdk version
    $ sender-sdk env
    $ sender-sdk salt 0xAbc… default Token --chain-id 1
    $ sender-sdk predict 0xAbc… Token --namespace default --strategy create3
    $ sender-sdk predict 0xAbc… Token --strategy create2 --init-code 0x6080…
    $ sender-sdk predict 0xAbc… Token --onchain      # ask the factory via eth_call
    $ sender-sdk lookup Token --registry deployments.json --chain-id 1

Configuration
-------------
Settings come from `RunConfig.from_env()` (SENDER_* variables) and can be
overridden with `--rpc` / `--chain-id`. Logging follows LOG_LEVEL and
LOG_FORMAT, or `--log-level` / `--log-format`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

import typer

from .address import to_checksum
from .chain.factory import ContextFactoryClient
from .chain.rpc import RpcChain
from .config import RunConfig
from .errors import AddressError, RpcError, SenderSdkError
from .logging import setup_logging
from .registry import Registry
from .rpc.http import RpcClient
from .salt import Strategy, build_entropy, derive_salt, guarded_salt, predict_address
from .utils.bytes import from_hex, to_hex
from .utils.hash import keccak256
from .version import __version__ as SDK_VERSION

app = typer.Typer(
    name="sender-sdk",
    help="Deterministic deployment helpers: salts, address prediction, registry lookup.",
    no_args_is_help=True,
    add_completion=False,
)

__all__ = ["app", "main"]


def _print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, indent=2, ensure_ascii=False))


def _fail(e: Exception) -> typer.Exit:
    if isinstance(e, SenderSdkError):
        typer.echo(json.dumps({"error": e.to_dict()}), err=True)
    elif isinstance(e, RpcError):
        typer.echo(json.dumps({"error": {"code": e.code, "message": e.message, "method": e.method}}), err=True)
    else:
        typer.echo(json.dumps({"error": {"message": str(e)}}), err=True)
    return typer.Exit(code=1)


def _config(ctx: typer.Context) -> RunConfig:
    return ctx.obj


def _chain_id(cfg: RunConfig) -> int:
    if cfg.chain_id is not None:
        return cfg.chain_id
    with RpcClient(cfg.rpc_url, timeout=cfg.request_timeout, max_retries=cfg.max_retries) as rpc:
        return RpcChain(rpc).chain_id


@app.callback()
def _root(
    ctx: typer.Context,
    rpc: Optional[str] = typer.Option(None, "--rpc", help="Node HTTP JSON-RPC URL."),
    chain_id: Optional[str] = typer.Option(None, "--chain-id", help="Chain id (decimal or 0x-hex)."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR."),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="console or json."),
) -> None:
    """Resolve configuration for this process."""
    setup_logging(level=log_level.upper() if log_level else None, log_format=log_format)
    overrides: dict = {}
    if rpc:
        overrides["rpc_url"] = rpc
    if chain_id:
        overrides["chain_id"] = chain_id
    try:
        ctx.obj = RunConfig.with_overrides(RunConfig.from_env(), **overrides)
    except SenderSdkError as e:
        raise _fail(e)


@app.command("version")
def version() -> None:
    """Print the package version."""
    typer.echo(f"sender-sdk {SDK_VERSION}")


@app.command("env")
def env(ctx: typer.Context) -> None:
    """Show the effective configuration (secrets redacted)."""
    _print_json(_config(ctx).redacted())


@app.command("salt")
def salt(
    ctx: typer.Context,
    sender: str = typer.Argument(..., help="Deploying account."),
    components: List[str] = typer.Argument(..., help="Entropy components, e.g. namespace identifier label."),
    cross_chain: bool = typer.Option(False, "--cross-chain", help="Bind the salt to the chain id as well."),
) -> None:
    """Print the entropy, salt and guarded salt for SENDER and COMPONENTS."""
    cfg = _config(ctx)
    try:
        raw = derive_salt(sender, components, cross_chain=cross_chain)
        guarded = guarded_salt(raw, sender, _chain_id(cfg))
        out = {
            "sender": to_checksum(sender),
            "entropy": to_hex(build_entropy(components)),
            "salt": to_hex(raw),
            "guardedSalt": to_hex(guarded),
        }
    except (SenderSdkError, AddressError, RpcError) as e:
        raise _fail(e)
    _print_json(out)


@app.command("predict")
def predict(
    ctx: typer.Context,
    sender: str = typer.Argument(..., help="Deploying account."),
    identifier: str = typer.Argument(..., help="Deployment identifier, e.g. Token."),
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Defaults to SENDER_NAMESPACE."),
    label: Optional[str] = typer.Option(None, "--label", help="Extra entropy component."),
    strategy: str = typer.Option("create3", "--strategy", help="create3 (two-step) or create2 (one-step)."),
    init_code: Optional[str] = typer.Option(None, "--init-code", help="Creation bytecode as 0x-hex."),
    init_code_file: Optional[Path] = typer.Option(None, "--init-code-file", help="File holding creation bytecode hex."),
    cross_chain: bool = typer.Option(False, "--cross-chain"),
    onchain: bool = typer.Option(False, "--onchain", help="Ask the factory's compute endpoints via eth_call."),
) -> None:
    """Predict the address the factory assigns to IDENTIFIER deployed by SENDER."""
    cfg = _config(ctx)
    try:
        strat = Strategy.parse(strategy)
        code_hex = init_code
        if init_code_file is not None:
            code_hex = init_code_file.read_text(encoding="utf-8").strip()
        code_hash = keccak256(from_hex(code_hex)) if code_hex else None
        chain_id = _chain_id(cfg)
        raw = derive_salt(sender, [namespace or cfg.namespace, identifier, label or ""], cross_chain=cross_chain)
        guarded = guarded_salt(raw, sender, chain_id)
        if onchain:
            with RpcClient(cfg.rpc_url, timeout=cfg.request_timeout, max_retries=cfg.max_retries) as rpc:
                factory = ContextFactoryClient(RpcChain(rpc, chain_id=chain_id), cfg.factory_address)
                address = predict_address(guarded, code_hash, strat, deployer=cfg.factory_address, factory=factory)
        else:
            address = predict_address(guarded, code_hash, strat, deployer=cfg.factory_address)
    except (SenderSdkError, AddressError, RpcError, ValueError, OSError) as e:
        raise _fail(e)
    _print_json(
        {
            "address": address,
            "strategy": strat.value,
            "chainId": chain_id,
            "factory": cfg.factory_address,
            "salt": to_hex(raw),
            "guardedSalt": to_hex(guarded),
        }
    )


@app.command("lookup")
def lookup(
    ctx: typer.Context,
    identifier: str = typer.Argument(..., help="Deployment identifier."),
    registry: Optional[Path] = typer.Option(None, "--registry", help="Registry JSON file (default SENDER_REGISTRY)."),
    namespace: Optional[str] = typer.Option(None, "--namespace"),
) -> None:
    """Print the registered address of IDENTIFIER, exit 1 when unknown."""
    cfg = _config(ctx)
    path = registry or (Path(cfg.registry_path) if cfg.registry_path else None)
    if path is None:
        raise typer.BadParameter("no registry given (--registry or SENDER_REGISTRY)")
    try:
        reg = Registry.from_file(path, chain=_chain_id(cfg), namespace=namespace or cfg.namespace)
        address = reg.require(identifier)
    except (SenderSdkError, RpcError) as e:
        raise _fail(e)
    typer.echo(address)


def main() -> None:  # pragma: no cover - thin wrapper
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
