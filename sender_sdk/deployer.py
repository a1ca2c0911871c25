"""
Deterministic deployments through the deployment factory.

The salt for a deployment is derived from the deploying account and the
components [namespace, identifier, label]:

    salt      = derive_salt(sender.account, [namespace, identifier, label])
    guarded   = guarded_salt(salt, sender.account, chain_id)
    predicted = predict_address(guarded, keccak(init_code), strategy)

`deploy` skips identifiers the registry already knows for the active chain
and namespace. Otherwise it sends the factory call through the Sender, like
any other operation, and checks the address the factory reports during
simulation against the prediction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from .abi import decode, encode_call
from .address import AddressLike, to_checksum
from .errors import AbiError, AddressPredictionFailure
from .registry import Registry
from .salt import FACTORY_ADDRESS, FactoryClient, Strategy, derive_salt, guarded_salt, predict_address
from .types import Operation
from .utils.hash import keccak256

if TYPE_CHECKING:  # pragma: no cover
    from .sender import Sender

log = logging.getLogger(__name__)

__all__ = ["DeploymentPlan", "Deployer", "registry_key"]

_DEPLOY_SIGNATURES = {
    Strategy.CREATE2: "deployCreate2(bytes32,bytes)",
    Strategy.CREATE3: "deployCreate3(bytes32,bytes)",
}


def registry_key(identifier: str, label: Optional[str] = None) -> str:
    """Registry entry name of a deployment: `identifier` or `identifier:label`."""
    return f"{identifier}:{label}" if label else identifier


@dataclass(frozen=True)
class DeploymentPlan:
    identifier: str
    label: Optional[str]
    strategy: Strategy
    account: str
    salt: bytes
    guarded_salt: bytes
    init_code: bytes
    predicted: str
    factory: str

    @property
    def init_code_hash(self) -> bytes:
        return keccak256(self.init_code)

    @property
    def name(self) -> str:
        return registry_key(self.identifier, self.label)

    def operation(self, value: int = 0) -> Operation:
        payload = encode_call(_DEPLOY_SIGNATURES[self.strategy], [self.salt, self.init_code])
        return Operation(target=self.factory, payload=payload, value=value, label=f"deploy {self.name}")


class Deployer:
    def __init__(
        self,
        *,
        registry: Optional[Registry] = None,
        namespace: Optional[str] = None,
        factory_address: AddressLike = FACTORY_ADDRESS,
        factory: Optional[FactoryClient] = None,
    ) -> None:
        self.registry = registry
        self.namespace = namespace or (registry.namespace if registry is not None else "default")
        self.factory_address = to_checksum(factory_address)
        self.factory = factory

    def plan(
        self,
        sender: "Sender",
        identifier: str,
        init_code: bytes,
        *,
        label: Optional[str] = None,
        strategy: Union[Strategy, str] = Strategy.CREATE3,
        cross_chain: bool = False,
    ) -> DeploymentPlan:
        strat = Strategy.parse(strategy)
        code = bytes(init_code)
        salt = derive_salt(sender.account, [self.namespace, identifier, label or ""], cross_chain=cross_chain)
        guarded = guarded_salt(salt, sender.account, sender.coordinator.chain_id)
        predicted = predict_address(
            guarded,
            keccak256(code),
            strat,
            deployer=self.factory_address,
            factory=self.factory,
        )
        return DeploymentPlan(
            identifier=identifier,
            label=label,
            strategy=strat,
            account=sender.account,
            salt=salt,
            guarded_salt=guarded,
            init_code=code,
            predicted=predicted,
            factory=self.factory_address,
        )

    def deploy(
        self,
        sender: "Sender",
        identifier: str,
        init_code: bytes,
        *,
        label: Optional[str] = None,
        strategy: Union[Strategy, str] = Strategy.CREATE3,
        cross_chain: bool = False,
        value: int = 0,
    ) -> str:
        if self.registry is not None:
            key = registry_key(identifier, label)
            known = self.registry.lookup(key, self.namespace, sender.coordinator.chain_id)
            if known is not None:
                log.info("deployment skipped, already registered", extra={"identifier": key, "address": known})
                return known

        plan = self.plan(sender, identifier, init_code, label=label, strategy=strategy, cross_chain=cross_chain)
        rich = sender.execute(plan.operation(value))
        try:
            (deployed,) = decode(["address"], rich.simulated_return_data or b"")
        except AbiError as e:
            err = AddressPredictionFailure(f"factory returned no address for {plan.name!r}", context={"label": rich.label})
            sender.coordinator.abort(sender, rich, err)
            raise err from e
        if deployed != plan.predicted:
            err = AddressPredictionFailure(
                f"factory placed {plan.name!r} at {deployed}, predicted {plan.predicted}",
                context={"strategy": plan.strategy.value, "sender": sender.name},
            )
            sender.coordinator.abort(sender, rich, err)
            raise err
        return deployed
