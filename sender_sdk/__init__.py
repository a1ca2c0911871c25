"""
Sender SDK — Python
Convenience exports for orchestrating simulated-then-broadcast runs.
"""

from .version import __version__  # noqa: F401

# Errors & config
from .errors import (  # noqa: F401
    SenderSdkError,
    SimulationFailure,
    OperationFailed,
    ExecutionMismatch,
    ValueNotZero,
    InvalidStrategy,
    AddressPredictionFailure,
    ProposerNotSupported,
    BroadcastError,
    ConfigError,
    RegistryError,
    ServiceError,
    RpcError,
    AbiError,
)
from .config import RunConfig, SenderInitConfig, SenderKind  # noqa: F401

# Records & events
from .types import Operation, RichOperation, OperationStatus, Batch  # noqa: F401
from .events import EventKind, LifecycleEvent  # noqa: F401

# Orchestration
from .coordinator import TransactionCoordinator, RunState, RunSummary  # noqa: F401
from .sender import Sender, ImmediateSigner, BatchProposer, build_sender  # noqa: F401
from .harness import Harness  # noqa: F401

# Addresses & deployments
from .salt import (  # noqa: F401
    Strategy,
    build_entropy,
    base_salt,
    derive_salt,
    guarded_salt,
    predict_address,
    FACTORY_ADDRESS,
)
from .deployer import Deployer, DeploymentPlan  # noqa: F401
from .registry import Registry  # noqa: F401

# Execution contexts & backends
from .chain import MemoryChain, RpcChain, ContextFactoryClient  # noqa: F401
from .rpc.http import RpcClient  # noqa: F401
from .wallet.signer import UnlockedSigner, LocalKeySigner, ExternalSigner  # noqa: F401
from .multisig.service import HttpProposalService, InMemoryProposalService  # noqa: F401

__all__ = [
    "__version__",
    "SenderSdkError",
    "SimulationFailure",
    "OperationFailed",
    "ExecutionMismatch",
    "ValueNotZero",
    "InvalidStrategy",
    "AddressPredictionFailure",
    "ProposerNotSupported",
    "BroadcastError",
    "ConfigError",
    "RegistryError",
    "ServiceError",
    "RpcError",
    "AbiError",
    "RunConfig",
    "SenderInitConfig",
    "SenderKind",
    "Operation",
    "RichOperation",
    "OperationStatus",
    "Batch",
    "EventKind",
    "LifecycleEvent",
    "TransactionCoordinator",
    "RunState",
    "RunSummary",
    "Sender",
    "ImmediateSigner",
    "BatchProposer",
    "build_sender",
    "Harness",
    "Strategy",
    "build_entropy",
    "base_salt",
    "derive_salt",
    "guarded_salt",
    "predict_address",
    "FACTORY_ADDRESS",
    "Deployer",
    "DeploymentPlan",
    "Registry",
    "MemoryChain",
    "RpcChain",
    "ContextFactoryClient",
    "RpcClient",
    "UnlockedSigner",
    "LocalKeySigner",
    "ExternalSigner",
    "HttpProposalService",
    "InMemoryProposalService",
]
