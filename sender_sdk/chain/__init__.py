from .context import ExecutionContext, Revert
from .factory import ContextFactoryClient, MemoryFactory, install_factory
from .memory import Contract, MemoryChain, Msg, external
from .rpc import RpcChain

__all__ = [
    "ExecutionContext",
    "Revert",
    "Contract",
    "MemoryChain",
    "Msg",
    "external",
    "MemoryFactory",
    "ContextFactoryClient",
    "install_factory",
    "RpcChain",
]
