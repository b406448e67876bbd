"""JSON-RPC transport used by the HTTP ledger client."""

from .http import RpcClient

__all__ = ["RpcClient"]
