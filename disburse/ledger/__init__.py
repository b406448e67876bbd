"""
Ledger access.

- client : the LedgerClient protocol and result dataclasses
- http   : JSON-RPC implementation (HttpLedgerClient)
- local  : in-process development ledger (LocalLedger)
"""

from .client import Confirmation, LedgerClient, PendingInfo, StateMap, TxRecord

__all__ = ["LedgerClient", "Confirmation", "PendingInfo", "TxRecord", "StateMap"]
