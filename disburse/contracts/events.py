"""
disburse.contracts.events
=========================

Decode what programs leave in transaction logs.

- ``decode_logs(logs)``       -> list of :class:`DecodedEvent` (``evt:`` + CBOR lines)
- ``find_first_event(logs, name)``
- ``decode_history(records, methods)`` -> list of :class:`HistoryEntry`,
  naming the ABI method each call invoked

Log lines that are not events (ABI return values, foreign formats) are
skipped silently; an event line whose payload is not a CBOR map is skipped
with a debug record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..abi import Method
from ..logging import get_logger
from ..ledger.client import TxRecord
from ..programs.runtime import EVENT_PREFIX
from ..utils.cbor import CBORDecodeError, cbor_loads

__all__ = ["DecodedEvent", "HistoryEntry", "decode_logs", "find_first_event", "decode_history"]

log = get_logger(__name__)


@dataclass(frozen=True)
class DecodedEvent:
    name: str
    args: Dict[str, Any]


@dataclass(frozen=True)
class HistoryEntry:
    """One contract call from history, with its method and events decoded."""

    tx_id: str
    confirmed_round: int
    round_time: int
    sender: str
    method: Optional[str]
    events: List[DecodedEvent] = field(default_factory=list)


def decode_logs(logs: Iterable[bytes]) -> List[DecodedEvent]:
    out: List[DecodedEvent] = []
    for line in logs:
        line = bytes(line)
        if not line.startswith(EVENT_PREFIX):
            continue
        try:
            obj = cbor_loads(line[len(EVENT_PREFIX):])
        except CBORDecodeError as e:
            log.debug("skipping undecodable event", error=str(e))
            continue
        if not isinstance(obj, dict) or "event" not in obj:
            log.debug("skipping malformed event payload")
            continue
        args = {k: v for k, v in obj.items() if k != "event"}
        out.append(DecodedEvent(name=str(obj["event"]), args=args))
    return out


def find_first_event(logs: Iterable[bytes], name: str) -> Optional[DecodedEvent]:
    for ev in decode_logs(logs):
        if ev.name == name:
            return ev
    return None


def decode_history(records: Sequence[TxRecord], methods: Mapping[bytes, Method]) -> List[HistoryEntry]:
    entries: List[HistoryEntry] = []
    for r in records:
        method = None
        if r.app_args:
            m = methods.get(bytes(r.app_args[0]))
            method = m.name if m is not None else None
        elif r.tx_type == "appl":
            method = "opt_in"
        entries.append(
            HistoryEntry(
                tx_id=r.tx_id,
                confirmed_round=r.confirmed_round,
                round_time=r.round_time,
                sender=r.sender,
                method=method,
                events=decode_logs(r.logs),
            )
        )
    return entries
