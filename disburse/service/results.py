"""Uniform result payloads handed to the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..errors import DisburseError

__all__ = ["OperationResult", "Progress", "ProgressCallback"]


@dataclass(frozen=True)
class Progress:
    step: int
    total: int
    message: str


ProgressCallback = Callable[[Progress], None]


@dataclass
class OperationResult:
    success: bool
    tx_ids: List[str] = field(default_factory=list)
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, tx_ids: List[str], message: str = "", **data: Any) -> "OperationResult":
        return cls(success=True, tx_ids=list(tx_ids), message=message, data=data)

    @classmethod
    def fail(cls, err: DisburseError) -> "OperationResult":
        return cls(success=False, message=err.message, data=dict(err.data or {}), error_code=err.code)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "txIds": self.tx_ids, "message": self.message}
        if self.data:
            out["data"] = self.data
        if self.error_code:
            out["errorCode"] = self.error_code
        return out
