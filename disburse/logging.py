"""
disburse.logging
----------------

Structured logging for the SDK and its tools:

- JSON or concise colored text output
- Context-local fields via `contextvars` (trace_id, scheme_id, app_id, ...)
- Keyword fields on log calls: ``log.info("released", scheme_id=3, tx_id=...)``
- Safe value coercion (bytes -> hex, dataclasses -> dict, enums -> name)

Usage
-----
    from disburse import logging as dlog

    dlog.configure(json=False, level="INFO")   # once, by the application
    log = dlog.get_logger(__name__)

    with dlog.trace_scope():
        dlog.bind(scheme_id=7)
        log.info("funding scheme", amount=250_000)

The library itself never calls :func:`configure`; it only emits records.
"""

from __future__ import annotations

import datetime as _dt
import enum
import io
import json
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple, Union

__all__ = [
    "configure",
    "get_logger",
    "bind",
    "unbind",
    "context",
    "clear_context",
    "trace_scope",
    "short_uuid",
    "JSONFormatter",
    "TextFormatter",
    "FieldAdapter",
]

ROOT_LOGGER = "disburse"
ENV_FORMAT = "DISBURSE_LOG_FORMAT"
ENV_LEVEL = "DISBURSE_LOG_LEVEL"

_LOG_CONTEXT: ContextVar[Dict[str, Any]] = ContextVar("_DISBURSE_LOG_CONTEXT", default={})

CONTEXT_KEYS = (
    "trace_id",
    "component",
    "app_id",
    "scheme_id",
    "sender",
)

# LogRecord attributes that are never treated as structured fields.
_RESERVED = frozenset(
    (
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    )
)


# ----------------------------
# Context
# ----------------------------


def context() -> Dict[str, Any]:
    """Return a copy of the active logging context."""
    return dict(_LOG_CONTEXT.get())


def bind(**fields: Any) -> None:
    cur = dict(_LOG_CONTEXT.get())
    cur.update({k: _coerce_value(v) for k, v in fields.items()})
    _LOG_CONTEXT.set(cur)


def unbind(*keys: str) -> None:
    cur = dict(_LOG_CONTEXT.get())
    for k in keys:
        cur.pop(k, None)
    _LOG_CONTEXT.set(cur)


def clear_context() -> None:
    _LOG_CONTEXT.set({})


def short_uuid() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def trace_scope(trace_id: Optional[str] = None, **fields: Any) -> Iterator[str]:
    """
    Ensure a trace_id (plus any extra fields) for the duration of the scope.
    The previous context is restored on exit.
    """
    token = _LOG_CONTEXT.set(dict(_LOG_CONTEXT.get()))
    tid = trace_id or short_uuid()
    try:
        bind(trace_id=tid, **fields)
        yield tid
    finally:
        _LOG_CONTEXT.reset(token)


# ----------------------------
# Formatters
# ----------------------------


def _coerce_value(v: Any) -> Any:
    if isinstance(v, enum.Enum):
        return v.name
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    if isinstance(v, (list, tuple)):
        return [_coerce_value(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _coerce_value(x) for k, x in v.items()}
    if isinstance(v, Path):
        return str(v)
    if isinstance(v, _dt.datetime):
        if v.tzinfo is None:
            v = v.replace(tzinfo=_dt.timezone.utc)
        return v.isoformat()
    if is_dataclass(v) and not isinstance(v, type):
        return _coerce_value(asdict(v))
    return str(v)


def _utcnow_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="milliseconds")


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in record.__dict__.items():
        if k.startswith("_") or k in _RESERVED:
            continue
        out[k] = _coerce_value(v)
    return out


_RESET = "\x1b[0m"
_GREY = "\x1b[90m"
_CYAN = "\x1b[36m"
_LEVEL_COLOR = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1m\x1b[35m",
}


def _supports_color(stream: Any) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    return bool(isatty()) and os.environ.get("NO_COLOR") is None


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utcnow_iso(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(context())
        for k, v in _record_fields(record).items():
            payload.setdefault(k, v)
        if record.exc_info:
            payload["err"] = "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return json.dumps(payload, default=str, separators=(",", ":"))


class TextFormatter(logging.Formatter):
    """
    One line per record:
      2026-01-05T12:34:56.789+00:00 | INFO  | disburse.tx.composer | trace_id=ab12 | group submitted size=2
    """

    def __init__(self, stream: Any = None):
        super().__init__()
        self._color = _supports_color(stream) if stream is not None else False

    def format(self, record: logging.LogRecord) -> str:
        ctx = context()
        ctx_str = " ".join(f"{k}={ctx[k]}" for k in CONTEXT_KEYS if ctx.get(k) is not None)
        extras = " ".join(
            f"{k}={v}" for k, v in _record_fields(record).items() if k not in ctx
        )
        ts = _utcnow_iso()
        lvl = f"{record.levelname:<5}"
        name = record.name
        if self._color:
            lvl = f"{_LEVEL_COLOR.get(record.levelno, '')}{lvl}{_RESET}"
            name = f"{_CYAN}{name}{_RESET}"
            ts = f"{_GREY}{ts}{_RESET}"
        line = f"{ts} | {lvl} | {name}"
        if ctx_str:
            line += f" | {ctx_str}"
        line += f" | {record.getMessage()}"
        if extras:
            line += f" {extras}"
        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return line


# ----------------------------
# Adapter
# ----------------------------


class FieldAdapter(logging.LoggerAdapter):
    """
    LoggerAdapter that accepts structured fields as keyword arguments.

    ``log.info("msg", scheme_id=1)`` becomes ``extra={"scheme_id": 1}``.
    Standard keywords (exc_info, stack_info, stacklevel, extra) pass through.
    """

    _PASSTHROUGH = ("exc_info", "stack_info", "stacklevel", "extra")

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in self._PASSTHROUGH}
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        extra.update({k: v for k, v in fields.items() if k not in _RESERVED})
        kwargs["extra"] = extra
        return msg, kwargs

    def log(self, level: int, msg: Any, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(level):
            msg, kwargs = self.process(msg, kwargs)
            self.logger.log(level, msg, *args, **kwargs)


def get_logger(name: Optional[str] = None, **fields: Any) -> FieldAdapter:
    """Logger under the ``disburse`` namespace that accepts keyword fields."""
    return FieldAdapter(logging.getLogger(name or ROOT_LOGGER), {k: _coerce_value(v) for k, v in fields.items()})


# ----------------------------
# Setup
# ----------------------------


def configure(
    *,
    json: Optional[bool] = None,
    level: Union[str, int, None] = None,
    stream: Optional[io.TextIOBase] = None,
    file_path: Union[Path, str, None] = None,
) -> None:
    """
    Configure the ``disburse`` logger hierarchy.

    json:
        None picks from DISBURSE_LOG_FORMAT=(json|text), then TTY detection.
    level:
        None reads DISBURSE_LOG_LEVEL (default INFO).
    file_path:
        Optional file that additionally receives JSON lines.
    """
    stream = stream or sys.stderr
    lvl = _coerce_level(level if level is not None else os.environ.get(ENV_LEVEL, "INFO"))
    use_json = _decide_json(json, stream)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(lvl)
    for h in list(logger.handlers):
        logger.removeHandler(h)

    console = logging.StreamHandler(stream)
    console.setLevel(lvl)
    console.setFormatter(JSONFormatter() if use_json else TextFormatter(stream))
    logger.addHandler(console)

    if file_path:
        p = Path(file_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(p, encoding="utf-8")
        fh.setLevel(lvl)
        fh.setFormatter(JSONFormatter())
        logger.addHandler(fh)

    logging.getLogger("httpx").setLevel(max(lvl, logging.WARNING))
    logging.getLogger("httpcore").setLevel(max(lvl, logging.WARNING))


def _coerce_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def _decide_json(json_flag: Optional[bool], stream: Any) -> bool:
    if json_flag is not None:
        return json_flag
    env = os.environ.get(ENV_FORMAT, "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    return not _supports_color(stream)
