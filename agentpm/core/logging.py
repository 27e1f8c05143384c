"""Lightweight logging setup for agentpm.

Users can override the log level with the AGENTPM_LOG_LEVEL env var, or set
AGENTPM_DEBUG=1 to force DEBUG. AGENTPM_LOG_DIR adds a file handler.

This is the one module that reads the process environment directly: the
handlers and the initial level are fixed when a logger is first created, at
import time. Every ``load`` call then re-applies the level from its
``Settings`` through ``set_level``, so an explicit ``Settings`` has the last word.

Also includes a helper to summarize tool payloads for logging without dumping
full request/response bodies to the logs.
"""
from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

_TRUTHY = {"1", "true", "yes", "on"}


def is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _summarize_sequence(seq: Any, max_items: int) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": type(seq).__name__, "len": len(seq)}
    items = list(seq)[:max_items]
    out["preview_types"] = [type(x).__name__ for x in items]
    return out


def summarize_for_log(obj: Any, *, max_items: int = 8) -> Any:
    """Return a compact, JSON-serializable summary suitable for logging.

    - Dict: size, keys (truncated) and value types (not full values)
    - List/Tuple: length and a short preview of item types
    - str: length and truncated preview
    - Other scalars: returned directly
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return {"type": "str", "len": len(obj), "preview": (obj if len(obj) <= 200 else obj[:197] + "...")}
    if isinstance(obj, (bytes, bytearray)):
        return {"type": type(obj).__name__, "len": len(obj)}
    if isinstance(obj, Mapping):
        keys = list(obj.keys())[:max_items]
        return {
            "type": "dict",
            "len": len(obj),
            "keys": [str(k) for k in keys],
            "value_types": {str(k): type(obj[k]).__name__ for k in keys},
        }
    if isinstance(obj, (list, tuple)):
        return _summarize_sequence(obj, max_items=max_items)
    return {"type": type(obj).__name__}


def resolve_log_level(environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    if is_truthy(env.get("AGENTPM_DEBUG")):
        return "DEBUG"
    return env.get("AGENTPM_LOG_LEVEL", "WARNING").upper()


def get_logger(name: str = "agentpm") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        fmt = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(stream_handler)
        # Optional file handler if AGENTPM_LOG_DIR is set
        log_dir = os.getenv("AGENTPM_LOG_DIR")
        if log_dir:
            try:
                p = Path(log_dir)
                p.mkdir(parents=True, exist_ok=True)
                fh = logging.FileHandler(p / "agentpm.log", encoding="utf-8")
                fh.setFormatter(logging.Formatter(fmt))
                logger.addHandler(fh)
            except OSError as e:
                logger.warning(f"file logging disabled, cannot use {log_dir}: {e}")
        logger.setLevel(resolve_log_level())
        logger.propagate = False
    return logger


def set_level(level: str) -> None:
    """Apply ``level`` to every agentpm logger created so far."""
    level = level.upper()
    for name, existing in logging.Logger.manager.loggerDict.items():
        if name.startswith("agentpm") and isinstance(existing, logging.Logger):
            existing.setLevel(level)


core_logger = get_logger("agentpm.core")

__all__ = ["get_logger", "core_logger", "summarize_for_log", "resolve_log_level", "set_level", "is_truthy"]
