"""agent.json manifest model and reader.

Only ``entrypoint.command`` is required; every other field is passed through
best-effort. Manifests are immutable once parsed.
"""
from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import ManifestError

JsonValue = Union[None, bool, int, float, str, list, dict]

MANIFEST_FILENAME = "agent.json"

_KNOWN_FIELDS = {"name", "version", "description", "inputs", "outputs", "runtime", "entrypoint"}


@dataclass(frozen=True)
class Runtime:
    type: str
    version: Optional[str] = None


@dataclass(frozen=True)
class Entrypoint:
    command: str
    args: Tuple[str, ...] = ()
    cwd: Optional[str] = None
    timeout_ms: Optional[int] = None
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class ToolMeta:
    name: str
    version: str
    description: Optional[str] = None
    inputs: Optional[JsonValue] = None
    outputs: Optional[JsonValue] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "version": self.version}
        for key in ("description", "inputs", "outputs"):
            value = getattr(self, key)
            if value is not None:
                out[key] = copy.deepcopy(value)
        return out


@dataclass(frozen=True)
class Manifest:
    name: str
    version: str
    entrypoint: Entrypoint
    path: Path
    description: Optional[str] = None
    inputs: Optional[JsonValue] = None
    outputs: Optional[JsonValue] = None
    runtime: Optional[Runtime] = None
    extra: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def root(self) -> Path:
        return self.path.parent

    def meta(self) -> ToolMeta:
        """Snapshot of the public metadata; schemas are deep-copied."""
        return ToolMeta(
            name=self.name,
            version=self.version,
            description=self.description,
            inputs=copy.deepcopy(self.inputs),
            outputs=copy.deepcopy(self.outputs),
        )


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _parse_timeout(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value) if value > 0 else None


def _parse_entrypoint(raw: Dict[str, Any]) -> Entrypoint:
    args = raw.get("args") or []
    if not isinstance(args, list):
        args = [args]
    env = raw.get("env") or {}
    if not isinstance(env, dict):
        env = {}
    return Entrypoint(
        command=raw["command"],
        args=tuple(str(a) for a in args),
        cwd=_opt_str(raw.get("cwd")),
        timeout_ms=_parse_timeout(raw.get("timeout_ms")),
        env=MappingProxyType({str(k): str(v) for k, v in env.items()}),
    )


def _parse_runtime(raw: Any) -> Optional[Runtime]:
    if not isinstance(raw, dict) or not raw.get("type"):
        return None
    return Runtime(type=str(raw["type"]), version=_opt_str(raw.get("version")))


def parse_manifest(data: Any, path: Path) -> Manifest:
    if not isinstance(data, dict):
        raise ManifestError(path, "must be a JSON object")
    entry = data.get("entrypoint")
    command = entry.get("command") if isinstance(entry, dict) else None
    if not isinstance(command, str) or not command.strip():
        raise ManifestError(path, "missing entrypoint.command")
    return Manifest(
        name=_opt_str(data.get("name")) or "",
        version=_opt_str(data.get("version")) or "",
        entrypoint=_parse_entrypoint(entry),
        path=path,
        description=_opt_str(data.get("description")),
        inputs=data.get("inputs"),
        outputs=data.get("outputs"),
        runtime=_parse_runtime(data.get("runtime")),
        extra=MappingProxyType({k: v for k, v in data.items() if k not in _KNOWN_FIELDS}),
    )


def read_manifest(path: Union[str, Path]) -> Manifest:
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ManifestError(path, f"cannot be read ({e})") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ManifestError(path, f"is not valid JSON ({e})") from e
    return parse_manifest(data, path)


__all__ = [
    "JsonValue",
    "MANIFEST_FILENAME",
    "Runtime",
    "Entrypoint",
    "ToolMeta",
    "Manifest",
    "parse_manifest",
    "read_manifest",
]
