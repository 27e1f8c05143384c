"""Settings: explicit snapshot of the environment, working directory and config file.

Every component receives a ``Settings`` instance instead of reading ``os.environ``
or ``Path.cwd()`` itself, so tests can build fully deterministic settings.

Precedence (lowest to highest):
- built-in defaults
- optional YAML config file (AGENTPM_CONFIG or <project>/.agentpm/config.yaml)
- environment variables
- explicit keyword overrides passed to ``Settings.from_env``

Config file keys::

    tool_dir: /opt/agentpm/tools
    default_timeout_ms: 60000
    log_level: INFO
    interpreters:
      node: /usr/local/bin/node
      python: /usr/bin/python3.12
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .logging import is_truthy

ENV_TOOL_DIR = "AGENTPM_TOOL_DIR"
ENV_NODE = "AGENTPM_NODE"
ENV_PYTHON = "AGENTPM_PYTHON"
ENV_DEBUG = "AGENTPM_DEBUG"
ENV_CONFIG = "AGENTPM_CONFIG"
ENV_LOG_LEVEL = "AGENTPM_LOG_LEVEL"
ENV_TIMEOUT_MS = "AGENTPM_TIMEOUT_MS"

AGENTPM_DIRNAME = ".agentpm"
TOOLS_DIRNAME = "tools"
CONFIG_FILENAME = "config.yaml"
PROJECT_MARKERS = ("pyproject.toml", "package.json", ".git")

DEFAULT_TIMEOUT_MS = 120_000  # 2m
OUTPUT_LIMIT_BYTES = 10 * 1024 * 1024
TAIL_CHARS = 4000
PROBE_TIMEOUT_S = 5.0
NODE_MAX_OLD_SPACE_MB = 256

_CONFIG_KEYS = {"tool_dir", "default_timeout_ms", "log_level", "interpreters"}


def find_project_root(cwd: Path) -> Path:
    """Walk upward from ``cwd`` looking for a project marker.

    An ancestor holding a ``.agentpm`` directory wins; otherwise the nearest
    ancestor holding one of PROJECT_MARKERS; otherwise ``cwd`` itself.
    """
    cwd = cwd.resolve()
    chain = [cwd, *cwd.parents]
    for d in chain:
        if (d / AGENTPM_DIRNAME).is_dir():
            return d
    for d in chain:
        if any((d / m).exists() for m in PROJECT_MARKERS):
            return d
    return cwd


def read_config_file(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    unknown = set(data) - _CONFIG_KEYS
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")
    interpreters = data.get("interpreters") or {}
    if not isinstance(interpreters, dict):
        raise ConfigError(f"'interpreters' in {path} must be a mapping")
    timeout = data.get("default_timeout_ms")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, int) or timeout <= 0):
        raise ConfigError(f"'default_timeout_ms' in {path} must be a positive integer")
    return data


def _parse_timeout(raw: Optional[str], source: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{source} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{source} must be positive, got {value}")
    return value


def resolve_timeout_ms(*candidates: Optional[int]) -> int:
    """Return the first candidate that is set; it must be a positive integer."""
    for value in candidates:
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError(f"timeout_ms must be a positive integer, got {value!r}")
        return value
    return DEFAULT_TIMEOUT_MS


@dataclass(frozen=True)
class Settings:
    environ: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    cwd: Path = field(default_factory=lambda: Path("."))
    home: Optional[Path] = None
    project_root: Optional[Path] = None
    tool_dir: Optional[str] = None
    node_override: Optional[str] = None
    python_override: Optional[str] = None
    debug: bool = False
    log_level: Optional[str] = None
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    output_limit_bytes: int = OUTPUT_LIMIT_BYTES
    tail_chars: int = TAIL_CHARS
    probe_timeout_s: float = PROBE_TIMEOUT_S
    node_max_old_space_mb: int = NODE_MAX_OLD_SPACE_MB
    config_path: Optional[Path] = None

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        cwd: Optional[Path] = None,
        **overrides: Any,
    ) -> "Settings":
        env = dict(os.environ if environ is None else environ)
        cwd = Path(cwd) if cwd is not None else Path.cwd()
        home_raw = env.get("HOME") or env.get("USERPROFILE")
        home = Path(home_raw) if home_raw else None
        project_root = find_project_root(cwd)

        config_path: Optional[Path] = None
        explicit = env.get(ENV_CONFIG)
        if explicit:
            config_path = Path(explicit)
            if not config_path.is_absolute():
                config_path = cwd / config_path
            if not config_path.is_file():
                raise ConfigError(f"{ENV_CONFIG} points to a missing file: {config_path}")
        else:
            candidate = project_root / AGENTPM_DIRNAME / CONFIG_FILENAME
            if candidate.is_file():
                config_path = candidate
        file_cfg: Dict[str, Any] = read_config_file(config_path) if config_path else {}
        interpreters = file_cfg.get("interpreters") or {}

        values: Dict[str, Any] = {
            "environ": MappingProxyType(env),
            "cwd": cwd,
            "home": home,
            "project_root": project_root,
            "tool_dir": env.get(ENV_TOOL_DIR) or file_cfg.get("tool_dir"),
            "node_override": env.get(ENV_NODE) or interpreters.get("node"),
            "python_override": env.get(ENV_PYTHON) or interpreters.get("python"),
            "debug": is_truthy(env.get(ENV_DEBUG)),
            "log_level": env.get(ENV_LOG_LEVEL) or file_cfg.get("log_level"),
            "default_timeout_ms": (
                _parse_timeout(env.get(ENV_TIMEOUT_MS), ENV_TIMEOUT_MS)
                or file_cfg.get("default_timeout_ms")
                or DEFAULT_TIMEOUT_MS
            ),
            "config_path": config_path,
        }
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **changes: Any) -> "Settings":
        return replace(self, **changes)

    @property
    def project_tools_dir(self) -> Path:
        return (self.project_root or self.cwd) / AGENTPM_DIRNAME / TOOLS_DIRNAME

    @property
    def home_tools_dir(self) -> Optional[Path]:
        return self.home / AGENTPM_DIRNAME / TOOLS_DIRNAME if self.home else None

    def interpreter_override(self, family: str) -> Optional[str]:
        if family == "node":
            return self.node_override
        if family == "python":
            return self.python_override
        return None


__all__ = [
    "Settings",
    "find_project_root",
    "read_config_file",
    "resolve_timeout_ms",
    "ENV_TOOL_DIR",
    "ENV_NODE",
    "ENV_PYTHON",
    "ENV_DEBUG",
    "ENV_CONFIG",
    "ENV_LOG_LEVEL",
    "ENV_TIMEOUT_MS",
    "DEFAULT_TIMEOUT_MS",
    "OUTPUT_LIMIT_BYTES",
]
