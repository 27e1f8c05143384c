"""Interpreter resolution and validation for tool entrypoints.

Steps, in order:
1. infer the interpreter family from the command name (fall back to runtime.type)
2. substitute a per-family override from Settings (AGENTPM_NODE / AGENTPM_PYTHON or the
   config file); the tool's own environment never selects its interpreter
3. check the whitelist
4. check availability: manual PATH lookup, then a ``--version`` probe
5. check the command agrees with the declared runtime
"""
from __future__ import annotations

import os
import re
import subprocess
import sys
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from .errors import (
    InterpreterNotFoundError,
    RuntimeMismatchError,
    UnsupportedInterpreterError,
)
from .logging import core_logger
from .manifest import Runtime
from .settings import Settings

ALLOWED_INTERPRETERS = frozenset({"node", "nodejs", "python", "python3"})

ALIASES: Dict[str, Tuple[str, ...]] = {
    "python": ("python3",),
    "node": ("nodejs",),
}

_PY_MINOR_RE = re.compile(r"^python3\.\d+$")
_WIN_SUFFIX_RE = re.compile(r"\.(exe|cmd|bat)$", re.IGNORECASE)
_SEP_RE = re.compile(r"[\\/]")


def canonical_interpreter(cmd: str) -> str:
    # handle absolute paths and Windows extensions
    base = _SEP_RE.split(cmd.strip())[-1].lower()
    return _WIN_SUFFIX_RE.sub("", base)


def interpreter_family(cmd: str) -> Optional[str]:
    canon = canonical_interpreter(cmd)
    if canon in ("node", "nodejs"):
        return "node"
    if canon in ("python", "python3") or _PY_MINOR_RE.match(canon):
        return "python"
    return None


def is_allowed_interpreter(cmd: str) -> bool:
    canon = canonical_interpreter(cmd)
    return canon in ALLOWED_INTERPRETERS or bool(_PY_MINOR_RE.match(canon))


def _alias_key(canon: str) -> str:
    return "python3" if _PY_MINOR_RE.match(canon) else canon


def is_interpreter_match(runtime: str, command: str) -> bool:
    r = _alias_key(canonical_interpreter(runtime))
    c = _alias_key(canonical_interpreter(command))
    if r == c:
        return True
    return c in ALIASES.get(r, ()) or r in ALIASES.get(c, ())


def _is_executable(path: str, windows: bool) -> bool:
    return os.path.isfile(path) and (windows or os.access(path, os.X_OK))


def find_executable(
    command: str,
    env: Mapping[str, str],
    base_dir: Optional[str] = None,
    platform: str = sys.platform,
) -> Optional[str]:
    """Cross-platform PATH lookup against ``env`` rather than the current process."""
    windows = platform.startswith("win")
    exts = [""]
    if windows:
        pathext = env.get("PATHEXT") or ".COM;.EXE;.BAT;.CMD"
        known = [e.lower() for e in pathext.split(";") if e]
        if os.path.splitext(command)[1].lower() not in known:
            exts = known
    if _SEP_RE.search(command):
        path = command if os.path.isabs(command) or not base_dir else os.path.join(base_dir, command)
        for ext in exts:
            if _is_executable(path + ext, windows):
                return os.path.abspath(path + ext)
        return None
    sep = ";" if windows else os.pathsep
    for d in (env.get("PATH") or "").split(sep):
        if not d:
            continue
        for ext in exts:
            candidate = os.path.join(d, command + ext)
            if _is_executable(candidate, windows):
                return os.path.abspath(candidate)
    return None


@dataclass(frozen=True)
class ResolvedInterpreter:
    command: str
    family: Optional[str]
    original: str

    @property
    def canonical(self) -> str:
        return canonical_interpreter(self.command)


class InterpreterResolver:
    def __init__(self, settings: Settings):
        self.settings = settings

    def _override(self, family: Optional[str]) -> Optional[str]:
        if not family:
            return None
        return self.settings.interpreter_override(family)

    def probe(self, command: str, env: Mapping[str, str], cwd: Optional[str] = None) -> bool:
        """Ask the interpreter for its version; ``False`` only when it cannot be spawned."""
        try:
            subprocess.run(
                [command, "--version"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=dict(env),
                cwd=cwd,
                timeout=self.settings.probe_timeout_s,
            )
        except subprocess.TimeoutExpired:
            core_logger.debug(f"[interpreter] probe of {command} timed out; treating as present")
            return True
        except OSError as e:
            core_logger.debug(f"[interpreter] probe of {command} failed: {e}")
            return False
        return True

    def resolve(
        self,
        command: str,
        env: Mapping[str, str],
        runtime: Optional[Runtime] = None,
        base_dir: Optional[str] = None,
    ) -> ResolvedInterpreter:
        original = command
        family = interpreter_family(command)
        if family is None and runtime is not None:
            family = interpreter_family(runtime.type)

        override = self._override(family)
        if override:
            core_logger.debug(f"[interpreter] {family} override: {command} -> {override}")
            command = override

        if not is_allowed_interpreter(command):
            raise UnsupportedInterpreterError(command, ALLOWED_INTERPRETERS)

        resolved = find_executable(command, env, base_dir=base_dir)
        if resolved is None:
            if not self.probe(command, env, cwd=base_dir):
                raise InterpreterNotFoundError(command)
            resolved = command
        core_logger.debug(f"[interpreter] {original} resolved to {resolved}")

        if runtime is not None and not is_interpreter_match(runtime.type, command):
            raise RuntimeMismatchError(original, canonical_interpreter(runtime.type))

        return ResolvedInterpreter(command=resolved, family=interpreter_family(command), original=original)


__all__ = [
    "ALLOWED_INTERPRETERS",
    "ALIASES",
    "InterpreterResolver",
    "ResolvedInterpreter",
    "canonical_interpreter",
    "find_executable",
    "interpreter_family",
    "is_allowed_interpreter",
    "is_interpreter_match",
]
