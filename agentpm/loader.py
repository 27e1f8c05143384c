"""Tool facade: resolve a specifier once, invoke it any number of times.

    summarize = load("@zack/summarize@0.1.0")
    result = await summarize({"text": "hello"})

    loaded = load_with_meta("@zack/summarize@^0.1")
    loaded.meta.name, loaded.meta.version
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Mapping, Optional, Union, overload

from .core.executor import ProcessExecutor
from .core.interpreter import InterpreterResolver, ResolvedInterpreter
from .core.locator import LocatedTool, ToolLocator
from .core.logging import core_logger, set_level, summarize_for_log
from .core.manifest import JsonValue, Manifest, ToolMeta, read_manifest
from .core.settings import Settings, resolve_timeout_ms

PathLike = Union[str, Path]


class ToolFunction:
    """Async callable bound to one resolved tool version.

    Every call gets its own run directory, environment and deadline; nothing is
    shared between calls, so concurrent calls need no locking.
    """

    def __init__(
        self,
        manifest: Manifest,
        interpreter: ResolvedInterpreter,
        timeout_ms: int,
        env: Optional[Mapping[str, str]],
        executor: ProcessExecutor,
    ):
        self.manifest = manifest
        self.interpreter = interpreter
        self.timeout_ms = timeout_ms
        self.env = MappingProxyType(dict(env or {}))
        self._executor = executor

    @property
    def root(self) -> Path:
        return self.manifest.root

    async def __call__(self, payload: JsonValue) -> JsonValue:
        result = await self._executor.run(
            self.root,
            self.manifest.entrypoint,
            payload,
            command=self.interpreter.command,
            family=self.interpreter.family,
            timeout_ms=self.timeout_ms,
            env=self.env,
        )
        core_logger.debug(f"[tool] {self.manifest.name}@{self.manifest.version} -> {summarize_for_log(result)}")
        return result

    def __repr__(self) -> str:
        return f"<ToolFunction {self.manifest.name}@{self.manifest.version} root={self.root}>"


@dataclass(frozen=True)
class LoadedTool:
    func: ToolFunction
    meta: ToolMeta


def _prepare(
    specifier: str,
    timeout_ms: Optional[int],
    tool_dir_override: Optional[PathLike],
    env: Optional[Mapping[str, str]],
    settings: Optional[Settings],
) -> ToolFunction:
    settings = settings or Settings.from_env()
    if settings.debug:
        set_level("DEBUG")
    elif settings.log_level:
        set_level(settings.log_level)

    located: LocatedTool = ToolLocator(settings).locate(specifier, tool_dir_override)
    manifest = read_manifest(located.manifest_path)
    entry = manifest.entrypoint

    # PATH lookup sees the child's layered env; overrides come from settings only
    lookup_env = {**settings.environ, **entry.env, **dict(env or {})}
    cwd = (located.root / (entry.cwd or ".")).resolve()
    interpreter = InterpreterResolver(settings).resolve(
        entry.command, lookup_env, runtime=manifest.runtime, base_dir=str(cwd)
    )

    effective_timeout = resolve_timeout_ms(timeout_ms, entry.timeout_ms, settings.default_timeout_ms)
    core_logger.debug(
        f"[load] {specifier} -> {located.root} command={interpreter.command} timeout_ms={effective_timeout}"
    )
    return ToolFunction(manifest, interpreter, effective_timeout, env, ProcessExecutor(settings))


def load_with_meta(
    specifier: str,
    *,
    timeout_ms: Optional[int] = None,
    tool_dir_override: Optional[PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
    settings: Optional[Settings] = None,
) -> LoadedTool:
    func = _prepare(specifier, timeout_ms, tool_dir_override, env, settings)
    return LoadedTool(func=func, meta=func.manifest.meta())


@overload
def load(
    specifier: str,
    *,
    with_meta: Literal[False] = ...,
    timeout_ms: Optional[int] = ...,
    tool_dir_override: Optional[PathLike] = ...,
    env: Optional[Mapping[str, str]] = ...,
    settings: Optional[Settings] = ...,
) -> ToolFunction: ...


@overload
def load(
    specifier: str,
    *,
    with_meta: Literal[True],
    timeout_ms: Optional[int] = ...,
    tool_dir_override: Optional[PathLike] = ...,
    env: Optional[Mapping[str, str]] = ...,
    settings: Optional[Settings] = ...,
) -> LoadedTool: ...


def load(
    specifier: str,
    *,
    with_meta: bool = False,
    timeout_ms: Optional[int] = None,
    tool_dir_override: Optional[PathLike] = None,
    env: Optional[Mapping[str, str]] = None,
    settings: Optional[Settings] = None,
):
    """Resolve ``specifier`` and validate its interpreter.

    Returns a ToolFunction, or a LoadedTool (func + meta) when ``with_meta`` is set.
    Timeout precedence: ``timeout_ms`` > manifest ``entrypoint.timeout_ms`` >
    ``settings.default_timeout_ms``.
    """
    if with_meta:
        return load_with_meta(
            specifier, timeout_ms=timeout_ms, tool_dir_override=tool_dir_override, env=env, settings=settings
        )
    return _prepare(specifier, timeout_ms, tool_dir_override, env, settings)


__all__ = ["load", "load_with_meta", "LoadedTool", "ToolFunction"]
