"""Process executor for tool entrypoints.

One invocation = one child process:
- isolated run directory (private HOME/TMPDIR) under ``<tool cwd>/run``
- layered environment: PATH/locale passthrough < entrypoint env < caller env
- JSON payload written to stdin, stdout/stderr drained incrementally
- combined output cap and deadline, both enforced by killing the whole process tree
"""
from __future__ import annotations

import asyncio
import json
import os
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import psutil

from .errors import (
    ExecutionError,
    InterpreterNotFoundError,
    OutputFormatError,
    OutputLimitError,
    ToolTimeoutError,
)
from .logging import core_logger, summarize_for_log
from .manifest import Entrypoint, JsonValue
from .output import extract_last_json_object
from .settings import Settings, resolve_timeout_ms

RUN_DIRNAME = "run"
MEMORY_FLAG = "--max-old-space-size"
READ_CHUNK = 64 * 1024
REAP_TIMEOUT_S = 5.0


def build_env(
    settings: Settings,
    home: Path,
    tmpdir: Path,
    entry_env: Optional[Mapping[str, str]] = None,
    caller_env: Optional[Mapping[str, str]] = None,
    platform: str = sys.platform,
) -> Dict[str, str]:
    inherited = settings.environ
    base: Dict[str, str] = {"PATH": inherited.get("PATH", "")}
    if platform.startswith("win"):
        for key in ("SYSTEMROOT", "PATHEXT"):
            if inherited.get(key):
                base[key] = inherited[key]
    base["HOME"] = str(home)
    base["TMPDIR"] = str(tmpdir)
    if platform.startswith("win"):
        base.update(USERPROFILE=str(home), TEMP=str(tmpdir), TMP=str(tmpdir))
    if inherited.get("LANG"):
        base["LANG"] = inherited["LANG"]
    return {**base, **dict(entry_env or {}), **dict(caller_env or {})}


def build_argv(command: str, args, family: Optional[str], max_old_space_mb: int) -> List[str]:
    argv = [command, *args]
    if family == "node" and not any(a.startswith(MEMORY_FLAG) for a in args):
        argv.insert(1, f"{MEMORY_FLAG}={max_old_space_mb}")
    # python tools are expected to self-isolate
    return argv


@dataclass
class RunContext:
    cwd: Path
    work_dir: Path
    home: Path
    tmp: Path
    argv: List[str]
    env: Dict[str, str]
    timeout_ms: int
    started: float = field(default_factory=time.monotonic)

    @classmethod
    def create(
        cls,
        settings: Settings,
        root: Union[str, Path],
        entrypoint: Entrypoint,
        command: str,
        family: Optional[str],
        timeout_ms: int,
        caller_env: Optional[Mapping[str, str]] = None,
    ) -> "RunContext":
        cwd = (Path(root) / (entrypoint.cwd or ".")).resolve()
        try:
            run_root = cwd / RUN_DIRNAME
            run_root.mkdir(parents=True, exist_ok=True)
            work = Path(tempfile.mkdtemp(prefix="run-", dir=run_root))
            home = work / "home"
            tmp = work / "tmp"
            home.mkdir()
            tmp.mkdir()
        except OSError as e:
            raise ExecutionError(f"Cannot create isolated run directory under {cwd}: {e}") from e
        return cls(
            cwd=cwd,
            work_dir=work,
            home=home,
            tmp=tmp,
            argv=build_argv(command, entrypoint.args, family, settings.node_max_old_space_mb),
            env=build_env(settings, home, tmp, entrypoint.env, caller_env),
            timeout_ms=timeout_ms,
        )

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started) * 1000.0

    def cleanup(self) -> None:
        try:
            shutil.rmtree(self.work_dir)
        except FileNotFoundError:
            pass
        except OSError as e:  # best-effort
            core_logger.warning(f"[run] could not remove {self.work_dir}: {e}")


class ProcessTree:
    """pid-keyed registry of a child process and the descendants seen so far.

    Used to kill every process individually where process-group signalling is
    unavailable (Windows) or fails.
    """

    def __init__(self, pid: int):
        self.pid = pid
        self._known: Dict[int, psutil.Process] = {}

    def refresh(self) -> None:
        try:
            parent = psutil.Process(self.pid)
            family = [parent, *parent.children(recursive=True)]
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return
        for p in family:
            self._known.setdefault(p.pid, p)

    @property
    def pids(self) -> List[int]:
        return sorted(self._known)

    def kill_all(self) -> None:
        for p in self._known.values():
            try:
                p.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass


def _group_kwargs() -> Dict[str, Any]:
    if os.name == "posix":
        return {"start_new_session": True}  # new process group on POSIX
    return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}


def kill_process_tree(proc: asyncio.subprocess.Process, tree: ProcessTree) -> None:
    tree.refresh()
    signalled_group = False
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            signalled_group = True
        except (ProcessLookupError, PermissionError) as e:
            core_logger.debug(f"[run] killpg({proc.pid}) failed: {e}")
    if not signalled_group:
        tree.kill_all()
    # direct kill as a fallback in case group signalling missed the child
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class _OutputBudget:
    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0

    def consume(self, n: int) -> None:
        self.used += n
        if self.used > self.limit:
            raise OutputLimitError(self.limit)


class ProcessExecutor:
    def __init__(self, settings: Settings):
        self.settings = settings

    async def run(
        self,
        root: Union[str, Path],
        entrypoint: Entrypoint,
        payload: JsonValue,
        *,
        command: Optional[str] = None,
        family: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> JsonValue:
        timeout_ms = resolve_timeout_ms(timeout_ms, entrypoint.timeout_ms, self.settings.default_timeout_ms)
        ctx = RunContext.create(
            self.settings,
            root,
            entrypoint,
            command or entrypoint.command,
            family,
            timeout_ms,
            caller_env=env,
        )
        try:
            return await self._run_in_context(ctx, payload)
        finally:
            ctx.cleanup()

    async def _run_in_context(self, ctx: RunContext, payload: JsonValue) -> JsonValue:
        data = json.dumps(payload).encode("utf-8")
        core_logger.debug(
            f"[run] spawn argv={ctx.argv} cwd={ctx.cwd} timeout_ms={ctx.timeout_ms} "
            f"payload={summarize_for_log(payload)}"
        )
        try:
            proc = await asyncio.create_subprocess_exec(
                *ctx.argv,
                cwd=str(ctx.cwd),
                env=ctx.env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **_group_kwargs(),
            )
        except FileNotFoundError as e:
            raise InterpreterNotFoundError(ctx.argv[0]) from e
        except OSError as e:
            raise ExecutionError(f"Failed to start tool process {ctx.argv[0]}: {e}") from e

        tree = ProcessTree(proc.pid)
        out, err = bytearray(), bytearray()
        budget = _OutputBudget(self.settings.output_limit_bytes)
        try:
            returncode = await asyncio.wait_for(
                self._communicate(proc, data, out, err, budget),
                timeout=ctx.timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            core_logger.debug(f"[run] pid={proc.pid} exceeded {ctx.timeout_ms}ms, killing tree")
            kill_process_tree(proc, tree)
            await self._reap(proc)
            raise ToolTimeoutError(ctx.timeout_ms) from None
        except OutputLimitError:
            core_logger.debug(f"[run] pid={proc.pid} exceeded {budget.limit} bytes of output, killing tree")
            kill_process_tree(proc, tree)
            await self._reap(proc)
            raise
        except asyncio.CancelledError:
            kill_process_tree(proc, tree)
            raise

        stdout_text = out.decode("utf-8", errors="replace")
        stderr_text = err.decode("utf-8", errors="replace")
        tail = self.settings.tail_chars
        core_logger.debug(
            f"[run] pid={proc.pid} exit={returncode} took={ctx.elapsed_ms:.1f}ms "
            f"stdout_bytes={len(out)} stderr_bytes={len(err)}"
        )
        if returncode != 0:
            raise ExecutionError.from_exit(returncode, stderr_text[-tail:])
        if stderr_text:
            core_logger.debug(f"[run] stderr (tail): {stderr_text[-tail:]}")
        try:
            return extract_last_json_object(stdout_text)
        except ValueError as e:
            raise OutputFormatError(stdout_text[-tail:], stderr_text[-tail:]) from e

    async def _communicate(
        self,
        proc: asyncio.subprocess.Process,
        data: bytes,
        out: bytearray,
        err: bytearray,
        budget: _OutputBudget,
    ) -> int:
        tasks = [
            asyncio.ensure_future(self._feed(proc, data)),
            asyncio.ensure_future(self._pump(proc.stdout, out, budget)),
            asyncio.ensure_future(self._pump(proc.stderr, err, budget)),
        ]
        try:
            await asyncio.gather(*tasks)
            return await proc.wait()
        finally:
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    async def _feed(proc: asyncio.subprocess.Process, data: bytes) -> None:
        stdin = proc.stdin
        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            # the child stopped reading; its exit status reports the real failure
            core_logger.debug(f"[run] pid={proc.pid} stdin write failed: {e}")
        finally:
            stdin.close()

    @staticmethod
    async def _pump(stream: asyncio.StreamReader, sink: bytearray, budget: _OutputBudget) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                return
            sink.extend(chunk)
            budget.consume(len(chunk))

    @staticmethod
    async def _reap(proc: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(proc.wait(), timeout=REAP_TIMEOUT_S)
        except asyncio.TimeoutError:
            core_logger.warning(f"[run] pid={proc.pid} did not exit after kill")


__all__ = [
    "ProcessExecutor",
    "ProcessTree",
    "RunContext",
    "build_argv",
    "build_env",
    "kill_process_tree",
]
