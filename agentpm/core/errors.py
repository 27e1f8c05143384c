"""Centralized exception hierarchy for tool resolution and invocation."""
from __future__ import annotations

from typing import Iterable, Optional


class ToolError(Exception):
    """Base class for all agentpm errors."""


class ConfigError(ToolError):
    pass


class InvalidSpecifierError(ToolError, ValueError):
    def __init__(self, specifier: str, reason: str = 'Expected "@scope/name@version".'):
        self.specifier = specifier
        super().__init__(f'Invalid tool spec "{specifier}". {reason}')


class ToolNotFoundError(ToolError):
    def __init__(self, specifier: str, searched: Iterable[str] = ()):
        self.specifier = specifier
        self.searched = list(searched)
        where = ", ".join(self.searched) if self.searched else "<no search roots>"
        super().__init__(f'Tool "{specifier}" not found. Searched: {where}')


class ManifestError(ToolError):
    def __init__(self, path, reason: str):
        self.path = str(path)
        super().__init__(f"agent.json {reason} at: {self.path}")


class InterpreterError(ToolError):
    """Entrypoint command failed validation at load time."""


class UnsupportedInterpreterError(InterpreterError):
    def __init__(self, command: str, allowed: Iterable[str]):
        self.command = command
        self.allowed = sorted(allowed)
        super().__init__(
            f'Unsupported agent.json.entrypoint.command "{command}". '
            f"Allowed: {'|'.join(self.allowed)} (or python3.<minor>)"
        )


class InterpreterNotFoundError(InterpreterError):
    def __init__(self, command: str):
        self.command = command
        super().__init__(f'Interpreter "{command}" not found on PATH. Install it to load tool.')


class RuntimeMismatchError(InterpreterError):
    def __init__(self, command: str, runtime: str):
        self.command = command
        self.runtime = runtime
        super().__init__(
            f'Misconfigured tool - agent.json.entrypoint.command "{command}" '
            f'does not match tool runtime "{runtime}".'
        )


class InvocationError(ToolError):
    """A single tool invocation failed."""


class ToolTimeoutError(InvocationError, TimeoutError):
    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Tool timed out after {timeout_ms}ms")


class OutputLimitError(InvocationError):
    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        mib = limit_bytes / (1024 * 1024)
        super().__init__(f"Tool produced too much output; limit is {mib:g}MB")


class ExecutionError(InvocationError):
    def __init__(self, message: str, exit_code: Optional[int] = None, stderr_tail: str = ""):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        super().__init__(message)

    @classmethod
    def from_exit(cls, exit_code: int, stderr_tail: str) -> "ExecutionError":
        return cls(
            f"Tool exited with code {exit_code}. Stderr (tail):\n{stderr_tail}",
            exit_code=exit_code,
            stderr_tail=stderr_tail,
        )


class OutputFormatError(InvocationError):
    def __init__(self, stdout_tail: str, stderr_tail: str):
        self.stdout_tail = stdout_tail
        self.stderr_tail = stderr_tail
        super().__init__(
            f"Failed to parse tool JSON output.\nStderr:\n{stderr_tail}\nStdout (tail):\n{stdout_tail}"
        )


class NoJsonFoundError(ToolError, ValueError):
    def __init__(self, message: str = "No JSON object found on stdout."):
        super().__init__(message)


__all__ = [
    "ToolError",
    "ConfigError",
    "InvalidSpecifierError",
    "ToolNotFoundError",
    "ManifestError",
    "InterpreterError",
    "UnsupportedInterpreterError",
    "InterpreterNotFoundError",
    "RuntimeMismatchError",
    "InvocationError",
    "ToolTimeoutError",
    "OutputLimitError",
    "ExecutionError",
    "OutputFormatError",
    "NoJsonFoundError",
]
