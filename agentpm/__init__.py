"""
agentpm SDK

Loads versioned tool packages installed under ``.agentpm/tools`` and exposes each
one as an async callable that runs the tool's entrypoint in an isolated subprocess.
"""

from .core.errors import (
    ConfigError,
    ExecutionError,
    InterpreterError,
    InterpreterNotFoundError,
    InvalidSpecifierError,
    InvocationError,
    ManifestError,
    NoJsonFoundError,
    OutputFormatError,
    OutputLimitError,
    RuntimeMismatchError,
    ToolError,
    ToolNotFoundError,
    ToolTimeoutError,
    UnsupportedInterpreterError,
)
from .core.interpreter import is_interpreter_match
from .core.manifest import JsonValue, ToolMeta
from .core.settings import Settings
from .loader import LoadedTool, ToolFunction, load, load_with_meta
from .adapters.langchain import to_langchain_tool

__version__ = "0.1.0"

__all__ = [
    "load",
    "load_with_meta",
    "to_langchain_tool",
    "is_interpreter_match",
    "LoadedTool",
    "ToolFunction",
    "ToolMeta",
    "JsonValue",
    "Settings",
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
