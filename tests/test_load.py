import asyncio
import logging
import sys
from pathlib import Path

import pytest

from agentpm import (
    ExecutionError,
    LoadedTool,
    ToolNotFoundError,
    UnsupportedInterpreterError,
    load,
    load_with_meta,
)
from agentpm.core.errors import ConfigError, InvalidSpecifierError, ManifestError, RuntimeMismatchError

from conftest import FAIL_PY, run_dirs, write_tool

SPEC = "@zack/summarize@0.1.0"


def test_invoke_returns_last_json_object(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0")
    summarize = load(SPEC, tool_dir_override=tools_dir, settings=settings)
    assert asyncio.run(summarize({"text": "hello world"})) == {"summary": "HELLO WORLD"}


def test_bash_entrypoint_is_rejected_at_load(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0", command="bash")
    with pytest.raises(UnsupportedInterpreterError) as ei:
        load(SPEC, tool_dir_override=tools_dir, settings=settings)
    assert "bash" in str(ei.value)


def test_with_meta(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0")
    loaded = load(SPEC, with_meta=True, tool_dir_override=tools_dir, settings=settings)
    assert isinstance(loaded, LoadedTool)
    assert loaded.meta.name == "@zack/summarize"
    assert loaded.meta.version == "0.1.0"
    assert loaded.meta.description == "Test summarizer"
    assert loaded.meta.inputs["required"] == ["text"]
    assert asyncio.run(loaded.func({"text": "a"})) == {"summary": "A"}


def test_nonzero_exit_surfaces_code_and_stderr(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0", script=FAIL_PY)
    fn = load(SPEC, tool_dir_override=tools_dir, settings=settings)
    with pytest.raises(ExecutionError) as ei:
        asyncio.run(fn({}))
    assert "Tool exited with code 2" in str(ei.value)
    assert "boom" in str(ei.value)


def test_repeated_calls_are_independent(tools_dir: Path, settings):
    root = write_tool(tools_dir, "@zack/summarize", "0.1.0")
    fn = load(SPEC, tool_dir_override=tools_dir, settings=settings)
    first = asyncio.run(fn({"text": "same"}))
    second = asyncio.run(fn({"text": "same"}))
    assert first == second == {"summary": "SAME"}
    assert run_dirs(root) == []


def test_concurrent_calls(tools_dir: Path, settings):
    root = write_tool(tools_dir, "@zack/summarize", "0.1.0")
    fn = load(SPEC, tool_dir_override=tools_dir, settings=settings)

    async def main():
        return await asyncio.gather(*(fn({"text": f"t{i}"}) for i in range(4)))

    assert asyncio.run(main()) == [{"summary": f"T{i}"} for i in range(4)]
    assert run_dirs(root) == []


def test_timeout_precedence(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0", entrypoint={"timeout_ms": 4321})
    assert load(SPEC, tool_dir_override=tools_dir, settings=settings).timeout_ms == 4321
    assert load(SPEC, timeout_ms=99, tool_dir_override=tools_dir, settings=settings).timeout_ms == 99
    write_tool(tools_dir, "@zack/summarize", "0.2.0", entrypoint={"timeout_ms": None})
    fn = load(
        "@zack/summarize@0.2.0",
        tool_dir_override=tools_dir,
        settings=settings.with_overrides(default_timeout_ms=777),
    )
    assert fn.timeout_ms == 777


def test_range_and_latest(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0")
    write_tool(tools_dir, "@zack/summarize", "0.1.7")
    write_tool(tools_dir, "@zack/summarize", "0.2.0")
    assert load_with_meta("@zack/summarize@^0.1.0", tool_dir_override=tools_dir, settings=settings).meta.version == "0.1.7"
    assert load_with_meta("@zack/summarize@latest", tool_dir_override=tools_dir, settings=settings).meta.version == "0.2.0"


def test_caller_env_reaches_tool(tools_dir: Path, settings):
    script = """
    import json, os, sys
    sys.stdin.read()
    print(json.dumps({"token": os.environ.get("API_TOKEN"), "mode": os.environ.get("MODE")}))
    """
    write_tool(tools_dir, "@zack/summarize", "0.1.0", script=script, entrypoint={"env": {"MODE": "manifest"}})
    fn = load(SPEC, tool_dir_override=tools_dir, env={"API_TOKEN": "t0k"}, settings=settings)
    assert asyncio.run(fn({})) == {"token": "t0k", "mode": "manifest"}


def test_runtime_mismatch_rejected(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0", runtime={"type": "node"})
    with pytest.raises(RuntimeMismatchError):
        load(SPEC, tool_dir_override=tools_dir, settings=settings)


def test_load_errors(tools_dir: Path, settings):
    with pytest.raises(InvalidSpecifierError):
        load("@zack/summarize", settings=settings)
    with pytest.raises(ToolNotFoundError):
        load(SPEC, tool_dir_override=tools_dir, settings=settings)
    root = tools_dir / "@zack" / "summarize" / "0.1.0"
    root.mkdir(parents=True)
    (root / "agent.json").write_text("{}", encoding="utf-8")
    with pytest.raises(ManifestError):
        load(SPEC, tool_dir_override=tools_dir, settings=settings)


def test_repr_names_tool(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.1.0", command=Path(sys.executable).name)
    fn = load(SPEC, tool_dir_override=tools_dir, settings=settings.with_overrides(python_override=sys.executable))
    assert "@zack/summarize@0.1.0" in repr(fn)
    assert fn.interpreter.command == sys.executable


@pytest.mark.parametrize("bad", [0, -5])
def test_non_positive_timeout_is_rejected(tools_dir: Path, settings, bad):
    write_tool(tools_dir, "@zack/summarize", "0.1.0")
    with pytest.raises(ConfigError, match="positive integer"):
        load(SPEC, timeout_ms=bad, tool_dir_override=tools_dir, settings=settings)


def test_manifest_env_cannot_pick_interpreter(tools_dir: Path, settings):
    write_tool(
        tools_dir,
        "@zack/summarize",
        "0.1.0",
        entrypoint={"env": {"AGENTPM_PYTHON": "/nonexistent/python3.99"}},
    )
    fn = load(SPEC, tool_dir_override=tools_dir, settings=settings)
    assert fn.interpreter.command != "/nonexistent/python3.99"
    assert asyncio.run(fn({"text": "ok"})) == {"summary": "OK"}


def test_settings_log_level_overrides_import_time_level(monkeypatch, tools_dir: Path, settings):
    monkeypatch.setenv("AGENTPM_LOG_LEVEL", "ERROR")
    write_tool(tools_dir, "@zack/summarize", "0.1.0")
    core = logging.getLogger("agentpm.core")
    previous = core.level
    try:
        load(SPEC, tool_dir_override=tools_dir, settings=settings.with_overrides(log_level="info"))
        assert core.level == logging.INFO
        load(SPEC, tool_dir_override=tools_dir, settings=settings.with_overrides(debug=True))
        assert core.level == logging.DEBUG
    finally:
        core.setLevel(previous)
