import json
import os
import sys
import textwrap
from pathlib import Path

import pytest

from agentpm.core.settings import Settings

SUMMARIZE_PY = """
import json, sys
data = json.loads(sys.stdin.read() or "{}")
print("stdout noise before json")
print("stderr debug line", file=sys.stderr)
sys.stdout.write(json.dumps({"summary": data.get("text", "").upper()}))
"""

FAIL_PY = """
import sys
sys.stderr.write("boom")
sys.exit(2)
"""


def write_tool(
    base: Path,
    name: str,
    version: str,
    script: str = SUMMARIZE_PY,
    command: str = sys.executable,
    script_file: str = "tool.py",
    name_dir: str = None,
    **manifest_extra,
) -> Path:
    """Create <base>/<name_dir or name>/<version>/{agent.json, script} and return the version dir."""
    root = base / (name_dir or name) / version
    root.mkdir(parents=True, exist_ok=True)
    (root / script_file).write_text(textwrap.dedent(script), encoding="utf-8")
    entrypoint = {"command": command, "args": [script_file], "cwd": ".", "timeout_ms": 30000}
    entrypoint.update(manifest_extra.pop("entrypoint", {}))
    manifest = {
        "name": name,
        "version": version,
        "description": "Test summarizer",
        "inputs": {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]},
        "outputs": {"type": "object", "properties": {"summary": {"type": "string"}}, "required": ["summary"]},
        "entrypoint": entrypoint,
        "kind": "tool",
    }
    manifest.update(manifest_extra)
    (root / "agent.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    return root


@pytest.fixture
def tools_dir(tmp_path: Path) -> Path:
    d = tmp_path / "tools"
    d.mkdir()
    return d


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    environ = {"PATH": os.environ.get("PATH", ""), "HOME": str(home)}
    if sys.platform.startswith("win"):
        for key in ("SYSTEMROOT", "PATHEXT"):
            if key in os.environ:
                environ[key] = os.environ[key]
    return Settings.from_env(environ=environ, cwd=work)


def run_dirs(tool_root: Path):
    run_root = tool_root / "run"
    return sorted(run_root.iterdir()) if run_root.exists() else []
