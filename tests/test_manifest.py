import json
from pathlib import Path

import pytest

from agentpm.core.errors import ManifestError
from agentpm.core.manifest import parse_manifest, read_manifest


def _write(tmp_path: Path, content: str) -> Path:
    p = tmp_path / "agent.json"
    p.write_text(content, encoding="utf-8")
    return p


def test_full_manifest(tmp_path: Path):
    p = _write(
        tmp_path,
        json.dumps(
            {
                "name": "@zack/summarize",
                "version": "0.1.0",
                "description": "Summarize text",
                "inputs": {"type": "object", "properties": {"text": {"type": "string"}}},
                "outputs": {"type": "object"},
                "runtime": {"type": "python", "version": "3.11"},
                "entrypoint": {
                    "command": "python",
                    "args": ["main.py", "--fast"],
                    "cwd": "src",
                    "timeout_ms": 5000,
                    "env": {"MODE": "x", "LEVEL": 3},
                },
                "kind": "tool",
            }
        ),
    )
    m = read_manifest(p)
    assert m.name == "@zack/summarize"
    assert m.root == tmp_path
    assert m.entrypoint.args == ("main.py", "--fast")
    assert m.entrypoint.cwd == "src"
    assert m.entrypoint.timeout_ms == 5000
    assert dict(m.entrypoint.env) == {"MODE": "x", "LEVEL": "3"}
    assert m.runtime.type == "python"
    assert m.runtime.version == "3.11"
    assert m.extra["kind"] == "tool"


def test_minimal_manifest_defaults(tmp_path: Path):
    m = parse_manifest({"entrypoint": {"command": "node"}}, tmp_path / "agent.json")
    assert m.name == ""
    assert m.entrypoint.args == ()
    assert m.entrypoint.cwd is None
    assert m.entrypoint.timeout_ms is None
    assert m.runtime is None
    assert m.meta().to_dict() == {"name": "", "version": ""}


def test_bad_optional_fields_are_ignored(tmp_path: Path):
    m = parse_manifest(
        {"entrypoint": {"command": "node", "timeout_ms": "soon", "env": ["A"]}, "runtime": "node"},
        tmp_path / "agent.json",
    )
    assert m.entrypoint.timeout_ms is None
    assert dict(m.entrypoint.env) == {}
    assert m.runtime is None


def test_meta_is_a_copy(tmp_path: Path):
    m = parse_manifest(
        {"name": "t", "version": "1.0.0", "inputs": {"type": "object"}, "entrypoint": {"command": "node"}},
        tmp_path / "agent.json",
    )
    meta = m.meta()
    meta.inputs["type"] = "mutated"
    assert m.inputs == {"type": "object"}
    assert m.meta().to_dict()["inputs"] == {"type": "object"}


@pytest.mark.parametrize(
    "content,reason",
    [
        ("{not json", "is not valid JSON"),
        ("[1, 2]", "must be a JSON object"),
        ('{"name": "x"}', "missing entrypoint.command"),
        ('{"entrypoint": {"command": ""}}', "missing entrypoint.command"),
        ('{"entrypoint": {"command": 7}}', "missing entrypoint.command"),
    ],
)
def test_invalid_manifests(tmp_path: Path, content, reason):
    p = _write(tmp_path, content)
    with pytest.raises(ManifestError) as ei:
        read_manifest(p)
    assert reason in str(ei.value)
    assert str(p) in str(ei.value)


def test_unreadable_manifest(tmp_path: Path):
    with pytest.raises(ManifestError, match="cannot be read"):
        read_manifest(tmp_path / "missing" / "agent.json")
