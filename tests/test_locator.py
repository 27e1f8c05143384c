from pathlib import Path, PurePosixPath

import pytest

from agentpm.core.errors import InvalidSpecifierError, ToolNotFoundError
from agentpm.core.locator import ToolLocator, name_dir_candidates, parse_specifier
from agentpm.core.settings import Settings

from conftest import write_tool


def test_parse_specifier():
    s = parse_specifier("@zack/summarize@0.1.0")
    assert s.name == "@zack/summarize"
    assert s.version_token == "0.1.0"
    assert s.scope == "zack"
    assert s.bare_name == "summarize"
    assert parse_specifier("plain@latest").scope is None


@pytest.mark.parametrize("spec", ["@zack/summarize", "zack/summarize@", "summarize", "@0.1.0", "@/@1.0.0", ""])
def test_parse_specifier_rejects(spec):
    with pytest.raises(InvalidSpecifierError):
        parse_specifier(spec)


def test_name_dir_candidates():
    assert name_dir_candidates("@zack/summarize") == [
        "@zack/summarize",
        "zack/summarize",
        "zack__summarize",
        "zack-summarize",
    ]
    assert name_dir_candidates("zack/summarize") == ["zack/summarize", "zack__summarize", "zack-summarize"]
    assert name_dir_candidates("summarize") == ["summarize"]


def test_search_roots_order_and_dedupe(tmp_path: Path):
    home = tmp_path / "home"
    env_dir = tmp_path / "env-tools"
    settings = Settings.from_env(
        environ={"HOME": str(home), "AGENTPM_TOOL_DIR": str(env_dir)},
        cwd=tmp_path,
    )
    roots = ToolLocator(settings).search_roots(env_dir)
    assert roots[0] == env_dir
    assert roots.count(env_dir) == 1
    assert roots[-1] == home / ".agentpm" / "tools"
    assert settings.project_tools_dir in roots


def test_project_local_root_found_by_walking_up(tmp_path: Path):
    project = tmp_path / "proj"
    nested = project / "src" / "pkg"
    nested.mkdir(parents=True)
    (project / ".agentpm" / "tools").mkdir(parents=True)
    write_tool(project / ".agentpm" / "tools", "@zack/summarize", "0.1.0")
    settings = Settings.from_env(environ={}, cwd=nested)
    hit = ToolLocator(settings).locate("@zack/summarize@0.1.0")
    assert hit.search_root == (project / ".agentpm" / "tools").resolve()


def test_exact_respects_root_priority(tmp_path: Path, settings):
    first, second = tmp_path / "a", tmp_path / "b"
    write_tool(first, "@zack/summarize", "0.1.0")
    write_tool(second, "@zack/summarize", "0.1.0")
    locator = ToolLocator(settings.with_overrides(tool_dir=str(second)))
    assert locator.locate("@zack/summarize@0.1.0", first).search_root == first
    assert locator.locate("@zack/summarize@0.1.0").search_root == second


def test_alternate_spellings(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "0.2.0", name_dir="zack__summarize")
    hit = ToolLocator(settings).locate("@zack/summarize@0.2.0", tools_dir)
    assert hit.root == tools_dir / "zack__summarize" / "0.2.0"
    assert hit.manifest_path.name == "agent.json"


def test_range_ignores_dirs_without_manifest(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "1.0.0")
    write_tool(tools_dir, "@zack/summarize", "1.1.0", name_dir="zack-summarize")
    (tools_dir / "@zack" / "summarize" / "1.9.0").mkdir(parents=True)
    locator = ToolLocator(settings)
    assert locator.installed_versions(tools_dir, "@zack/summarize") == ["1.0.0", "1.1.0"]
    assert locator.locate("@zack/summarize@^1.0.0", tools_dir).version == "1.1.0"
    assert locator.locate("@zack/summarize@latest", tools_dir).version == "1.1.0"
    assert locator.locate("@zack/summarize@~1.0.0", tools_dir).version == "1.0.0"


def test_range_first_root_with_match_wins(tmp_path: Path, settings):
    low, high = tmp_path / "low", tmp_path / "high"
    write_tool(low, "@zack/summarize", "1.0.0")
    write_tool(high, "@zack/summarize", "1.5.0")
    locator = ToolLocator(settings.with_overrides(tool_dir=str(high)))
    assert locator.locate("@zack/summarize@^1", low).version == "1.0.0"
    assert locator.locate("@zack/summarize@^1.2", low).version == "1.5.0"


def test_not_found_names_searched_roots(tools_dir: Path, settings):
    with pytest.raises(ToolNotFoundError) as ei:
        ToolLocator(settings).locate("@zack/missing@1.0.0", tools_dir)
    assert str(tools_dir) in str(ei.value)
    assert "@zack/missing@1.0.0" in str(ei.value)


def test_invalid_version_fails_before_filesystem(settings):
    def boom(_path):
        raise AssertionError("filesystem touched")

    locator = ToolLocator(settings, listdir=boom, isfile=boom)
    with pytest.raises(InvalidSpecifierError):
        locator.locate("@zack/summarize@not-a-version")


def test_injected_listing_is_pure(settings):
    tree = {
        "/r/@zack/summarize": ["0.1.0", "0.2.0", "0.3.0", "notes"],
        "/r/zack__summarize": ["0.4.0"],
    }
    manifests = {
        "/r/@zack/summarize/0.1.0/agent.json",
        "/r/@zack/summarize/0.3.0/agent.json",
        "/r/zack__summarize/0.4.0/agent.json",
    }
    locator = ToolLocator(
        settings,
        listdir=lambda p: tree.get(PurePosixPath(p).as_posix(), []),
        isfile=lambda p: PurePosixPath(p).as_posix() in manifests,
    )
    assert locator.installed_versions(Path("/r"), "@zack/summarize") == ["0.1.0", "0.3.0", "0.4.0"]


def test_range_and_latest_skip_semver_prereleases(tools_dir: Path, settings):
    write_tool(tools_dir, "@zack/summarize", "1.0.0")
    write_tool(tools_dir, "@zack/summarize", "1.0.0-1")
    write_tool(tools_dir, "@zack/summarize", "1.0.1-alpha.beta")
    locator = ToolLocator(settings)
    assert locator.installed_versions(tools_dir, "@zack/summarize") == ["1.0.0-1", "1.0.0", "1.0.1-alpha.beta"]
    assert locator.locate("@zack/summarize@^1.0.0", tools_dir).version == "1.0.0"
    assert locator.locate("@zack/summarize@latest", tools_dir).version == "1.0.1-alpha.beta"
    assert locator.locate("@zack/summarize@1.0.0-1", tools_dir).version == "1.0.0-1"
