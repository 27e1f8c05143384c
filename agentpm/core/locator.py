"""Filesystem discovery of installed tool packages.

Layout: ``<search-root>/<name-directory>/<version>/agent.json``.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from .errors import InvalidSpecifierError, ToolNotFoundError
from .logging import core_logger
from .manifest import MANIFEST_FILENAME
from .semver import VersionToken, classify_version_token, select_version, sort_versions
from .settings import Settings

ListDir = Callable[[Path], Iterable[str]]
IsFile = Callable[[Path], bool]

SCOPE_SEPARATORS = ("__", "-")


@dataclass(frozen=True)
class PackageSpecifier:
    raw: str
    name: str
    version_token: str

    @property
    def scope(self) -> Optional[str]:
        if "/" not in self.name:
            return None
        return self.name.split("/", 1)[0].lstrip("@")

    @property
    def bare_name(self) -> str:
        return self.name.split("/", 1)[-1]


@dataclass(frozen=True)
class LocatedTool:
    root: Path
    manifest_path: Path
    name: str
    version: str
    search_root: Path


def parse_specifier(spec: str) -> PackageSpecifier:
    """Split ``@scope/name@version`` on its last ``@``."""
    at = spec.rfind("@")
    if at <= 0 or at == len(spec) - 1:
        raise InvalidSpecifierError(spec)
    name, version = spec[:at], spec[at + 1:]
    if not name.strip("@/") or name.endswith("/") or "//" in name:
        raise InvalidSpecifierError(spec)
    return PackageSpecifier(raw=spec, name=name, version_token=version)


def name_dir_candidates(name: str) -> List[str]:
    """On-disk spellings to try for ``name``, most specific first.

    Scope markers like ``@`` are not safe on every filesystem, so a scoped name
    is also tried without the marker and flattened with alternate separators.
    """
    if "/" not in name:
        return [name]
    scope, bare = name.split("/", 1)
    plain = scope.lstrip("@")
    out: List[str] = []
    for cand in (f"{scope}/{bare}", f"{plain}/{bare}", *(f"{plain}{sep}{bare}" for sep in SCOPE_SEPARATORS)):
        if cand not in out:
            out.append(cand)
    return out


def _default_listdir(path: Path) -> Iterable[str]:
    try:
        return os.listdir(path)
    except (FileNotFoundError, NotADirectoryError, PermissionError):
        return []


class ToolLocator:
    def __init__(self, settings: Settings, listdir: Optional[ListDir] = None, isfile: Optional[IsFile] = None):
        self.settings = settings
        self._listdir = listdir or _default_listdir
        self._isfile = isfile or os.path.isfile

    def search_roots(self, override_root: Union[str, Path, None] = None) -> List[Path]:
        s = self.settings
        raw: List[Union[str, Path, None]] = [override_root, s.tool_dir, s.project_tools_dir, s.home_tools_dir]
        roots: List[Path] = []
        for base in raw:
            if not base:
                continue
            p = Path(base).expanduser()
            if not p.is_absolute():
                p = s.cwd / p
            p = Path(os.path.normpath(p))
            if p not in roots:
                roots.append(p)
        return roots

    def installed_versions(self, root: Path, name: str) -> List[str]:
        """Versions of ``name`` under ``root`` whose directory holds a manifest."""
        found = set()
        for cand in name_dir_candidates(name):
            base = root / cand
            for entry in self._listdir(base):
                if self._isfile(base / entry / MANIFEST_FILENAME):
                    found.add(entry)
        return sort_versions(found)

    def _match_in_root(self, root: Path, spec: PackageSpecifier, token: VersionToken) -> Optional[LocatedTool]:
        if token.is_exact:
            for cand in name_dir_candidates(spec.name):
                manifest = root / cand / token.raw / MANIFEST_FILENAME
                if self._isfile(manifest):
                    return LocatedTool(manifest.parent, manifest, spec.name, token.raw, root)
            return None
        # version -> name directory; the earlier spelling wins on duplicates
        owners: Dict[str, Path] = {}
        for cand in name_dir_candidates(spec.name):
            base = root / cand
            for entry in self._listdir(base):
                if entry not in owners and self._isfile(base / entry / MANIFEST_FILENAME):
                    owners[entry] = base
        chosen = select_version(token, owners)
        if chosen is None:
            return None
        manifest = owners[chosen] / chosen / MANIFEST_FILENAME
        return LocatedTool(manifest.parent, manifest, spec.name, chosen, root)

    def locate(self, spec: Union[str, PackageSpecifier], override_root: Union[str, Path, None] = None) -> LocatedTool:
        parsed = spec if isinstance(spec, PackageSpecifier) else parse_specifier(spec)
        token = classify_version_token(parsed.version_token, parsed.raw)
        roots = self.search_roots(override_root)
        for root in roots:
            hit = self._match_in_root(root, parsed, token)
            if hit is not None:
                core_logger.debug(f"[locate] {parsed.raw} -> {hit.manifest_path}")
                return hit
            core_logger.debug(f"[locate] {parsed.raw} not in {root}")
        raise ToolNotFoundError(parsed.raw, [str(r) for r in roots])


__all__ = [
    "PackageSpecifier",
    "LocatedTool",
    "ToolLocator",
    "parse_specifier",
    "name_dir_candidates",
]
