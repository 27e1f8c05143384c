"""Version token classification and installed-version selection.

A version token is one of:

- ``exact``: a strict semantic version (``1.2.3``, ``1.0.0-rc.1``, ``2.0.0+build.5``)
- ``latest``: the literal string
- ``range``: an npm-style range (``^1.2.0``, ``~1.4``, ``1.x``, ``>=1.2 <2``,
  ``1.0.0 - 1.4.0``, ``^1 || ^2``) or a PEP 440 specifier set (``>=1.0,<2.0``,
  ``~=1.4``, ``==1.*``)

Installed version directories are semver.org strings and are ordered by semver
precedence. Ranges never match prereleases, so npm ranges are desugared into
``packaging`` specifier sets over plain ``major.minor.patch`` releases.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import Version

from .errors import InvalidSpecifierError

LATEST = "latest"

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$",
    re.ASCII,
)

_PARTIAL_RE = re.compile(
    r"^v?(?P<major>\d+|[xX*])(?:\.(?P<minor>\d+|[xX*]))?(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$",
    re.ASCII,
)
_COMPARATOR_RE = re.compile(r"^(?P<op><=|>=|<|>|=|\^|~>|~)?\s*(?P<ver>\S+)$")
_PEP440_OPS = ("~=", "==", "!=", "===")
_HYPHEN_RE = re.compile(r"^(?P<lo>\S+)\s+-\s+(?P<hi>\S+)$")

Partial = Tuple[Optional[int], Optional[int], Optional[int], Optional[str]]


@dataclass(frozen=True)
class SemVer:
    """A semver.org version. Build metadata is kept but never affects precedence."""

    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> Optional["SemVer"]:
        m = SEMVER_RE.match(raw)
        if not m:
            return None
        pre = m.group(4)
        return cls(
            major=int(m.group(1)),
            minor=int(m.group(2)),
            patch=int(m.group(3)),
            prerelease=tuple(pre.split(".")) if pre else (),
            build=m.group(5),
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def release(self) -> Version:
        return Version(f"{self.major}.{self.minor}.{self.patch}")

    @property
    def precedence(self) -> tuple:
        """Sort key: numeric identifiers sort below alphanumeric ones and a release
        sorts above all of its prereleases."""
        if not self.prerelease:
            return (self.major, self.minor, self.patch, (1,))
        idents = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in self.prerelease)
        return (self.major, self.minor, self.patch, (0, idents))


def is_exact_version(token: str) -> bool:
    return bool(SEMVER_RE.match(token))


def parse_version(raw: str) -> Optional[SemVer]:
    """Parse an installed version directory name; ``None`` when it is not semver."""
    return SemVer.parse(raw)


def _parse_partial(raw: str) -> Partial:
    m = _PARTIAL_RE.match(raw)
    if not m:
        raise ValueError(f"bad version {raw!r}")

    def _num(part: Optional[str]) -> Optional[int]:
        if part is None or part in ("x", "X", "*"):
            return None
        return int(part)

    major, minor, patch = _num(m.group("major")), _num(m.group("minor")), _num(m.group("patch"))
    # "1.x.3" is not meaningful; everything after the first wildcard is a wildcard
    if major is None:
        minor = patch = None
    elif minor is None:
        patch = None
    pre = m.group("pre") if patch is not None else None
    return major, minor, patch, pre


def _fmt(major: int, minor: int, patch: int) -> str:
    return f"{major}.{minor}.{patch}"


def _bound(op: str, major: int, minor: int, patch: int, pre: Optional[str] = None) -> str:
    """One comparator clause over releases.

    A prerelease bound moves to the release it precedes, so ``>=1.2.0-rc.1``
    becomes ``>=1.2.0`` and ``<1.2.0-rc.1`` becomes ``<1.2.0``.
    """
    release = _fmt(major, minor, patch)
    if not pre:
        return f"{op}{release}"
    if op in (">=", ">"):
        return f">={release}"
    if op in ("<", "<="):
        return f"<{release}"
    # "==" on a prerelease matches no release
    return "<0.0.0"


def _x_range(p: Partial) -> List[str]:
    major, minor, patch, pre = p
    if major is None:
        return []
    if minor is None:
        return [f">={_fmt(major, 0, 0)}", f"<{_fmt(major + 1, 0, 0)}"]
    if patch is None:
        return [f">={_fmt(major, minor, 0)}", f"<{_fmt(major, minor + 1, 0)}"]
    return [_bound("==", major, minor, patch, pre)]


def _caret(p: Partial) -> List[str]:
    major, minor, patch, pre = p
    if major is None:
        return []
    lo = _bound(">=", major, minor or 0, patch or 0, pre)
    if major > 0 or minor is None:
        hi = _fmt(major + 1, 0, 0)
    elif minor > 0 or patch is None:
        hi = _fmt(0, minor + 1, 0)
    else:
        hi = _fmt(0, 0, patch + 1)
    return [lo, f"<{hi}"]


def _tilde(p: Partial) -> List[str]:
    major, minor, patch, pre = p
    if major is None:
        return []
    lo = _bound(">=", major, minor or 0, patch or 0, pre)
    hi = _fmt(major + 1, 0, 0) if minor is None else _fmt(major, minor + 1, 0)
    return [lo, f"<{hi}"]


def _primitive(op: str, p: Partial) -> List[str]:
    major, minor, patch, pre = p
    if major is None:
        # ">=*" and friends match everything, "<*" matches nothing
        return ["<0.0.0"] if op in ("<", ">") else []
    if patch is not None:
        return [_bound(op, major, minor, patch, pre)]
    # partial versions round the same way npm does
    if op == ">=":
        return [f">={_fmt(major, minor or 0, 0)}"]
    if op == "<":
        return [f"<{_fmt(major, minor or 0, 0)}"]
    if op == ">":
        nxt = _fmt(major + 1, 0, 0) if minor is None else _fmt(major, minor + 1, 0)
        return [f">={nxt}"]
    # "<="
    nxt = _fmt(major + 1, 0, 0) if minor is None else _fmt(major, minor + 1, 0)
    return [f"<{nxt}"]


def _hyphen(lo_raw: str, hi_raw: str) -> List[str]:
    lo = _parse_partial(lo_raw)
    hi = _parse_partial(hi_raw)
    clauses: List[str] = []
    if lo[0] is not None:
        clauses.append(_bound(">=", lo[0], lo[1] or 0, lo[2] or 0, lo[3]))
    if hi[0] is not None:
        if hi[2] is not None:
            clauses.append(_bound("<=", hi[0], hi[1], hi[2], hi[3]))
        elif hi[1] is not None:
            clauses.append(f"<{_fmt(hi[0], hi[1] + 1, 0)}")
        else:
            clauses.append(f"<{_fmt(hi[0] + 1, 0, 0)}")
    return clauses


def _npm_set(expr: str) -> SpecifierSet:
    """Translate one npm comparator set (no ``||``) into a SpecifierSet."""
    expr = expr.strip()
    if expr in ("", "*", "x", "X"):
        return SpecifierSet("")
    hm = _HYPHEN_RE.match(expr)
    if hm:
        return SpecifierSet(",".join(_hyphen(hm.group("lo"), hm.group("hi"))))
    # allow ">= 1.2.3" with a space between operator and version
    tokens = re.sub(r"(<=|>=|<|>|=|\^|~>|~)\s+", r"\1", expr).split()
    clauses: List[str] = []
    for tok in tokens:
        m = _COMPARATOR_RE.match(tok)
        if not m:
            raise ValueError(f"bad comparator {tok!r}")
        op = m.group("op") or ""
        p = _parse_partial(m.group("ver"))
        if op in ("", "="):
            clauses += _x_range(p)
        elif op == "^":
            clauses += _caret(p)
        elif op in ("~", "~>"):
            clauses += _tilde(p)
        else:
            clauses += _primitive(op, p)
    return SpecifierSet(",".join(clauses))


@dataclass(frozen=True)
class VersionRange:
    raw: str
    alternatives: Tuple[SpecifierSet, ...]

    def contains(self, version: Union[str, SemVer]) -> bool:
        v = SemVer.parse(version) if isinstance(version, str) else version
        if v is None or v.is_prerelease:
            return False
        return any(s.contains(v.release, prereleases=False) for s in self.alternatives)


def parse_range(expr: str) -> VersionRange:
    """Parse ``expr`` into a VersionRange or raise ``ValueError``."""
    raw = expr.strip()
    if not raw:
        raise ValueError("empty range")
    try:
        if raw.startswith(_PEP440_OPS) or "," in raw:
            return VersionRange(raw, (SpecifierSet(raw),))
        return VersionRange(raw, tuple(_npm_set(part) for part in raw.split("||")))
    except InvalidSpecifier as e:
        raise ValueError(str(e)) from e


@dataclass(frozen=True)
class VersionToken:
    kind: str  # "exact" | "latest" | "range"
    raw: str
    range: Optional[VersionRange] = None

    @property
    def is_exact(self) -> bool:
        return self.kind == "exact"


def classify_version_token(token: str, specifier: Optional[str] = None) -> VersionToken:
    if token == LATEST:
        return VersionToken("latest", token)
    if is_exact_version(token):
        return VersionToken("exact", token)
    try:
        return VersionToken("range", token, parse_range(token))
    except ValueError as e:
        raise InvalidSpecifierError(
            specifier or token,
            f'Version "{token}" is not an exact version, a semver range or "latest" ({e}).',
        ) from e


def sort_versions(raw_versions: Iterable[str]) -> List[str]:
    """Sort ascending by semver precedence; other names go last in lexical order."""
    parsed = []
    broken = []
    for raw in set(raw_versions):
        v = parse_version(raw)
        if v is None:
            broken.append(raw)
        else:
            parsed.append((v.precedence, raw))
    parsed.sort()
    return [raw for _v, raw in parsed] + sorted(broken)


def select_version(token: VersionToken, installed: Iterable[str]) -> Optional[str]:
    """Pick the best installed version for ``token``; ``None`` when nothing fits."""
    installed = list(installed)
    if token.kind == "exact":
        return token.raw if token.raw in installed else None
    best: Optional[Tuple[tuple, str]] = None
    for raw in installed:
        v = parse_version(raw)
        if v is None:
            continue
        if token.kind == "range" and not token.range.contains(v):
            continue
        key = (v.precedence, raw)
        if best is None or key > best:
            best = key
    return best[1] if best else None


__all__ = [
    "LATEST",
    "VersionToken",
    "VersionRange",
    "SemVer",
    "classify_version_token",
    "is_exact_version",
    "parse_range",
    "parse_version",
    "select_version",
    "sort_versions",
]
