"""Affected version ranges and version comparison for each package ecosystem."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from itertools import zip_longest
from typing import Any

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from .store import FeedError

RANGE_TYPE_GIT = "GIT"

ECOSYSTEM_GO = "Go"
ECOSYSTEM_NPM = "npm"
ECOSYSTEM_PYPI = "PyPI"
ECOSYSTEM_RUBYGEMS = "RubyGems"
ECOSYSTEM_CRATES = "crates.io"
ECOSYSTEM_PACKAGIST = "Packagist"
ECOSYSTEM_MAVEN = "Maven"
ECOSYSTEM_NUGET = "NuGet"


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _cmp_prerelease(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    """Order pre-release identifiers; a version without one ranks higher."""
    if a == b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    for x, y in zip(a, b):
        if x == y:
            continue
        x_num, y_num = x.isdigit(), y.isdigit()
        if x_num and y_num:
            result = _sign(int(x) - int(y))
            if result:
                return result
            continue
        if x_num:
            return -1
        if y_num:
            return 1
        return -1 if x < y else 1
    return _sign(len(a) - len(b))


def _cmp_numbers(a: tuple[int, ...], b: tuple[int, ...]) -> int:
    for x, y in zip_longest(a, b, fillvalue=0):
        if x != y:
            return -1 if x < y else 1
    return 0


_SEMVER = re.compile(
    r"v?(\d+)(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?"
    r"(?:\+[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*)?"
)


def _parse_semver(text: str) -> tuple[tuple[int, ...], tuple[str, ...]]:
    match = _SEMVER.fullmatch(text.strip())
    if not match:
        raise ValueError(f"invalid semantic version: {text!r}")
    numbers = tuple(int(g or 0) for g in match.group(1, 2, 3))
    pre = tuple(match.group(4).split(".")) if match.group(4) else ()
    return numbers, pre


_GENERIC = re.compile(
    r"v?(\d+(?:\.\d+)*)(?:-([0-9A-Za-z\-.]+))?(?:\+[0-9A-Za-z\-.]+)?"
)


def _parse_generic(text: str) -> tuple[tuple[int, ...], tuple[str, ...]]:
    match = _GENERIC.fullmatch(text.strip())
    if not match:
        raise ValueError(f"malformed version: {text!r}")
    numbers = tuple(int(n) for n in match.group(1).split("."))
    pre = tuple(p for p in match.group(2).split(".") if p) if match.group(2) else ()
    return numbers, pre


def _cmp_numbered(a: tuple, b: tuple) -> int:
    return _cmp_numbers(a[0], b[0]) or _cmp_prerelease(a[1], b[1])


_GEM = re.compile(r"[0-9]+(?:\.[0-9a-zA-Z]+)*(?:-[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*)?")


def _parse_gem(text: str) -> list[int | str]:
    text = text.strip() or "0"
    if not _GEM.fullmatch(text):
        raise ValueError(f"malformed version number string {text}")
    text = text.replace("-", ".pre.")
    segments: list[int | str] = [
        int(s) if s.isdigit() else s for s in re.findall(r"[0-9]+|[a-zA-Z]+", text)
    ]
    while len(segments) > 1 and segments[-1] == 0:
        segments.pop()
    return segments


def _cmp_gem(a: list[int | str], b: list[int | str]) -> int:
    for x, y in zip_longest(a, b, fillvalue=0):
        if x == y:
            continue
        if isinstance(x, str) and isinstance(y, int):
            return -1
        if isinstance(x, int) and isinstance(y, str):
            return 1
        return -1 if x < y else 1  # type: ignore[operator]
    return 0


_MAVEN_QUALIFIERS = {
    "alpha": 0,
    "a": 0,
    "beta": 1,
    "b": 1,
    "milestone": 2,
    "m": 2,
    "rc": 3,
    "cr": 3,
    "snapshot": 4,
    "": 5,
    "ga": 5,
    "final": 5,
    "release": 5,
    "sp": 6,
}
_MAVEN_RELEASE = 5


def _maven_qualifier(name: str) -> tuple[int, str]:
    rank = _MAVEN_QUALIFIERS.get(name)
    return (rank, "") if rank is not None else (len(_MAVEN_QUALIFIERS), name)


def _is_maven_null(item: int | str) -> bool:
    return item == 0 or (isinstance(item, str) and _maven_qualifier(item)[0] == _MAVEN_RELEASE)


def _parse_maven(text: str) -> list[int | str]:
    items: list[int | str] = [
        int(t) if t.isdigit() else t for t in re.findall(r"\d+|[a-z]+", text.strip().lower())
    ]
    if not items:
        raise ValueError(f"malformed version: {text!r}")
    while len(items) > 1 and _is_maven_null(items[-1]):
        items.pop()
    return items


def _cmp_maven(a: list[int | str], b: list[int | str]) -> int:
    for x, y in zip_longest(a, b, fillvalue=None):
        if x is None:
            x = 0 if isinstance(y, int) else ""
        if y is None:
            y = 0 if isinstance(x, int) else ""
        if isinstance(x, int) and isinstance(y, int):
            result = _sign(x - y)
        elif isinstance(x, int):
            result = 1
        elif isinstance(y, int):
            result = -1
        else:
            kx, ky = _maven_qualifier(x), _maven_qualifier(y)
            result = 0 if kx == ky else (-1 if kx < ky else 1)
        if result:
            return result
    return 0


@dataclass(frozen=True)
class _Scheme:
    parse: Callable[[str], Any]
    compare: Callable[[Any, Any], int]


_SEMVER_SCHEME = _Scheme(_parse_semver, _cmp_numbered)
_DEFAULT_SCHEME = _Scheme(_parse_generic, _cmp_numbered)

_SCHEMES = {
    ECOSYSTEM_NPM: _SEMVER_SCHEME,
    ECOSYSTEM_GO: _SEMVER_SCHEME,
    ECOSYSTEM_CRATES: _SEMVER_SCHEME,
    ECOSYSTEM_NUGET: _SEMVER_SCHEME,
    ECOSYSTEM_RUBYGEMS: _Scheme(_parse_gem, _cmp_gem),
    ECOSYSTEM_MAVEN: _Scheme(_parse_maven, _cmp_maven),
    ECOSYSTEM_PACKAGIST: _DEFAULT_SCHEME,
}

_CONSTRAINT = re.compile(r"(==|!=|>=|<=|=|>|<)?\s*(\S+)")

_OPERATORS: dict[str, Callable[[int], bool]] = {
    "=": lambda c: c == 0,
    "==": lambda c: c == 0,
    "!=": lambda c: c != 0,
    ">": lambda c: c > 0,
    ">=": lambda c: c >= 0,
    "<": lambda c: c < 0,
    "<=": lambda c: c <= 0,
}


@dataclass
class VersionRange:
    """A range of affected versions, from "introduced" to an optional upper bound."""

    ecosystem: str
    introduced: str
    to: str = ""
    to_included: bool = False

    def __str__(self) -> str:
        if self.to_included and self.introduced == self.to:
            return f"={self.introduced}"
        if not self.to:
            return f">={self.introduced}"
        upper = f"<={self.to}" if self.to_included else f"<{self.to}"
        # ">=0" can be omitted.
        if self.introduced == "0":
            return upper
        return f">={self.introduced}, {upper}"

    def set_fixed(self, fixed: str) -> None:
        self.to = fixed
        self.to_included = False

    def set_last_affected(self, last_affected: str) -> None:
        self.to = last_affected
        self.to_included = True

    def contains(self, version: str) -> bool:
        """Whether ``version`` falls in the range, compared the ecosystem's way."""
        if self.ecosystem == ECOSYSTEM_PYPI:
            return self._contains_pep440(version)
        scheme = _SCHEMES.get(self.ecosystem, _DEFAULT_SCHEME)
        try:
            constraints = []
            for part in str(self).split(","):
                match = _CONSTRAINT.fullmatch(part.strip())
                if not match:
                    raise ValueError(f"improper constraint: {part.strip()}")
                constraints.append((match.group(1) or "=", scheme.parse(match.group(2))))
        except ValueError as exc:
            raise FeedError(f"failed to parse version constraint: {exc}") from exc
        try:
            parsed = scheme.parse(version)
        except ValueError as exc:
            raise FeedError(f"failed to parse version: {exc}") from exc
        return all(_OPERATORS[op](scheme.compare(parsed, bound)) for op, bound in constraints)

    def _contains_pep440(self, version: str) -> bool:
        parts = []
        for part in str(self).split(","):
            part = part.strip()
            if part.startswith("=") and not part.startswith("=="):
                part = "=" + part
            parts.append(part)
        try:
            specifiers = SpecifierSet(",".join(parts))
        except InvalidSpecifier as exc:
            raise FeedError(f"failed to parse version constraint: {exc}") from exc
        try:
            parsed = Version(version)
        except InvalidVersion as exc:
            raise FeedError(f"failed to parse version: {exc}") from exc
        return specifiers.contains(parsed, prereleases=True)


def new_version_range(ecosystem: str, introduced: str) -> VersionRange:
    """Open a range at ``introduced``, compared by ``ecosystem``'s rules."""
    return VersionRange(ecosystem=ecosystem, introduced=introduced)