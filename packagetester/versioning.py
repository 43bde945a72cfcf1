"""Semantic versions and version constraints."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, replace

__all__ = [
    "Constraint",
    "Version",
    "VersionError",
    "parse_constraint",
    "parse_version",
]

_IDENT = r"[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*"

_VERSION_RE = re.compile(
    rf"v?([0-9]+)(\.[0-9]+)?(\.[0-9]+)?(?:-({_IDENT}))?(?:\+({_IDENT}))?"
)

_CV = rf"v?[0-9xX*]+(?:\.[0-9xX*]+)?(?:\.[0-9xX*]+)?(?:-{_IDENT})?(?:\+{_IDENT})?"

_OPS = ["!=", ">=", "=>", "<=", "=<", "~>", "=", ">", "<", "~", "^", ""]
_OPS_PATTERN = "|".join(re.escape(op) for op in _OPS)

_CONSTRAINT_RE = re.compile(
    rf"\s*({_OPS_PATTERN})\s*"
    rf"(v?([0-9xX*]+)(\.[0-9xX*]+)?(\.[0-9xX*]+)?(-{_IDENT})?(?:\+{_IDENT})?)\s*"
)

_RANGE_RE = re.compile(rf"\s*({_CV})\s+-\s+({_CV})\s*")


class VersionError(ValueError):
    """Raised when a version or a constraint cannot be parsed."""


def _compare_identifier(a: str, b: str) -> int:
    if a.isdigit() and b.isdigit():
        x, y = int(a), int(b)
    elif a.isdigit():
        return -1
    elif b.isdigit():
        return 1
    else:
        x, y = a, b
    return (x > y) - (x < y)


def _compare_prerelease(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return 1
    if not b:
        return -1
    left, right = a.split("."), b.split(".")
    for x, y in zip(left, right):
        result = _compare_identifier(x, y)
        if result:
            return result
    return (len(left) > len(right)) - (len(left) < len(right))


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A parsed semantic version; build metadata does not take part in ordering."""

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: str = ""
    metadata: str = ""
    original: str = ""

    def _cmp(self, other: Version) -> int:
        mine = (self.major, self.minor, self.patch)
        theirs = (other.major, other.minor, other.patch)
        if mine != theirs:
            return -1 if mine < theirs else 1
        return _compare_prerelease(self.prerelease, other.prerelease)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp(other) == 0

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._cmp(other) < 0

    def __hash__(self) -> int:
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.metadata:
            text += f"+{self.metadata}"
        return text

    def without_prerelease(self) -> Version:
        """Return a copy of this version with the pre-release part removed."""
        return replace(self, prerelease="", original="")


def parse_version(text: str) -> Version:
    """Parse a semantic version such as ``1.2.3-beta+build``."""
    match = _VERSION_RE.fullmatch(text)
    if match is None:
        raise VersionError(f"Invalid Semantic Version: {text!r}")
    major, minor, patch, prerelease, metadata = match.groups()
    return Version(
        major=int(major),
        minor=int(minor[1:]) if minor else 0,
        patch=int(patch[1:]) if patch else 0,
        prerelease=prerelease or "",
        metadata=metadata or "",
        original=text,
    )


def _is_wildcard(part: str) -> bool:
    return part in ("x", "X", "*")


@dataclass(frozen=True)
class _Term:
    op: str
    version: Version
    dirty: bool
    minor_dirty: bool
    patch_dirty: bool

    def _tilde(self, v: Version) -> bool:
        con = self.version
        if v < con:
            return False
        if (con.major, con.minor, con.patch) == (0, 0, 0) and not (
            self.minor_dirty or self.patch_dirty
        ):
            return True
        if v.major != con.major:
            return False
        if v.minor != con.minor and not self.minor_dirty:
            return False
        return True

    def _not_equal(self, v: Version) -> bool:
        con = self.version
        if not self.dirty:
            return v != con
        if v.prerelease and not con.prerelease:
            return False
        if con.major != v.major:
            return True
        return con.minor != v.minor and not self.minor_dirty

    def allows(self, v: Version) -> bool:
        con = self.version
        if self.op == "!=":
            return self._not_equal(v)
        if v.prerelease and not con.prerelease:
            return False
        if self.op in ("", "="):
            return self._tilde(v) if self.dirty else v == con
        if self.op == ">":
            return v > con
        if self.op == "<":
            return v < con
        if self.op in (">=", "=>"):
            return v >= con
        if self.op in ("<=", "=<"):
            if not self.dirty:
                return v <= con
            if v.major > con.major:
                return False
            return not (v.minor > con.minor and not self.minor_dirty)
        if self.op in ("~", "~>"):
            return self._tilde(v)
        # caret
        return v >= con and v.major == con.major


def _parse_term(text: str) -> _Term:
    match = _CONSTRAINT_RE.fullmatch(text)
    if match is None:
        raise VersionError(f"improper constraint: {text}")
    op, whole, major, minor, patch, prerelease = match.groups()
    prerelease = prerelease or ""
    dirty = minor_dirty = patch_dirty = False
    version_text = whole
    if _is_wildcard(major):
        version_text = "0.0.0"
        dirty = True
    elif not minor or _is_wildcard(minor[1:]):
        version_text = f"{major}.0.0{prerelease}"
        dirty = minor_dirty = True
    elif patch and _is_wildcard(patch[1:]):
        version_text = f"{major}{minor}.0{prerelease}"
        dirty = patch_dirty = True
    return _Term(op, parse_version(version_text), dirty, minor_dirty, patch_dirty)


class Constraint:
    """A set of version ranges joined by ``||`` (any) and ``,`` (all)."""

    def __init__(self, text: str) -> None:
        self.text = text
        rewritten = _RANGE_RE.sub(r">= \1, <= \2", text)
        self._groups = [
            [_parse_term(part) for part in alternative.split(",")]
            for alternative in rewritten.split("||")
        ]

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return f"Constraint({self.text!r})"

    def check(self, version: Version | str) -> bool:
        """Tell whether the version satisfies the constraint."""
        if isinstance(version, str):
            version = parse_version(version)
        return any(all(term.allows(version) for term in group) for group in self._groups)


def parse_constraint(text: str) -> Constraint:
    """Parse a constraint such as ``^1.2.3`` or ``>= 1.0, < 2.0 || 3.x``."""
    return Constraint(text)