"""Package versions kept in a package storage tree and their content signatures."""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .versioning import Version, VersionError, parse_version

__all__ = [
    "PACKAGES_DIR",
    "PackageVersion",
    "SignedPackageVersion",
    "StorageError",
    "calculate_files_signature",
    "calculate_package_signatures",
    "filter_packages",
    "parse_package_versions",
    "sort_versions",
    "walk_package_resources",
    "xxh64",
]

PACKAGES_DIR = "packages"


class StorageError(Exception):
    """Raised when package storage content cannot be read or interpreted."""


@dataclass(frozen=True, eq=False)
class PackageVersion:
    """A version of a package stored under ``<root>/<name>/<version>``."""

    name: str
    version: str
    root: str = PACKAGES_DIR
    semver: Version = field(init=False, repr=False)

    def __post_init__(self) -> None:
        try:
            parsed = parse_version(self.version)
        except VersionError as err:
            raise StorageError(
                f"reading package version failed (name: {self.name}, version: {self.version}): {err}"
            ) from err
        object.__setattr__(self, "semver", parsed)

    def path(self) -> str:
        """Return the directory of this version relative to the storage root."""
        if self.root:
            return os.path.join(self.root, self.name, self.version)
        return os.path.join(self.name, self.version)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageVersion):
            return NotImplemented
        return self.semver == other.semver and self.name == other.name

    def __hash__(self) -> int:
        return hash((self.name, self.semver))

    def __str__(self) -> str:
        return f"{self.name}-{self.version}"


@dataclass(frozen=True)
class SignedPackageVersion:
    """A package version together with the signature of its files."""

    package_version: PackageVersion
    signature: str

    @property
    def name(self) -> str:
        return self.package_version.name

    @property
    def version(self) -> str:
        return self.package_version.version

    def __str__(self) -> str:
        return f"{self.package_version}: {self.signature}"


def sort_versions(versions: Iterable[PackageVersion]) -> list[PackageVersion]:
    """Sort by package name, then by semantic version."""
    return sorted(versions, key=lambda pv: (pv.name, pv.semver))


def filter_packages(
    versions: Sequence[PackageVersion], newest_only: bool
) -> list[PackageVersion]:
    """Keep only the newest version of every package when ``newest_only`` is set."""
    if not newest_only:
        return list(versions)
    newest: dict[str, PackageVersion] = {}
    for pv in versions:
        current = newest.get(pv.name)
        if current is None or current.semver < pv.semver:
            newest[pv.name] = pv
    return sort_versions(newest.values())


def parse_package_versions(entries: Iterable[str]) -> list[PackageVersion]:
    """Parse ``<package_name>-<version>`` strings."""
    parsed = []
    for entry in entries:
        parts = entry.split("-")
        if len(parts) != 2:
            raise StorageError(
                "invalid package revision format (expected: <package_name>-<version>): " + entry
            )
        name, version = parts
        try:
            parsed.append(PackageVersion(name, version))
        except StorageError as err:
            raise StorageError(f"can't create package version ({entry}): {err}") from err
    return parsed


_MASK = (1 << 64) - 1
_P1 = 0x9E3779B185EBCA87
_P2 = 0xC2B2AE3D27D4EB4F
_P3 = 0x165667B19E3779F9
_P4 = 0x85EBCA77C2B2AE63
_P5 = 0x27D4EB2F165667C5


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & _MASK


def _round(acc: int, lane: int) -> int:
    acc = (acc + lane * _P2) & _MASK
    return (_rotl(acc, 31) * _P1) & _MASK


def _merge_round(acc: int, value: int) -> int:
    acc ^= _round(0, value)
    return (acc * _P1 + _P4) & _MASK


def xxh64(data: bytes, seed: int = 0) -> int:
    """Compute the 64-bit xxHash digest of ``data``."""
    data = bytes(data)
    length = len(data)
    seed &= _MASK
    stripes_end = length - length % 32

    if length >= 32:
        v1 = (seed + _P1 + _P2) & _MASK
        v2 = (seed + _P2) & _MASK
        v3 = seed
        v4 = (seed - _P1) & _MASK
        for a, b, c, d in struct.iter_unpack("<4Q", data[:stripes_end]):
            v1 = _round(v1, a)
            v2 = _round(v2, b)
            v3 = _round(v3, c)
            v4 = _round(v4, d)
        h = (_rotl(v1, 1) + _rotl(v2, 7) + _rotl(v3, 12) + _rotl(v4, 18)) & _MASK
        for v in (v1, v2, v3, v4):
            h = _merge_round(h, v)
    else:
        h = (seed + _P5) & _MASK

    h = (h + length) & _MASK

    tail = data[stripes_end:]
    lanes_end = len(tail) - len(tail) % 8
    for (lane,) in struct.iter_unpack("<Q", tail[:lanes_end]):
        h ^= _round(0, lane)
        h = (_rotl(h, 27) * _P1 + _P4) & _MASK
    rest = tail[lanes_end:]
    if len(rest) >= 4:
        (word,) = struct.unpack("<I", rest[:4])
        h ^= (word * _P1) & _MASK
        h = (_rotl(h, 23) * _P2 + _P3) & _MASK
        rest = rest[4:]
    for byte in rest:
        h ^= (byte * _P5) & _MASK
        h = (_rotl(h, 11) * _P1) & _MASK

    h ^= h >> 33
    h = (h * _P2) & _MASK
    h ^= h >> 29
    h = (h * _P3) & _MASK
    h ^= h >> 32
    return h


def _hex_digest(data: bytes) -> str:
    return f"{xxh64(data):016x}"


def walk_package_resources(root: str, path: str) -> list[str]:
    """List files below ``path`` (relative to ``root``), as paths relative to ``root``."""
    directory = os.path.join(root, path)
    try:
        with os.scandir(directory) as entries:
            items = sorted((entry.name, entry.is_dir()) for entry in entries)
    except OSError as err:
        raise StorageError(f"reading directory failed (path: {path}): {err}") from err

    collected: list[str] = []
    for name, is_dir in items:
        child = os.path.join(path, name)
        if is_dir:
            collected.extend(walk_package_resources(root, child))
        else:
            collected.append(child)
    return collected


def calculate_files_signature(root: str, files: Iterable[str]) -> str:
    """Hash every file, sort the hashes and hash them once more, one per line."""
    file_hashes = []
    for file in files:
        if "\n" in file:
            raise StorageError("dirhash: filenames with newlines are not supported")
        try:
            with open(os.path.join(root, file), "rb") as handle:
                content = handle.read()
        except OSError as err:
            raise StorageError(f"reading file failed (path: {file}): {err}") from err
        file_hashes.append(_hex_digest(content))

    combined = "".join(f"{digest}\n" for digest in sorted(file_hashes))
    return _hex_digest(combined.encode())


def calculate_package_signatures(
    root: str, versions: Iterable[PackageVersion]
) -> list[SignedPackageVersion]:
    """Compute a signature for every package version stored under ``root``."""
    signed = []
    for version in versions:
        resources = walk_package_resources(root, version.path())
        try:
            signature = calculate_files_signature(root, resources)
        except StorageError as err:
            raise StorageError(
                f"failed to calculate the package signature for {version.name}: {err}"
            ) from err
        signed.append(SignedPackageVersion(version, signature))
    return signed