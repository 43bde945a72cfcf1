import os

import pytest

from packagetester.storage import (
    PackageVersion,
    SignedPackageVersion,
    StorageError,
    calculate_files_signature,
    calculate_package_signatures,
    filter_packages,
    parse_package_versions,
    sort_versions,
    walk_package_resources,
    xxh64,
)


def _write(root, relative, content):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


@pytest.fixture
def storage(tmp_path):
    _write(tmp_path, "packages/foo/1.0.0/manifest.yml", b"name: foo\n")
    _write(tmp_path, "packages/foo/1.0.0/docs/README.md", b"# foo\n")
    _write(tmp_path, "packages/bar/2.0.0/manifest.yml", b"name: foo\n")
    _write(tmp_path, "packages/bar/2.0.0/docs/README.md", b"# foo\n")
    return tmp_path


def test_xxh64_known_digests():
    assert xxh64(b"", 0) == 0xEF46DB3751D8E999
    assert xxh64(b"abc", 0) == 0x44BC2CF5AD770999


def test_xxh64_long_input_in_range_and_seeded():
    data = bytes(range(100))
    digest = xxh64(data, 0)
    assert 0 <= digest < 2**64
    assert xxh64(data, 0) == digest
    assert xxh64(data, 1) != digest


def test_package_version_path_and_str():
    pv = PackageVersion("foo", "1.0.0")
    assert pv.path() == os.path.join("packages", "foo", "1.0.0")
    assert str(pv) == "foo-1.0.0"
    assert PackageVersion("foo", "1.0.0", "").path() == os.path.join("foo", "1.0.0")


def test_package_version_equality_uses_semver():
    assert PackageVersion("foo", "1.0.0") == PackageVersion("foo", "v1.0.0")
    assert PackageVersion("foo", "1.0.0") != PackageVersion("bar", "1.0.0")


def test_invalid_version_raises():
    with pytest.raises(StorageError):
        PackageVersion("foo", "not-a-version")


def test_sort_versions_by_name_then_semver():
    versions = [
        PackageVersion("foo", "1.10.0"),
        PackageVersion("bar", "0.1.0"),
        PackageVersion("foo", "1.9.0"),
    ]
    assert [str(v) for v in sort_versions(versions)] == ["bar-0.1.0", "foo-1.9.0", "foo-1.10.0"]


def test_filter_packages_newest_only():
    versions = [
        PackageVersion("foo", "1.0.0"),
        PackageVersion("foo", "1.10.0"),
        PackageVersion("bar", "0.1.0"),
        PackageVersion("foo", "1.2.0"),
    ]
    assert [str(v) for v in filter_packages(versions, True)] == ["bar-0.1.0", "foo-1.10.0"]
    assert filter_packages(versions, False) == versions


def test_parse_package_versions():
    parsed = parse_package_versions(["foo-1.0.0", "bar-2.1.0"])
    assert [(p.name, p.version) for p in parsed] == [("foo", "1.0.0"), ("bar", "2.1.0")]


@pytest.mark.parametrize("entry", ["foo", "foo-bar-1.0.0", "foo-abc"])
def test_parse_package_versions_rejects(entry):
    with pytest.raises(StorageError):
        parse_package_versions([entry])


def test_signed_package_version_str():
    signed = SignedPackageVersion(PackageVersion("foo", "1.0.0"), "abcd")
    assert str(signed) == "foo-1.0.0: abcd"
    assert signed.name == "foo"


def test_walk_package_resources(storage):
    base = os.path.join("packages", "foo", "1.0.0")
    found = walk_package_resources(str(storage), base)
    assert sorted(found) == sorted(
        [os.path.join(base, "manifest.yml"), os.path.join(base, "docs", "README.md")]
    )


def test_walk_missing_directory_raises(storage):
    with pytest.raises(StorageError):
        walk_package_resources(str(storage), "packages/missing")


def test_signature_depends_only_on_contents(storage):
    signed = calculate_package_signatures(
        str(storage), [PackageVersion("foo", "1.0.0"), PackageVersion("bar", "2.0.0")]
    )
    assert len(signed) == 2
    assert signed[0].signature == signed[1].signature
    assert len(signed[0].signature) == 16
    int(signed[0].signature, 16)


def test_signature_independent_of_file_order(storage):
    files = ["packages/foo/1.0.0/manifest.yml", "packages/foo/1.0.0/docs/README.md"]
    assert calculate_files_signature(str(storage), files) == calculate_files_signature(
        str(storage), list(reversed(files))
    )


def test_signature_changes_with_content(storage):
    before = calculate_package_signatures(str(storage), [PackageVersion("foo", "1.0.0")])
    _write(storage, "packages/foo/1.0.0/manifest.yml", b"name: changed\n")
    after = calculate_package_signatures(str(storage), [PackageVersion("foo", "1.0.0")])
    assert before[0].signature != after[0].signature


def test_duplicate_contents_are_counted(storage):
    one = calculate_files_signature(str(storage), ["packages/foo/1.0.0/manifest.yml"])
    two = calculate_files_signature(
        str(storage),
        ["packages/foo/1.0.0/manifest.yml", "packages/bar/2.0.0/manifest.yml"],
    )
    assert one != two


def test_filename_with_newline_rejected(storage):
    with pytest.raises(StorageError, match="newlines are not supported"):
        calculate_files_signature(str(storage), ["bad\nname"])


def test_missing_package_signature_raises(storage):
    with pytest.raises(StorageError):
        calculate_package_signatures(str(storage), [PackageVersion("baz", "1.0.0")])