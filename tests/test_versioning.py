import pytest

from packagetester.versioning import (
    Constraint,
    VersionError,
    parse_constraint,
    parse_version,
)


def test_parse_full_version_parts():
    v = parse_version("1.2.3-FOOBAR+build.5")
    assert (v.major, v.minor, v.patch) == (1, 2, 3)
    assert v.prerelease == "FOOBAR"
    assert v.metadata == "build.5"


def test_string_round_trip():
    assert str(parse_version("1.2.3-beta.1+meta")) == "1.2.3-beta.1+meta"


def test_missing_parts_default_to_zero():
    assert parse_version("v1.2") == parse_version("1.2.0")


@pytest.mark.parametrize("text", ["1.2.3.4", "", "abc", "1.2.3-", "+1.2.3"])
def test_invalid_versions(text):
    with pytest.raises(VersionError):
        parse_version(text)


def test_prerelease_ordering():
    ordered = [
        "1.0.0-alpha",
        "1.0.0-alpha.1",
        "1.0.0-alpha.beta",
        "1.0.0-beta",
        "1.0.0-beta.2",
        "1.0.0-beta.11",
        "1.0.0-rc.1",
        "1.0.0",
    ]
    parsed = [parse_version(t) for t in ordered]
    assert sorted(reversed(parsed)) == parsed


def test_metadata_ignored_in_equality():
    assert parse_version("1.0.0+a") == parse_version("1.0.0+b")
    assert hash(parse_version("1.0.0+a")) == hash(parse_version("1.0.0+b"))


def test_without_prerelease():
    v = parse_version("7.15.0-SNAPSHOT")
    stripped = v.without_prerelease()
    assert stripped == parse_version("7.15.0")
    assert "-" not in str(stripped)


def test_caret_constraint():
    c = parse_constraint("^1.2.3")
    assert c.check("1.9.0")
    assert c.check("1.2.3")
    assert not c.check("2.0.0")
    assert not c.check("1.2.2")


def test_caret_excludes_prerelease():
    assert not parse_constraint("^1.0.0").check("1.5.0-beta")


def test_tilde_constraint():
    c = parse_constraint("~1.2.3")
    assert c.check("1.2.9")
    assert not c.check("1.3.0")


def test_wildcard_constraint():
    c = parse_constraint("1.2.x")
    assert c.check("1.2.7")
    assert not c.check("1.3.0")
    assert parse_constraint("*").check("42.0.0")


def test_and_or_constraints():
    c = parse_constraint(">= 1.0, < 2.0 || > 3")
    assert c.check("1.5.0")
    assert c.check("3.0.1")
    assert not c.check("2.5.0")


def test_hyphen_range():
    c = parse_constraint("1.2 - 1.4.5")
    assert c.check("1.2.0")
    assert c.check("1.4.5")
    assert not c.check("1.4.6")


def test_not_equal():
    c = parse_constraint("!=1.2.3")
    assert not c.check("1.2.3")
    assert c.check("1.2.4")


def test_check_accepts_version_object():
    c = Constraint("<=2.0.0")
    assert c.check(parse_version("2.0.0"))
    assert not c.check(parse_version("2.0.1"))


@pytest.mark.parametrize("text", ["+1.2.3", "", "1.2.3 1.2.4", ">>1.0"])
def test_invalid_constraints(text):
    with pytest.raises(VersionError):
        parse_constraint(text)