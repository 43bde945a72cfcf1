import os
import re
import xml.etree.ElementTree as ET

import pytest

from packagetester.core import TestResult
from packagetester.coverage import (
    COVERAGE_DTD,
    CoverageDetails,
    collect_coverage_details,
    find_data_streams_without_tests,
    to_cobertura_xml,
    write_coverage,
)
from packagetester.formats import XML_HEADER


@pytest.fixture
def package_root(tmp_path):
    pkg = tmp_path / "mypkg"
    streams = pkg / "data_stream"
    (streams / "alpha" / "_dev" / "test" / "pipeline").mkdir(parents=True)
    (streams / "alpha" / "elasticsearch" / "ingest_pipeline").mkdir(parents=True)
    (streams / "beta" / "elasticsearch" / "ingest_pipeline").mkdir(parents=True)
    (streams / "gamma").mkdir(parents=True)
    (streams / "notes.txt").write_text("not a data stream")
    return str(pkg)


def _parse(report):
    return ET.fromstring(report.encode("utf-8"))


def test_pipeline_tests_expected_only_with_ingest_pipeline(package_root):
    assert find_data_streams_without_tests(package_root, "pipeline") == ["beta"]


def test_other_test_types_expected_everywhere(package_root):
    assert find_data_streams_without_tests(package_root, "system") == ["alpha", "beta", "gamma"]


def test_package_without_data_streams(tmp_path):
    assert find_data_streams_without_tests(str(tmp_path), "pipeline") == []


def test_collect_coverage_details(package_root):
    results = [
        TestResult(name="t1", data_stream="alpha"),
        TestResult(name="t2", data_stream="alpha"),
        TestResult(name="asset", data_stream=""),
    ]
    details = collect_coverage_details(package_root, "mypkg", "pipeline", results)
    assert details.package_name == "mypkg"
    assert details.test_type == "pipeline"
    assert details.data_streams == {"beta": [], "alpha": ["t1", "t2"], "": ["asset"]}


def test_cobertura_report_content():
    details = CoverageDetails(
        "mypkg", "pipeline", {"beta": [], "alpha": ["t1"], "": ["asset"]}
    )
    report = to_cobertura_xml(details, 123)
    assert report.startswith(XML_HEADER + "\n" + COVERAGE_DTD + "\n<coverage ")

    root = _parse(report)
    assert root.tag == "coverage"
    assert root.get("timestamp") == "123"
    package = root.find("packages/package")
    assert package.get("name") == "mypkg"

    classes = package.findall("classes/class")
    assert [c.get("filename") for c in classes] == ["mypkg/alpha", "mypkg/beta"]
    assert all(c.get("name") == "pipeline" for c in classes)

    methods = [c.find("methods/method") for c in classes]
    assert [m.get("name") for m in methods] == ["OK", "Missing"]
    hits = [m.find("lines/line").get("hits") for m in methods]
    assert hits == ["1", "0"]
    assert all(m.find("lines/line").get("number") == "1" for m in methods)


def test_cobertura_report_without_data_streams():
    details = CoverageDetails("mypkg", "asset", {"": ["asset"]})
    root = _parse(to_cobertura_xml(details, 7))
    package = root.find("packages/package")
    assert package.get("name") == "mypkg"
    assert package.find("classes") is None
    assert root.find("sources") is None


def test_write_coverage(package_root, tmp_path):
    build_dir = tmp_path / "build"
    results = [TestResult(name="t1", data_stream="alpha")]
    path = write_coverage(package_root, "mypkg", "pipeline", results, str(build_dir))

    assert os.path.dirname(path) == str(build_dir / "test-coverage")
    match = re.fullmatch(r"coverage-mypkg-(\d+)-report\.xml", os.path.basename(path))
    assert match is not None

    with open(path, encoding="utf-8") as handle:
        root = _parse(handle.read())
    assert root.get("timestamp") == match.group(1)
    filenames = [c.get("filename") for c in root.findall("packages/package/classes/class")]
    assert filenames == ["mypkg/alpha", "mypkg/beta"]