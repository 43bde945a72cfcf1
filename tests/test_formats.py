import xml.etree.ElementTree as ET

import pytest

from packagetester.core import SkipConfig, TestResult, format_report
from packagetester.formats import (
    REPORT_FORMAT_HUMAN,
    REPORT_FORMAT_XUNIT,
    XML_HEADER,
    report_human,
    report_xunit,
)


def _table_lines(report):
    return [line for line in report.split("\n") if line[:1] in "╭│├╰"]


def _parse(report):
    return ET.fromstring(report.encode("utf-8"))


def test_human_no_results():
    assert report_human([]) == "No test results"


def test_human_registered():
    assert format_report(REPORT_FORMAT_HUMAN, []) == "No test results"


def test_human_pass_table_is_rectangular():
    results = [
        TestResult(name="first", package="pkg", test_type="pipeline", data_stream="ds"),
        TestResult(name="a much longer name", package="pkg", test_type="system", data_stream="x"),
    ]
    report = report_human(results)
    assert "FAILURE DETAILS" not in report
    lines = _table_lines(report)
    assert lines[0].startswith("╭") and lines[0].endswith("╮")
    assert lines[-1].startswith("╰") and lines[-1].endswith("╯")
    assert len({len(line) for line in lines}) == 1
    assert "PACKAGE" in lines[1] and "TIME ELAPSED" in lines[1]
    assert sum("PASS" in line for line in lines) == 2


def test_human_failure_details_section():
    result = TestResult(
        name="case",
        package="pkg",
        test_type="pipeline",
        data_stream="ds",
        failure_msg="reason",
        failure_details="details text",
    )
    report = report_human([result])
    assert report.startswith("FAILURE DETAILS:\npkg/ds case:\ndetails text\n\n\n")
    assert "FAIL: reason" in report


def test_human_error_takes_precedence():
    result = TestResult(
        package="pkg", test_type="asset", error_msg="boom", failure_msg="reason"
    )
    report = report_human([result])
    assert "ERROR: boom" in report
    assert "FAIL: reason" not in report


def test_human_skipped():
    skip = SkipConfig(reason="flaky", link="https://example.com/issue")
    report = report_human([TestResult(package="pkg", test_type="static", skipped=skip)])
    assert str(skip) in report


@pytest.mark.parametrize(
    "seconds, expected",
    [(0.0, "0s"), (1.5, "1.5s"), (120.0, "2m0s")],
)
def test_human_time_elapsed(seconds, expected):
    report = report_human([TestResult(package="pkg", time_elapsed=seconds)])
    data_row = _table_lines(report)[3]
    assert data_row.endswith(f" {expected} │")


def test_human_multiline_cell_keeps_table_rectangular():
    result = TestResult(package="pkg", test_type="system", error_msg="line one\nline two")
    lines = _table_lines(report_human([result]))
    assert len({len(line) for line in lines}) == 1
    assert any("ERROR: line one" in line for line in lines)
    assert any("line two" in line for line in lines)


def test_xunit_empty():
    assert report_xunit([]) == XML_HEADER + "<testsuites></testsuites>"


def test_xunit_registered():
    results = [TestResult(name="a", package="pkg", test_type="pipeline", data_stream="ds")]
    assert format_report(REPORT_FORMAT_XUNIT, results) == report_xunit(results)


def test_xunit_structure_and_counts():
    skip = SkipConfig(reason="flaky", link="https://example.com/issue")
    results = [
        TestResult(name="ok", package="pkg", test_type="pipeline", data_stream="ds", time_elapsed=1.5),
        TestResult(
            name="bad",
            package="pkg",
            test_type="pipeline",
            data_stream="ds",
            failure_msg="wrong",
            failure_details="more\ndetails",
        ),
        TestResult(package="pkg", test_type="pipeline", data_stream="other", error_msg="crash"),
        TestResult(name="skip", package="pkg", test_type="pipeline", data_stream="ds", skipped=skip),
    ]
    report = report_xunit(results)
    assert report.startswith(XML_HEADER)
    assert "<!--test suite for pipeline tests-->" in report

    root = _parse(report)
    assert root.tag == "testsuites"
    (suite,) = root.findall("testsuite")
    assert suite.get("name") == "pipeline"
    assert suite.get("tests") == str(len(results))
    assert suite.get("failures") == "1"
    assert suite.get("errors") == "1"
    assert suite.get("skipped") == "1"

    cases = suite.findall("testcase")
    assert [c.get("name") for c in cases] == [
        "pipeline test: ok",
        "pipeline test: bad",
        "pipeline test: skip",
        "pipeline test",
    ]
    assert cases[0].get("classname") == "pkg.ds"
    assert float(cases[0].get("time")) == 1.5
    assert cases[1].find("failure").text == "wrong: more\ndetails"
    assert cases[2].find("skipped").get("message") == str(skip)
    assert cases[3].get("classname") == "pkg.other"
    assert cases[3].find("error").text == "crash"
    assert cases[0].find("error") is None


def test_xunit_zero_counts_omitted_and_time_format():
    report = report_xunit([TestResult(package="pkg", test_type="asset")])
    suite = _parse(report).find("testsuite")
    assert suite.get("tests") == "1"
    assert "failures" not in suite.attrib
    assert "errors" not in suite.attrib
    assert suite.find("testcase").get("time") == "0"


def test_xunit_suite_per_test_type_with_total_counts():
    results = [
        TestResult(name="a", package="pkg", test_type="pipeline", data_stream="ds"),
        TestResult(name="b", package="pkg", test_type="system", data_stream="ds", error_msg="x"),
    ]
    suites = _parse(report_xunit(results)).findall("testsuite")
    assert [s.get("name") for s in suites] == ["pipeline", "system"]
    assert all(s.get("tests") == "2" for s in suites)
    assert all(s.get("errors") == "1" for s in suites)
    assert [len(s.findall("testcase")) for s in suites] == [1, 1]


def test_xunit_escapes_special_characters():
    message = 'a "quoted" <tag> & \'apostrophe\''
    report = report_xunit([TestResult(package="pkg", test_type="asset", error_msg=message)])
    assert _parse(report).find("testsuite/testcase/error").text == message