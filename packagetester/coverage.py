"""Test coverage of a package's data streams, reported in the Cobertura format."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Iterable

from .core import TestResult, TestRunError
from .formats import XML_HEADER, _Element

__all__ = [
    "COVERAGE_DTD",
    "CoverageDetails",
    "collect_coverage_details",
    "find_data_streams_without_tests",
    "to_cobertura_xml",
    "write_coverage",
]

COVERAGE_DTD = (
    '<!DOCTYPE coverage SYSTEM "http://cobertura.sourceforge.net/xml/coverage-04.dtd">'
)


@dataclass
class CoverageDetails:
    """Test case names per data stream; an empty list marks an uncovered data stream."""

    package_name: str
    test_type: str
    data_streams: dict[str, list[str]] = field(default_factory=dict)


def _exists(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError as err:
        raise TestRunError(f"can't stat path: {path}: {err}") from err
    return True


def _test_expected(package_root: str, data_stream: str, test_type: str) -> bool:
    """Pipeline tests are only expected where the data stream has an ingest pipeline."""
    if test_type != "pipeline":
        return True
    return _exists(
        os.path.join(package_root, "data_stream", data_stream, "elasticsearch", "ingest_pipeline")
    )


def find_data_streams_without_tests(package_root: str, test_type: str) -> list[str]:
    """List data streams that should have tests of this type but have none."""
    data_stream_dir = os.path.join(package_root, "data_stream")
    try:
        with os.scandir(data_stream_dir) as entries:
            names = sorted(entry.name for entry in entries if entry.is_dir())
    except FileNotFoundError:
        return []
    except OSError as err:
        raise TestRunError(f"can't list data streams directory: {err}") from err

    return [
        name
        for name in names
        if _test_expected(package_root, name, test_type)
        and not _exists(
            os.path.join(package_root, "data_stream", name, "_dev", "test", test_type)
        )
    ]


def collect_coverage_details(
    package_root: str, package_name: str, test_type: str, results: Iterable[TestResult]
) -> CoverageDetails:
    """Combine data streams lacking tests with the data streams the results ran for."""
    details = CoverageDetails(package_name, test_type)
    for data_stream in find_data_streams_without_tests(package_root, test_type):
        details.data_streams[data_stream] = []
    for result in results:
        details.data_streams.setdefault(result.data_stream, []).append(result.name)
    return details


def _rates() -> list[tuple[str, str]]:
    return [("line-rate", "0"), ("branch-rate", "0"), ("complexity", "0")]


def to_cobertura_xml(details: CoverageDetails, timestamp: int | None = None) -> str:
    """Render coverage details as a Cobertura report; ``timestamp`` is in nanoseconds."""
    if timestamp is None:
        timestamp = time.time_ns()

    classes = []
    for data_stream in sorted(details.data_streams):
        if not data_stream:
            continue  # results in the package context, not tied to a data stream
        covered = bool(details.data_streams[data_stream])
        line = _Element("line", [("number", "1"), ("hits", "1" if covered else "0")])
        method = _Element(
            "method",
            [("name", "OK" if covered else "Missing"), ("signature", ""), *_rates()],
            children=[_Element("lines", children=[line])],
        )
        classes.append(
            _Element(
                "class",
                [
                    ("name", details.test_type),
                    ("filename", f"{details.package_name}/{data_stream}"),
                    *_rates(),
                ],
                children=[_Element("methods", children=[method])],
            )
        )

    package = _Element(
        "package",
        [("name", details.package_name), *_rates()],
        children=[_Element("classes", children=classes)] if classes else [],
    )
    root = _Element(
        "coverage",
        [
            ("line-rate", "0"),
            ("branch-rate", "0"),
            ("version", ""),
            ("timestamp", str(timestamp)),
            ("lines-covered", "0"),
            ("lines-valid", "0"),
            ("branches-covered", "0"),
            ("branches-valid", "0"),
            ("complexity", "0"),
        ],
        children=[_Element("packages", children=[package])],
    )
    return XML_HEADER + "\n" + COVERAGE_DTD + "\n" + root.render()


def write_coverage(
    package_root: str,
    package_name: str,
    test_type: str,
    results: Iterable[TestResult],
    build_dir: str,
) -> str:
    """Write a coverage report under ``<build_dir>/test-coverage`` and return its path."""
    details = collect_coverage_details(package_root, package_name, test_type, results)
    timestamp = time.time_ns()
    report = to_cobertura_xml(details, timestamp)

    dest = os.path.join(build_dir, "test-coverage")
    file_path = os.path.join(dest, f"coverage-{package_name}-{timestamp}-report.xml")
    try:
        os.makedirs(dest, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as handle:
            handle.write(report)
    except OSError as err:
        raise TestRunError(f"could not write test coverage report file: {err}") from err
    return file_path