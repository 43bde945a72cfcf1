"""Test results, test runners and the registries for runners and reporters."""

from __future__ import annotations

import abc
import fnmatch
import os
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, Sequence

__all__ = [
    "ResultComposer",
    "SkipConfig",
    "TestCaseFailed",
    "TestFolder",
    "TestOptions",
    "TestResult",
    "TestRunError",
    "TestRunner",
    "assume_test_folders",
    "find_test_folders",
    "format_report",
    "register_report_format",
    "register_report_output",
    "register_runner",
    "run",
    "test_runners",
    "write_report",
]


class TestCaseFailed(Exception):
    """A test case ran to completion but its results were not the expected ones."""

    __test__ = False

    def __init__(self, reason: str, details: str = "") -> None:
        super().__init__(f"test case failed: {reason}")
        self.reason = reason
        self.details = details


class TestRunError(Exception):
    """A test could not be run; ``results`` holds what was collected before."""

    __test__ = False

    def __init__(self, message: str, results: Iterable[TestResult] = ()) -> None:
        super().__init__(message)
        self.results = list(results)


@dataclass(frozen=True)
class SkipConfig:
    """Marks a test as skipped, with a reason and a link to details."""

    reason: str = ""
    link: str = ""

    def __str__(self) -> str:
        return f"{self.reason} [{self.link}]"


@dataclass
class TestResult:
    """The result of a single test case; ``time_elapsed`` is in seconds."""

    __test__ = False

    name: str = ""
    package: str = ""
    test_type: str = ""
    data_stream: str = ""
    time_elapsed: float = 0.0
    failure_msg: str = ""
    failure_details: str = ""
    error_msg: str = ""
    skipped: SkipConfig | None = None


class ResultComposer:
    """Builds a test result, timing it from the moment of creation."""

    def __init__(self, result: TestResult) -> None:
        self.result = replace(result)
        self.start_time = time.monotonic()

    def with_error(self, err: BaseException | None) -> list[TestResult]:
        """Finish the result; test case failures are recorded, other errors raised."""
        self.result.time_elapsed = time.monotonic() - self.start_time
        if err is None:
            return [self.result]
        if isinstance(err, TestCaseFailed):
            self.result.failure_msg += err.reason
            self.result.failure_details += err.details
            return [self.result]
        self.result.error_msg += str(err)
        raise TestRunError(str(err), [self.result]) from err

    def with_success(self) -> list[TestResult]:
        """Finish the result as passed."""
        return self.with_error(None)

    def with_skip(self, skip: SkipConfig) -> list[TestResult]:
        """Finish the result as skipped."""
        self.result.skipped = skip
        return self.with_error(None)


@dataclass(frozen=True)
class TestFolder:
    """A test folder together with the package and data stream it belongs to."""

    __test__ = False

    path: str
    package: str
    data_stream: str = ""


@dataclass
class TestOptions:
    """Options handed to a test runner; ``defer_cleanup`` is in seconds."""

    __test__ = False

    test_folder: TestFolder | None = None
    package_root_path: str = ""
    generate_test_result: bool = False
    es_client: Any = None
    defer_cleanup: float = 0.0
    service_variant: str = ""


class TestRunner(abc.ABC):
    """Base class of all test runners."""

    __test__ = False

    test_type: str = ""
    can_run_per_data_stream: bool = False
    test_folder_required: bool = False

    @abc.abstractmethod
    def run(self, options: TestOptions) -> list[TestResult]:
        """Execute the tests and return their results."""

    def tear_down(self) -> None:
        """Release what the runner set up; called after every run."""
        return None

    def __str__(self) -> str:
        return self.test_type


_runners: dict[str, TestRunner] = {}
_report_formats: dict[str, Callable[[Sequence[TestResult]], str]] = {}
_report_outputs: dict[str, Callable[[str, str, str], None]] = {}


def _clean_join(*parts: str) -> str:
    return os.path.normpath(os.path.join(*parts))


def assume_test_folders(
    package_root: str, data_streams: Sequence[str] | None, test_type: str
) -> list[TestFolder]:
    """List the test folders that would exist for the given data streams."""
    data_streams_path = os.path.join(package_root, "data_stream")
    names = list(data_streams or [])
    if not names:
        try:
            with os.scandir(data_streams_path) as entries:
                names = sorted(e.name for e in entries if e.is_dir())
        except FileNotFoundError:
            return []
        except OSError as err:
            raise TestRunError(f"can't read directory (path: {data_streams_path}): {err}") from err

    package = os.path.basename(os.path.normpath(package_root))
    return [
        TestFolder(
            path=_clean_join(data_streams_path, name, "_dev", "test", test_type),
            package=package,
            data_stream=name,
        )
        for name in names
    ]


def _has_magic(pattern: str) -> bool:
    return any(c in pattern for c in "*?[")


def _matching_names(parent: str, pattern: str) -> list[str]:
    if not _has_magic(pattern):
        return [pattern] if os.path.lexists(os.path.join(parent, pattern)) else []
    try:
        names = sorted(os.listdir(parent))
    except OSError:
        return []
    return [name for name in names if fnmatch.fnmatchcase(name, pattern)]


def _find_test_folder_paths(
    package_root: str, data_stream_glob: str, test_type_glob: str
) -> list[tuple[str, str]]:
    data_streams_path = os.path.join(package_root, "data_stream")
    found = []
    for data_stream in _matching_names(data_streams_path, data_stream_glob):
        tests_path = os.path.join(data_streams_path, data_stream, "_dev", "test")
        for name in _matching_names(tests_path, test_type_glob):
            found.append((_clean_join(tests_path, name), data_stream))
    return found


def find_test_folders(
    package_root: str, data_streams: Sequence[str] | None, test_type: str
) -> list[TestFolder]:
    """Find existing test folders, optionally limited by data streams and test type."""
    test_type_glob = test_type or "*"
    if data_streams:
        paths = [
            found
            for data_stream in sorted(data_streams)
            for found in _find_test_folder_paths(package_root, data_stream, test_type_glob)
        ]
    else:
        paths = _find_test_folder_paths(package_root, "*", test_type_glob)

    package = os.path.basename(package_root)
    return [TestFolder(path=path, package=package, data_stream=ds) for path, ds in paths]


def register_runner(runner: TestRunner) -> None:
    """Register a runner under its test type."""
    _runners[runner.test_type] = runner


def run(test_type: str, options: TestOptions) -> list[TestResult]:
    """Run the registered runner for the test type, then tear it down."""
    runner = _runners.get(test_type)
    if runner is None:
        raise TestRunError(f"unregistered runner test: {test_type}")

    results: list[TestResult] = []
    run_error: Exception | None = None
    try:
        results = runner.run(options)
    except Exception as err:
        run_error = err

    teardown_error: Exception | None = None
    try:
        runner.tear_down()
    except Exception as err:
        teardown_error = err

    if run_error is not None:
        raise TestRunError(f"could not complete test run: {run_error}") from run_error
    if teardown_error is not None:
        raise TestRunError(
            f"could not teardown test runner: {teardown_error}", results
        ) from teardown_error
    return results


def test_runners() -> dict[str, TestRunner]:
    """Return the registered runners keyed by test type."""
    return dict(_runners)


test_runners.__test__ = False  # type: ignore[attr-defined]


def register_report_format(name: str, format_func: Callable[[Sequence[TestResult]], str]) -> None:
    """Register a report formatter."""
    _report_formats[name] = format_func


def format_report(name: str, results: Sequence[TestResult]) -> str:
    """Format results with the registered formatter of that name."""
    format_func = _report_formats.get(name)
    if format_func is None:
        raise TestRunError(f"unregistered test report format: {name}")
    return format_func(results)


def register_report_output(name: str, output_func: Callable[[str, str, str], None]) -> None:
    """Register a report output."""
    _report_outputs[name] = output_func


def write_report(pkg: str, name: str, report: str, report_format: str) -> None:
    """Write a report through the registered output of that name."""
    output_func = _report_outputs.get(name)
    if output_func is None:
        raise TestRunError(f"unregistered test report output: {name}")
    output_func(pkg, report, report_format)