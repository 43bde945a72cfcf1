"""Results of pipeline tests: storing, comparing and verifying them."""

from __future__ import annotations

import difflib
import json
import os
import re
from dataclasses import dataclass, field
from typing import Any

from .core import TestCaseFailed, TestRunError
from .pipeline_case import (
    EXPECTED_TEST_RESULT_SUFFIX,
    PipelineTestConfig,
    _delete,
    _get,
    _marshal,
)

__all__ = [
    "PipelineTestResult",
    "adjust_test_result",
    "check_error_message",
    "compare_results",
    "marshal_test_result_definition",
    "read_expected_test_result",
    "strip_empty_test_results",
    "unmarshal_test_result",
    "verify_dynamic_fields",
    "write_test_result",
]


@dataclass
class PipelineTestResult:
    """Processed documents as JSON; ``None`` marks a document that was dropped."""

    events: list[bytes | None] = field(default_factory=list)


def _expected_path(test_case_path: str) -> str:
    directory, name = os.path.split(test_case_path)
    return os.path.join(directory, name + EXPECTED_TEST_RESULT_SUFFIX)


def strip_empty_test_results(result: PipelineTestResult) -> PipelineTestResult:
    """Drop documents that the pipeline dropped."""
    return PipelineTestResult([event for event in result.events if event is not None])


def adjust_test_result(
    result: PipelineTestResult, config: PipelineTestConfig | None
) -> PipelineTestResult:
    """Remove the configured dynamic fields from every document."""
    if config is None or config.dynamic_fields is None:
        return result

    stripped: list[bytes | None] = []
    for event in result.events:
        if event is None:
            stripped.append(None)
            continue
        try:
            doc = json.loads(event)
        except ValueError as err:
            text = event.decode("utf-8", errors="replace")
            raise TestRunError(f"can't unmarshal event: {text}: {err}") from err
        if doc is None:
            stripped.append(b"null")
            continue
        if not isinstance(doc, dict):
            raise TestRunError("can't unmarshal event: object expected")
        for key in config.dynamic_fields:
            try:
                _delete(doc, key)
            except KeyError:
                pass
            except TestRunError as err:
                raise TestRunError(f"can't remove dynamic field: {err}") from err
        stripped.append(_marshal(doc, sort_keys=True))
    return PipelineTestResult(stripped)


def _parse_raw(event: bytes) -> Any:
    try:
        return json.loads(event)
    except (TypeError, ValueError) as err:
        raise TestRunError(f"marshalling test result definition failed: {err}") from err


def marshal_test_result_definition(result: PipelineTestResult) -> bytes:
    """Render the result as an indented ``{"expected": [...]}`` document."""
    expected = None
    if result.events:
        expected = [None if event is None else _parse_raw(event) for event in result.events]
    return _marshal({"expected": expected}, indent=4)


def unmarshal_test_result(body: bytes | str) -> PipelineTestResult:
    """Read an ``{"expected": [...]}`` document."""
    try:
        definition = json.loads(body)
    except ValueError as err:
        raise TestRunError(f"unmarshalling test result failed: {err}") from err
    if definition is None:
        return PipelineTestResult()
    if not isinstance(definition, dict):
        raise TestRunError("unmarshalling test result failed: object expected")
    expected = definition.get("expected")
    if expected is None:
        return PipelineTestResult()
    if not isinstance(expected, list):
        raise TestRunError("unmarshalling test result failed: expected must be a list")
    return PipelineTestResult([_marshal(doc) for doc in expected])


def write_test_result(test_case_path: str, result: PipelineTestResult) -> str:
    """Store the result next to the test case and return the file path."""
    data = marshal_test_result_definition(result)
    path = _expected_path(test_case_path)
    try:
        with open(path, "wb") as handle:
            handle.write(data)
    except OSError as err:
        raise TestRunError(f"writing test result failed: {err}") from err
    return path


def read_expected_test_result(
    test_case_path: str, config: PipelineTestConfig | None
) -> PipelineTestResult:
    """Read the stored expected result, with dynamic fields removed."""
    path = _expected_path(test_case_path)
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as err:
        raise TestRunError(f"reading test result file failed: {err}") from err
    return adjust_test_result(unmarshal_test_result(data), config)


def _diff(expected: str, actual: str) -> str:
    if expected == actual:
        return ""
    prefixes = {"- ": "-", "+ ": "+", "  ": " "}
    return "\n".join(
        prefixes[line[:2]] + line[2:]
        for line in difflib.ndiff(expected.split("\n"), actual.split("\n"))
        if line[:2] in prefixes
    )


def compare_results(
    test_case_path: str, config: PipelineTestConfig | None, result: PipelineTestResult
) -> None:
    """Raise ``TestCaseFailed`` with a line diff when the result differs from the stored one."""
    actual = marshal_test_result_definition(adjust_test_result(result, config))
    expected = marshal_test_result_definition(read_expected_test_result(test_case_path, config))
    report = _diff(expected.decode("utf-8"), actual.decode("utf-8"))
    if report:
        raise TestCaseFailed("Expected results are different from actual ones", report)


def verify_dynamic_fields(
    result: PipelineTestResult, config: PipelineTestConfig | None
) -> None:
    """Raise ``TestCaseFailed`` when a dynamic field's string value misses its pattern."""
    if config is None or config.dynamic_fields is None:
        return

    problems: list[str] = []
    for event in result.events:
        try:
            doc = json.loads(event)
        except (TypeError, ValueError) as err:
            raise TestRunError(f"can't unmarshal event: {err}") from err
        if doc is None:
            doc = {}
        if not isinstance(doc, dict):
            raise TestRunError("can't unmarshal event: object expected")

        for key, pattern in config.dynamic_fields.items():
            try:
                value = _get(doc, key)
            except KeyError:
                continue
            except TestRunError as err:
                raise TestRunError(f"can't remove dynamic field: {err}") from err
            if not isinstance(value, str):
                continue
            try:
                matched = re.search(pattern, value) is not None
            except re.error as err:
                raise TestRunError(f"pattern matching for dynamic field failed: {err}") from err
            if not matched:
                problems.append(
                    f'dynamic field "{key}" doesn\'t match the pattern ({pattern}): {value}'
                )

    if problems:
        raise TestCaseFailed(
            "one or more problems with dynamic fields found in documents",
            "\n".join(dict.fromkeys(problems)),
        )


_MISSING = object()


def _field(mapping: dict, name: str) -> Any:
    found: Any = None
    for key, value in mapping.items():
        if key == name or key.casefold() == name.casefold():
            found = value
    return found


def check_error_message(event: bytes) -> str | None:
    """Return a description of the pipeline error recorded in the document, if any."""
    try:
        doc = json.loads(event)
    except (TypeError, ValueError) as err:
        raise TestRunError(f"can't unmarshal event to check pipeline error: {err}") from err
    if doc is None:
        return None
    if not isinstance(doc, dict):
        raise TestRunError("can't unmarshal event to check pipeline error: object expected")

    error = _field(doc, "error")
    if error is None:
        return None
    if not isinstance(error, dict):
        raise TestRunError("can't unmarshal event to check pipeline error: error must be an object")
    message = _field(error, "message")
    if message is None:
        return None
    if not isinstance(message, str):
        raise TestRunError(
            "can't unmarshal event to check pipeline error: message must be a string"
        )
    if message:
        return f"unexpected pipeline error: {message}"
    return None