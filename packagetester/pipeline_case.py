"""Pipeline test cases: their configuration files and input events."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .core import SkipConfig, TestRunError
from .skipconfig import _parse_skip, _read_yaml_mapping, _scalar_text

__all__ = [
    "COMMON_TEST_CONFIG_YAML",
    "CONFIG_TEST_SUFFIX_YAML",
    "EXPECTED_TEST_RESULT_SUFFIX",
    "Multiline",
    "PipelineTestCase",
    "PipelineTestConfig",
    "create_test_case",
    "list_test_case_files",
    "load_test_case_file",
    "read_config_for_test_case",
    "read_entries_for_events",
    "read_entries_for_raw_input",
    "read_raw_input_entries",
]

CONFIG_TEST_SUFFIX_YAML = "-config.yml"
COMMON_TEST_CONFIG_YAML = "test-common-config.yml"
EXPECTED_TEST_RESULT_SUFFIX = "-expected.json"

_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def _marshal(value: Any, indent: int | None = None, sort_keys: bool = False) -> bytes:
    """Serialise to JSON the way the stored documents are written."""
    separators = (",", ":") if indent is None else (",", ": ")
    text = json.dumps(
        value,
        ensure_ascii=False,
        indent=indent,
        sort_keys=sort_keys,
        separators=separators,
        allow_nan=False,
    )
    return text.translate(_HTML_ESCAPES).encode("utf-8", errors="replace")


def _find(data: dict, key: str, create: bool) -> tuple[dict, str]:
    while True:
        if key in data:
            return data, key
        head, sep, rest = key.partition(".")
        if not sep:
            return data, key
        if head not in data:
            if not create:
                raise KeyError(key)
            data[head] = {}
        child = data[head]
        if not isinstance(child, dict):
            raise TestRunError(f"expected map but type is {type(child).__name__}")
        data, key = child, rest


def _put(data: dict, key: str, value: Any) -> None:
    target, name = _find(data, key, True)
    target[name] = value


def _get(data: dict, key: str) -> Any:
    target, name = _find(data, key, False)
    if name not in target:
        raise KeyError(key)
    return target[name]


def _delete(data: dict, key: str) -> None:
    target, name = _find(data, key, False)
    if name not in target:
        raise KeyError(key)
    del target[name]


@dataclass(frozen=True)
class Multiline:
    """How lines of a raw log file are joined into single entries."""

    first_line_pattern: str = ""


@dataclass
class PipelineTestConfig:
    """Configuration of a pipeline test case."""

    skip: SkipConfig | None = None
    multiline: Multiline | None = None
    fields: dict[str, Any] | None = None
    dynamic_fields: dict[str, str] | None = None
    numeric_keyword_fields: list[str] = field(default_factory=list)


@dataclass
class PipelineTestCase:
    """A test case: its file name, configuration and input events as JSON."""

    name: str
    config: PipelineTestConfig
    events: list[bytes] = field(default_factory=list)


def _unpack_error(source: str, detail: str) -> TestRunError:
    return TestRunError(f"can't unpack test configuration: {source}: {detail}")


def _apply(config: PipelineTestConfig, data: Mapping[str, Any], source: str) -> None:
    if "skip" in data:
        config.skip = _parse_skip(data["skip"], source)

    multiline = data.get("multiline")
    if multiline is not None:
        if not isinstance(multiline, Mapping):
            raise _unpack_error(source, "multiline must be a mapping")
        current = config.multiline or Multiline()
        if "first_line_pattern" in multiline:
            current = Multiline(_scalar_text(multiline["first_line_pattern"]))
        config.multiline = current

    fields = data.get("fields")
    if fields is not None:
        if not isinstance(fields, Mapping):
            raise _unpack_error(source, "fields must be a mapping")
        config.fields = {**(config.fields or {}), **{str(k): v for k, v in fields.items()}}

    dynamic = data.get("dynamic_fields")
    if dynamic is not None:
        if not isinstance(dynamic, Mapping):
            raise _unpack_error(source, "dynamic_fields must be a mapping")
        config.dynamic_fields = {
            **(config.dynamic_fields or {}),
            **{str(k): _scalar_text(v) for k, v in dynamic.items()},
        }

    numeric = data.get("numeric_keyword_fields")
    if numeric is not None:
        if not isinstance(numeric, list):
            raise _unpack_error(source, "numeric_keyword_fields must be a list")
        config.numeric_keyword_fields = [_scalar_text(item) for item in numeric]


def read_config_for_test_case(test_case_path: str) -> PipelineTestConfig:
    """Read the common configuration, then the test case's own configuration over it."""
    directory, name = os.path.split(test_case_path)
    config = PipelineTestConfig()
    sources = [
        (os.path.join(directory, COMMON_TEST_CONFIG_YAML), "common configuration"),
        (os.path.join(directory, name + CONFIG_TEST_SUFFIX_YAML), "test configuration"),
    ]
    for path, what in sources:
        try:
            data = _read_yaml_mapping(path)
        except FileNotFoundError:
            continue
        except OSError as err:
            raise TestRunError(f"can't load {what}: {path}: {err}") from err
        _apply(config, data, path)
    return config


def read_entries_for_events(data: bytes | str) -> list[bytes]:
    """Read the ``events`` list of a JSON test case file."""
    try:
        definition = json.loads(data)
    except ValueError as err:
        raise TestRunError(f"unmarshalling input data failed: {err}") from err
    if definition is None:
        return []
    if not isinstance(definition, dict):
        raise TestRunError("unmarshalling input data failed: object expected")
    events = definition.get("events")
    if events is None:
        return []
    if not isinstance(events, list):
        raise TestRunError("unmarshalling input data failed: events must be a list")
    return [_marshal(event) for event in events]


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def read_raw_input_entries(data: bytes | str, config: PipelineTestConfig) -> list[str]:
    """Split a raw log into entries, joining lines as the multiline pattern says."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    pattern = config.multiline.first_line_pattern if config.multiline else ""
    compiled = None
    if pattern:
        try:
            compiled = re.compile(pattern)
        except re.error as err:
            raise TestRunError(f"regexp matching failed (pattern: {pattern}): {err}") from err

    entries: list[str] = []
    pending = ""
    for line in _lines(text):
        if compiled is not None:
            matched = compiled.search(line) is not None
            body = ""
            if matched:
                body, pending = pending, ""
            if pending:
                pending += "\n"
            pending += line
            if not matched or body == "":
                continue
        else:
            body = line
        entries.append(body)

    if pending:
        entries.append(pending)
    return entries


def read_entries_for_raw_input(data: bytes | str, config: PipelineTestConfig) -> list[bytes]:
    """Turn every raw log entry into an event with a ``message`` field."""
    return [_marshal({"message": entry}) for entry in read_raw_input_entries(data, config)]


def create_test_case(
    filename: str, entries: Iterable[bytes], config: PipelineTestConfig
) -> PipelineTestCase:
    """Build a test case, setting the configured custom fields on every event."""
    fields = config.fields or {}
    events = []
    for entry in entries:
        try:
            doc = json.loads(entry)
        except (TypeError, ValueError) as err:
            raise TestRunError(f"can't unmarshal test case entry: {err}") from err
        if doc is None:
            if not fields:
                events.append(b"null")
                continue
            doc = {}
        if not isinstance(doc, dict):
            raise TestRunError("can't unmarshal test case entry: object expected")
        for key, value in fields.items():
            try:
                _put(doc, key, value)
            except TestRunError as err:
                raise TestRunError(f"can't set custom field: {err}") from err
        events.append(_marshal(doc, sort_keys=True))
    return PipelineTestCase(name=filename, config=config, events=events)


def list_test_case_files(folder: str) -> list[str]:
    """List test case files, leaving out expected results and configuration files."""
    try:
        names = sorted(os.listdir(folder))
    except OSError as err:
        raise TestRunError(f"reading pipeline tests failed (path: {folder}): {err}") from err
    return [
        name
        for name in names
        if not name.endswith(EXPECTED_TEST_RESULT_SUFFIX)
        and not name.endswith(CONFIG_TEST_SUFFIX_YAML)
    ]


def _extension(filename: str) -> str:
    dot = filename.rfind(".")
    if dot < 0 or os.sep in filename[dot:]:
        return ""
    return filename[dot:]


def load_test_case_file(folder: str, filename: str) -> PipelineTestCase:
    """Load a ``.json`` or ``.log`` test case together with its configuration."""
    path = os.path.join(folder, filename)
    try:
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as err:
        raise TestRunError(f"reading input file failed (testCasePath: {path}): {err}") from err

    try:
        config = read_config_for_test_case(path)
    except TestRunError as err:
        raise TestRunError(
            f"reading config for test case failed (testCasePath: {path}): {err}"
        ) from err

    if config.skip is not None:
        return PipelineTestCase(name=filename, config=config)

    ext = _extension(filename)
    if ext == ".json":
        entries = read_entries_for_events(data)
    elif ext == ".log":
        entries = read_entries_for_raw_input(data, config)
    else:
        raise TestRunError(f"unsupported extension for test case file (ext: {ext})")
    return create_test_case(filename, entries, config)