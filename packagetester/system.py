"""System test configuration, its templating and the helpers the system runner uses."""

from __future__ import annotations

import os
import random
import re
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Sequence

import yaml

from .core import SkipConfig, TestRunError
from .servicedeployer import ServiceContext, VariantsFile
from .skipconfig import _expand_dotted, _parse_skip, _scalar_text

__all__ = [
    "ELASTICSEARCH_QUERY_SIZE",
    "SERVICE_LOGS_AGENT_DIR",
    "SystemTestConfig",
    "TEST_TYPE",
    "apply_context",
    "create_test_run_id",
    "data_stream_index",
    "filter_agents",
    "list_config_files",
    "load_system_config",
    "select_variants",
    "wait_until_true",
]

TEST_TYPE = "system"
ELASTICSEARCH_QUERY_SIZE = 500
SERVICE_LOGS_AGENT_DIR = "/tmp/service_logs"

_TEST_RUN_MIN_ID = 10000
_TEST_RUN_MAX_ID = 99999

_CONFIG_FILE_PATTERN = re.compile(r"test-([a-z0-9_.-]+)-config.yml")


@dataclass
class SystemTestConfig:
    """Configuration of one system test case."""

    path: str = ""
    service_variant_name: str = ""
    skip: SkipConfig | None = None
    input: str = ""
    service: str = ""
    service_notify_signal: str = ""
    vars: dict[str, Any] = field(default_factory=dict)
    data_stream_vars: dict[str, Any] = field(default_factory=dict)
    numeric_keyword_fields: list[str] = field(default_factory=list)

    def name(self) -> str:
        """Name taken from the file name, with the service variant if there is one."""
        base = os.path.basename(self.path)
        match = _CONFIG_FILE_PATTERN.fullmatch(base)
        if match:
            base = match.group(1)
        if self.service_variant_name:
            base += f" (variant: {self.service_variant_name})"
        return base


_HTML_ESCAPES = str.maketrans(
    {"&": "&amp;", "'": "&apos;", "<": "&lt;", ">": "&gt;", '"': "&quot;"}
)

_TAG = re.compile(r"\{\{!--.*?--\}\}|\{\{\{(.*?)\}\}\}|\{\{(.*?)\}\}", re.S)


def _context_fields(ctxt: ServiceContext) -> dict[str, Any]:
    return {
        "Name": ctxt.name,
        "Hostname": ctxt.hostname,
        "Ports": list(ctxt.ports),
        "Port": ctxt.port,
        "Logs": {"Folder": {"Local": ctxt.logs.folder.local, "Agent": ctxt.logs.folder.agent}},
        "Test": {"RunID": ctxt.test.run_id},
        "Agent": {"Host": {"NamePrefix": ctxt.agent.host.name_prefix}},
        "CustomProperties": dict(ctxt.custom_properties),
    }


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return str(value)
        return format(Decimal(repr(value)).normalize(), "f")
    if isinstance(value, (list, tuple)):
        return "".join(_text(item) for item in value)
    return str(value)


def _lookup(expr: str, aliases: Mapping[str, Any], fields: Mapping[str, Any]) -> Any:
    if expr in aliases:
        return aliases[expr]
    value: Any = fields
    for part in expr.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return None
    return value


def apply_context(data: bytes | str, ctxt: ServiceContext) -> str:
    """Replace ``{{ placeholders }}`` with values from the service context."""
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    aliases = ctxt.aliases()
    fields = _context_fields(ctxt)

    def replace(match: re.Match) -> str:
        raw_expr, expr = match.group(1), match.group(2)
        if raw_expr is None and expr is None:
            return ""
        raw = raw_expr is not None
        expr = (raw_expr if raw else expr).strip()
        if expr.startswith("!"):
            return ""
        if expr.startswith("&"):
            raw, expr = True, expr[1:].strip()
        if not expr or expr[0] in "#/^>" or expr == "else" or re.search(r"\s", expr):
            raise TestRunError(
                f"could not render data with context: unsupported expression: {{{{{expr}}}}}"
            )
        rendered = _text(_lookup(expr, aliases, fields))
        return rendered if raw else rendered.translate(_HTML_ESCAPES)

    return _TAG.sub(replace, text)


def _mapping(value: Any, what: str, source: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TestRunError(
            f"unable to unpack system test configuration file: {source}: {what} must be a mapping"
        )
    return {str(key): item for key, item in value.items()}


def load_system_config(path: str, ctxt: ServiceContext, variant: str = "") -> SystemTestConfig:
    """Read a system test configuration file, filling placeholders from the context."""
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except FileNotFoundError as err:
        raise TestRunError(f"unable to find system test configuration file: {path}") from err
    except OSError as err:
        raise TestRunError(f"could not load system test configuration file: {path}: {err}") from err

    try:
        text = apply_context(text, ctxt)
    except TestRunError as err:
        raise TestRunError(
            f"could not apply context to test configuration file: {path}: {err}"
        ) from err

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise TestRunError(f"unable to load system test configuration file: {path}: {err}") from err
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise TestRunError(
            f"unable to load system test configuration file: {path}: mapping expected"
        )
    data = _expand_dotted(data)

    numeric = data.get("numeric_keyword_fields")
    if numeric is None:
        numeric = []
    if not isinstance(numeric, list):
        raise TestRunError(
            f"unable to unpack system test configuration file: {path}: "
            "numeric_keyword_fields must be a list"
        )
    data_stream = _mapping(data.get("data_stream"), "data_stream", path)

    return SystemTestConfig(
        path=path,
        service_variant_name=variant,
        skip=_parse_skip(data.get("skip"), path),
        input=_scalar_text(data.get("input")),
        service=_scalar_text(data.get("service")),
        service_notify_signal=_scalar_text(data.get("service_notify_signal")),
        vars=_mapping(data.get("vars"), "vars", path),
        data_stream_vars=_mapping(data_stream.get("vars"), "data_stream.vars", path),
        numeric_keyword_fields=[_scalar_text(item) for item in numeric],
    )


def list_config_files(folder: str) -> list[str]:
    """List the system test configuration files in the folder."""
    with os.scandir(folder) as entries:
        return sorted(
            entry.name
            for entry in entries
            if not entry.is_dir() and _CONFIG_FILE_PATTERN.fullmatch(entry.name)
        )


def create_test_run_id() -> str:
    """Return a random five-digit identifier of a test run."""
    return str(random.randrange(_TEST_RUN_MIN_ID, _TEST_RUN_MAX_ID))


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def filter_agents(agents: Iterable[Any], ctxt: ServiceContext) -> list[Any]:
    """Keep agents with a valid policy revision whose host name has the expected prefix."""
    prefix = ctxt.agent.host.name_prefix
    filtered = []
    for agent in agents:
        if not _get(agent, "policy_revision"):
            continue
        if prefix:
            host = _get(_get(agent, "local_metadata"), "host")
            host_name = _get(host, "name") or ""
            if not str(host_name).startswith(prefix):
                continue
        filtered.append(agent)
    return filtered


def wait_until_true(
    fn: Callable[[], bool], timeout: float, interval: float = 1.0
) -> bool:
    """Call ``fn`` until it returns true or ``timeout`` seconds pass; errors propagate."""
    start = time.monotonic()
    while time.monotonic() - start < timeout:
        if fn():
            return True
        time.sleep(interval)
    return False


def select_variants(variants_file: VariantsFile | None, service_variant: str = "") -> list[str]:
    """Variants to run: all of them, only the selected one, or none when there is no file."""
    if variants_file is None or variants_file.variants is None:
        return [""]
    return [
        name
        for name in variants_file.variants
        if not service_variant or service_variant == name
    ]


def data_stream_index(input_name: str, streams: Sequence[Any]) -> int:
    """Index of the stream that uses the named input, or 0."""
    for index, stream in enumerate(streams):
        if _get(stream, "input") == input_name:
            return index
    return 0