"""Ingest pipeline definitions of a data stream and simulate API documents."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from typing import Any, Iterable

import yaml

from .core import TestRunError
from .pipeline_case import _marshal
from .pipeline_result import PipelineTestResult

__all__ = [
    "PipelineResource",
    "build_simulate_request",
    "convert_pipelines_to_json",
    "load_ingest_pipeline_files",
    "parse_simulate_response",
    "pipeline_name_with_nonce",
]

_INGEST_PIPELINE_TAG = re.compile(rb"\{\{\s*IngestPipeline.+\}\}")


@dataclass(frozen=True)
class PipelineResource:
    """A pipeline definition: its name, its format (``json`` or ``yml``) and content."""

    name: str
    format: str
    content: bytes


def pipeline_name_with_nonce(name: str, nonce: int) -> str:
    """Make a pipeline name unique to one test run."""
    return f"{name}-{nonce}"


def _render_tags(content: bytes, nonce: int, path: str) -> bytes:
    def replace(match: re.Match) -> bytes:
        parts = match.group(0).split(b'"')
        if len(parts) != 3:
            raise TestRunError(f"invalid IngestPipeline tag in template (path: {path})")
        name = parts[1].decode("utf-8", errors="replace")
        return pipeline_name_with_nonce(name, nonce).encode("utf-8")

    return _INGEST_PIPELINE_TAG.sub(replace, content)


def load_ingest_pipeline_files(data_stream_path: str, nonce: int) -> list[PipelineResource]:
    """Read the data stream's pipelines, naming them and their references with the nonce."""
    directory = os.path.join(data_stream_path, "elasticsearch", "ingest_pipeline")
    try:
        names = sorted(os.listdir(directory))
    except OSError as err:
        raise TestRunError(
            f"reading ingest pipelines directory failed (path: {directory}): {err}"
        ) from err

    pipelines = []
    for name in names:
        path = os.path.join(directory, name)
        try:
            with open(path, "rb") as handle:
                content = handle.read()
        except OSError as err:
            raise TestRunError(f"reading ingest pipeline failed: {err}") from err

        if "." not in name:
            raise TestRunError(f"ingest pipeline file has no extension (path: {path})")
        pipelines.append(
            PipelineResource(
                name=pipeline_name_with_nonce(name[: name.index(".")], nonce),
                format=name[name.rindex(".") + 1 :],
                content=_render_tags(content, nonce, path),
            )
        )
    return pipelines


def convert_pipelines_to_json(pipelines: Iterable[PipelineResource]) -> list[PipelineResource]:
    """Convert YAML pipeline definitions to JSON; JSON ones pass unchanged."""
    converted = []
    for pipeline in pipelines:
        if pipeline.format == "json":
            converted.append(pipeline)
            continue
        try:
            node = yaml.safe_load(pipeline.content)
        except yaml.YAMLError as err:
            raise TestRunError(
                f"unmarshalling pipeline content failed (pipeline: {pipeline.name}): {err}"
            ) from err
        if node is not None and not isinstance(node, dict):
            raise TestRunError(
                f"unmarshalling pipeline content failed (pipeline: {pipeline.name}): "
                "mapping expected"
            )
        try:
            content = _marshal(node, sort_keys=True)
        except (TypeError, ValueError) as err:
            raise TestRunError(
                f"marshalling pipeline content failed (pipeline: {pipeline.name}): {err}"
            ) from err
        converted.append(PipelineResource(pipeline.name, "json", content))
    return converted


def _parse_event(event: bytes) -> Any:
    try:
        return json.loads(event)
    except (TypeError, ValueError) as err:
        raise TestRunError(f"marshalling simulate request failed: {err}") from err


def build_simulate_request(events: Iterable[bytes]) -> bytes:
    """Build the body of a pipeline simulate request for the given JSON events."""
    docs = [{"_source": _parse_event(event)} for event in events]
    return _marshal({"docs": docs or None})


def parse_simulate_response(body: bytes | str) -> PipelineTestResult:
    """Read processed documents from a simulate response; dropped ones become ``None``."""
    try:
        response = json.loads(body)
    except ValueError as err:
        raise TestRunError(f"unmarshalling simulate request failed: {err}") from err
    if response is None:
        return PipelineTestResult()
    if not isinstance(response, dict):
        raise TestRunError("unmarshalling simulate request failed: object expected")

    events: list[bytes | None] = []
    for entry in response.get("docs") or []:
        doc = entry.get("doc") if isinstance(entry, dict) else None
        if not isinstance(doc, dict) or "_source" not in doc:
            events.append(None)
            continue
        events.append(_marshal(doc["_source"]))
    return PipelineTestResult(events)