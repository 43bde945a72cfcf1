"""Optional test configuration files that can mark a test as skipped."""

from __future__ import annotations

import os
from typing import Any, Mapping

import yaml

from .core import SkipConfig, TestRunError

__all__ = ["CONFIG_FILE", "load_skippable_config"]

CONFIG_FILE = "config.yml"


def _scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _read_yaml_mapping(path: str) -> dict:
    """Read a YAML document that must be a mapping; a missing file raises OSError."""
    with open(path, encoding="utf-8") as handle:
        text = handle.read()
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise TestRunError(f"unable to load test configuration file: {path}: {err}") from err
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TestRunError(f"unable to load test configuration file: {path}: mapping expected")
    return {str(key): value for key, value in data.items()}


def _merge(target: dict, source: Mapping) -> dict:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value
    return target


def _expand_dotted(mapping: Mapping) -> dict:
    """Turn keys like ``skip.reason`` into nested mappings."""
    expanded: dict = {}
    for key, value in mapping.items():
        if isinstance(value, Mapping):
            value = _expand_dotted(value)
        *parents, last = str(key).split(".")
        target = expanded
        for part in parents:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        if isinstance(value, dict) and isinstance(target.get(last), dict):
            _merge(target[last], value)
        else:
            target[last] = value
    return expanded


def _parse_skip(value: Any, source: str) -> SkipConfig | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise TestRunError(
            f"unable to unpack test configuration file: {source}: skip must be a mapping"
        )
    return SkipConfig(
        reason=_scalar_text(value.get("reason")),
        link=_scalar_text(value.get("url")),
    )


def load_skippable_config(folder: str) -> SkipConfig | None:
    """Read ``config.yml`` in the folder and return its skip setting, if any."""
    path = os.path.join(folder, CONFIG_FILE)
    try:
        data = _read_yaml_mapping(path)
    except FileNotFoundError:
        return None
    except OSError as err:
        raise TestRunError(f"could not load test configuration file: {path}: {err}") from err
    return _parse_skip(_expand_dotted(data).get("skip"), path)