"""Service context, service variants and locating the service deployer of a package."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping

import yaml

from .core import TestRunError
from .skipconfig import _scalar_text

__all__ = [
    "DEV_DEPLOY_DIR",
    "ENV_YML_FILE",
    "SERVICE_LOGS_DIR_ENV",
    "TEST_RUN_ID_ENV",
    "TF_DIR",
    "TF_TEST_RUN_ID",
    "AgentHost",
    "AgentInfo",
    "DeployerError",
    "LogsFolder",
    "LogsInfo",
    "ServiceContext",
    "ServiceVariant",
    "TestInfo",
    "VariantsFile",
    "as_env_var_pairs",
    "build_terraform_aliases",
    "build_terraform_environment",
    "find_dev_deploy_path",
    "find_service_deployer",
    "read_variants_file",
    "use_service_variant",
]

SERVICE_LOGS_DIR_ENV = "SERVICE_LOGS_DIR"
TEST_RUN_ID_ENV = "TEST_RUN_ID"

TF_DIR = "TF_DIR"
TF_TEST_RUN_ID = "TF_VAR_TEST_RUN_ID"
ENV_YML_FILE = "env.yml"

DEV_DEPLOY_DIR = os.path.join("_dev", "deploy")
_DEV_DEPLOY_DISPLAY = "_dev/deploy"


class DeployerError(TestRunError):
    """Raised when a service cannot be located or configured."""


@dataclass
class LogsFolder:
    """Where service log files live, locally and inside the Agent container."""

    local: str = ""
    agent: str = ""


@dataclass
class LogsInfo:
    folder: LogsFolder = field(default_factory=LogsFolder)


@dataclass
class TestInfo:
    run_id: str = ""


@dataclass
class AgentHost:
    name_prefix: str = ""


@dataclass
class AgentInfo:
    host: AgentHost = field(default_factory=AgentHost)


@dataclass
class ServiceContext:
    """Context shared between a service deployer and the service it deployed."""

    name: str = ""
    hostname: str = ""
    ports: list[int] = field(default_factory=list)
    port: int = 0
    logs: LogsInfo = field(default_factory=LogsInfo)
    test: TestInfo = field(default_factory=TestInfo)
    agent: AgentInfo = field(default_factory=AgentInfo)
    custom_properties: dict[str, Any] = field(default_factory=dict)

    def aliases(self) -> dict[str, Any]:
        """Return the names usable in configuration templates and their values."""
        values: dict[str, Any] = {
            SERVICE_LOGS_DIR_ENV: self.logs.folder.agent,
            TEST_RUN_ID_ENV: self.test.run_id,
        }
        values.update(self.custom_properties)
        return values


@dataclass
class VariantsFile:
    """Variants of the service under test, each one a set of environment variables."""

    default: str = ""
    variants: dict[str, dict[str, str]] | None = None


@dataclass(frozen=True)
class ServiceVariant:
    """A selected variant and its environment as ``KEY=value`` pairs."""

    name: str = ""
    env: tuple[str, ...] = ()

    @property
    def active(self) -> bool:
        return self.name != ""

    def __str__(self) -> str:
        return f"ServiceVariant{{Name: {self.name}, Env: {','.join(self.env)}}}"


def _exists(path: str, what: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError as err:
        raise DeployerError(f"stat failed for {what} (path: {path}): {err}") from err
    return True


def read_variants_file(dev_deploy_path: str) -> VariantsFile:
    """Read ``variants.yml``; raise ``FileNotFoundError`` when there is none."""
    path = os.path.join(dev_deploy_path, "variants.yml")
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except FileNotFoundError:
        raise
    except OSError as err:
        raise DeployerError(f"can't read variants file: {err}") from err

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise DeployerError(f"can't unmarshal variants file: {err}") from err
    if data is None:
        return VariantsFile()
    if not isinstance(data, Mapping):
        raise DeployerError("can't unmarshal variants file: mapping expected")

    raw_variants = data.get("variants")
    variants: dict[str, dict[str, str]] | None = None
    if raw_variants is not None:
        if not isinstance(raw_variants, Mapping):
            raise DeployerError("can't unmarshal variants file: variants must be a mapping")
        variants = {}
        for name, env in raw_variants.items():
            if env is None:
                env = {}
            if not isinstance(env, Mapping):
                raise DeployerError(
                    f"can't unmarshal variants file: variant {name} must be a mapping"
                )
            variants[str(name)] = {str(k): _scalar_text(v) for k, v in env.items()}
    return VariantsFile(default=_scalar_text(data.get("default")), variants=variants)


def as_env_var_pairs(env: Mapping[str, str]) -> tuple[str, ...]:
    """Render environment variables as ``KEY=value`` pairs."""
    return tuple(f"{key}={value}" for key, value in env.items())


def use_service_variant(dev_deploy_path: str, selected: str = "") -> ServiceVariant:
    """Pick the selected variant, or the default one; no variants file means no variant."""
    try:
        variants_file = read_variants_file(dev_deploy_path)
    except FileNotFoundError:
        return ServiceVariant()

    if not selected:
        selected = variants_file.default
    if not variants_file.default:
        raise DeployerError("default variant is undefined")

    env = (variants_file.variants or {}).get(selected)
    if env is None:
        raise DeployerError(f'variant "{selected}" is missing')
    return ServiceVariant(name=selected, env=as_env_var_pairs(env))


def find_dev_deploy_path(package_root: str, data_stream_root: str) -> str:
    """Return the data stream's ``_dev/deploy`` directory, else the package's."""
    data_stream_path = os.path.join(data_stream_root, DEV_DEPLOY_DIR)
    if _exists(data_stream_path, "data stream"):
        return data_stream_path
    package_path = os.path.join(package_root, DEV_DEPLOY_DIR)
    if _exists(package_path, "package"):
        return package_path
    raise DeployerError(f'"{_DEV_DEPLOY_DISPLAY}" directory doesn\'t exist')


def find_service_deployer(dev_deploy_path: str) -> str:
    """Return the name of the single service deployer directory."""
    try:
        with os.scandir(dev_deploy_path) as entries:
            folders = sorted(entry.name for entry in entries if entry.is_dir())
    except OSError as err:
        raise DeployerError(
            f"can't read directory (path: {_DEV_DEPLOY_DISPLAY}): {err}"
        ) from err
    if len(folders) != 1:
        raise DeployerError(
            f'expected to find only one service deployer in "{dev_deploy_path}"'
        )
    return folders[0]


def build_terraform_environment(ctxt: ServiceContext, definitions_dir: str) -> list[str]:
    """Environment for the Terraform executor as ``KEY=value`` pairs."""
    env = {
        SERVICE_LOGS_DIR_ENV: ctxt.logs.folder.local,
        TF_TEST_RUN_ID: ctxt.test.run_id,
        TF_DIR: definitions_dir,
    }
    return list(as_env_var_pairs(env))


def _environment(section: Any) -> dict[str, str]:
    if section is None:
        return {}
    if isinstance(section, Mapping):
        return {str(k): _scalar_text(v) for k, v in section.items()}
    if isinstance(section, list):
        env = {}
        for item in section:
            key, _, value = str(item).partition("=")
            env[key] = value
        return env
    raise DeployerError("environment of terraform service must be a mapping or a list")


def build_terraform_aliases(compose_config: Mapping[str, Any]) -> dict[str, str]:
    """Collect non-empty environment values of the ``terraform`` service as aliases."""
    services = compose_config.get("services") or {}
    service = services.get("terraform") if isinstance(services, Mapping) else None
    if service is None:
        raise DeployerError("missing config section for terraform service")
    environment = _environment(service.get("environment"))
    return {
        name: value
        for name, value in environment.items()
        if value != "" and not name.startswith("TF_VAR_")
    }