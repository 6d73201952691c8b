"""Playbook steps and the built-in command and shell steps."""

from __future__ import annotations

import copy
import json
import posixpath
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Protocol

STEP_NAME_CMD = "cmd"
STEP_NAME_SHELL = "shell"
STEP_NAME_FILE = "file"
STEP_NAME_MULTI_FILE = "multi_file"
STEP_NAME_ZIP_FILE = "zip"
STEP_NAME_YAML_JSON = "json_yaml"

GUID_LENGTH = 36
SHELL_TMP_PATH = ".oms"

_STRING = {"type": "string"}


class Session(Protocol):
    """A remote shell session a step runs in."""

    password: str

    def output(self, cmd: str) -> bytes: ...

    def sudo(self, cmd: str, password: str) -> bytes: ...

    def run_script(self, script: str, sudo: bool, tmp_path: str) -> bytes: ...

    def close(self) -> None: ...


def _check_value(name: str, value: Any, schema: dict[str, Any]) -> None:
    kind = schema.get("type")
    if kind == "string" and not isinstance(value, str):
        raise ValueError(f"config field {name!r} must be a string")
    if kind == "array":
        if not isinstance(value, list):
            raise ValueError(f"config field {name!r} must be an array")
        if schema.get("items", {}).get("type") == "string" and not all(
            isinstance(item, str) for item in value
        ):
            raise ValueError(f"config field {name!r} must hold strings")


def _decode_config(config_type: type, conf: bytes | bytearray | str) -> Any:
    if isinstance(conf, (bytes, bytearray)):
        conf = conf.decode("utf-8")
    data = json.loads(conf)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("step config must be a JSON object")
    values = {}
    for item in fields(config_type):
        value = data.get(item.name)
        if value is None:
            continue
        _check_value(item.name, value, item.metadata.get("schema", _STRING))
        values[item.name] = value
    return config_type(**values)


def _build_schema(config_type: type) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []
    for item in fields(config_type):
        prop = copy.deepcopy(dict(item.metadata.get("schema", _STRING)))
        description = item.metadata.get("description")
        if description:
            prop["description"] = description
        properties[item.name] = prop
        if item.metadata.get("required"):
            required.append(item.name)
    schema: dict[str, Any] = {
        "type": "object",
        "properties": properties,
        "additionalProperties": False,
    }
    if required:
        schema["required"] = required
    return schema


class Step(ABC):
    """A playbook step type.

    An instance without a config serves as the prototype of its type:
    ``create`` builds configured steps from JSON and ``get_schema``
    describes the form of that JSON.
    """

    step_name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    config_type: ClassVar[type]

    def __init__(self, cfg: Any = None, step_id: str = "") -> None:
        self._cfg = cfg
        self.id = step_id

    def create(self, conf: bytes | bytearray | str) -> Step:
        """A new step of this type configured from a JSON object; ValueError if invalid."""
        return type(self)(_decode_config(self.config_type, conf))

    def name(self) -> str:
        return self.step_name

    def desc(self) -> str:
        return self.description

    def config(self) -> Any:
        return self._cfg

    def get_schema(self) -> dict[str, Any]:
        """JSON schema of this step's configuration."""
        return _build_schema(self.config_type)

    @abstractmethod
    def execute(self, session: Any, sudo: bool) -> bytes:
        """Run the step in ``session`` and return its output."""

    def _require_config(self) -> Any:
        if self._cfg is None:
            raise RuntimeError(f"step {self.name()!r} is not configured")
        return self._cfg


@dataclass
class RunCmdConfig:
    cmd: str = field(default="", metadata={"schema": _STRING, "required": True})


class RunCmdStep(Step):
    """Run one command."""

    step_name = STEP_NAME_CMD
    description = "执行一条命令"
    config_type = RunCmdConfig

    def execute(self, session: Session, sudo: bool) -> bytes:
        cfg = self._require_config()
        if sudo:
            return session.sudo(cfg.cmd, session.password)
        return session.output(cfg.cmd)


@dataclass
class RunShellConfig:
    shell: str = field(default="", metadata={"schema": _STRING, "required": True})


class RunShellStep(Step):
    """Run a shell script uploaded to a temporary remote path."""

    step_name = STEP_NAME_SHELL
    description = "执行shell脚本"
    config_type = RunShellConfig

    def execute(self, session: Session, sudo: bool) -> bytes:
        cfg = self._require_config()
        tmp_path = posixpath.join(SHELL_TMP_PATH, str(uuid.uuid4()))
        return session.run_script(cfg.shell, sudo, tmp_path)