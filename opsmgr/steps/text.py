"""A built-in step that replaces a node of a remote JSON or YAML file."""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from typing import Any, Sequence, Union

import yaml

from opsmgr.steps.base import STEP_NAME_YAML_JSON, Step
from opsmgr.steps.files import RemoteClient, file_ext

PathToken = Union[str, int]

_KEY = re.compile(r"[^.\[\]']+")


class PathNotFound(LookupError):
    """Raised when a path does not lead to an existing node."""


def parse_path(path: str) -> list[PathToken]:
    """Split a path such as ``$.a.b[0].c`` into keys and list indexes.

    Keys holding dots may be quoted: ``$.'a.b'``.
    """
    if not path.startswith("$"):
        raise ValueError(f"path must start with '$': {path!r}")
    tokens: list[PathToken] = []
    pos, end = 1, len(path)
    while pos < end:
        char = path[pos]
        if char == ".":
            pos += 1
            if pos < end and path[pos] == "'":
                close = path.find("'", pos + 1)
                if close < 0:
                    raise ValueError(f"unterminated quoted key in {path!r}")
                tokens.append(path[pos + 1 : close])
                pos = close + 1
                continue
            match = _KEY.match(path, pos)
            if match is None:
                raise ValueError(f"missing key at position {pos} in {path!r}")
            tokens.append(match.group())
            pos = match.end()
        elif char == "[":
            close = path.find("]", pos)
            if close < 0:
                raise ValueError(f"unterminated index in {path!r}")
            inner = path[pos + 1 : close].strip()
            if not inner.isdigit():
                raise ValueError(f"invalid index {inner!r} in {path!r}")
            tokens.append(int(inner))
            pos = close + 1
        else:
            raise ValueError(f"unexpected {char!r} at position {pos} in {path!r}")
    return tokens


def _child(node: Any, token: PathToken) -> Any:
    if isinstance(token, int):
        if isinstance(node, list) and 0 <= token < len(node):
            return node[token]
    elif isinstance(node, dict) and token in node:
        return node[token]
    raise PathNotFound(f"node {token!r} not found")


def replace_at_path(document: Any, path: str | Sequence[PathToken], value: Any) -> Any:
    """Return a copy of ``document`` with the node at ``path`` replaced by ``value``."""
    tokens = parse_path(path) if isinstance(path, str) else list(path)
    if not tokens:
        return copy.deepcopy(value)
    result = copy.deepcopy(document)
    node = result
    for token in tokens[:-1]:
        node = _child(node, token)
    last = tokens[-1]
    _child(node, last)
    node[last] = copy.deepcopy(value)
    return result


_VALUE_SCHEMA = {
    "oneOf": [
        {"type": "string", "title": "文本"},
        {"type": "array", "title": "列表", "items": {"type": "string"}},
    ]
}


@dataclass
class JsonYamlReplaceConfig:
    path: str = field(
        default="",
        metadata={"required": True, "description": "例如: $.path1.path2[0].item"},
    )
    value: Any = field(
        default=None,
        metadata={
            "schema": _VALUE_SCHEMA,
            "required": True,
            "description": '替换的节点值, 输入字符串类型需要: "{value}"',
        },
    )
    remote: str = field(
        default="",
        metadata={"required": True, "description": "远程Yaml/Json路径(不支持大文件)"},
    )


class JsonYamlReplaceStep(Step):
    """Replace the node at a path in a remote JSON or YAML file."""

    step_name = STEP_NAME_YAML_JSON
    description = "修改Json(Yaml)文件"
    config_type = JsonYamlReplaceConfig

    def execute(self, session: Any, sudo: bool) -> bytes:
        cfg = self._require_config()
        client: RemoteClient = session.client
        client.new_sftp_client()

        try:
            tokens = parse_path(cfg.path)
        except ValueError as err:
            raise ValueError(f"parse json path error: {err}") from err
        if not client.path_exists(cfg.remote):
            raise FileNotFoundError("remote not exist")

        ext = file_ext(cfg.remote)
        new_value = self._new_value(cfg.value, ext)

        with client.open_file(cfg.remote, "rb") as handle:
            text = handle.read().decode("utf-8")
        try:
            document = json.loads(text) if ext == "json" else yaml.safe_load(text)
        except yaml.YAMLError as err:
            raise ValueError(f"cannot parse {cfg.remote}: {err}") from err

        updated = replace_at_path(document, tokens, new_value)

        if ext == "json":
            rendered = json.dumps(updated, ensure_ascii=False, indent=2) + "\n"
        else:
            rendered = yaml.safe_dump(updated, allow_unicode=True, sort_keys=False)
        with client.open_file(cfg.remote, "wb") as handle:
            handle.write(rendered.encode("utf-8"))
        return b""

    @staticmethod
    def _new_value(value: Any, ext: str) -> Any:
        if isinstance(value, str):
            try:
                return yaml.safe_load(value)
            except yaml.YAMLError as err:
                raise ValueError(f"cannot parse value: {err}") from err
        if isinstance(value, list):
            if ext not in ("json", "yaml", "yml"):
                raise ValueError("an array value needs a json or yaml file")
            return list(value)
        raise ValueError("value must be a string or an array")