import json

import pytest

from opsmgr.steps.base import (
    GUID_LENGTH,
    SHELL_TMP_PATH,
    STEP_NAME_CMD,
    STEP_NAME_SHELL,
    RunCmdStep,
    RunShellStep,
)


class FakeSession:
    def __init__(self):
        self.password = "password"
        self.calls = []

    def output(self, cmd):
        self.calls.append(("output", cmd))
        return b"out"

    def sudo(self, cmd, password):
        self.calls.append(("sudo", cmd, password))
        return b"root"

    def run_script(self, script, sudo, tmp_path):
        self.calls.append(("script", script, sudo, tmp_path))
        return b"ran"

    def close(self):
        pass


def test_names_and_descriptions():
    assert RunCmdStep().name() == STEP_NAME_CMD == "cmd"
    assert RunShellStep().name() == STEP_NAME_SHELL == "shell"
    assert RunCmdStep().desc() == "执行一条命令"
    assert RunShellStep().desc() == "执行shell脚本"


def test_create_from_json():
    step = RunCmdStep().create(json.dumps({"cmd": "ls -a", "unknown": 1}).encode())
    assert isinstance(step, RunCmdStep)
    assert step.config().cmd == "ls -a"
    assert RunCmdStep().config() is None


def test_create_missing_field_is_empty():
    assert RunShellStep().create("{}").config().shell == ""
    assert RunShellStep().create("null").config().shell == ""


@pytest.mark.parametrize("conf", ["not json", "[1, 2]", '{"cmd": 5}'])
def test_create_rejects_bad_config(conf):
    with pytest.raises(ValueError):
        RunCmdStep().create(conf)


def test_schema_requires_command():
    schema = RunCmdStep().get_schema()
    assert schema["type"] == "object"
    assert schema["required"] == ["cmd"]
    assert schema["properties"]["cmd"]["type"] == "string"
    assert RunShellStep().get_schema()["required"] == ["shell"]


def test_cmd_step_execute_with_and_without_sudo():
    step = RunCmdStep().create('{"cmd": "whoami"}')
    session = FakeSession()
    assert step.execute(session, True) == b"root"
    assert step.execute(session, False) == b"out"
    assert session.calls == [("sudo", "whoami", "password"), ("output", "whoami")]


def test_shell_step_uses_temporary_path():
    step = RunShellStep().create('{"shell": "echo hi"}')
    session = FakeSession()
    assert step.execute(session, True) == b"ran"
    kind, script, sudo, tmp_path = session.calls[0]
    assert (kind, script, sudo) == ("script", "echo hi", True)
    prefix = SHELL_TMP_PATH + "/"
    assert tmp_path.startswith(prefix)
    assert len(tmp_path) == len(prefix) + GUID_LENGTH


def test_unconfigured_step_cannot_execute():
    with pytest.raises(RuntimeError):
        RunCmdStep().execute(FakeSession(), False)