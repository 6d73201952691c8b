import json
import threading

import pytest

from opsmgr.player import Player, PlayerError, WindowSize
from opsmgr.steps.base import RunCmdStep, RunShellStep


class FakeSession:
    def __init__(self, cancel=None):
        self.password = "password"
        self.closed = threading.Event()
        self.cancel = cancel

    def output(self, cmd):
        return b"out:" + cmd.encode()

    def sudo(self, cmd, password):
        if cmd == "fail":
            raise RuntimeError("boom")
        if cmd == "block":
            self.cancel.set()
            return b"closed" if self.closed.wait(3) else b"timeout"
        return b"sudo:" + cmd.encode() + b":" + password.encode()

    def run_script(self, script, sudo, tmp_path):
        return b"script:" + script.encode()

    def close(self):
        self.closed.set()


class FakeClient:
    def __init__(self, cancel=None, broken=False):
        self.sessions = []
        self.sizes = []
        self.cancel = cancel
        self.broken = broken

    def new_pty(self):
        if self.broken:
            raise ConnectionError("no connection")
        session = FakeSession(self.cancel)
        self.sessions.append(session)
        return session

    def new_session_with_pty(self, cols, rows):
        self.sizes.append((cols, rows))
        return self.new_pty()


def _cmd(cmd):
    return RunCmdStep().create(json.dumps({"cmd": cmd}))


def _shell(shell):
    return RunShellStep().create(json.dumps({"shell": shell}))


def test_gen_json_schema():
    for step in (RunCmdStep(), RunShellStep()):
        schema = step.get_schema()
        encoded = json.dumps(schema)
        assert json.loads(encoded) == schema
        assert schema["required"] == [step.name()]


def test_player_run():
    client = FakeClient()
    player = Player(client, [_cmd("ls -a"), _shell("ls -l")], True, None)
    output = player.run()
    assert output.startswith(b'\x1b[36m[Step      cmd] ==> ""\r\n\x1b[0m')
    assert b"sudo:ls -a:password" in output
    assert b"[Step    shell]" in output
    assert output.endswith(b"script:ls -l")
    assert len(client.sessions) == 2
    assert all(session.closed.is_set() for session in client.sessions)


def test_player_uses_window_size():
    client = FakeClient()
    Player(client, [_cmd("ls")], False, WindowSize(cols=120, rows=30)).run()
    assert client.sizes == [(120, 30)]


def test_failed_step_does_not_stop_later_steps():
    client = FakeClient()
    output = Player(client, [_cmd("fail"), _cmd("ok")], True).run()
    assert b"boom" in output
    assert output.endswith(b"sudo:ok:password")


def test_session_error_raises_with_output():
    client = FakeClient(broken=True)
    with pytest.raises(PlayerError) as info:
        Player(client, [_cmd("ls")], True).run()
    assert info.value.output == b"no connection"


def test_cancelled_before_start_runs_nothing():
    cancel = threading.Event()
    cancel.set()
    client = FakeClient()
    assert Player(client, [_cmd("ls")], True).run(cancel) == b""
    assert client.sessions == []


def test_cancel_closes_running_session_and_stops():
    cancel = threading.Event()
    client = FakeClient(cancel=cancel)
    output = Player(client, [_cmd("block"), _cmd("after")], True).run(cancel)
    assert output.endswith(b"closed")
    assert b"after" not in output
    assert len(client.sessions) == 1