import os
import shutil
import subprocess
from types import SimpleNamespace

import pytest

import zjpane
from zjpane import (
    GatewayExecutionError,
    GatewayTimeoutError,
    Pane,
    PaneNotFoundError,
    ParseError,
    ZjpaneGateway,
    parse_pane_list,
)


class RecordingRun:
    """Stand-in for subprocess.run that records argv and returns canned output."""

    def __init__(self, stdout="", returncode=0, stderr="", exc=None):
        self.stdout = stdout
        self.returncode = returncode
        self.stderr = stderr
        self.exc = exc
        self.calls = []

    def __call__(self, args, **kwargs):
        self.calls.append((args, kwargs))
        if self.exc is not None:
            raise self.exc
        return SimpleNamespace(stdout=self.stdout, stderr=self.stderr, returncode=self.returncode)

    @property
    def commands(self):
        return [args[-1] for args, _ in self.calls]


@pytest.fixture
def run(monkeypatch):
    fake = RecordingRun()
    monkeypatch.setattr(zjpane.subprocess, "run", fake)
    return fake


# === COMMAND FORMAT ===

def test_command_joins_namespace_and_fields():
    gw = ZjpaneGateway()
    assert gw.command("list") == "zjpane::list"
    assert gw.command("write_id", 7, "ls -la") == "zjpane::write_id::7::ls -la"


def test_custom_namespace():
    assert ZjpaneGateway(namespace="other").command("list") == "other::list"


@pytest.mark.parametrize("call, expected", [
    (lambda gw: gw.spawn("w1"), "zjpane::spawn::w1"),
    (lambda gw: gw.spawn("w1", "left"), "zjpane::spawn::w1::left"),
    (lambda gw: gw.write("w1", "echo hi"), "zjpane::write::w1::echo hi"),
    (lambda gw: gw.write_by_id(3, "echo hi"), "zjpane::write_id::3::echo hi"),
    (lambda gw: gw.write_raw("w1", "echo hi"), "zjpane::write_raw::w1::echo hi"),
    (lambda gw: gw.write_raw_by_id(3, "echo hi"), "zjpane::write_raw_id::3::echo hi"),
    (lambda gw: gw.send_enter("w1"), "zjpane::send_enter::w1"),
    (lambda gw: gw.send_enter_by_id(3), "zjpane::send_enter_id::3"),
    (lambda gw: gw.read("w1"), "zjpane::read::w1"),
    (lambda gw: gw.read("w1", full=True), "zjpane::read::w1::full"),
    (lambda gw: gw.read_by_id(3), "zjpane::read_id::3"),
    (lambda gw: gw.read_by_id(3, full=True), "zjpane::read_id::3::full"),
    (lambda gw: gw.close("w1"), "zjpane::close::w1"),
    (lambda gw: gw.close_by_id(3), "zjpane::close_id::3"),
    (lambda gw: gw.focus("w1"), "zjpane::focus::w1"),
])
def test_operation_command_strings(run, call, expected):
    call(ZjpaneGateway())
    assert run.commands == [expected]


# === EXECUTE ===

def test_execute_invokes_zellij_pipe(run):
    run.stdout = "  output\n"
    assert ZjpaneGateway().execute("zjpane::list") == "output"

    args, kwargs = run.calls[0]
    assert args == ["zellij", "pipe", "zjpane::list"]
    assert kwargs["timeout"] == 10.0
    assert kwargs["stdin"] == subprocess.DEVNULL
    assert kwargs["encoding"] == "utf-8"
    assert kwargs["errors"] == "replace"


def test_execute_targets_session_and_binary(run):
    ZjpaneGateway(session="work", zellij_bin="/opt/zellij", timeout=2.5).execute("zjpane::list")
    args, kwargs = run.calls[0]
    assert args == ["/opt/zellij", "-s", "work", "pipe", "zjpane::list"]
    assert kwargs["timeout"] == 2.5


def test_execute_per_call_timeout(run):
    ZjpaneGateway().execute("zjpane::list", timeout=1.0)
    assert run.calls[0][1]["timeout"] == 1.0


def test_execute_timeout_raises_gateway_timeout(run):
    run.exc = subprocess.TimeoutExpired(["zellij"], 10)
    with pytest.raises(GatewayTimeoutError) as exc_info:
        ZjpaneGateway().execute("zjpane::read::w1")
    assert exc_info.value.command == "zjpane::read::w1"
    assert "launch-or-focus-plugin" in str(exc_info.value)


def test_execute_nonzero_exit_raises_execution_error(run):
    run.returncode = 1
    run.stderr = "There is no active session!\n"
    with pytest.raises(GatewayExecutionError) as exc_info:
        ZjpaneGateway().execute("zjpane::list")
    err = exc_info.value
    assert err.command == "zjpane::list"
    assert err.returncode == 1
    assert err.stderr == "There is no active session!"
    assert "There is no active session!" in str(err)


def test_execute_missing_binary_raises_execution_error(run):
    run.exc = FileNotFoundError(2, "No such file or directory", "zellij")
    with pytest.raises(GatewayExecutionError) as exc_info:
        ZjpaneGateway().execute("zjpane::list")
    assert exc_info.value.command == "zjpane::list"
    assert exc_info.value.returncode is None


# === LIST PARSING ===

def test_parse_empty_output_is_empty_list():
    assert parse_pane_list("", "zjpane::list") == []


def test_parse_pane_records():
    output = '[{"id": 1, "title": "main"}, {"id": 4, "title": "worker1", "extra": true}]'
    assert parse_pane_list(output, "zjpane::list") == [Pane(1, "main"), Pane(4, "worker1")]


@pytest.mark.parametrize("output", [
    "not json",
    '{"id": 1, "title": "main"}',
    '[1, 2]',
    '[{"id": "1", "title": "main"}]',
    '[{"id": 1}]',
    '[{"id": true, "title": "main"}]',
])
def test_parse_malformed_output_raises(output):
    with pytest.raises(ParseError) as exc_info:
        parse_pane_list(output, "zjpane::list")
    assert exc_info.value.output == output
    assert exc_info.value.command == "zjpane::list"


def test_list_panes_empty_output(run):
    assert ZjpaneGateway().list_panes() == []
    assert run.commands == ["zjpane::list"]


def test_list_panes_malformed(run):
    run.stdout = "garbage"
    with pytest.raises(ParseError):
        ZjpaneGateway().list_panes()


def test_find_and_titles(run):
    run.stdout = '[{"id": 1, "title": "main"}, {"id": 2, "title": "worker1"}]'
    gw = ZjpaneGateway()
    assert gw.find("worker1") == Pane(2, "worker1")
    assert gw.find("worker") is None
    assert gw.titles() == ["main", "worker1"]


# === LIVENESS ===

def test_is_loaded_true_when_list_answers(run):
    run.stdout = "[]"
    assert ZjpaneGateway().is_loaded() is True


def test_is_loaded_false_on_timeout(run):
    run.exc = subprocess.TimeoutExpired(["zellij"], 10)
    assert ZjpaneGateway().is_loaded() is False


def test_is_loaded_false_on_failure(run):
    run.returncode = 2
    assert ZjpaneGateway().is_loaded() is False


# === ERROR ENVELOPES ===

def test_error_to_dict_includes_command():
    err = GatewayExecutionError("zjpane command failed: boom", "zjpane::list")
    assert err.to_dict() == {"success": False, "error": "zjpane command failed: boom", "command": "zjpane::list"}


def test_pane_not_found_lists_available():
    err = PaneNotFoundError("ghost", ["main", "worker1"])
    assert err.to_dict() == {
        "success": False,
        "error": 'Pane "ghost" not found',
        "available_panes": ["main", "worker1"],
    }


# === OUTPUT DECODING ===

def fake_zellij(tmp_path, body):
    script = tmp_path / "zellij"
    script.write_text("#!/bin/sh\n" + body + "\n")
    script.chmod(0o755)
    return str(script)


@pytest.mark.skipif(shutil.which("sh") is None or os.name != "posix", reason="needs a POSIX shell")
def test_execute_decodes_output_as_utf8(tmp_path):
    zellij = fake_zellij(tmp_path, "printf 'caf\\303\\251 \\342\\234\\223'")
    assert ZjpaneGateway(zellij_bin=zellij).execute("zjpane::read::w1") == "café ✓"


@pytest.mark.skipif(shutil.which("sh") is None or os.name != "posix", reason="needs a POSIX shell")
def test_execute_tolerates_invalid_utf8(tmp_path):
    zellij = fake_zellij(tmp_path, "printf 'ok \\377\\376 bytes'")
    output = ZjpaneGateway(zellij_bin=zellij).execute("zjpane::read::w1")
    assert output == "ok \ufffd\ufffd bytes"


@pytest.mark.skipif(shutil.which("sh") is None or os.name != "posix", reason="needs a POSIX shell")
def test_is_loaded_false_on_undecodable_list(tmp_path):
    zellij = fake_zellij(tmp_path, "printf '[\\377]'")
    assert ZjpaneGateway(zellij_bin=zellij).is_loaded() is False
