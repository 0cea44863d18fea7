import subprocess
from pathlib import Path

import pytest

from merger import engine as engine_mod
from merger.engine import FFmpegEngine, stderr_tail
from merger.errors import EngineError


class FakePopen:
    """Records the command; writes the output file when returncode == 0."""
    instances = []
    returncode_for_next = 0
    stderr_for_next = b""
    timeout_first = False

    def __init__(self, cmd, stdout=None, stderr=None):
        self.cmd = cmd
        self.pid = 4242
        self.returncode = None
        self.terminated = False
        self.killed = False
        self._timed_out = False
        FakePopen.instances.append(self)

    def communicate(self, timeout=None):
        if FakePopen.timeout_first and not self._timed_out:
            self._timed_out = True
            raise subprocess.TimeoutExpired(self.cmd, timeout)
        self.returncode = -9 if self.killed else FakePopen.returncode_for_next
        if self.returncode == 0:
            Path(self.cmd[-1]).write_bytes(b"video")
        return None, FakePopen.stderr_for_next

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated = True
        self.returncode = -15

    def kill(self):
        self.killed = True

    def wait(self, timeout=None):
        return self.returncode


@pytest.fixture(autouse=True)
def fake_popen(monkeypatch):
    FakePopen.instances = []
    FakePopen.returncode_for_next = 0
    FakePopen.stderr_for_next = b""
    FakePopen.timeout_first = False
    monkeypatch.setattr(engine_mod.subprocess, "Popen", FakePopen)
    return FakePopen


def test_transcode_command_shape(tmp_path):
    eng = FFmpegEngine("ffmpeg-bin")
    out = eng.transcode(tmp_path / "in.mov", tmp_path / "out.mp4", ["-c:v", "libx264"])
    cmd = FakePopen.instances[0].cmd
    assert cmd[0] == "ffmpeg-bin"
    assert cmd[cmd.index("-i") + 1] == str(tmp_path / "in.mov")
    assert cmd[-3:] == ["-c:v", "libx264", str(tmp_path / "out.mp4")]
    assert "-nostdin" in cmd
    assert out == tmp_path / "out.mp4"


def test_concat_uses_concat_demuxer(tmp_path):
    eng = FFmpegEngine()
    eng.concat(tmp_path / "manifest.txt", tmp_path / "merged.mp4", ["-c", "copy"])
    cmd = FakePopen.instances[0].cmd
    i = cmd.index("-f")
    assert cmd[i:i + 4] == ["-f", "concat", "-safe", "0"]
    assert cmd[cmd.index("-i") + 1] == str(tmp_path / "manifest.txt")


def test_nonzero_exit_raises_with_stderr_tail(tmp_path):
    FakePopen.returncode_for_next = 1
    FakePopen.stderr_for_next = b"line1\n\nInvalid data found when processing input\n"
    with pytest.raises(EngineError) as exc:
        FFmpegEngine().transcode(tmp_path / "in", tmp_path / "out.mp4", [])
    err = exc.value
    assert err.returncode == 1
    assert err.stage == "transcode"
    assert "Invalid data found" in err.stderr
    assert "Invalid data found" not in err.message


def test_missing_output_counts_as_failure(tmp_path, monkeypatch):
    def no_output(self, timeout=None):
        self.returncode = 0
        return None, b""
    monkeypatch.setattr(FakePopen, "communicate", no_output)
    with pytest.raises(EngineError) as exc:
        FFmpegEngine().transcode(tmp_path / "in", tmp_path / "out.mp4", [])
    assert "no output" in exc.value.message


def test_missing_binary_is_engine_error(tmp_path, monkeypatch):
    def boom(*args, **kwargs):
        raise FileNotFoundError("ffmpeg")
    monkeypatch.setattr(engine_mod.subprocess, "Popen", boom)
    with pytest.raises(EngineError):
        FFmpegEngine().transcode(tmp_path / "in", tmp_path / "out.mp4", [])


def test_timeout_kills_process(tmp_path):
    FakePopen.timeout_first = True
    with pytest.raises(EngineError) as exc:
        FFmpegEngine(timeout=1).transcode(tmp_path / "in", tmp_path / "out.mp4", [])
    assert FakePopen.instances[0].killed
    assert "timed out" in exc.value.message


def test_terminate_stops_running_and_refuses_new(tmp_path):
    eng = FFmpegEngine()
    running = FakePopen(["ffmpeg"])
    eng._procs.add(running)

    eng.terminate()

    assert running.terminated
    with pytest.raises(EngineError):
        eng.transcode(tmp_path / "in", tmp_path / "out.mp4", [])
    assert FakePopen.instances == [running]


def test_stderr_tail_keeps_last_non_blank_lines():
    text = "\n".join(f"l{i}" for i in range(30)) + "\n\n"
    assert stderr_tail(text, 3) == "l27\nl28\nl29"
