import threading
from pathlib import Path

import pytest

from merger.errors import EngineError


class FakeEngine:
    """
    Stands in for ffmpeg. A "transcode" wraps the input bytes as N[...] and a
    "concat" joins the manifest entries in the order listed, so the merged
    bytes show exactly which inputs went in and in which order.
    """

    def __init__(self, fail_on=(), fail_concat=False):
        self.fail_on = set(fail_on)      # 1-based input positions
        self.fail_concat = fail_concat
        self.transcoded = []
        self.transcode_args = []
        self.concat_args = None
        self.manifest_text = None
        self.terminated = False
        self._lock = threading.Lock()

    @staticmethod
    def position(input_path) -> int:
        return int(Path(input_path).stem.split("_")[1]) + 1

    def transcode(self, input_path, output_path, args):
        pos = self.position(input_path)
        with self._lock:
            self.transcoded.append(pos)
            self.transcode_args.append(args)
        if pos in self.fail_on:
            Path(output_path).write_bytes(b"partial")
            raise EngineError("engine failed", stage="transcode", returncode=1,
                              stderr="moov atom not found")
        Path(output_path).write_bytes(b"N[" + Path(input_path).read_bytes() + b"]")
        return Path(output_path)

    def concat(self, manifest_path, output_path, args):
        self.manifest_text = Path(manifest_path).read_text(encoding="utf-8")
        self.concat_args = args
        if self.fail_concat:
            raise EngineError("concat failed", stage="concat", returncode=1,
                              stderr="Non-monotonous DTS in output stream")
        entries = [line[len("file '"):-1] for line in self.manifest_text.splitlines()]
        Path(output_path).write_bytes(b"".join(Path(p).read_bytes() for p in entries))
        return Path(output_path)

    def terminate(self):
        self.terminated = True


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def scratch_root(tmp_path):
    root = tmp_path / "scratch"
    root.mkdir()
    return root


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "merged"
