"""
ffmpeg as the external transcoding engine.

Only two capabilities are used: transcode one input and concat a manifest.
Each call blocks until the ffmpeg process exits. Live processes are tracked
so a failing or aborted job can stop its siblings with terminate().
"""
import logging
import subprocess
import threading
from pathlib import Path

from .errors import EngineError

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20
TERMINATE_GRACE_SECONDS = 5


def stderr_tail(text: str, max_lines: int = STDERR_TAIL_LINES) -> str:
    lines = [ln for ln in text.strip().splitlines() if ln.strip()]
    return "\n".join(lines[-max_lines:])


class FFmpegEngine:
    def __init__(self, binary: str = "ffmpeg", timeout: float | None = None):
        self.binary = binary
        self.timeout = timeout
        self._procs: set[subprocess.Popen] = set()
        self._lock = threading.Lock()
        self._terminated = False

    def transcode(self, input_path: Path, output_path: Path, args: list[str]) -> Path:
        cmd = [self.binary, "-hide_banner", "-nostdin", "-y", "-i", str(input_path), *args, str(output_path)]
        self._run(cmd, stage="transcode")
        return _require_output(output_path, stage="transcode")

    def concat(self, manifest_path: Path, output_path: Path, args: list[str]) -> Path:
        cmd = [
            self.binary, "-hide_banner", "-nostdin", "-y",
            "-f", "concat", "-safe", "0",
            "-i", str(manifest_path),
            *args,
            str(output_path),
        ]
        self._run(cmd, stage="concat")
        return _require_output(output_path, stage="concat")

    def terminate(self) -> None:
        """Stop every process still running and refuse new ones."""
        with self._lock:
            self._terminated = True
            procs = list(self._procs)
        for proc in procs:
            if proc.poll() is not None:
                continue
            logger.info("terminating ffmpeg pid %s", proc.pid)
            proc.terminate()
            try:
                proc.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                logger.warning("ffmpeg pid %s did not terminate, killing", proc.pid)
                proc.kill()

    def _run(self, cmd: list[str], *, stage: str) -> None:
        logger.debug("running %s", " ".join(cmd))
        with self._lock:
            if self._terminated:
                raise EngineError("Processing was cancelled.", stage=stage)
            try:
                proc = subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
            except OSError as e:
                raise EngineError(
                    "The transcoding engine is unavailable.", stage=stage, detail=str(e)
                ) from e
            self._procs.add(proc)

        try:
            try:
                _, err = proc.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                _, err = proc.communicate()
                raise EngineError(
                    "The transcoding engine timed out.",
                    stage=stage,
                    returncode=proc.returncode,
                    stderr=stderr_tail(err.decode("utf-8", errors="ignore")),
                ) from None
            except BaseException:
                # interrupted while waiting (task abort); don't leave ffmpeg behind
                proc.kill()
                proc.wait()
                raise
        finally:
            with self._lock:
                self._procs.discard(proc)

        if proc.returncode != 0:
            tail = stderr_tail(err.decode("utf-8", errors="ignore"))
            logger.error("ffmpeg %s exited with %s:\n%s", stage, proc.returncode, tail)
            raise EngineError(
                f"The transcoding engine failed during {stage}.",
                stage=stage,
                returncode=proc.returncode,
                stderr=tail,
            )


def _require_output(path: Path, *, stage: str) -> Path:
    path = Path(path)
    if not path.is_file() or path.stat().st_size == 0:
        raise EngineError(
            f"The transcoding engine produced no output during {stage}.",
            stage=stage,
            detail=f"missing or empty output {path}",
        )
    return path
