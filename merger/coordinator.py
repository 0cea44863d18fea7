"""
Runs one merge job end to end:

    resolve quality -> open workspace -> materialize inputs
    -> normalize (fan-out) -> concatenate -> publish -> close workspace

Every failure surfaces as exactly one MergeError, and the workspace is closed
on every exit path before the error reaches the caller.
"""
import enum
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from .concatenator import concatenate, output_name
from .engine import FFmpegEngine
from .errors import MergeError, ResourceError, ValidationError
from .normalizer import InputAsset, normalize_all
from .quality import QualityParameters, resolve
from .workspace import Workspace, open_workspace

logger = logging.getLogger(__name__)

MIN_INPUTS = 2


class JobState(str, enum.Enum):
    PENDING = "PENDING"
    RESOLVING = "RESOLVING"
    NORMALIZING = "NORMALIZING"
    CONCATENATING = "CONCATENATING"
    PUBLISHING = "PUBLISHING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class MergeResult:
    job_id: str
    output: str
    params: QualityParameters


def _safe_suffix(name: str) -> str:
    suffix = Path(name or "").suffix.lower()
    if 1 < len(suffix) <= 6 and suffix[1:].isalnum():
        return suffix
    return ".bin"


def materialize(asset: InputAsset, workspace: Workspace) -> InputAsset:
    """Write the uploaded bytes into the workspace."""
    path = workspace.path_for(f"input_{asset.index}{_safe_suffix(asset.name)}")
    try:
        if isinstance(asset.content, (bytes, bytearray)):
            path.write_bytes(asset.content)
        else:
            with open(path, "wb") as f:
                shutil.copyfileobj(asset.content, f)
    except OSError as e:
        raise ResourceError(
            f"Input #{asset.position} could not be stored.", detail=str(e)
        ) from e
    asset.path = path
    return asset


class MergeCoordinator:
    def __init__(
        self,
        scratch_root,
        publisher: Callable[[Path, str], str],
        engine_factory: Callable[[], object] = FFmpegEngine,
        max_workers: int = 4,
        on_state: Callable[[JobState], None] | None = None,
    ):
        self.scratch_root = Path(scratch_root)
        self.publisher = publisher
        self.engine_factory = engine_factory
        self.max_workers = max_workers
        self.on_state = on_state

    def _enter(self, job_id: str, state: JobState) -> None:
        logger.info("job %s -> %s", job_id, state.value)
        if self.on_state:
            self.on_state(state)

    def run(self, job_id: str, sources: Sequence[tuple[str, object]], selection=None) -> MergeResult:
        job_id = str(job_id)
        self._enter(job_id, JobState.PENDING)
        try:
            return self._run(job_id, sources, selection)
        except MergeError as e:
            logger.warning("job %s failed (%s): %s", job_id, e.kind, e.message)
            self._enter(job_id, JobState.FAILED)
            raise
        except Exception as e:
            logger.exception("job %s failed unexpectedly", job_id)
            self._enter(job_id, JobState.FAILED)
            raise ResourceError("The merge job failed.", detail=repr(e)) from e

    def _run(self, job_id: str, sources, selection) -> MergeResult:
        self._enter(job_id, JobState.RESOLVING)
        if len(sources) < MIN_INPUTS:
            raise ValidationError(f"At least {MIN_INPUTS} videos are required.")
        params = resolve(selection)
        assets = [InputAsset(i, name, content) for i, (name, content) in enumerate(sources)]

        with open_workspace(job_id, self.scratch_root) as workspace:
            for asset in assets:
                materialize(asset, workspace)

            engine = self.engine_factory()
            self._enter(job_id, JobState.NORMALIZING)
            normalized = normalize_all(assets, params, engine, workspace, self.max_workers)

            self._enter(job_id, JobState.CONCATENATING)
            merged = concatenate(normalized, params, engine, workspace, job_id)

            self._enter(job_id, JobState.PUBLISHING)
            output = self.publisher(merged, output_name(job_id, params))

        self._enter(job_id, JobState.DONE)
        return MergeResult(job_id, output, params)
