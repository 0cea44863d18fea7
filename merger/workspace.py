import logging
import shutil
from pathlib import Path

from .errors import CleanupWarning, ResourceError

logger = logging.getLogger(__name__)


class Workspace:
    """
    Job-scoped scratch directory.

    Every artifact a job creates is registered here before it is written;
    close() removes all of them and the directory itself. Removal problems
    are logged and returned as CleanupWarning, never raised.
    """

    def __init__(self, job_id: str, path: Path):
        self.job_id = job_id
        self.path = path
        self._registered: list[Path] = []
        self._closed = False

    def __enter__(self) -> "Workspace":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def registered(self) -> tuple[Path, ...]:
        return tuple(self._registered)

    def register(self, path) -> Path:
        if self._closed:
            raise ResourceError(
                "Workspace is already closed.",
                detail=f"register({path}) after close of {self.path}",
            )
        path = Path(path)
        if path not in self._registered:
            self._registered.append(path)
        return path

    def path_for(self, name: str) -> Path:
        """Register and return a path inside the workspace directory."""
        return self.register(self.path / name)

    def close(self) -> list[CleanupWarning]:
        if self._closed:
            return []
        self._closed = True

        warnings = []
        # newest first so directories registered early are emptied last
        for path in reversed(self._registered):
            warning = _remove(path)
            if warning:
                warnings.append(warning)
        warning = _remove(self.path)
        if warning:
            warnings.append(warning)

        for w in warnings:
            logger.warning("job %s cleanup: %s", self.job_id, w)
        return warnings


def _remove(path: Path) -> CleanupWarning | None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
    except OSError as e:
        return CleanupWarning(path, str(e))
    return None


def open_workspace(job_id: str, root) -> Workspace:
    """
    Create <root>/job_<job_id>. The job id is unique per request, so an
    existing directory means a collision and is refused.
    """
    root = Path(root)
    path = root / f"job_{job_id}"
    try:
        root.mkdir(parents=True, exist_ok=True)
        path.mkdir(exist_ok=False)
    except OSError as e:
        raise ResourceError("Could not allocate a workspace for the job.", detail=str(e)) from e
    logger.debug("job %s workspace %s", job_id, path)
    return Workspace(job_id, path)
