class MergeError(Exception):
    """
    Base class for every failure that can end a merge job.

    `message` is safe to show to the caller; `detail` holds server-side
    diagnostics (engine stderr, OS errors) and never leaves the logs.
    """
    kind = "error"

    def __init__(self, message: str, *, detail: str = ""):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def as_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(MergeError):
    """Too few inputs or quality fields outside their documented bounds."""
    kind = "validation"


class EngineError(MergeError):
    """The transcoding engine exited non-zero or produced no output."""
    kind = "engine"

    def __init__(
        self,
        message: str,
        *,
        detail: str = "",
        input_index: int | None = None,
        stage: str = "",
        returncode: int | None = None,
        stderr: str = "",
    ):
        super().__init__(message, detail=detail or stderr)
        self.input_index = input_index  # 1-based position in the submitted order
        self.stage = stage
        self.returncode = returncode
        self.stderr = stderr


class ResourceError(MergeError):
    """Workspace creation, materialization or publishing failed."""
    kind = "resource"


class ManifestError(ResourceError):
    """Concat manifest is empty or references a missing intermediate."""


class CleanupWarning(UserWarning):
    """An artifact could not be removed after the job finished."""

    def __init__(self, path, reason: str):
        super().__init__(f"could not remove {path}: {reason}")
        self.path = path
        self.reason = reason
