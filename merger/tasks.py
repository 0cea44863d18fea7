import logging
from contextlib import ExitStack
from pathlib import Path

from celery import shared_task
from django.conf import settings

from .coordinator import JobState, MergeCoordinator
from .engine import FFmpegEngine
from .errors import MergeError
from .models import MergeJob
from .publish import DirectoryPublisher
from .s3 import S3Publisher, open_object
from .utils import discard_staged_uploads

logger = logging.getLogger(__name__)


def _update(job: MergeJob, *, status=None, output_ref=None, error_kind=None, error=None):
    if status:
        job.status = status
    if output_ref is not None:
        job.output_ref = output_ref
    if error_kind is not None:
        job.error_kind = error_kind
    if error is not None:
        job.error = error[:4000]
    job.save(update_fields=["status", "output_ref", "error_kind", "error", "updated_at"])


def get_publisher():
    if settings.MERGE_PUBLISH_BACKEND == "s3":
        return S3Publisher()
    return DirectoryPublisher(settings.MERGE_OUTPUT_DIR, settings.MERGE_OUTPUT_URL)


def get_engine() -> FFmpegEngine:
    return FFmpegEngine(settings.FFMPEG_BINARY, timeout=settings.FFMPEG_TIMEOUT_SECONDS)


def _open_inputs(job: MergeJob, stack: ExitStack) -> list[tuple[str, object]]:
    """
    (name, readable stream) per input, in submission order. Local refs are
    relative to MEDIA_ROOT; anything else is an S3 key.
    """
    sources = []
    for item in job.inputs:
        ref = item["ref"]
        name = item.get("name") or Path(ref).name
        if item.get("source", "local") == "local":
            f = stack.enter_context(open(Path(settings.MEDIA_ROOT) / ref, "rb"))
        else:
            f = open_object(ref)
            stack.callback(f.close)
        sources.append((name, f))
    return sources


@shared_task(bind=True)
def merge_videos(self, job_id: str):
    job = MergeJob.objects.get(pk=job_id)
    if job.is_finished:
        logger.info("job %s already %s, skipping", job_id, job.status)
        return job.output_ref or None

    def record(state: JobState):
        # DONE is written together with the output reference
        if state is not JobState.DONE:
            _update(job, status=state.value)

    coordinator = MergeCoordinator(
        scratch_root=settings.MERGE_SCRATCH_ROOT,
        publisher=get_publisher(),
        engine_factory=get_engine,
        max_workers=settings.MERGE_MAX_WORKERS,
        on_state=record,
    )

    try:
        with ExitStack() as stack:
            try:
                sources = _open_inputs(job, stack)
            except OSError as e:
                logger.error("job %s: staged input missing: %s", job_id, e)
                _update(job, status=JobState.FAILED.value, error_kind="resource",
                        error="An input video could not be read.")
                return None
            result = coordinator.run(job_id, sources, job.quality or None)
    except MergeError as e:
        # terminal and deterministic: record it, don't let Celery retry
        if e.detail:
            logger.error("job %s %s detail: %s", job_id, e.kind, e.detail)
        _update(job, status=JobState.FAILED.value, error_kind=e.kind, error=e.message)
        return None
    finally:
        discard_staged_uploads(job_id)

    _update(job, status=JobState.DONE.value, output_ref=result.output, error_kind="", error="")
    return result.output
