import logging
import mimetypes
import os
import shutil
from pathlib import Path

from django.conf import settings

logger = logging.getLogger(__name__)

UPLOADS_DIR = "uploads"


def staging_dir(job_id) -> Path:
    return Path(settings.MEDIA_ROOT) / UPLOADS_DIR / str(job_id)


def save_uploaded_file(djangofile, job_id, index: int) -> str:
    """Save to MEDIA_ROOT/uploads/<job_id>/<index>_<name> and return the relative path."""
    dest_dir = staging_dir(job_id)
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest = dest_dir / f"{index:03d}_{os.path.basename(djangofile.name)}"
    with open(dest, "wb") as f:
        for chunk in djangofile.chunks():
            f.write(chunk)
    return str(dest.relative_to(settings.MEDIA_ROOT))


def discard_staged_uploads(job_id) -> None:
    """Best effort; a leftover staging dir is logged, not raised."""
    path = staging_dir(job_id)
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        logger.warning("job %s: could not remove staged uploads %s: %s", job_id, path, e)


def guess_kind(path: str) -> str:
    """Return 'image' | 'video' | 'other' based on mimetype/extension."""
    mime, _ = mimetypes.guess_type(path)
    if not mime:
        return "other"
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return "other"
