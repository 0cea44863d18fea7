import logging
import os
import shutil
from pathlib import Path

from .errors import ResourceError

logger = logging.getLogger(__name__)


class DirectoryPublisher:
    """
    Moves a finished output into the durable output directory.

    The file first lands under a hidden .part name and is renamed into place,
    so a reader of the directory never sees a partial output.
    """

    def __init__(self, output_dir, url_prefix: str = ""):
        self.output_dir = Path(output_dir)
        self.url_prefix = url_prefix

    def __call__(self, local_path: Path, filename: str) -> str:
        final = self.output_dir / filename
        partial = self.output_dir / f".{filename}.part"
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(local_path), str(partial))
            os.replace(partial, final)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise ResourceError("Could not publish the merged video.", detail=str(e)) from e
        logger.info("published %s", final)
        return f"{self.url_prefix}{filename}"
