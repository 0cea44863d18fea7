import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import EngineError, ManifestError
from .normalizer import NormalizedAsset
from .quality import QualityParameters
from .workspace import Workspace

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.txt"


def _quote(path: Path) -> str:
    # concat demuxer quoting: close the quote, emit an escaped quote, reopen
    return "'" + str(path).replace("'", "'\\''") + "'"


@dataclass(frozen=True)
class Manifest:
    entries: tuple[Path, ...]

    @classmethod
    def from_assets(cls, assets: list[NormalizedAsset]) -> "Manifest":
        ordered = sorted(assets, key=lambda a: a.index)
        return cls(tuple(Path(a.path).resolve() for a in ordered))

    def validate(self) -> None:
        if not self.entries:
            raise ManifestError("Nothing to merge.", detail="manifest has no entries")
        missing = [p for p in self.entries if not p.is_file()]
        if missing:
            raise ManifestError(
                "An intermediate file is missing.",
                detail="missing manifest entries: " + ", ".join(map(str, missing)),
            )

    def render(self) -> str:
        return "".join(f"file {_quote(p)}\n" for p in self.entries)


def write_manifest(manifest: Manifest, workspace: Workspace) -> Path:
    manifest.validate()
    path = workspace.path_for(MANIFEST_NAME)
    path.write_text(manifest.render(), encoding="utf-8")
    return path


def build_concat_args(params: QualityParameters) -> list[str]:
    """
    Intermediates share one codec, so mp4 output is a plain stream copy.
    Any other family costs exactly one re-encode pass.
    """
    fmt = params.output
    if not params.needs_reencode:
        return ["-c", "copy", "-movflags", "+faststart"]
    if fmt.name == "webm":
        return [
            "-c:v", fmt.video_codec,
            "-b:v", params.bitrate,
            "-crf", str(params.tier.vp9_crf),
            "-cpu-used", str(params.tier.vp9_cpu_used),
            "-row-mt", "1",
            "-pix_fmt", "yuv420p",
            "-c:a", fmt.audio_codec,
            "-b:a", fmt.audio_bitrate,
            "-ar", str(params.audio_sample_rate),
        ]
    if fmt.name == "mov":
        return [
            "-c:v", fmt.video_codec,
            "-profile:v", "3",
            "-pix_fmt", "yuv422p10le",
            "-c:a", fmt.audio_codec,
            "-ar", str(params.audio_sample_rate),
        ]
    return ["-c:v", fmt.video_codec, "-c:a", fmt.audio_codec]


def output_name(job_id: str, params: QualityParameters) -> str:
    return f"merged_{job_id}{params.output.extension}"


def concatenate(
    assets: list[NormalizedAsset],
    params: QualityParameters,
    engine,
    workspace: Workspace,
    job_id: str,
) -> Path:
    manifest_path = write_manifest(Manifest.from_assets(assets), workspace)
    out = workspace.path_for(output_name(job_id, params))

    mode = "re-encode" if params.needs_reencode else "stream copy"
    logger.info("job %s concatenating %d inputs (%s, %s)", job_id, len(assets), params.output.name, mode)
    try:
        return engine.concat(manifest_path, out, build_concat_args(params))
    except EngineError as e:
        logger.error("job %s concat failed: %s", job_id, e.detail)
        raise EngineError(
            "The videos could not be merged.",
            stage="concat",
            returncode=e.returncode,
            stderr=e.stderr,
            detail=e.detail,
        ) from e
