import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .errors import EngineError
from .quality import INTERMEDIATE_FORMAT, QualityParameters
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class InputAsset:
    index: int  # 0-based submission order
    name: str
    content: bytes | BinaryIO
    path: Path | None = None

    @property
    def position(self) -> int:
        return self.index + 1


@dataclass(frozen=True)
class NormalizedAsset:
    index: int
    path: Path


def video_filter(params: QualityParameters) -> str:
    """Fit inside the target frame keeping aspect ratio, then pad centered."""
    w, h = params.width, params.height
    return (
        f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
        f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,"
        "setsar=1"
    )


def build_transcode_args(params: QualityParameters) -> list[str]:
    tier = params.tier
    return [
        "-map", "0:v:0",
        "-map", "0:a:0?",
        "-vf", video_filter(params),
        "-r", str(params.framerate),
        "-c:v", INTERMEDIATE_FORMAT.video_codec,
        "-preset", tier.x264_preset,
        "-crf", str(tier.x264_crf),
        "-maxrate", params.bitrate,
        "-bufsize", params.bitrate,
        "-pix_fmt", "yuv420p",
        "-c:a", INTERMEDIATE_FORMAT.audio_codec,
        "-b:a", params.audio_bitrate,
        "-ar", str(params.audio_sample_rate),
        "-ac", "2",
        "-movflags", "+faststart",
    ]


def normalize(asset: InputAsset, params: QualityParameters, engine, workspace: Workspace) -> NormalizedAsset:
    if asset.path is None:
        raise ValueError(f"input #{asset.position} has not been materialized")
    out = workspace.path_for(f"normalized_{asset.index}{INTERMEDIATE_FORMAT.extension}")
    try:
        engine.transcode(asset.path, out, build_transcode_args(params))
    except EngineError as e:
        raise EngineError(
            f"Input #{asset.position} ({asset.name}) could not be transcoded.",
            input_index=asset.position,
            stage=e.stage or "transcode",
            returncode=e.returncode,
            stderr=e.stderr,
            detail=e.detail,
        ) from e
    logger.info("job %s normalized input #%d", workspace.job_id, asset.position)
    return NormalizedAsset(asset.index, out)


def normalize_all(
    assets: list[InputAsset],
    params: QualityParameters,
    engine,
    workspace: Workspace,
    max_workers: int = 4,
) -> list[NormalizedAsset]:
    """
    Transcode every input concurrently and return the results in input order.

    The first failure cancels the inputs that have not started, terminates
    the running ones and is raised once every worker has exited. Results of
    siblings are discarded; their files stay registered with the workspace.
    """
    if not assets:
        return []
    workers = max(1, min(max_workers, len(assets)))
    failure: BaseException | None = None

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"normalize-{workspace.job_id}") as pool:
        futures = [pool.submit(normalize, asset, params, engine, workspace) for asset in assets]
        try:
            for fut in as_completed(futures):
                if fut.exception() is not None:
                    failure = fut.exception()
                    break
        except BaseException as e:
            failure = e
        if failure is not None:
            for fut in futures:
                fut.cancel()
            engine.terminate()

    if failure is not None:
        if isinstance(failure, EngineError):
            logger.error(
                "job %s: input #%s failed to normalize (%s)",
                workspace.job_id, failure.input_index, failure.detail,
            )
        raise failure
    return [fut.result() for fut in futures]
