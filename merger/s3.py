import logging
import os
from pathlib import Path

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import ResourceError

logger = logging.getLogger(__name__)


def _client(endpoint_url: str):
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=endpoint_url,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def get_s3_client():
    """Worker-side client: downloads inputs, uploads merged outputs."""
    return _client(settings.S3_ENDPOINT_URL)


def get_presign_client():
    """
    Client for URLs handed to browsers. Signed against S3_PUBLIC_ENDPOINT so
    the host in the URL is one the client can actually reach.
    """
    return _client(os.getenv("S3_PUBLIC_ENDPOINT", settings.S3_PUBLIC_ENDPOINT))


def create_presigned_put(key: str, content_type: str | None = None, expires: int | None = None) -> dict:
    """
    Presigned PUT for uploading one input video straight to the bucket.

    ContentType is left out of the signed params so clients that omit or
    change the header don't get 'signature does not match'.
    """
    s3 = get_presign_client()
    url = s3.generate_presigned_url(
        ClientMethod="put_object",
        Params={"Bucket": settings.S3_BUCKET, "Key": key},
        ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
        HttpMethod="PUT",
    )
    headers = {"Content-Type": content_type} if content_type else {}
    return {"url": url, "headers": headers}


def create_presigned_get(key: str, expires: int | None = None) -> str:
    s3 = get_presign_client()
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": settings.S3_BUCKET, "Key": key},
        ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
        HttpMethod="GET",
    )


def open_object(key: str):
    """Readable stream over an uploaded input object."""
    try:
        resp = get_s3_client().get_object(Bucket=settings.S3_BUCKET, Key=key)
    except (BotoCoreError, ClientError) as e:
        raise ResourceError("An input video could not be read from storage.", detail=f"{key}: {e}") from e
    return resp["Body"]


def upload_file(local_path: str, key: str, content_type: str | None = None):
    s3 = get_s3_client()
    extra = {"ContentType": content_type} if content_type else None
    s3.upload_file(str(local_path), settings.S3_BUCKET, key, ExtraArgs=extra)


class S3Publisher:
    """Uploads the merged output under <prefix>/<filename> and returns the key."""

    CONTENT_TYPES = {".mp4": "video/mp4", ".webm": "video/webm", ".mov": "video/quicktime"}

    def __init__(self, prefix: str | None = None):
        self.prefix = (prefix if prefix is not None else settings.S3_OUTPUT_PREFIX).strip("/")

    def __call__(self, local_path: Path, filename: str) -> str:
        key = f"{self.prefix}/{filename}" if self.prefix else filename
        content_type = self.CONTENT_TYPES.get(Path(filename).suffix.lower())
        try:
            upload_file(str(local_path), key, content_type=content_type)
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise ResourceError("Could not publish the merged video.", detail=f"{key}: {e}") from e
        Path(local_path).unlink(missing_ok=True)
        logger.info("published s3://%s/%s", settings.S3_BUCKET, key)
        return key
