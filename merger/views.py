import logging
import os
from uuid import uuid4

from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import MergeJob
from .tasks import merge_videos
from .utils import discard_staged_uploads, save_uploaded_file

from .serializers import (
    MergeUploadSerializer,
    MergeFromKeysSerializer,
    MergeJobSerializer,
    PresignRequestSerializer,
    PresignResponseSerializer,
)

from .s3 import (
    create_presigned_put,
    create_presigned_get,
)

logger = logging.getLogger(__name__)


def _invalid(errors) -> Response:
    return Response(
        {"kind": "validation", "message": "Invalid merge request.", "errors": errors},
        status=status.HTTP_400_BAD_REQUEST,
    )


class MergeUploadView(views.APIView):
    """
    Multipart upload of the videos to merge (`files`, in order) plus optional
    quality fields. Nothing is written to disk until the request validates.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = MergeUploadSerializer(data=request.data)
        if not ser.is_valid():
            return _invalid(ser.errors)

        job = MergeJob(quality=ser.selection(ser.validated_data))
        try:
            job.inputs = [
                {"ref": save_uploaded_file(f, job.id, i), "name": os.path.basename(f.name), "source": "local"}
                for i, f in enumerate(ser.validated_data["files"])
            ]
        except OSError as e:
            logger.error("could not stage uploads for job %s: %s", job.id, e)
            discard_staged_uploads(job.id)
            return Response(
                {"kind": "resource", "message": "Could not store the uploaded videos."},
                status=status.HTTP_507_INSUFFICIENT_STORAGE,
            )
        job.save()

        merge_videos.delay(str(job.id))
        return Response({"job_id": str(job.id)}, status=status.HTTP_202_ACCEPTED)


class MergeFromKeysView(views.APIView):
    """
    Creates a merge job from objects already uploaded to S3/MinIO through
    presigned PUTs. Keys are merged in the order given.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = MergeFromKeysSerializer(data=request.data)
        if not ser.is_valid():
            return _invalid(ser.errors)

        job = MergeJob.objects.create(
            inputs=[
                {"ref": key, "name": os.path.basename(key), "source": "s3"}
                for key in ser.validated_data["keys"]
            ],
            quality=ser.selection(ser.validated_data),
        )
        merge_videos.delay(str(job.id))
        return Response({"job_id": str(job.id)}, status=status.HTTP_202_ACCEPTED)


class JobDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        try:
            job = MergeJob.objects.get(pk=job_id)
        except MergeJob.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)

        data = MergeJobSerializer(job).data

        # Only a finished job exposes its output
        data["output_url"] = None
        if job.status == MergeJob.Status.DONE and job.output_ref:
            ref = job.output_ref
            if ref.startswith("/") or ref.startswith("http"):
                data["output_url"] = request.build_absolute_uri(ref)
            else:
                data["output_url"] = create_presigned_get(ref)  # S3 key -> time-limited URL

        return Response(data)


class PresignUploadView(views.APIView):
    """
    Returns a presigned PUT URL + recommended key so the client can upload an
    input video directly to MinIO/S3 without streaming through Django.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = PresignRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        filename = ser.validated_data["filename"]
        content_type = ser.validated_data.get("content_type") or None

        key = f"uploads/{uuid4().hex}_{os.path.basename(filename)}"

        signed = create_presigned_put(key, content_type=content_type)
        resp = {"key": key, "url": signed["url"], "headers": signed.get("headers", {})}
        out = PresignResponseSerializer(resp).data
        return Response(out, status=201)
