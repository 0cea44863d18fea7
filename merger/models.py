import uuid
from django.db import models


class MergeJob(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        RESOLVING = "RESOLVING"
        NORMALIZING = "NORMALIZING"
        CONCATENATING = "CONCATENATING"
        PUBLISHING = "PUBLISHING"
        DONE = "DONE"
        FAILED = "FAILED"

    TERMINAL = {Status.DONE, Status.FAILED}

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # ordered: [{"ref": <MEDIA_ROOT-relative path or S3 key>, "name": ..., "source": "local"|"s3"}]
    inputs = models.JSONField(default=list)
    quality = models.JSONField(default=dict, blank=True)     # selection as submitted
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    output_ref = models.CharField(max_length=512, blank=True, default="")  # URL path or S3 key
    error_kind = models.CharField(max_length=16, blank=True, default="")
    error = models.TextField(blank=True, default="")          # classified, user-safe message only

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_finished(self) -> bool:
        return self.status in self.TERMINAL
