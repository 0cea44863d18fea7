from django.urls import path
from .views import MergeUploadView, MergeFromKeysView, JobDetailView, PresignUploadView

urlpatterns = [
    path("merge/", MergeUploadView.as_view(), name="merge_upload"),
    path("merge/from-keys/", MergeFromKeysView.as_view(), name="merge_from_keys"),
    path("jobs/<uuid:job_id>/", JobDetailView.as_view(), name="job_detail"),
    path("uploads/presign/", PresignUploadView.as_view(), name="uploads_presign"),
]
