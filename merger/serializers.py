from django.conf import settings
from rest_framework import serializers

from . import quality
from .errors import ValidationError as MergeValidationError
from .models import MergeJob
from .utils import guess_kind


class MergeJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = MergeJob
        fields = [
            "id",
            "status",
            "quality",
            "error_kind",
            "error",
            "created_at",
            "updated_at",
        ]


class QualitySelectionSerializer(serializers.Serializer):
    """
    Optional quality fields. Bounds are checked by the resolver itself so the
    API rejects exactly what the worker would reject.
    """
    preset = serializers.CharField(required=False, allow_blank=True)
    resolution = serializers.CharField(required=False, allow_blank=True)
    bitrate = serializers.CharField(required=False, allow_blank=True)
    framerate = serializers.IntegerField(
        required=False, min_value=quality.MIN_FRAMERATE, max_value=quality.MAX_FRAMERATE
    )
    # unknown tiers/formats fall back to defaults instead of failing
    compression_tier = serializers.CharField(required=False, allow_blank=True)
    format = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        attrs = super().validate(attrs)
        try:
            quality.resolve(self.selection(attrs))
        except MergeValidationError as e:
            raise serializers.ValidationError({"quality": e.message})
        return attrs

    @staticmethod
    def selection(attrs) -> dict:
        return {k: attrs[k] for k in quality.SELECTION_FIELDS if attrs.get(k) not in (None, "")}


def _validate_count(n: int):
    if n < 2:
        raise serializers.ValidationError("At least 2 videos are required.")
    if n > settings.MERGE_MAX_INPUTS:
        raise serializers.ValidationError(f"At most {settings.MERGE_MAX_INPUTS} videos can be merged.")


def _reject_images(names):
    images = [n for n in names if guess_kind(n) == "image"]
    if images:
        raise serializers.ValidationError(f"Not video files: {images}")


class MergeUploadSerializer(QualitySelectionSerializer):
    files = serializers.ListField(child=serializers.FileField(), required=False, default=list)

    def validate_files(self, value):
        _validate_count(len(value))
        _reject_images([f.name for f in value])
        return value


class MergeFromKeysSerializer(QualitySelectionSerializer):
    keys = serializers.ListField(child=serializers.CharField(), required=False, default=list)

    def validate_keys(self, value):
        # order matters and repeats are allowed (same clip twice)
        _validate_count(len(value))
        _reject_images(value)
        return value


class PresignRequestSerializer(serializers.Serializer):
    filename = serializers.CharField()
    content_type = serializers.CharField(required=False, allow_blank=True)


class PresignResponseSerializer(serializers.Serializer):
    key = serializers.CharField()
    url = serializers.URLField()
    headers = serializers.DictField(child=serializers.CharField(), required=False)
