from rest_framework import serializers

from .models import Video
from .utils import guess_kind


class VideoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Video
        fields = [
            "id",
            "course_id",
            "chapter_id",
            "original_name",
            "width",
            "height",
            "duration",
            "processing_status",
            "processing_progress",
            "processing_error",
            "hls_master_url",
            "hls_480p_url",
            "hls_720p_url",
            "hls_1080p_url",
            "processed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PresignRequestSerializer(serializers.Serializer):
    course_id = serializers.CharField(max_length=64)
    chapter_id = serializers.CharField(max_length=64, required=False, allow_blank=True)
    filename = serializers.CharField(max_length=255)
    content_type = serializers.CharField(required=False, allow_blank=True)

    def validate_filename(self, value):
        if guess_kind(value) != "video":
            raise serializers.ValidationError("Only video files can be uploaded.")
        return value


class PresignResponseSerializer(serializers.Serializer):
    key = serializers.CharField()
    url = serializers.URLField()
    headers = serializers.DictField(child=serializers.CharField(), required=False)


class VideoFromKeyRequestSerializer(serializers.Serializer):
    """Upload-complete notification: the source is already in the bucket under ``key``."""
    course_id = serializers.CharField(max_length=64)
    chapter_id = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    key = serializers.CharField(max_length=512)
    original_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    original_size = serializers.IntegerField(required=False, min_value=0, default=0)

    def validate_key(self, value):
        if guess_kind(value) != "video":
            raise serializers.ValidationError("Key does not look like a video file.")
        return value
