import uuid
from django.db import models

from .keys import video_prefix


class Video(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        PROCESSING = "PROCESSING"
        COMPLETED = "COMPLETED"
        FAILED = "FAILED"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # Owning course/chapter live in the main application database; blank chapter = course demo slot.
    course_id = models.CharField(max_length=64, blank=True, default="")
    chapter_id = models.CharField(max_length=64, blank=True, default="")

    source_key = models.CharField(max_length=512)     # object key of the original upload
    original_name = models.CharField(max_length=255, blank=True, default="")
    original_size = models.BigIntegerField(default=0)

    width = models.PositiveIntegerField(null=True, blank=True)
    height = models.PositiveIntegerField(null=True, blank=True)
    duration = models.PositiveIntegerField(null=True, blank=True)  # seconds

    processing_status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    processing_progress = models.PositiveSmallIntegerField(default=0)  # 0..100
    processing_error = models.TextField(blank=True, default="")

    hls_master_url = models.URLField(max_length=1024, null=True, blank=True)
    hls_480p_url = models.URLField(max_length=1024, null=True, blank=True)
    hls_720p_url = models.URLField(max_length=1024, null=True, blank=True)
    hls_1080p_url = models.URLField(max_length=1024, null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # rendition name -> URL field
    RENDITION_URL_FIELDS = {
        "480p": "hls_480p_url",
        "720p": "hls_720p_url",
        "1080p": "hls_1080p_url",
    }

    class Meta:
        ordering = ["created_at"]
        indexes = [models.Index(fields=["processing_status"], name="videos_video_status_idx")]

    def __str__(self):
        return f"Video {self.id} ({self.processing_status})"

    @property
    def key_prefix(self) -> str:
        return video_prefix(self.course_id, self.chapter_id, self.id)

    def rendition_urls(self) -> dict:
        """Rendition name -> URL for the renditions currently published."""
        return {
            name: getattr(self, field)
            for name, field in self.RENDITION_URL_FIELDS.items()
            if getattr(self, field)
        }

    def url_snapshot(self) -> dict:
        fields = ["hls_master_url", *self.RENDITION_URL_FIELDS.values()]
        return {f: getattr(self, f) for f in fields}
