import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Video",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("course_id", models.CharField(blank=True, default="", max_length=64)),
                ("chapter_id", models.CharField(blank=True, default="", max_length=64)),
                ("source_key", models.CharField(max_length=512)),
                ("original_name", models.CharField(blank=True, default="", max_length=255)),
                ("original_size", models.BigIntegerField(default=0)),
                ("width", models.PositiveIntegerField(blank=True, null=True)),
                ("height", models.PositiveIntegerField(blank=True, null=True)),
                ("duration", models.PositiveIntegerField(blank=True, null=True)),
                (
                    "processing_status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                        ],
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("processing_progress", models.PositiveSmallIntegerField(default=0)),
                ("processing_error", models.TextField(blank=True, default="")),
                ("hls_master_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("hls_480p_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("hls_720p_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("hls_1080p_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["created_at"],
                "indexes": [models.Index(fields=["processing_status"], name="videos_video_status_idx")],
            },
        ),
    ]
