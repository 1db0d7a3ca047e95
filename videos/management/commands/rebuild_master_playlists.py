"""
Rewrite the master playlist of every COMPLETED video in place.

The master is recomposed from the rendition URLs recorded on the row and the
stored source geometry, so bad relative paths or resolutions left by older
runs are corrected without re-encoding anything.

  python manage.py rebuild_master_playlists [--dry-run]
"""
from django.core.management.base import BaseCommand, CommandError

from videos.errors import StoreError
from videos.models import Video
from videos.playlists import compose_master
from videos.renditions import LADDER, PlannedRendition, scale_filter, scaled_width
from videos.storage import PLAYLIST_CONTENT_TYPE, ObjectStore

# Used when a row has no stored geometry.
FALLBACK_ASPECT = (16, 9)


def published_renditions(video: Video) -> list:
    published = video.rendition_urls()
    width, height = video.width, video.height
    if not width or not height:
        width, height = FALLBACK_ASPECT
    return [
        PlannedRendition(
            rendition=rung,
            width=scaled_width(rung.height, width, height),
            scale_filter=scale_filter(rung.height),
        )
        for rung in LADDER
        if rung.name in published
    ]


class Command(BaseCommand):
    help = "Recompose and re-upload master playlists for completed videos"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Print the playlists that would be written",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        store = None if dry_run else ObjectStore.from_settings()

        videos = Video.objects.filter(
            processing_status=Video.Status.COMPLETED,
            hls_master_url__isnull=False,
        ).order_by("created_at")

        fixed = errors = skipped = 0
        for video in videos:
            planned = published_renditions(video)
            if not planned:
                self.stdout.write(f"SKIP | video_id={video.pk} (no rendition URLs)")
                skipped += 1
                continue

            content = compose_master(planned)
            if dry_run:
                self.stdout.write(f"DRY-RUN | video_id={video.pk} renditions={[p.name for p in planned]}")
                self.stdout.write(content)
                continue

            try:
                key = store.key_from_url(video.hls_master_url)
                store.upload_bytes(content.encode("utf-8"), key, PLAYLIST_CONTENT_TYPE)
            except StoreError as e:
                self.stderr.write(f"ERROR | video_id={video.pk} {e}")
                errors += 1
                continue
            fixed += 1
            self.stdout.write(f"FIXED | video_id={video.pk} key={key}")

        summary = f"fixed={fixed} errors={errors} skipped={skipped}" + (" (dry-run)" if dry_run else "")
        if errors:
            raise CommandError(f"Done with errors: {summary}")
        self.stdout.write(self.style.SUCCESS(f"Done: {summary}"))
