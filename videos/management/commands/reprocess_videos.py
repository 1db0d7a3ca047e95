"""
Re-run the HLS pipeline over stored videos.

Default selection is the stretched-portrait defect: videos that already have
at least one rendition URL and whose stored height exceeds their width.

  python manage.py reprocess_videos --dry-run
  python manage.py reprocess_videos
  python manage.py reprocess_videos --unprocessed --enqueue
  python manage.py reprocess_videos --video-id <uuid> --video-id <uuid>

Ctrl-C cancels the video in flight (ffmpeg is killed, scratch files removed)
and stops the batch.
"""
import signal
import threading

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from videos.batch import (
    BatchRunner,
    skip_reason,
    stretched_videos,
    unprocessed_videos,
    videos_missing_geometry,
)
from videos.models import Video
from videos.pipeline import VideoPipeline
from videos.tasks import enqueue_processing


class Command(BaseCommand):
    help = "Reprocess stretched, unprocessed or explicitly listed videos into HLS"

    def add_arguments(self, parser):
        selection = parser.add_mutually_exclusive_group()
        selection.add_argument(
            "--stretched",
            action="store_true",
            help="Portrait videos that already have HLS output (default)",
        )
        selection.add_argument(
            "--unprocessed",
            action="store_true",
            help="Videos without a completed HLS master playlist",
        )
        selection.add_argument(
            "--video-id",
            action="append",
            dest="video_ids",
            default=[],
            help="Process this video (repeatable)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only list candidates, do not process or enqueue",
        )
        parser.add_argument(
            "--enqueue",
            action="store_true",
            help="Hand each candidate to a Celery worker instead of processing inline",
        )

    def _select(self, options):
        if options["video_ids"]:
            try:
                videos = list(Video.objects.filter(pk__in=options["video_ids"]).order_by("created_at"))
            except ValidationError as e:
                raise CommandError(f"Invalid video id: {e}")
            missing = set(options["video_ids"]) - {str(v.pk) for v in videos}
            for video_id in sorted(missing):
                self.stderr.write(f"WARNING: video {video_id} not found")
            return "listed", videos
        if options["unprocessed"]:
            return "unprocessed", list(unprocessed_videos())
        return "stretched", list(stretched_videos())

    def _describe(self, video: Video) -> str:
        renditions = ",".join(video.rendition_urls()) or "-"
        return (
            f"video_id={video.pk} course={video.course_id or '-'} chapter={video.chapter_id or 'demo'} "
            f"size={video.width}x{video.height} status={video.processing_status} renditions={renditions}"
        )

    def handle(self, *args, **options):
        mode, videos = self._select(options)
        self.stdout.write(f"Found {len(videos)} {mode} video(s)")

        if options["dry_run"]:
            for video in videos:
                reason = skip_reason(video)
                suffix = f" (would skip: {reason})" if reason else ""
                self.stdout.write(f"  {self._describe(video)}{suffix}")
            if mode == "stretched":
                unknown = videos_missing_geometry().count()
                if unknown:
                    self.stdout.write(
                        self.style.WARNING(f"{unknown} published video(s) have no stored width/height")
                    )
            self.stdout.write(self.style.WARNING("--dry-run: nothing processed"))
            return

        if not videos:
            self.stdout.write(self.style.SUCCESS("Nothing to do"))
            return

        if options["enqueue"]:
            queued = skipped = 0
            for video in videos:
                reason = skip_reason(video)
                if reason:
                    self.stdout.write(f"SKIP | video_id={video.pk} ({reason})")
                    skipped += 1
                    continue
                enqueue_processing(video)
                queued += 1
                self.stdout.write(f"ENQUEUED | video_id={video.pk}")
            self.stdout.write(self.style.SUCCESS(f"Done: enqueued={queued} skipped={skipped}"))
            return

        cancel = threading.Event()
        previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
        try:
            report = BatchRunner(VideoPipeline.from_settings(), cancel=cancel).run(videos)
        finally:
            signal.signal(signal.SIGINT, previous)

        for video_id, error in report.failures:
            self.stderr.write(f"FAILED | video_id={video_id} {error}")
        if report.failed:
            raise CommandError(f"Done with failures: {report.summary()}")
        self.stdout.write(self.style.SUCCESS(f"Done: {report.summary()}"))
