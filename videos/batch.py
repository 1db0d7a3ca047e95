import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from django.db.models import F, Q, QuerySet

from .models import Video
from .pipeline import VideoPipeline

logger = logging.getLogger(__name__)


def _any_rendition_url() -> Q:
    q = Q()
    for url_field in Video.RENDITION_URL_FIELDS.values():
        q |= Q(**{f"{url_field}__isnull": False})
    return q


def stretched_videos() -> QuerySet:
    """Published portrait videos: the ones the old landscape-only scaling stretched."""
    return (
        Video.objects.filter(_any_rendition_url())
        .filter(width__isnull=False, height__isnull=False, height__gt=F("width"))
        .order_by("created_at")
    )


def videos_missing_geometry() -> QuerySet:
    """Published videos whose orientation is unknown, so they can't be classified."""
    return (
        Video.objects.filter(_any_rendition_url())
        .filter(Q(width__isnull=True) | Q(height__isnull=True))
        .order_by("created_at")
    )


def unprocessed_videos() -> QuerySet:
    """Videos never converted to HLS, or whose last run did not complete."""
    return (
        Video.objects.filter(
            Q(hls_master_url__isnull=True)
            | ~Q(processing_status=Video.Status.COMPLETED)
            | ~Q(hls_master_url__endswith=".m3u8")
        )
        .order_by("created_at")
    )


def skip_reason(video: Video) -> Optional[str]:
    if not video.course_id:
        return "no course"
    if not video.source_key:
        return "no source key"
    return None


@dataclass
class BatchReport:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)   # (video_id, error)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def summary(self) -> str:
        return f"succeeded={self.succeeded} failed={self.failed} skipped={self.skipped}"


class BatchRunner:
    """
    Runs the pipeline over candidates one at a time.

    A failing video is logged and counted; it never stops the run.
    """

    def __init__(self, pipeline: VideoPipeline, cancel: Optional[threading.Event] = None):
        self.pipeline = pipeline
        self.cancel = cancel

    def run(self, videos: Iterable[Video]) -> BatchReport:
        videos = list(videos)
        report = BatchReport()
        total = len(videos)

        for i, video in enumerate(videos, start=1):
            if self.cancel is not None and self.cancel.is_set():
                logger.warning("Batch cancelled with %d video(s) left", total - i + 1)
                break

            reason = skip_reason(video)
            if reason:
                logger.warning("[%d/%d] Skipping video %s: %s", i, total, video.pk, reason)
                report.skipped += 1
                continue

            logger.info(
                "[%d/%d] Processing video %s (stored %sx%s)", i, total, video.pk, video.width, video.height
            )
            try:
                self.pipeline.run(video, cancel=self.cancel)
            except Exception as e:
                logger.exception("[%d/%d] Failed to process video %s", i, total, video.pk)
                report.failed += 1
                report.failures.append((str(video.pk), str(e)))
                continue
            report.succeeded += 1
            logger.info("[%d/%d] Video %s done", i, total, video.pk)

        logger.info("Batch complete: %s", report.summary())
        return report
