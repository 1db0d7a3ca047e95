import logging

from celery import shared_task

from .errors import PipelineError
from .models import Video
from .pipeline import VideoPipeline

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True)
def process_video(self, video_id: str):
    """
    Worker entry point after an upload completes (or a batch re-enqueue).

    Failures are already recorded on the Video row by the pipeline; they are
    re-raised so Celery marks the task FAILURE. Nothing is retried here.
    """
    try:
        video = Video.objects.get(pk=video_id)
    except Video.DoesNotExist:
        logger.warning("process_video: video %s no longer exists", video_id)
        return {"video_id": video_id, "status": "missing"}

    pipeline = VideoPipeline.from_settings()
    try:
        result = pipeline.run(video)
    except PipelineError:
        logger.error("process_video: video %s failed", video_id)
        raise

    return {
        "video_id": str(result.video_id),
        "status": Video.Status.COMPLETED.value,
        "master_url": result.master_url,
        "renditions": sorted(result.rendition_urls),
    }


def enqueue_processing(video: Video) -> None:
    """Reset a video to PENDING and hand it to a worker."""
    Video.objects.filter(pk=video.pk).update(
        processing_status=Video.Status.PENDING,
        processing_progress=0,
        processing_error="",
    )
    video.processing_status = Video.Status.PENDING
    video.processing_progress = 0
    video.processing_error = ""
    process_video.delay(str(video.pk))
