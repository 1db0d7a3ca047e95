"""
Failures that abort one video's pipeline run.

Every error here is fatal for the video being processed and is never retried
inside the pipeline. The batch driver and the Celery task catch them, record
the failure on the Video row and move on.
"""


class PipelineError(Exception):
    """Base class; ``video_id`` is filled in by the orchestrator when known."""

    def __init__(self, message: str = "", *, video_id=None):
        super().__init__(message)
        self.message = message
        self.video_id = video_id

    def __str__(self) -> str:
        if self.video_id is not None:
            return f"{self.message} (video_id={self.video_id})"
        return self.message


class ProbeError(PipelineError):
    """ffprobe failed or reported no usable video stream."""


class NoRenditionsError(PipelineError):
    """Source is smaller than the lowest rung of the ladder."""


class TranscodeError(PipelineError):
    def __init__(self, rendition: str, message: str, *, video_id=None):
        super().__init__(f"{rendition}: {message}", video_id=video_id)
        self.rendition = rendition


class StoreError(PipelineError):
    """Any object storage operation failed."""


class PersistenceError(PipelineError):
    """The final database write failed after output was uploaded."""


class PipelineCancelled(PipelineError):
    pass
