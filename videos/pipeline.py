"""
Single-video HLS pipeline.

    FETCHING -> PROBING -> PURGING -> TRANSCODING(i)/UPLOADING(i) -> COMPOSING -> PERSISTING -> DONE

Any failure jumps to FAILED: the Video row gets status FAILED and its error
text, the URL columns keep whatever they held before the run, and the
per-video scratch directory is removed. New URLs are written in one UPDATE
only after every rendition and the master playlist are in the bucket.
"""
import enum
import logging
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from django.db import DatabaseError, transaction
from django.utils import timezone

from .errors import (
    NoRenditionsError,
    PersistenceError,
    PipelineCancelled,
    PipelineError,
    StoreError,
    TranscodeError,
)
from .keys import master_key, rendition_key, rendition_playlist_key
from .models import Video
from .playlists import compose_master
from .probe import MediaInfo, Prober
from .renditions import LADDER, plan_renditions
from .storage import PLAYLIST_CONTENT_TYPE, ObjectStore, content_type_for
from .transcoder import RenditionOutput, Transcoder

logger = logging.getLogger(__name__)

# Progress bands on the 0..100 scale stored on the Video row.
PREPARE_DONE = 10
RENDITIONS_DONE = 95


class Stage(str, enum.Enum):
    FETCHING = "FETCHING"
    PROBING = "PROBING"
    PURGING = "PURGING"
    TRANSCODING = "TRANSCODING"
    UPLOADING = "UPLOADING"
    COMPOSING = "COMPOSING"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class PipelineResult:
    video_id: object
    media: MediaInfo
    master_url: str
    rendition_urls: Dict[str, str]
    output_keys: List[str] = field(default_factory=list)


@contextmanager
def scratch_space(root, video_id):
    """
    ``{root}/{video_id}``, created fresh and removed recursively on exit.

    Keyed by video id so concurrent workers never share a directory.
    """
    path = Path(root) / str(video_id)
    if path.exists():
        # leftover from a worker that was killed mid-run
        shutil.rmtree(path)
    path.mkdir(parents=True)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def _progress_for_rendition(idx: int, total: int, percent: float) -> int:
    """Map rendition ``idx`` at ``percent`` into the PREPARE_DONE..RENDITIONS_DONE band."""
    if total <= 0:
        return RENDITIONS_DONE
    span = (RENDITIONS_DONE - PREPARE_DONE) / total
    return int(PREPARE_DONE + span * idx + span * (max(0.0, min(100.0, percent)) / 100.0))


class VideoPipeline:
    def __init__(
        self,
        store: ObjectStore,
        prober: Prober,
        transcoder: Transcoder,
        scratch_root,
        *,
        ladder=LADDER,
        progress_step: int = 5,
    ):
        self.store = store
        self.prober = prober
        self.transcoder = transcoder
        self.scratch_root = Path(scratch_root)
        self.ladder = ladder
        self.progress_step = progress_step

    @classmethod
    def from_settings(cls) -> "VideoPipeline":
        from django.conf import settings

        return cls(
            store=ObjectStore.from_settings(),
            prober=Prober.from_settings(),
            transcoder=Transcoder.from_settings(),
            scratch_root=settings.PIPELINE_SCRATCH_ROOT,
        )

    # -------------------------------------------------
    # Video row updates
    # -------------------------------------------------
    def _update(self, video: Video, **fields) -> None:
        fields["updated_at"] = timezone.now()
        Video.objects.filter(pk=video.pk).update(**fields)
        for name, value in fields.items():
            setattr(video, name, value)

    def _set_progress(self, video: Video, progress: int) -> None:
        progress = max(0, min(100, int(progress)))
        if abs(progress - video.processing_progress) < self.progress_step and progress != 100:
            return
        self._update(video, processing_progress=progress)

    def _mark_failed(self, video: Video, error: BaseException) -> None:
        # URL columns keep their previous values.
        try:
            self._update(
                video,
                processing_status=Video.Status.FAILED,
                processing_error=str(error)[:4000],
            )
        except DatabaseError:
            logger.exception("Could not record failure for video %s", video.pk)

    def _persist(self, video: Video, media: MediaInfo, master_url: str, rendition_urls: Dict[str, str]) -> None:
        fields = {
            "hls_master_url": master_url,
            "width": media.width,
            "height": media.height,
            "duration": int(round(media.duration_seconds)),
            "processing_status": Video.Status.COMPLETED,
            "processing_progress": 100,
            "processing_error": "",
            "processed_at": timezone.now(),
            "updated_at": timezone.now(),
        }
        for name, url_field in Video.RENDITION_URL_FIELDS.items():
            fields[url_field] = rendition_urls.get(name)

        try:
            with transaction.atomic():
                updated = Video.objects.filter(pk=video.pk).update(**fields)
        except DatabaseError as e:
            raise PersistenceError(f"could not save processed video: {e}") from e
        if updated != 1:
            raise PersistenceError("video row no longer exists")

        for name, value in fields.items():
            setattr(video, name, value)

    # -------------------------------------------------
    # Stages
    # -------------------------------------------------
    @staticmethod
    def _check_cancel(cancel: Optional[threading.Event], stage: Stage) -> None:
        if cancel is not None and cancel.is_set():
            raise PipelineCancelled(f"cancelled before {stage.value}")

    def _enter(self, video: Video, stage: Stage, detail: str = "") -> None:
        logger.info("[%s] %s%s", video.pk, stage.value, f" {detail}" if detail else "")

    def _upload_rendition(self, prefix: str, output: RenditionOutput) -> List[str]:
        keys = []
        for path in output.files:
            key = rendition_key(prefix, output.rendition.name, path.name)
            self.store.upload(path, key, content_type_for(path.name))
            keys.append(key)
        return keys

    def run(self, video: Video, cancel: Optional[threading.Event] = None) -> PipelineResult:
        try:
            prefix = video.key_prefix
        except ValueError as e:
            error = PipelineError(str(e), video_id=video.pk)
            self._mark_failed(video, error)
            raise error from e

        self._update(
            video,
            processing_status=Video.Status.PROCESSING,
            processing_progress=0,
            processing_error="",
        )

        try:
            with scratch_space(self.scratch_root, video.pk) as scratch:
                result = self._run_stages(video, prefix, scratch, cancel)
        except Exception as e:
            if isinstance(e, PipelineError) and e.video_id is None:
                e.video_id = video.pk
            logger.error("[%s] %s: %s", video.pk, Stage.FAILED.value, e)
            self._mark_failed(video, e)
            raise

        self._enter(video, Stage.DONE, f"renditions={','.join(result.rendition_urls)}")
        return result

    def _run_stages(self, video: Video, prefix: str, scratch: Path, cancel) -> PipelineResult:
        self._check_cancel(cancel, Stage.FETCHING)
        self._enter(video, Stage.FETCHING, video.source_key)
        source = scratch / f"original{Path(video.source_key).suffix or '.mp4'}"
        self.store.download(video.source_key, source)

        self._check_cancel(cancel, Stage.PROBING)
        self._enter(video, Stage.PROBING)
        media = self.prober.probe(source)
        logger.info(
            "[%s] source %dx%d %.1fs (%s)",
            video.pk, media.width, media.height, media.duration_seconds,
            "portrait" if media.is_portrait else "landscape",
        )
        plan = plan_renditions(media.width, media.height, self.ladder)
        if not plan:
            raise NoRenditionsError(
                f"source {media.width}x{media.height} is below the lowest rendition", video_id=video.pk
            )

        self._check_cancel(cancel, Stage.PURGING)
        self._enter(video, Stage.PURGING, prefix)
        self.store.purge_prefix(prefix)
        self._set_progress(video, PREPARE_DONE)

        output_keys = []
        rendition_urls = {}
        for idx, planned in enumerate(plan):
            self._check_cancel(cancel, Stage.TRANSCODING)
            self._enter(video, Stage.TRANSCODING, f"{planned.name} ({idx + 1}/{len(plan)})")
            output = None
            for event in self.transcoder.transcode(
                source,
                scratch / planned.name,
                planned,
                duration_seconds=media.duration_seconds,
                cancel=cancel,
            ):
                if isinstance(event, RenditionOutput):
                    output = event
                else:
                    self._set_progress(video, _progress_for_rendition(idx, len(plan), event.percent))
            if output is None:
                raise TranscodeError(planned.name, "transcoder finished without output")

            self._check_cancel(cancel, Stage.UPLOADING)
            self._enter(video, Stage.UPLOADING, f"{planned.name} ({len(output.files)} files)")
            output_keys.extend(self._upload_rendition(prefix, output))
            rendition_urls[planned.name] = self.store.public_url(rendition_playlist_key(prefix, planned.name))
            self._set_progress(video, _progress_for_rendition(idx + 1, len(plan), 0))

        self._check_cancel(cancel, Stage.COMPOSING)
        self._enter(video, Stage.COMPOSING)
        master_path = scratch / "master.m3u8"
        master_path.write_text(compose_master(plan), encoding="utf-8")
        mkey = master_key(prefix)
        master_url = self.store.upload(master_path, mkey, PLAYLIST_CONTENT_TYPE)
        output_keys.append(mkey)

        self._check_cancel(cancel, Stage.PERSISTING)
        self._enter(video, Stage.PERSISTING)
        try:
            self._persist(video, media, master_url, rendition_urls)
        except PersistenceError:
            # Nothing will ever reference the new output; the old output went in PURGING.
            try:
                removed = self.store.purge_prefix(prefix)
                logger.warning("[%s] removed %d orphaned object(s) after failed save", video.pk, removed)
            except StoreError:
                logger.exception("[%s] compensating purge failed; %s holds orphaned output", video.pk, prefix)
            raise

        return PipelineResult(
            video_id=video.pk,
            media=media,
            master_url=master_url,
            rendition_urls=rendition_urls,
            output_keys=output_keys,
        )
