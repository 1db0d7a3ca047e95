import logging
import re
import subprocess
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .errors import PipelineCancelled, TranscodeError
from .keys import PLAYLIST_FILENAME
from .renditions import PlannedRendition

logger = logging.getLogger(__name__)

SEGMENT_PATTERN = "segment_%03d.ts"
SEGMENT_GLOB = "segment_*.ts"
# Fixed GOP so every segment starts on a keyframe.
GOP_SIZE = 48

# ffmpeg -progress pipe:1 reports out_time_us / out_time_ms (both microseconds)
_RE_OUT_TIME = re.compile(r"^out_time_(?:us|ms)=(\d+)$")


@dataclass(frozen=True)
class TranscodeProgress:
    rendition: str
    percent: float


@dataclass(frozen=True)
class RenditionOutput:
    rendition: PlannedRendition
    directory: Path
    playlist: Path
    segments: List[Path]

    @property
    def files(self) -> List[Path]:
        return [self.playlist, *self.segments]


TranscodeEvent = Union[TranscodeProgress, RenditionOutput]


def trim_tail(text: str, limit: int = 2000) -> str:
    text = text or ""
    return text if len(text) <= limit else "..." + text[-limit:]


class Transcoder:
    """
    Runs ffmpeg once per rendition and streams its progress.

    ``transcode`` is a generator: it yields ``TranscodeProgress`` while ffmpeg
    runs and a single ``RenditionOutput`` once the playlist and segments are
    on disk. Failures raise ``TranscodeError``.
    """

    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        *,
        segment_seconds: int = 6,
        preset: str = "fast",
        timeout_min: int = 600,
        timeout_max: int = 4 * 3600,
        timeout_multiplier: float = 3.0,
        poll_interval: float = 0.5,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.segment_seconds = segment_seconds
        self.preset = preset
        self.timeout_min = timeout_min
        self.timeout_max = timeout_max
        self.timeout_multiplier = timeout_multiplier
        self.poll_interval = poll_interval

    @classmethod
    def from_settings(cls) -> "Transcoder":
        from django.conf import settings

        return cls(
            ffmpeg_bin=settings.FFMPEG_BIN,
            segment_seconds=settings.HLS_SEGMENT_SECONDS,
            preset=settings.HLS_PRESET,
            timeout_min=settings.TRANSCODE_TIMEOUT_MIN,
            timeout_max=settings.TRANSCODE_TIMEOUT_MAX,
            timeout_multiplier=settings.TRANSCODE_TIMEOUT_MULTIPLIER,
        )

    def timeout_for(self, duration_seconds: Optional[float]) -> int:
        """timeout = duration * multiplier, clamped to [timeout_min, timeout_max]."""
        if not duration_seconds or duration_seconds <= 0:
            return int(self.timeout_max)
        from_duration = int(duration_seconds * self.timeout_multiplier)
        return min(int(self.timeout_max), max(int(self.timeout_min), from_duration))

    def build_command(self, source: Path, out_dir: Path, planned: PlannedRendition) -> List[str]:
        rendition = planned.rendition
        return [
            self.ffmpeg_bin,
            "-y",
            "-i", str(source),
            "-c:v", "libx264",
            "-c:a", "aac",
            "-b:v", rendition.video_bitrate,
            "-b:a", rendition.audio_bitrate,
            "-preset", self.preset,
            "-g", str(GOP_SIZE),
            "-sc_threshold", "0",
            "-keyint_min", str(GOP_SIZE),
            "-vf", planned.scale_filter,
            "-progress", "pipe:1",
            "-nostats",
            "-f", "hls",
            "-hls_time", str(self.segment_seconds),
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", str(out_dir / SEGMENT_PATTERN),
            str(out_dir / PLAYLIST_FILENAME),
        ]

    def transcode(
        self,
        source,
        out_dir,
        planned: PlannedRendition,
        *,
        duration_seconds: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Iterator[TranscodeEvent]:
        source = Path(source)
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        name = planned.name

        cmd = self.build_command(source, out_dir, planned)
        timeout = self.timeout_for(duration_seconds)
        logger.info("Transcoding %s (timeout=%ss)", name, timeout)

        try:
            p = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise TranscodeError(name, f"could not start ffmpeg: {e}") from e

        stderr_tail = deque(maxlen=50)
        state = {"cancelled": False, "timed_out": False}

        def read_stderr() -> None:
            for line in p.stderr or []:
                stderr_tail.append(line)

        def watchdog() -> None:
            deadline = time.monotonic() + timeout
            while p.poll() is None:
                if cancel is not None and cancel.is_set():
                    state["cancelled"] = True
                    p.kill()
                    return
                if time.monotonic() >= deadline:
                    state["timed_out"] = True
                    p.kill()
                    return
                time.sleep(self.poll_interval)

        stderr_reader = threading.Thread(target=read_stderr, daemon=True)
        guard = threading.Thread(target=watchdog, daemon=True)
        stderr_reader.start()
        guard.start()

        try:
            last_pct = -1
            for line in p.stdout or []:
                m = _RE_OUT_TIME.match(line.strip())
                if not m or not duration_seconds:
                    continue
                current = int(m.group(1)) / 1_000_000.0
                pct = int(min(100.0, max(0.0, 100.0 * current / duration_seconds)))
                if pct != last_pct:
                    last_pct = pct
                    yield TranscodeProgress(rendition=name, percent=float(pct))
            p.wait()
        finally:
            # Consumer stopped early (or an error above): don't leave ffmpeg behind.
            if p.poll() is None:
                p.kill()
                p.wait()
            stderr_reader.join(timeout=2.0)
            guard.join(timeout=2.0)

        if state["cancelled"]:
            raise PipelineCancelled(f"transcode of {name} cancelled")
        if state["timed_out"]:
            raise TranscodeError(name, f"ffmpeg timed out after {timeout}s")
        if p.returncode != 0:
            raise TranscodeError(
                name, f"ffmpeg exited {p.returncode}: {trim_tail(''.join(stderr_tail))}"
            )

        playlist = out_dir / PLAYLIST_FILENAME
        if not playlist.exists():
            raise TranscodeError(name, f"{PLAYLIST_FILENAME} not created")
        segments = sorted(out_dir.glob(SEGMENT_GLOB))
        if not segments:
            raise TranscodeError(name, "no segments produced")

        if last_pct < 100:
            yield TranscodeProgress(rendition=name, percent=100.0)
        logger.info("%s completed (%d segments)", name, len(segments))
        yield RenditionOutput(rendition=planned, directory=out_dir, playlist=playlist, segments=segments)
