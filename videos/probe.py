import json
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .errors import ProbeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaInfo:
    width: int
    height: int
    duration_seconds: float

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width


class Prober:
    """Reads width, height and duration of a local file with ffprobe."""

    def __init__(self, ffprobe_bin: str = "ffprobe", timeout: int = 60):
        self.ffprobe_bin = ffprobe_bin
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "Prober":
        from django.conf import settings

        return cls(ffprobe_bin=settings.FFPROBE_BIN, timeout=settings.FFPROBE_TIMEOUT)

    def build_command(self, path) -> list:
        return [
            self.ffprobe_bin,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(path),
        ]

    def probe(self, path) -> MediaInfo:
        path = Path(path)
        try:
            p = subprocess.run(
                self.build_command(path),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ProbeError(f"ffprobe not found: {self.ffprobe_bin}") from e
        except subprocess.TimeoutExpired as e:
            raise ProbeError(f"ffprobe timed out after {self.timeout}s on {path.name}") from e
        except OSError as e:
            raise ProbeError(f"could not start ffprobe: {e}") from e

        if p.returncode != 0:
            raise ProbeError(f"ffprobe exited {p.returncode}: {(p.stderr or '').strip()[-500:]}")

        try:
            data = json.loads(p.stdout or "")
        except json.JSONDecodeError as e:
            raise ProbeError(f"ffprobe output is not JSON: {e}") from e

        return parse_probe_output(data)


def parse_probe_output(data: dict) -> MediaInfo:
    streams = data.get("streams") or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    if video is None:
        raise ProbeError("No video stream found")

    try:
        width = int(video.get("width") or 0)
        height = int(video.get("height") or 0)
    except (TypeError, ValueError) as e:
        raise ProbeError(f"bad stream dimensions: {e}") from e
    if width <= 0 or height <= 0:
        raise ProbeError(f"video stream has no dimensions ({width}x{height})")

    raw_duration = (data.get("format") or {}).get("duration")
    try:
        duration = float(raw_duration) if raw_duration is not None else 0.0
    except (TypeError, ValueError):
        logger.warning("Unparseable container duration %r; treating as 0", raw_duration)
        duration = 0.0

    return MediaInfo(width=width, height=height, duration_seconds=max(0.0, duration))
