import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rendition:
    name: str
    height: int
    video_bitrate: str
    audio_bitrate: str


# Ordered by ascending height.
LADDER = (
    Rendition(name="480p", height=480, video_bitrate="1000k", audio_bitrate="128k"),
    Rendition(name="720p", height=720, video_bitrate="2500k", audio_bitrate="128k"),
    Rendition(name="1080p", height=1080, video_bitrate="5000k", audio_bitrate="192k"),
)


@dataclass(frozen=True)
class PlannedRendition:
    rendition: Rendition
    width: int
    scale_filter: str

    @property
    def name(self) -> str:
        return self.rendition.name

    @property
    def height(self) -> int:
        return self.rendition.height


def round_half_up(value) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def scaled_width(target_height: int, source_width: int, source_height: int) -> int:
    """Width that keeps the source aspect ratio at ``target_height``."""
    return round_half_up(Decimal(target_height) * Decimal(source_width) / Decimal(source_height))


def scale_filter(target_height: int) -> str:
    # Height drives the scale for every orientation; -2 keeps the width even for libx264.
    return f"scale=-2:{target_height}"


def plan_renditions(
    source_width: int,
    source_height: int,
    ladder: Sequence[Rendition] = LADDER,
) -> List[PlannedRendition]:
    """
    Pick the rungs of ``ladder`` that are not taller than the source.

    A rung whose height equals the source height is kept. Skipped rungs are
    logged, not treated as errors. The result keeps ladder order, so callers
    get renditions in ascending quality.
    """
    if source_width <= 0 or source_height <= 0:
        raise ValueError(f"invalid source dimensions {source_width}x{source_height}")

    planned = []
    for rung in sorted(ladder, key=lambda r: r.height):
        if source_height < rung.height:
            logger.info(
                "Skipping %s (source height %d < %d)", rung.name, source_height, rung.height
            )
            continue
        planned.append(
            PlannedRendition(
                rendition=rung,
                width=scaled_width(rung.height, source_width, source_height),
                scale_filter=scale_filter(rung.height),
            )
        )
    return planned
