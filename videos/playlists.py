import re
from dataclasses import dataclass
from typing import Iterable, List

from .keys import PLAYLIST_FILENAME
from .renditions import PlannedRendition

HEADER = "#EXTM3U\n#EXT-X-VERSION:3\n\n"

_RE_STREAM_INF = re.compile(r"^#EXT-X-STREAM-INF:(?P<attrs>.*)$")
_RE_BITRATE = re.compile(r"^\s*(?P<num>\d+(?:\.\d+)?)\s*(?P<unit>[kKmM]?)\s*$")


@dataclass(frozen=True)
class StreamInfo:
    bandwidth: int
    width: int
    height: int
    uri: str


def bandwidth_for(bitrate: str) -> int:
    """"2500k" -> 2500000, "5M" -> 5000000, "800000" -> 800000."""
    m = _RE_BITRATE.match(str(bitrate))
    if not m:
        raise ValueError(f"unparseable bitrate: {bitrate!r}")
    num = float(m.group("num"))
    unit = m.group("unit").lower()
    if unit == "k":
        num *= 1000
    elif unit == "m":
        num *= 1000 * 1000
    return int(num)


def variant_uri(rendition_name: str) -> str:
    # master lives in {prefix}master/, renditions in {prefix}{name}/
    return f"../{rendition_name}/{PLAYLIST_FILENAME}"


def compose_master(renditions: Iterable[PlannedRendition]) -> str:
    """
    Build the master playlist for the renditions that were actually produced.

    Entries keep the order they are given in, which for planner output is
    ascending height.
    """
    parts = [HEADER]
    for planned in renditions:
        rendition = planned.rendition
        parts.append(
            f"#EXT-X-STREAM-INF:BANDWIDTH={bandwidth_for(rendition.video_bitrate)},"
            f"RESOLUTION={planned.width}x{rendition.height}\n"
        )
        parts.append(f"{variant_uri(rendition.name)}\n\n")
    return "".join(parts)


def _parse_attributes(raw: str) -> dict:
    attrs = {}
    # Quoted values (CODECS="a,b") may contain commas.
    for m in re.finditer(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)', raw):
        attrs[m.group(1)] = m.group(2).strip('"')
    return attrs


def parse_master(text: str) -> List[StreamInfo]:
    lines = [line.strip() for line in text.splitlines()]
    if not lines or lines[0] != "#EXTM3U":
        raise ValueError("not an m3u8 playlist (missing #EXTM3U)")

    streams = []
    pending = None
    for line in lines[1:]:
        if not line:
            continue
        m = _RE_STREAM_INF.match(line)
        if m:
            pending = _parse_attributes(m.group("attrs"))
            continue
        if line.startswith("#"):
            continue
        if pending is None:
            continue
        resolution = pending.get("RESOLUTION", "0x0")
        width, _, height = resolution.partition("x")
        streams.append(
            StreamInfo(
                bandwidth=int(pending.get("BANDWIDTH", 0)),
                width=int(width or 0),
                height=int(height or 0),
                uri=line,
            )
        )
        pending = None
    return streams
