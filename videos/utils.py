import mimetypes
import os
from uuid import uuid4


def guess_kind(path: str) -> str:
    """Return 'image' | 'video' | 'other' based on mimetype/extension."""
    mime, _ = mimetypes.guess_type(path)
    if not mime:
        return "other"
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return "other"


def unique_filename(filename: str) -> str:
    """<uuid>_<basename>, so two uploads of "lecture.mp4" never collide."""
    return f"{uuid4().hex}_{os.path.basename(filename)}"
