"""
Object key layout for processed video output:

    courses/{course_id}/chapters/{chapter_id}/videos/{video_id}/{rendition}/{file}
    courses/{course_id}/chapters/{chapter_id}/videos/{video_id}/master/master.m3u8

Videos sitting in a course's demo slot have no chapter and use "demo".
"""

DEMO_CHAPTER = "demo"
MASTER_DIR = "master"
MASTER_FILENAME = "master.m3u8"
PLAYLIST_FILENAME = "playlist.m3u8"


def chapter_segment(chapter_id) -> str:
    return str(chapter_id) if chapter_id else DEMO_CHAPTER


def video_prefix(course_id, chapter_id, video_id) -> str:
    """Common prefix of everything produced for one video (trailing slash included)."""
    if not course_id:
        raise ValueError("course_id is required to build a video key prefix")
    return f"courses/{course_id}/chapters/{chapter_segment(chapter_id)}/videos/{video_id}/"


def rendition_key(prefix: str, rendition: str, filename: str) -> str:
    return f"{prefix}{rendition}/{filename}"


def rendition_playlist_key(prefix: str, rendition: str) -> str:
    return rendition_key(prefix, rendition, PLAYLIST_FILENAME)


def master_key(prefix: str) -> str:
    return f"{prefix}{MASTER_DIR}/{MASTER_FILENAME}"


def source_upload_key(course_id, chapter_id, filename: str) -> str:
    """Where a freshly uploaded original goes (outside any video output prefix)."""
    return f"courses/{course_id}/chapters/{chapter_segment(chapter_id)}/videos/originals/{filename}"
