import pytest

from videos.models import Video
from videos.pipeline import VideoPipeline

from .fakes import FakeProber, FakeStore, FakeTranscoder, source_bytes

SOURCE_KEY = "courses/c1/chapters/ch1/videos/originals/abc_lecture.mp4"


@pytest.fixture()
def store():
    return FakeStore()


@pytest.fixture()
def prober():
    return FakeProber()


@pytest.fixture()
def transcoder():
    return FakeTranscoder()


@pytest.fixture()
def scratch_root(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture()
def pipeline(store, prober, transcoder, scratch_root):
    return VideoPipeline(store, prober, transcoder, scratch_root)


@pytest.fixture()
def make_video(store):
    """Create a Video row and put a fake source of the given size in the store."""

    def _make(width=1080, height=1920, duration=120, key=SOURCE_KEY, **fields):
        fields.setdefault("course_id", "c1")
        fields.setdefault("chapter_id", "ch1")
        video = Video.objects.create(source_key=key, **fields)
        if key:
            store.objects[key] = source_bytes(width, height, duration)
        return video

    return _make
