import threading

import pytest

from videos.errors import (
    NoRenditionsError,
    PersistenceError,
    PipelineCancelled,
    PipelineError,
    ProbeError,
    StoreError,
    TranscodeError,
)
from videos.models import Video
from videos.pipeline import VideoPipeline, _progress_for_rendition, scratch_space
from videos.playlists import parse_master

from .fakes import PUBLIC_BASE, FakeStore, FakeTranscoder

pytestmark = pytest.mark.django_db

OLD_URLS = {
    "hls_master_url": f"{PUBLIC_BASE}/old/master.m3u8",
    "hls_480p_url": f"{PUBLIC_BASE}/old/480p/playlist.m3u8",
    "hls_720p_url": f"{PUBLIC_BASE}/old/720p/playlist.m3u8",
    "hls_1080p_url": None,
}


def reload(video):
    return Video.objects.get(pk=video.pk)


def test_portrait_source_produces_full_ladder(pipeline, store, make_video, scratch_root):
    video = make_video(1080, 1920, duration=120)
    prefix = video.key_prefix

    result = pipeline.run(video)

    video = reload(video)
    assert video.processing_status == Video.Status.COMPLETED
    assert video.processing_progress == 100
    assert video.processed_at is not None
    assert (video.width, video.height, video.duration) == (1080, 1920, 120)
    assert video.hls_master_url == f"{PUBLIC_BASE}/{prefix}master/master.m3u8"
    for name in ("480p", "720p", "1080p"):
        assert video.rendition_urls()[name] == f"{PUBLIC_BASE}/{prefix}{name}/playlist.m3u8"
    assert result.rendition_urls == video.rendition_urls()

    streams = parse_master(store.objects[f"{prefix}master/master.m3u8"].decode())
    assert [f"{s.width}x{s.height}" for s in streams] == ["270x480", "405x720", "608x1080"]
    assert store.content_types[f"{prefix}master/master.m3u8"] == "application/vnd.apple.mpegurl"
    assert store.content_types[f"{prefix}720p/segment_000.ts"] == "video/MP2T"

    assert not (scratch_root / str(video.pk)).exists()


def test_small_portrait_source_gets_only_480p(pipeline, store, transcoder, make_video):
    video = make_video(360, 640)

    pipeline.run(video)

    video = reload(video)
    assert transcoder.calls == ["480p"]
    assert set(video.rendition_urls()) == {"480p"}
    assert video.hls_720p_url is None and video.hls_1080p_url is None
    streams = parse_master(store.objects[f"{video.key_prefix}master/master.m3u8"].decode())
    assert len(streams) == 1


def test_source_below_ladder_is_fatal_and_touches_nothing(pipeline, store, make_video):
    video = make_video(320, 240, **OLD_URLS)
    stale = f"{video.key_prefix}480p/segment_000.ts"
    store.objects[stale] = b"old"

    with pytest.raises(NoRenditionsError):
        pipeline.run(video)

    video = reload(video)
    assert video.processing_status == Video.Status.FAILED
    assert video.url_snapshot() == OLD_URLS
    assert stale in store.objects
    assert store.purged == []


def test_transcode_failure_on_second_rendition_leaves_urls_unchanged(store, prober, make_video, scratch_root):
    transcoder = FakeTranscoder(fail_on={"720p"})
    pipeline = VideoPipeline(store, prober, transcoder, scratch_root)
    video = make_video(1080, 1920, **OLD_URLS)

    with pytest.raises(TranscodeError) as exc:
        pipeline.run(video)

    assert exc.value.rendition == "720p"
    assert exc.value.video_id == video.pk
    assert transcoder.calls == ["480p", "720p"]
    video = reload(video)
    assert video.url_snapshot() == OLD_URLS
    assert video.processing_status == Video.Status.FAILED
    assert "720p" in video.processing_error
    assert video.processed_at is None
    assert not (scratch_root / str(video.pk)).exists()


def test_upload_failure_aborts_without_master(prober, transcoder, make_video, scratch_root):
    store = FakeStore(fail_upload=lambda key: key.endswith("1080p/segment_001.ts"))
    pipeline = VideoPipeline(store, prober, transcoder, scratch_root)
    video = Video.objects.create(course_id="c1", chapter_id="ch1", source_key="src.mp4", **OLD_URLS)
    store.objects["src.mp4"] = b"1920x1080:60"

    with pytest.raises(StoreError):
        pipeline.run(video)

    assert f"{video.key_prefix}master/master.m3u8" not in store.objects
    assert reload(video).url_snapshot() == OLD_URLS


def test_missing_source_fails_in_fetch(pipeline, prober, make_video, scratch_root):
    video = make_video(key="")
    video.source_key = "courses/c1/gone.mp4"

    with pytest.raises(StoreError):
        pipeline.run(video)

    assert prober.calls == []
    assert reload(video).processing_status == Video.Status.FAILED
    assert not (scratch_root / str(video.pk)).exists()


def test_probe_failure_is_fatal(pipeline, store, make_video):
    video = make_video()
    store.objects[video.source_key] = b"not a video"

    with pytest.raises(ProbeError):
        pipeline.run(video)
    assert store.purged == []


def test_rerun_yields_same_keys_and_removes_stale_output(pipeline, store, make_video):
    video = make_video(1920, 1080)
    prefix = video.key_prefix
    store.objects[f"{prefix}480p/segment_999.ts"] = b"stale"
    store.objects[f"{prefix}old-layout/index.m3u8"] = b"stale"

    pipeline.run(video)
    first = store.keys_under(prefix)
    pipeline.run(reload(video))
    second = store.keys_under(prefix)

    assert first == second
    assert f"{prefix}480p/segment_999.ts" not in second
    assert f"{prefix}old-layout/index.m3u8" not in second
    assert video.source_key in store.objects


def test_purge_does_not_touch_other_videos(pipeline, store, make_video):
    video = make_video()
    neighbour = f"courses/c1/chapters/ch1/videos/{video.pk}0/480p/playlist.m3u8"
    store.objects[neighbour] = b"keep"

    pipeline.run(video)

    assert store.objects[neighbour] == b"keep"


def test_demo_video_uses_demo_chapter(pipeline, store, make_video):
    video = make_video(chapter_id="")

    pipeline.run(video)

    assert reload(video).hls_master_url.startswith(
        f"{PUBLIC_BASE}/courses/c1/chapters/demo/videos/{video.pk}/"
    )


def test_video_without_course_fails_before_any_work(pipeline, store, make_video):
    video = make_video(course_id="")

    with pytest.raises(PipelineError):
        pipeline.run(video)

    fresh = reload(video)
    assert fresh.processing_status == Video.Status.FAILED
    assert "course_id" in fresh.processing_error
    assert fresh.hls_master_url is None
    assert store.purged == []


def test_failed_save_purges_fresh_output(prober, transcoder, make_video, scratch_root):
    class VanishingRowStore(FakeStore):
        def upload(self, local_path, key, content_type=None):
            url = super().upload(local_path, key, content_type)
            if key.endswith("master/master.m3u8"):
                Video.objects.filter(pk=video.pk).delete()
            return url

    store = VanishingRowStore()
    pipeline = VideoPipeline(store, prober, transcoder, scratch_root)
    video = Video.objects.create(course_id="c1", chapter_id="ch1", source_key="src.mp4")
    store.objects["src.mp4"] = b"1280x720:30"

    with pytest.raises(PersistenceError):
        pipeline.run(video)

    assert store.keys_under(video.key_prefix) == set()
    assert "src.mp4" in store.objects


def test_cancel_before_start(pipeline, store, make_video, scratch_root):
    video = make_video(**OLD_URLS)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PipelineCancelled):
        pipeline.run(video, cancel=cancel)

    video = reload(video)
    assert video.processing_status == Video.Status.FAILED
    assert video.url_snapshot() == OLD_URLS
    assert store.purged == []
    assert not (scratch_root / str(video.pk)).exists()


def test_cancel_during_transcode(store, prober, make_video, scratch_root):
    def cancel_on_720p(planned, cancel):
        if planned.name == "720p":
            cancel.set()

    transcoder = FakeTranscoder(on_transcode=cancel_on_720p)
    pipeline = VideoPipeline(store, prober, transcoder, scratch_root)
    video = make_video(1080, 1920, **OLD_URLS)

    with pytest.raises(PipelineCancelled):
        pipeline.run(video, cancel=threading.Event())

    assert transcoder.calls == ["480p", "720p"]
    assert f"{video.key_prefix}720p/playlist.m3u8" not in store.objects
    assert reload(video).url_snapshot() == OLD_URLS
    assert not (scratch_root / str(video.pk)).exists()


def test_progress_bands():
    assert _progress_for_rendition(0, 3, 0) == 10
    assert _progress_for_rendition(1, 3, 50) == 52
    assert _progress_for_rendition(3, 3, 0) == 95
    assert _progress_for_rendition(0, 1, 200) == 95


def test_scratch_space_is_fresh_and_removed(tmp_path):
    leftover = tmp_path / "v1" / "old.ts"
    leftover.parent.mkdir()
    leftover.write_bytes(b"x")

    with pytest.raises(RuntimeError):
        with scratch_space(tmp_path, "v1") as path:
            assert path == tmp_path / "v1"
            assert not leftover.exists()
            (path / "original.mp4").write_bytes(b"x")
            raise RuntimeError("boom")

    assert not (tmp_path / "v1").exists()
