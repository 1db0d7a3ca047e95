from io import StringIO
from unittest import mock

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from videos.models import Video
from videos.playlists import parse_master

from .fakes import PUBLIC_BASE, FakeStore, source_bytes

pytestmark = pytest.mark.django_db

URL = f"{PUBLIC_BASE}/x/720p/playlist.m3u8"


def create(**fields):
    fields.setdefault("course_id", "c1")
    fields.setdefault("chapter_id", "ch1")
    fields.setdefault("source_key", "src.mp4")
    return Video.objects.create(**fields)


def run(*args):
    out, err = StringIO(), StringIO()
    call_command(*args, stdout=out, stderr=err)
    return out.getvalue(), err.getvalue()


@pytest.fixture()
def use_pipeline(pipeline):
    with mock.patch("videos.management.commands.reprocess_videos.VideoPipeline.from_settings", return_value=pipeline):
        yield pipeline


def test_dry_run_lists_stretched_candidates(use_pipeline, store):
    video = create(width=1080, height=1920, hls_720p_url=URL)
    create(width=1920, height=1080, hls_720p_url=URL)
    create(hls_480p_url=URL)

    out, _ = run("reprocess_videos", "--dry-run")

    assert "Found 1 stretched video(s)" in out
    assert f"video_id={video.pk}" in out
    assert "size=1080x1920" in out
    assert "1 published video(s) have no stored width/height" in out
    assert Video.objects.get(pk=video.pk).processing_status == Video.Status.PENDING
    assert store.purged == []


def test_reprocesses_stretched_videos_inline(use_pipeline, store):
    store.objects["src.mp4"] = source_bytes(1080, 1920)
    video = create(width=1080, height=1920, hls_720p_url=URL)

    out, _ = run("reprocess_videos")

    assert "Done: succeeded=1 failed=0 skipped=0" in out
    video = Video.objects.get(pk=video.pk)
    assert video.processing_status == Video.Status.COMPLETED
    streams = parse_master(store.objects[f"{video.key_prefix}master/master.m3u8"].decode())
    assert [s.width for s in streams] == [270, 405, 608]


def test_failures_make_the_command_fail(use_pipeline, store):
    store.objects["bad.mp4"] = b"corrupt"
    video = create(source_key="bad.mp4")

    with pytest.raises(CommandError, match="failed=1"):
        run("reprocess_videos", "--video-id", str(video.pk))


def test_unknown_video_id_is_reported(use_pipeline):
    out, err = run("reprocess_videos", "--video-id", "6f1c2d4e-0000-4000-8000-000000000000")
    assert "not found" in err
    assert "Nothing to do" in out


def test_enqueue_resets_and_dispatches():
    video = create(processing_status=Video.Status.FAILED, processing_error="boom", processing_progress=40)
    create(course_id="")

    with mock.patch("videos.tasks.process_video.delay") as delay:
        out, _ = run("reprocess_videos", "--unprocessed", "--enqueue")

    delay.assert_called_once_with(str(video.pk))
    video = Video.objects.get(pk=video.pk)
    assert (video.processing_status, video.processing_progress, video.processing_error) == (
        Video.Status.PENDING, 0, ""
    )
    assert "Done: enqueued=1 skipped=1" in out


def test_rebuild_master_playlists():
    store = FakeStore()
    prefix = "courses/c1/chapters/ch1/videos/v1/"
    video = create(
        width=1080,
        height=1920,
        processing_status=Video.Status.COMPLETED,
        hls_master_url=f"{PUBLIC_BASE}/{prefix}master/master.m3u8",
        hls_480p_url=f"{PUBLIC_BASE}/{prefix}480p/playlist.m3u8",
        hls_720p_url=f"{PUBLIC_BASE}/{prefix}720p/playlist.m3u8",
    )
    create(processing_status=Video.Status.COMPLETED, hls_master_url=f"{PUBLIC_BASE}/empty/master.m3u8")

    with mock.patch(
        "videos.management.commands.rebuild_master_playlists.ObjectStore.from_settings", return_value=store
    ):
        out, _ = run("rebuild_master_playlists")

    assert f"FIXED | video_id={video.pk}" in out
    assert "Done: fixed=1 errors=0 skipped=1" in out
    streams = parse_master(store.objects[f"{prefix}master/master.m3u8"].decode())
    assert [(s.width, s.height, s.uri) for s in streams] == [
        (270, 480, "../480p/playlist.m3u8"),
        (405, 720, "../720p/playlist.m3u8"),
    ]
    assert store.content_types[f"{prefix}master/master.m3u8"] == "application/vnd.apple.mpegurl"


def test_rebuild_without_geometry_assumes_16_9():
    create(
        processing_status=Video.Status.COMPLETED,
        hls_master_url=f"{PUBLIC_BASE}/p/master/master.m3u8",
        hls_1080p_url=f"{PUBLIC_BASE}/p/1080p/playlist.m3u8",
    )
    out, _ = run("rebuild_master_playlists", "--dry-run")
    assert "RESOLUTION=1920x1080" in out
    assert "(dry-run)" in out
