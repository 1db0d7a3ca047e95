from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .errors import StoreError
from .keys import source_upload_key
from .models import Video
from .serializers import (
    PresignRequestSerializer,
    PresignResponseSerializer,
    VideoFromKeyRequestSerializer,
    VideoSerializer,
)
from .storage import ObjectStore
from .tasks import process_video
from .utils import unique_filename


class PresignUploadView(views.APIView):
    """
    Returns a presigned PUT URL + recommended key so the client can upload the
    original straight to the bucket without streaming through Django.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = PresignRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        key = source_upload_key(
            data["course_id"], data.get("chapter_id") or "", unique_filename(data["filename"])
        )
        try:
            signed = ObjectStore.from_settings().presigned_put(key, content_type=data.get("content_type") or None)
        except StoreError as e:
            return Response({"detail": str(e)}, status=status.HTTP_502_BAD_GATEWAY)

        resp = {"key": key, "url": signed["url"], "headers": signed.get("headers", {})}
        return Response(PresignResponseSerializer(resp).data, status=status.HTTP_201_CREATED)


class CreateVideoFromKeyView(views.APIView):
    """
    Upload-complete hook: creates a PENDING Video for an object already in the
    bucket and queues it for HLS processing.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = VideoFromKeyRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        video = Video.objects.create(
            course_id=data["course_id"],
            chapter_id=data.get("chapter_id") or "",
            source_key=data["key"],
            original_name=data.get("original_name") or "",
            original_size=data.get("original_size") or 0,
        )

        process_video.delay(str(video.id))
        return Response({"video_id": str(video.id)}, status=status.HTTP_202_ACCEPTED)


class VideoDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, video_id):
        try:
            video = Video.objects.get(pk=video_id)
        except Video.DoesNotExist:
            return Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(VideoSerializer(video).data)
