from django.urls import path
from .views import CreateVideoFromKeyView, PresignUploadView, VideoDetailView

urlpatterns = [
    path("videos/presign/", PresignUploadView.as_view(), name="videos_presign"),
    path("videos/", CreateVideoFromKeyView.as_view(), name="videos_create"),
    path("videos/<uuid:video_id>/", VideoDetailView.as_view(), name="video_detail"),
]
