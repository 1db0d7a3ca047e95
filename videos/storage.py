import logging
import mimetypes
from pathlib import Path
from typing import Iterable, List, Optional

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import StoreError

logger = logging.getLogger(__name__)

PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/MP2T"
# S3 DeleteObjects accepts at most 1000 keys per request.
DELETE_BATCH_SIZE = 1000


def content_type_for(filename) -> str:
    suffix = Path(str(filename)).suffix.lower()
    if suffix == ".m3u8":
        return PLAYLIST_CONTENT_TYPE
    if suffix in (".ts", ".m2ts"):
        return SEGMENT_CONTENT_TYPE
    mime, _ = mimetypes.guess_type(str(filename))
    return mime or "application/octet-stream"


def _boto_config() -> BotoConfig:
    return BotoConfig(
        s3={"addressing_style": "path"},
        signature_version="s3v4",
        connect_timeout=settings.S3_CONNECT_TIMEOUT,
        read_timeout=settings.S3_READ_TIMEOUT,
        retries={"max_attempts": settings.S3_MAX_ATTEMPTS, "mode": "standard"},
    )


def get_s3_client(endpoint_url: Optional[str] = None):
    """
    SDK client for server-side upload/download.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=endpoint_url or settings.S3_ENDPOINT_URL,
        config=_boto_config(),
    )


class ObjectStore:
    """
    Thin wrapper around one bucket.

    Every boto failure surfaces as ``StoreError`` so the pipeline can abort
    the video instead of skipping the object.
    """

    def __init__(self, client, bucket: str, public_base_url: str, presign_client=None):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.presign_client = presign_client or client

    @classmethod
    def from_settings(cls) -> "ObjectStore":
        # Presigned URLs must be signed for the host the browser reaches.
        return cls(
            client=get_s3_client(),
            bucket=settings.S3_BUCKET,
            public_base_url=settings.S3_PUBLIC_BASE_URL,
            presign_client=get_s3_client(settings.S3_PUBLIC_ENDPOINT),
        )

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def key_from_url(self, url: str) -> str:
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            raise StoreError(f"URL is not under {self.public_base_url}: {url}")
        return url[len(prefix):]

    def download(self, key: str, local_path) -> Path:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading s3://%s/%s", self.bucket, key)
        try:
            self.client.download_file(self.bucket, key, str(local_path))
        except (ClientError, BotoCoreError, Boto3Error) as e:
            raise StoreError(f"download failed key={key}: {e}") from e
        return local_path

    def upload(self, local_path, key: str, content_type: Optional[str] = None) -> str:
        """
        Upload a single file and return its public URL.
        """
        extra = {"ContentType": content_type or content_type_for(local_path)}
        try:
            self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra)
        except (ClientError, BotoCoreError, Boto3Error) as e:
            raise StoreError(f"upload failed key={key}: {e}") from e
        return self.public_url(key)

    def upload_bytes(self, body: bytes, key: str, content_type: str) -> str:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"put failed key={key}: {e}") from e
        return self.public_url(key)

    def list_by_prefix(self, prefix: str) -> List[str]:
        """All keys under ``prefix``; pagination is followed internally."""
        keys = []
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        try:
            while True:
                resp = self.client.list_objects_v2(**kwargs)
                keys.extend(obj["Key"] for obj in resp.get("Contents") or [])
                if not resp.get("IsTruncated"):
                    break
                kwargs["ContinuationToken"] = resp["NextContinuationToken"]
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"list failed prefix={prefix}: {e}") from e
        return keys

    def delete_batch(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            chunk = keys[start:start + DELETE_BATCH_SIZE]
            try:
                resp = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                raise StoreError(f"delete failed ({len(chunk)} keys from {chunk[0]}): {e}") from e
            errors = resp.get("Errors") or []
            if errors:
                first = errors[0]
                raise StoreError(
                    f"delete failed for {len(errors)} key(s), first {first.get('Key')}: "
                    f"{first.get('Code')} {first.get('Message')}"
                )
        return len(keys)

    def purge_prefix(self, prefix: str) -> int:
        """Delete every object under ``prefix``. Safe when nothing exists."""
        if not prefix or not prefix.endswith("/"):
            # Refuse "courses/1/chapters/2/videos/3" which would also match ".../videos/30/"
            raise StoreError(f"refusing to purge unterminated prefix {prefix!r}")
        keys = self.list_by_prefix(prefix)
        if not keys:
            return 0
        deleted = self.delete_batch(keys)
        logger.info("Deleted %d old object(s) under %s", deleted, prefix)
        return deleted

    def presigned_put(self, key: str, content_type: Optional[str] = None, expires: Optional[int] = None) -> dict:
        """
        Presigned PUT URL so the browser uploads the source straight to the bucket.

        ContentType is not signed, so clients that omit or alter
        the header still match the signature.
        """
        try:
            url = self.presign_client.generate_presigned_url(
                ClientMethod="put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
                HttpMethod="PUT",
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"presign failed key={key}: {e}") from e
        headers = {"Content-Type": content_type} if content_type else {}
        return {"url": url, "headers": headers}
