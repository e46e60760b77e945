from __future__ import annotations
import io
from datetime import timedelta
from functools import lru_cache
from minio import Minio
from minio.error import S3Error
from picfight.config import settings

def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # Return (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure


class ObjectStorage:
    """Uploaded submission images in an S3-compatible bucket."""

    def __init__(self, client: Minio, bucket: str, presign_expiry_seconds: int = 3600):
        self.client = client
        self.bucket = bucket
        self.presign_expiry = timedelta(seconds=presign_expiry_seconds)
        self._bucket_checked = False

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
        except S3Error as e:
            # Concurrent workers may race on creation
            if e.code not in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
                raise
        self._bucket_checked = True

    def put_bytes(self, key: str, data: bytes, content_type: str) -> None:
        self._ensure_bucket()
        self.client.put_object(self.bucket, key, io.BytesIO(data), length=len(data), content_type=content_type)

    def get_bytes(self, key: str) -> tuple[bytes, str]:
        """
        Retrieve object from storage.
        Returns (data, content_type).
        """
        try:
            response = self.client.get_object(self.bucket, key)
            try:
                data = response.read()
                content_type = response.headers.get("Content-Type", "application/octet-stream")
            finally:
                response.close()
                response.release_conn()
            return data, content_type
        except S3Error as e:
            if e.code == "NoSuchKey":
                raise FileNotFoundError(f"Object not found: {key}")
            raise

    def presign_get(self, key: str) -> str:
        return self.client.presigned_get_object(self.bucket, key, expires=self.presign_expiry)


@lru_cache(maxsize=1)
def get_object_storage() -> ObjectStorage:
    host, secure = _parse_endpoint(settings.s3_endpoint)
    client = Minio(host, access_key=settings.s3_access_key, secret_key=settings.s3_secret_key, secure=secure)
    return ObjectStorage(client, settings.s3_bucket_uploads, settings.s3_presign_expiry_seconds)
