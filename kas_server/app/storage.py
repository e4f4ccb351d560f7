# kas_server/app/storage.py
import io
import logging
from datetime import timedelta
from typing import Optional

from minio import Minio
from minio.error import S3Error

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


class ImageStore:
    """Package photos kept in a MinIO bucket, addressed by object key."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Minio] = None):
        self.settings = settings or get_settings()
        self.bucket = self.settings.MINIO_BUCKET_NAME
        self.client = client or Minio(
            endpoint=self.settings.MINIO_ENDPOINT,
            access_key=self.settings.MINIO_ACCESS_KEY,
            secret_key=self.settings.MINIO_SECRET_KEY,
            secure=self.settings.MINIO_SECURE,
            region=self.settings.MINIO_REGION,
        )
        self._bucket_ready = False

    def _ensure_bucket(self):
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info("created bucket %s", self.bucket)
        self._bucket_ready = True

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        self._ensure_bucket()
        self.client.put_object(self.bucket, key, io.BytesIO(data), length=len(data), content_type=content_type)
        return key

    def delete(self, key: str) -> None:
        self.client.remove_object(self.bucket, key)

    def url(self, key: str) -> Optional[str]:
        try:
            return self.client.presigned_get_object(
                self.bucket, key, expires=timedelta(seconds=self.settings.IMAGE_URL_TTL)
            )
        except S3Error:
            logger.warning("could not sign url for %s", key, exc_info=True)
            return None
