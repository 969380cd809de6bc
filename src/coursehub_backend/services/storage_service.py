import logging
from typing import BinaryIO, Optional
from minio.error import S3Error

from ..minio_client import get_minio_client, MINIO_DEFAULT_BUCKET, MINIO_PUBLIC_URL
from ..storage_security import validate_storage_path
from ..api.exceptions import (
    BadRequestException,
    ConflictException,
    ServiceUnavailableException
)

logger = logging.getLogger(__name__)


class StoredObject:
    """Location of an uploaded object"""

    def __init__(self, bucket: str, object_key: str, public_url: str, size: int, content_type: str):
        self.bucket = bucket
        self.object_key = object_key
        self.public_url = public_url
        self.size = size
        self.content_type = content_type


class StorageService:
    """Service for handling MinIO storage operations"""

    def __init__(self, client=None, bucket_name: Optional[str] = None):
        self.client = client or get_minio_client()
        self.default_bucket = bucket_name or MINIO_DEFAULT_BUCKET

    def public_url(self, object_key: str, bucket_name: Optional[str] = None) -> str:
        return f"{MINIO_PUBLIC_URL}/{bucket_name or self.default_bucket}/{object_key}"

    async def ensure_bucket_exists(self, bucket_name: Optional[str] = None) -> str:
        """Ensure bucket exists, create if it doesn't"""
        bucket = bucket_name or self.default_bucket
        try:
            if not self.client.bucket_exists(bucket):
                self.client.make_bucket(bucket)
                logger.info(f"Created bucket: {bucket}")
        except S3Error as e:
            logger.error(f"Error ensuring bucket exists: {e}")
            raise ServiceUnavailableException("Storage service unavailable")
        return bucket

    async def object_exists(self, object_key: str, bucket_name: Optional[str] = None) -> bool:
        bucket = bucket_name or self.default_bucket
        try:
            self.client.stat_object(bucket, object_key)
            return True
        except S3Error as e:
            if e.code in ('NoSuchKey', 'NoSuchObject', 'NoSuchBucket'):
                return False
            logger.error(f"Error checking object {bucket}/{object_key}: {e}")
            raise ServiceUnavailableException("Storage service unavailable")

    async def upload_file(
        self,
        file_data: BinaryIO,
        object_key: str,
        content_type: str,
        bucket_name: Optional[str] = None,
        upsert: bool = False
    ) -> StoredObject:
        """Upload a file and return its public location. Existing keys are kept unless ``upsert``."""
        valid, error = validate_storage_path(object_key)
        if not valid:
            raise BadRequestException(error)

        bucket = await self.ensure_bucket_exists(bucket_name)

        if not upsert and await self.object_exists(object_key, bucket):
            raise ConflictException("A file with this name already exists")

        file_data.seek(0, 2)
        file_size = file_data.tell()
        file_data.seek(0)

        try:
            self.client.put_object(
                bucket_name=bucket,
                object_name=object_key,
                data=file_data,
                length=file_size,
                content_type=content_type
            )
        except S3Error as e:
            logger.error(f"Error uploading file {bucket}/{object_key}: {e}")
            raise ServiceUnavailableException("Failed to upload file")

        logger.info(f"Uploaded object: {bucket}/{object_key}")

        return StoredObject(
            bucket=bucket,
            object_key=object_key,
            public_url=self.public_url(object_key, bucket),
            size=file_size,
            content_type=content_type
        )

    async def delete_file(self, object_key: str, bucket_name: Optional[str] = None) -> bool:
        """Delete an object. A missing object counts as deleted."""
        bucket = bucket_name or self.default_bucket

        try:
            self.client.remove_object(bucket, object_key)
            logger.info(f"Deleted object: {bucket}/{object_key}")
            return True
        except S3Error as e:
            if e.code in ('NoSuchKey', 'NoSuchObject'):
                logger.warning(f"Object already gone: {bucket}/{object_key}")
                return False
            logger.error(f"Error deleting file {bucket}/{object_key}: {e}")
            raise ServiceUnavailableException("Failed to delete file")


_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """FastAPI dependency returning the shared storage service"""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
