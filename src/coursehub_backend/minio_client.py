import os
from typing import Optional
from minio import Minio
import logging

logger = logging.getLogger(__name__)

# Environment configuration
MINIO_ENDPOINT = os.environ.get('MINIO_ENDPOINT', 'localhost:9000')
MINIO_ACCESS_KEY = os.environ.get('MINIO_ACCESS_KEY', 'minioadmin')
MINIO_SECRET_KEY = os.environ.get('MINIO_SECRET_KEY', 'minioadmin')
MINIO_SECURE = os.environ.get('MINIO_SECURE', 'false').lower() == 'true'
MINIO_REGION = os.environ.get('MINIO_REGION', 'us-east-1')
MINIO_DEFAULT_BUCKET = os.environ.get('MINIO_DEFAULT_BUCKET', 'course-files')
MINIO_PUBLIC_URL = os.environ.get(
    'MINIO_PUBLIC_URL',
    f"{'https' if MINIO_SECURE else 'http'}://{MINIO_ENDPOINT}"
).rstrip('/')

_minio_client: Optional[Minio] = None


def get_minio_client() -> Minio:
    """Get the singleton MinIO client instance"""
    global _minio_client
    if _minio_client is None:
        logger.info(f"Initializing MinIO client for endpoint: {MINIO_ENDPOINT}")
        _minio_client = Minio(
            MINIO_ENDPOINT,
            access_key=MINIO_ACCESS_KEY,
            secret_key=MINIO_SECRET_KEY,
            secure=MINIO_SECURE,
            region=MINIO_REGION
        )
    return _minio_client

