"""
Storage backends for file storage
Uses Amazon S3 for person document uploads
"""
from app.core.config import settings
from app.core.errors import InvalidStateError
from app.core.storage.base import StorageBackend
from app.core.storage.s3 import S3Storage


def get_storage_backend() -> StorageBackend:
    """
    Dependency returning the S3 storage backend.

    Raises:
        InvalidStateError: If S3 is not configured (uploads unavailable)
    """
    if not settings.S3_BUCKET_NAME:
        raise InvalidStateError(
            "File uploads are not configured: S3_BUCKET_NAME is not set",
            code="STORAGE_NOT_CONFIGURED",
        )
    return S3Storage()


__all__ = ["StorageBackend", "S3Storage", "get_storage_backend"]
