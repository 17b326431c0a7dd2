"""
Storage backend interface for person document files
"""
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    Keys are namespaced per tenant and person so a tenant's files can be
    listed or removed without touching other tenants.

    Reference: https://docs.python.org/3/library/abc.html
    """

    @abstractmethod
    async def save_file(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        tenant_id: uuid.UUID,
        person_id: uuid.UUID,
        document_id: uuid.UUID,
    ) -> str:
        """
        Store file content.

        Args:
            content: Raw file bytes (already size and type checked)
            filename: Original filename, used for the key extension
            content_type: MIME type stored with the object
            tenant_id: Owning tenant
            person_id: Owning person
            document_id: Document the file belongs to

        Returns:
            str: Storage key
        """

    @abstractmethod
    async def delete_file(self, storage_key: str) -> bool:
        """
        Delete a stored file.

        Returns:
            bool: True if deleted, False if the key did not exist
        """

    @abstractmethod
    def get_file_url(self, storage_key: str, expires_in: Optional[int] = None) -> str:
        """URL (presigned when supported) to download the file"""

    def generate_storage_key(
        self,
        tenant_id: uuid.UUID,
        person_id: uuid.UUID,
        document_id: uuid.UUID,
        filename: str,
    ) -> str:
        """
        Format: tenants/{tenant_id}/persons/{person_id}/documents/{document_id}{ext}
        """
        ext = Path(filename).suffix.lower()
        return f"tenants/{tenant_id}/persons/{person_id}/documents/{document_id}{ext}"
