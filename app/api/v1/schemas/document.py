"""
Document API schemas for request/response models
Reference: https://fastapi.tiangolo.com/tutorial/body/
"""
import uuid
from datetime import datetime
from typing import Optional
from pydantic import Field

from app.api.v1.schemas.common import CamelModel
from app.core.config import settings
from app.models.document import DocumentType


class DocumentCreate(CamelModel):
    """
    Schema for registering a document whose file is already stored

    Attributes:
        person_id: Owning person; the document inherits its tenant
        url: Storage URL or key of the file
        file_size: Size in bytes, 1 B up to MAX_DOCUMENT_SIZE
    """
    person_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: DocumentType = DocumentType.OTHER
    url: str = Field(..., min_length=1, max_length=1000)
    file_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1, max_length=100)
    file_size: int = Field(..., ge=1, le=settings.MAX_DOCUMENT_SIZE)
    description: Optional[str] = Field(None, max_length=500)
    is_active: bool = True


class DocumentUpdate(CamelModel):
    """
    Partial metadata update; the stored file itself is immutable
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[DocumentType] = None
    description: Optional[str] = Field(None, max_length=500)
    is_active: Optional[bool] = None


class DocumentResponse(CamelModel):
    """
    Schema for document response

    Reference: https://fastapi.tiangolo.com/tutorial/response-model/
    """
    id: uuid.UUID = Field(..., description="Document UUID")
    person_id: uuid.UUID = Field(..., description="Owning person UUID")
    name: str
    type: DocumentType
    url: str = Field(..., description="Storage URL or key")
    file_name: str = Field(..., description="Original filename")
    mime_type: str
    file_size: int = Field(..., description="File size in bytes")
    description: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class DocumentDownloadResponse(CamelModel):
    url: str = Field(..., description="Direct link; presigned and short-lived for stored files")
    expires_in: Optional[int] = Field(None, description="Link lifetime in seconds, None for external URLs")
