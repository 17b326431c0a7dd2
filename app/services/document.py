"""
Document service for person file attachments
Handles upload validation, storage and document metadata
Reference: https://fastapi.tiangolo.com/tutorial/request-files/
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import UploadFile
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.document import DocumentCreate, DocumentUpdate
from app.core.config import settings
from app.core.dependencies import Principal
from app.core.errors import InvalidStateError, NotFoundError, ValidationError
from app.core.storage import StorageBackend
from app.core.tenant import authorize_tenant_access
from app.models.document import Document, DocumentType
from app.models.person import Person
from app.services.audit import AuditService, snapshot
from app.services.pagination import PageParams, paginate

logger = logging.getLogger(__name__)

DOWNLOAD_URL_EXPIRES_IN = 3600


@dataclass
class DocumentFilters:
    person_id: Optional[uuid.UUID] = None
    type: Optional[DocumentType] = None
    is_active: Optional[bool] = None
    search: Optional[str] = None


class DocumentService:
    """
    Service class for document-related business logic.

    Documents carry no tenant column; every read and write is scoped
    through the owning person's tenant.
    """

    def __init__(self, storage: Optional[StorageBackend] = None):
        """
        Args:
            storage: Backend for uploads; only needed by upload_document
        """
        self.storage = storage
        self.audit = AuditService()
        self.max_file_size = settings.MAX_DOCUMENT_SIZE
        self.allowed_mime_types = settings.allowed_document_mime_types_list

    async def _get_person(self, db: AsyncSession, principal: Principal, person_id: uuid.UUID) -> Person:
        person = (await db.execute(select(Person).where(Person.id == person_id))).scalar_one_or_none()
        if person is None:
            raise NotFoundError.for_entity("Person", person_id)
        authorize_tenant_access(principal, person.tenant_id)
        return person

    async def get_document(self, db: AsyncSession, principal: Principal, document_id: uuid.UUID) -> Document:
        """
        Raises:
            NotFoundError: Unknown document, or its person was deleted
            AuthorizationError: Owning person belongs to another tenant
        """
        result = await db.execute(
            select(Document, Person.tenant_id)
            .join(Person, Person.id == Document.person_id)
            .where(Document.id == document_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError.for_entity("Document", document_id)
        document, tenant_id = row
        authorize_tenant_access(principal, tenant_id)
        return document

    def validate_upload(self, content: bytes, mime_type: Optional[str]) -> None:
        """
        Check size and MIME type of an uploaded file

        Raises:
            ValidationError: Empty, too large or disallowed type
        """
        file_size = len(content)
        if file_size == 0:
            raise ValidationError("File is empty", details={"field": "file"})

        if file_size > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise ValidationError(
                f"File size ({file_size / (1024 * 1024):.2f} MB) exceeds maximum allowed size ({max_mb:g} MB)",
                details={"field": "file", "fileSize": file_size, "maxFileSize": self.max_file_size},
            )

        if mime_type not in self.allowed_mime_types:
            raise ValidationError(
                f"File type '{mime_type}' is not allowed",
                details={"field": "file", "allowedTypes": self.allowed_mime_types},
            )

    async def create_document(
        self,
        db: AsyncSession,
        principal: Principal,
        data: DocumentCreate,
    ) -> Document:
        """
        Register a document from metadata (file stored elsewhere)

        Raises:
            NotFoundError: Person not found
            AuthorizationError: Person belongs to another tenant
        """
        person = await self._get_person(db, principal, data.person_id)

        document = Document(**data.model_dump())
        db.add(document)
        await db.flush()

        self.audit.record(
            db,
            "document.create",
            principal=principal,
            tenant_id=person.tenant_id,
            entity_type="document",
            entity_id=document.id,
            new_values=snapshot(document),
        )
        await db.flush()
        logger.info(f"Created document {document.id} for person {person.id}")
        return document

    async def upload_document(
        self,
        db: AsyncSession,
        principal: Principal,
        person_id: uuid.UUID,
        file: UploadFile,
        name: Optional[str] = None,
        document_type: DocumentType = DocumentType.OTHER,
        description: Optional[str] = None,
    ) -> Document:
        """
        Validate, store and register an uploaded file.

        The stored object is removed again if the database insert fails.

        Raises:
            ValidationError: File rejected by validate_upload
            NotFoundError: Person not found
            AuthorizationError: Person belongs to another tenant
        """
        person = await self._get_person(db, principal, person_id)

        content = await file.read()
        mime_type = file.content_type
        self.validate_upload(content, mime_type)

        file_name = file.filename or "document"
        document_id = uuid.uuid4()
        storage_key = await self.storage.save_file(
            content, file_name, mime_type, person.tenant_id, person.id, document_id
        )

        document = Document(
            id=document_id,
            person_id=person.id,
            name=(name or file_name)[:100],
            type=document_type,
            url=storage_key,
            file_name=file_name[:255],
            mime_type=mime_type,
            file_size=len(content),
            description=description,
        )
        db.add(document)
        try:
            await db.flush()
        except Exception:
            logger.error(f"Failed to save document {document_id}; removing stored file {storage_key}")
            await self.storage.delete_file(storage_key)
            raise

        self.audit.record(
            db,
            "document.upload",
            principal=principal,
            tenant_id=person.tenant_id,
            entity_type="document",
            entity_id=document.id,
            new_values=snapshot(document),
        )
        await db.flush()
        logger.info(f"Uploaded document {document.id} ({len(content)} bytes) for person {person.id}")
        return document

    async def list_documents(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        params: PageParams,
        filters: DocumentFilters,
    ) -> tuple[list[Document], int]:
        query = (
            select(Document)
            .join(Person, Person.id == Document.person_id)
            .where(Person.tenant_id == tenant_id)
        )
        if filters.person_id is not None:
            query = query.where(Document.person_id == filters.person_id)
        if filters.type is not None:
            query = query.where(Document.type == filters.type)
        if filters.is_active is not None:
            query = query.where(Document.is_active.is_(filters.is_active))
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(
                or_(
                    Document.name.ilike(pattern),
                    Document.file_name.ilike(pattern),
                    Document.description.ilike(pattern),
                )
            )

        return await paginate(
            db,
            query,
            params,
            sort_columns={
                "createdAt": Document.created_at,
                "updatedAt": Document.updated_at,
                "name": Document.name,
                "type": Document.type,
                "fileSize": Document.file_size,
            },
        )

    async def get_download_url(
        self,
        db: AsyncSession,
        principal: Principal,
        document_id: uuid.UUID,
        expires_in: int = DOWNLOAD_URL_EXPIRES_IN,
    ) -> tuple[str, Optional[int]]:
        """
        Link to the document file

        Documents registered with an external http(s) URL return it unchanged;
        uploaded files get a presigned link from the storage backend.

        Returns:
            (url, lifetime in seconds or None)
        """
        document = await self.get_document(db, principal, document_id)
        if document.url.startswith(("http://", "https://")):
            return document.url, None
        if self.storage is None:
            raise InvalidStateError("File storage is not available", code="STORAGE_NOT_CONFIGURED")
        return self.storage.get_file_url(document.url, expires_in), expires_in

    async def update_document(
        self,
        db: AsyncSession,
        principal: Principal,
        document_id: uuid.UUID,
        data: DocumentUpdate,
    ) -> Document:
        document = await self.get_document(db, principal, document_id)
        update_data = data.model_dump(exclude_unset=True)
        for required in ("name", "type", "is_active"):
            if required in update_data and update_data[required] is None:
                raise ValidationError(f"{required} cannot be null", details={"field": required})
        if not update_data:
            return document

        before = snapshot(document)
        for field, value in update_data.items():
            setattr(document, field, value)

        self.audit.record(
            db,
            "document.update",
            principal=principal,
            tenant_id=await self._tenant_of(db, document),
            entity_type="document",
            entity_id=document.id,
            old_values=before,
            new_values=snapshot(document),
        )
        await db.flush()
        logger.info(f"Updated document {document.id}")
        return document

    async def delete_document(self, db: AsyncSession, principal: Principal, document_id: uuid.UUID) -> Document:
        """Soft delete; the stored file is kept"""
        document = await self.get_document(db, principal, document_id)
        before = snapshot(document)
        document.soft_delete()

        self.audit.record(
            db,
            "document.delete",
            principal=principal,
            tenant_id=await self._tenant_of(db, document),
            entity_type="document",
            entity_id=document.id,
            old_values=before,
            new_values={"deleted_at": document.deleted_at},
        )
        await db.flush()
        logger.info(f"Soft deleted document {document.id}")
        return document

    async def _tenant_of(self, db: AsyncSession, document: Document) -> uuid.UUID:
        return await db.scalar(select(Person.tenant_id).where(Person.id == document.person_id))
